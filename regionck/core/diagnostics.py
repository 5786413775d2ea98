# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Diagnostic structure exchanged with the downstream renderer.

The analysis itself only classifies failures (see `regionck.conflicts`);
this is the flattened form the CLI prints or serialises.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from .span import Span


@dataclass
class Diagnostic:
	"""A rendered finding (error/warning/note)."""

	message: str
	code: str | None = None
	# Pass that produced the finding: "regionck", "variance" or "parse".
	phase: str | None = None
	severity: str = "error"
	span: Span = field(default_factory=Span)
	notes: list[str] = field(default_factory=list)

	def __post_init__(self) -> None:
		if self.span is None:  # type: ignore[unreachable]
			self.span = Span()

	def to_json(self) -> Dict[str, Any]:
		"""Flatten into the JSON shape printed by `--json`."""
		return {
			"phase": self.phase,
			"code": self.code,
			"message": self.message,
			"severity": self.severity,
			"file": self.span.file,
			"line": self.span.line,
			"column": self.span.column,
			"notes": list(self.notes),
		}


__all__ = ["Diagnostic"]
