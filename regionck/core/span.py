# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Source spans and program points.

A Span is whatever location the external elaborator attached to an IR node
(file/line/column, best effort). A ProgramPoint addresses a statement inside
the CFG being analysed: `index == len(block.statements)` is the terminator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Span:
	"""Best-effort source location of an IR node."""

	file: Optional[str] = None
	line: Optional[int] = None
	column: Optional[int] = None
	raw: Any = None

	@classmethod
	def from_loc(cls, loc: Any) -> "Span":
		"""
		Build a Span from a location object or a plain dict.

		The JSON interchange form stores spans as `{"file", "line", "column"}`;
		other front-ends may hand over their own location objects.
		"""
		if loc is None:
			return cls()
		if isinstance(loc, cls):
			return loc
		if isinstance(loc, dict):
			return cls(file=loc.get("file"), line=loc.get("line"), column=loc.get("column"))
		return cls(
			file=getattr(loc, "file", None),
			line=getattr(loc, "line", None),
			column=getattr(loc, "column", None),
			raw=loc,
		)

	def render(self) -> str:
		"""`line:column` with `?` for unknown parts."""
		line = "?" if self.line is None else str(self.line)
		col = "?" if self.column is None else str(self.column)
		return f"{line}:{col}"


@dataclass(frozen=True, order=True)
class ProgramPoint:
	"""A statement (or terminator) position inside a function CFG."""

	block: int
	index: int

	def __str__(self) -> str:
		return f"bb{self.block}[{self.index}]"


__all__ = ["Span", "ProgramPoint"]
