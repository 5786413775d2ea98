# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Conflict reports and per-function verdicts.

The passes only classify failures; `to_diagnostic()` flattens a report into
the `Diagnostic` shape the CLI (or any other renderer) consumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from regionck.core.diagnostics import Diagnostic
from regionck.core.span import ProgramPoint, Span
from regionck.core.types_core import TypeArg, format_type
from regionck.errors import MalformedIRError
from regionck.regions import Region


class ConflictKind(Enum):
	EXCLUSIVITY_VIOLATION = "exclusivity-violation"
	SUBTYPE_MISMATCH = "subtype-mismatch"
	UNBOUNDED_ESCAPE = "unbounded-escape"
	RECURSIVE_VARIANCE_UNRESOLVED = "recursive-variance-unresolved"


class Verdict(Enum):
	ACCEPTED = "accepted"
	REJECTED = "rejected"


@dataclass
class ConflictReport:
	"""One classified failure with the regions/types involved."""

	kind: ConflictKind
	message: str
	point: Optional[ProgramPoint] = None
	regions: Tuple[Region, ...] = ()
	types: Tuple[TypeArg, ...] = ()
	severity: str = "error"
	span: Span = field(default_factory=Span)
	notes: List[str] = field(default_factory=list)

	def to_diagnostic(self) -> Diagnostic:
		notes = list(self.notes)
		if self.point is not None:
			notes.append(f"at {self.point}")
		if self.types:
			notes.append("types: " + ", ".join(format_type(t) for t in self.types))
		if self.regions:
			notes.append("regions: " + ", ".join(str(r) for r in self.regions))
		phase = "variance" if self.kind is ConflictKind.RECURSIVE_VARIANCE_UNRESOLVED else "regionck"
		return Diagnostic(
			message=self.message,
			code=self.kind.value,
			phase=phase,
			severity=self.severity,
			span=self.span,
			notes=notes,
		)


@dataclass
class FunctionResult:
	"""Ordered reports for one function plus its verdict."""

	name: str
	reports: List[ConflictReport] = field(default_factory=list)
	aborted: bool = False
	error: Optional[MalformedIRError] = None

	@property
	def verdict(self) -> Verdict:
		if self.reports or self.aborted:
			return Verdict.REJECTED
		return Verdict.ACCEPTED

	@property
	def accepted(self) -> bool:
		return self.verdict is Verdict.ACCEPTED

	def kinds(self) -> List[ConflictKind]:
		return [r.kind for r in self.reports]

	def diagnostics(self) -> List[Diagnostic]:
		out = [r.to_diagnostic() for r in self.reports]
		if self.error is not None:
			out.append(
				Diagnostic(
					message=f"analysis of '{self.name}' aborted: {self.error}",
					code="malformed-ir",
					phase="regionck",
					severity="error",
					span=self.error.span,
				)
			)
		return out


__all__ = ["ConflictKind", "Verdict", "ConflictReport", "FunctionResult"]
