# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Exceptions raised by the analysis passes.

Conflicts found in well-formed input are never exceptions; they are
`ConflictReport` values. Exceptions cover broken preconditions: malformed IR,
declaration tables used outside their lifecycle, and variance inference
that fails to settle.
"""

from __future__ import annotations

from typing import Sequence

from regionck.core.span import Span


class RegionckError(Exception):
	"""Base class for every regionck exception."""


class MalformedIRError(RegionckError, ValueError):
	"""
	The IR handed over by the elaborator violates a precondition
	(dangling block/region references, arity mismatches, unknown names).

	Carries a best-effort span so the driver can report it once and move on
	to the next function.
	"""

	def __init__(self, message: str, *, span: Span | None = None) -> None:
		super().__init__(message)
		self.span = span or Span()


class RecursiveVarianceUnresolved(RegionckError):
	"""Variance inference did not reach a fixed point within the round limit."""

	def __init__(self, ctors: Sequence[str], rounds: int) -> None:
		names = ", ".join(sorted(ctors))
		super().__init__(f"variance of {names} did not converge after {rounds} rounds")
		self.ctors = tuple(sorted(ctors))
		self.rounds = rounds


class TableStateError(RegionckError, RuntimeError):
	"""A declaration table was written after freezing or read before it."""


class IRSyntaxError(RegionckError, ValueError):
	"""Textual IR (types or statements) failed to parse."""

	def __init__(self, message: str, *, text: str, column: int | None = None) -> None:
		super().__init__(message)
		self.text = text
		self.column = column


__all__ = [
	"RegionckError",
	"MalformedIRError",
	"RecursiveVarianceUnresolved",
	"TableStateError",
	"IRSyntaxError",
]
