# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Unbounded-lifetime detector.

A reference is unbounded when nothing ties its creation to a region: it was
produced by dereferencing an address-only value (`*raw p`) or by type
punning (`cast<T> v`). Such values carry the `Unbounded` lifetime instead
of a region. The subtype oracle lets them mould to any demand, which is
exactly why letting one leave the function is flagged.

A value stops being unbounded once it is narrowed: stored into a binding
with a declared type, or passed through a callee lifetime that also binds a
bounded argument. Copies into inferred bindings keep the tag.

The detector also owns the signature rule: every lifetime in the return
type must be `'static` or traceable to an input lifetime (directly or via
declared outlives bounds), unless the function only ever returns values it
owns outright.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Set, Tuple

from regionck.conflicts import ConflictKind, ConflictReport
from regionck.core.span import ProgramPoint, Span
from regionck.core.types_core import (
	STATIC,
	BorrowKind,
	Lifetime,
	RawPtrType,
	RefType,
	Type,
	TypeArg,
	contains_unbounded,
	format_type,
	iter_lifetimes,
	map_lifetimes,
)
from regionck.errors import MalformedIRError


def tag_unbounded(ty: TypeArg) -> TypeArg:
	"""Replace every lifetime in `ty` with `Unbounded`."""
	return map_lifetimes(ty, lambda _lt: Lifetime.make_unbounded())


def raw_deref_type(pointer: Optional[TypeArg], kind: BorrowKind, *, span: Span | None = None) -> Optional[RefType]:
	"""Type of `*raw p`: a reference with no region to the pointee."""
	if pointer is None:
		return None
	if not isinstance(pointer, RawPtrType):
		raise MalformedIRError(f"raw dereference of non-pointer type {format_type(pointer)}", span=span)
	if kind is BorrowKind.EXCLUSIVE and not pointer.exclusive:
		raise MalformedIRError("exclusive raw dereference of a *const pointer", span=span)
	return RefType(Lifetime.make_unbounded(), pointer.inner, kind)


def reinterpret_type(ty: TypeArg) -> TypeArg:
	"""Type punning yields the target type with no provenance at all."""
	return tag_unbounded(ty)


def untraceable_outputs(ret: Type, inputs: Iterable[str], outlives: Sequence[Tuple[str, str]]) -> List[str]:
	"""
	Output lifetimes of a signature that are neither `'static` nor related
	to an input lifetime through declared outlives bounds.
	"""
	related: Set[str] = set(inputs) | {STATIC}
	changed = True
	while changed:
		changed = False
		for longer, shorter in outlives:
			if (longer in related) != (shorter in related):
				related.update((longer, shorter))
				changed = True
	out: List[str] = []
	for lt in iter_lifetimes(ret):
		if lt.is_resolved or lt.name in related or lt.name in out:
			continue
		out.append(lt.name)
	return out


class UnboundedDetector:
	"""Turns unbounded values and untraceable outputs into reports."""

	def __init__(self, severity: str = "warning") -> None:
		self.severity = severity

	def check_return(self, value: Optional[TypeArg], *, point: ProgramPoint, span: Span) -> Optional[ConflictReport]:
		if not contains_unbounded(value):
			return None
		return ConflictReport(
			kind=ConflictKind.UNBOUNDED_ESCAPE,
			message=f"value of type {format_type(value)} with an unbounded lifetime escapes through return",
			point=point,
			types=(value,),  # type: ignore[arg-type]
			severity=self.severity,
			span=span,
			notes=["narrow it first: store it in a binding with a declared type or tie it to an input lifetime"],
		)

	def check_signature(
		self,
		fn_name: str,
		ret: Type,
		inputs: Iterable[str],
		outlives: Sequence[Tuple[str, str]],
		*,
		owned_return: bool,
		point: ProgramPoint,
		span: Span,
	) -> Optional[ConflictReport]:
		bad = untraceable_outputs(ret, inputs, outlives)
		if not bad:
			return None
		if owned_return and not isinstance(ret, RefType):
			# Ownership transfer: nothing borrowed leaves the function.
			return None
		names = ", ".join(bad)
		return ConflictReport(
			kind=ConflictKind.UNBOUNDED_ESCAPE,
			message=f"return type of '{fn_name}' uses lifetime {names} not bounded by any input lifetime or 'static",
			point=point,
			types=(ret,),
			severity="error",
			span=span,
		)


__all__ = [
	"tag_unbounded",
	"raw_deref_type",
	"reinterpret_type",
	"untraceable_outputs",
	"UnboundedDetector",
]
