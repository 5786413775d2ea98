#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Borrow-checker scaffolding: place representation and per-location state.

This models the "where" of values (locals + projections) and the borrow
state of one storage location. It carries no policy of its own; the pass in
`borrow_checker_pass` decides when to acquire and release.
  * Which storage does a place name, and do two places overlap?
  * Given the loans live on a location, may a new borrow be taken?
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterable, Optional, Tuple

from regionck.core.types_core import BorrowKind


class IndexKind(Enum):
	"""Coarse-grained index classification to keep Place hashable."""

	ANY = auto()       # Unknown / non-constant index; conservatively overlaps.
	CONST = auto()     # Known constant index.


@dataclass(frozen=True)
class FieldProj:
	"""Field access projection (e.g., `.name`)."""

	name: str


@dataclass(frozen=True)
class IndexProj:
	"""Index projection (e.g., `[0]`, or `[?]` for an unknown index)."""

	kind: IndexKind
	value: Optional[int] = None


@dataclass(frozen=True)
class DerefProj:
	"""
	Dereference projection (`*p`).

	The place `*p` is `Place(base="p", projections=(DerefProj(),))`, so
	`(*p).field` composes naturally.
	"""

	pass


Projection = FieldProj | IndexProj | DerefProj


@dataclass(frozen=True)
class Place:
	"""
	A borrowable storage location.

	`base` is a local or parameter name. `projections` capture field/index/
	deref steps, so `(*r).items[0]` is base `r` with `*`, `.items`, `[0]`.
	"""

	base: str
	projections: Tuple[Projection, ...] = field(default_factory=tuple)

	def with_projection(self, proj: Projection) -> "Place":
		"""Return a new Place with an additional projection appended."""
		return Place(self.base, self.projections + (proj,))

	@property
	def is_local(self) -> bool:
		"""True for a bare binding with no projections."""
		return not self.projections

	@property
	def has_deref(self) -> bool:
		return any(isinstance(p, DerefProj) for p in self.projections)

	def __str__(self) -> str:
		text = self.base
		for idx, proj in enumerate(self.projections):
			if isinstance(proj, FieldProj):
				text = f"{text}.{proj.name}"
			elif isinstance(proj, IndexProj):
				text = f"{text}[{proj.value if proj.kind is IndexKind.CONST else '?'}]"
			else:
				text = f"*{text}" if idx == len(self.projections) - 1 else f"(*{text})"
		return text


def places_overlap(a: Place, b: Place) -> bool:
	"""
	Return True when two places may refer to overlapping storage.

	Rules:
	- Different bases never overlap.
	- Prefix overlap counts: `x` overlaps `x.field` and `x[0]`.
	- Field projections are disjoint when the field names differ.
	- Index projections: CONST vs CONST are disjoint when the indices differ;
	  ANY overlaps everything.
	- Any projection-kind mismatch at the same depth is treated as overlapping.
	"""
	if a.base != b.base:
		return False

	ap = a.projections
	bp = b.projections
	for idx in range(min(len(ap), len(bp))):
		pa = ap[idx]
		pb = bp[idx]
		if pa == pb:
			continue
		if isinstance(pa, FieldProj) and isinstance(pb, FieldProj):
			return False
		if isinstance(pa, IndexProj) and isinstance(pb, IndexProj):
			if pa.kind is IndexKind.CONST and pb.kind is IndexKind.CONST:
				return False
			return True
		return True

	# One place is a prefix of the other (or identical).
	return True


class BorrowState(Enum):
	"""Borrow state of a single storage location."""

	UNBORROWED = auto()
	SHARED_BORROWED = auto()
	EXCLUSIVE_BORROWED = auto()


@dataclass
class LocationState:
	"""
	State machine for one storage location.

	UNBORROWED -> SHARED_BORROWED(1) on a shared borrow, SHARED_BORROWED(n) ->
	SHARED_BORROWED(n+1) on another, back down on each release; UNBORROWED ->
	EXCLUSIVE_BORROWED on an exclusive borrow and back on its release. Any
	transition that needs UNBORROWED (or needs the absence of an exclusive
	borrow) and does not see it is refused.
	"""

	place: Place
	shared: int = 0
	exclusive: bool = False

	@classmethod
	def from_loans(cls, place: Place, kinds: Iterable[BorrowKind]) -> "LocationState":
		"""Rebuild the state from the kinds of the loans live on `place`."""
		state = cls(place)
		for kind in kinds:
			if kind is BorrowKind.EXCLUSIVE:
				state.exclusive = True
			else:
				state.shared += 1
		return state

	@property
	def state(self) -> BorrowState:
		if self.exclusive:
			return BorrowState.EXCLUSIVE_BORROWED
		if self.shared:
			return BorrowState.SHARED_BORROWED
		return BorrowState.UNBORROWED

	def can_acquire(self, kind: BorrowKind) -> bool:
		if kind is BorrowKind.SHARED:
			return not self.exclusive
		return self.state is BorrowState.UNBORROWED

	def acquire(self, kind: BorrowKind) -> bool:
		"""Apply a borrow; returns False (state unchanged) when it conflicts."""
		if not self.can_acquire(kind):
			return False
		if kind is BorrowKind.SHARED:
			self.shared += 1
		else:
			self.exclusive = True
		return True

	def release(self, kind: BorrowKind) -> None:
		"""Last use of one borrow of `kind`."""
		if kind is BorrowKind.SHARED:
			if self.shared:
				self.shared -= 1
		else:
			self.exclusive = False


__all__ = [
	"IndexKind",
	"FieldProj",
	"IndexProj",
	"DerefProj",
	"Projection",
	"Place",
	"places_overlap",
	"BorrowState",
	"LocationState",
]
