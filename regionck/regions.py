# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Region model: a containment lattice over program points.

Regions live in a per-run arena and are addressed by integer id. Points are
the linear indices handed out by `liveness.PointMap`; a region is a set of
disjoint inclusive point intervals (gaps allowed) plus an optional parent.

Three flavours share the arena:
  * STATIC: the process-wide region; contains every region.
  * PARAM: a universally quantified lifetime of the analysed function. It
    outlives the whole body, so it contains every interval region; two
    parameters contain each other only through declared `'a: 'b` bounds.
  * SCOPE / INFERRED: interval regions for lexical scopes and inferred
    borrows. They are interned on their interval set, so two equal regions
    are always the same id.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterable, List, Optional, Set, Tuple

from regionck.errors import MalformedIRError

Interval = Tuple[int, int]  # inclusive [lo, hi]


class RegionKind(Enum):
	STATIC = auto()
	PARAM = auto()
	SCOPE = auto()
	INFERRED = auto()


@dataclass(frozen=True)
class Region:
	"""An arena entry. Compare regions by `id`; the arena guarantees identity."""

	id: int
	kind: RegionKind
	intervals: Tuple[Interval, ...] = ()
	parent: Optional[int] = None
	name: str = ""

	@property
	def is_interval(self) -> bool:
		return self.kind in (RegionKind.SCOPE, RegionKind.INFERRED)

	def points(self) -> Set[int]:
		out: Set[int] = set()
		for lo, hi in self.intervals:
			out.update(range(lo, hi + 1))
		return out

	def __str__(self) -> str:
		if self.name:
			return self.name
		if self.kind is RegionKind.STATIC:
			return "'static"
		spans = ", ".join(f"{lo}..{hi}" if lo != hi else f"{lo}" for lo, hi in self.intervals)
		return f"'r{self.id}{{{spans}}}"


def intervals_from_points(points: Iterable[int]) -> Tuple[Interval, ...]:
	"""Coalesce a point set into sorted, maximal, disjoint intervals."""
	out: List[Interval] = []
	for p in sorted(set(points)):
		if out and out[-1][1] + 1 == p:
			out[-1] = (out[-1][0], p)
		else:
			out.append((p, p))
	return tuple(out)


def _interval_within(inner: Interval, outer: Tuple[Interval, ...]) -> bool:
	return any(lo <= inner[0] and inner[1] <= hi for lo, hi in outer)


class RegionArena:
	"""
	Per-analysis-run region store.

	Every region created here is inert once the run ends; ids are never
	reused within an arena.
	"""

	def __init__(self) -> None:
		self._regions: List[Region] = []
		self._interned: Dict[Tuple[Interval, ...], int] = {}
		self._outlives: Dict[int, Set[int]] = {}
		self.static = self._push(RegionKind.STATIC, (), None, "'static")
		self.empty = self._intern((), None, RegionKind.INFERRED)
		self.body: Optional[Region] = None

	def _push(self, kind: RegionKind, intervals: Tuple[Interval, ...], parent: Optional[int], name: str = "") -> Region:
		region = Region(id=len(self._regions), kind=kind, intervals=intervals, parent=parent, name=name)
		self._regions.append(region)
		return region

	def _intern(self, intervals: Tuple[Interval, ...], parent: Optional[int], kind: RegionKind) -> Region:
		existing = self._interned.get(intervals)
		if existing is not None:
			return self._regions[existing]
		region = self._push(kind, intervals, parent)
		self._interned[intervals] = region.id
		return region

	def get(self, rid: int) -> Region:
		try:
			return self._regions[rid]
		except IndexError:
			raise MalformedIRError(f"dangling region reference 'r{rid}") from None

	def __len__(self) -> int:
		return len(self._regions)

	# Construction -----------------------------------------------------------------

	def new_region(self, parent: Optional[Region], points: Iterable[int] = ()) -> Region:
		"""
		Region for a lexical scope, loop or branch entered during analysis.

		The parent must contain the new region; points outside the parent are
		clipped so the nesting invariant holds by construction.
		"""
		pts = set(points)
		if parent is not None and parent.is_interval:
			pts &= parent.points()
		return self._intern(intervals_from_points(pts), parent.id if parent is not None else None, RegionKind.SCOPE)

	def set_body(self, points: Iterable[int]) -> Region:
		"""Root scope of the analysed function: every body point."""
		self.body = self.new_region(None, points)
		return self.body

	def from_points(self, points: Iterable[int], parent: Optional[Region] = None) -> Region:
		"""Interned inferred region covering exactly `points`."""
		return self._intern(intervals_from_points(points), parent.id if parent is not None else None, RegionKind.INFERRED)

	def new_param(self, name: str) -> Region:
		"""A universally quantified lifetime parameter of the analysed function."""
		return self._push(RegionKind.PARAM, (), None, name)

	def add_outlives(self, longer: Region, shorter: Region) -> None:
		"""Record a declared bound `longer: shorter` between two parameters."""
		self._outlives.setdefault(longer.id, set()).add(shorter.id)

	# Queries ----------------------------------------------------------------------

	def _declared_outlives(self, longer: int, shorter: int) -> bool:
		seen: Set[int] = set()
		stack = [longer]
		while stack:
			rid = stack.pop()
			if rid == shorter:
				return True
			if rid in seen:
				continue
			seen.add(rid)
			stack.extend(self._outlives.get(rid, ()))
		return False

	def _is_ancestor(self, a: Region, b: Region) -> bool:
		cur = b.parent
		while cur is not None:
			if cur == a.id:
				return True
			cur = self._regions[cur].parent
		return False

	def contains(self, a: Region, b: Region) -> bool:
		"""
		True iff `a` contains `b` (written a:b): every point of `b` is in `a`.

		Reflexive, transitive and, thanks to interning, antisymmetric.
		"""
		if a.id == b.id or a.kind is RegionKind.STATIC:
			return True
		if b.kind is RegionKind.STATIC:
			return False
		if b.kind is RegionKind.PARAM:
			return a.kind is RegionKind.PARAM and self._declared_outlives(a.id, b.id)
		if a.kind is RegionKind.PARAM:
			return True
		if not b.intervals or self._is_ancestor(a, b):
			return True
		return all(_interval_within(iv, a.intervals) for iv in b.intervals)

	def covers(self, region: Region, point: int) -> bool:
		"""Is `point` inside `region`? Non-interval regions cover the whole body."""
		if not region.is_interval:
			return True
		return _interval_within((point, point), region.intervals)

	# Lattice operations -----------------------------------------------------------

	def intersect_intervals(self, a: Region, b: Region) -> Region:
		"""Largest region contained in both `a` and `b`."""
		if self.contains(a, b):
			return b
		if self.contains(b, a):
			return a
		if not a.is_interval and not b.is_interval:
			# Two unrelated parameters only both hold inside the body.
			return self.body if self.body is not None else self.empty
		return self.from_points(a.points() & b.points())

	def split(self, region: Region, gap_points: Iterable[int]) -> Region:
		"""`region` with the gap removed; models a pause in a borrow's life."""
		if not region.is_interval:
			return region
		gaps = set(gap_points)
		if not gaps:
			return region
		return self.from_points(region.points() - gaps, self.get(region.parent) if region.parent is not None else None)

	def join(self, a: Region, b: Region) -> Region:
		"""
		Smallest region containing both `a` and `b`.

		Interval regions join by point union; a parameter absorbs any interval
		region; two unrelated parameters only share the static region.
		"""
		if self.contains(a, b):
			return a
		if self.contains(b, a):
			return b
		if a.is_interval and b.is_interval:
			return self.from_points(a.points() | b.points())
		return self.static


__all__ = ["Interval", "RegionKind", "Region", "RegionArena", "intervals_from_points"]
