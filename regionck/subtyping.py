# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Subtype oracle over resolved types.

`a <: b` means a value of `a` is usable wherever `b` is expected. For
lifetimes that is containment: `'a <: 'b` iff region `'a` contains `'b`, so
`'static` is a subtype of every lifetime. Constructor instances relate
argument-wise according to the constructor's variance vector (invariant
positions require identical arguments); distinct constructors never relate;
callables are contravariant in their parameters and covariant in their
return.

An `Unbounded` lifetime has no region of its own and moulds to whatever is
demanded, even in invariant positions where `'static` would be rejected.

All lifetimes handed to the oracle must be resolved (region or unbounded).
Judgments are memoized for the lifetime of the oracle, i.e. one function
analysis run.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from regionck.core.type_subst import Subst
from regionck.core.types_core import (
	STATIC,
	AppliedType,
	CellType,
	FnType,
	Lifetime,
	RawPtrType,
	RefType,
	TypeArg,
	TypeParam,
	Variance,
	contains_unbounded,
)
from regionck.errors import MalformedIRError
from regionck.regions import Region, RegionArena
from regionck.variance import VarianceTable


class SubtypeJudgment(Enum):
	HOLDS = auto()
	FAILS = auto()


def _ref_inner_variance(exclusive: bool) -> Variance:
	return Variance.INVARIANT if exclusive else Variance.COVARIANT


class SubtypeOracle:
	"""Decides `is_subtype` and computes least/greatest common types."""

	def __init__(self, arena: RegionArena, variances: VarianceTable) -> None:
		self.arena = arena
		self.variances = variances
		self._memo: Dict[Tuple[TypeArg, TypeArg], SubtypeJudgment] = {}

	# Lifetimes ---------------------------------------------------------------------

	def region(self, lt: Lifetime) -> Region:
		if lt.region is None:
			raise MalformedIRError(f"lifetime {lt} reached the subtype oracle unresolved")
		return self.arena.get(lt.region)

	def lifetime(self, region: Region) -> Lifetime:
		return Lifetime.of_region(region.id, str(region))

	def outlives(self, a: Lifetime, b: Lifetime) -> bool:
		"""`a <: b` for lifetimes: region `a` contains region `b`."""
		if a.unbounded or b.unbounded:
			return True
		return self.arena.contains(self.region(a), self.region(b))

	# Judgments ---------------------------------------------------------------------

	def judge(self, a: TypeArg, b: TypeArg) -> SubtypeJudgment:
		key = (a, b)
		cached = self._memo.get(key)
		if cached is None:
			cached = SubtypeJudgment.HOLDS if self._is_subtype(a, b) else SubtypeJudgment.FAILS
			self._memo[key] = cached
		return cached

	def is_subtype(self, a: TypeArg, b: TypeArg) -> bool:
		return self.judge(a, b) is SubtypeJudgment.HOLDS

	def related(self, a: TypeArg, b: TypeArg, variance: Variance) -> bool:
		"""Does `a` stand in for `b` in a position of the given variance?"""
		if variance is Variance.COVARIANT:
			return self.is_subtype(a, b)
		if variance is Variance.CONTRAVARIANT:
			return self.is_subtype(b, a)
		if variance is Variance.INVARIANT:
			return self.identical(a, b)
		return True

	def identical(self, a: TypeArg, b: TypeArg) -> bool:
		"""Structural equality, except that unbounded lifetimes match anything."""
		if isinstance(a, Lifetime) and isinstance(b, Lifetime):
			if a.unbounded or b.unbounded:
				return True
			return self.region(a).id == self.region(b).id
		if isinstance(a, RefType) and isinstance(b, RefType):
			return a.kind is b.kind and self.identical(a.lifetime, b.lifetime) and self.identical(a.inner, b.inner)
		if isinstance(a, RawPtrType) and isinstance(b, RawPtrType):
			return a.exclusive == b.exclusive and self.identical(a.inner, b.inner)
		if isinstance(a, CellType) and isinstance(b, CellType):
			return self.identical(a.inner, b.inner)
		if isinstance(a, AppliedType) and isinstance(b, AppliedType):
			return (
				a.ctor == b.ctor
				and len(a.args) == len(b.args)
				and all(self.identical(x, y) for x, y in zip(a.args, b.args))
			)
		if isinstance(a, FnType) and isinstance(b, FnType):
			return (
				len(a.params) == len(b.params)
				and all(self.identical(x, y) for x, y in zip(a.params, b.params))
				and self.identical(a.ret, b.ret)
			)
		return a == b

	def _is_subtype(self, a: TypeArg, b: TypeArg) -> bool:
		if isinstance(a, Lifetime) and isinstance(b, Lifetime):
			return self.outlives(a, b)
		if isinstance(a, TypeParam) and isinstance(b, TypeParam):
			return a.name == b.name
		if isinstance(a, RefType) and isinstance(b, RefType):
			if a.kind is not b.kind:
				return False
			return self.outlives(a.lifetime, b.lifetime) and self.related(
				a.inner, b.inner, _ref_inner_variance(a.exclusive)
			)
		if isinstance(a, RawPtrType) and isinstance(b, RawPtrType):
			if a.exclusive != b.exclusive:
				return False
			return self.related(a.inner, b.inner, _ref_inner_variance(a.exclusive))
		if isinstance(a, CellType) and isinstance(b, CellType):
			return self.identical(a.inner, b.inner)
		if isinstance(a, AppliedType) and isinstance(b, AppliedType):
			if a.ctor != b.ctor or len(a.args) != len(b.args):
				return False
			if not a.args:
				return True
			vector = self.variances.variance_of(a.ctor)
			if len(vector) != len(a.args):
				raise MalformedIRError(f"{a.ctor} expects {len(vector)} arguments, got {len(a.args)}")
			return all(self.related(x, y, v) for x, y, v in zip(a.args, b.args, vector))
		if isinstance(a, FnType) and isinstance(b, FnType):
			if len(a.params) != len(b.params):
				return False
			return all(self.is_subtype(y, x) for x, y in zip(a.params, b.params)) and self.is_subtype(a.ret, b.ret)
		return False

	# Common types ------------------------------------------------------------------

	def _combine(self, a: TypeArg, b: TypeArg, variance: Variance) -> Optional[TypeArg]:
		if variance is Variance.CONTRAVARIANT:
			return self.glb(a, b)
		if variance is Variance.INVARIANT:
			if not self.identical(a, b):
				return None
			# Prefer the side that still has a concrete region.
			return b if contains_unbounded(a) else a
		return self.lub(a, b)

	def lub(self, a: TypeArg, b: TypeArg) -> Optional[TypeArg]:
		"""
		Least common supertype of `a` and `b`, or None when none exists.

		For lifetimes the common supertype is the region both contain, i.e.
		their intersection; an unbounded lifetime takes the other side.
		"""
		return self._merge(a, b, upper=True)

	def glb(self, a: TypeArg, b: TypeArg) -> Optional[TypeArg]:
		"""Greatest common subtype; lifetimes join to the region containing both."""
		return self._merge(a, b, upper=False)

	def _merge(self, a: TypeArg, b: TypeArg, *, upper: bool) -> Optional[TypeArg]:
		if a == b:
			return a
		dual = Variance.COVARIANT if upper else Variance.CONTRAVARIANT
		if isinstance(a, Lifetime) and isinstance(b, Lifetime):
			if a.unbounded:
				return b
			if b.unbounded:
				return a
			ra, rb = self.region(a), self.region(b)
			merged = self.arena.intersect_intervals(ra, rb) if upper else self.arena.join(ra, rb)
			return self.lifetime(merged)
		if isinstance(a, RefType) and isinstance(b, RefType):
			if a.kind is not b.kind:
				return None
			lt = self._merge(a.lifetime, b.lifetime, upper=upper)
			inner = self._combine(a.inner, b.inner, dual.xform(_ref_inner_variance(a.exclusive)))
			if lt is None or inner is None:
				return None
			return RefType(lt, inner, a.kind)  # type: ignore[arg-type]
		if isinstance(a, RawPtrType) and isinstance(b, RawPtrType):
			if a.exclusive != b.exclusive:
				return None
			inner = self._combine(a.inner, b.inner, dual.xform(_ref_inner_variance(a.exclusive)))
			return None if inner is None else RawPtrType(inner, a.exclusive)  # type: ignore[arg-type]
		if isinstance(a, CellType) and isinstance(b, CellType):
			inner = self._combine(a.inner, b.inner, Variance.INVARIANT)
			return None if inner is None else CellType(inner)  # type: ignore[arg-type]
		if isinstance(a, AppliedType) and isinstance(b, AppliedType):
			if a.ctor != b.ctor or len(a.args) != len(b.args):
				return None
			vector = self.variances.variance_of(a.ctor)
			args: List[TypeArg] = []
			for x, y, v in zip(a.args, b.args, vector):
				merged_arg = self._combine(x, y, dual.xform(v))
				if merged_arg is None:
					return None
				args.append(merged_arg)
			return AppliedType(a.ctor, tuple(args))
		if isinstance(a, FnType) and isinstance(b, FnType):
			if len(a.params) != len(b.params):
				return None
			params = [self._merge(x, y, upper=not upper) for x, y in zip(a.params, b.params)]
			ret = self._merge(a.ret, b.ret, upper=upper)
			if ret is None or any(p is None for p in params):
				return None
			return FnType(tuple(params), ret)  # type: ignore[arg-type]
		return None

	# Instantiation -----------------------------------------------------------------

	def _collect(
		self,
		param: TypeArg,
		arg: TypeArg,
		polarity: Variance,
		generics: Mapping[str, bool],
		out: Dict[str, List[Tuple[Variance, TypeArg]]],
	) -> None:
		"""Match a declared parameter type against an argument type."""
		if polarity is Variance.BIVARIANT:
			return
		if isinstance(param, Lifetime):
			if not param.is_resolved and param.name in generics and isinstance(arg, Lifetime):
				out.setdefault(param.name, []).append((polarity, arg))
			return
		if isinstance(param, TypeParam):
			if param.name in generics and not isinstance(arg, Lifetime):
				out.setdefault(param.name, []).append((polarity, arg))
			return
		if isinstance(param, RefType) and isinstance(arg, RefType) and param.kind is arg.kind:
			self._collect(param.lifetime, arg.lifetime, polarity, generics, out)
			self._collect(param.inner, arg.inner, polarity.xform(_ref_inner_variance(param.exclusive)), generics, out)
		elif isinstance(param, RawPtrType) and isinstance(arg, RawPtrType) and param.exclusive == arg.exclusive:
			self._collect(param.inner, arg.inner, polarity.xform(_ref_inner_variance(param.exclusive)), generics, out)
		elif isinstance(param, CellType) and isinstance(arg, CellType):
			self._collect(param.inner, arg.inner, Variance.INVARIANT, generics, out)
		elif isinstance(param, AppliedType) and isinstance(arg, AppliedType):
			if param.ctor != arg.ctor or len(param.args) != len(arg.args) or not param.args:
				return
			for p, a, v in zip(param.args, arg.args, self.variances.variance_of(param.ctor)):
				self._collect(p, a, polarity.xform(v), generics, out)
		elif isinstance(param, FnType) and isinstance(arg, FnType) and len(param.params) == len(arg.params):
			for p, a in zip(param.params, arg.params):
				self._collect(p, a, polarity.flip(), generics, out)
			self._collect(param.ret, arg.ret, polarity, generics, out)

	def _solve(self, candidates: Sequence[Tuple[Variance, TypeArg]]) -> Optional[TypeArg]:
		exact = [ty for pol, ty in candidates if pol is Variance.INVARIANT]
		if exact:
			# An unbounded candidate matches anything; a bounded one pins the generic.
			bounded = [ty for ty in exact if not contains_unbounded(ty)]
			return bounded[0] if bounded else exact[0]
		result: Optional[TypeArg] = None
		for want in (Variance.COVARIANT, Variance.CONTRAVARIANT):
			for pol, ty in candidates:
				if pol is not want:
					continue
				if result is None:
					result = ty
					continue
				merged = self.lub(result, ty) if want is Variance.COVARIANT else self.glb(result, ty)
				if merged is not None:
					result = merged
			if result is not None:
				return result
		return result

	def instantiate(
		self,
		lifetime_params: Sequence[str],
		type_params: Sequence[str],
		pairs: Sequence[Tuple[TypeArg, Optional[TypeArg]]],
		*,
		static: Lifetime,
		free: Optional[Lifetime] = None,
	) -> Subst:
		"""
		Infer generic arguments from (declared, actual) type pairs.

		Candidates are gathered per generic with the polarity of the position
		they were found in: an invariant candidate is taken as is, covariant
		candidates merge with `lub`, contravariant ones with `glb`. Lifetimes
		without any candidate become `free` (unbounded by default); type
		parameters without one are left out of the substitution.
		"""
		generics: Dict[str, bool] = {name: True for name in lifetime_params}
		generics.update({name: False for name in type_params})
		found: Dict[str, List[Tuple[Variance, TypeArg]]] = {}
		for declared, actual in pairs:
			if actual is not None:
				self._collect(declared, actual, Variance.COVARIANT, generics, found)
		args: Dict[str, TypeArg] = {STATIC: static}
		for name in lifetime_params:
			solved = self._solve(found.get(name, ()))
			if solved is None:
				solved = free if free is not None else Lifetime.make_unbounded()
			args[name] = solved
		for name in type_params:
			solved = self._solve(found.get(name, ()))
			if solved is not None:
				args[name] = solved
		return Subst(args)


__all__ = ["SubtypeJudgment", "SubtypeOracle"]
