# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Generic substitution, lifetime resolution and signature elision."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple

from regionck.core.span import Span
from regionck.core.types_core import (
	INFERRED,
	STATIC,
	AppliedType,
	CellType,
	FnType,
	Lifetime,
	RawPtrType,
	RefType,
	Type,
	TypeArg,
	TypeParam,
	iter_lifetimes,
	map_lifetimes,
)
from regionck.errors import MalformedIRError


@dataclass(frozen=True)
class Subst:
	"""Name-keyed substitution for the generics of one declaration."""

	args: Mapping[str, TypeArg] = field(default_factory=dict)


def apply_subst(ty: TypeArg, subst: Subst) -> TypeArg:
	"""Replace type parameters and unresolved named lifetimes found in `subst`."""
	if isinstance(ty, Lifetime):
		if ty.is_resolved:
			return ty
		repl = subst.args.get(ty.name)
		return repl if isinstance(repl, Lifetime) else ty
	if isinstance(ty, TypeParam):
		repl = subst.args.get(ty.name)
		if repl is None or isinstance(repl, Lifetime):
			return ty
		return repl
	if isinstance(ty, RefType):
		return RefType(apply_subst(ty.lifetime, subst), apply_subst(ty.inner, subst), ty.kind)  # type: ignore[arg-type]
	if isinstance(ty, RawPtrType):
		return RawPtrType(apply_subst(ty.inner, subst), ty.exclusive)  # type: ignore[arg-type]
	if isinstance(ty, CellType):
		return CellType(apply_subst(ty.inner, subst))  # type: ignore[arg-type]
	if isinstance(ty, AppliedType):
		if not ty.args:
			return ty
		return AppliedType(ty.ctor, tuple(apply_subst(a, subst) for a in ty.args))
	if isinstance(ty, FnType):
		return FnType(
			tuple(apply_subst(p, subst) for p in ty.params),  # type: ignore[misc]
			apply_subst(ty.ret, subst),  # type: ignore[arg-type]
		)
	return ty


def resolve_lifetimes(
	ty: TypeArg,
	env: Mapping[str, Lifetime],
	*,
	allow_inferred: bool = False,
	span: Span | None = None,
) -> TypeArg:
	"""
	Bind every named lifetime of a declared type to its resolved form.

	`'_` holes survive only when `allow_inferred` is set (local bindings whose
	lifetimes come from their values). Unknown names are malformed IR.
	"""

	def _bind(lt: Lifetime) -> Lifetime:
		if lt.is_resolved:
			return lt
		if lt.name == INFERRED:
			if allow_inferred:
				return lt
			raise MalformedIRError("elided lifetime '_ is not allowed here", span=span)
		resolved = env.get(lt.name)
		if resolved is None:
			raise MalformedIRError(f"use of undeclared lifetime {lt.name}", span=span)
		return resolved

	return map_lifetimes(ty, _bind)


@dataclass(frozen=True)
class ElidedSignature:
	"""
	A function signature after lifetime elision.

	`lifetime_params` includes the fresh names minted for elided input
	lifetimes. `free_outputs` lists output lifetimes that elision could not
	tie to any input; the checker reports them as unbounded outputs.
	"""

	lifetime_params: Tuple[str, ...]
	param_types: Tuple[Type, ...]
	ret: Type
	free_outputs: Tuple[str, ...] = ()


_FREE_OUTPUT = "'_out"


def elide_signature(lifetime_params: Tuple[str, ...], param_types: Tuple[Type, ...], ret: Type) -> ElidedSignature:
	"""
	Apply the elision rules to a signature.

	Every `'_` in an input gets a fresh parameter (`'_0`, `'_1`, ...). A `'_`
	in the output binds to the single input lifetime when exactly one exists;
	otherwise it becomes a free output lifetime.
	"""
	names: List[str] = list(lifetime_params)
	counter = [0]

	def _fresh(lt: Lifetime) -> Lifetime:
		if lt.is_inferred:
			name = f"'_{counter[0]}"
			counter[0] += 1
			names.append(name)
			return Lifetime.named(name)
		return lt

	params = tuple(map_lifetimes(p, _fresh) for p in param_types)  # type: ignore[misc]
	input_names: List[str] = []
	for p in params:
		for lt in iter_lifetimes(p):
			if not lt.is_resolved and lt.name != STATIC and lt.name not in input_names:
				input_names.append(lt.name)

	free: List[str] = []
	target: Optional[str] = input_names[0] if len(input_names) == 1 else None

	def _output(lt: Lifetime) -> Lifetime:
		if not lt.is_inferred:
			return lt
		if target is not None:
			return Lifetime.named(target)
		if _FREE_OUTPUT not in free:
			free.append(_FREE_OUTPUT)
		return Lifetime.named(_FREE_OUTPUT)

	ret_ty = map_lifetimes(ret, _output)
	if free:
		names.append(_FREE_OUTPUT)
	return ElidedSignature(tuple(names), params, ret_ty, tuple(free))  # type: ignore[arg-type]


__all__ = ["Subst", "apply_subst", "resolve_lifetimes", "ElidedSignature", "elide_signature"]
