# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Variance inference for generic type constructors.

Every parameter (type or lifetime) of every declared constructor gets a
variance from how it is used in the constructor's fields:

- a direct field position is covariant;
- the referent and the lifetime of a shared reference are covariant;
- the referent of an exclusive reference, the target of `*mut`, and the
  content of `Cell` are invariant;
- callable parameters flip the polarity, callable returns keep it;
- a nested application composes with the nested constructor's variance.

Uses are joined on the lattice BIVARIANT < COVARIANT, CONTRAVARIANT <
INVARIANT, so any disagreement (or any invariant use) yields INVARIANT.
Recursive and mutually recursive declarations are solved by a monotone
round-based fixed point that starts every parameter at BIVARIANT; a
parameter that is never used ends up COVARIANT.

The results live in a `VarianceTable` with an explicit lifecycle: declare
every constructor during loading, `freeze()` once, then read.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Tuple

from regionck.core.types_core import (
	STATIC,
	AppliedType,
	CellType,
	FnType,
	Lifetime,
	RawPtrType,
	RefType,
	TypeArg,
	TypeConstructor,
	TypeParam,
	Variance,
)
from regionck.errors import MalformedIRError, RecursiveVarianceUnresolved, TableStateError

VarianceVector = Tuple[Variance, ...]

DEFAULT_MAX_ROUNDS = 64


def _check_decl(decl: TypeConstructor, decls: Mapping[str, TypeConstructor]) -> None:
	"""Reject declarations that refer to unknown names or misuse arities."""
	seen: set[str] = set()
	for param in decl.params:
		if param.name in seen:
			raise MalformedIRError(f"duplicate parameter {param.name} in {decl.name}", span=decl.span)
		if param.is_lifetime != param.name.startswith("'"):
			raise MalformedIRError(f"parameter {param.name} of {decl.name} has the wrong kind", span=decl.span)
		seen.add(param.name)

	def _walk(ty: TypeArg) -> None:
		if isinstance(ty, Lifetime):
			if ty.name != STATIC and ty.name not in decl.lifetime_params:
				raise MalformedIRError(f"{decl.name} uses undeclared lifetime {ty.name}", span=decl.span)
		elif isinstance(ty, TypeParam):
			if ty.name not in decl.type_params:
				raise MalformedIRError(f"{decl.name} uses undeclared type parameter {ty.name}", span=decl.span)
		elif isinstance(ty, RefType):
			_walk(ty.lifetime)
			_walk(ty.inner)
		elif isinstance(ty, (RawPtrType, CellType)):
			_walk(ty.inner)
		elif isinstance(ty, FnType):
			for p in ty.params:
				_walk(p)
			_walk(ty.ret)
		elif isinstance(ty, AppliedType):
			target = decls.get(ty.ctor)
			if target is None:
				if ty.args:
					raise MalformedIRError(f"{decl.name} uses unknown constructor {ty.ctor}", span=decl.span)
				return
			if len(ty.args) != len(target.params):
				raise MalformedIRError(
					f"{ty.ctor} expects {len(target.params)} arguments, {decl.name} passes {len(ty.args)}",
					span=decl.span,
				)
			for param, arg in zip(target.params, ty.args):
				if param.is_lifetime != isinstance(arg, Lifetime):
					raise MalformedIRError(f"argument for {param.name} of {ty.ctor} has the wrong kind", span=decl.span)
				_walk(arg)

	for fld in decl.fields:
		_walk(fld.ty)


def _contributions(
	ty: TypeArg,
	polarity: Variance,
	decl: TypeConstructor,
	current: Mapping[str, List[Variance]],
	out: List[Variance],
) -> None:
	"""Join into `out` the use of `decl`'s parameters inside `ty` at `polarity`."""
	if polarity is Variance.BIVARIANT:
		return
	if isinstance(ty, (Lifetime, TypeParam)):
		idx = decl.param_index(ty.name)
		if idx is not None:
			out[idx] = out[idx].join(polarity)
	elif isinstance(ty, RefType):
		_contributions(ty.lifetime, polarity, decl, current, out)
		inner = Variance.INVARIANT if ty.exclusive else Variance.COVARIANT
		_contributions(ty.inner, polarity.xform(inner), decl, current, out)
	elif isinstance(ty, RawPtrType):
		inner = Variance.INVARIANT if ty.exclusive else Variance.COVARIANT
		_contributions(ty.inner, polarity.xform(inner), decl, current, out)
	elif isinstance(ty, CellType):
		_contributions(ty.inner, Variance.INVARIANT, decl, current, out)
	elif isinstance(ty, FnType):
		for param in ty.params:
			_contributions(param, polarity.flip(), decl, current, out)
		_contributions(ty.ret, polarity, decl, current, out)
	elif isinstance(ty, AppliedType):
		vector = current.get(ty.ctor)
		if vector is None:
			return
		for arg, var in zip(ty.args, vector):
			_contributions(arg, polarity.xform(var), decl, current, out)


def compute_variances(
	decls: Mapping[str, TypeConstructor],
	*,
	max_rounds: int = DEFAULT_MAX_ROUNDS,
) -> Dict[str, VarianceVector]:
	"""
	Compute the variance vector of every constructor in `decls`.

	Pure and deterministic: the same declarations always give the same
	vectors. Raises `RecursiveVarianceUnresolved` when the fixed point is not
	confirmed within `max_rounds` rounds and `MalformedIRError` for
	ill-formed declarations.
	"""
	for decl in decls.values():
		_check_decl(decl, decls)

	current: Dict[str, List[Variance]] = {
		name: [Variance.BIVARIANT] * len(decl.params) for name, decl in decls.items()
	}
	changed: List[str] = list(decls)
	for _ in range(max_rounds):
		changed = []
		for name, decl in decls.items():
			found = [Variance.BIVARIANT] * len(decl.params)
			for fld in decl.fields:
				_contributions(fld.ty, Variance.COVARIANT, decl, current, found)
			merged = [old.join(new) for old, new in zip(current[name], found)]
			if merged != current[name]:
				current[name] = merged
				changed.append(name)
		if not changed:
			break
	else:
		if changed:
			raise RecursiveVarianceUnresolved(changed, max_rounds)

	return {
		name: tuple(Variance.COVARIANT if v is Variance.BIVARIANT else v for v in vector)
		for name, vector in current.items()
	}


class VarianceTable:
	"""
	Process-wide constructor table with a declare -> freeze -> read lifecycle.

	Declarations are immutable once declared; vectors are computed exactly
	once at `freeze()` and are read-only afterwards, so functions can be
	analysed against the table without any locking.
	"""

	def __init__(self, *, max_rounds: int = DEFAULT_MAX_ROUNDS) -> None:
		self.max_rounds = max_rounds
		self._decls: Dict[str, TypeConstructor] = {}
		self._vectors: Optional[Dict[str, VarianceVector]] = None

	@property
	def frozen(self) -> bool:
		return self._vectors is not None

	def declare(self, decl: TypeConstructor) -> None:
		if self.frozen:
			raise TableStateError(f"cannot declare {decl.name}: variance table is frozen")
		if decl.name in self._decls:
			raise MalformedIRError(f"duplicate type constructor {decl.name}", span=decl.span)
		self._decls[decl.name] = decl

	def freeze(self) -> "VarianceTable":
		"""Compute every vector. On failure the table stays unfrozen."""
		if not self.frozen:
			self._vectors = compute_variances(self._decls, max_rounds=self.max_rounds)
		return self

	def __contains__(self, name: object) -> bool:
		return name in self._decls

	@property
	def constructors(self) -> Mapping[str, TypeConstructor]:
		return dict(self._decls)

	def constructor(self, name: str) -> TypeConstructor:
		decl = self._decls.get(name)
		if decl is None:
			raise MalformedIRError(f"unknown type constructor {name}")
		return decl

	def variance_of(self, name: str) -> VarianceVector:
		if self._vectors is None:
			raise TableStateError("variance table read before freeze()")
		vector = self._vectors.get(name)
		if vector is None:
			raise MalformedIRError(f"unknown type constructor {name}")
		return vector


__all__ = ["VarianceVector", "DEFAULT_MAX_ROUNDS", "compute_variances", "VarianceTable"]
