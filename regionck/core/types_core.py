# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Resolved types, lifetimes and the variance lattice.

Types form a closed sum: `TypeParam`, `AppliedType`, `RefType`,
`RawPtrType`, `CellType` and `FnType`. Lifetimes are a separate leaf kind
because constructor arguments may be either. Everything here is frozen and
hashable so the subtype oracle can memoize on (left, right) pairs.

Bare names (`Int`, `Str`) are zero-argument `AppliedType`s; there is no
separate scalar kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Iterator, Optional, Tuple

from .span import Span


STATIC = "'static"
INFERRED = "'_"


class BorrowKind(Enum):
	"""Reference flavours: shared (`&`) and exclusive (`&mut`)."""

	SHARED = auto()
	EXCLUSIVE = auto()


class Variance(Enum):
	"""
	Variance lattice: BIVARIANT (unused) < COVARIANT, CONTRAVARIANT < INVARIANT.

	BIVARIANT only exists while inference runs; finished vectors never
	contain it.
	"""

	BIVARIANT = auto()
	COVARIANT = auto()
	CONTRAVARIANT = auto()
	INVARIANT = auto()

	def join(self, other: "Variance") -> "Variance":
		"""Least upper bound; any disagreement is INVARIANT."""
		if self is other:
			return self
		if self is Variance.BIVARIANT:
			return other
		if other is Variance.BIVARIANT:
			return self
		return Variance.INVARIANT

	def flip(self) -> "Variance":
		if self is Variance.COVARIANT:
			return Variance.CONTRAVARIANT
		if self is Variance.CONTRAVARIANT:
			return Variance.COVARIANT
		return self

	def xform(self, inner: "Variance") -> "Variance":
		"""Polarity of a position of variance `inner` reached under polarity `self`."""
		if self is Variance.BIVARIANT or inner is Variance.BIVARIANT:
			return Variance.BIVARIANT
		if inner is Variance.COVARIANT:
			return self
		if inner is Variance.CONTRAVARIANT:
			return self.flip()
		return Variance.INVARIANT

	@property
	def symbol(self) -> str:
		return {
			Variance.BIVARIANT: "*",
			Variance.COVARIANT: "+",
			Variance.CONTRAVARIANT: "-",
			Variance.INVARIANT: "o",
		}[self]


@dataclass(frozen=True, eq=False)
class Lifetime:
	"""
	A lifetime: a name before resolution, a region id after, or Unbounded.

	Identity is the region once resolved; the name is kept for messages only.
	"""

	name: str = ""
	region: Optional[int] = None
	unbounded: bool = False

	@classmethod
	def named(cls, name: str) -> "Lifetime":
		return cls(name=name)

	@classmethod
	def of_region(cls, region: int, name: str = "") -> "Lifetime":
		return cls(name=name, region=region)

	@classmethod
	def make_unbounded(cls) -> "Lifetime":
		return cls(name="'unbounded", unbounded=True)

	@property
	def is_resolved(self) -> bool:
		return self.unbounded or self.region is not None

	@property
	def is_inferred(self) -> bool:
		return not self.is_resolved and self.name == INFERRED

	def _key(self) -> tuple:
		if self.unbounded:
			return ("unbounded",)
		if self.region is not None:
			return ("region", self.region)
		return ("name", self.name)

	def __eq__(self, other: object) -> bool:
		if not isinstance(other, Lifetime):
			return NotImplemented
		return self._key() == other._key()

	def __hash__(self) -> int:
		return hash(self._key())

	def __str__(self) -> str:
		if self.unbounded:
			return "'unbounded"
		if self.name:
			return self.name
		return f"'r{self.region}"


@dataclass(frozen=True)
class TypeParam:
	"""A generic type parameter, meaningful inside its declaring item."""

	name: str


@dataclass(frozen=True)
class AppliedType:
	"""Nominal type: a declared constructor applied to lifetime/type arguments."""

	ctor: str
	args: Tuple["TypeArg", ...] = ()


@dataclass(frozen=True)
class RefType:
	"""`&'a T` / `&'a mut T`."""

	lifetime: Lifetime
	inner: "Type"
	kind: BorrowKind = BorrowKind.SHARED

	@property
	def exclusive(self) -> bool:
		return self.kind is BorrowKind.EXCLUSIVE


@dataclass(frozen=True)
class RawPtrType:
	"""`*const T` / `*mut T`: address-only, carries no lifetime."""

	inner: "Type"
	exclusive: bool = False


@dataclass(frozen=True)
class CellType:
	"""Interior-mutation wrapper; its parameter is always invariant."""

	inner: "Type"


@dataclass(frozen=True)
class FnType:
	"""Callable value type `fn(A, B) -> R`."""

	params: Tuple["Type", ...]
	ret: "Type"


Type = TypeParam | AppliedType | RefType | RawPtrType | CellType | FnType
TypeArg = Type | Lifetime


@dataclass(frozen=True)
class GenericParam:
	"""One parameter of a generic declaration (type or lifetime)."""

	name: str
	is_lifetime: bool = False


@dataclass(frozen=True)
class FieldDecl:
	name: str
	ty: Type


@dataclass(frozen=True)
class TypeConstructor:
	"""
	A generic type declaration: ordered parameters plus field types.

	`has_finalizer` marks constructors with an observable finalization side
	effect (a user-defined destructor). Immutable after declaration.
	"""

	name: str
	params: Tuple[GenericParam, ...] = ()
	fields: Tuple[FieldDecl, ...] = ()
	has_finalizer: bool = False
	span: Span = field(default_factory=Span, compare=False)

	def param_index(self, name: str) -> Optional[int]:
		for idx, param in enumerate(self.params):
			if param.name == name:
				return idx
		return None

	def get_field(self, name: str) -> Optional[FieldDecl]:
		for fld in self.fields:
			if fld.name == name:
				return fld
		return None

	@property
	def lifetime_params(self) -> Tuple[str, ...]:
		return tuple(p.name for p in self.params if p.is_lifetime)

	@property
	def type_params(self) -> Tuple[str, ...]:
		return tuple(p.name for p in self.params if not p.is_lifetime)


def iter_lifetimes(ty: TypeArg) -> Iterator[Lifetime]:
	"""Yield every lifetime mentioned in `ty`, outermost first."""
	if isinstance(ty, Lifetime):
		yield ty
	elif isinstance(ty, RefType):
		yield ty.lifetime
		yield from iter_lifetimes(ty.inner)
	elif isinstance(ty, (RawPtrType, CellType)):
		yield from iter_lifetimes(ty.inner)
	elif isinstance(ty, AppliedType):
		for arg in ty.args:
			yield from iter_lifetimes(arg)
	elif isinstance(ty, FnType):
		for param in ty.params:
			yield from iter_lifetimes(param)
		yield from iter_lifetimes(ty.ret)


def iter_type_params(ty: TypeArg) -> Iterator[str]:
	"""Yield the names of type parameters mentioned in `ty`."""
	if isinstance(ty, TypeParam):
		yield ty.name
	elif isinstance(ty, RefType):
		yield from iter_type_params(ty.inner)
	elif isinstance(ty, (RawPtrType, CellType)):
		yield from iter_type_params(ty.inner)
	elif isinstance(ty, AppliedType):
		for arg in ty.args:
			yield from iter_type_params(arg)
	elif isinstance(ty, FnType):
		for param in ty.params:
			yield from iter_type_params(param)
		yield from iter_type_params(ty.ret)


def map_lifetimes(ty: TypeArg, fn: Callable[[Lifetime], Lifetime]) -> TypeArg:
	"""Rebuild `ty` with every lifetime replaced by `fn(lifetime)`."""
	if isinstance(ty, Lifetime):
		return fn(ty)
	if isinstance(ty, RefType):
		return RefType(fn(ty.lifetime), map_lifetimes(ty.inner, fn), ty.kind)  # type: ignore[arg-type]
	if isinstance(ty, RawPtrType):
		return RawPtrType(map_lifetimes(ty.inner, fn), ty.exclusive)  # type: ignore[arg-type]
	if isinstance(ty, CellType):
		return CellType(map_lifetimes(ty.inner, fn))  # type: ignore[arg-type]
	if isinstance(ty, AppliedType):
		if not ty.args:
			return ty
		return AppliedType(ty.ctor, tuple(map_lifetimes(a, fn) for a in ty.args))
	if isinstance(ty, FnType):
		return FnType(
			tuple(map_lifetimes(p, fn) for p in ty.params),  # type: ignore[misc]
			map_lifetimes(ty.ret, fn),  # type: ignore[arg-type]
		)
	return ty


def is_inferred(ty: TypeArg) -> bool:
	"""True when `ty` still has `'_` holes to be filled from its value."""
	return any(lt.is_inferred for lt in iter_lifetimes(ty))


def contains_unbounded(ty: Optional[TypeArg]) -> bool:
	if ty is None:
		return False
	return any(lt.unbounded for lt in iter_lifetimes(ty))


def format_type(ty: Optional[TypeArg]) -> str:
	"""Render a type the way the textual IR spells it."""
	if ty is None:
		return "<unknown>"
	if isinstance(ty, Lifetime):
		return str(ty)
	if isinstance(ty, TypeParam):
		return ty.name
	if isinstance(ty, RefType):
		mut = "mut " if ty.exclusive else ""
		return f"&{ty.lifetime} {mut}{format_type(ty.inner)}"
	if isinstance(ty, RawPtrType):
		return f"*{'mut' if ty.exclusive else 'const'} {format_type(ty.inner)}"
	if isinstance(ty, CellType):
		return f"Cell<{format_type(ty.inner)}>"
	if isinstance(ty, AppliedType):
		if not ty.args:
			return ty.ctor
		return f"{ty.ctor}<{', '.join(format_type(a) for a in ty.args)}>"
	if isinstance(ty, FnType):
		return f"fn({', '.join(format_type(p) for p in ty.params)}) -> {format_type(ty.ret)}"
	return repr(ty)


__all__ = [
	"STATIC",
	"INFERRED",
	"BorrowKind",
	"Variance",
	"Lifetime",
	"TypeParam",
	"AppliedType",
	"RefType",
	"RawPtrType",
	"CellType",
	"FnType",
	"Type",
	"TypeArg",
	"GenericParam",
	"FieldDecl",
	"TypeConstructor",
	"iter_lifetimes",
	"iter_type_params",
	"map_lifetimes",
	"is_inferred",
	"contains_unbounded",
	"format_type",
]
