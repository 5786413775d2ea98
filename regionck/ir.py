# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Elaborated input IR consumed by the checker.

A `Program` is a table of type constructors plus a table of functions. A
function body is a CFG of `BasicBlock`s; each block is a straight-line list
of statements and exactly one `Terminator`. Blocks are addressed by integer
id, never by reference, so loops are just terminators pointing backwards.

Statements are deliberately small: every borrow, use, write, finalization,
call and raw-memory operation is explicit, so the passes never have to
recover it from expression trees.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from regionck.borrow_checker import Place
from regionck.core.span import Span
from regionck.core.types_core import AppliedType, BorrowKind, Type, TypeConstructor
from regionck.errors import MalformedIRError


# Operands -----------------------------------------------------------------------


@dataclass(frozen=True)
class CopyOperand:
	"""Read the value stored at `place`."""

	place: Place


@dataclass(frozen=True)
class BorrowOperand:
	"""`&place` / `&mut place` used directly as a value (call args, fields)."""

	place: Place
	kind: BorrowKind = BorrowKind.SHARED


@dataclass(frozen=True)
class StaticOperand:
	"""A constant of the given type (literals, string constants, statics)."""

	ty: Type


Operand = CopyOperand | BorrowOperand | StaticOperand


# Statements ---------------------------------------------------------------------


@dataclass
class BorrowStmt:
	"""`target = &place` / `target = &mut place`."""

	target: Place
	place: Place
	kind: BorrowKind = BorrowKind.SHARED
	span: Span = field(default_factory=Span)


@dataclass
class AssignStmt:
	"""`target = value`; target may be projected (`x.f = v`, `*r = v`)."""

	target: Place
	value: Operand
	span: Span = field(default_factory=Span)


@dataclass
class CallStmt:
	"""`dest = callee(args...)`; `dest` is None for calls used as statements."""

	callee: str
	args: Tuple[Operand, ...] = ()
	dest: Optional[Place] = None
	span: Span = field(default_factory=Span)


@dataclass
class ConstructStmt:
	"""`target = Ctor { field: value, ... }`."""

	target: Place
	ctor: str
	fields: Tuple[Tuple[str, Operand], ...] = ()
	span: Span = field(default_factory=Span)


@dataclass
class UseStmt:
	"""Plain reads of one or more places (e.g. passing to an opaque sink)."""

	places: Tuple[Place, ...]
	span: Span = field(default_factory=Span)


@dataclass
class WriteStmt:
	"""Overwrite `place` with a fresh, loan-free value."""

	place: Place
	span: Span = field(default_factory=Span)


@dataclass
class FinalizeStmt:
	"""Explicit finalization (drop) of a local binding."""

	name: str
	span: Span = field(default_factory=Span)


@dataclass
class RawDerefStmt:
	"""`target = *raw pointer`: turn an address-only value into a reference."""

	target: Place
	pointer: Place
	kind: BorrowKind = BorrowKind.SHARED
	span: Span = field(default_factory=Span)


@dataclass
class ReinterpretStmt:
	"""`target = cast<ty> value`: type punning; the result has no provenance."""

	target: Place
	value: Operand
	ty: Type
	span: Span = field(default_factory=Span)


Statement = (
	BorrowStmt
	| AssignStmt
	| CallStmt
	| ConstructStmt
	| UseStmt
	| WriteStmt
	| FinalizeStmt
	| RawDerefStmt
	| ReinterpretStmt
)


@dataclass
class Terminator:
	"""CFG terminator describing control-flow edges out of a basic block."""

	kind: str  # "jump", "branch", "return"
	targets: List[int] = field(default_factory=list)
	value: Optional[Operand] = None
	span: Span = field(default_factory=Span)


@dataclass
class BasicBlock:
	"""Basic block of statements with a single terminator."""

	id: int
	statements: List[Statement] = field(default_factory=list)
	terminator: Terminator = field(default_factory=lambda: Terminator("return"))


# Declarations -------------------------------------------------------------------


@dataclass(frozen=True)
class LocalDecl:
	"""
	A local binding. `ty` None (or containing `'_`) means the lifetimes come
	from the assigned values; a fully spelled type is a declared boundary.
	"""

	name: str
	ty: Optional[Type] = None
	scope: int = 0
	span: Span = field(default_factory=Span, compare=False)


@dataclass(frozen=True)
class ParamDecl:
	name: str
	ty: Type
	span: Span = field(default_factory=Span, compare=False)


@dataclass(frozen=True)
class ScopeDecl:
	"""
	A lexical scope. `blocks` are the blocks owned directly; a scope also
	covers every block of its descendants. Scope 0 is the function body and
	always exists, covering every block.
	"""

	id: int
	parent: Optional[int] = 0
	blocks: Tuple[int, ...] = ()


@dataclass
class FnDecl:
	"""
	A function signature plus (optionally) its body.

	Functions without blocks are signatures only: they can be called but are
	not analysed. `load_error` is set when the loader could not build the
	function; the driver reports it as aborted instead of analysing it.
	"""

	name: str
	lifetime_params: Tuple[str, ...] = ()
	type_params: Tuple[str, ...] = ()
	params: Tuple[ParamDecl, ...] = ()
	ret: Type = field(default_factory=lambda: AppliedType("Unit"))
	outlives: Tuple[Tuple[str, str], ...] = ()
	locals: Tuple[LocalDecl, ...] = ()
	blocks: List[BasicBlock] = field(default_factory=list)
	scopes: Tuple[ScopeDecl, ...] = ()
	span: Span = field(default_factory=Span)
	load_error: Optional[MalformedIRError] = field(default=None, compare=False, repr=False)

	@property
	def is_declaration(self) -> bool:
		return not self.blocks

	@property
	def entry(self) -> int:
		return self.blocks[0].id


@dataclass
class Program:
	"""Everything the elaborator hands over: declarations and functions."""

	types: Dict[str, TypeConstructor] = field(default_factory=dict)
	functions: Dict[str, FnDecl] = field(default_factory=dict)


def stmt_target(stmt: Statement) -> Optional[Place]:
	"""The place a statement stores into, if any."""
	if isinstance(stmt, CallStmt):
		return stmt.dest
	if isinstance(stmt, (BorrowStmt, AssignStmt, ConstructStmt, RawDerefStmt, ReinterpretStmt)):
		return stmt.target
	return None


def stmt_operands(stmt: Statement | Terminator) -> Tuple[Operand, ...]:
	"""
	Operands of a statement in evaluation order.

	Borrow operands appear here in the order their loans are created; the
	liveness pass and the checker both rely on this order.
	"""
	if isinstance(stmt, BorrowStmt):
		return (BorrowOperand(stmt.place, stmt.kind),)
	if isinstance(stmt, (AssignStmt, ReinterpretStmt)):
		return (stmt.value,)
	if isinstance(stmt, CallStmt):
		return tuple(stmt.args)
	if isinstance(stmt, ConstructStmt):
		return tuple(op for _, op in stmt.fields)
	if isinstance(stmt, Terminator):
		return (stmt.value,) if stmt.value is not None else ()
	return ()


__all__ = [
	"CopyOperand",
	"BorrowOperand",
	"StaticOperand",
	"Operand",
	"BorrowStmt",
	"AssignStmt",
	"CallStmt",
	"ConstructStmt",
	"UseStmt",
	"WriteStmt",
	"FinalizeStmt",
	"RawDerefStmt",
	"ReinterpretStmt",
	"Statement",
	"Terminator",
	"BasicBlock",
	"LocalDecl",
	"ParamDecl",
	"ScopeDecl",
	"FnDecl",
	"Program",
	"stmt_target",
	"stmt_operands",
]
