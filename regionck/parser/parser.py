# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Lark front-end for the textual IR: type expressions and CFG statements.

The grammar lives in `grammar.lark`; one LALR parser serves both start rules.
Builders below turn parse trees into `types_core` / `ir` values. Names listed
in `type_params` resolve to `TypeParam`, every other bare name is a nominal
`AppliedType` (existence is checked later, against the program tables).
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedInput

from regionck.borrow_checker import DerefProj, FieldProj, IndexKind, IndexProj, Place, Projection
from regionck.core.span import Span
from regionck.core.types_core import (
	INFERRED,
	AppliedType,
	BorrowKind,
	CellType,
	FnType,
	Lifetime,
	RawPtrType,
	RefType,
	Type,
	TypeArg,
	TypeParam,
)
from regionck.errors import IRSyntaxError
from regionck.ir import (
	AssignStmt,
	BorrowOperand,
	BorrowStmt,
	CallStmt,
	ConstructStmt,
	CopyOperand,
	FinalizeStmt,
	Operand,
	RawDerefStmt,
	ReinterpretStmt,
	Statement,
	StaticOperand,
	Terminator,
	UseStmt,
	WriteStmt,
)

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()

_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="lalr",
	lexer="basic",
	start=["type_expr", "stmt"],
	propagate_positions=True,
	maybe_placeholders=False,
)


def _parse(text: str, start: str) -> Tree:
	try:
		return _PARSER.parse(text, start=start)
	except UnexpectedInput as err:
		column = getattr(err, "column", None)
		if not isinstance(column, int) or column < 0:
			column = None
		what = "type" if start == "type_expr" else "statement"
		raise IRSyntaxError(f"cannot parse {what} '{text}': {err.__class__.__name__}", text=text, column=column) from err


def parse_type(text: str, type_params: Iterable[str] = ()) -> Type:
	"""Parse a type expression such as `&'a mut Vec<'a, T>`."""
	tree = _parse(text, "type_expr")
	return _build_type(tree, frozenset(type_params), text)


def parse_stmt(
	text: str,
	type_params: Iterable[str] = (),
	*,
	span: Optional[Span] = None,
) -> Statement | Terminator:
	"""
	Parse one statement or terminator line.

	`span` is attached to the resulting node; the parser itself only knows
	columns inside `text`.
	"""
	tree = _parse(text, "stmt")
	return _build_stmt(tree, frozenset(type_params), text, span or Span())


# Types --------------------------------------------------------------------------


def _tokens(tree: Tree, kind: str) -> List[Token]:
	return [c for c in tree.children if isinstance(c, Token) and c.type == kind]


def _subtrees(tree: Tree) -> List[Tree]:
	return [c for c in tree.children if isinstance(c, Tree)]


def _build_type(node: Tree, tparams: frozenset, text: str) -> Type:
	kind = node.data
	if kind == "ref_type":
		lts = _tokens(node, "LIFETIME")
		lifetime = Lifetime.named(lts[0].value if lts else INFERRED)
		borrow = BorrowKind.EXCLUSIVE if _tokens(node, "MUT") else BorrowKind.SHARED
		(inner,) = _subtrees(node)
		return RefType(lifetime, _build_type(inner, tparams, text), borrow)
	if kind == "raw_type":
		(inner,) = _subtrees(node)
		return RawPtrType(_build_type(inner, tparams, text), exclusive=bool(_tokens(node, "MUT")))
	if kind == "fn_type":
		parts = [_build_type(t, tparams, text) for t in _subtrees(node)]
		return FnType(tuple(parts[:-1]), parts[-1])
	if kind == "named_type":
		name = _tokens(node, "NAME")[0].value
		if name in tparams:
			return TypeParam(name)
		if name == "Cell":
			raise IRSyntaxError("Cell takes exactly one type argument", text=text, column=node.meta.column)
		return AppliedType(name)
	if kind == "applied_type":
		name = _tokens(node, "NAME")[0].value
		args = tuple(_build_type_arg(t, tparams, text) for t in _subtrees(node))
		if name in tparams:
			raise IRSyntaxError(f"type parameter '{name}' does not take arguments", text=text, column=node.meta.column)
		if name == "Cell":
			if len(args) != 1 or isinstance(args[0], Lifetime):
				raise IRSyntaxError("Cell takes exactly one type argument", text=text, column=node.meta.column)
			return CellType(args[0])
		return AppliedType(name, args)
	raise IRSyntaxError(f"unexpected type node '{kind}'", text=text)


def _build_type_arg(node: Tree, tparams: frozenset, text: str) -> TypeArg:
	if node.data == "lifetime_arg":
		return Lifetime.named(node.children[0].value)
	return _build_type(node, tparams, text)


# Places and operands ------------------------------------------------------------


def _build_projection(node: Tree) -> Projection:
	if node.data == "field_proj":
		return FieldProj(node.children[0].value)
	if node.data == "index_proj":
		return IndexProj(IndexKind.CONST, int(node.children[0].value))
	return IndexProj(IndexKind.ANY)


def _build_place(node: Tree) -> Place:
	if node.data == "deref_place":
		(inner,) = _subtrees(node)
		return _build_place(inner).with_projection(DerefProj())
	if node.data == "paren_place":
		inner, *projs = _subtrees(node)
		place = _build_place(inner)
	else:
		place = Place(_tokens(node, "NAME")[0].value)
		projs = _subtrees(node)
	for proj in projs:
		place = place.with_projection(_build_projection(proj))
	return place


def _build_operand(node: Tree, tparams: frozenset, text: str) -> Operand:
	if node.data == "borrow_operand":
		kind = BorrowKind.EXCLUSIVE if _tokens(node, "MUT") else BorrowKind.SHARED
		(place,) = _subtrees(node)
		return BorrowOperand(_build_place(place), kind)
	if node.data == "static_operand":
		(ty,) = _subtrees(node)
		return StaticOperand(_build_type(ty, tparams, text))
	(place,) = _subtrees(node)
	return CopyOperand(_build_place(place))


def _build_call(node: Tree, tparams: frozenset, text: str) -> Tuple[str, Tuple[Operand, ...]]:
	callee = _tokens(node, "NAME")[0].value
	args = tuple(_build_operand(a, tparams, text) for a in _subtrees(node))
	return callee, args


# Statements ---------------------------------------------------------------------


def _build_assign(target: Place, rhs: Tree, tparams: frozenset, text: str, span: Span) -> Statement:
	kind = rhs.data
	if kind == "borrow_operand":
		op = _build_operand(rhs, tparams, text)
		return BorrowStmt(target, op.place, op.kind, span=span)
	if kind in ("copy_operand", "static_operand"):
		return AssignStmt(target, _build_operand(rhs, tparams, text), span=span)
	if kind == "call_rvalue":
		callee, args = _build_call(rhs.children[0], tparams, text)
		return CallStmt(callee, args, dest=target, span=span)
	if kind == "construct":
		ctor = _tokens(rhs, "NAME")[0].value
		fields = []
		seen = set()
		for init in _subtrees(rhs):
			name = init.children[0].value
			if name in seen:
				raise IRSyntaxError(f"field '{name}' initialised twice", text=text, column=init.meta.column)
			seen.add(name)
			fields.append((name, _build_operand(init.children[1], tparams, text)))
		return ConstructStmt(target, ctor, tuple(fields), span=span)
	if kind == "raw_deref":
		borrow = BorrowKind.EXCLUSIVE if _tokens(rhs, "MUT") else BorrowKind.SHARED
		(pointer,) = _subtrees(rhs)
		return RawDerefStmt(target, _build_place(pointer), borrow, span=span)
	if kind == "reinterpret":
		ty, value = _subtrees(rhs)
		return ReinterpretStmt(target, _build_operand(value, tparams, text), _build_type(ty, tparams, text), span=span)
	raise IRSyntaxError(f"unexpected right-hand side '{kind}'", text=text)


def _build_stmt(tree: Tree, tparams: frozenset, text: str, span: Span) -> Statement | Terminator:
	kind = tree.data
	if kind == "assign_stmt":
		target, rhs = _subtrees(tree)
		return _build_assign(_build_place(target), rhs, tparams, text, span)
	if kind == "use_stmt":
		return UseStmt(tuple(_build_place(p) for p in _subtrees(tree)), span=span)
	if kind == "write_stmt":
		(place,) = _subtrees(tree)
		return WriteStmt(_build_place(place), span=span)
	if kind == "drop_stmt":
		return FinalizeStmt(_tokens(tree, "NAME")[0].value, span=span)
	if kind == "call_stmt":
		callee, args = _build_call(tree.children[0], tparams, text)
		return CallStmt(callee, args, dest=None, span=span)
	if kind == "return_stmt":
		ops = _subtrees(tree)
		value = _build_operand(ops[0], tparams, text) if ops else None
		return Terminator("return", value=value, span=span)
	if kind == "goto_stmt":
		return Terminator("jump", [int(t.value) for t in _tokens(tree, "INT")], span=span)
	if kind == "branch_stmt":
		return Terminator("branch", [int(t.value) for t in _tokens(tree, "INT")], span=span)
	raise IRSyntaxError(f"unexpected statement '{kind}'", text=text)


__all__ = ["parse_type", "parse_stmt"]
