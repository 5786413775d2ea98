#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Textual IR grammar: type expressions and statement lines."""

import pytest

from regionck.borrow_checker import DerefProj, FieldProj, IndexKind, IndexProj, Place
from regionck.core.types_core import (
	INFERRED,
	AppliedType,
	BorrowKind,
	CellType,
	FnType,
	Lifetime,
	RawPtrType,
	RefType,
	TypeParam,
	format_type,
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
	RawDerefStmt,
	ReinterpretStmt,
	StaticOperand,
	Terminator,
	UseStmt,
	WriteStmt,
)
from regionck.parser import parse_stmt, parse_type

INT = AppliedType("Int")


def test_reference_types():
	assert parse_type("&'a Int") == RefType(Lifetime.named("'a"), INT)
	assert parse_type("&'a mut T", ["T"]) == RefType(Lifetime.named("'a"), TypeParam("T"), BorrowKind.EXCLUSIVE)
	elided = parse_type("&Int")
	assert elided.lifetime.name == INFERRED
	assert parse_type("&mut Int").kind is BorrowKind.EXCLUSIVE


def test_pointer_cell_and_callable_types():
	assert parse_type("*const Int") == RawPtrType(INT)
	assert parse_type("*mut Int") == RawPtrType(INT, exclusive=True)
	assert parse_type("Cell<T>", ["T"]) == CellType(TypeParam("T"))
	assert parse_type("fn(Int, &'a Int) -> Int") == FnType((INT, RefType(Lifetime.named("'a"), INT)), INT)
	assert parse_type("fn() -> Unit") == FnType((), AppliedType("Unit"))


def test_applied_types_mix_lifetimes_and_types():
	ty = parse_type("Vec<'a, Vec<'b, T>>", ["T"])
	assert ty == AppliedType(
		"Vec",
		(Lifetime.named("'a"), AppliedType("Vec", (Lifetime.named("'b"), TypeParam("T")))),
	)
	assert format_type(ty) == "Vec<'a, Vec<'b, T>>"
	assert parse_type("(Int)") == INT


def test_malformed_types():
	with pytest.raises(IRSyntaxError):
		parse_type("&'a")
	with pytest.raises(IRSyntaxError):
		parse_type("Cell<'a>")
	with pytest.raises(IRSyntaxError):
		parse_type("T<Int>", ["T"])


def test_borrow_and_assign_statements():
	stmt = parse_stmt("r = &mut x.f")
	assert stmt == BorrowStmt(Place("r"), Place("x", (FieldProj("f"),)), BorrowKind.EXCLUSIVE)
	assert parse_stmt("y = x") == AssignStmt(Place("y"), CopyOperand(Place("x")))
	assert parse_stmt("*r = x") == AssignStmt(Place("r", (DerefProj(),)), CopyOperand(Place("x")))
	assert parse_stmt("n = static Int") == AssignStmt(Place("n"), StaticOperand(INT))


def test_place_projections():
	stmt = parse_stmt("use (*r).items[0], v[?], *p.f")
	assert stmt == UseStmt(
		(
			Place("r", (DerefProj(), FieldProj("items"), IndexProj(IndexKind.CONST, 0))),
			Place("v", (IndexProj(IndexKind.ANY),)),
			Place("p", (FieldProj("f"), DerefProj())),
		)
	)


def test_calls_and_constructs():
	call = parse_stmt("d = call f(&x, y, static Int)")
	assert call == CallStmt(
		"f",
		(BorrowOperand(Place("x")), CopyOperand(Place("y")), StaticOperand(INT)),
		dest=Place("d"),
	)
	assert parse_stmt("call g()") == CallStmt("g", (), dest=None)
	ctor = parse_stmt("g = Guard { r: &x, n: static Int }")
	assert ctor == ConstructStmt(Place("g"), "Guard", (("r", BorrowOperand(Place("x"))), ("n", StaticOperand(INT))))
	assert parse_stmt("u = Unit {}") == ConstructStmt(Place("u"), "Unit", ())
	with pytest.raises(IRSyntaxError):
		parse_stmt("g = Guard { r: &x, r: &x }")


def test_raw_memory_statements():
	assert parse_stmt("p = *raw q") == RawDerefStmt(Place("p"), Place("q"))
	assert parse_stmt("p = *raw mut q").kind is BorrowKind.EXCLUSIVE
	stmt = parse_stmt("t = cast<&'_ Int> u")
	assert isinstance(stmt, ReinterpretStmt)
	assert stmt.ty == RefType(Lifetime.named(INFERRED), INT)
	assert stmt.value == CopyOperand(Place("u"))


def test_effects_and_terminators():
	assert parse_stmt("write x.f") == WriteStmt(Place("x", (FieldProj("f"),)))
	assert parse_stmt("drop g") == FinalizeStmt("g")
	assert parse_stmt("return") == Terminator("return")
	assert parse_stmt("return &x") == Terminator("return", value=BorrowOperand(Place("x")))
	assert parse_stmt("goto 3") == Terminator("jump", [3])
	assert parse_stmt("branch 1, 2") == Terminator("branch", [1, 2])


def test_keywords_are_not_identifiers_but_prefixes_are():
	assert parse_stmt("user = used") == AssignStmt(Place("user"), CopyOperand(Place("used")))
	with pytest.raises(IRSyntaxError):
		parse_stmt("use = x")


def test_syntax_error_carries_column():
	with pytest.raises(IRSyntaxError) as excinfo:
		parse_stmt("r = &")
	assert excinfo.value.text == "r = &"
