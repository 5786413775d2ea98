#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Exclusivity: overlapping accesses against live loans."""

from regionck.borrow_checker_pass import check_function
from regionck.conflicts import ConflictKind, Verdict
from regionck.parser import program_from_dict
from regionck.variance import VarianceTable

GUARD = {"name": "Guard", "params": ["'a"], "fields": {"r": "&'a Int"}, "finalizer": True}
VIEW = {"name": "View", "params": ["'a"], "fields": {"r": "&'a Int"}}
PAIR = {"name": "Pair", "params": [], "fields": {"a": "Int", "b": "Int"}}


def _check(blocks, *, locals_=(), params=(), lifetimes=(), types=(), extra_fns=()):
	program = program_from_dict(
		{
			"types": list(types),
			"functions": [
				{
					"name": "f",
					"lifetimes": list(lifetimes),
					"params": list(params),
					"locals": list(locals_),
					"blocks": blocks,
				},
				*extra_fns,
			],
		}
	)
	table = VarianceTable()
	for ctor in program.types.values():
		table.declare(ctor)
	table.freeze()
	return check_function(program, table, program.functions["f"])


def _ints(*names):
	return [{"name": n, "type": "Int"} for n in names]


def _untyped(*names):
	return [{"name": n} for n in names]


def test_shared_borrow_then_write_after_last_use_is_accepted():
	res = _check(
		[["x = static Int", "r = &x", "use r", "write x", "return"]],
		locals_=_ints("x") + _untyped("r"),
	)
	assert res.verdict is Verdict.ACCEPTED
	assert res.reports == []


def test_finalizer_keeps_borrow_alive_across_write():
	res = _check(
		[["x = static Int", "g = Guard { r: &x }", "write x", "return"]],
		locals_=_ints("x") + _untyped("g"),
		types=[GUARD],
	)
	assert res.kinds() == [ConflictKind.EXCLUSIVITY_VIOLATION]
	assert "write" in res.reports[0].message
	assert res.reports[0].point is not None and str(res.reports[0].point) == "bb0[2]"


def test_guard_returned_by_call_keeps_borrow_alive_across_write():
	lock = {
		"name": "lock",
		"lifetimes": ["'a"],
		"params": [{"name": "v", "type": "&'a Int"}],
		"ret": "Guard<'a>",
	}
	for g_decl in (_untyped("g"), [{"name": "g", "type": "Guard<'_>"}]):
		res = _check(
			[["x = static Int", "g = call lock(&x)", "write x", "return"]],
			locals_=_ints("x") + g_decl,
			types=[GUARD],
			extra_fns=[lock],
		)
		assert res.kinds() == [ConflictKind.EXCLUSIVITY_VIOLATION]
		assert str(res.reports[0].point) == "bb0[2]"


def test_aggregate_without_finalizer_releases_borrow():
	res = _check(
		[["x = static Int", "v = View { r: &x }", "write x", "return"]],
		locals_=_ints("x") + _untyped("v"),
		types=[VIEW],
	)
	assert res.accepted


def test_explicit_drop_ends_the_guard():
	res = _check(
		[["x = static Int", "g = Guard { r: &x }", "drop g", "write x", "return"]],
		locals_=_ints("x") + _untyped("g"),
		types=[GUARD],
	)
	assert res.accepted


def test_reassigned_reference_leaves_gap_for_write():
	res = _check(
		[["x = static Int", "y = static Int", "r = &mut x", "use r", "r = &mut y", "write x", "use r", "return"]],
		locals_=_ints("x", "y") + _untyped("r"),
	)
	assert res.accepted


def test_read_while_exclusively_borrowed():
	res = _check(
		[["x = static Int", "r = &mut x", "use x", "use r", "return"]],
		locals_=_ints("x") + _untyped("r"),
	)
	assert res.kinds() == [ConflictKind.EXCLUSIVITY_VIOLATION]
	assert "cannot read 'x'" in res.reports[0].message


def test_two_exclusive_borrows_conflict():
	res = _check(
		[["x = static Int", "a = &mut x", "b = &mut x", "use a, b", "return"]],
		locals_=_ints("x") + _untyped("a", "b"),
	)
	assert res.kinds() == [ConflictKind.EXCLUSIVITY_VIOLATION]
	assert res.reports[0].regions


def test_many_shared_borrows_coexist():
	res = _check(
		[["x = static Int", "a = &x", "b = &x", "use x", "use a, b", "return"]],
		locals_=_ints("x") + _untyped("a", "b"),
	)
	assert res.accepted


def test_disjoint_fields_can_be_borrowed_exclusively():
	res = _check(
		[["p = Pair { a: static Int, b: static Int }", "ra = &mut p.a", "rb = &mut p.b", "use ra, rb", "return"]],
		locals_=_untyped("p", "ra", "rb"),
		types=[PAIR],
	)
	assert res.accepted


def test_whole_and_field_overlap():
	res = _check(
		[["p = Pair { a: static Int, b: static Int }", "ra = &mut p.a", "use p", "use ra", "return"]],
		locals_=_untyped("p", "ra"),
		types=[PAIR],
	)
	assert res.kinds() == [ConflictKind.EXCLUSIVITY_VIOLATION]


def test_loan_live_around_loop_conflicts_inside_it():
	res = _check(
		[["x = static Int", "r = &x", "goto 1"], ["use r", "write x", "branch 1, 2"], ["return"]],
		locals_=_ints("x") + _untyped("r"),
	)
	assert ConflictKind.EXCLUSIVITY_VIOLATION in res.kinds()


def test_write_through_shared_reference_is_rejected():
	res = _check(
		[["write *r", "return"]],
		lifetimes=["'a"],
		params=[{"name": "r", "type": "&'a Int"}],
	)
	assert res.kinds() == [ConflictKind.EXCLUSIVITY_VIOLATION]
	assert "through shared reference" in res.reports[0].message


def test_write_through_exclusive_reference_is_accepted():
	res = _check(
		[["write *r", "return"]],
		lifetimes=["'a"],
		params=[{"name": "r", "type": "&'a mut Int"}],
	)
	assert res.accepted


def test_malformed_function_is_aborted():
	res = _check([["use ghost", "return"]])
	assert res.aborted
	assert res.verdict is Verdict.REJECTED
	assert res.error is not None
	assert [d.code for d in res.diagnostics()] == ["malformed-ir"]
