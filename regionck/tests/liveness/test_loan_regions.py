#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Point numbering, binding liveness and liveness-derived loan regions."""

import pytest

from regionck.core.types_core import AppliedType, RefType, Lifetime
from regionck.errors import MalformedIRError
from regionck.liveness import LivenessAnalyzer, PointMap, needs_finalizer
from regionck.parser import program_from_dict
from regionck.regions import RegionArena

GUARD = {"name": "Guard", "params": ["'a"], "fields": {"r": "&'a Int"}, "finalizer": True}
VIEW = {"name": "View", "params": ["'a"], "fields": {"r": "&'a Int"}}


def _analyze(blocks, *, locals_=None, types=(), extra_fns=(), scopes=()):
	program = program_from_dict(
		{
			"types": list(types),
			"functions": [
				{
					"name": "f",
					"locals": locals_ if locals_ is not None else [],
					"scopes": list(scopes),
					"blocks": blocks,
				},
				*extra_fns,
			],
		}
	)
	fn = program.functions["f"]
	points = PointMap(fn.blocks)
	arena = RegionArena()
	arena.set_body(range(len(points)))
	return LivenessAnalyzer(fn, program.types, program.functions, arena, points=points).analyze(), arena


def _ints(*names):
	return [{"name": n, "type": "Int"} for n in names]


def test_point_map_numbers_statements_and_terminators():
	program = program_from_dict(
		{"functions": [{"name": "f", "locals": _ints("x"), "blocks": [["x = static Int", "goto 1"], ["use x", "return"]]}]}
	)
	points = PointMap(program.functions["f"].blocks)
	assert len(points) == 4
	assert points.terminator_point(0) == 1
	assert points.successors(1) == [2]
	assert points.predecessors(2) == [1]
	assert str(points.at(3)) == "bb1[1]"


def test_dangling_block_reference_is_malformed():
	program = program_from_dict({"functions": [{"name": "f", "blocks": [["goto 5"]]}]})
	with pytest.raises(MalformedIRError):
		PointMap(program.functions["f"].blocks)


def test_loan_ends_at_last_use():
	result, arena = _analyze(
		[["x = static Int", "r = &x", "use r", "write x", "return"]],
		locals_=_ints("x") + [{"name": "r"}],
	)
	(loan,) = result.loans
	assert loan.point == 1
	assert result.region_of(loan).intervals == ((1, 2),)
	assert result.loans_live_at(2) == [loan]
	assert result.loans_live_at(3) == []


def test_reassignment_leaves_a_gap():
	result, arena = _analyze(
		[["r = &x", "use r", "r = &y", "use r", "write x", "use r", "return"]],
		locals_=_ints("x", "y") + [{"name": "r"}],
	)
	first, second = result.loans
	assert not arena.covers(result.region_of(first), 4)
	assert [l.id for l in result.loans_live_at(4)] == [second.id]
	assert arena.covers(result.region_of(second), 5)


def test_loop_keeps_loan_live_around_back_edge():
	result, arena = _analyze(
		[["r = &x", "goto 1"], ["use r", "branch 1, 2"], ["return"]],
		locals_=_ints("x") + [{"name": "r"}],
	)
	(loan,) = result.loans
	region = result.region_of(loan)
	assert arena.covers(region, 2)
	assert arena.covers(region, 3)
	assert not arena.covers(region, 4)


def test_finalizer_extends_liveness_to_scope_exit():
	result, arena = _analyze(
		[["x = static Int", "g = Guard { r: &x }", "write x", "return"]],
		locals_=_ints("x") + [{"name": "g"}],
		types=[GUARD],
	)
	(loan,) = result.loans
	assert "g" in result.finalizer_locals
	assert result.is_live("g", 3)
	assert loan in result.loans_live_at(2)


def test_finalizer_status_follows_call_results_and_copies():
	lock = {
		"name": "lock",
		"lifetimes": ["'a"],
		"params": [{"name": "v", "type": "&'a Int"}],
		"ret": "Guard<'a>",
	}
	peek = {"name": "peek", "lifetimes": ["'a"], "params": [{"name": "v", "type": "&'a Int"}], "ret": "View<'a>"}
	result, _ = _analyze(
		[["x = static Int", "g = call lock(&x)", "h = g", "v = call peek(&x)", "return"]],
		locals_=_ints("x") + [{"name": "g"}, {"name": "h"}, {"name": "v"}],
		types=[GUARD, VIEW],
		extra_fns=[lock, peek],
	)
	assert result.finalizer_locals == frozenset({"g", "h"})
	assert result.is_live("h", 4)
	assert not result.is_live("v", 4)


def test_plain_aggregate_does_not_extend_liveness():
	result, arena = _analyze(
		[["x = static Int", "v = View { r: &x }", "write x", "return"]],
		locals_=_ints("x") + [{"name": "v"}],
		types=[VIEW],
	)
	assert result.loans_live_at(2) == []


def test_finalizer_of_inner_scope_local_is_used_at_scope_exit():
	result, arena = _analyze(
		[["x = static Int", "goto 1"], ["g = Guard { r: &x }", "goto 2"], ["write x", "return"]],
		locals_=_ints("x") + [{"name": "g", "scope": 1}],
		types=[GUARD],
		scopes=[{"id": 1, "parent": 0, "blocks": [1]}],
	)
	(loan,) = result.loans
	# bb1's terminator leaves scope 1: the guard is finalized there.
	assert result.is_live("g", 3)
	assert result.loans_live_at(4) == []


def test_needs_finalizer_follows_drop_glue():
	program = program_from_dict(
		{
			"types": [
				GUARD,
				VIEW,
				{"name": "Outer", "params": [], "fields": {"g": "Guard<'static>"}},
			]
		}
	)
	ctors = program.types
	assert needs_finalizer(AppliedType("Outer"), ctors)
	assert needs_finalizer(AppliedType("Guard", (Lifetime.named("'static"),)), ctors)
	assert not needs_finalizer(AppliedType("View", (Lifetime.named("'static"),)), ctors)
	assert not needs_finalizer(RefType(Lifetime.named("'static"), AppliedType("Outer")), ctors)
	assert not needs_finalizer(AppliedType("Int"), ctors)


def test_call_result_carries_loans_of_tied_arguments():
	ident = {
		"name": "ident",
		"lifetimes": ["'a"],
		"params": [{"name": "v", "type": "&'a Int"}],
		"ret": "&'a Int",
	}
	size = {
		"name": "size",
		"lifetimes": ["'a"],
		"params": [{"name": "v", "type": "&'a Int"}],
		"ret": "Int",
	}
	result, _ = _analyze(
		[["r = call ident(&x)", "n = call size(&x)", "write x", "use r, n", "return"]],
		locals_=_ints("x", "n") + [{"name": "r"}],
		extra_fns=[ident, size],
	)
	tied, untied = result.loans
	assert tied.id in result.carried("r", 2)
	assert untied.id not in result.carried("n", 2)
	assert result.loans_live_at(2) == [tied]


def test_unknown_binding_is_malformed():
	with pytest.raises(MalformedIRError):
		_analyze([["use ghost", "return"]])


def test_unknown_callee_and_arity_are_malformed():
	with pytest.raises(MalformedIRError):
		_analyze([["call nowhere()", "return"]])
	sink = {"name": "sink", "params": [{"name": "v", "type": "Int"}]}
	with pytest.raises(MalformedIRError):
		_analyze([["call sink()", "return"]], extra_fns=[sink])
