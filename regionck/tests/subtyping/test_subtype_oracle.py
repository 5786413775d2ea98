#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Subtype judgments, common types and call-site instantiation."""

import pytest

from regionck.core.type_subst import apply_subst, resolve_lifetimes
from regionck.core.types_core import STATIC, FieldDecl, GenericParam, Lifetime, TypeConstructor
from regionck.errors import MalformedIRError
from regionck.parser import parse_type
from regionck.regions import RegionArena
from regionck.subtyping import SubtypeJudgment, SubtypeOracle
from regionck.unbounded import tag_unbounded
from regionck.variance import VarianceTable


def _setup():
	arena = RegionArena()
	body = arena.set_body(range(10))
	short = arena.new_region(body, range(2, 5))
	param = arena.new_param("'a")
	env = {
		STATIC: Lifetime.of_region(arena.static.id, STATIC),
		"'long": Lifetime.of_region(body.id, "'long"),
		"'short": Lifetime.of_region(short.id, "'short"),
		"'a": Lifetime.of_region(param.id, "'a"),
	}
	table = VarianceTable()
	table.declare(
		TypeConstructor(
			"Sink",
			(GenericParam("T"),),
			(FieldDecl("f", parse_type("fn(T) -> Unit", ["T"])),),
		)
	)
	table.declare(
		TypeConstructor(
			"Pair",
			(GenericParam("'x", is_lifetime=True), GenericParam("T")),
			(FieldDecl("r", parse_type("&'x T", ["T"])),),
		)
	)
	table.freeze()
	oracle = SubtypeOracle(arena, table)

	def ty(text: str):
		return resolve_lifetimes(parse_type(text, ["T"]), env)

	return oracle, env, ty


def test_static_reference_is_subtype_of_shorter():
	oracle, _env, ty = _setup()
	assert oracle.is_subtype(ty("&'static Int"), ty("&'short Int"))
	assert oracle.is_subtype(ty("&'long Int"), ty("&'short Int"))
	assert not oracle.is_subtype(ty("&'short Int"), ty("&'long Int"))


def test_param_lifetime_outlives_body_but_not_static():
	oracle, env, ty = _setup()
	assert oracle.outlives(env["'a"], env["'long"])
	assert not oracle.outlives(env["'a"], env[STATIC])
	assert oracle.is_subtype(ty("&'static T"), ty("&'a T"))


def test_nested_references_are_checked_at_every_level():
	oracle, _env, ty = _setup()
	assert not oracle.is_subtype(ty("&'static &'short T"), ty("&'short &'static T"))
	assert oracle.is_subtype(ty("&'short &'static T"), ty("&'short &'short T"))


def test_exclusive_referent_is_invariant():
	oracle, _env, ty = _setup()
	assert not oracle.is_subtype(ty("&'long mut &'static Int"), ty("&'long mut &'short Int"))
	assert oracle.is_subtype(ty("&'long mut &'short Int"), ty("&'short mut &'short Int"))
	assert not oracle.is_subtype(ty("&'long mut Int"), ty("&'long Int"))


def test_unbounded_moulds_to_any_demand():
	oracle, _env, ty = _setup()
	loose = tag_unbounded(ty("&'short mut &'short Int"))
	assert oracle.is_subtype(loose, ty("&'static mut &'static Int"))
	assert oracle.is_subtype(ty("&'short mut &'long Int"), loose)
	assert oracle.identical(loose, ty("&'long mut &'short Int"))


def test_constructor_arguments_follow_variance():
	oracle, _env, ty = _setup()
	assert oracle.is_subtype(ty("Sink<&'short Int>"), ty("Sink<&'static Int>"))
	assert not oracle.is_subtype(ty("Sink<&'static Int>"), ty("Sink<&'short Int>"))
	assert oracle.is_subtype(ty("Pair<'long, Int>"), ty("Pair<'short, Int>"))
	assert not oracle.is_subtype(ty("Pair<'short, Int>"), ty("Pair<'long, Int>"))


def test_cell_content_is_invariant():
	oracle, _env, ty = _setup()
	assert not oracle.is_subtype(ty("Cell<&'static Int>"), ty("Cell<&'short Int>"))
	assert oracle.is_subtype(ty("Cell<&'short Int>"), ty("Cell<&'short Int>"))


def test_callables_are_contravariant_in_parameters():
	oracle, _env, ty = _setup()
	assert oracle.is_subtype(ty("fn(&'short Int) -> &'static Int"), ty("fn(&'static Int) -> &'short Int"))
	assert not oracle.is_subtype(ty("fn(&'static Int) -> Int"), ty("fn(&'short Int) -> Int"))


def test_distinct_constructors_and_kinds_never_relate():
	oracle, _env, ty = _setup()
	assert not oracle.is_subtype(ty("Int"), ty("Str"))
	assert not oracle.is_subtype(ty("&'static Int"), ty("*const Int"))
	assert oracle.judge(ty("Int"), ty("Str")) is SubtypeJudgment.FAILS
	assert oracle.judge(ty("Int"), ty("Int")) is SubtypeJudgment.HOLDS


def test_lub_intersects_and_glb_joins():
	oracle, _env, ty = _setup()
	assert oracle.lub(ty("&'long Int"), ty("&'short Int")) == ty("&'short Int")
	assert oracle.glb(ty("&'long Int"), ty("&'short Int")) == ty("&'long Int")
	assert oracle.lub(ty("&'long mut &'long Int"), ty("&'short mut &'short Int")) is None
	assert oracle.lub(ty("Int"), ty("Str")) is None


def test_instantiate_merges_covariant_candidates():
	oracle, env, ty = _setup()
	declared = parse_type("&'p Int")
	subst = oracle.instantiate(
		["'p"],
		[],
		[(declared, ty("&'long Int")), (declared, ty("&'short Int"))],
		static=env[STATIC],
	)
	assert subst.args["'p"] == env["'short"]
	assert apply_subst(parse_type("&'p Int"), subst) == ty("&'short Int")


def test_instantiate_prefers_invariant_candidate():
	oracle, env, ty = _setup()
	subst = oracle.instantiate(
		["'p"],
		[],
		[
			(parse_type("&'long mut &'p Int"), ty("&'long mut &'long Int")),
			(parse_type("&'p Int"), ty("&'short Int")),
		],
		static=env[STATIC],
	)
	assert subst.args["'p"] == env["'long"]


def test_instantiate_prefers_bounded_invariant_candidate_over_unbounded():
	oracle, env, ty = _setup()
	declared = parse_type("&'long mut &'p Int")
	subst = oracle.instantiate(
		["'p"],
		[],
		[
			(declared, tag_unbounded(ty("&'long mut &'long Int"))),
			(declared, ty("&'long mut &'short Int")),
		],
		static=env[STATIC],
	)
	assert subst.args["'p"] == env["'short"]
	assert apply_subst(parse_type("&'p Int"), subst) == ty("&'short Int")
	# With no bounded alternative the unbounded candidate still stands.
	alone = oracle.instantiate(["'p"], [], [(declared, tag_unbounded(ty("&'long mut &'long Int")))], static=env[STATIC])
	assert alone.args["'p"].unbounded


def test_instantiate_unconstrained_lifetime():
	oracle, env, ty = _setup()
	subst = oracle.instantiate(["'p"], ["U"], [], static=env[STATIC])
	assert subst.args["'p"].unbounded
	assert "U" not in subst.args
	pinned = oracle.instantiate(["'p"], [], [], static=env[STATIC], free=env[STATIC])
	assert pinned.args["'p"] == env[STATIC]


def test_instantiate_type_parameter():
	oracle, env, ty = _setup()
	subst = oracle.instantiate([], ["U"], [(parse_type("&'static U", ["U"]), ty("&'static &'long Int"))], static=env[STATIC])
	assert subst.args["U"] == ty("&'long Int")


def test_unresolved_lifetime_is_malformed():
	oracle, _env, _ty = _setup()
	with pytest.raises(MalformedIRError):
		oracle.is_subtype(parse_type("&'x Int"), parse_type("&'y Int"))
