#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Unbounded lifetimes from raw dereference and type punning."""

import pytest

from regionck.borrow_checker_pass import check_function
from regionck.conflicts import ConflictKind
from regionck.core.span import ProgramPoint, Span
from regionck.core.types_core import AppliedType, BorrowKind, Lifetime, RawPtrType, RefType, contains_unbounded
from regionck.errors import MalformedIRError
from regionck.options import AnalysisOptions
from regionck.parser import parse_type, program_from_dict
from regionck.unbounded import UnboundedDetector, raw_deref_type, tag_unbounded, untraceable_outputs
from regionck.variance import VarianceTable

ANCHORED = {
	"lifetimes": ["'a"],
	"params": [{"name": "anchor", "type": "&'a Int"}, {"name": "p", "type": "*const Int"}],
	"ret": "&'a Int",
}
PICK = {
	"name": "pick",
	"lifetimes": ["'b"],
	"params": [{"name": "x", "type": "&'b Int"}, {"name": "y", "type": "&'b Int"}],
	"ret": "&'b Int",
}
VIEW = {"name": "View", "params": ["'a"], "fields": {"r": "&'a Int"}}


def _check(fn, *, types=(), extra_fns=(), options=None):
	program = program_from_dict({"types": list(types), "functions": [dict(fn, name="f"), *extra_fns]})
	table = VarianceTable()
	for ctor in program.types.values():
		table.declare(ctor)
	table.freeze()
	return check_function(program, table, program.functions["f"], options)


def test_raw_dereference_escaping_through_return():
	res = _check(dict(ANCHORED, locals=[{"name": "r"}], blocks=[["r = *raw p", "return r"]]))
	assert res.kinds() == [ConflictKind.UNBOUNDED_ESCAPE]
	assert res.reports[0].severity == "warning"
	assert not res.accepted


def test_escape_severity_comes_from_options():
	res = _check(
		dict(ANCHORED, locals=[{"name": "r"}], blocks=[["r = *raw p", "return r"]]),
		options=AnalysisOptions(unbounded_severity="error"),
	)
	assert [r.severity for r in res.reports] == ["error"]


def test_declared_binding_narrows_unbounded_value():
	res = _check(
		dict(ANCHORED, locals=[{"name": "n", "type": "&'a Int"}], blocks=[["n = *raw p", "return n"]])
	)
	assert res.accepted


def test_copy_into_inferred_binding_keeps_the_tag():
	res = _check(
		dict(ANCHORED, locals=[{"name": "r"}, {"name": "s"}], blocks=[["r = *raw p", "s = r", "return s"]])
	)
	assert res.kinds() == [ConflictKind.UNBOUNDED_ESCAPE]


def test_call_tying_to_bounded_argument_narrows():
	res = _check(
		dict(
			ANCHORED,
			locals=[{"name": "r"}, {"name": "s"}],
			blocks=[["r = *raw p", "s = call pick(r, anchor)", "return s"]],
		),
		extra_fns=[PICK],
	)
	assert res.accepted


def test_type_punning_has_no_provenance():
	res = _check(
		{
			"lifetimes": ["'a"],
			"params": [{"name": "anchor", "type": "&'a Int"}, {"name": "v", "type": "Int"}],
			"ret": "&'a Int",
			"locals": [{"name": "t"}],
			"blocks": [["t = cast<&'_ Int> v", "return t"]],
		}
	)
	assert res.kinds() == [ConflictKind.UNBOUNDED_ESCAPE]


def test_output_lifetime_without_input_is_an_error():
	res = _check({"lifetimes": ["'a"], "ret": "&'a Int", "blocks": [["return static &'static Int"]]})
	assert res.kinds() == [ConflictKind.UNBOUNDED_ESCAPE]
	assert res.reports[0].severity == "error"
	assert "'a" in res.reports[0].message


def test_elided_output_without_inputs_is_an_error():
	res = _check({"ret": "&Int", "blocks": [["return static &'static Int"]]})
	assert res.kinds() == [ConflictKind.UNBOUNDED_ESCAPE]


def test_owned_return_is_exempt_from_the_signature_rule():
	res = _check(
		{
			"lifetimes": ["'a"],
			"ret": "View<'a>",
			"locals": [{"name": "v"}],
			"blocks": [["v = View { r: static &'static Int }", "return v"]],
		},
		types=[VIEW],
	)
	assert res.accepted


def test_outlives_bound_makes_output_traceable():
	assert untraceable_outputs(parse_type("&'b Int"), ["'a"], [("'a", "'b")]) == []
	assert untraceable_outputs(parse_type("&'b Int"), ["'a"], []) == ["'b"]
	assert untraceable_outputs(parse_type("&'static Int"), [], []) == []


def test_raw_deref_type_rules():
	ptr = RawPtrType(AppliedType("Int"))
	ref = raw_deref_type(ptr, BorrowKind.SHARED)
	assert ref is not None and ref.lifetime.unbounded
	assert raw_deref_type(None, BorrowKind.SHARED) is None
	with pytest.raises(MalformedIRError):
		raw_deref_type(ptr, BorrowKind.EXCLUSIVE)
	with pytest.raises(MalformedIRError):
		raw_deref_type(AppliedType("Int"), BorrowKind.SHARED)


def test_detector_only_flags_unbounded_values():
	detector = UnboundedDetector()
	point = ProgramPoint(0, 0)
	bounded = RefType(Lifetime.of_region(0, "'static"), AppliedType("Int"))
	assert detector.check_return(bounded, point=point, span=Span()) is None
	loose = tag_unbounded(bounded)
	assert contains_unbounded(loose)
	report = detector.check_return(loose, point=point, span=Span())
	assert report is not None and report.kind is ConflictKind.UNBOUNDED_ESCAPE
