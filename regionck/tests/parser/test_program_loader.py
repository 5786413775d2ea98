#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""JSON interchange form -> Program."""

import json

import pytest

from regionck.core.types_core import AppliedType, Lifetime, RefType
from regionck.errors import MalformedIRError
from regionck.ir import BorrowStmt
from regionck.parser import load_program, program_from_dict


def _program():
	return {
		"types": [
			{"name": "Guard", "params": ["'a"], "fields": {"r": "&'a Int"}, "finalizer": True, "line": 1},
			{"name": "Pair", "params": ["T"], "fields": [{"name": "a", "type": "T"}, {"name": "b", "type": "T"}]},
		],
		"functions": [
			{
				"name": "f",
				"lifetimes": ["'a"],
				"params": [{"name": "v", "type": "&'a Int"}],
				"ret": "&'a Int",
				"outlives": ["'a: 'b", ["'a", "'c"]],
				"locals": [{"name": "r", "type": "&Int", "scope": 1}],
				"scopes": [{"id": 1, "parent": 0, "blocks": [1]}],
				"blocks": [
					["goto 1"],
					{"id": 1, "stmts": [{"stmt": "r = &*v", "line": 7, "column": 3}, "use r"]},
				],
				"line": 5,
			},
			{"name": "sig", "params": [{"name": "x", "type": "Int"}]},
		],
	}


def test_types_and_signatures_are_decoded():
	program = program_from_dict(_program(), file="p.json")
	guard = program.types["Guard"]
	assert guard.has_finalizer
	assert guard.lifetime_params == ("'a",)
	assert guard.get_field("r").ty == RefType(Lifetime.named("'a"), AppliedType("Int"))
	assert [f.name for f in program.types["Pair"].fields] == ["a", "b"]
	fn = program.functions["f"]
	assert fn.outlives == (("'a", "'b"), ("'a", "'c"))
	assert fn.locals[0].scope == 1
	assert fn.scopes[0].blocks == (1,)
	assert program.functions["sig"].is_declaration
	assert program.functions["sig"].ret == AppliedType("Unit")


def test_blocks_and_spans():
	fn = program_from_dict(_program(), file="p.json").functions["f"]
	assert [b.id for b in fn.blocks] == [0, 1]
	term = fn.blocks[0].terminator
	assert (term.kind, term.targets) == ("jump", [1])
	borrow = fn.blocks[1].statements[0]
	assert isinstance(borrow, BorrowStmt)
	assert (borrow.span.file, borrow.span.line, borrow.span.column) == ("p.json", 7, 3)
	# A block without a terminator line returns.
	assert fn.blocks[1].terminator.kind == "return"
	assert fn.blocks[1].statements[1].span.line == 5


def test_terminator_in_the_middle_of_a_block_is_malformed():
	data = {"functions": [{"name": "f", "blocks": [["return", "use x"]]}]}
	fn = program_from_dict(data).functions["f"]
	assert isinstance(fn.load_error, MalformedIRError)
	assert fn.blocks == []


def test_syntax_errors_become_malformed_ir_with_location():
	data = {"functions": [{"name": "f", "blocks": [[{"stmt": "r = = x", "line": 9, "column": 1}]]}]}
	fn = program_from_dict(data, file="bad.json").functions["f"]
	assert fn.load_error is not None
	assert (fn.load_error.span.file, fn.load_error.span.line) == ("bad.json", 9)


def test_malformed_function_keeps_the_others_loadable():
	data = {
		"functions": [
			{"name": "bad", "params": [{"name": "v", "type": "&'a Int"}], "lifetimes": ["'a"], "blocks": [["r = = x"]]},
			{"name": "good", "locals": [{"name": "x", "type": "Int"}], "blocks": [["x = static Int", "return"]]},
		]
	}
	program = program_from_dict(data)
	bad, good = program.functions["bad"], program.functions["good"]
	assert bad.load_error is not None
	# The signature was readable, so callers still see it.
	assert [p.name for p in bad.params] == ["v"]
	assert good.load_error is None
	assert len(good.blocks[0].statements) == 1


@pytest.mark.parametrize(
	"fn",
	[
		{"name": "f", "locals": [{"name": "x", "scope": "one"}], "blocks": [["return"]]},
		{"name": "f", "blocks": [{"id": "zero", "stmts": ["return"]}]},
		{"name": "f", "scopes": [{"id": 1, "parent": 0, "blocks": ["0"]}], "blocks": [["return"]]},
		{"name": "f", "blocks": [[{"stmt": "return", "line": "nine"}]]},
		{"name": "f", "params": "x"},
		{"name": "f", "lifetimes": [1]},
	],
)
def test_non_integer_and_ill_typed_values_are_malformed(fn):
	loaded = program_from_dict({"functions": [fn]}).functions["f"]
	assert isinstance(loaded.load_error, MalformedIRError)


def test_ill_typed_program_sections_are_malformed():
	with pytest.raises(MalformedIRError):
		program_from_dict({"functions": {"name": "f"}})
	with pytest.raises(MalformedIRError):
		program_from_dict({"types": [{"name": "T", "params": [3]}]})


def test_duplicates_are_malformed():
	with pytest.raises(MalformedIRError):
		program_from_dict({"functions": [{"name": "f"}, {"name": "f"}]})
	with pytest.raises(MalformedIRError):
		program_from_dict({"types": [{"name": "T", "fields": {"a": "Int", "b": "Int"}}, {"name": "T"}]})
	fn = program_from_dict({"functions": [{"name": "f", "blocks": [{"id": 0}, {"id": 0}]}]}).functions["f"]
	assert "duplicate block ids" in str(fn.load_error)


def test_missing_keys_are_reported():
	with pytest.raises(MalformedIRError) as excinfo:
		program_from_dict({"functions": [{"params": []}]})
	assert "name" in str(excinfo.value)


def test_load_program_reads_files(tmp_path):
	path = tmp_path / "prog.json"
	path.write_text(json.dumps(_program()))
	program = load_program(path)
	assert set(program.functions) == {"f", "sig"}
	assert program.functions["f"].span.file == str(path)


def test_load_program_rejects_invalid_json(tmp_path):
	path = tmp_path / "broken.json"
	path.write_text("{ not json")
	with pytest.raises(MalformedIRError) as excinfo:
		load_program(path)
	assert excinfo.value.span.file == str(path)


def test_load_program_rejects_undecodable_bytes(tmp_path):
	path = tmp_path / "latin1.json"
	path.write_bytes(b'{"functions": [{"name": "caf\xe9"}]}')
	with pytest.raises(MalformedIRError) as excinfo:
		load_program(path)
	assert "UTF-8" in str(excinfo.value)
