# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
JSON interchange loader.

A program file looks like:

	{
	  "types": [
	    {"name": "Guard", "params": ["'a"], "fields": {"r": "&'a Int"}, "finalizer": true}
	  ],
	  "functions": [
	    {
	      "name": "f",
	      "lifetimes": ["'a"], "type_params": ["T"],
	      "params": [{"name": "x", "type": "&'a T"}],
	      "ret": "&'a T",
	      "outlives": [["'a", "'b"]],
	      "locals": [{"name": "r", "type": "&Int", "scope": 1}],
	      "scopes": [{"id": 1, "parent": 0, "blocks": [0]}],
	      "blocks": [["r = &x", "use r", "return x"]]
	    }
	  ]
	}

Types and statements are written in the textual IR understood by
`regionck.parser.parser`. A block is either a list of lines (its id is its
position) or `{"id": n, "stmts": [...]}`; its last line may be a terminator
and defaults to `return`. A line may be `{"stmt": "...", "line": n,
"column": n}` to carry a source location. A function without `blocks` is a
signature only.

A malformed type declaration or a file-level problem fails the whole load.
A malformed function only fails that function: it is kept under its name
with `load_error` set (and whatever part of its signature could be read),
so independent functions are still analysed.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from regionck.core.span import Span
from regionck.core.types_core import FieldDecl, GenericParam, TypeConstructor
from regionck.errors import IRSyntaxError, MalformedIRError
from regionck.ir import BasicBlock, FnDecl, LocalDecl, ParamDecl, Program, ScopeDecl, Terminator
from regionck.parser.parser import parse_stmt, parse_type


def _require(obj: Dict[str, Any], key: str, what: str, span: Span) -> Any:
	if not isinstance(obj, dict):
		raise MalformedIRError(f"{what} must be an object", span=span)
	if key not in obj:
		raise MalformedIRError(f"{what} is missing '{key}'", span=span)
	return obj[key]


def _int(value: Any, what: str, span: Span) -> int:
	# bool is an int subclass; `true` is never a valid id.
	if isinstance(value, bool) or not isinstance(value, int):
		raise MalformedIRError(f"{what} must be an integer, got {value!r}", span=span)
	return value


def _list(obj: Dict[str, Any], key: str, what: str, span: Span) -> list:
	value = obj.get(key, [])
	if not isinstance(value, list):
		raise MalformedIRError(f"{what} must be a list, got {value!r}", span=span)
	return value


def _names(obj: Dict[str, Any], key: str, what: str, span: Span) -> List[str]:
	names = _list(obj, key, what, span)
	for name in names:
		if not isinstance(name, str) or not name:
			raise MalformedIRError(f"{what} must be non-empty strings, got {name!r}", span=span)
	return names


def _span(obj: Any, file: Optional[str], fallback: Optional[Span] = None) -> Span:
	if isinstance(obj, dict) and ("line" in obj or "column" in obj):
		line = obj.get("line")
		column = obj.get("column")
		where = fallback or Span(file=file)
		return Span(
			file=file,
			line=None if line is None else _int(line, "line", where),
			column=None if column is None else _int(column, "column", where),
		)
	return fallback or Span(file=file)


def _type(text: Any, type_params, span: Span):
	if not isinstance(text, str):
		raise MalformedIRError(f"type must be a string, got {text!r}", span=span)
	try:
		return parse_type(text, type_params)
	except IRSyntaxError as err:
		col = span.column if err.column is None or span.column is None else span.column + err.column - 1
		raise MalformedIRError(f"{err} (in '{text}')", span=Span(file=span.file, line=span.line, column=col)) from err


def _ctor_from_dict(obj: Dict[str, Any], file: Optional[str]) -> TypeConstructor:
	span = _span(obj, file)
	name = _require(obj, "name", "type declaration", span)
	params = tuple(GenericParam(p, is_lifetime=p.startswith("'")) for p in _names(obj, "params", f"parameters of '{name}'", span))
	tparams = [p.name for p in params if not p.is_lifetime]
	raw_fields = obj.get("fields", {})
	if isinstance(raw_fields, dict):
		pairs = list(raw_fields.items())
	elif isinstance(raw_fields, list):
		pairs = [(_require(f, "name", f"field of '{name}'", span), _require(f, "type", f"field of '{name}'", span)) for f in raw_fields]
	else:
		raise MalformedIRError(f"fields of '{name}' must be an object or a list", span=span)
	seen = set()
	fields = []
	for fname, ftext in pairs:
		if fname in seen:
			raise MalformedIRError(f"duplicate field '{fname}' in type '{name}'", span=span)
		seen.add(fname)
		fields.append(FieldDecl(fname, _type(ftext, tparams, span)))
	return TypeConstructor(
		name=name,
		params=params,
		fields=tuple(fields),
		has_finalizer=bool(obj.get("finalizer", False)),
		span=span,
	)


def _outlives(raw: Any, span: Span) -> Tuple[str, str]:
	if isinstance(raw, str) and ":" in raw:
		longer, shorter = (part.strip() for part in raw.split(":", 1))
		return longer, shorter
	if isinstance(raw, (list, tuple)) and len(raw) == 2:
		return str(raw[0]), str(raw[1])
	raise MalformedIRError(f"outlives bound must be \"'a: 'b\" or a pair, got {raw!r}", span=span)


def _block_from(raw: Any, position: int, tparams: List[str], file: Optional[str], fn_span: Span) -> BasicBlock:
	if isinstance(raw, dict):
		block_id = _int(_require(raw, "id", "block", fn_span), "block id", fn_span)
		lines = _list(raw, "stmts", f"statements of block {block_id}", fn_span)
	elif isinstance(raw, list):
		block_id = position
		lines = raw
	else:
		raise MalformedIRError(f"block must be a list or an object, got {raw!r}", span=fn_span)
	block = BasicBlock(block_id)
	for idx, entry in enumerate(lines):
		span = _span(entry, file, fn_span)
		text = _require(entry, "stmt", "statement", span) if isinstance(entry, dict) else entry
		if not isinstance(text, str):
			raise MalformedIRError(f"statement must be a string, got {text!r}", span=span)
		try:
			node = parse_stmt(text, tparams, span=span)
		except IRSyntaxError as err:
			raise MalformedIRError(str(err), span=span) from err
		if isinstance(node, Terminator):
			if idx != len(lines) - 1:
				raise MalformedIRError(f"terminator '{text}' must end block {block_id}", span=span)
			block.terminator = node
		else:
			block.statements.append(node)
	return block


def _signature_into(fn: FnDecl, obj: Dict[str, Any], file: Optional[str]) -> List[str]:
	span = fn.span
	fn.lifetime_params = tuple(_names(obj, "lifetimes", f"lifetimes of '{fn.name}'", span))
	tparams = _names(obj, "type_params", f"type parameters of '{fn.name}'", span)
	fn.type_params = tuple(tparams)
	params = []
	for p in _list(obj, "params", f"parameters of '{fn.name}'", span):
		pspan = _span(p, file, span)
		pname = _require(p, "name", f"parameter of '{fn.name}'", pspan)
		params.append(ParamDecl(pname, _type(_require(p, "type", f"parameter '{pname}'", pspan), tparams, pspan), span=pspan))
	fn.params = tuple(params)
	fn.outlives = tuple(_outlives(o, span) for o in _list(obj, "outlives", f"outlives bounds of '{fn.name}'", span))
	if "ret" in obj:
		fn.ret = _type(obj["ret"], tparams, span)
	return tparams


def _body_into(fn: FnDecl, obj: Dict[str, Any], tparams: List[str], file: Optional[str]) -> None:
	span = fn.span
	locals_ = []
	for loc in _list(obj, "locals", f"locals of '{fn.name}'", span):
		lspan = _span(loc, file, span)
		lname = _require(loc, "name", f"local of '{fn.name}'", lspan)
		lty = loc.get("type")
		locals_.append(
			LocalDecl(
				lname,
				_type(lty, tparams, lspan) if lty is not None else None,
				scope=_int(loc.get("scope", 0), f"scope of local '{lname}'", lspan),
				span=lspan,
			)
		)
	scopes = []
	for s in _list(obj, "scopes", f"scopes of '{fn.name}'", span):
		sid = _int(_require(s, "id", "scope", span), "scope id", span)
		parent = s.get("parent", 0)
		scopes.append(
			ScopeDecl(
				sid,
				parent=None if parent is None else _int(parent, f"parent of scope {sid}", span),
				blocks=tuple(_int(b, f"block of scope {sid}", span) for b in _list(s, "blocks", f"blocks of scope {sid}", span)),
			)
		)
	blocks = [_block_from(raw, idx, tparams, file, span) for idx, raw in enumerate(_list(obj, "blocks", f"blocks of '{fn.name}'", span))]
	ids = [b.id for b in blocks]
	if len(set(ids)) != len(ids):
		raise MalformedIRError(f"duplicate block ids in '{fn.name}'", span=span)
	fn.locals = tuple(locals_)
	fn.scopes = tuple(scopes)
	fn.blocks = blocks


def _fn_from_dict(obj: Dict[str, Any], file: Optional[str]) -> FnDecl:
	"""
	Build one function. Only a missing or invalid name propagates; any other
	problem is recorded on the returned FnDecl as `load_error`.
	"""
	span = _span(obj, file)
	name = _require(obj, "name", "function", span)
	if not isinstance(name, str) or not name:
		raise MalformedIRError(f"function name must be a non-empty string, got {name!r}", span=span)
	fn = FnDecl(name=name, span=span)
	try:
		tparams = _signature_into(fn, obj, file)
		_body_into(fn, obj, tparams, file)
	except MalformedIRError as err:
		fn.blocks = []
		fn.load_error = err
	return fn


def program_from_dict(data: Dict[str, Any], *, file: Optional[str] = None) -> Program:
	"""Build a Program from the decoded JSON interchange form."""
	span = Span(file=file)
	if not isinstance(data, dict):
		raise MalformedIRError("program must be a JSON object", span=span)
	program = Program()
	for obj in _list(data, "types", "types", span):
		ctor = _ctor_from_dict(obj, file)
		if ctor.name in program.types:
			raise MalformedIRError(f"type '{ctor.name}' declared twice", span=ctor.span)
		program.types[ctor.name] = ctor
	for obj in _list(data, "functions", "functions", span):
		fn = _fn_from_dict(obj, file)
		if fn.name in program.functions:
			raise MalformedIRError(f"function '{fn.name}' declared twice", span=fn.span)
		program.functions[fn.name] = fn
	return program


def load_program(path: str | Path) -> Program:
	"""Read and decode a JSON program file."""
	path = Path(path)
	try:
		data = json.loads(path.read_text(encoding="utf-8"))
	except json.JSONDecodeError as err:
		raise MalformedIRError(f"invalid JSON: {err.msg}", span=Span(file=str(path), line=err.lineno, column=err.colno)) from err
	except UnicodeDecodeError as err:
		raise MalformedIRError(f"program is not valid UTF-8: {err.reason}", span=Span(file=str(path))) from err
	return program_from_dict(data, file=str(path))


__all__ = ["program_from_dict", "load_program"]
