#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
regionck driver: load a program, freeze declarations, check every function.

The declaration table is frozen exactly once before any function is
analysed. Functions are then checked one by one against the frozen table; a
function whose IR is malformed is reported and skipped without affecting the
others. A variance failure is fatal for the whole program because every
subtype judgement depends on the table.

CLI usage mirrors the compiler driver it grew out of:

	python -m regionck program.json [--json]

Human-readable findings go to stderr as `file:line:col: severity: message`;
with `--json` a single payload is printed on stdout instead.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from regionck.borrow_checker_pass import BorrowChecker
from regionck.conflicts import ConflictKind, ConflictReport, FunctionResult, Verdict
from regionck.core.diagnostics import Diagnostic
from regionck.core.span import Span
from regionck.errors import MalformedIRError, RecursiveVarianceUnresolved
from regionck.ir import Program
from regionck.options import SEVERITIES, AnalysisOptions
from regionck.parser import load_program
from regionck.variance import DEFAULT_MAX_ROUNDS, VarianceTable


@dataclass
class ProgramResult:
	"""
	Outcome of one program run.

	`functions` holds a result per analysed function and per function the
	loader could not build (signature-only functions are not analysed). `reports` are program-level findings (variance
	failures); `errors` are malformed declarations found while freezing.
	"""

	functions: Dict[str, FunctionResult] = field(default_factory=dict)
	reports: List[ConflictReport] = field(default_factory=list)
	errors: List[MalformedIRError] = field(default_factory=list)

	@property
	def accepted(self) -> bool:
		if self.reports or self.errors:
			return False
		return all(res.accepted for res in self.functions.values())

	def diagnostics(self) -> List[Diagnostic]:
		out = [r.to_diagnostic() for r in self.reports]
		for err in self.errors:
			out.append(Diagnostic(message=str(err), code="malformed-ir", phase="variance", severity="error", span=err.span))
		for res in self.functions.values():
			out.extend(res.diagnostics())
		return out


def _declaration_failure(program: Program, result: ProgramResult) -> None:
	for fn in program.functions.values():
		if fn.load_error is not None:
			result.functions[fn.name] = FunctionResult(fn.name, aborted=True, error=fn.load_error)
		elif not fn.is_declaration:
			result.functions[fn.name] = FunctionResult(fn.name, aborted=True)


def analyze_program(program: Program, options: AnalysisOptions | None = None) -> ProgramResult:
	"""Freeze the type declarations of `program`, then check each function body."""
	options = options or AnalysisOptions()
	result = ProgramResult()
	table = VarianceTable(max_rounds=options.max_variance_rounds)
	try:
		for ctor in program.types.values():
			table.declare(ctor)
		table.freeze()
	except RecursiveVarianceUnresolved as exc:
		spans = [program.types[name].span for name in exc.ctors if name in program.types]
		result.reports.append(
			ConflictReport(
				kind=ConflictKind.RECURSIVE_VARIANCE_UNRESOLVED,
				message=str(exc),
				span=spans[0] if spans else Span(),
				notes=[f"raise --max-variance-rounds above {exc.rounds} or break the cycle"],
			)
		)
		_declaration_failure(program, result)
		return result
	except MalformedIRError as exc:
		result.errors.append(exc)
		_declaration_failure(program, result)
		return result

	checker = BorrowChecker(program, table, options)
	for fn in program.functions.values():
		if fn.load_error is not None:
			result.functions[fn.name] = FunctionResult(fn.name, aborted=True, error=fn.load_error)
		elif not fn.is_declaration:
			result.functions[fn.name] = checker.check_function(fn)
	return result


def _render_human(diag: Diagnostic, source: Path) -> str:
	file = diag.span.file or str(source)
	lines = [f"{file}:{diag.span.render()}: {diag.severity}: {diag.message}"]
	lines.extend(f"  note: {note}" for note in diag.notes)
	return "\n".join(lines)


def _diag_to_json(diag: Diagnostic, source: Path) -> dict:
	payload = diag.to_json()
	if payload["file"] is None:
		payload["file"] = str(source)
	return payload


def main(argv: list[str] | None = None) -> int:
	"""
	Entry point for `python -m regionck` / the `regionck` script.

	Returns 0 when every function is accepted, 1 otherwise (including load
	failures).
	"""
	parser = argparse.ArgumentParser(description="region and borrow checker for elaborated IR")
	parser.add_argument("program", type=Path, help="Path to a JSON program file")
	parser.add_argument(
		"--json",
		action="store_true",
		help="Emit a JSON payload with functions, diagnostics and exit_code",
	)
	parser.add_argument(
		"--max-variance-rounds",
		type=int,
		default=DEFAULT_MAX_ROUNDS,
		help=f"Round limit for variance inference (default: {DEFAULT_MAX_ROUNDS})",
	)
	parser.add_argument(
		"--unbounded-severity",
		choices=SEVERITIES,
		default="warning",
		help="Severity of unbounded values escaping through return (default: warning)",
	)
	args = parser.parse_args(argv)

	try:
		options = AnalysisOptions(
			max_variance_rounds=args.max_variance_rounds,
			unbounded_severity=args.unbounded_severity,
		)
	except ValueError as exc:
		parser.error(str(exc))

	source: Path = args.program
	try:
		program = load_program(source)
	except (OSError, MalformedIRError) as exc:
		span = getattr(exc, "span", None) or Span(file=str(source))
		diag = Diagnostic(message=str(exc), code="malformed-ir", phase="parse", severity="error", span=span)
		if args.json:
			print(json.dumps({"exit_code": 1, "functions": [], "diagnostics": [_diag_to_json(diag, source)]}))
		else:
			print(_render_human(diag, source), file=sys.stderr)
		return 1

	result = analyze_program(program, options)
	exit_code = 0 if result.accepted else 1
	diagnostics = result.diagnostics()

	if args.json:
		payload = {
			"exit_code": exit_code,
			"functions": [
				{
					"name": res.name,
					"verdict": res.verdict.value,
					"aborted": res.aborted,
				}
				for res in result.functions.values()
			],
			"diagnostics": [_diag_to_json(d, source) for d in diagnostics],
		}
		print(json.dumps(payload))
	else:
		for diag in diagnostics:
			print(_render_human(diag, source), file=sys.stderr)
		for res in result.functions.values():
			if res.verdict is Verdict.REJECTED:
				print(f"{source}: {res.name}: rejected", file=sys.stderr)
	return exit_code


__all__ = ["ProgramResult", "analyze_program", "main"]


if __name__ == "__main__":
	sys.exit(main())
