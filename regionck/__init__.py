# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
regionck: reference-lifetime and variance checker.

Modules:
  ir: elaborated input IR (declarations, CFG, statements)
  parser: textual IR grammar and JSON program loader
  regions: region containment model
  liveness: loan regions from CFG liveness
  variance: variance inference for type constructors
  subtyping: subtype oracle over resolved types
  borrow_checker: places and per-location borrow state
  borrow_checker_pass: per-function borrow checker
  unbounded: unbounded-lifetime detector
  conflicts: conflict reports and verdicts
  options: analysis knobs
  driver: program-level entrypoint and CLI
"""

__all__ = [
	"core",
	"ir",
	"parser",
	"regions",
	"liveness",
	"variance",
	"subtyping",
	"borrow_checker",
	"borrow_checker_pass",
	"unbounded",
	"conflicts",
	"options",
	"driver",
]
