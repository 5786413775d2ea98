# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
regionck.core: shared value types used across the analysis passes.

Modules:
  - span: source spans and program points
  - diagnostics: Diagnostic structure handed to renderers
  - types_core: resolved types, lifetimes, variance lattice, declarations
  - type_subst: generic substitution and lifetime resolution
"""

__all__ = [
	"span",
	"diagnostics",
	"types_core",
	"type_subst",
]
