# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Analysis knobs, populated from CLI flags by the driver."""

from __future__ import annotations

from dataclasses import dataclass

from regionck.variance import DEFAULT_MAX_ROUNDS

SEVERITIES = ("warning", "error")


@dataclass(frozen=True)
class AnalysisOptions:
	"""
	max_variance_rounds: round limit for variance inference; hitting it is a
	  fatal declaration error.
	unbounded_severity: severity of unbounded values escaping via return.
	"""

	max_variance_rounds: int = DEFAULT_MAX_ROUNDS
	unbounded_severity: str = "warning"

	def __post_init__(self) -> None:
		if self.max_variance_rounds < 1:
			raise ValueError("max_variance_rounds must be at least 1")
		if self.unbounded_severity not in SEVERITIES:
			raise ValueError(f"unbounded_severity must be one of {', '.join(SEVERITIES)}")


__all__ = ["AnalysisOptions", "SEVERITIES"]
