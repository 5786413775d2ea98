# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Textual IR parser (lark) and the JSON program loader built on it."""

from regionck.parser.loader import load_program, program_from_dict
from regionck.parser.parser import parse_stmt, parse_type

__all__ = ["parse_type", "parse_stmt", "program_from_dict", "load_program"]
