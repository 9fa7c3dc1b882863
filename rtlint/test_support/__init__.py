# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Shared helpers for tests that need front-end or checker inputs.

These helpers avoid re-spelling the parse -> lower -> table -> check chain in
every test module, and provide small builders for hand-made HIR bodies so
checker tests can bypass the parser when the source text would obscure
the property under test.
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from rtlint import hir_nodes as H
from rtlint.checker import CheckedUnit, RealtimeChecker
from rtlint.config import RealtimeConfig
from rtlint.core.diagnostics import Diagnostic
from rtlint.core.safety import DeclMarker, SafetyTag
from rtlint.decl_table import DeclTable
from rtlint.driver import CheckResult, check_source
from rtlint.parser import parse_source_to_hir

PROGRAMS_DIR = Path(__file__).resolve().parent.parent / "tests" / "programs"


def lower(source: str, path: Optional[str] = None) -> H.HUnit:
	"""Parse and lower dedented source; fails the test on any front-end diagnostic."""
	unit, diagnostics = parse_source_to_hir(textwrap.dedent(source), path=path)
	assert not diagnostics, [d.render() for d in diagnostics]
	assert unit is not None
	return unit


def table_for(source: str) -> DeclTable:
	return DeclTable.build(lower(source))


def check_unit(source: str, config: Optional[RealtimeConfig] = None) -> CheckedUnit:
	"""Run the checker directly (no driver) on clean source text."""
	return RealtimeChecker(config).check_unit(lower(source))


def run(source: str, path: Optional[str] = None, config: Optional[RealtimeConfig] = None) -> CheckResult:
	"""Full pipeline through the driver API."""
	return check_source(textwrap.dedent(source), path=path, config=config)


def violation_messages(source: str) -> List[str]:
	return [d.message for d in check_unit(source).diagnostics]


def codes(diagnostics: Iterable[Diagnostic]) -> List[str]:
	return [d.code or "" for d in diagnostics]


def program_path(name: str) -> Path:
	return PROGRAMS_DIR / name


def fn(
	name: str,
	statements: Sequence[H.HStmt] = (),
	tag: Optional[SafetyTag] = None,
	params: Sequence[H.HParam] = (),
	body: bool = True,
) -> H.HFunction:
	"""Build an HFunction, optionally tagged, with the given body statements."""
	marker = DeclMarker(tag=tag) if tag is not None else None
	return H.HFunction(
		name=name,
		params=list(params),
		ret_type=None,
		body=H.HBlock(statements=list(statements)) if body else None,
		marker=marker,
	)


def call(name: str, *args: H.HExpr) -> H.HExprStmt:
	"""`name(args)` as a statement; `a::b` names become paths."""
	segments = name.split("::")
	target: H.HExpr = H.HVar(name) if len(segments) == 1 else H.HPath(segments)
	return H.HExprStmt(expr=H.HCall(fn=target, args=list(args)))


def unit_of(*functions: H.HFunction) -> H.HUnit:
	return H.HUnit(root=H.HModule(name=None, functions=list(functions)))


__all__ = [
	"PROGRAMS_DIR",
	"lower",
	"table_for",
	"check_unit",
	"run",
	"violation_messages",
	"codes",
	"program_path",
	"fn",
	"call",
	"unit_of",
]
