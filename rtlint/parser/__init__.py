"""
Front-end adapter: source text -> parser AST -> HIR.

Parse failures and malformed annotation markers are returned as parser-phase
diagnostics instead of raised, so the driver can report every problem in a
file and keep going with the remaining files.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from rtlint import hir_nodes as H
from rtlint.config import RealtimeConfig
from rtlint.core.diagnostics import Diagnostic
from rtlint.core.errors import FrontendError
from rtlint.core.span import Span

from . import ast as parser_ast
from . import parser as _parser

logger = logging.getLogger(__name__)

CODE_SYNTAX = "rt-syntax"


def parse_program(source: str) -> parser_ast.Program:
	"""Parse source text into the parser AST (raises on syntax errors)."""
	return _parser.parse_program(source)


def parse_source_to_hir(
	source: str,
	path: Optional[str] = None,
	config: Optional[RealtimeConfig] = None,
) -> Tuple[Optional[H.HUnit], List[Diagnostic]]:
	"""
	Parse and lower one compilation unit.

	Returns `(unit, diagnostics)`. `unit` is None when the source could not be
	parsed; marker diagnostics do not prevent lowering.
	"""
	try:
		program = _parser.parse_program(source)
	except FrontendError as err:
		return None, [_diagnostic(str(err), err.loc, path)]
	except UnexpectedInput as err:
		span = Span(
			file=path,
			line=getattr(err, "line", None),
			column=getattr(err, "column", None),
			raw=err,
		)
		return None, [Diagnostic(message=_syntax_message(err), code=CODE_SYNTAX, phase="parser", severity="error", span=span)]

	# ast_to_hir imports this package for the AST node classes.
	from rtlint.ast_to_hir import AstToHIR

	lowering = AstToHIR(file=path, config=config)
	try:
		unit = lowering.lower_program(program)
	except FrontendError as err:
		return None, lowering.diagnostics + [_diagnostic(str(err), err.loc, path)]
	logger.debug("lowered %s: %d marker diagnostic(s)", path or "<input>", len(lowering.diagnostics))
	return unit, lowering.diagnostics


def parse_file_to_hir(path: Path | str, config: Optional[RealtimeConfig] = None) -> Tuple[Optional[H.HUnit], List[Diagnostic]]:
	path = Path(path)
	return parse_source_to_hir(path.read_text(encoding="utf-8"), path=str(path), config=config)


def _syntax_message(err: UnexpectedInput) -> str:
	if isinstance(err, UnexpectedToken):
		if err.token.type == "$END":
			return "syntax error: unexpected end of input"
		expected = ", ".join(sorted(err.expected)[:8])
		return f"syntax error: unexpected {err.token.type} {err.token.value!r} (expected one of: {expected})"
	if isinstance(err, UnexpectedCharacters):
		return f"syntax error: unexpected character {err.char!r}"
	if isinstance(err, UnexpectedEOF):
		return "syntax error: unexpected end of input"
	return f"syntax error: {err}"


def _diagnostic(message: str, loc: object | None, path: Optional[str]) -> Diagnostic:
	"""Helper to create a parser Diagnostic from a parser location."""
	return Diagnostic(message=message, code=CODE_SYNTAX, phase="parser", severity="error", span=Span.from_loc(loc, file=path))


__all__ = ["parse_program", "parse_source_to_hir", "parse_file_to_hir", "CODE_SYNTAX"]
