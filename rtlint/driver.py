# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Driver: source files -> front end -> realtime checker -> diagnostics.

Every file is an independent compilation unit checked with a fresh checker.
With --json, prints `{"exit_code": n, "diagnostics": [...]}` on stdout;
otherwise prints one human-readable line per diagnostic (plus notes) to stderr.

Exit code is 1 when any error diagnostic was produced (syntax errors,
malformed markers, internal invariant failures, or violations under
--deny-warnings), else 0.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from rtlint import __version__
from rtlint.checker import RealtimeChecker
from rtlint.config import DEFAULT_CONFIG, RealtimeConfig
from rtlint.core.diagnostics import Diagnostic
from rtlint.core.errors import ScopeInvariantError
from rtlint.core.span import Span
from rtlint.parser import parse_source_to_hir

logger = logging.getLogger(__name__)

CODE_INTERNAL = "rt-internal"

_LOG_FORMAT = "%(relativeCreated)9.1fms [%(levelname)-5.5s] %(name)s: %(message)s"
_handler: Optional[logging.Handler] = None


@dataclass
class CheckResult:
	"""Diagnostics for one compilation unit."""

	path: Optional[str] = None
	diagnostics: List[Diagnostic] = field(default_factory=list)

	@property
	def exit_code(self) -> int:
		return 1 if any(d.is_error for d in self.diagnostics) else 0

	@property
	def errors(self) -> List[Diagnostic]:
		return [d for d in self.diagnostics if d.is_error]

	@property
	def warnings(self) -> List[Diagnostic]:
		return [d for d in self.diagnostics if d.severity == "warning"]


def check_source(text: str, path: Optional[str] = None, config: Optional[RealtimeConfig] = None) -> CheckResult:
	"""Parse, lower and check one unit of source text."""
	config = config or DEFAULT_CONFIG
	unit, diagnostics = parse_source_to_hir(text, path=path, config=config)
	result = CheckResult(path=path, diagnostics=list(diagnostics))
	if unit is None:
		return result
	checker = RealtimeChecker(config)
	try:
		checked = checker.check_unit(unit)
	except ScopeInvariantError as err:
		logger.error("internal error while checking %s: %s", path or "<input>", err)
		result.diagnostics.append(
			Diagnostic(
				message=f"internal error: {err}",
				code=CODE_INTERNAL,
				phase="internal",
				severity="error",
				span=Span(file=path),
			)
		)
		return result
	result.diagnostics.extend(checked.diagnostics)
	result.diagnostics.sort(key=_sort_key)
	return result


def check_file(path: Path | str, config: Optional[RealtimeConfig] = None) -> CheckResult:
	path = Path(path)
	return check_source(path.read_text(encoding="utf-8"), path=str(path), config=config)


def _sort_key(diag: Diagnostic) -> tuple:
	span = diag.span
	return (span.file or "", span.line or 0, span.column or 0)


def _configure_logging(verbosity: int) -> None:
	"""
	Set up the `rtlint` logger: 0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.

	Records are stamped with milliseconds since process start.
	"""
	global _handler
	level = logging.WARNING
	if verbosity == 1:
		level = logging.INFO
	elif verbosity >= 2:
		level = logging.DEBUG

	root = logging.getLogger("rtlint")
	if _handler is not None:
		root.removeHandler(_handler)
	_handler = logging.StreamHandler(sys.stderr)
	_handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT))
	root.setLevel(level)
	root.addHandler(_handler)


def _print_text(diagnostics: List[Diagnostic]) -> None:
	for d in diagnostics:
		print(d.render(), file=sys.stderr)
		for note in d.notes:
			print(f"  note: {note}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
	"""
	CLI: check each FILE for realtime-safety violations.

	With --json, prints structured diagnostics (phase/code/message/severity/
	file/line/column/notes) and an exit_code; otherwise prints human-readable
	messages to stderr.
	"""
	parser = argparse.ArgumentParser(prog="rtlint", description="Realtime-safety call-graph checker")
	parser.add_argument("source", type=Path, nargs="+", help="Path(s) to source file(s); each is checked independently")
	parser.add_argument(
		"--json",
		action="store_true",
		help="Emit diagnostics as JSON (phase/code/message/severity/file/line/column/notes)",
	)
	parser.add_argument(
		"--deny-warnings",
		action="store_true",
		help="Report realtime violations as errors (non-zero exit code)",
	)
	parser.add_argument(
		"--marker-prefix",
		default=None,
		help="Prefix of doc-comment markers (default: rt:)",
	)
	parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (repeatable)")
	parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
	args = parser.parse_args(argv)

	_configure_logging(args.verbose)
	try:
		config = RealtimeConfig.from_args(args)
	except ValueError as err:
		parser.error(str(err))

	diagnostics: List[Diagnostic] = []
	for source_path in args.source:
		try:
			result = check_file(source_path, config=config)
		except OSError as err:
			diagnostics.append(
				Diagnostic(
					message=f"cannot read {source_path}: {err.strerror or err}",
					code="rt-io",
					phase="driver",
					severity="error",
					span=Span(file=str(source_path)),
				)
			)
			continue
		logger.info("%s: %d diagnostic(s)", source_path, len(result.diagnostics))
		diagnostics.extend(result.diagnostics)

	exit_code = 1 if any(d.is_error for d in diagnostics) else 0
	if args.json:
		payload = {
			"exit_code": exit_code,
			"diagnostics": [d.to_json() for d in diagnostics],
		}
		print(json.dumps(payload))
	else:
		_print_text(diagnostics)
	return exit_code


__all__ = ["CheckResult", "check_source", "check_file", "main"]
