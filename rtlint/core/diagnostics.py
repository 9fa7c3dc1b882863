"""
Common diagnostic structure for the front end, the checker and the driver.

A diagnostic is a message plus span/metadata. Phases in use:
  - "parser": syntax errors and malformed annotation markers
  - "realtime": realtime-calls-non-realtime violations
  - "internal": traversal invariant violations
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .span import Span


@dataclass
class Diagnostic:
	"""Represents a checker diagnostic (error/warning/etc.)."""

	message: str
	code: str | None = None
	phase: str | None = None
	severity: str = "error"
	span: Span = field(default_factory=Span)  # Span() denotes unknown.
	notes: list[str] = field(default_factory=list)

	def __post_init__(self) -> None:
		# Normalize missing/raw spans to Span so downstream tooling can rely on
		# a structured object instead of None.
		if not isinstance(self.span, Span):
			self.span = Span.from_loc(self.span)

	@property
	def is_error(self) -> bool:
		return self.severity == "error"

	def render(self, source: Optional[str] = None) -> str:
		"""Human-readable single line: `file:line:col: severity: message [code]`."""
		file = self.span.file or source or "<input>"
		text = f"{file}:{self.span.render()}: {self.severity}: {self.message}"
		if self.code:
			text += f" [{self.code}]"
		return text

	def to_json(self, source: Optional[str] = None, phase: Optional[str] = None) -> Dict[str, Any]:
		"""Render to a structured JSON-friendly dict."""
		return {
			"phase": self.phase or phase,
			"code": self.code,
			"message": self.message,
			"severity": self.severity,
			"file": self.span.file or source,
			"line": self.span.line,
			"column": self.span.column,
			"notes": list(self.notes),
		}


__all__ = ["Diagnostic"]
