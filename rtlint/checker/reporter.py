# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Violation reporter: decide whether a classified call is a violation and
format the diagnostic.

A call is a violation iff the innermost body is realtime and the callee is
confirmed non-realtime. Unclassified callees never report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from rtlint.core.diagnostics import Diagnostic
from rtlint.core.span import Span

from .call_resolver import CallShape, CallTarget
from .scope_tracker import ScopeTracker

logger = logging.getLogger(__name__)

CODE_REALTIME_VIOLATION = "rt-calls-nonrealtime"
PHASE_REALTIME = "realtime"

_SHAPE_WORDING = {
	CallShape.METHOD: "method",
	CallShape.DIRECT: "function",
	CallShape.CLOSURE: "closure",
	CallShape.FN_REF: "function reference",
}


@dataclass(frozen=True)
class Violation:
	body_id: str
	target: CallTarget
	span: Span


class ViolationReporter:
	def __init__(self, severity: str = "warning") -> None:
		self.severity = severity
		self.diagnostics: List[Diagnostic] = []
		self.violations: List[Violation] = []

	def reset(self) -> None:
		self.diagnostics = []
		self.violations = []

	def report_if_violation(self, tracker: ScopeTracker, target: CallTarget, span: Span) -> bool:
		"""Emit one diagnostic when `target` is non-realtime inside a realtime body."""
		if not tracker.in_realtime_context():
			return False
		if not target.is_resolved or not target.tag.is_non_realtime:
			return False
		frame = tracker.current()
		body_id = frame.body_id if frame is not None else "<unknown>"
		violation = Violation(body_id=body_id, target=target, span=span)
		self.violations.append(violation)
		self.diagnostics.append(self._diagnostic(violation))
		logger.debug("violation in %s: calls %s '%s'", body_id, target.shape.value, target.callee)
		return True

	def _diagnostic(self, violation: Violation) -> Diagnostic:
		target = violation.target
		wording = _SHAPE_WORDING[target.shape]  # type: ignore[index]
		message = f"realtime function '{violation.body_id}' calls non-realtime {wording} '{target.callee}'"
		notes: List[str] = []
		if target.binding is not None:
			if target.binding.source is not None:
				notes.append(f"'{target.callee}' refers to '{target.binding.source}'")
			notes.append(f"'{target.callee}' is classified non-realtime by {target.binding.origin}")
		reason = target.decl.reason if target.decl is not None else None
		if reason:
			notes.append(f"reason: {reason}")
		return Diagnostic(
			message=message,
			code=CODE_REALTIME_VIOLATION,
			phase=PHASE_REALTIME,
			severity=self.severity,
			span=violation.span,
			notes=notes,
		)


__all__ = ["Violation", "ViolationReporter", "CODE_REALTIME_VIOLATION", "PHASE_REALTIME"]
