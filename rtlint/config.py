# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Pipeline policy shared by the front end, the checker and the driver.

The checker itself is policy-free: it decides *whether* a call is a violation.
How a violation is reported (warning vs error) and which marker spellings the
front end recognises live here so the CLI can adjust them per run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rtlint.core.safety import CALL_INFO_ATTR, DOC_MARKER_PREFIX, NON_REALTIME_ATTR, REALTIME_ATTR

_SEVERITIES = ("warning", "error")


@dataclass(frozen=True)
class RealtimeConfig:
	violation_severity: str = "warning"
	doc_marker_prefix: str = DOC_MARKER_PREFIX
	realtime_attr: str = REALTIME_ATTR
	non_realtime_attr: str = NON_REALTIME_ATTR
	call_info_attr: str = CALL_INFO_ATTR

	def __post_init__(self) -> None:
		if self.violation_severity not in _SEVERITIES:
			raise ValueError(
				f"violation_severity must be one of {', '.join(_SEVERITIES)}, got {self.violation_severity!r}"
			)
		if not self.doc_marker_prefix:
			raise ValueError("doc_marker_prefix must not be empty")

	@classmethod
	def from_args(cls, args: Any) -> "RealtimeConfig":
		"""Build from an argparse namespace (`--deny-warnings`, `--marker-prefix`)."""
		severity = "error" if getattr(args, "deny_warnings", False) else "warning"
		prefix = getattr(args, "marker_prefix", None) or DOC_MARKER_PREFIX
		return cls(violation_severity=severity, doc_marker_prefix=prefix)


DEFAULT_CONFIG = RealtimeConfig()

__all__ = ["RealtimeConfig", "DEFAULT_CONFIG"]
