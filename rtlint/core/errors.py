# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Exception hierarchy shared by the front end and the checker."""

from __future__ import annotations

from typing import Any


class RtlintError(Exception):
	"""Base class for rtlint failures."""


class FrontendError(RtlintError, ValueError):
	"""
	User-facing front-end error raised while building the AST/HIR.

	Carries a best-effort location so the driver can report a pinned parser
	diagnostic instead of crashing with a raw Python exception.
	"""

	def __init__(self, message: str, *, loc: Any = None) -> None:
		super().__init__(message)
		self.loc = loc


class ScopeInvariantError(RtlintError, RuntimeError):
	"""Raised when body enter/leave events do not nest properly."""


__all__ = ["RtlintError", "FrontendError", "ScopeInvariantError"]
