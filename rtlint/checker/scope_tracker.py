# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Nested execution-context stack: one frame per body being traversed."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from rtlint.core.errors import ScopeInvariantError
from rtlint.core.safety import SafetyTag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContextFrame:
	body_id: str
	realtime: bool


class ScopeTracker:
	def __init__(self) -> None:
		self._frames: List[ContextFrame] = []

	def reset(self) -> None:
		self._frames = []

	def enter(self, body_id: str, tag: SafetyTag) -> ContextFrame:
		frame = ContextFrame(body_id=body_id, realtime=tag.is_realtime)
		self._frames.append(frame)
		logger.debug("enter %s (realtime=%s, depth=%d)", body_id, frame.realtime, len(self._frames))
		return frame

	def leave(self, body_id: str) -> None:
		if not self._frames:
			raise ScopeInvariantError(f"leaving '{body_id}' with no body on the context stack")
		top = self._frames[-1]
		if top.body_id != body_id:
			raise ScopeInvariantError(f"leaving '{body_id}' but the innermost body is '{top.body_id}'")
		self._frames.pop()
		logger.debug("leave %s (depth=%d)", body_id, len(self._frames))

	def in_realtime_context(self) -> bool:
		"""True iff the innermost body is realtime."""
		return bool(self._frames) and self._frames[-1].realtime

	def current(self) -> Optional[ContextFrame]:
		return self._frames[-1] if self._frames else None

	@property
	def depth(self) -> int:
		return len(self._frames)


__all__ = ["ContextFrame", "ScopeTracker"]
