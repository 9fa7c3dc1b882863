# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Classification store: declaration tags plus per-body binding classifications.

Declaration tags come straight from the declaration table and never change.
Binding classifications live in a stack of body frames; each frame is a
stack of lexical block scopes. Lookups only ever see the innermost body
frame, so a binding can never leak into a sibling or an enclosing body, and
within a body the most recent binding of a name wins (shadowing).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional

from rtlint.core.errors import ScopeInvariantError
from rtlint.core.safety import SafetyTag
from rtlint.decl_table import DeclTable
from rtlint.type_resolver import UNKNOWN, TypeRef

logger = logging.getLogger(__name__)


class BindingKind(Enum):
	CLOSURE = "closure"
	FN_REF = "fn_ref"
	VALUE = "value"


@dataclass(frozen=True)
class BindingInfo:
	name: str
	tag: SafetyTag = SafetyTag.UNCLASSIFIED
	kind: BindingKind = BindingKind.VALUE
	source: Optional[str] = None  # declaration id a function reference points at
	value_type: TypeRef = UNKNOWN
	origin: str = "let"  # human-readable provenance used in diagnostic notes

	@property
	def is_classified(self) -> bool:
		return self.tag is not SafetyTag.UNCLASSIFIED


@dataclass
class _BodyFrame:
	body_id: str
	scopes: List[Dict[str, BindingInfo]] = field(default_factory=lambda: [{}])


class ClassificationStore:
	def __init__(self, table: Optional[DeclTable] = None) -> None:
		self.table = table
		self._frames: List[_BodyFrame] = []

	def reset(self, table: Optional[DeclTable] = None) -> None:
		"""Fresh state for a new compilation unit."""
		self.table = table
		self._frames = []

	# --- declarations ---

	def declared_tag(self, decl_id: Optional[str]) -> SafetyTag:
		"""Tag of a declaration; unknown, unmarked and extern declarations are unclassified."""
		if decl_id is None or self.table is None:
			return SafetyTag.UNCLASSIFIED
		decl = self.table.get(decl_id)
		if decl is None:
			return SafetyTag.UNCLASSIFIED
		return decl.tag

	# --- body frames ---

	@property
	def body_id(self) -> Optional[str]:
		return self._frames[-1].body_id if self._frames else None

	@property
	def depth(self) -> int:
		return len(self._frames)

	def enter_body(self, body_id: str) -> None:
		self._frames.append(_BodyFrame(body_id=body_id))

	def leave_body(self, body_id: str) -> None:
		if not self._frames or self._frames[-1].body_id != body_id:
			current = self._frames[-1].body_id if self._frames else None
			raise ScopeInvariantError(f"leaving bindings of '{body_id}' but the innermost body is '{current}'")
		self._frames.pop()

	def clear_body(self) -> None:
		"""Drop every binding of the innermost body (the frame itself stays)."""
		if self._frames:
			self._frames[-1].scopes = [{}]

	def push_block(self) -> None:
		self._current().scopes.append({})

	def pop_block(self) -> None:
		frame = self._current()
		if len(frame.scopes) == 1:
			raise ScopeInvariantError(f"unbalanced block scopes in '{frame.body_id}'")
		frame.scopes.pop()

	# --- bindings ---

	def set_binding(
		self,
		name: str,
		tag: SafetyTag,
		kind: BindingKind = BindingKind.VALUE,
		*,
		source: Optional[str] = None,
		value_type: TypeRef = UNKNOWN,
		origin: str = "let",
	) -> BindingInfo:
		"""Introduce (or shadow) `name` in the innermost block scope."""
		info = BindingInfo(name=name, tag=tag, kind=kind, source=source, value_type=value_type, origin=origin)
		self._current().scopes[-1][name] = info
		logger.debug("[%s] bind %s: %s (%s, from %s)", self.body_id, name, tag.value, kind.value, origin)
		return info

	def get_binding(self, name: str) -> Optional[BindingInfo]:
		if not self._frames:
			return None
		for scope in reversed(self._frames[-1].scopes):
			info = scope.get(name)
			if info is not None:
				return info
		return None

	def propagate(self, dst: str, src: str, value_type: Optional[TypeRef] = None) -> BindingInfo:
		"""
		`let dst = src`: snapshot src's classification (and kind) into dst.

		When src is not a live binding the new binding is unclassified.
		"""
		src_info = self.get_binding(src)
		if src_info is None:
			return self.set_binding(dst, SafetyTag.UNCLASSIFIED, value_type=value_type or UNKNOWN, origin=f"'{src}'")
		logger.debug("[%s] propagate %s -> %s (%s)", self.body_id, src, dst, src_info.tag.value)
		return self.set_binding(
			dst,
			src_info.tag,
			src_info.kind,
			source=src_info.source,
			value_type=value_type if value_type is not None and value_type.is_known else src_info.value_type,
			origin=f"binding '{src}'",
		)

	def reassign(self, name: str, info: BindingInfo) -> Optional[BindingInfo]:
		"""
		Overwrite an existing binding in the scope that owns it (`name = rhs`).

		Returns None when `name` is not bound in the current body.
		"""
		if not self._frames:
			return None
		for scope in reversed(self._frames[-1].scopes):
			if name in scope:
				updated = replace(info, name=name)
				scope[name] = updated
				logger.debug("[%s] reassign %s: %s", self.body_id, name, updated.tag.value)
				return updated
		return None

	def _current(self) -> _BodyFrame:
		if not self._frames:
			raise ScopeInvariantError("no body is being traversed")
		return self._frames[-1]


__all__ = ["BindingKind", "BindingInfo", "ClassificationStore"]
