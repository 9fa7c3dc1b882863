# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Call-site resolution: map a call expression to a classified target, and a
let statement to the classification of the binding it introduces.

Call priority (first match wins):
  1. method call: receiver static type -> inherent method, then a method of an
     implemented trait; trait objects use the trait's signature
  2. direct call of a live binding -> the binding's classification
  3. direct call of a resolvable declaration path -> its declared tag
  4. anything else -> unclassified

Let priority (first match wins):
  a. call-info marker with the `closure` discriminator -> the marker's tag
  b/c. bare reference: a live binding propagates, otherwise a declaration
     path yields that declaration's tag (locals shadow items, as in Rust)
  d. otherwise unclassified
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from rtlint import hir_nodes as H
from rtlint.core.safety import SafetyTag
from rtlint.decl_table import Declaration, DeclTable, ItemScope
from rtlint.type_resolver import UNKNOWN, TypeRef, TypeResolver

from .classification import BindingInfo, BindingKind, ClassificationStore

logger = logging.getLogger(__name__)

# `Box::new(x)` and friends have the type of `x` for method lookup.
_WRAPPER_CTORS = {("Box", "new"), ("Rc", "new"), ("Arc", "new")}


class CallShape(Enum):
	METHOD = "method"
	CLOSURE = "closure"
	FN_REF = "function reference"
	DIRECT = "function"


@dataclass(frozen=True)
class CallTarget:
	"""Classified callee of one call site."""

	shape: Optional[CallShape]
	tag: SafetyTag
	callee: str  # declaration id, or binding name for closure/fn-ref calls
	decl: Optional[Declaration] = None
	binding: Optional[BindingInfo] = None

	@property
	def is_resolved(self) -> bool:
		return self.shape is not None


@dataclass(frozen=True)
class LetClassification:
	tag: SafetyTag
	kind: BindingKind
	rule: str  # "override" | "declaration" | "propagated" | "none"
	source: Optional[str] = None
	value_type: TypeRef = UNKNOWN
	origin: str = "let"


def _unresolved(callee: str) -> CallTarget:
	return CallTarget(shape=None, tag=SafetyTag.UNCLASSIFIED, callee=callee)


class CallSiteResolver:
	def __init__(self, table: DeclTable, store: ClassificationStore) -> None:
		self.table = table
		self.store = store
		self.types = TypeResolver(table)

	# --- calls ---

	def resolve_call(self, call: H.HExpr, scope: ItemScope) -> CallTarget:
		if isinstance(call, H.HMethodCall):
			return self._resolve_method(call, scope)
		if not isinstance(call, H.HCall):
			raise TypeError(f"not a call expression: {type(call).__name__}")
		fn = call.fn
		if isinstance(fn, H.HVar):
			binding = self.store.get_binding(fn.name)
			if binding is not None:
				shape = CallShape.CLOSURE if binding.kind is BindingKind.CLOSURE else CallShape.FN_REF
				decl = self.table.get(binding.source) if binding.source else None
				return CallTarget(shape=shape, tag=binding.tag, callee=fn.name, decl=decl, binding=binding)
			return self._resolve_path_call([fn.name], scope)
		if isinstance(fn, H.HPath):
			return self._resolve_path_call(fn.segments, scope)
		logger.debug("call through %s is not resolvable; unclassified", type(fn).__name__)
		return _unresolved(f"<{type(fn).__name__}>")

	def _resolve_path_call(self, segments: List[str], scope: ItemScope) -> CallTarget:
		text = "::".join(segments)
		decl = self.table.resolve_function(segments, scope)
		if decl is None:
			logger.debug("call target '%s' does not resolve to a declaration; unclassified", text)
			return _unresolved(text)
		return CallTarget(shape=CallShape.DIRECT, tag=decl.tag, callee=decl.decl_id, decl=decl)

	def _resolve_method(self, call: H.HMethodCall, scope: ItemScope) -> CallTarget:
		recv = self.expr_type(call.receiver, scope)
		if not recv.is_known:
			logger.debug("receiver type of '.%s(...)' is unknown; unclassified", call.method_name)
			return _unresolved(f"?.{call.method_name}")
		decl = self.table.lookup_method(recv.kind, str(recv.path), call.method_name)
		if decl is None:
			logger.debug("no method '%s' on '%s'; unclassified", call.method_name, recv.render())
			return _unresolved(f"{recv.render()}.{call.method_name}")
		return CallTarget(shape=CallShape.METHOD, tag=decl.tag, callee=decl.decl_id, decl=decl)

	# --- lets / assignments ---

	def classify_let(self, let: H.HLet, scope: ItemScope) -> LetClassification:
		if let.declared_type is not None:
			value_type = self.types.resolve(let.declared_type, scope)
		elif let.value is not None:
			value_type = self.expr_type(let.value, scope)
		else:
			value_type = UNKNOWN

		parsed = let.override.parse() if let.override is not None else None
		if parsed is not None and parsed.is_closure:
			return LetClassification(
				tag=parsed.tag,
				kind=BindingKind.CLOSURE,
				rule="override",
				value_type=value_type,
				origin="its call-info marker",
			)
		if parsed is not None:
			logger.debug(
				"call-info marker on '%s' names target '%s'; classification follows the right-hand side",
				let.name,
				parsed.discriminator,
			)
		if let.value is None:
			return LetClassification(tag=SafetyTag.UNCLASSIFIED, kind=BindingKind.VALUE, rule="none", value_type=value_type)
		result = self.classify_value(let.value, scope)
		if value_type.is_known:
			result = LetClassification(
				tag=result.tag,
				kind=result.kind,
				rule=result.rule,
				source=result.source,
				value_type=value_type,
				origin=result.origin,
			)
		return result

	def classify_value(self, value: H.HExpr, scope: ItemScope) -> LetClassification:
		"""Rules b-d for a right-hand side (shared by `let` and plain assignment)."""
		if isinstance(value, H.HVar):
			binding = self.store.get_binding(value.name)
			if binding is not None:
				return LetClassification(
					tag=binding.tag,
					kind=binding.kind,
					rule="propagated",
					source=binding.source,
					value_type=binding.value_type,
					origin=f"binding '{value.name}'",
				)
			return self._classify_decl_ref([value.name], scope)
		if isinstance(value, H.HPath):
			return self._classify_decl_ref(value.segments, scope)
		kind = BindingKind.CLOSURE if isinstance(value, H.HLambda) else BindingKind.VALUE
		return LetClassification(tag=SafetyTag.UNCLASSIFIED, kind=kind, rule="none", value_type=self.expr_type(value, scope))

	def _classify_decl_ref(self, segments: List[str], scope: ItemScope) -> LetClassification:
		decl = self.table.resolve_function(segments, scope)
		if decl is None:
			return LetClassification(
				tag=SafetyTag.UNCLASSIFIED,
				kind=BindingKind.VALUE,
				rule="none",
				value_type=self._item_value_type(segments, scope),
			)
		return LetClassification(
			tag=decl.tag,
			kind=BindingKind.FN_REF,
			rule="declaration",
			source=decl.decl_id,
			origin=f"'{decl.decl_id}'",
		)

	# --- static types ---

	def expr_type(self, expr: H.HExpr, scope: ItemScope) -> TypeRef:
		"""Best-effort static type of an expression (for method receivers)."""
		if isinstance(expr, H.HVar):
			binding = self.store.get_binding(expr.name)
			if binding is not None:
				return binding.value_type
			return self._item_value_type([expr.name], scope)
		if isinstance(expr, H.HPath):
			return self._item_value_type(expr.segments, scope)
		if isinstance(expr, H.HUnary) and expr.op in (H.UnaryOp.BORROW, H.UnaryOp.BORROW_MUT, H.UnaryOp.DEREF):
			return self.expr_type(expr.expr, scope)
		if isinstance(expr, H.HCall):
			return self._call_result_type(expr, scope)
		if isinstance(expr, H.HMethodCall):
			recv = self.expr_type(expr.receiver, scope)
			if not recv.is_known:
				return UNKNOWN
			decl = self.table.lookup_method(recv.kind, str(recv.path), expr.method_name)
			return self._return_type(decl)
		if isinstance(expr, H.HField):
			subject = self.expr_type(expr.subject, scope)
			info = self.table.struct_info(str(subject.path)) if subject.kind == "named" else None
			if info is None:
				return UNKNOWN
			return self.types.resolve(info.field_type(expr.name), info.scope)
		if isinstance(expr, H.HStructLit):
			return self._item_value_type(expr.path, scope)
		if isinstance(expr, H.HCast):
			return self.types.resolve(expr.ty, scope)
		return UNKNOWN

	def _call_result_type(self, call: H.HCall, scope: ItemScope) -> TypeRef:
		fn = call.fn
		if isinstance(fn, H.HVar):
			if self.store.get_binding(fn.name) is not None:
				return UNKNOWN
			segments = [fn.name]
		elif isinstance(fn, H.HPath):
			segments = list(fn.segments)
		else:
			return UNKNOWN
		if len(segments) >= 2 and tuple(segments[-2:]) in _WRAPPER_CTORS and len(call.args) == 1:
			return self.expr_type(call.args[0], scope)
		ref = self.table.resolve_path(segments, scope)
		if ref is None:
			return UNKNOWN
		if ref.kind == "struct":
			# Tuple-struct constructor.
			return TypeRef(kind="named", path=str(ref.target))
		if ref.kind == "fn":
			return self._return_type(self.table.get(str(ref.target)))
		return UNKNOWN

	def _return_type(self, decl: Optional[Declaration]) -> TypeRef:
		if decl is None or decl.fn.ret_type is None:
			return UNKNOWN
		return self.types.resolve(decl.fn.ret_type, decl.scope)

	def _item_value_type(self, segments: List[str], scope: ItemScope) -> TypeRef:
		"""A path used as a value: unit structs have their own type."""
		ref = self.table.resolve_path(segments, scope)
		if ref is not None and ref.kind == "struct":
			return TypeRef(kind="named", path=str(ref.target))
		return UNKNOWN


__all__ = ["CallShape", "CallTarget", "CallSiteResolver", "LetClassification"]
