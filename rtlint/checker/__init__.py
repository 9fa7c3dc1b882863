# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Realtime-safety checker.

Walks every executable body of a compilation unit and flags calls that reach
a non-realtime declaration from inside a realtime body, directly or through a
method, a stored closure, or a stored function reference.

Traversal model:

* every body with a block (free functions, methods, trait default bodies and
  function items nested inside other bodies) pushes one context frame and one
  binding frame; nested items get their own frames and their own tag,
* lexical blocks (`{}`, `if` branches, loop bodies, `match` arms) push block
  scopes inside the binding frame so shadowing ends with the block; names bound
  by patterns are unclassified and live in the block they guard,
* closure literals are not bodies: their bodies are never walked and their
  call-time behaviour is captured by the binding they are stored in.

The checker is single-threaded; one instance analyses one unit at a time and
resets its state per unit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from rtlint import hir_nodes as H
from rtlint.config import DEFAULT_CONFIG, RealtimeConfig
from rtlint.core.diagnostics import Diagnostic
from rtlint.core.errors import ScopeInvariantError
from rtlint.core.safety import SafetyTag
from rtlint.decl_table import Declaration, DeclTable, ItemScope

from .call_resolver import CallShape, CallSiteResolver, CallTarget, LetClassification
from .classification import BindingInfo, BindingKind, ClassificationStore
from .reporter import CODE_REALTIME_VIOLATION, Violation, ViolationReporter
from .scope_tracker import ScopeTracker

logger = logging.getLogger(__name__)


@dataclass
class CheckedUnit:
	"""Result of checking one unit: table diagnostics first, then violations."""

	table: DeclTable
	diagnostics: List[Diagnostic] = field(default_factory=list)
	violations: List[Violation] = field(default_factory=list)


class RealtimeChecker:
	def __init__(self, config: Optional[RealtimeConfig] = None) -> None:
		self.config = config or DEFAULT_CONFIG
		self.store = ClassificationStore()
		self.tracker = ScopeTracker()
		self.reporter = ViolationReporter(severity=self.config.violation_severity)
		self.resolver: Optional[CallSiteResolver] = None
		self._scopes: List[ItemScope] = []

	def check_unit(self, unit: H.HUnit) -> CheckedUnit:
		"""Build the declaration table for `unit` and check every body in it."""
		table = DeclTable.build(unit)
		checked = self.check(table)
		checked.diagnostics = list(table.diagnostics) + checked.diagnostics
		return checked

	def check(self, table: DeclTable) -> CheckedUnit:
		self.store.reset(table)
		self.tracker.reset()
		self.reporter.reset()
		self.resolver = CallSiteResolver(table, self.store)
		self._scopes = []
		for decl in table.root_bodies():
			self._check_body(decl)
		if self.tracker.depth or self.store.depth:
			raise ScopeInvariantError(
				f"unbalanced traversal: {self.tracker.depth} context frame(s), {self.store.depth} binding frame(s) left open"
			)
		logger.info("checked %d declaration(s): %d violation(s)", len(table.declarations), len(self.reporter.violations))
		return CheckedUnit(
			table=table,
			diagnostics=list(self.reporter.diagnostics),
			violations=list(self.reporter.violations),
		)

	# --- bodies ---

	def _check_body(self, decl: Declaration) -> None:
		body = decl.fn.body
		if body is None:
			return
		body_id = decl.decl_id
		scope = decl.body_scope or decl.scope
		self.tracker.enter(body_id, decl.tag)
		self.store.enter_body(body_id)
		self._scopes.append(scope)
		for param in decl.fn.params:
			self.store.set_binding(
				param.name,
				SafetyTag.UNCLASSIFIED,
				value_type=self._resolver.types.resolve(param.ty, scope),
				origin="parameter",
			)
		for stmt in body.statements:
			self._visit_stmt(stmt)
		self._scopes.pop()
		self.store.leave_body(body_id)
		self.tracker.leave(body_id)

	@property
	def _resolver(self) -> CallSiteResolver:
		if self.resolver is None:
			raise RuntimeError("checker used before check() installed a declaration table")
		return self.resolver

	@property
	def _scope(self) -> ItemScope:
		return self._scopes[-1]

	def _visit_block(self, block: H.HBlock, pattern: Optional[H.HPattern] = None, origin: str = "pattern") -> None:
		self.store.push_block()
		if pattern is not None:
			self._bind_pattern(pattern, origin)
		for stmt in block.statements:
			self._visit_stmt(stmt)
		self.store.pop_block()

	# --- statements ---

	def _visit_stmt(self, stmt: H.HStmt) -> None:
		method = getattr(self, f"visit_stmt_{type(stmt).__name__}", None)
		if method is None:
			raise NotImplementedError(f"No realtime check for stmt type {type(stmt).__name__}")
		method(stmt)

	def visit_stmt_HBlock(self, stmt: H.HBlock) -> None:
		self._visit_block(stmt)

	def visit_stmt_HExprStmt(self, stmt: H.HExprStmt) -> None:
		self._visit_expr(stmt.expr)

	def visit_stmt_HLet(self, stmt: H.HLet) -> None:
		if stmt.value is not None:
			self._visit_expr(stmt.value)
		if stmt.pattern is not None:
			self._bind_pattern(stmt.pattern, "destructuring let")
			return
		# The new name is not in scope in its own initializer.
		result = self._resolver.classify_let(stmt, self._scope)
		self._bind(stmt.name, result)

	def visit_stmt_HAssign(self, stmt: H.HAssign) -> None:
		if not isinstance(stmt.target, H.HVar):
			self._visit_expr(stmt.target)
		self._visit_expr(stmt.value)
		if stmt.augmented or not isinstance(stmt.target, H.HVar):
			return
		name = stmt.target.name
		if self.store.get_binding(name) is None:
			return
		result = self._resolver.classify_value(stmt.value, self._scope)
		self.store.reassign(name, _binding_info(name, result))

	def visit_stmt_HReturn(self, stmt: H.HReturn) -> None:
		if stmt.value is not None:
			self._visit_expr(stmt.value)

	def visit_stmt_HBreak(self, stmt: H.HBreak) -> None:
		return None

	def visit_stmt_HContinue(self, stmt: H.HContinue) -> None:
		return None

	def visit_stmt_HWhile(self, stmt: H.HWhile) -> None:
		self._visit_expr(stmt.cond)
		self._visit_block(stmt.body, stmt.pattern)

	def visit_stmt_HLoop(self, stmt: H.HLoop) -> None:
		self._visit_block(stmt.body)

	def visit_stmt_HFor(self, stmt: H.HFor) -> None:
		self._visit_expr(stmt.iterable)
		pattern = stmt.pattern or H.HPattern(kind="bind", name=stmt.binder)
		self._visit_block(stmt.body, pattern, origin="loop variable")

	def visit_stmt_HItemFn(self, stmt: H.HItemFn) -> None:
		table = self._resolver.table
		decl = table.decl_for(stmt.fn)
		if decl is None:
			if not table.is_duplicate(stmt.fn):
				raise ScopeInvariantError(f"nested item '{stmt.fn.name}' was never declared")
			# Duplicate nested items are reported by the table and not checked.
			logger.debug("duplicate nested item '%s' skipped", stmt.fn.name)
			return
		self._check_body(decl)

	# --- expressions ---

	def _visit_expr(self, expr: H.HExpr) -> None:
		method = getattr(self, f"visit_expr_{type(expr).__name__}", None)
		if method is None:
			raise NotImplementedError(f"No realtime check for expr type {type(expr).__name__}")
		method(expr)

	def _visit_exprs(self, exprs: List[H.HExpr]) -> None:
		for expr in exprs:
			self._visit_expr(expr)

	def visit_expr_HVar(self, expr: H.HVar) -> None:
		return None

	def visit_expr_HPath(self, expr: H.HPath) -> None:
		return None

	def visit_expr_HLiteralInt(self, expr: H.HLiteralInt) -> None:
		return None

	def visit_expr_HLiteralFloat(self, expr: H.HLiteralFloat) -> None:
		return None

	def visit_expr_HLiteralString(self, expr: H.HLiteralString) -> None:
		return None

	def visit_expr_HLiteralBool(self, expr: H.HLiteralBool) -> None:
		return None

	def visit_expr_HCall(self, expr: H.HCall) -> None:
		if not isinstance(expr.fn, (H.HVar, H.HPath)):
			self._visit_expr(expr.fn)
		self._visit_exprs(expr.args)
		self._check_call(expr)

	def visit_expr_HMethodCall(self, expr: H.HMethodCall) -> None:
		self._visit_expr(expr.receiver)
		self._visit_exprs(expr.args)
		self._check_call(expr)

	def visit_expr_HMacroCall(self, expr: H.HMacroCall) -> None:
		# Macros never resolve to a declaration; their arguments still run.
		self._visit_exprs(expr.args)

	def visit_expr_HField(self, expr: H.HField) -> None:
		self._visit_expr(expr.subject)

	def visit_expr_HIndex(self, expr: H.HIndex) -> None:
		self._visit_expr(expr.subject)
		self._visit_expr(expr.index)

	def visit_expr_HUnary(self, expr: H.HUnary) -> None:
		self._visit_expr(expr.expr)

	def visit_expr_HBinary(self, expr: H.HBinary) -> None:
		self._visit_expr(expr.left)
		self._visit_expr(expr.right)

	def visit_expr_HCast(self, expr: H.HCast) -> None:
		self._visit_expr(expr.expr)

	def visit_expr_HRange(self, expr: H.HRange) -> None:
		self._visit_expr(expr.start)
		self._visit_expr(expr.end)

	def visit_expr_HTry(self, expr: H.HTry) -> None:
		self._visit_expr(expr.expr)

	def visit_expr_HTuple(self, expr: H.HTuple) -> None:
		self._visit_exprs(expr.elements)

	def visit_expr_HArrayLiteral(self, expr: H.HArrayLiteral) -> None:
		self._visit_exprs(expr.elements)

	def visit_expr_HArrayRepeat(self, expr: H.HArrayRepeat) -> None:
		self._visit_expr(expr.value)
		self._visit_expr(expr.count)

	def visit_expr_HBlockExpr(self, expr: H.HBlockExpr) -> None:
		self._visit_block(expr.block)

	def visit_expr_HIf(self, expr: H.HIf) -> None:
		self._visit_expr(expr.cond)
		self._visit_block(expr.then_block, expr.pattern)
		if expr.else_block is not None:
			self._visit_block(expr.else_block)

	def visit_expr_HMatch(self, expr: H.HMatch) -> None:
		self._visit_expr(expr.scrutinee)
		for arm in expr.arms:
			self.store.push_block()
			self._bind_pattern(arm.pattern, "match arm")
			if arm.guard is not None:
				self._visit_expr(arm.guard)
			self._visit_expr(arm.body)
			self.store.pop_block()

	def visit_expr_HStructLit(self, expr: H.HStructLit) -> None:
		self._visit_exprs([value for _, value in expr.fields])
		if expr.base is not None:
			self._visit_expr(expr.base)

	def visit_expr_HLambda(self, expr: H.HLambda) -> None:
		# Opaque: only the binding the closure is stored in is classified.
		return None

	# --- helpers ---

	def _check_call(self, call: H.HExpr) -> CallTarget:
		target = self._resolver.resolve_call(call, self._scope)
		self.reporter.report_if_violation(self.tracker, target, call.loc)
		return target

	def _bind_pattern(self, pattern: H.HPattern, origin: str) -> None:
		for name in pattern.binders():
			self.store.set_binding(name, SafetyTag.UNCLASSIFIED, origin=origin)

	def _bind(self, name: str, result: LetClassification) -> BindingInfo:
		return self.store.set_binding(
			name,
			result.tag,
			result.kind,
			source=result.source,
			value_type=result.value_type,
			origin=result.origin,
		)


def _binding_info(name: str, result: LetClassification) -> BindingInfo:
	return BindingInfo(
		name=name,
		tag=result.tag,
		kind=result.kind,
		source=result.source,
		value_type=result.value_type,
		origin=result.origin,
	)


__all__ = [
	"CallShape",
	"CallTarget",
	"CheckedUnit",
	"RealtimeChecker",
	"BindingKind",
	"ClassificationStore",
	"ScopeTracker",
	"Violation",
	"ViolationReporter",
	"CODE_REALTIME_VIOLATION",
]
