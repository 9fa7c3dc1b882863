# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
AST → HIR lowering (sugar removal and marker extraction).

Besides the structural lowering this pass turns attribute/doc-comment
annotations into the HIR's typed markers:

  - functions get at most one `DeclMarker` (conflicting tags leave the
    declaration unclassified and report an error),
  - lets get at most one raw `BindingOverride` (malformed ones are reported
    but still attached: the checker treats them as absent),
  - markers anywhere else are reported as misplaced and dropped.

All problems are collected as parser-phase diagnostics; lowering never stops
at the first one.
"""

from __future__ import annotations

from typing import List, Optional

from rtlint import hir_nodes as H
from rtlint.config import DEFAULT_CONFIG, RealtimeConfig
from rtlint.core.diagnostics import Diagnostic
from rtlint.core.safety import (
	BindingOverride,
	DeclMarker,
	decl_marker_from_attr,
	decl_marker_from_doc,
	is_call_info_attr,
	override_from_doc,
)
from rtlint.core.span import Span
from rtlint.parser import ast

CODE_MARKER_CONFLICT = "rt-marker-conflict"
CODE_MARKER_MALFORMED = "rt-marker-malformed"
CODE_MARKER_POSITION = "rt-marker-position"


class AstToHIR:
	"""AST → HIR lowering (sugar removal happens here)."""

	def __init__(self, file: Optional[str] = None, config: Optional[RealtimeConfig] = None) -> None:
		self.file = file
		self.config = config or DEFAULT_CONFIG
		self.diagnostics: List[Diagnostic] = []

	# --- items ---

	def lower_program(self, program: ast.Program) -> H.HUnit:
		return H.HUnit(root=self.lower_module(program, name=None), file=self.file)

	def lower_module(self, program: ast.Program, name: Optional[str], loc: Optional[ast.Located] = None) -> H.HModule:
		module = H.HModule(name=name, loc=self._span(loc))
		for fn in program.functions:
			module.functions.append(self.lower_function(fn))
		for trait in program.traits:
			self._reject_markers(trait.attrs, f"trait '{trait.name}'")
			methods = [self.lower_function(m) for m in trait.methods]
			module.traits.append(H.HTrait(name=trait.name, methods=methods, loc=self._span(trait.loc)))
		for impl in program.implements:
			module.impls.append(self.lower_impl(impl))
		for struct in program.structs:
			self._reject_markers(struct.attrs, f"struct '{struct.name}'")
			fields = [(f.name, self.lower_type(f.type_expr)) for f in struct.fields]
			module.structs.append(
				H.HStruct(name=struct.name, fields=fields, is_tuple=struct.is_tuple, loc=self._span(struct.loc))
			)
		for use in program.uses:
			self._reject_markers(use.attrs, f"use of '{'::'.join(use.path)}'")
			module.uses.append(H.HUse(path=list(use.path), alias=use.alias, loc=self._span(use.loc)))
		for mod in program.modules:
			self._reject_markers(mod.attrs, f"module '{mod.name}'")
			module.modules.append(self.lower_module(mod.body, name=mod.name, loc=mod.loc))
		return module

	def lower_impl(self, impl: ast.ImplementDef) -> H.HImpl:
		target = self.lower_type(impl.target)
		trait = self.lower_type(impl.trait) if impl.trait is not None else None
		what = f"impl block for '{target.render()}'"
		self._reject_markers(impl.attrs, what)
		methods = [self.lower_function(m) for m in impl.methods]
		return H.HImpl(target=target, trait=trait, methods=methods, loc=self._span(impl.loc))

	def lower_function(self, fn: ast.FunctionDef) -> H.HFunction:
		marker = self._decl_marker(fn.attrs, f"function '{fn.name}'", fn.loc)
		params = [self.lower_param(p) for p in fn.params]
		ret_type = self.lower_type(fn.return_type) if fn.return_type is not None else None
		body = self.lower_block(fn.body) if fn.body is not None else None
		return H.HFunction(
			name=fn.name,
			params=params,
			ret_type=ret_type,
			body=body,
			marker=marker,
			is_extern=fn.is_extern,
			loc=self._span(fn.loc),
		)

	def lower_param(self, param: ast.Param) -> H.HParam:
		self_ty = H.HType(kind="path", name="Self")
		if param.self_ref is not None:
			kind = "ref_mut" if param.self_ref == "&mut" else "ref"
			return H.HParam(name=param.name, ty=H.HType(kind=kind, args=[self_ty]), is_self=True, loc=self._span(param.loc))
		is_self = param.name == "self"
		if param.type_expr is not None:
			ty: Optional[H.HType] = self.lower_type(param.type_expr)
		else:
			ty = self_ty if is_self else None
		return H.HParam(name=param.name, ty=ty, is_self=is_self, loc=self._span(param.loc))

	def lower_type(self, typ: ast.TypeExpr) -> H.HType:
		args = [self.lower_type(a) for a in typ.args]
		if typ.name == "&":
			return H.HType(kind="ref", args=args)
		if typ.name == "&mut":
			return H.HType(kind="ref_mut", args=args)
		if typ.name in ("dyn", "impl"):
			return H.HType(kind=typ.name, args=args)
		if typ.name == "fn":
			ret = self.lower_type(typ.ret) if typ.ret is not None else None
			return H.HType(kind="fn", args=args, ret=ret)
		if typ.name == "[]":
			return H.HType(kind="slice", args=args)
		if typ.name == "()":
			return H.HType(kind="unit")
		if typ.name == "(,)":
			return H.HType(kind="tuple", args=args)
		return H.HType(kind="path", name=typ.name, args=args)

	# --- statements ---

	def lower_stmt(self, stmt: ast.Stmt) -> H.HStmt:
		"""
		Dispatch an AST statement to a per-type visitor.

		New AST node types must add a visitor rather than being silently ignored.
		"""
		method = getattr(self, f"visit_stmt_{type(stmt).__name__}", None)
		if method is None:
			raise NotImplementedError(f"No HIR lowering for stmt type {type(stmt).__name__}")
		return method(stmt)

	def lower_block(self, block: ast.Block) -> H.HBlock:
		"""Lower a list of AST statements into an HIR block."""
		return H.HBlock(statements=[self.lower_stmt(s) for s in block.statements], loc=self._span(block.loc))

	def visit_stmt_LetStmt(self, stmt: ast.LetStmt) -> H.HStmt:
		if stmt.pattern is not None:
			pattern = self.lower_pattern(stmt.pattern)
			# Call-info markers classify a single binding.
			self._reject_markers(stmt.attrs, f"destructuring let '{pattern.render()}'")
			override = None
		else:
			pattern = None
			override = self._binding_override(stmt.attrs, stmt.name)
		value = self.lower_expr(stmt.value) if stmt.value is not None else None
		declared = self.lower_type(stmt.type_expr) if stmt.type_expr is not None else None
		return H.HLet(
			name=stmt.name,
			value=value,
			declared_type=declared,
			mutable=stmt.mutable,
			override=override,
			loc=self._span(stmt.loc),
			pattern=pattern,
		)

	def visit_stmt_AssignStmt(self, stmt: ast.AssignStmt) -> H.HStmt:
		self._reject_markers(stmt.attrs, "assignment")
		return H.HAssign(
			target=self.lower_expr(stmt.target),
			value=self.lower_expr(stmt.value),
			augmented=stmt.op != "=",
			loc=self._span(stmt.loc),
		)

	def visit_stmt_ReturnStmt(self, stmt: ast.ReturnStmt) -> H.HStmt:
		self._reject_markers(stmt.attrs, "return statement")
		val = self.lower_expr(stmt.value) if stmt.value is not None else None
		return H.HReturn(value=val, loc=self._span(stmt.loc))

	def visit_stmt_BreakStmt(self, stmt: ast.BreakStmt) -> H.HStmt:
		self._reject_markers(stmt.attrs, "break statement")
		return H.HBreak(loc=self._span(stmt.loc))

	def visit_stmt_ContinueStmt(self, stmt: ast.ContinueStmt) -> H.HStmt:
		self._reject_markers(stmt.attrs, "continue statement")
		return H.HContinue(loc=self._span(stmt.loc))

	def visit_stmt_WhileStmt(self, stmt: ast.WhileStmt) -> H.HStmt:
		self._reject_markers(stmt.attrs, "while loop")
		return H.HWhile(
			cond=self.lower_expr(stmt.cond),
			body=self.lower_block(stmt.body),
			loc=self._span(stmt.loc),
			pattern=self._lower_optional_pattern(stmt.pattern),
		)

	def visit_stmt_LoopStmt(self, stmt: ast.LoopStmt) -> H.HStmt:
		self._reject_markers(stmt.attrs, "loop")
		return H.HLoop(body=self.lower_block(stmt.body), loc=self._span(stmt.loc))

	def visit_stmt_ForStmt(self, stmt: ast.ForStmt) -> H.HStmt:
		self._reject_markers(stmt.attrs, "for loop")
		return H.HFor(
			binder=stmt.var,
			iterable=self.lower_expr(stmt.iter_expr),
			body=self.lower_block(stmt.body),
			loc=self._span(stmt.loc),
			pattern=self._lower_optional_pattern(stmt.pattern),
		)

	def visit_stmt_ExprStmt(self, stmt: ast.ExprStmt) -> H.HStmt:
		"""Expression as statement (value discarded)."""
		self._reject_markers(stmt.attrs, "expression statement")
		return H.HExprStmt(expr=self.lower_expr(stmt.value), loc=self._span(stmt.loc))

	def visit_stmt_ItemStmt(self, stmt: ast.ItemStmt) -> H.HStmt:
		return H.HItemFn(fn=self.lower_function(stmt.function), loc=self._span(stmt.loc))

	# --- expressions ---

	def lower_expr(self, expr: ast.Expr) -> H.HExpr:
		"""
		Dispatch an AST expression to a per-type visitor.

		New AST node types must add a visitor rather than being silently ignored.
		"""
		method = getattr(self, f"visit_expr_{type(expr).__name__}", None)
		if method is None:
			raise NotImplementedError(f"No HIR lowering for expr type {type(expr).__name__}")
		return method(expr)

	def visit_expr_Name(self, expr: ast.Name) -> H.HExpr:
		"""Names become HVar; binding vs item resolution happens in the checker."""
		return H.HVar(name=expr.ident, loc=self._span(expr.loc))

	def visit_expr_Path(self, expr: ast.Path) -> H.HExpr:
		return H.HPath(segments=list(expr.segments), loc=self._span(expr.loc))

	def visit_expr_Literal(self, expr: ast.Literal) -> H.HExpr:
		"""Map literal to the appropriate HIR literal node."""
		loc = self._span(expr.loc)
		if isinstance(expr.value, bool):
			return H.HLiteralBool(value=bool(expr.value), loc=loc)
		if isinstance(expr.value, int):
			return H.HLiteralInt(value=int(expr.value), loc=loc)
		if isinstance(expr.value, float):
			return H.HLiteralFloat(value=float(expr.value), loc=loc)
		if isinstance(expr.value, str):
			return H.HLiteralString(value=str(expr.value), loc=loc)
		raise NotImplementedError(f"Literal of unsupported type: {type(expr.value).__name__}")

	def visit_expr_Call(self, expr: ast.Call) -> H.HExpr:
		return H.HCall(
			fn=self.lower_expr(expr.func),
			args=[self.lower_expr(a) for a in expr.args],
			loc=self._span(expr.loc),
		)

	def visit_expr_MethodCall(self, expr: ast.MethodCall) -> H.HExpr:
		return H.HMethodCall(
			receiver=self.lower_expr(expr.receiver),
			method_name=expr.method,
			args=[self.lower_expr(a) for a in expr.args],
			loc=self._span(expr.loc),
		)

	def visit_expr_MacroCall(self, expr: ast.MacroCall) -> H.HExpr:
		return H.HMacroCall(name=expr.name, args=[self.lower_expr(a) for a in expr.args], loc=self._span(expr.loc))

	def visit_expr_Attr(self, expr: ast.Attr) -> H.HExpr:
		"""Field access: subject.name."""
		return H.HField(subject=self.lower_expr(expr.value), name=expr.attr, loc=self._span(expr.loc))

	def visit_expr_TupleField(self, expr: ast.TupleField) -> H.HExpr:
		"""`t.0` is a field named after its position."""
		return H.HField(subject=self.lower_expr(expr.value), name=str(expr.index), loc=self._span(expr.loc))

	def visit_expr_Index(self, expr: ast.Index) -> H.HExpr:
		subject = self.lower_expr(expr.value)
		index = self.lower_expr(expr.index)
		return H.HIndex(subject=subject, index=index, loc=self._span(expr.loc))

	def visit_expr_Unary(self, expr: ast.Unary) -> H.HExpr:
		op_map = {
			"-": H.UnaryOp.NEG,
			"!": H.UnaryOp.NOT,
			"*": H.UnaryOp.DEREF,
			"&": H.UnaryOp.BORROW,
			"&mut": H.UnaryOp.BORROW_MUT,
		}
		try:
			op = op_map[expr.op]
		except KeyError:
			raise NotImplementedError(f"Unsupported unary op: {expr.op}")
		return H.HUnary(op=op, expr=self.lower_expr(expr.operand), loc=self._span(expr.loc))

	def visit_expr_Binary(self, expr: ast.Binary) -> H.HExpr:
		op_map = {
			"+": H.BinaryOp.ADD,
			"-": H.BinaryOp.SUB,
			"*": H.BinaryOp.MUL,
			"/": H.BinaryOp.DIV,
			"%": H.BinaryOp.MOD,
			"==": H.BinaryOp.EQ,
			"!=": H.BinaryOp.NE,
			"<": H.BinaryOp.LT,
			"<=": H.BinaryOp.LE,
			">": H.BinaryOp.GT,
			">=": H.BinaryOp.GE,
			"&&": H.BinaryOp.AND,
			"||": H.BinaryOp.OR,
		}
		try:
			op = op_map[expr.op]
		except KeyError:
			raise NotImplementedError(f"Unsupported binary op: {expr.op}")
		return H.HBinary(
			op=op,
			left=self.lower_expr(expr.left),
			right=self.lower_expr(expr.right),
			loc=self._span(expr.loc),
		)

	def visit_expr_Cast(self, expr: ast.Cast) -> H.HExpr:
		return H.HCast(expr=self.lower_expr(expr.value), ty=self.lower_type(expr.type_expr), loc=self._span(expr.loc))

	def visit_expr_Range(self, expr: ast.Range) -> H.HExpr:
		return H.HRange(start=self.lower_expr(expr.start), end=self.lower_expr(expr.end), loc=self._span(expr.loc))

	def visit_expr_TryOp(self, expr: ast.TryOp) -> H.HExpr:
		return H.HTry(expr=self.lower_expr(expr.value), loc=self._span(expr.loc))

	def visit_expr_TupleLiteral(self, expr: ast.TupleLiteral) -> H.HExpr:
		return H.HTuple(elements=[self.lower_expr(e) for e in expr.elements], loc=self._span(expr.loc))

	def visit_expr_ArrayLiteral(self, expr: ast.ArrayLiteral) -> H.HExpr:
		return H.HArrayLiteral(elements=[self.lower_expr(e) for e in expr.elements], loc=self._span(expr.loc))

	def visit_expr_ArrayRepeat(self, expr: ast.ArrayRepeat) -> H.HExpr:
		return H.HArrayRepeat(
			value=self.lower_expr(expr.value),
			count=self.lower_expr(expr.count),
			loc=self._span(expr.loc),
		)

	def visit_expr_BlockExpr(self, expr: ast.BlockExpr) -> H.HExpr:
		return H.HBlockExpr(block=self.lower_block(expr.block), loc=self._span(expr.loc))

	def visit_expr_IfExpr(self, expr: ast.IfExpr) -> H.HExpr:
		"""`else if` chains become an else block holding the nested if."""
		else_block: Optional[H.HBlock] = None
		if isinstance(expr.else_expr, ast.BlockExpr):
			else_block = self.lower_block(expr.else_expr.block)
		elif expr.else_expr is not None:
			nested = self.lower_expr(expr.else_expr)
			else_block = H.HBlock(statements=[H.HExprStmt(expr=nested, loc=nested.loc)], loc=nested.loc)
		return H.HIf(
			cond=self.lower_expr(expr.cond),
			then_block=self.lower_block(expr.then_block),
			else_block=else_block,
			loc=self._span(expr.loc),
			pattern=self._lower_optional_pattern(expr.pattern),
		)

	def visit_expr_Lambda(self, expr: ast.Lambda) -> H.HExpr:
		return H.HLambda(
			params=[self.lower_param(p) for p in expr.params],
			body=self.lower_expr(expr.body),
			is_move=expr.is_move,
			loc=self._span(expr.loc),
		)

	def visit_expr_MatchExpr(self, expr: ast.MatchExpr) -> H.HExpr:
		arms = [
			H.HMatchArm(
				pattern=self.lower_pattern(arm.pattern),
				guard=self.lower_expr(arm.guard) if arm.guard is not None else None,
				body=self.lower_expr(arm.body),
				loc=self._span(arm.loc),
			)
			for arm in expr.arms
		]
		return H.HMatch(scrutinee=self.lower_expr(expr.scrutinee), arms=arms, loc=self._span(expr.loc))

	def visit_expr_StructLiteral(self, expr: ast.StructLiteral) -> H.HExpr:
		return H.HStructLit(
			path=list(expr.path),
			fields=[(name, self.lower_expr(value)) for name, value in expr.fields],
			base=self.lower_expr(expr.base) if expr.base is not None else None,
			loc=self._span(expr.loc),
		)

	# --- patterns ---

	def lower_pattern(self, pattern: ast.Pattern) -> H.HPattern:
		return H.HPattern(
			kind=pattern.kind,
			name=pattern.name,
			path=list(pattern.path),
			elements=[self.lower_pattern(p) for p in pattern.elements],
			loc=self._span(pattern.loc),
		)

	def _lower_optional_pattern(self, pattern: Optional[ast.Pattern]) -> Optional[H.HPattern]:
		return self.lower_pattern(pattern) if pattern is not None else None

	# --- markers ---

	def _decl_marker(self, attrs: List[ast.AttrLike], what: str, loc: ast.Located) -> Optional[DeclMarker]:
		markers: List[DeclMarker] = []
		for attr in attrs:
			if isinstance(attr, ast.Attribute):
				if is_call_info_attr(attr.name, self.config.call_info_attr):
					self._misplaced(f"'{attr.name}' marker on {what}; binding markers belong on let statements", attr.loc)
					continue
				marker = decl_marker_from_attr(
					attr.name,
					attr.args,
					self.config.realtime_attr,
					self.config.non_realtime_attr,
				)
			else:
				if override_from_doc(attr.text, self.config.doc_marker_prefix) is not None:
					self._misplaced(f"call-info marker on {what}; binding markers belong on let statements", attr.loc)
					continue
				marker = decl_marker_from_doc(attr.text, self.config.doc_marker_prefix)
			if marker is not None:
				markers.append(marker)
		if not markers:
			return None
		tags = {m.tag for m in markers}
		if len(tags) > 1:
			self.diagnostics.append(
				Diagnostic(
					message=f"{what} is marked both realtime and non_realtime; leaving it unclassified",
					code=CODE_MARKER_CONFLICT,
					phase="parser",
					severity="error",
					span=self._span(loc),
				)
			)
			return None
		# Prefer the marker that carries a reason (`#[non_realtime("alloc")]`).
		return next((m for m in markers if m.reason), markers[0])

	def _binding_override(self, attrs: List[ast.AttrLike], binding: str) -> Optional[BindingOverride]:
		found: List[tuple[BindingOverride, ast.Located]] = []
		for attr in attrs:
			if isinstance(attr, ast.Attribute):
				if is_call_info_attr(attr.name, self.config.call_info_attr):
					found.append((BindingOverride(args=tuple(attr.args)), attr.loc))
					continue
				if decl_marker_from_attr(attr.name, attr.args, self.config.realtime_attr, self.config.non_realtime_attr):
					self._misplaced(f"'{attr.name}' marker on let binding '{binding}'; use '{self.config.call_info_attr}'", attr.loc)
			else:
				override = override_from_doc(attr.text, self.config.doc_marker_prefix)
				if override is not None:
					found.append((override, attr.loc))
				elif decl_marker_from_doc(attr.text, self.config.doc_marker_prefix) is not None:
					self._misplaced(f"declaration marker on let binding '{binding}'; use a call-info marker", attr.loc)
		if not found:
			return None
		if len(found) > 1:
			self.diagnostics.append(
				Diagnostic(
					message=f"let binding '{binding}' carries more than one call-info marker; only the first is used",
					code=CODE_MARKER_MALFORMED,
					phase="parser",
					severity="error",
					span=self._span(found[1][1]),
				)
			)
		override, loc = found[0]
		if override.parse() is None:
			self.diagnostics.append(
				Diagnostic(
					message=(
						f"malformed call-info marker on '{binding}': expected exactly two fields "
						f"(\"closure\" or a target name, then realtime/nonrealtime), got {list(override.args)!r}"
					),
					code=CODE_MARKER_MALFORMED,
					phase="parser",
					severity="error",
					span=self._span(loc),
				)
			)
		return override

	def _reject_markers(self, attrs: List[ast.AttrLike], what: str) -> None:
		for attr in attrs:
			if isinstance(attr, ast.Attribute):
				if is_call_info_attr(attr.name, self.config.call_info_attr) or decl_marker_from_attr(
					attr.name, attr.args, self.config.realtime_attr, self.config.non_realtime_attr
				):
					self._misplaced(f"'{attr.name}' marker is not supported on {what}", attr.loc)
			elif override_from_doc(attr.text, self.config.doc_marker_prefix) is not None or decl_marker_from_doc(
				attr.text, self.config.doc_marker_prefix
			):
				self._misplaced(f"safety marker in doc comment is not supported on {what}", attr.loc)

	def _misplaced(self, message: str, loc: ast.Located) -> None:
		self.diagnostics.append(
			Diagnostic(message=message, code=CODE_MARKER_POSITION, phase="parser", severity="error", span=self._span(loc))
		)

	def _span(self, loc: Optional[ast.Located]) -> Span:
		return Span.from_loc(loc, file=self.file)


__all__ = ["AstToHIR", "CODE_MARKER_CONFLICT", "CODE_MARKER_MALFORMED", "CODE_MARKER_POSITION"]
