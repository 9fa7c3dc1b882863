from __future__ import annotations

import codecs
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from lark import Lark, Token, Tree

from rtlint.core.errors import FrontendError

from .ast import (
	ArrayLiteral,
	ArrayRepeat,
	AssignStmt,
	Attr,
	AttrLike,
	Attribute,
	Binary,
	Block,
	BlockExpr,
	BreakStmt,
	Call,
	Cast,
	ContinueStmt,
	DocComment,
	Expr,
	ExprStmt,
	ForStmt,
	FunctionDef,
	IfExpr,
	ImplementDef,
	Index,
	ItemStmt,
	Lambda,
	LetStmt,
	Literal,
	Located,
	LoopStmt,
	MacroCall,
	MatchArm,
	MatchExpr,
	MethodCall,
	ModDef,
	Name,
	Param,
	Path as PathExpr,
	Pattern,
	Program,
	Range,
	ReturnStmt,
	StructDef,
	StructField,
	StructLiteral,
	TraitDef,
	TryOp,
	TupleField,
	TupleLiteral,
	TypeExpr,
	Unary,
	UseDecl,
	WhileStmt,
)

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()

_INT_DIGITS = re.compile(r"\d+(?:_\d+)*")
_FLOAT_BODY = re.compile(r"\d+\.\d+(?:[eE][+-]?\d+)?")


def _decode_string_token(tok: Token) -> str:
	"""
	Decode STRING tokens. Escapes are interpreted on the UTF-8 bytes of the
	literal so non-ASCII source text survives the round trip.
	"""
	content = tok.value[1:-1]  # strip quotes
	try:
		unescaped = codecs.decode(content.encode("utf-8"), "unicode_escape")
		return unescaped.encode("latin-1").decode("utf-8")
	except UnicodeError as err:
		raise FrontendError(f"invalid escape in string literal: {err}", loc=_loc_from_token(tok)) from err


@dataclass
class _BlockMarker:
	"""A keyword after which the next `{` at `depth` opens a block."""

	depth: int
	# Item headers and `->` types also end at `=` (`let f: fn() -> u8 = g`).
	header: bool
	# Between `let`/`for` and `=`/`in`: braces after a name belong to a pattern.
	pattern: bool = False


class TerminatorInserter:
	"""
	Insert `TERMINATOR` tokens for statement boundaries.

	An explicit `;` always terminates. A newline terminates only when the
	previous token can end a statement and the innermost open delimiter is a
	brace (or there is none): newlines inside `(...)`, `[...]`, attribute
	brackets and struct literals are insignificant.

	Newlines are also dropped when the next significant token continues the
	previous line: `else`, `where`, a method chain starting with `.`, or an
	opening brace placed on its own line.

	A `{` directly after a name is retyped to `STRUCT_LBRACE` (a struct literal
	or struct pattern) unless a condition or an item header is waiting for its
	block at that nesting depth: `if x {`, `match v {` and `fn f() -> T {` open
	blocks. As in Rust, a struct literal in a condition needs parentheses.
	"""

	always_accept = ("NEWLINE", "SEMI")

	TERMINABLE = {
		"NAME",
		"INT",
		"FLOAT",
		"STRING",
		"TRUE",
		"FALSE",
		"RPAR",
		"RSQB",
		"RBRACE",
		"RETURN",
		"BREAK",
		"CONTINUE",
		"QMARK",
		# closes generic argument lists: `let v: Vec<u8>`
		"GT",
	}

	CONTINUATION = {
		"ELSE",
		"WHERE",
		"DOT",
		"LBRACE",
	}

	CONDITION_KEYWORDS = {"IF", "WHILE", "MATCH", "FOR"}
	HEADER_KEYWORDS = {"FN", "IMPL", "TRAIT", "STRUCT", "MOD", "ARROW"}

	def __init__(self) -> None:
		self._reset()

	def _reset(self) -> None:
		self.stack: List[str] = []
		self.can_terminate = False
		self.attr_pending = False
		self.markers: List[_BlockMarker] = []
		self.prev_type: Optional[str] = None

	def process(self, stream):
		self._reset()
		pending_newline: Token | None = None

		for token in stream:
			ttype = token.type

			if ttype == "NEWLINE":
				pending_newline = token
				continue

			if ttype == "SEMI":
				pending_newline = None
				yield Token.new_borrow_pos("TERMINATOR", token.value, token)
				self._end_statement()
				continue

			if pending_newline is not None:
				if self._should_emit_terminator() and ttype not in self.CONTINUATION:
					yield Token.new_borrow_pos("TERMINATOR", pending_newline.value, pending_newline)
					self._end_statement()
				pending_newline = None

			if ttype == "LBRACE":
				token = self._classify_brace(token)
				ttype = token.type
			else:
				self._track_markers(ttype)

			yield token
			closed = self._update_stack(ttype)
			if closed == "attr":
				# `#[...]` never ends a statement; the item it decorates follows.
				self.can_terminate = False
			else:
				self.can_terminate = ttype in self.TERMINABLE
			self.prev_type = ttype

		if pending_newline is not None:
			if self._should_emit_terminator():
				yield Token.new_borrow_pos("TERMINATOR", pending_newline.value, pending_newline)
				self._end_statement()

	def _marker_here(self) -> Optional[_BlockMarker]:
		if self.markers and self.markers[-1].depth == len(self.stack):
			return self.markers[-1]
		return None

	def _track_markers(self, ttype: str) -> None:
		marker = self._marker_here()
		if ttype in self.CONDITION_KEYWORDS or ttype in self.HEADER_KEYWORDS:
			# `impl T for U` and `fn f() -> T` keep the marker of their first keyword.
			if marker is None:
				self.markers.append(
					_BlockMarker(depth=len(self.stack), header=ttype in self.HEADER_KEYWORDS, pattern=ttype == "FOR")
				)
			return
		if marker is None:
			return
		if ttype == "LET" and not marker.header:
			marker.pattern = True
		elif ttype in ("EQUAL", "IN"):
			if marker.header and ttype == "EQUAL":
				self.markers.pop()
			else:
				marker.pattern = False
		elif ttype == "FATARROW":
			# end of a match guard
			self.markers.pop()

	def _classify_brace(self, token: Token) -> Token:
		marker = self._marker_here()
		if marker is not None and not marker.pattern:
			self.markers.pop()
			return token
		if self.prev_type == "NAME":
			return Token.new_borrow_pos("STRUCT_LBRACE", token.value, token)
		return token

	def _end_statement(self) -> None:
		depth = len(self.stack)
		self.markers = [m for m in self.markers if m.depth < depth]
		self.can_terminate = False
		self.prev_type = "TERMINATOR"

	def _update_stack(self, ttype: str) -> Optional[str]:
		"""Track open delimiters; return the frame closed by this token, if any."""
		if ttype == "HASH":
			self.attr_pending = True
			return None
		if ttype == "BANG" and self.attr_pending:
			return None
		if ttype == "LSQB":
			self.stack.append("attr" if self.attr_pending else "[")
			self.attr_pending = False
			return None
		self.attr_pending = False
		if ttype == "LPAR":
			self.stack.append("(")
		elif ttype == "LBRACE":
			self.stack.append("{")
		elif ttype == "STRUCT_LBRACE":
			self.stack.append("struct")
		elif ttype in ("RPAR", "RSQB", "RBRACE") and self.stack:
			closed = self.stack.pop()
			depth = len(self.stack)
			self.markers = [m for m in self.markers if m.depth <= depth]
			return closed
		return None

	def _should_emit_terminator(self) -> bool:
		if not self.can_terminate:
			return False
		return not self.stack or self.stack[-1] == "{"


_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="lalr",
	lexer="basic",
	start="program",
	propagate_positions=True,
	maybe_placeholders=False,
	postlex=TerminatorInserter(),
)


def parse_program(source: str) -> Program:
	tree = _PARSER.parse(source)
	return _build_program(tree)


def _build_program(tree: Tree) -> Program:
	program = Program()
	for child in tree.children:
		if not isinstance(child, Tree) or _name(child) != "item":
			continue
		_add_item(program, child)
	return program


def _add_item(program: Program, tree: Tree) -> None:
	attrs: List[AttrLike] = []
	kind_node: Tree | None = None
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		if _name(child) == "attrs":
			attrs = _build_attrs(child)
		else:
			kind_node = child
	if kind_node is None:
		raise FrontendError("item missing declaration", loc=_loc(tree))
	kind = _name(kind_node)
	if kind == "func_def":
		program.functions.append(_build_function(kind_node, attrs))
	elif kind == "trait_def":
		program.traits.append(_build_trait_def(kind_node, attrs))
	elif kind == "impl_def":
		program.implements.append(_build_implement_def(kind_node, attrs))
	elif kind == "struct_def":
		program.structs.append(_build_struct_def(kind_node, attrs))
	elif kind == "mod_def":
		program.modules.append(_build_mod_def(kind_node, attrs))
	elif kind == "use_decl":
		program.uses.append(_build_use_decl(kind_node, attrs))
	elif kind == "extern_fn":
		program.functions.append(_build_extern_fn(kind_node, attrs))
	elif kind == "extern_block":
		program.functions.extend(_build_extern_block(kind_node, attrs))
	else:
		raise FrontendError(f"unsupported item kind {kind}", loc=_loc(kind_node))


def _build_attrs(tree: Tree) -> List[AttrLike]:
	out: List[AttrLike] = []
	for child in tree.children:
		if isinstance(child, Token) and child.type == "DOC_COMMENT":
			out.append(DocComment(text=child.value[3:].strip(), loc=_loc_from_token(child)))
		elif isinstance(child, Tree) and _name(child) == "attribute":
			out.append(_build_attribute(child))
	return out


def _build_attribute(tree: Tree) -> Attribute:
	inner = any(isinstance(c, Token) and c.type == "BANG" for c in tree.children)
	name_node = next(c for c in tree.children if isinstance(c, Tree) and _name(c) == "attr_name")
	name = "::".join(tok.value for tok in name_node.children if isinstance(tok, Token))
	args: List[str] = []
	args_node = next((c for c in tree.children if isinstance(c, Tree) and _name(c) == "attr_args"), None)
	if args_node is not None:
		for tok in args_node.children:
			if not isinstance(tok, Token):
				continue
			if tok.type == "STRING":
				args.append(_decode_string_token(tok))
			else:
				args.append(tok.value)
	return Attribute(name=name, args=args, loc=_loc(tree), inner=inner)


def _build_function(tree: Tree, attrs: Optional[List[AttrLike]] = None) -> FunctionDef:
	is_pub = False
	name_token: Token | None = None
	params: List[Param] = []
	return_type: Optional[TypeExpr] = None
	body: Optional[Block] = None
	for child in tree.children:
		if isinstance(child, Token):
			if child.type == "PUB":
				is_pub = True
			elif child.type == "NAME" and name_token is None:
				name_token = child
			continue
		kind = _name(child)
		if kind == "params":
			params = [_build_param(p) for p in child.children if isinstance(p, Tree)]
		elif kind == "ret_type":
			return_type = _build_ret_type(child)
		elif kind == "block":
			body = _build_block(child)
	if name_token is None:
		raise FrontendError("function definition missing name", loc=_loc(tree))
	return FunctionDef(
		name=name_token.value,
		params=params,
		return_type=return_type,
		body=body,
		loc=_loc_from_token(name_token),
		attrs=list(attrs or []),
		is_pub=is_pub,
	)


def _build_extern_fn(tree: Tree, attrs: List[AttrLike]) -> FunctionDef:
	abi = _extern_abi(tree)
	fn_node = next(c for c in tree.children if isinstance(c, Tree) and _name(c) == "func_def")
	fn = _build_function(fn_node, attrs)
	fn.is_extern = True
	fn.abi = abi
	return fn


def _build_extern_block(tree: Tree, attrs: List[AttrLike]) -> List[FunctionDef]:
	abi = _extern_abi(tree)
	out: List[FunctionDef] = []
	for item in tree.children:
		if not isinstance(item, Tree) or _name(item) != "extern_item":
			continue
		fn = _build_member(item)
		# Block-level attributes apply to every declaration inside the block.
		fn.attrs = list(attrs) + fn.attrs
		fn.is_extern = True
		fn.abi = abi
		out.append(fn)
	return out


def _extern_abi(tree: Tree) -> Optional[str]:
	tok = next((c for c in tree.children if isinstance(c, Token) and c.type == "STRING"), None)
	return _decode_string_token(tok) if tok is not None else None


def _build_member(tree: Tree) -> FunctionDef:
	"""Build a `trait_item` / `impl_item` / `extern_item` wrapper: attrs? func_def."""
	attrs: List[AttrLike] = []
	fn_node: Tree | None = None
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		if _name(child) == "attrs":
			attrs = _build_attrs(child)
		elif _name(child) == "func_def":
			fn_node = child
	if fn_node is None:
		raise FrontendError("member missing function definition", loc=_loc(tree))
	return _build_function(fn_node, attrs)


def _build_param(tree: Tree) -> Param:
	tokens = [c for c in tree.children if isinstance(c, Token)]
	mutable = any(t.type == "MUT" for t in tokens)
	name_token = next(t for t in tokens if t.type == "NAME")
	if _name(tree) == "ref_self_param":
		return Param(
			name=name_token.value,
			type_expr=None,
			loc=_loc_from_token(name_token),
			self_ref="&mut" if mutable else "&",
		)
	type_node = next((c for c in tree.children if isinstance(c, Tree)), None)
	type_expr = _build_type_expr(type_node) if type_node is not None else None
	return Param(name=name_token.value, type_expr=type_expr, loc=_loc_from_token(name_token), mutable=mutable)


def _build_ret_type(tree: Tree) -> TypeExpr:
	type_node = next(c for c in tree.children if isinstance(c, Tree))
	return _build_type_expr(type_node)


def _build_trait_def(tree: Tree, attrs: List[AttrLike]) -> TraitDef:
	name_token = next(c for c in tree.children if isinstance(c, Token) and c.type == "NAME")
	body = next(c for c in tree.children if isinstance(c, Tree) and _name(c) == "trait_body")
	methods = [_build_member(item) for item in body.children if isinstance(item, Tree)]
	return TraitDef(name=name_token.value, methods=methods, loc=_loc_from_token(name_token), attrs=attrs)


def _build_implement_def(tree: Tree, attrs: List[AttrLike]) -> ImplementDef:
	loc = _loc(tree)
	first_type: Optional[TypeExpr] = None
	for_type: Optional[TypeExpr] = None
	methods: List[FunctionDef] = []
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		kind = _name(child)
		if kind == "impl_for":
			for_type = _build_type_expr(next(c for c in child.children if isinstance(c, Tree)))
		elif kind == "impl_body":
			methods = [_build_member(item) for item in child.children if isinstance(item, Tree)]
		elif kind in ("generic_params", "where_clause"):
			continue
		elif first_type is None:
			first_type = _build_type_expr(child)
	if first_type is None:
		raise FrontendError("impl missing target type", loc=loc)
	# `impl Trait for Type` names the trait first.
	if for_type is not None:
		return ImplementDef(target=for_type, trait=first_type, methods=methods, loc=loc, attrs=attrs)
	return ImplementDef(target=first_type, trait=None, methods=methods, loc=loc, attrs=attrs)


def _build_struct_def(tree: Tree, attrs: List[AttrLike]) -> StructDef:
	name_token = next(c for c in tree.children if isinstance(c, Token) and c.type == "NAME")
	fields: List[StructField] = []
	is_tuple = False
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		if _name(child) == "named_fields":
			for field_node in child.children:
				if not isinstance(field_node, Tree):
					continue
				fname = next(t for t in field_node.children if isinstance(t, Token) and t.type == "NAME")
				ftype = next(t for t in field_node.children if isinstance(t, Tree))
				fields.append(StructField(name=fname.value, type_expr=_build_type_expr(ftype)))
		elif _name(child) == "tuple_fields":
			is_tuple = True
			positional = [c for c in child.children if isinstance(c, Tree)]
			for idx, field_node in enumerate(positional):
				ftype = next(t for t in field_node.children if isinstance(t, Tree))
				fields.append(StructField(name=str(idx), type_expr=_build_type_expr(ftype)))
	return StructDef(
		name=name_token.value,
		fields=fields,
		loc=_loc_from_token(name_token),
		attrs=attrs,
		is_tuple=is_tuple,
	)


def _build_mod_def(tree: Tree, attrs: List[AttrLike]) -> ModDef:
	name_token = next(c for c in tree.children if isinstance(c, Token) and c.type == "NAME")
	body_node = next(c for c in tree.children if isinstance(c, Tree) and _name(c) == "mod_body")
	body = Program()
	for child in body_node.children:
		if isinstance(child, Tree) and _name(child) == "item":
			_add_item(body, child)
	return ModDef(name=name_token.value, body=body, loc=_loc_from_token(name_token), attrs=attrs)


def _build_use_decl(tree: Tree, attrs: List[AttrLike]) -> UseDecl:
	path_node = next(c for c in tree.children if isinstance(c, Tree) and _name(c) == "use_path")
	path = [tok.value for tok in path_node.children if isinstance(tok, Token)]
	alias_node = next((c for c in tree.children if isinstance(c, Tree) and _name(c) == "use_alias"), None)
	alias = None
	if alias_node is not None:
		alias = next(tok.value for tok in alias_node.children if isinstance(tok, Token))
	return UseDecl(path=path, alias=alias, loc=_loc(tree), attrs=attrs)


def _build_type_expr(tree: Tree) -> TypeExpr:
	kind = _name(tree)
	subtypes = [c for c in tree.children if isinstance(c, Tree)]
	if kind == "ref_type":
		mutable = any(isinstance(c, Token) and c.type == "MUT" for c in tree.children)
		return TypeExpr(name="&mut" if mutable else "&", args=[_build_type_expr(subtypes[0])])
	if kind in ("dyn_type", "impl_type"):
		return TypeExpr(name=kind[: -len("_type")], args=[_build_type_path(subtypes[0])])
	if kind == "fn_type":
		params: List[TypeExpr] = []
		ret: Optional[TypeExpr] = None
		for child in subtypes:
			if _name(child) == "type_list":
				params = _build_type_list(child)
			elif _name(child) == "ret_type":
				ret = _build_ret_type(child)
		return TypeExpr(name="fn", args=params, ret=ret)
	if kind == "path_type":
		return _build_type_path(subtypes[0])
	if kind == "slice_type":
		return TypeExpr(name="[]", args=[_build_type_expr(subtypes[0])])
	if kind == "unit_type":
		return TypeExpr(name="()")
	if kind == "tuple_type":
		return TypeExpr(name="(,)", args=_build_type_list(subtypes[0]))
	raise FrontendError(f"unsupported type syntax {kind}", loc=_loc(tree))


def _build_type_list(tree: Tree) -> List[TypeExpr]:
	return [_build_type_expr(c) for c in tree.children if isinstance(c, Tree)]


def _build_type_path(tree: Tree) -> TypeExpr:
	segments: List[str] = []
	args: List[TypeExpr] = []
	for seg in tree.children:
		if not isinstance(seg, Tree):
			continue
		segments.append(next(t.value for t in seg.children if isinstance(t, Token) and t.type == "NAME"))
		if _name(seg) == "fn_trait_segment":
			# `Fn(A, B) -> R`: keep the parameter types as arguments.
			type_list = next((c for c in seg.children if isinstance(c, Tree) and _name(c) == "type_list"), None)
			args = _build_type_list(type_list) if type_list is not None else []
			continue
		generic = next((c for c in seg.children if isinstance(c, Tree) and _name(c) == "generic_args"), None)
		if generic is not None:
			# Lifetimes are tokens; only type arguments are kept (`Item = T` bindings are not).
			args = [
				_build_type_expr(c) for c in generic.children if isinstance(c, Tree) and _name(c) != "assoc_binding"
			]
	return TypeExpr(name="::".join(segments), args=args)


def _build_block(tree: Tree) -> Block:
	statements = []
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		if _name(child) == "stmt":
			statements.append(_build_stmt(child))
	return Block(statements=statements, loc=_loc(tree))


def _build_stmt(tree: Tree):
	attrs: List[AttrLike] = []
	kind_node: Tree | None = None
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		if _name(child) == "attrs":
			attrs = _build_attrs(child)
		else:
			kind_node = child
	if kind_node is None:
		raise FrontendError("empty statement", loc=_loc(tree))
	kind = _name(kind_node)
	loc = _loc(kind_node)
	if kind == "func_def":
		fn = _build_function(kind_node, attrs)
		return ItemStmt(loc=fn.loc, function=fn)
	if kind == "let_stmt":
		return _build_let_stmt(kind_node, attrs)
	if kind == "assign_stmt":
		return _build_assign_stmt(kind_node, attrs)
	if kind == "return_stmt":
		value_node = next((c for c in kind_node.children if isinstance(c, Tree)), None)
		value = _build_expr(value_node) if value_node is not None else None
		return ReturnStmt(loc=loc, value=value, attrs=attrs)
	if kind == "break_stmt":
		return BreakStmt(loc=loc, attrs=attrs)
	if kind == "continue_stmt":
		return ContinueStmt(loc=loc, attrs=attrs)
	if kind == "while_stmt":
		cond_node, body_node = [c for c in kind_node.children if isinstance(c, Tree)]
		pattern, cond = _build_condition(cond_node)
		return WhileStmt(loc=loc, cond=cond, body=_build_block(body_node), attrs=attrs, pattern=pattern)
	if kind == "loop_stmt":
		body_node = next(c for c in kind_node.children if isinstance(c, Tree))
		return LoopStmt(loc=loc, body=_build_block(body_node), attrs=attrs)
	if kind == "for_stmt":
		return _build_for_stmt(kind_node, attrs)
	if kind == "expr_stmt":
		value_node = next(c for c in kind_node.children if isinstance(c, Tree))
		return ExprStmt(loc=loc, value=_build_expr(value_node), attrs=attrs)
	raise FrontendError(f"unsupported statement {kind}", loc=loc)


def _build_let_stmt(tree: Tree, attrs: List[AttrLike]) -> LetStmt:
	pattern: Optional[Pattern] = None
	type_expr: Optional[TypeExpr] = None
	value: Optional[Expr] = None
	saw_equal = False
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		if pattern is None:
			pattern = _build_pattern(child)
			continue
		# The optional type precedes the optional value; `=` is filtered, so
		# tell them apart by node kind.
		if not saw_equal and _name(child) in _TYPE_NODES:
			type_expr = _build_type_expr(child)
			continue
		saw_equal = True
		value = _build_expr(child)
	if pattern is None:
		raise FrontendError("let statement missing binding pattern", loc=_loc(tree))
	if pattern.kind == "bind":
		return LetStmt(
			loc=_loc(tree),
			name=pattern.name or "",
			type_expr=type_expr,
			value=value,
			mutable=pattern.mutable,
			attrs=attrs,
		)
	return LetStmt(loc=_loc(tree), name="", type_expr=type_expr, value=value, attrs=attrs, pattern=pattern)


_TYPE_NODES = {
	"ref_type",
	"dyn_type",
	"impl_type",
	"fn_type",
	"path_type",
	"slice_type",
	"unit_type",
	"tuple_type",
}


def _build_assign_stmt(tree: Tree, attrs: List[AttrLike]) -> AssignStmt:
	target_node, value_node = [c for c in tree.children if isinstance(c, Tree)]
	op_token = next(c for c in tree.children if isinstance(c, Token) and c.type in ("EQUAL", "AUG_ASSIGN"))
	return AssignStmt(
		loc=_loc(tree),
		target=_build_expr(target_node),
		value=_build_expr(value_node),
		op=op_token.value,
		attrs=attrs,
	)


def _build_for_stmt(tree: Tree, attrs: List[AttrLike]) -> ForStmt:
	pattern_node, iter_node, body_node = [c for c in tree.children if isinstance(c, Tree)]
	pattern: Optional[Pattern] = _build_pattern(pattern_node)
	var = ""
	if pattern is not None and pattern.kind == "bind":
		var, pattern = pattern.name or "", None
	return ForStmt(
		loc=_loc(tree),
		var=var,
		iter_expr=_build_expr(iter_node),
		body=_build_block(body_node),
		attrs=attrs,
		pattern=pattern,
	)


def _build_condition(node: Tree) -> Tuple[Optional[Pattern], Expr]:
	"""`if`/`while` condition: a plain expression or `let PATTERN = expr`."""
	if _name(node) == "let_cond":
		pattern_node, value_node = [c for c in node.children if isinstance(c, Tree)]
		return _build_pattern(pattern_node, refutable=True), _build_expr(value_node)
	return None, _build_expr(node)


def _build_pattern(tree: Tree, refutable: bool = False) -> Pattern:
	"""
	Build a pattern node.

	A lone name binds, except that in refutable positions (match arms,
	`if let`, `while let`) a capitalised one is taken as a unit variant or
	constant (`None`, `MAX`).
	"""
	kind = _name(tree)
	loc = _loc(tree)
	tokens = [c for c in tree.children if isinstance(c, Token)]
	subtrees = [c for c in tree.children if isinstance(c, Tree)]
	if kind == "pat_named":
		path = [t.value for t in tokens]
		if path == ["_"]:
			return Pattern(kind="wild", loc=loc)
		if len(path) == 1 and not (refutable and path[0][:1].isupper()):
			return Pattern(kind="bind", loc=loc, name=path[0])
		return Pattern(kind="path", loc=loc, path=path)
	if kind in ("pat_binding", "pat_field_shorthand"):
		name_token = next(t for t in tokens if t.type == "NAME")
		mutable = any(t.type == "MUT" for t in tokens)
		return Pattern(kind="bind", loc=_loc_from_token(name_token), name=name_token.value, mutable=mutable)
	if kind == "pat_tuple_struct":
		elements = _build_pattern_list(subtrees[1:], refutable)
		return Pattern(kind="tuple_struct", loc=loc, path=_pattern_path(subtrees[0]), elements=elements)
	if kind == "pat_struct":
		elements = [_build_pattern(f, refutable) for f in subtrees[1:]]
		return Pattern(kind="struct", loc=loc, path=_pattern_path(subtrees[0]), elements=elements)
	if kind == "pat_field":
		# `field: pattern`; only the sub-pattern binds.
		return _build_pattern(subtrees[0], refutable)
	if kind in ("pat_tuple", "pat_slice"):
		return Pattern(kind=kind[len("pat_"):], loc=loc, elements=_build_pattern_list(subtrees, refutable))
	if kind == "pat_ref":
		return Pattern(kind="ref", loc=loc, elements=[_build_pattern(subtrees[0], refutable)])
	if kind == "or_pattern":
		return Pattern(kind="or", loc=loc, elements=[_build_pattern(c, refutable) for c in subtrees])
	if kind == "pat_lit":
		return Pattern(kind="lit", loc=loc, name="".join(t.value for t in tokens))
	if kind == "pat_range":
		low, high = ("".join(t.value for t in s.children if isinstance(t, Token)) for s in subtrees)
		return Pattern(kind="range", loc=loc, name=f"{low}{tokens[0].value}{high}")
	if kind == "pat_rest":
		return Pattern(kind="rest", loc=loc)
	raise FrontendError(f"unsupported pattern {kind}", loc=loc)


def _build_pattern_list(nodes: List[Tree], refutable: bool) -> List[Pattern]:
	out: List[Pattern] = []
	for node in nodes:
		if _name(node) == "pat_list":
			out.extend(_build_pattern(c, refutable) for c in node.children if isinstance(c, Tree))
	return out


def _pattern_path(tree: Tree) -> List[str]:
	return [t.value for t in tree.children if isinstance(t, Token)]


def _build_expr(node) -> Expr:
	if isinstance(node, Token):
		raise FrontendError(f"unexpected token {node.type} in expression", loc=_loc_from_token(node))
	kind = _name(node)
	loc = _loc(node)
	trees = [c for c in node.children if isinstance(c, Tree)]
	tokens = [c for c in node.children if isinstance(c, Token)]

	if kind == "int_lit":
		text = tokens[0].value
		return Literal(loc=loc, value=int(_INT_DIGITS.match(text).group(0).replace("_", "")))
	if kind == "float_lit":
		return Literal(loc=loc, value=float(_FLOAT_BODY.match(tokens[0].value).group(0)))
	if kind == "string_lit":
		return Literal(loc=loc, value=_decode_string_token(tokens[0]))
	if kind == "bool_lit":
		return Literal(loc=loc, value=tokens[0].type == "TRUE")
	if kind == "unit_lit":
		return TupleLiteral(loc=loc, elements=[])
	if kind == "path_expr":
		segments = [t.value for t in tokens]
		if len(segments) == 1:
			return Name(loc=loc, ident=segments[0])
		return PathExpr(loc=loc, segments=segments)
	if kind == "macro_call":
		return MacroCall(loc=loc, name=tokens[0].value, args=_build_macro_args(trees[0]))
	if kind == "call":
		args = _build_args(trees[1]) if len(trees) > 1 else []
		return Call(loc=loc, func=_build_expr(trees[0]), args=args)
	if kind == "method_call":
		method = next(t for t in tokens if t.type == "NAME")
		args_node = next((t for t in trees[1:] if _name(t) == "args"), None)
		args = _build_args(args_node) if args_node is not None else []
		# Point at the method name so chained calls get distinct locations.
		return MethodCall(loc=_loc_from_token(method), receiver=_build_expr(trees[0]), method=method.value, args=args)
	if kind == "field":
		return Attr(loc=loc, value=_build_expr(trees[0]), attr=tokens[0].value)
	if kind == "tuple_field":
		return TupleField(loc=loc, value=_build_expr(trees[0]), index=int(tokens[0].value))
	if kind == "index":
		return Index(loc=loc, value=_build_expr(trees[0]), index=_build_expr(trees[1]))
	if kind == "try_op":
		return TryOp(loc=loc, value=_build_expr(trees[0]))
	if kind == "binary":
		op = next(t.value for t in tokens)
		return Binary(loc=loc, op=op, left=_build_expr(trees[0]), right=_build_expr(trees[1]))
	if kind == "range":
		return Range(loc=loc, start=_build_expr(trees[0]), end=_build_expr(trees[1]))
	if kind == "unary":
		return Unary(loc=loc, op=tokens[0].value, operand=_build_expr(trees[0]))
	if kind == "deref":
		return Unary(loc=loc, op="*", operand=_build_expr(trees[0]))
	if kind == "borrow":
		mutable = any(t.type == "MUT" for t in tokens)
		return Unary(loc=loc, op="&mut" if mutable else "&", operand=_build_expr(trees[0]))
	if kind == "cast":
		return Cast(loc=loc, value=_build_expr(trees[0]), type_expr=_build_type_expr(trees[1]))
	if kind == "tuple_lit":
		elements = [_build_expr(trees[0])]
		if len(trees) > 1:
			elements.extend(_build_args(trees[1]))
		return TupleLiteral(loc=loc, elements=elements)
	if kind == "array_lit":
		return ArrayLiteral(loc=loc, elements=_build_args(trees[0]) if trees else [])
	if kind == "array_repeat":
		return ArrayRepeat(loc=loc, value=_build_expr(trees[0]), count=_build_expr(trees[1]))
	if kind == "block":
		return BlockExpr(loc=loc, block=_build_block(node))
	if kind == "if_expr":
		return _build_if_expr(node)
	if kind == "match_expr":
		arms = [_build_match_arm(arm) for arm in trees[1:] if _name(arm) == "match_arm"]
		return MatchExpr(loc=loc, scrutinee=_build_expr(trees[0]), arms=arms)
	if kind == "struct_lit":
		return _build_struct_lit(node)
	if kind == "closure":
		return _build_lambda(node)
	raise FrontendError(f"unsupported expression {kind}", loc=loc)


def _build_args(tree: Tree) -> List[Expr]:
	return [_build_expr(c) for c in tree.children if isinstance(c, Tree)]


def _build_macro_args(tree: Tree) -> List[Expr]:
	# `vec![x; n]` keeps both operands as ordinary arguments.
	out: List[Expr] = []
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		if _name(child) == "args":
			out.extend(_build_args(child))
		else:
			out.append(_build_expr(child))
	return out


def _build_if_expr(tree: Tree) -> IfExpr:
	trees = [c for c in tree.children if isinstance(c, Tree)]
	pattern, cond = _build_condition(trees[0])
	then_block = _build_block(trees[1])
	else_expr: Optional[Expr] = None
	if len(trees) > 2:
		else_node = trees[2]
		if _name(else_node) == "block":
			else_expr = BlockExpr(loc=_loc(else_node), block=_build_block(else_node))
		else:
			else_expr = _build_if_expr(else_node)
	return IfExpr(loc=_loc(tree), cond=cond, then_block=then_block, else_expr=else_expr, pattern=pattern)


def _build_match_arm(tree: Tree) -> MatchArm:
	trees = [c for c in tree.children if isinstance(c, Tree)]
	guard: Optional[Expr] = None
	guard_node = next((c for c in trees[1:-1] if _name(c) == "match_guard"), None)
	if guard_node is not None:
		guard = _build_expr(next(c for c in guard_node.children if isinstance(c, Tree)))
	return MatchArm(
		pattern=_build_pattern(trees[0], refutable=True),
		guard=guard,
		body=_build_expr(trees[-1]),
		loc=_loc(tree),
	)


def _build_struct_lit(tree: Tree) -> StructLiteral:
	path_node, *field_nodes = [c for c in tree.children if isinstance(c, Tree)]
	path = [t.value for t in path_node.children if isinstance(t, Token)]
	fields: List[Tuple[str, Expr]] = []
	base: Optional[Expr] = None
	for node in field_nodes:
		kind = _name(node)
		if kind == "struct_base":
			base = _build_expr(next(c for c in node.children if isinstance(c, Tree)))
			continue
		name_token = next(t for t in node.children if isinstance(t, Token) and t.type == "NAME")
		if kind == "field_shorthand":
			fields.append((name_token.value, Name(loc=_loc_from_token(name_token), ident=name_token.value)))
		else:
			value_node = next(c for c in node.children if isinstance(c, Tree))
			fields.append((name_token.value, _build_expr(value_node)))
	return StructLiteral(loc=_loc(tree), path=path, fields=fields, base=base)


def _build_lambda(tree: Tree) -> Lambda:
	is_move = any(isinstance(c, Token) and c.type == "MOVE" for c in tree.children)
	params: List[Param] = []
	ret_type: Optional[TypeExpr] = None
	body: Optional[Expr] = None
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		kind = _name(child)
		if kind == "closure_params":
			params = [_build_param(p) for p in child.children if isinstance(p, Tree)]
		elif kind == "closure_ret":
			ret_type = _build_ret_type(child)
		else:
			body = _build_expr(child)
	if body is None:
		raise FrontendError("closure missing body", loc=_loc(tree))
	return Lambda(loc=_loc(tree), params=params, body=body, ret_type=ret_type, is_move=is_move)


def _loc(tree: Tree) -> Located:
	meta = tree.meta
	return Located(line=getattr(meta, "line", None), column=getattr(meta, "column", None))


def _loc_from_token(token: Token) -> Located:
	return Located(line=token.line, column=token.column)


def _name(node: Tree | Token) -> str:
	if isinstance(node, Tree):
		data = node.data
		if isinstance(data, Token):
			return data.value
		return data
	if isinstance(node, Token):
		return node.type
	return str(node)
