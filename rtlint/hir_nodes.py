# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
High-level IR consumed by the declaration table and the realtime checker.

Items keep their lowered safety markers (`DeclMarker` on functions,
`BindingOverride` on lets); expressions keep only what call resolution needs.
Every node carries a `loc` Span (unknown when the parser had no position).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional, Tuple

from rtlint.core.safety import BindingOverride, DeclMarker
from rtlint.core.span import Span


# Base node kinds

class HNode:
	"""Base class for all HIR nodes."""
	pass


class HExpr(HNode):
	"""Base class for all HIR expressions."""
	pass


class HStmt(HNode):
	"""Base class for all HIR statements."""
	pass


# Operator enums

class UnaryOp(Enum):
	NEG = auto()         # numeric negation: -x
	NOT = auto()         # logical not: !x
	DEREF = auto()       # *x
	BORROW = auto()      # &x
	BORROW_MUT = auto()  # &mut x


class BinaryOp(Enum):
	ADD = auto()
	SUB = auto()
	MUL = auto()
	DIV = auto()
	MOD = auto()

	EQ = auto()
	NE = auto()
	LT = auto()
	LE = auto()
	GT = auto()
	GE = auto()

	AND = auto()  # logical and (&&)
	OR = auto()   # logical or (||)


# Types

@dataclass
class HType:
	"""
	Surface type kept in structural form.

	kind: "path" (name set), "ref"/"ref_mut" (args[0] is the referent),
	"dyn"/"impl" (args[0] is the trait path), "fn" (args are parameters, ret
	the result), "slice", "tuple", "unit".
	"""

	kind: str
	name: Optional[str] = None
	args: List["HType"] = field(default_factory=list)
	ret: Optional["HType"] = None

	def render(self) -> str:
		if self.kind == "path":
			if self.args:
				return f"{self.name}<{', '.join(a.render() for a in self.args)}>"
			return str(self.name)
		if self.kind == "ref":
			return f"&{self.args[0].render()}"
		if self.kind == "ref_mut":
			return f"&mut {self.args[0].render()}"
		if self.kind in ("dyn", "impl"):
			return f"{self.kind} {self.args[0].render()}"
		if self.kind == "fn":
			ret = f" -> {self.ret.render()}" if self.ret is not None else ""
			return f"fn({', '.join(a.render() for a in self.args)}){ret}"
		if self.kind == "slice":
			return f"[{self.args[0].render()}]"
		if self.kind == "unit":
			return "()"
		return f"({', '.join(a.render() for a in self.args)})"


# Patterns

@dataclass
class HPattern:
	"""
	Binding pattern (`let`, `for`, `if let`, `while let`, match arms).

	kind: "bind" (name set), "wild", "path" (a unit variant or constant),
	"lit"/"range" (name holds the source text), "rest", or a structural kind
	("tuple", "tuple_struct", "struct", "slice", "ref", "or") whose
	sub-patterns are in `elements`.
	"""

	kind: str
	name: Optional[str] = None
	path: List[str] = field(default_factory=list)
	elements: List["HPattern"] = field(default_factory=list)
	loc: Span = field(default_factory=Span)

	def binders(self) -> List[str]:
		"""Names this pattern binds, in source order."""
		if self.kind == "bind":
			return [self.name] if self.name else []
		if self.kind == "or":
			# Every alternative binds the same names.
			return self.elements[0].binders() if self.elements else []
		out: List[str] = []
		for element in self.elements:
			out.extend(element.binders())
		return out

	def render(self) -> str:
		if self.kind == "bind":
			return str(self.name)
		if self.kind == "wild":
			return "_"
		if self.kind == "rest":
			return ".."
		if self.kind in ("lit", "range"):
			return str(self.name)
		path = "::".join(self.path)
		if self.kind == "path":
			return path
		inner = ", ".join(e.render() for e in self.elements)
		if self.kind == "tuple":
			return f"({inner})"
		if self.kind == "tuple_struct":
			return f"{path}({inner})"
		if self.kind == "struct":
			return f"{path} {{ {inner} }}"
		if self.kind == "slice":
			return f"[{inner}]"
		if self.kind == "ref":
			return f"&{inner}"
		return " | ".join(e.render() for e in self.elements)


# Expressions

@dataclass
class HVar(HExpr):
	"""Single-segment name: a local binding or an item in scope."""
	name: str
	loc: Span = field(default_factory=Span)


@dataclass
class HPath(HExpr):
	"""Multi-segment path (`m::f`, `Type::method`, `crate::a::b`)."""
	segments: List[str]
	loc: Span = field(default_factory=Span)

	@property
	def text(self) -> str:
		return "::".join(self.segments)


@dataclass
class HLiteralInt(HExpr):
	value: int
	loc: Span = field(default_factory=Span)


@dataclass
class HLiteralFloat(HExpr):
	value: float
	loc: Span = field(default_factory=Span)


@dataclass
class HLiteralString(HExpr):
	value: str
	loc: Span = field(default_factory=Span)


@dataclass
class HLiteralBool(HExpr):
	value: bool
	loc: Span = field(default_factory=Span)


@dataclass
class HCall(HExpr):
	fn: HExpr
	args: List[HExpr]
	loc: Span = field(default_factory=Span)


@dataclass
class HMethodCall(HExpr):
	receiver: HExpr
	method_name: str
	args: List[HExpr]
	loc: Span = field(default_factory=Span)


@dataclass
class HMacroCall(HExpr):
	"""`name!(...)`: never resolved to a declaration; arguments are still walked."""
	name: str
	args: List[HExpr]
	loc: Span = field(default_factory=Span)


@dataclass
class HField(HExpr):
	subject: HExpr
	name: str
	loc: Span = field(default_factory=Span)


@dataclass
class HIndex(HExpr):
	subject: HExpr
	index: HExpr
	loc: Span = field(default_factory=Span)


@dataclass
class HUnary(HExpr):
	op: UnaryOp
	expr: HExpr
	loc: Span = field(default_factory=Span)


@dataclass
class HBinary(HExpr):
	op: BinaryOp
	left: HExpr
	right: HExpr
	loc: Span = field(default_factory=Span)


@dataclass
class HCast(HExpr):
	expr: HExpr
	ty: HType
	loc: Span = field(default_factory=Span)


@dataclass
class HRange(HExpr):
	start: HExpr
	end: HExpr
	loc: Span = field(default_factory=Span)


@dataclass
class HTry(HExpr):
	"""Postfix `?`."""
	expr: HExpr
	loc: Span = field(default_factory=Span)


@dataclass
class HTuple(HExpr):
	"""Tuple literal; the empty tuple is the unit value."""
	elements: List[HExpr]
	loc: Span = field(default_factory=Span)


@dataclass
class HArrayLiteral(HExpr):
	elements: List[HExpr]
	loc: Span = field(default_factory=Span)


@dataclass
class HArrayRepeat(HExpr):
	value: HExpr
	count: HExpr
	loc: Span = field(default_factory=Span)


@dataclass
class HBlockExpr(HExpr):
	block: "HBlock"
	loc: Span = field(default_factory=Span)


@dataclass
class HIf(HExpr):
	cond: HExpr
	then_block: "HBlock"
	else_block: Optional["HBlock"]
	loc: Span = field(default_factory=Span)
	# `if let`: `cond` is the scrutinee and the bindings live in `then_block`.
	pattern: Optional[HPattern] = None


@dataclass
class HMatchArm(HNode):
	pattern: HPattern
	guard: Optional[HExpr]
	body: HExpr
	loc: Span = field(default_factory=Span)


@dataclass
class HMatch(HExpr):
	"""`match`: every arm is its own block scope holding the pattern bindings."""
	scrutinee: HExpr
	arms: List[HMatchArm]
	loc: Span = field(default_factory=Span)


@dataclass
class HStructLit(HExpr):
	path: List[str]
	fields: List[Tuple[str, HExpr]]
	base: Optional[HExpr] = None
	loc: Span = field(default_factory=Span)


@dataclass
class HLambda(HExpr):
	"""
	Closure literal. Its body is kept for completeness but is not an
	executable body for the checker: only the binding it lands in is tracked.
	"""
	params: List["HParam"]
	body: HExpr
	is_move: bool = False
	loc: Span = field(default_factory=Span)


# Statements

@dataclass
class HBlock(HStmt):
	statements: List[HStmt]
	loc: Span = field(default_factory=Span)


@dataclass
class HExprStmt(HStmt):
	expr: HExpr
	loc: Span = field(default_factory=Span)


@dataclass
class HLet(HStmt):
	name: str
	value: Optional[HExpr]
	declared_type: Optional[HType] = None
	mutable: bool = False
	override: Optional[BindingOverride] = None
	loc: Span = field(default_factory=Span)
	# Destructuring `let`; `name` is empty.
	pattern: Optional[HPattern] = None


@dataclass
class HAssign(HStmt):
	target: HExpr  # usually HVar, HField, HIndex
	value: HExpr
	augmented: bool = False  # `+=` and friends
	loc: Span = field(default_factory=Span)


@dataclass
class HWhile(HStmt):
	cond: HExpr
	body: HBlock
	loc: Span = field(default_factory=Span)
	# `while let`
	pattern: Optional[HPattern] = None


@dataclass
class HLoop(HStmt):
	body: HBlock
	loc: Span = field(default_factory=Span)


@dataclass
class HFor(HStmt):
	binder: str
	iterable: HExpr
	body: HBlock
	loc: Span = field(default_factory=Span)
	# Destructuring loop variable; `binder` is empty.
	pattern: Optional[HPattern] = None


@dataclass
class HBreak(HStmt):
	loc: Span = field(default_factory=Span)


@dataclass
class HContinue(HStmt):
	loc: Span = field(default_factory=Span)


@dataclass
class HReturn(HStmt):
	value: Optional[HExpr]
	loc: Span = field(default_factory=Span)


@dataclass
class HItemFn(HStmt):
	"""Function item declared inside a body."""
	fn: "HFunction"
	loc: Span = field(default_factory=Span)


# Items

@dataclass
class HParam:
	name: str
	ty: Optional[HType]
	is_self: bool = False
	loc: Span = field(default_factory=Span)


@dataclass
class HFunction:
	name: str
	params: List[HParam]
	ret_type: Optional[HType]
	body: Optional[HBlock]
	marker: Optional[DeclMarker] = None
	is_extern: bool = False
	loc: Span = field(default_factory=Span)


@dataclass
class HTrait:
	name: str
	methods: List[HFunction]
	loc: Span = field(default_factory=Span)


@dataclass
class HImpl:
	target: HType
	trait: Optional[HType]
	methods: List[HFunction]
	loc: Span = field(default_factory=Span)


@dataclass
class HStruct:
	name: str
	fields: List[Tuple[str, HType]]
	is_tuple: bool = False
	loc: Span = field(default_factory=Span)


@dataclass
class HUse:
	path: List[str]
	alias: Optional[str] = None
	loc: Span = field(default_factory=Span)

	@property
	def bound_name(self) -> str:
		return self.alias or self.path[-1]


@dataclass
class HModule:
	"""Item container: the crate root (name None) or a `mod` block."""
	name: Optional[str]
	functions: List[HFunction] = field(default_factory=list)
	traits: List[HTrait] = field(default_factory=list)
	impls: List[HImpl] = field(default_factory=list)
	structs: List[HStruct] = field(default_factory=list)
	uses: List[HUse] = field(default_factory=list)
	modules: List["HModule"] = field(default_factory=list)
	loc: Span = field(default_factory=Span)


@dataclass
class HUnit:
	"""One compilation unit (one source file)."""
	root: HModule
	file: Optional[str] = None


__all__ = [
	"HNode", "HExpr", "HStmt",
	"UnaryOp", "BinaryOp", "HType", "HPattern",
	"HVar", "HPath", "HLiteralInt", "HLiteralFloat", "HLiteralString", "HLiteralBool",
	"HCall", "HMethodCall", "HMacroCall", "HField", "HIndex",
	"HUnary", "HBinary", "HCast", "HRange", "HTry",
	"HTuple", "HArrayLiteral", "HArrayRepeat", "HBlockExpr", "HIf", "HMatchArm", "HMatch",
	"HStructLit", "HLambda",
	"HBlock", "HExprStmt", "HLet", "HAssign", "HWhile", "HLoop", "HFor",
	"HBreak", "HContinue", "HReturn", "HItemFn",
	"HParam", "HFunction", "HTrait", "HImpl", "HStruct", "HUse", "HModule", "HUnit",
]
