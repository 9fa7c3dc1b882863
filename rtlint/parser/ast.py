from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union


@dataclass(frozen=True)
class Located:
    line: Optional[int]
    column: Optional[int]


@dataclass
class Attribute:
    name: str
    args: List[str]
    loc: Located
    inner: bool = False


@dataclass
class DocComment:
    text: str
    loc: Located


AttrLike = Union[Attribute, DocComment]


@dataclass
class TypeExpr:
    """
    Surface type.

    `name` is a path (`Box`, `std::rc::Rc`, `Self`) or one of the structural
    spellings `&`, `&mut`, `dyn`, `impl`, `fn`, `[]`, `()`, `(,)`. Structural
    forms keep their operands in `args`; `fn` pointer types carry `ret`.
    """

    name: str
    args: List["TypeExpr"] = field(default_factory=list)
    ret: Optional["TypeExpr"] = None


@dataclass
class Param:
    name: str
    type_expr: Optional[TypeExpr]
    loc: Located
    mutable: bool = False
    # `&self` / `&mut self` shorthand; None for ordinary parameters.
    self_ref: Optional[str] = None


@dataclass
class Pattern:
    """
    Binding pattern of a `let`, `for`, `if let`, `while let` or match arm.

    kind: "bind" (`name`, `mutable`), "wild", "path" (`path`: a unit variant
    or constant), "lit", "range", "rest", and the structural kinds "tuple",
    "tuple_struct", "struct", "slice", "ref" and "or", which keep their
    sub-patterns in `elements`. Literal and range patterns keep their source
    text in `name` (`-1`, `0..=9`).
    """

    kind: str
    loc: Located
    name: Optional[str] = None
    path: List[str] = field(default_factory=list)
    elements: List["Pattern"] = field(default_factory=list)
    mutable: bool = False


@dataclass
class Block:
    statements: List["Stmt"]
    loc: Optional[Located] = None


class Stmt:
    loc: Located


@dataclass
class LetStmt(Stmt):
    loc: Located
    name: str
    type_expr: Optional[TypeExpr]
    value: Optional["Expr"]
    mutable: bool = False
    attrs: List[AttrLike] = field(default_factory=list)
    # Destructuring lets keep their pattern; `name` is empty then.
    pattern: Optional[Pattern] = None


@dataclass
class AssignStmt(Stmt):
    loc: Located
    target: "Expr"
    value: "Expr"
    op: str = "="
    attrs: List[AttrLike] = field(default_factory=list)


@dataclass
class ReturnStmt(Stmt):
    loc: Located
    value: Optional["Expr"]
    attrs: List[AttrLike] = field(default_factory=list)


@dataclass
class BreakStmt(Stmt):
    loc: Located
    attrs: List[AttrLike] = field(default_factory=list)


@dataclass
class ContinueStmt(Stmt):
    loc: Located
    attrs: List[AttrLike] = field(default_factory=list)


@dataclass
class WhileStmt(Stmt):
    loc: Located
    cond: "Expr"
    body: Block
    attrs: List[AttrLike] = field(default_factory=list)
    # `while let PATTERN = cond`
    pattern: Optional[Pattern] = None


@dataclass
class LoopStmt(Stmt):
    loc: Located
    body: Block
    attrs: List[AttrLike] = field(default_factory=list)


@dataclass
class ForStmt(Stmt):
    loc: Located
    var: str
    iter_expr: "Expr"
    body: Block
    attrs: List[AttrLike] = field(default_factory=list)
    pattern: Optional[Pattern] = None


@dataclass
class ExprStmt(Stmt):
    loc: Located
    value: "Expr"
    attrs: List[AttrLike] = field(default_factory=list)


@dataclass
class ItemStmt(Stmt):
    """A function item declared inside a body."""

    loc: Located
    function: "FunctionDef"


@dataclass
class FunctionDef:
    name: str
    params: List[Param]
    return_type: Optional[TypeExpr]
    body: Optional[Block]
    loc: Located
    attrs: List[AttrLike] = field(default_factory=list)
    is_pub: bool = False
    is_extern: bool = False
    abi: Optional[str] = None


class Expr:
    loc: Located


@dataclass
class Literal(Expr):
    loc: Located
    value: object


@dataclass
class Name(Expr):
    loc: Located
    ident: str


@dataclass
class Path(Expr):
    """Multi-segment path expression: `a::b::c`."""

    loc: Located
    segments: List[str]


@dataclass
class Attr(Expr):
    loc: Located
    value: Expr
    attr: str


@dataclass
class TupleField(Expr):
    loc: Located
    value: Expr
    index: int


@dataclass
class Call(Expr):
    loc: Located
    func: Expr
    args: List[Expr]


@dataclass
class MethodCall(Expr):
    loc: Located
    receiver: Expr
    method: str
    args: List[Expr]


@dataclass
class MacroCall(Expr):
    loc: Located
    name: str
    args: List[Expr]


@dataclass
class Binary(Expr):
    loc: Located
    op: str
    left: Expr
    right: Expr


@dataclass
class Unary(Expr):
    loc: Located
    op: str
    operand: Expr


@dataclass
class Cast(Expr):
    loc: Located
    value: Expr
    type_expr: TypeExpr


@dataclass
class Range(Expr):
    loc: Located
    start: Expr
    end: Expr


@dataclass
class Index(Expr):
    loc: Located
    value: Expr
    index: Expr


@dataclass
class TryOp(Expr):
    loc: Located
    value: Expr


@dataclass
class TupleLiteral(Expr):
    loc: Located
    elements: List[Expr]


@dataclass
class ArrayLiteral(Expr):
    loc: Located
    elements: List[Expr]


@dataclass
class ArrayRepeat(Expr):
    loc: Located
    value: Expr
    count: Expr


@dataclass
class BlockExpr(Expr):
    loc: Located
    block: Block


@dataclass
class IfExpr(Expr):
    loc: Located
    cond: Expr
    then_block: Block
    else_expr: Optional[Expr] = None
    # `if let PATTERN = cond`
    pattern: Optional[Pattern] = None


@dataclass
class MatchArm:
    pattern: Pattern
    guard: Optional[Expr]
    body: Expr
    loc: Located


@dataclass
class MatchExpr(Expr):
    loc: Located
    scrutinee: Expr
    arms: List[MatchArm]


@dataclass
class StructLiteral(Expr):
    """`Path { field: value, shorthand, ..base }`; shorthand fields become names."""

    loc: Located
    path: List[str]
    fields: List[Tuple[str, Expr]]
    base: Optional[Expr] = None


@dataclass
class Lambda(Expr):
    loc: Located
    params: List[Param]
    body: Expr
    ret_type: Optional[TypeExpr] = None
    is_move: bool = False


@dataclass
class StructField:
    name: str
    type_expr: TypeExpr


@dataclass
class StructDef:
    name: str
    fields: List[StructField]
    loc: Located
    attrs: List[AttrLike] = field(default_factory=list)
    is_tuple: bool = False


@dataclass
class TraitDef:
    name: str
    methods: List[FunctionDef]
    loc: Located
    attrs: List[AttrLike] = field(default_factory=list)


@dataclass
class ImplementDef:
    target: TypeExpr
    trait: Optional[TypeExpr]
    methods: List[FunctionDef]
    loc: Located
    attrs: List[AttrLike] = field(default_factory=list)


@dataclass
class UseDecl:
    path: List[str]
    alias: Optional[str]
    loc: Located
    attrs: List[AttrLike] = field(default_factory=list)

    @property
    def bound_name(self) -> str:
        return self.alias or self.path[-1]


@dataclass
class ModDef:
    name: str
    body: "Program"
    loc: Located
    attrs: List[AttrLike] = field(default_factory=list)


@dataclass
class Program:
    functions: List[FunctionDef] = field(default_factory=list)
    traits: List[TraitDef] = field(default_factory=list)
    implements: List[ImplementDef] = field(default_factory=list)
    structs: List[StructDef] = field(default_factory=list)
    modules: List[ModDef] = field(default_factory=list)
    uses: List[UseDecl] = field(default_factory=list)
