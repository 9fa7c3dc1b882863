# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Declaration table: identities, markers and name resolution for one unit.

Identity scheme (unique within a compilation unit):

	free function         name            / mod::name
	nested function item  outer::inner
	trait method          Trait::method   / mod::Trait::method
	inherent method       Type::method
	trait impl method     <Type as Trait>::method

Names resolve the way Rust item paths do: through the enclosing function
item scopes, then the current module only (plus its `use` aliases), with
`crate::`, `self::`, `super::` and `Self::` prefixes. Nothing outside the
unit resolves; callers treat unresolved names as unclassified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

from rtlint import hir_nodes as H
from rtlint.core.diagnostics import Diagnostic
from rtlint.core.safety import SafetyTag

logger = logging.getLogger(__name__)

CODE_DUPLICATE_DECL = "rt-duplicate-decl"


class DeclKind(Enum):
	FUNCTION = "function"
	NESTED_FUNCTION = "nested function"
	TRAIT_METHOD = "trait method"
	INHERENT_METHOD = "inherent method"
	TRAIT_IMPL_METHOD = "trait impl method"
	EXTERN_FUNCTION = "extern function"


@dataclass(frozen=True)
class ItemRef:
	"""What a name in an item scope refers to."""

	kind: str  # "fn" | "struct" | "trait" | "mod" | "use" | "type"
	target: object  # decl id / struct or trait key / module path / use path


@dataclass
class ItemScope:
	"""
	One level of item visibility.

	Module scopes end the lookup chain; function scopes (items declared inside a
	body) and impl/trait scopes (which only contribute `Self`) chain to their
	lexical parent.
	"""

	kind: str  # "module" | "fn" | "impl" | "trait"
	path: Tuple[str, ...]
	parent: Optional["ItemScope"] = None
	items: Dict[str, ItemRef] = field(default_factory=dict)
	self_ref: Optional[ItemRef] = None

	@property
	def module(self) -> "ItemScope":
		scope = self
		while scope.kind != "module" and scope.parent is not None:
			scope = scope.parent
		return scope

	@property
	def self_type(self) -> Optional[ItemRef]:
		scope: Optional[ItemScope] = self
		while scope is not None:
			if scope.self_ref is not None:
				return scope.self_ref
			if scope.kind == "module":
				return None
			scope = scope.parent
		return None


@dataclass
class Declaration:
	decl_id: str
	name: str
	kind: DeclKind
	fn: H.HFunction
	scope: ItemScope
	body_scope: Optional[ItemScope] = None
	owner: Optional[str] = None  # struct/type key for methods
	trait: Optional[str] = None  # trait key for trait methods and trait impls

	@property
	def is_extern(self) -> bool:
		return self.fn.is_extern

	@property
	def tag(self) -> SafetyTag:
		"""Declared tag; extern and unmarked declarations are unclassified."""
		if self.fn.is_extern or self.fn.marker is None:
			return SafetyTag.UNCLASSIFIED
		return self.fn.marker.tag

	@property
	def reason(self) -> Optional[str]:
		return self.fn.marker.reason if self.fn.marker is not None else None

	@property
	def has_body(self) -> bool:
		return self.fn.body is not None


@dataclass
class StructInfo:
	key: str
	node: H.HStruct
	scope: ItemScope

	def field_type(self, name: str) -> Optional[H.HType]:
		for fname, fty in self.node.fields:
			if fname == name:
				return fty
		return None


@dataclass
class TraitInfo:
	key: str
	node: H.HTrait
	scope: ItemScope
	methods: Dict[str, str] = field(default_factory=dict)  # method name -> decl id


class DeclTable:
	"""Index of every declaration in a unit plus the scopes needed to resolve paths."""

	def __init__(self) -> None:
		self.declarations: Dict[str, Declaration] = {}
		self.structs: Dict[str, StructInfo] = {}
		self.traits: Dict[str, TraitInfo] = {}
		self.modules: Dict[Tuple[str, ...], ItemScope] = {}
		self.diagnostics: List[Diagnostic] = []
		# (type key, method) -> decl id
		self.inherent: Dict[Tuple[str, str], str] = {}
		# type key -> trait keys implemented for it
		self.trait_impls: Dict[str, List[str]] = {}
		# (type key, trait key, method) -> decl id
		self.impl_methods: Dict[Tuple[str, str, str], str] = {}
		self._roots: List[Declaration] = []
		self._by_fn: Dict[int, Declaration] = {}
		# id() of functions rejected as duplicates
		self._duplicate_fns: Set[int] = set()
		self._pending_impls: List[Tuple[H.HImpl, ItemScope]] = []
		self._resolving: Set[Tuple[Tuple[str, ...], Tuple[str, ...]]] = set()

	# --- building ---

	@classmethod
	def build(cls, unit: H.HUnit) -> "DeclTable":
		table = cls()
		root = table._declare_module(unit.root, path=(), parent=None)
		# Impl targets and traits may be declared after (or in other modules
		# than) the impl block, so methods are indexed once every name is known.
		for impl, scope in table._pending_impls:
			table._index_impl(impl, scope)
		for decl in list(table._roots):
			table._index_body(decl)
		logger.debug(
			"declaration table: %d declarations, %d structs, %d traits (root items: %d)",
			len(table.declarations),
			len(table.structs),
			len(table.traits),
			len(root.items),
		)
		return table

	def _declare_module(self, module: H.HModule, path: Tuple[str, ...], parent: Optional[ItemScope]) -> ItemScope:
		scope = ItemScope(kind="module", path=path, parent=parent)
		self.modules[path] = scope
		for fn in module.functions:
			kind = DeclKind.EXTERN_FUNCTION if fn.is_extern else DeclKind.FUNCTION
			decl = self._add_decl(_qualify(path, fn.name), fn, kind, scope)
			if decl is not None:
				self._bind(scope, fn.name, ItemRef("fn", decl.decl_id))
				self._roots.append(decl)
		for struct in module.structs:
			key = _qualify(path, struct.name)
			self.structs.setdefault(key, StructInfo(key=key, node=struct, scope=scope))
			self._bind(scope, struct.name, ItemRef("struct", key))
		for trait in module.traits:
			self._declare_trait(trait, scope)
		for use in module.uses:
			self._bind(scope, use.bound_name, ItemRef("use", tuple(use.path)))
		for impl in module.impls:
			self._pending_impls.append((impl, scope))
		for sub in module.modules:
			sub_path = path + (sub.name or "",)
			self._bind(scope, sub.name or "", ItemRef("mod", sub_path))
			self._declare_module(sub, sub_path, parent=scope)
		return scope

	def _declare_trait(self, trait: H.HTrait, scope: ItemScope) -> None:
		key = _qualify(scope.path, trait.name)
		if key in self.traits:
			self._duplicate(key, trait.loc)
			return
		info = TraitInfo(key=key, node=trait, scope=scope)
		self.traits[key] = info
		self._bind(scope, trait.name, ItemRef("trait", key))
		trait_scope = ItemScope(kind="trait", path=scope.path, parent=scope, self_ref=ItemRef("trait", key))
		for method in trait.methods:
			decl = self._add_decl(f"{key}::{method.name}", method, DeclKind.TRAIT_METHOD, trait_scope, trait=key)
			if decl is not None:
				info.methods[method.name] = decl.decl_id
				self._roots.append(decl)

	def _index_impl(self, impl: H.HImpl, scope: ItemScope) -> None:
		target = self._type_key(impl.target, scope)
		trait_key: Optional[str] = None
		if impl.trait is not None:
			trait_key = self._type_key(impl.trait, scope)
			self.trait_impls.setdefault(target, [])
			if trait_key not in self.trait_impls[target]:
				self.trait_impls[target].append(trait_key)
		self_kind = "struct" if target in self.structs else "type"
		impl_scope = ItemScope(kind="impl", path=scope.path, parent=scope, self_ref=ItemRef(self_kind, target))
		for method in impl.methods:
			if trait_key is None:
				decl_id = f"{target}::{method.name}"
				decl = self._add_decl(decl_id, method, DeclKind.INHERENT_METHOD, impl_scope, owner=target)
				if decl is not None:
					self.inherent[(target, method.name)] = decl_id
			else:
				decl_id = f"<{target} as {trait_key}>::{method.name}"
				decl = self._add_decl(
					decl_id, method, DeclKind.TRAIT_IMPL_METHOD, impl_scope, owner=target, trait=trait_key
				)
				if decl is not None:
					self.impl_methods[(target, trait_key, method.name)] = decl_id
			if decl is not None:
				self._roots.append(decl)

	def _index_body(self, decl: Declaration) -> None:
		"""Register function items declared inside `decl`'s body (recursively)."""
		if decl.fn.body is None:
			return
		body_scope = ItemScope(kind="fn", path=tuple(decl.decl_id.split("::")), parent=decl.scope)
		decl.body_scope = body_scope
		for item in _nested_items(decl.fn.body):
			nested = self._add_decl(
				f"{decl.decl_id}::{item.name}", item, DeclKind.NESTED_FUNCTION, body_scope, owner=None
			)
			if nested is None:
				continue
			self._bind(body_scope, item.name, ItemRef("fn", nested.decl_id))
			self._index_body(nested)

	def _add_decl(
		self,
		decl_id: str,
		fn: H.HFunction,
		kind: DeclKind,
		scope: ItemScope,
		owner: Optional[str] = None,
		trait: Optional[str] = None,
	) -> Optional[Declaration]:
		if decl_id in self.declarations:
			self._duplicate(decl_id, fn.loc)
			self._duplicate_fns.add(id(fn))
			return None
		decl = Declaration(decl_id=decl_id, name=fn.name, kind=kind, fn=fn, scope=scope, owner=owner, trait=trait)
		self.declarations[decl_id] = decl
		self._by_fn[id(fn)] = decl
		return decl

	def _bind(self, scope: ItemScope, name: str, ref: ItemRef) -> None:
		# First declaration of a name wins; duplicates of declarations are
		# reported by _add_decl, other collisions are left to the compiler.
		scope.items.setdefault(name, ref)

	def _duplicate(self, decl_id: str, loc) -> None:
		self.diagnostics.append(
			Diagnostic(
				message=f"duplicate declaration '{decl_id}'; the first definition is used",
				code=CODE_DUPLICATE_DECL,
				phase="parser",
				severity="error",
				span=loc,
			)
		)

	def _type_key(self, ty: H.HType, scope: ItemScope) -> str:
		"""Key for an impl target or trait: the resolved item, else the text as written."""
		if ty.kind == "path" and ty.name:
			ref = self.resolve_path(ty.name.split("::"), scope)
			if ref is not None and ref.kind in ("struct", "trait", "type"):
				return str(ref.target)
			return ty.name
		return ty.render()

	# --- queries ---

	def root_bodies(self) -> Iterator[Declaration]:
		"""Declarations with bodies that are not nested inside another body."""
		for decl in self._roots:
			if decl.has_body:
				yield decl

	def decl_for(self, fn: H.HFunction) -> Optional[Declaration]:
		return self._by_fn.get(id(fn))

	def is_duplicate(self, fn: H.HFunction) -> bool:
		return id(fn) in self._duplicate_fns

	def get(self, decl_id: str) -> Optional[Declaration]:
		return self.declarations.get(decl_id)

	def resolve_path(self, segments: List[str] | Tuple[str, ...], scope: ItemScope) -> Optional[ItemRef]:
		"""Resolve an item path (`f`, `m::f`, `Type::m`, `crate::x`, `Self::m`)."""
		if not segments:
			return None
		first, rest = segments[0], list(segments[1:])
		cur: Optional[ItemRef]
		if first == "crate":
			cur = ItemRef("mod", ())
		elif first == "self" and rest:
			cur = ItemRef("mod", scope.module.path)
		elif first == "super":
			parent = scope.module.parent
			cur = ItemRef("mod", parent.module.path) if parent is not None else None
		elif first == "Self":
			cur = scope.self_type
		else:
			cur = self._lookup_name(first, scope)
		for seg in rest:
			if cur is None:
				return None
			if seg == "super" and cur.kind == "mod":
				mod_scope = self.modules.get(cur.target)  # type: ignore[arg-type]
				parent = mod_scope.parent if mod_scope is not None else None
				cur = ItemRef("mod", parent.module.path) if parent is not None else None
				continue
			cur = self._member(cur, seg)
		return cur

	def resolve_function(self, segments: List[str] | Tuple[str, ...], scope: ItemScope) -> Optional[Declaration]:
		ref = self.resolve_path(segments, scope)
		if ref is None or ref.kind != "fn":
			return None
		return self.declarations.get(str(ref.target))

	def lookup_method(self, owner_kind: str, owner: str, name: str) -> Optional[Declaration]:
		"""
		Method lookup on a receiver type.

		owner_kind "named": inherent methods first, then methods of traits
		implemented for the type. owner_kind "dyn": the trait's own signature.
		"""
		if owner_kind == "dyn":
			info = self.traits.get(owner)
			decl_id = info.methods.get(name) if info is not None else None
			return self.declarations.get(decl_id) if decl_id is not None else None
		decl_id = self.inherent.get((owner, name))
		if decl_id is not None:
			return self.declarations[decl_id]
		return self._trait_method_for(owner, name)

	def struct_info(self, key: str) -> Optional[StructInfo]:
		return self.structs.get(key)

	# --- resolution helpers ---

	def _lookup_name(self, name: str, scope: ItemScope) -> Optional[ItemRef]:
		cur: Optional[ItemScope] = scope
		while cur is not None:
			ref = cur.items.get(name)
			if ref is not None:
				return self._expand_use(ref, cur)
			if cur.kind == "module":
				return None
			cur = cur.parent
		return None

	def _expand_use(self, ref: ItemRef, scope: ItemScope) -> Optional[ItemRef]:
		if ref.kind != "use":
			return ref
		path = tuple(ref.target)  # type: ignore[arg-type]
		guard = (scope.module.path, path)
		if guard in self._resolving:
			return None
		self._resolving.add(guard)
		try:
			# 2018-style paths are relative to the current module; fall back
			# to crate-relative for `use a::b` written against the root.
			resolved = self.resolve_path(path, scope.module)
			if resolved is None and path[0] not in ("crate", "self", "super"):
				resolved = self.resolve_path(("crate",) + path, scope.module)
		finally:
			self._resolving.discard(guard)
		return resolved

	def _member(self, owner: ItemRef, seg: str) -> Optional[ItemRef]:
		if owner.kind == "mod":
			mod_scope = self.modules.get(owner.target)  # type: ignore[arg-type]
			if mod_scope is None:
				return None
			ref = mod_scope.items.get(seg)
			return self._expand_use(ref, mod_scope) if ref is not None else None
		if owner.kind in ("struct", "type"):
			decl = self.lookup_method("named", str(owner.target), seg)
			return ItemRef("fn", decl.decl_id) if decl is not None else None
		if owner.kind == "trait":
			info = self.traits.get(str(owner.target))
			if info is None or seg not in info.methods:
				return None
			return ItemRef("fn", info.methods[seg])
		return None

	def _trait_method_for(self, owner: str, name: str) -> Optional[Declaration]:
		"""
		Pick the declaration a trait-provided method resolves to.

		The trait's declaration is authoritative when it is marked; otherwise the
		concrete impl's own marker applies. Two implemented traits providing the
		same method name make the call ambiguous (unresolved).
		"""
		candidates: List[Declaration] = []
		for trait_key in self.trait_impls.get(owner, []):
			info = self.traits.get(trait_key)
			trait_decl = self.declarations.get(info.methods[name]) if info and name in info.methods else None
			impl_id = self.impl_methods.get((owner, trait_key, name))
			impl_decl = self.declarations.get(impl_id) if impl_id is not None else None
			if trait_decl is None and impl_decl is None:
				continue
			if trait_decl is not None and (trait_decl.tag is not SafetyTag.UNCLASSIFIED or impl_decl is None):
				candidates.append(trait_decl)
			else:
				candidates.append(impl_decl)  # type: ignore[arg-type]
		if len(candidates) == 1:
			return candidates[0]
		if candidates:
			logger.debug("method '%s' on '%s' is provided by several traits; leaving unresolved", name, owner)
		return None


def _qualify(path: Tuple[str, ...], name: str) -> str:
	return "::".join(path + (name,))


def _nested_items(block: H.HBlock) -> Iterator[H.HFunction]:
	"""Function items anywhere in a body, not descending into those items' own bodies."""
	for stmt in block.statements:
		if isinstance(stmt, H.HItemFn):
			yield stmt.fn
			continue
		for sub in _sub_blocks(stmt):
			yield from _nested_items(sub)


def _sub_blocks(node: H.HNode) -> Iterator[H.HBlock]:
	"""
	Outermost blocks under a statement or expression, including blocks nested
	in an operand such as a `return` value or a call argument.

	Closure bodies are skipped; the checker never walks them.
	"""
	if isinstance(node, H.HBlock):
		yield node
		return
	if isinstance(node, H.HLambda):
		return
	for child in _hir_children(node):
		yield from _sub_blocks(child)


def _hir_children(node: H.HNode) -> Iterator[H.HNode]:
	for f in fields(node):
		value = getattr(node, f.name)
		if isinstance(value, H.HNode):
			yield value
		elif isinstance(value, (list, tuple)):
			for item in value:
				if isinstance(item, H.HNode):
					yield item
				elif isinstance(item, tuple):
					# struct literal fields: (name, value)
					yield from (v for v in item if isinstance(v, H.HNode))


__all__ = [
	"DeclKind",
	"Declaration",
	"DeclTable",
	"ItemRef",
	"ItemScope",
	"StructInfo",
	"TraitInfo",
	"CODE_DUPLICATE_DECL",
]
