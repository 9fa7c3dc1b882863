# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Static receiver types, just precise enough for method resolution.

Types are resolved structurally from annotations: references and the
smart pointers `Box`, `Rc` and `Arc` are transparent (auto-deref), `dyn
Trait` / `impl Trait` become trait objects, local structs and other named
types keep their key. Everything else (generics, tuples, slices, fn
pointers) is unknown.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from rtlint import hir_nodes as H
from rtlint.decl_table import DeclTable, ItemScope

# Single-parameter wrappers that method calls see through.
_TRANSPARENT_WRAPPERS = {"Box", "Rc", "Arc"}


@dataclass(frozen=True)
class TypeRef:
	kind: str  # "named" | "dyn" | "unknown"
	path: Optional[str] = None

	@property
	def is_known(self) -> bool:
		return self.kind != "unknown" and self.path is not None

	def render(self) -> str:
		if self.kind == "dyn":
			return f"dyn {self.path}"
		return self.path or "<unknown>"


UNKNOWN = TypeRef(kind="unknown")


class TypeResolver:
	def __init__(self, table: DeclTable) -> None:
		self.table = table

	def resolve(self, ty: Optional[H.HType], scope: ItemScope) -> TypeRef:
		if ty is None:
			return UNKNOWN
		if ty.kind in ("ref", "ref_mut"):
			return self.resolve(ty.args[0], scope)
		if ty.kind in ("dyn", "impl"):
			return self._trait_object(ty.args[0], scope)
		if ty.kind != "path" or not ty.name:
			return UNKNOWN
		leaf = ty.name.rsplit("::", 1)[-1]
		if leaf in _TRANSPARENT_WRAPPERS and len(ty.args) == 1:
			return self.resolve(ty.args[0], scope)
		if ty.name == "Self":
			return self.from_item(scope.self_type)
		ref = self.table.resolve_path(ty.name.split("::"), scope)
		if ref is not None:
			resolved = self.from_item(ref)
			if resolved.is_known:
				return resolved
		if "::" in ty.name or ty.args:
			# Paths into other crates and generic containers are opaque.
			return UNKNOWN
		return TypeRef(kind="named", path=ty.name)

	def from_item(self, ref) -> TypeRef:
		"""TypeRef for an ItemRef naming a type (struct, trait, or impl target)."""
		if ref is None:
			return UNKNOWN
		if ref.kind in ("struct", "type"):
			return TypeRef(kind="named", path=str(ref.target))
		if ref.kind == "trait":
			# Bare trait used as a type, or `Self` inside a trait body.
			return TypeRef(kind="dyn", path=str(ref.target))
		return UNKNOWN

	def _trait_object(self, trait_ty: H.HType, scope: ItemScope) -> TypeRef:
		if trait_ty.kind != "path" or not trait_ty.name:
			return UNKNOWN
		ref = self.table.resolve_path(trait_ty.name.split("::"), scope)
		if ref is None or ref.kind != "trait":
			return UNKNOWN
		return TypeRef(kind="dyn", path=str(ref.target))


__all__ = ["TypeRef", "TypeResolver", "UNKNOWN"]
