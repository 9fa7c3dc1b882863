"""
Exercises item-level parsing: functions, attributes, traits, impls, structs,
modules, extern declarations, types and generic parameter lists.
"""

from __future__ import annotations

import textwrap

import pytest
from lark.exceptions import UnexpectedInput

from rtlint.parser import ast, parse_program


def _parse(src: str) -> ast.Program:
	return parse_program(textwrap.dedent(src))


def test_parse_functions_with_params_and_return_type() -> None:
	"""Parser should keep visibility, params, mutability and return type."""
	prog = _parse(
		"""
		pub fn mix(a: f32, mut b: &mut [f32]) -> f32 {
			a
		}
		fn decl_only(x: i32);
		"""
	)
	mix, decl_only = prog.functions
	assert mix.name == "mix" and mix.is_pub
	assert [p.name for p in mix.params] == ["a", "b"]
	assert mix.params[1].mutable
	assert mix.params[1].type_expr.name == "&mut"
	assert mix.params[1].type_expr.args[0].name == "[]"
	assert mix.return_type.name == "f32"
	assert decl_only.body is None


def test_parse_attributes_and_doc_comments() -> None:
	"""Doc comments and attributes should stay in source order on the item."""
	prog = _parse(
		"""
		/// Heavy setup.
		/// rt:non_realtime
		#[non_realtime("alloc")]
		fn setup() {}
		"""
	)
	attrs = prog.functions[0].attrs
	assert [type(a).__name__ for a in attrs] == ["DocComment", "DocComment", "Attribute"]
	assert attrs[1].text == "rt:non_realtime"
	assert attrs[2].name == "non_realtime"
	assert attrs[2].args == ["alloc"]


def test_parse_trait_impl_struct_mod_use() -> None:
	"""Parser should build trait, impl, struct, mod and use items."""
	prog = _parse(
		"""
		use std::f64::consts::PI;
		use audio::load as fetch;

		struct Unit;
		struct Pair(f32, f64);
		struct Named {
			pub a: u8,
			b: Vec<u8>,
		}

		trait Shape {
			fn area(&self) -> f64;
			fn name(&self) -> &'static str { "shape" }
		}

		impl Shape for Pair {
			fn area(&self) -> f64 { self.0 }
		}

		impl Pair {
			fn new() -> Pair { Pair(1.0, 2.0) }
		}

		mod audio {
			pub fn load() {}
		}
		"""
	)
	assert [u.path for u in prog.uses] == [["std", "f64", "consts", "PI"], ["audio", "load"]]
	assert prog.uses[1].alias == "fetch"
	assert [(s.name, s.is_tuple, [f.name for f in s.fields]) for s in prog.structs] == [
		("Unit", False, []),
		("Pair", True, ["0", "1"]),
		("Named", False, ["a", "b"]),
	]
	trait = prog.traits[0]
	assert [m.name for m in trait.methods] == ["area", "name"]
	assert trait.methods[0].body is None and trait.methods[1].body is not None
	trait_impl, inherent = prog.implements
	assert trait_impl.trait.name == "Shape" and trait_impl.target.name == "Pair"
	assert inherent.trait is None and inherent.target.name == "Pair"
	assert prog.modules[0].name == "audio"
	assert prog.modules[0].body.functions[0].name == "load"


def test_parse_extern_fn_and_block() -> None:
	"""Extern functions and extern blocks should record their ABI."""
	prog = _parse(
		"""
		extern "C" fn free(p: usize);

		#[non_realtime]
		extern "C" {
			fn malloc(n: usize) -> usize;
			#[realtime]
			fn abs(x: i32) -> i32;
		}
		"""
	)
	names = [(f.name, f.is_extern, f.abi) for f in prog.functions]
	assert names == [("free", True, "C"), ("malloc", True, "C"), ("abs", True, "C")]
	# Block-level attributes are prepended to each declaration.
	assert [a.name for a in prog.functions[2].attrs] == ["non_realtime", "realtime"]


def test_parse_types() -> None:
	"""Parser should build boxed, dyn, impl, fn, tuple and unit types."""
	prog = _parse(
		"""
		fn f(a: Box<dyn Shape>, b: impl Fn(i32) -> i32, c: fn(&str, f32), d: (u8, u8), e: ()) {}
		"""
	)
	types = [p.type_expr for p in prog.functions[0].params]
	assert types[0].name == "Box" and types[0].args[0].name == "dyn"
	assert types[0].args[0].args[0].name == "Shape"
	assert types[1].name == "impl" and types[1].args[0].name == "Fn"
	assert types[2].name == "fn" and [t.name for t in types[2].args] == ["&", "f32"]
	assert types[3].name == "(,)"
	assert types[4].name == "()"


def test_parse_self_params() -> None:
	"""Self params should record their reference kind."""
	prog = _parse(
		"""
		impl Engine {
			fn a(&self) {}
			fn b(&mut self) {}
			fn c(self) {}
		}
		"""
	)
	methods = prog.implements[0].methods
	assert [m.params[0].self_ref for m in methods] == ["&", "&mut", None]
	assert all(m.params[0].name == "self" for m in methods)


def test_inner_attributes_are_accepted() -> None:
	"""Crate-level inner attributes should attach to the next item."""
	prog = _parse(
		"""
		#![feature(stmt_expr_attributes)]
		#![register_tool(dylint)]

		fn main() {}
		"""
	)
	assert [a.inner for a in prog.functions[0].attrs] == [True, True]


def test_syntax_error_raises_unexpected_input() -> None:
	"""Malformed source should surface lark's UnexpectedInput."""
	with pytest.raises(UnexpectedInput):
		_parse("fn broken( {")


def test_generic_parameters_and_where_clauses_are_skipped() -> None:
	"""Generic params, bounds and where clauses should parse and be dropped."""
	prog = _parse(
		"""
		struct Holder<T> where T: Copy {
			value: T,
		}

		trait Source<T>: Clone {
			fn pull(&self) -> T;
		}

		impl<T: Copy + Default> Holder<T> {
			fn get<'a, U>(&'a self, other: U) -> T where U: Into<T> {
				self.value
			}
		}

		impl<T> Source<T> for Holder<T> where T: Copy {
			fn pull(&self) -> T { self.value }
		}

		#[non_realtime]
		pub fn slow<T>(x: T) {}
		"""
	)
	assert [(s.name, [f.name for f in s.fields]) for s in prog.structs] == [("Holder", ["value"])]
	assert [m.name for m in prog.traits[0].methods] == ["pull"]
	inherent, trait_impl = prog.implements
	assert inherent.target.name == "Holder" and inherent.target.args[0].name == "T"
	assert [p.name for p in inherent.methods[0].params] == ["self", "other"]
	assert inherent.methods[0].return_type.name == "T"
	assert trait_impl.trait.name == "Source" and trait_impl.target.name == "Holder"
	slow = prog.functions[0]
	assert slow.name == "slow" and [p.name for p in slow.params] == ["x"]
