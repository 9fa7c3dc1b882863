"""
Exercises method, path and nested-item resolution in the realtime checker.
"""

from __future__ import annotations

from rtlint import decl_table
from rtlint.checker import CallShape
from rtlint.test_support import check_unit, codes, run, table_for, violation_messages


ENGINE = """
struct Engine;

trait Voice {
	fn render(&self);
	#[non_realtime]
	fn load(&self) {}
}

impl Engine {
	#[non_realtime("alloc")]
	fn grow(&self) {}

	#[realtime]
	fn tick(&self) {
		self.grow();
	}

	#[non_realtime]
	fn build() -> Engine {
		Engine
	}

	#[realtime]
	fn rebuild(&self) {
		Self::build();
	}
}

impl Voice for Engine {
	#[non_realtime]
	fn render(&self) {}
}
"""


def test_inherent_method_through_typed_parameter() -> None:
	"""A typed parameter should resolve its inherent methods."""
	src = ENGINE + """
	#[realtime]
	fn run(e: &Engine) {
		e.grow();
	}
	"""
	checked = check_unit(src)
	messages = [d.message for d in checked.diagnostics]
	assert "realtime function 'run' calls non-realtime method 'Engine::grow'" in messages
	run_violation = next(v for v in checked.violations if v.body_id == "run")
	assert run_violation.target.shape is CallShape.METHOD


def test_self_receiver_inside_impl() -> None:
	"""`self.method()` should resolve inside an impl."""
	messages = violation_messages(ENGINE)
	assert "realtime function 'Engine::tick' calls non-realtime method 'Engine::grow'" in messages


def test_self_path_call_inside_impl() -> None:
	"""`Self::f()` should resolve inside an impl."""
	messages = violation_messages(ENGINE)
	assert "realtime function 'Engine::rebuild' calls non-realtime function 'Engine::build'" in messages


def test_trait_impl_marker_applies_when_trait_signature_is_unmarked() -> None:
	"""An impl marker should apply when the trait signature has none."""
	src = ENGINE + """
	#[realtime]
	fn run(e: Engine) {
		e.render();
	}
	"""
	messages = violation_messages(src)
	assert "realtime function 'run' calls non-realtime method '<Engine as Voice>::render'" in messages


def test_marked_trait_signature_wins_over_impl() -> None:
	"""A marked trait signature should win over its impl."""
	src = ENGINE + """
	#[realtime]
	fn run(e: Engine) {
		e.load();
	}
	"""
	messages = violation_messages(src)
	assert "realtime function 'run' calls non-realtime method 'Voice::load'" in messages


def test_dyn_receiver_uses_trait_signature() -> None:
	"""A dyn receiver should use the trait signature's tag."""
	src = ENGINE + """
	#[realtime]
	fn run(v: &dyn Voice, boxed: Box<dyn Voice>) {
		v.render();
		v.load();
		boxed.load();
	}
	"""
	messages = [m for m in violation_messages(src) if m.startswith("realtime function 'run'")]
	# `render` is unmarked on the trait itself, so dynamic dispatch stays unclassified.
	assert messages == [
		"realtime function 'run' calls non-realtime method 'Voice::load'",
		"realtime function 'run' calls non-realtime method 'Voice::load'",
	]


def test_receiver_type_from_constructor_and_return_type() -> None:
	"""Receiver types should come from constructors and return types."""
	src = ENGINE + """
	fn make() -> Engine {
		Engine
	}

	#[realtime]
	fn run() {
		let a = Engine;
		a.grow();
		let b = make();
		b.grow();
		make().grow();
	}
	"""
	messages = [m for m in violation_messages(src) if m.startswith("realtime function 'run'")]
	assert len(messages) == 3


def test_receiver_type_through_struct_field() -> None:
	"""A field access should take the declared field type."""
	src = ENGINE + """
	struct Host {
		engine: Engine,
	}

	#[realtime]
	fn run(h: &Host) {
		h.engine.grow();
	}
	"""
	messages = violation_messages(src)
	assert "realtime function 'run' calls non-realtime method 'Engine::grow'" in messages


def test_unknown_receiver_is_unclassified() -> None:
	"""A receiver of unknown type should never report."""
	src = ENGINE + """
	#[realtime]
	fn run(items: Vec<Engine>) {
		items.grow();
		items[0].grow();
	}
	"""
	messages = [m for m in violation_messages(src) if m.startswith("realtime function 'run'")]
	assert messages == []


def test_module_paths_and_use_aliases() -> None:
	"""Module paths and use aliases should resolve to declarations."""
	src = """
	mod audio {
		#[non_realtime]
		pub fn load() {}

		pub mod dsp {
			#[non_realtime]
			pub fn fft() {}

			#[realtime]
			pub fn mix() {
				super::load();
			}
		}
	}

	use audio::load as fetch;
	use audio::dsp;

	#[realtime]
	fn run() {
		audio::load();
		crate::audio::dsp::fft();
		fetch();
		dsp::fft();
	}
	"""
	assert sorted(violation_messages(src)) == sorted([
		"realtime function 'audio::dsp::mix' calls non-realtime function 'audio::load'",
		"realtime function 'run' calls non-realtime function 'audio::load'",
		"realtime function 'run' calls non-realtime function 'audio::dsp::fft'",
		"realtime function 'run' calls non-realtime function 'audio::load'",
		"realtime function 'run' calls non-realtime function 'audio::dsp::fft'",
	])


def test_nested_function_items_get_their_own_context() -> None:
	"""Nested fn items should be checked in their own context."""
	src = """
	#[non_realtime]
	fn slow() {}

	fn outer() {
		#[realtime]
		fn inner() {
			slow();
		}
		slow();
		inner();
	}

	#[realtime]
	fn rt_outer() {
		fn helper() {
			slow();
		}
		helper();
		slow();
	}
	"""
	assert violation_messages(src) == [
		"realtime function 'outer::inner' calls non-realtime function 'slow'",
		"realtime function 'rt_outer' calls non-realtime function 'slow'",
	]


def test_outer_bindings_are_not_visible_in_nested_items() -> None:
	"""Outer bindings should not be visible inside nested items."""
	src = """
	#[non_realtime]
	fn slow() {}

	#[realtime]
	fn outer() {
		let f = slow;
		#[realtime]
		fn inner() {
			f();
		}
		f();
	}
	"""
	assert violation_messages(src) == ["realtime function 'outer' calls non-realtime function reference 'f'"]


def test_nested_item_resolves_by_name_from_enclosing_body() -> None:
	"""A nested item should resolve by name from its enclosing body."""
	src = """
	#[realtime]
	fn outer() {
		helper();

		#[non_realtime]
		fn helper() {}
	}
	"""
	assert violation_messages(src) == ["realtime function 'outer' calls non-realtime function 'outer::helper'"]


def test_declaration_identities() -> None:
	"""Declarations should get qualified identities."""
	table = table_for(ENGINE + """
	mod m {
		fn f() {
			fn g() {}
		}
	}
	""")
	ids = set(table.declarations)
	assert {
		"Voice::render",
		"Voice::load",
		"Engine::grow",
		"Engine::tick",
		"Engine::build",
		"Engine::rebuild",
		"<Engine as Voice>::render",
		"m::f",
		"m::f::g",
	} <= ids


def test_nested_item_inside_returned_block_is_checked() -> None:
	"""A fn item inside a block returned from the body should be checked."""
	src = """
	#[non_realtime]
	fn slow() {}

	#[realtime]
	fn tick() -> i32 {
		return { #[realtime] fn inner() { slow(); } inner(); 1 };
	}
	"""
	assert violation_messages(src) == ["realtime function 'tick::inner' calls non-realtime function 'slow'"]


def test_nested_items_inside_operands_are_checked() -> None:
	"""Fn items in blocks used as let values, arguments and operands should be checked."""
	src = """
	#[non_realtime]
	fn slow() -> i32 { 1 }

	#[realtime]
	fn tick() -> i32 {
		let a = {
			#[realtime]
			fn in_let() { slow(); }
			1
		};
		mix({
			#[realtime]
			fn in_arg() { slow(); }
			2
		});
		println!("{}", {
			#[realtime]
			fn in_macro() { slow(); }
			3
		});
		return a + {
			#[realtime]
			fn in_operand() { slow(); }
			4
		};
	}
	"""
	assert violation_messages(src) == [
		"realtime function 'tick::in_let' calls non-realtime function 'slow'",
		"realtime function 'tick::in_arg' calls non-realtime function 'slow'",
		"realtime function 'tick::in_macro' calls non-realtime function 'slow'",
		"realtime function 'tick::in_operand' calls non-realtime function 'slow'",
	]
	ids = set(table_for(src).declarations)
	assert {"tick::in_let", "tick::in_arg", "tick::in_macro", "tick::in_operand"} <= ids


def test_nested_items_inside_match_arms_are_declared() -> None:
	"""Fn items in match arm blocks should be declared and checked."""
	src = """
	#[non_realtime]
	fn slow() {}

	#[realtime]
	fn tick(v: Option<i32>) {
		match v {
			Some(x) => {
				#[realtime]
				fn arm() { slow(); }
				arm();
			}
			None => {}
		}
	}
	"""
	assert "tick::arm" in table_for(src).declarations
	assert violation_messages(src) == ["realtime function 'tick::arm' calls non-realtime function 'slow'"]


def test_duplicate_nested_item_is_reported_and_skipped() -> None:
	"""A duplicate nested fn item should be reported once and not checked."""
	result = run(
		"""
		#[non_realtime]
		fn slow() {}

		fn outer() {
			#[realtime]
			fn helper() {}

			#[realtime]
			fn helper() {
				slow();
			}
		}
		"""
	)
	assert codes(result.diagnostics) == ["rt-duplicate-decl"]


def test_undeclared_nested_item_is_an_internal_error(monkeypatch) -> None:
	"""A nested fn item missing from the table should fail as an internal error."""
	monkeypatch.setattr(decl_table, "_nested_items", lambda block: iter(()))
	result = run(
		"""
		#[realtime]
		fn tick() {
			fn inner() {}
		}
		""",
		path="t.rt",
	)
	assert codes(result.diagnostics) == ["rt-internal"]
	assert result.diagnostics[0].message == "internal error: nested item 'inner' was never declared"


def test_struct_literal_receiver_resolves_its_methods() -> None:
	"""A struct literal receiver should resolve methods on its struct."""
	src = ENGINE + """
	struct Host {
		engine: Engine,
	}

	impl Host {
		#[non_realtime]
		fn reset(&self) {}
	}

	#[realtime]
	fn run() {
		let h = Host { engine: Engine };
		h.reset();
		Host { engine: Engine }.reset();
		h.engine.grow();
	}
	"""
	messages = [m for m in violation_messages(src) if m.startswith("realtime function 'run'")]
	assert messages == [
		"realtime function 'run' calls non-realtime method 'Host::reset'",
		"realtime function 'run' calls non-realtime method 'Host::reset'",
		"realtime function 'run' calls non-realtime method 'Engine::grow'",
	]
