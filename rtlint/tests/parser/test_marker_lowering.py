"""
Exercises lowering of realtime markers from attributes and doc comments,
plus the front-end diagnostics reported while lowering.
"""

from __future__ import annotations

import textwrap

from rtlint import hir_nodes as H
from rtlint.ast_to_hir import CODE_MARKER_CONFLICT, CODE_MARKER_MALFORMED, CODE_MARKER_POSITION
from rtlint.config import RealtimeConfig
from rtlint.core.safety import SafetyTag
from rtlint.parser import CODE_SYNTAX, parse_source_to_hir
from rtlint.test_support import codes, lower, run


def _lower_with_diagnostics(src: str, config=None):
	return parse_source_to_hir(textwrap.dedent(src), path="t.rt", config=config)


def test_attribute_and_doc_markers_lower_to_decl_markers() -> None:
	"""Attribute and doc-comment markers should lower to declaration markers."""
	unit = lower(
		"""
		#[realtime]
		fn a() {}

		#[non_realtime("alloc")]
		fn b() {}

		/// Talks to the database.
		/// rt:non_realtime
		fn c() {}

		#[rt_attrs::realtime]
		fn d() {}

		fn e() {}
		"""
	)
	markers = {f.name: f.marker for f in unit.root.functions}
	assert markers["a"].tag is SafetyTag.REALTIME
	assert markers["b"].tag is SafetyTag.NON_REALTIME and markers["b"].reason == "alloc"
	assert markers["c"].tag is SafetyTag.NON_REALTIME and markers["c"].origin == "doc"
	assert markers["d"].tag is SafetyTag.REALTIME
	assert markers["e"] is None


def test_conflicting_markers_leave_function_unclassified() -> None:
	"""Conflicting markers should be reported and leave the function unclassified."""
	unit, diagnostics = _lower_with_diagnostics(
		"""
		#[realtime]
		/// rt:non_realtime
		fn both() {}
		"""
	)
	assert codes(diagnostics) == [CODE_MARKER_CONFLICT]
	assert diagnostics[0].span.file == "t.rt"
	assert unit.root.functions[0].marker is None


def test_repeated_identical_markers_are_accepted() -> None:
	"""Repeating the same marker should not be a conflict."""
	unit, diagnostics = _lower_with_diagnostics(
		"""
		#[non_realtime]
		#[non_realtime("io")]
		fn twice() {}
		"""
	)
	assert diagnostics == []
	assert unit.root.functions[0].marker.reason == "io"


def test_binding_override_is_attached_to_let() -> None:
	"""A call-info marker on a `let` should become its binding override."""
	unit = lower(
		"""
		fn main() {
			#[rt_call_info("closure", "nonrealtime")]
			let f = || {};
		}
		"""
	)
	let = unit.root.functions[0].body.statements[0]
	assert isinstance(let, H.HLet)
	parsed = let.override.parse()
	assert parsed.is_closure and parsed.tag is SafetyTag.NON_REALTIME


def test_malformed_call_info_is_reported_and_kept_raw() -> None:
	"""Malformed call-info arguments should be reported and kept verbatim."""
	unit, diagnostics = _lower_with_diagnostics(
		"""
		fn main() {
			#[rt_call_info("closure")]
			let f = || {};
			#[rt_call_info("closure", "sometimes")]
			let g = || {};
		}
		"""
	)
	assert codes(diagnostics) == [CODE_MARKER_MALFORMED, CODE_MARKER_MALFORMED]
	f, g = unit.root.functions[0].body.statements
	assert f.override.args == ("closure",) and f.override.parse() is None
	assert g.override.parse() is None


def test_malformed_marker_leaves_binding_unclassified() -> None:
	"""A binding with a malformed override should stay unclassified."""
	result = run(
		"""
		#[realtime]
		fn main() {
			#[rt_call_info("closure", "nonrealtime", "extra")]
			let f = || {};
			f();
		}
		"""
	)
	assert codes(result.diagnostics) == [CODE_MARKER_MALFORMED]
	assert result.exit_code == 1


def test_duplicate_call_info_markers_use_the_first() -> None:
	"""Only the first call-info marker on a `let` should apply."""
	unit, diagnostics = _lower_with_diagnostics(
		"""
		fn main() {
			#[rt_call_info("closure", "realtime")]
			/// rt:call-info:closure:nonrealtime
			let f = || {};
		}
		"""
	)
	assert codes(diagnostics) == [CODE_MARKER_MALFORMED]
	let = unit.root.functions[0].body.statements[0]
	assert let.override.parse().tag is SafetyTag.REALTIME


def test_misplaced_markers_are_reported() -> None:
	"""Markers on statements that cannot carry them should be reported."""
	unit, diagnostics = _lower_with_diagnostics(
		"""
		#[realtime]
		struct Engine;

		#[rt_call_info("closure", "realtime")]
		fn f() {
			#[realtime]
			let x = 1;
			#[non_realtime]
			go();
		}
		"""
	)
	assert codes(diagnostics) == [CODE_MARKER_POSITION] * 4
	assert unit is not None
	assert unit.root.functions[0].marker is None
	assert unit.root.functions[0].body.statements[0].override is None


def test_custom_doc_marker_prefix() -> None:
	"""A configured doc-comment prefix should replace the default one."""
	config = RealtimeConfig(doc_marker_prefix="audio:")
	unit, diagnostics = _lower_with_diagnostics(
		"""
		/// audio:realtime
		fn a() {}

		/// rt:realtime
		fn b() {}
		""",
		config=config,
	)
	assert diagnostics == []
	assert unit.root.functions[0].marker.tag is SafetyTag.REALTIME
	assert unit.root.functions[1].marker is None


def test_duplicate_declarations_are_reported() -> None:
	"""Duplicate declarations should be reported and the first one kept."""
	result = run(
		"""
		#[non_realtime]
		fn slow() {}

		fn slow() {}

		#[realtime]
		fn tick() {
			slow();
		}
		"""
	)
	assert codes(result.diagnostics) == ["rt-duplicate-decl", "rt-calls-nonrealtime"]
	# The first definition wins.
	assert "non-realtime function 'slow'" in result.diagnostics[1].message


def test_syntax_error_becomes_parser_diagnostic() -> None:
	"""Syntax errors should become parser diagnostics with a location."""
	unit, diagnostics = _lower_with_diagnostics(
		"""
		fn main() {
			let = 3;
		}
		"""
	)
	assert unit is None
	assert codes(diagnostics) == [CODE_SYNTAX]
	diag = diagnostics[0]
	assert diag.phase == "parser" and diag.is_error
	assert (diag.span.file, diag.span.line) == ("t.rt", 3)
	assert diag.message.startswith("syntax error: unexpected EQUAL")


def test_unexpected_character_is_reported() -> None:
	"""An unlexable character should be a parser diagnostic."""
	_, diagnostics = _lower_with_diagnostics("fn main() { let x = 1 @ 2; }\n")
	assert codes(diagnostics) == [CODE_SYNTAX]
	assert "unexpected character '@'" in diagnostics[0].message


def test_unexpected_end_of_input() -> None:
	"""Truncated source should be a parser diagnostic."""
	_, diagnostics = _lower_with_diagnostics("fn main() {\n")
	assert diagnostics[0].message == "syntax error: unexpected end of input"
