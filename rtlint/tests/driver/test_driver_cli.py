"""
Exercises the command-line driver and the check_source/check_file API on
the sample programs and on inline sources.
"""

from __future__ import annotations

import json
import textwrap

import pytest

from rtlint import __version__
from rtlint.checker.scope_tracker import ScopeTracker
from rtlint.config import RealtimeConfig
from rtlint.core.errors import ScopeInvariantError
from rtlint.driver import CheckResult, check_file, check_source, main
from rtlint.test_support import codes, program_path, run


def _json_main(capsys, *argv: str) -> tuple[int, dict]:
	exit_code = main(["--json", *argv])
	payload = json.loads(capsys.readouterr().out)
	assert payload["exit_code"] == exit_code
	return exit_code, payload


def test_audio_callback_sample(capsys) -> None:
	"""Driver should report every violation in the audio callback sample."""
	exit_code, payload = _json_main(capsys, str(program_path("main.rt")))
	assert exit_code == 0
	messages = [d["message"] for d in payload["diagnostics"]]
	assert messages == [
		"realtime function 'main' calls non-realtime method 'AudioProcessor::process_audio'",
		"realtime function 'main' calls non-realtime function 'print_rt'",
		"realtime function 'main' calls non-realtime closure 'print_with_closure'",
		"realtime function 'main' calls non-realtime function reference 'fp'",
		"realtime function 'main' calls non-realtime function reference 'other_fp'",
	]
	assert [d["line"] for d in payload["diagnostics"]] == [35, 40, 46, 49, 52]
	assert {d["severity"] for d in payload["diagnostics"]} == {"warning"}
	assert {d["phase"] for d in payload["diagnostics"]} == {"realtime"}
	assert payload["diagnostics"][4]["notes"] == [
		"'other_fp' refers to 'print_rt'",
		"'other_fp' is classified non-realtime by binding 'fp'",
	]


def test_library_module_sample() -> None:
	"""Driver should report the module-path call in the library sample."""
	result = check_file(program_path("main_func.rt"))
	assert [d.message for d in result.diagnostics] == [
		"realtime function 'audio' calls non-realtime function 'my_functions_lib::do_slow'"
	]
	assert result.diagnostics[0].notes == ["reason: alloc"]
	assert result.diagnostics[0].span.line == 51
	assert result.exit_code == 0


def test_dynamic_dispatch_sample() -> None:
	"""Driver should report dynamic dispatch and fn-pointer calls in the dyn sample."""
	result = check_file(program_path("main_dyn.rt"))
	assert [(d.span.line, d.message) for d in result.diagnostics] == [
		(38, "realtime function 'main' calls non-realtime method 'Shape::area'"),
		(41, "realtime function 'main' calls non-realtime function reference 'fp'"),
		(50, "realtime function 'main' calls non-realtime method 'Shape::area'"),
	]
	assert "reason: dynamic dispatch" in result.diagnostics[0].notes


def test_realtime_trait_sample_is_clean(capsys) -> None:
	"""The realtime trait sample should produce no diagnostics."""
	assert main([str(program_path("main_trait.rt"))]) == 0
	assert capsys.readouterr().err == ""


def test_text_output_includes_notes(capsys) -> None:
	"""Text output should include the notes under each diagnostic."""
	main([str(program_path("main_func.rt"))])
	err = capsys.readouterr().err.splitlines()
	assert err[0].endswith(
		":51:5: warning: realtime function 'audio' calls non-realtime function "
		"'my_functions_lib::do_slow' [rt-calls-nonrealtime]"
	)
	assert err[1] == "  note: reason: alloc"


def test_deny_warnings_turns_violations_into_errors(capsys) -> None:
	"""Deny-warnings should make violations fail the run."""
	exit_code, payload = _json_main(capsys, "--deny-warnings", str(program_path("main_func.rt")))
	assert exit_code == 1
	assert [d["severity"] for d in payload["diagnostics"]] == ["error"]


def test_each_file_is_an_independent_unit(tmp_path, capsys) -> None:
	"""Each file should be checked with its own declaration table."""
	first = tmp_path / "first.rt"
	first.write_text(
		textwrap.dedent(
			"""
			#[non_realtime]
			fn slow() {}
			"""
		)
	)
	second = tmp_path / "second.rt"
	second.write_text(
		textwrap.dedent(
			"""
			#[realtime]
			fn tick() {
				slow();
			}
			"""
		)
	)
	exit_code, payload = _json_main(capsys, str(first), str(second))
	assert exit_code == 0
	assert payload["diagnostics"] == []


def test_syntax_error_exit_code_and_other_files_still_checked(tmp_path, capsys) -> None:
	"""A syntax error in one file should not stop the others."""
	broken = tmp_path / "broken.rt"
	broken.write_text("fn main( {\n")
	exit_code, payload = _json_main(capsys, str(broken), str(program_path("main_func.rt")))
	assert exit_code == 1
	assert [d["code"] for d in payload["diagnostics"]] == ["rt-syntax", "rt-calls-nonrealtime"]
	assert payload["diagnostics"][0]["file"] == str(broken)
	assert payload["diagnostics"][0]["line"] == 1


def test_missing_file_is_reported(tmp_path, capsys) -> None:
	"""A missing input file should be reported and fail the run."""
	missing = tmp_path / "nope.rt"
	exit_code, payload = _json_main(capsys, str(missing))
	assert exit_code == 1
	diag = payload["diagnostics"][0]
	assert (diag["code"], diag["phase"], diag["file"]) == ("rt-io", "driver", str(missing))


def test_marker_prefix_option(tmp_path, capsys) -> None:
	"""The marker prefix option should reach the doc-comment parser."""
	src = tmp_path / "prefix.rt"
	src.write_text(
		textwrap.dedent(
			"""
			/// audio:non_realtime
			fn slow() {}

			/// audio:realtime
			fn tick() {
				slow();
			}
			"""
		)
	)
	_, payload = _json_main(capsys, str(src))
	assert payload["diagnostics"] == []
	_, payload = _json_main(capsys, "--marker-prefix", "audio:", str(src))
	assert [d["message"] for d in payload["diagnostics"]] == [
		"realtime function 'tick' calls non-realtime function 'slow'"
	]


def test_version_flag(capsys) -> None:
	"""--version should print the package version."""
	with pytest.raises(SystemExit) as exc:
		main(["--version"])
	assert exc.value.code == 0
	assert capsys.readouterr().out.strip() == f"rtlint {__version__}"


def test_internal_error_becomes_diagnostic(monkeypatch) -> None:
	"""A scope invariant failure should become an rt-internal diagnostic."""
	def broken_leave(self, body_id):
		raise ScopeInvariantError(f"cannot leave '{body_id}'")

	monkeypatch.setattr(ScopeTracker, "leave", broken_leave)
	result = run(
		"""
		#[realtime]
		fn tick() {}
		""",
		path="t.rt",
	)
	assert codes(result.diagnostics) == ["rt-internal"]
	diag = result.diagnostics[0]
	assert diag.phase == "internal" and diag.is_error
	assert diag.message == "internal error: cannot leave 'tick'"
	assert result.exit_code == 1


def test_check_source_api() -> None:
	"""check_source should return a CheckResult for inline text."""
	result = check_source(
		"#[realtime]\nfn a() { b() }\n#[non_realtime]\nfn b() {}\n",
		path="inline.rt",
		config=RealtimeConfig(violation_severity="error"),
	)
	assert isinstance(result, CheckResult)
	assert result.exit_code == 1
	assert len(result.errors) == 1 and result.warnings == []
	assert result.diagnostics[0].span.file == "inline.rt"
	assert result.diagnostics[0].span.line == 2
