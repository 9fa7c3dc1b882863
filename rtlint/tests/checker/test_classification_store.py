"""
Exercises the classification store's scoped bindings and the scope
tracker's realtime context stack.
"""

from __future__ import annotations

import pytest

from rtlint.checker.classification import BindingInfo, BindingKind, ClassificationStore
from rtlint.checker.scope_tracker import ScopeTracker
from rtlint.core.errors import ScopeInvariantError
from rtlint.core.safety import SafetyTag
from rtlint.test_support import table_for


def test_declared_tag_for_marked_unmarked_unknown_and_extern() -> None:
	"""Declared tags should follow markers; unknown and extern stay unclassified."""
	table = table_for(
		"""
		#[realtime]
		fn fast() {}
		#[non_realtime]
		fn slow() {}
		fn plain() {}
		extern "C" {
			#[realtime]
			fn ext();
		}
		"""
	)
	store = ClassificationStore(table)
	assert store.declared_tag("fast") is SafetyTag.REALTIME
	assert store.declared_tag("slow") is SafetyTag.NON_REALTIME
	assert store.declared_tag("plain") is SafetyTag.UNCLASSIFIED
	assert store.declared_tag("ext") is SafetyTag.UNCLASSIFIED
	assert store.declared_tag("missing") is SafetyTag.UNCLASSIFIED
	assert store.declared_tag(None) is SafetyTag.UNCLASSIFIED


def test_bindings_are_scoped_to_their_body() -> None:
	"""Bindings should only be visible in the body that made them."""
	store = ClassificationStore()
	store.enter_body("a")
	store.set_binding("x", SafetyTag.NON_REALTIME, BindingKind.CLOSURE)
	store.enter_body("a::inner")
	assert store.get_binding("x") is None
	store.leave_body("a::inner")
	assert store.get_binding("x").tag is SafetyTag.NON_REALTIME
	store.leave_body("a")
	store.enter_body("b")
	assert store.get_binding("x") is None


def test_block_scopes_shadow_and_restore() -> None:
	"""Inner blocks should shadow bindings and restore them on exit."""
	store = ClassificationStore()
	store.enter_body("f")
	store.set_binding("x", SafetyTag.REALTIME)
	store.push_block()
	store.set_binding("x", SafetyTag.NON_REALTIME)
	assert store.get_binding("x").tag is SafetyTag.NON_REALTIME
	store.pop_block()
	assert store.get_binding("x").tag is SafetyTag.REALTIME


def test_propagate_copies_tag_kind_and_source() -> None:
	"""Propagation should copy tag, kind and source."""
	store = ClassificationStore()
	store.enter_body("f")
	store.set_binding("fp", SafetyTag.NON_REALTIME, BindingKind.FN_REF, source="print_rt")
	info = store.propagate("fp2", "fp")
	assert info.tag is SafetyTag.NON_REALTIME
	assert info.kind is BindingKind.FN_REF
	assert info.source == "print_rt"


def test_propagate_from_unknown_source_is_unclassified() -> None:
	"""Propagating from an unknown name should give an unclassified binding."""
	store = ClassificationStore()
	store.enter_body("f")
	info = store.propagate("b", "nope")
	assert info.tag is SafetyTag.UNCLASSIFIED
	assert not info.is_classified


def test_reassign_updates_owning_scope() -> None:
	"""Reassignment should update the scope that owns the binding."""
	store = ClassificationStore()
	store.enter_body("f")
	store.set_binding("f", SafetyTag.REALTIME, BindingKind.FN_REF)
	store.push_block()
	updated = store.reassign("f", BindingInfo(name="ignored", tag=SafetyTag.NON_REALTIME))
	assert updated is not None and updated.name == "f"
	store.pop_block()
	assert store.get_binding("f").tag is SafetyTag.NON_REALTIME
	assert store.reassign("missing", BindingInfo(name="missing")) is None


def test_clear_body_drops_bindings() -> None:
	"""Clearing a body should drop all of its bindings."""
	store = ClassificationStore()
	store.enter_body("f")
	store.set_binding("x", SafetyTag.REALTIME)
	store.clear_body()
	assert store.get_binding("x") is None
	assert store.body_id == "f"


def test_unbalanced_store_frames_raise() -> None:
	"""Unbalanced frames should raise ScopeInvariantError."""
	store = ClassificationStore()
	store.enter_body("a")
	with pytest.raises(ScopeInvariantError):
		store.leave_body("b")
	with pytest.raises(ScopeInvariantError):
		store.pop_block()
	store.leave_body("a")
	with pytest.raises(ScopeInvariantError):
		store.set_binding("x", SafetyTag.REALTIME)


def test_scope_tracker_nesting() -> None:
	"""The tracker should report the innermost body's context."""
	tracker = ScopeTracker()
	assert not tracker.in_realtime_context()
	tracker.enter("outer", SafetyTag.REALTIME)
	assert tracker.in_realtime_context()
	tracker.enter("outer::inner", SafetyTag.UNCLASSIFIED)
	assert not tracker.in_realtime_context()
	tracker.enter("outer::inner::deep", SafetyTag.REALTIME)
	assert tracker.in_realtime_context()
	tracker.leave("outer::inner::deep")
	tracker.leave("outer::inner")
	assert tracker.in_realtime_context()
	assert tracker.current().body_id == "outer"
	tracker.leave("outer")
	assert tracker.depth == 0


def test_scope_tracker_rejects_mismatched_leave() -> None:
	"""Leaving a body that is not innermost should raise."""
	tracker = ScopeTracker()
	with pytest.raises(ScopeInvariantError):
		tracker.leave("nothing")
	tracker.enter("a", SafetyTag.REALTIME)
	with pytest.raises(ScopeInvariantError):
		tracker.leave("b")
	tracker.reset()
	assert tracker.depth == 0
