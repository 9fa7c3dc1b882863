# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Safety annotation vocabulary.

Declarations carry at most one safety tag, spelled either as an attribute
(`#[realtime]`, `#[non_realtime]`, `#[non_realtime("alloc")]`) or as a doc
comment marker (`/// rt:realtime`, `/// rt:non_realtime`).

Let bindings may carry one override marker with exactly two fields:

	#[rt_call_info("closure", "non_realtime")]
	/// rt:call-info:closure:nonrealtime

The first field is a discriminator (`closure`, or the name of the function a
function-reference binding points at); the second is the tag text.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence


class SafetyTag(Enum):
	REALTIME = "realtime"
	NON_REALTIME = "non_realtime"
	UNCLASSIFIED = "unclassified"

	@property
	def is_realtime(self) -> bool:
		return self is SafetyTag.REALTIME

	@property
	def is_non_realtime(self) -> bool:
		return self is SafetyTag.NON_REALTIME


REALTIME_ATTR = "realtime"
NON_REALTIME_ATTR = "non_realtime"
CALL_INFO_ATTR = "rt_call_info"
CLOSURE_DISCRIMINATOR = "closure"
DOC_MARKER_PREFIX = "rt:"

# Tag spellings accepted in binding markers and doc comments.
_TAG_SPELLINGS = {
	"realtime": SafetyTag.REALTIME,
	"nonrealtime": SafetyTag.NON_REALTIME,
	"non_realtime": SafetyTag.NON_REALTIME,
	"non-realtime": SafetyTag.NON_REALTIME,
}


def parse_tag(text: Optional[str]) -> Optional[SafetyTag]:
	"""Map a marker tag string to a SafetyTag; None when the text is not a tag."""
	if text is None:
		return None
	return _TAG_SPELLINGS.get(text.strip().lower())


@dataclass(frozen=True)
class DeclMarker:
	"""A declaration-level safety marker as written in the source."""

	tag: SafetyTag
	reason: Optional[str] = None
	origin: str = "attr"  # "attr" | "doc"


@dataclass(frozen=True)
class BindingOverride:
	"""
	Raw binding-level override marker.

	`args` is kept exactly as written so malformed markers survive to the
	checker, which must treat anything it cannot parse as absent.
	"""

	args: tuple[str, ...]
	origin: str = "attr"

	def parse(self) -> Optional["ParsedOverride"]:
		return parse_binding_override(self.args)


@dataclass(frozen=True)
class ParsedOverride:
	discriminator: str
	tag: SafetyTag

	@property
	def is_closure(self) -> bool:
		return self.discriminator == CLOSURE_DISCRIMINATOR


def parse_binding_override(args: Sequence[str]) -> Optional[ParsedOverride]:
	"""Two fields (discriminator, tag) or None."""
	if len(args) != 2:
		return None
	disc, tag_text = args
	tag = parse_tag(tag_text)
	if tag is None or not disc:
		return None
	return ParsedOverride(discriminator=disc, tag=tag)


def decl_marker_from_attr(
	name: str,
	args: Sequence[str],
	realtime_attr: str = REALTIME_ATTR,
	non_realtime_attr: str = NON_REALTIME_ATTR,
) -> Optional[DeclMarker]:
	"""Recognise `#[realtime]` / `#[non_realtime(...)]` (path-qualified names allowed)."""
	leaf = name.rsplit("::", 1)[-1]
	if leaf == realtime_attr:
		return DeclMarker(tag=SafetyTag.REALTIME)
	if leaf == non_realtime_attr:
		reason = args[0] if args else None
		return DeclMarker(tag=SafetyTag.NON_REALTIME, reason=reason)
	return None


def is_call_info_attr(name: str, call_info_attr: str = CALL_INFO_ATTR) -> bool:
	return name.rsplit("::", 1)[-1] == call_info_attr


def decl_marker_from_doc(text: str, prefix: str = DOC_MARKER_PREFIX) -> Optional[DeclMarker]:
	"""
	Scan a doc comment for `rt:realtime` / `rt:non_realtime`.

	Call-info markers share the prefix and are not declaration markers.
	"""
	body = text.strip()
	if f"{prefix}call-info:" in body:
		return None
	if f"{prefix}non_realtime" in body or f"{prefix}nonrealtime" in body:
		return DeclMarker(tag=SafetyTag.NON_REALTIME, origin="doc")
	if f"{prefix}realtime" in body:
		return DeclMarker(tag=SafetyTag.REALTIME, origin="doc")
	return None


def override_from_doc(text: str, prefix: str = DOC_MARKER_PREFIX) -> Optional[BindingOverride]:
	"""Extract `rt:call-info:<disc>:<tag>` from a doc comment."""
	body = text.strip()
	marker = f"{prefix}call-info:"
	idx = body.find(marker)
	if idx < 0:
		return None
	rest = body[idx + len(marker):].split()
	fields = tuple(rest[0].split(":")) if rest else ()
	return BindingOverride(args=fields, origin="doc")


__all__ = [
	"SafetyTag",
	"DeclMarker",
	"BindingOverride",
	"ParsedOverride",
	"parse_tag",
	"parse_binding_override",
	"decl_marker_from_attr",
	"decl_marker_from_doc",
	"override_from_doc",
	"is_call_info_attr",
	"REALTIME_ATTR",
	"NON_REALTIME_ATTR",
	"CALL_INFO_ATTR",
	"CLOSURE_DISCRIMINATOR",
	"DOC_MARKER_PREFIX",
]
