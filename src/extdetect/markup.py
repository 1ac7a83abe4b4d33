# SPDX-License-Identifier: AGPL-3.0-or-later
"""Pick an extension for XML-like documents from their root element."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import regex

from . import patterns
from .patterns import MatchOutcome
from .tables import (
    MARKUP_ROOTS,
    LiteralExtension,
    NeedsProjectDisambiguation,
    NeedsSecondaryKey,
    NeedsSentinelScan,
    NeedsTransformDisambiguation,
    ReferenceTable,
    get_table,
)

MANIFEST_MARKER = " manifestVersion='1.0'"
PHP_OPEN_TAG = "<?php"
DEFAULT_MARKUP_EXTENSION = ".xml"
PLAIN_PROJECT_EXTENSION = ".proj"
STUDIO_PROJECT_EXTENSION = ".vsproj"
PLAIN_CONFIG_EXTENSION = ".config"

_QUOTES = "'\""


@dataclass(frozen=True)
class MarkupRoot:
    """Root element details extracted from a markup signature."""

    tag: str
    attribute: str
    namespace: str
    is_manifest: bool


def looks_like_markup(signature: Optional[str]) -> bool:
    """True when the signature opens with ``<`` or a quoted ``<``."""

    if not signature or len(signature) < 3:
        return False
    if signature[0] == "<":
        return True
    return signature[0] in _QUOTES and signature[1] == "<"


def _group(found: "regex.Match[str]", name: str) -> str:
    value = found.group(name)
    return value or ""


def _resolve_root(table: ReferenceTable, signature: str, tag: str, attribute: str) -> str:
    if not tag:
        return DEFAULT_MARKUP_EXTENSION
    entry = table.lookup(tag)
    if entry is None:
        return DEFAULT_MARKUP_EXTENSION
    if isinstance(entry, LiteralExtension):
        return entry.extension
    if isinstance(entry, NeedsSecondaryKey):
        if tag.casefold() == "!doctype" and attribute.casefold() == "html" and PHP_OPEN_TAG in signature:
            return ".php"
        return table.extension(f"{tag}|{attribute}") or DEFAULT_MARKUP_EXTENSION
    if isinstance(entry, NeedsSentinelScan):
        return entry.extension if entry.sentinel in signature else DEFAULT_MARKUP_EXTENSION
    if isinstance(entry, NeedsProjectDisambiguation):
        return STUDIO_PROJECT_EXTENSION if attribute else PLAIN_PROJECT_EXTENSION
    if isinstance(entry, NeedsTransformDisambiguation):
        return entry.extension if attribute == entry.namespace else PLAIN_CONFIG_EXTENSION
    return DEFAULT_MARKUP_EXTENSION


def match_markup(
    signature: Optional[str],
    *,
    table: Optional[ReferenceTable] = None,
    timeout: Optional[float] = None,
) -> MatchOutcome:
    """Classify a markup signature, keeping the underlying match outcome."""

    if signature is None or not looks_like_markup(signature):
        return MatchOutcome("markup")
    if MANIFEST_MARKER in signature:
        return MatchOutcome("markup", (MANIFEST_MARKER,), extension=".manifest")
    outcome = patterns.search("markup", signature, timeout=timeout)
    if not outcome.matched:
        return outcome
    found = outcome.first
    extension = _resolve_root(
        table or get_table(MARKUP_ROOTS),
        signature,
        _group(found, "V1"),
        _group(found, "V2"),
    )
    return MatchOutcome("markup", outcome.matches, extension=extension)


def classify_markup(
    signature: Optional[str],
    *,
    table: Optional[ReferenceTable] = None,
    timeout: Optional[float] = None,
) -> Optional[str]:
    """Return the extension implied by the root element, or ``None``."""

    return match_markup(signature, table=table, timeout=timeout).extension


def describe_markup(signature: Optional[str], *, timeout: Optional[float] = None) -> Optional[MarkupRoot]:
    if signature is None or not looks_like_markup(signature):
        return None
    outcome = patterns.search("markup", signature, timeout=timeout)
    if not outcome.matched:
        return None
    found = outcome.first
    return MarkupRoot(
        tag=_group(found, "V1"),
        attribute=_group(found, "V2"),
        namespace=_group(found, "X"),
        is_manifest=MANIFEST_MARKER in signature,
    )


def xml_namespaces(signature: Optional[str], *, timeout: Optional[float] = None) -> List[str]:
    """Return every declared ``xmlns`` URL, sorted case-insensitively."""

    if not signature:
        return []
    outcome = patterns.find_all("namespaces", signature, timeout=timeout)
    urls = [_group(found, "URL") for found in outcome.matches]
    return sorted((url for url in urls if url), key=lambda url: (url.casefold(), url))


__all__ = [
    "MANIFEST_MARKER",
    "MarkupRoot",
    "classify_markup",
    "describe_markup",
    "looks_like_markup",
    "match_markup",
    "xml_namespaces",
]
