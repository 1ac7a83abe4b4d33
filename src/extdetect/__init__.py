# SPDX-License-Identifier: AGPL-3.0-or-later
"""Public interface for :mod:`extdetect` with lightweight imports."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict, Tuple

__all__ = [
    "Classifier",
    "classify",
    "extension_for_mime",
    "normalize_stream",
    "normalize_text",
    "read_signature",
    "open_prefix_reader",
    "MatchOutcome",
    "detect_language",
    "is_assembly",
    "classify_markup",
    "describe_markup",
    "xml_namespaces",
    "ReferenceTable",
    "TableError",
    "get_table",
    "MagicError",
    "MagicFileNotFoundError",
    "OracleSignal",
    "sniff",
    "ClassificationRecorder",
    "get_settings",
]

_LAZY_ATTRS: Dict[str, Tuple[str, str]] = {
    "Classifier": (".cascade", "Classifier"),
    "classify": (".cascade", "classify"),
    "extension_for_mime": (".cascade", "extension_for_mime"),
    "normalize_stream": (".normalize", "normalize_stream"),
    "normalize_text": (".normalize", "normalize_text"),
    "read_signature": (".normalize", "read_signature"),
    "open_prefix_reader": (".reader", "open_prefix_reader"),
    "MatchOutcome": (".patterns", "MatchOutcome"),
    "detect_language": (".matchers", "detect_language"),
    "is_assembly": (".matchers", "is_assembly"),
    "classify_markup": (".markup", "classify_markup"),
    "describe_markup": (".markup", "describe_markup"),
    "xml_namespaces": (".markup", "xml_namespaces"),
    "ReferenceTable": (".tables", "ReferenceTable"),
    "TableError": (".tables", "TableError"),
    "get_table": (".tables", "get_table"),
    "MagicError": (".oracle", "MagicError"),
    "MagicFileNotFoundError": (".oracle", "MagicFileNotFoundError"),
    "OracleSignal": (".oracle", "OracleSignal"),
    "sniff": (".oracle", "sniff"),
    "ClassificationRecorder": (".instrumentation", "ClassificationRecorder"),
    "get_settings": (".settings", "get_settings"),
}

if TYPE_CHECKING:  # pragma: no cover - import-time only for type checkers
    from .cascade import Classifier, classify, extension_for_mime
    from .instrumentation import ClassificationRecorder
    from .markup import classify_markup, describe_markup, xml_namespaces
    from .matchers import detect_language, is_assembly
    from .normalize import normalize_stream, normalize_text, read_signature
    from .oracle import MagicError, MagicFileNotFoundError, OracleSignal, sniff
    from .patterns import MatchOutcome
    from .reader import open_prefix_reader
    from .settings import get_settings
    from .tables import ReferenceTable, TableError, get_table


def __getattr__(name: str) -> Any:
    try:
        module_name, attr_name = _LAZY_ATTRS[name]
    except KeyError as exc:  # pragma: no cover - defensive
        raise AttributeError(name) from exc
    module = import_module(module_name, package=__name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:  # pragma: no cover - simple delegation
    return sorted(__all__)
