# SPDX-License-Identifier: AGPL-3.0-or-later
"""Content classification cascade.

The oracle's media type selects a branch; each branch runs its checks in a
fixed order and the first confident answer wins. Every branch falls back to
the media type's default extension when the content gives nothing better.
"""

from __future__ import annotations

import logging
import mimetypes
import os
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, Optional, Tuple, Union

from . import matchers, patterns
from .instrumentation import ClassificationRecorder, ClassificationTrace, get_recorder
from .markup import match_markup
from .normalize import read_signature
from .oracle import MagicError, Oracle, OracleSignal, get_oracle
from .patterns import MatchOutcome
from .settings import DetectorSettings, get_settings
from .tables import (
    DOSEXEC_DESCRIPTIONS,
    MIME_EXTENSIONS,
    OCTET_STREAM_DESCRIPTIONS,
    TEXT_PLAIN_DESCRIPTIONS,
    ReferenceTable,
    TableError,
    get_table,
    lookup_description,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]
Decision = Tuple[Optional[str], str]

mimetypes.init()

_INI_SECTIONS = (
    ("[InternetShortcut]", ".url"),
    ("[FUNC]", ".asm"),
    ("[)]", ".mof"),
    ("[]", ".idl"),
    ("[Exchange Client Compatibility]", ".ecf"),
    ("[File Transfer]", ".iss"),
)


def extension_for_mime(media_type: Optional[str], table: Optional[ReferenceTable] = None) -> Optional[str]:
    """Return the default extension for ``media_type``, or ``None``.

    The packaged table is consulted first, then the platform's MIME registry,
    then the registry again with the ``x-`` experimental prefix removed.
    """

    if not media_type:
        return None
    table = table or get_table(MIME_EXTENSIONS)
    extension = table.extension(media_type)
    if extension:
        return extension
    extension = mimetypes.guess_extension(media_type, strict=False)
    if extension:
        return extension
    if "/x-" in media_type:
        extension = mimetypes.guess_extension(media_type.replace("x-", ""), strict=False)
    return extension or None


class _Attempt:
    """State for classifying one file; signatures are read at most once each."""

    def __init__(self, classifier: "Classifier", path: PathLike, signal: OracleSignal, default: str) -> None:
        self.classifier = classifier
        self.path = path
        self.signal = signal
        self.default = default
        self._signatures: Dict[Tuple[int, bool], Optional[str]] = {}

    @property
    def description(self) -> str:
        return self.signal.description

    def signature(self, length: Optional[int] = None, strip_semicolons: bool = False) -> Optional[str]:
        limits = self.classifier.settings.classifier
        key = (length or limits.signature_length, strip_semicolons)
        if key not in self._signatures:
            self._signatures[key] = read_signature(
                self.path,
                key[0],
                strip_semicolons,
                max_bytes=limits.read_limit_bytes,
                min_source_bytes=limits.min_file_bytes,
                min_chars=limits.min_signature_chars,
            )
        return self._signatures[key]


class Classifier:
    """Refine a file's extension from libmagic's verdict and its content."""

    def __init__(
        self,
        oracle: Optional[Oracle] = None,
        settings: Optional[DetectorSettings] = None,
        recorder: Optional[ClassificationRecorder] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._oracle = oracle
        if recorder is None:
            recorder = ClassificationRecorder(settings.debug) if settings is not None else get_recorder()
        self.recorder = recorder
        self._branches: Dict[str, Callable[[_Attempt], Decision]] = {
            "application/octet-stream": self._octet_stream,
            "text/plain": self._text_plain,
            "text/html": self._text_html,
            "application/x-wine-extension-ini": self._ini,
            "application/postscript": self._postscript,
            "application/x-setupscript": self._setup_script,
            "text/x-algol68": self._algol68,
            "text/x-asm": self._asm,
            "text/x-c": self._c_source,
            "text/xml": self._xml,
            "text/x-forth": self._forth,
            "image/jp2": self._jp2,
            "application/x-dosexec": self._dosexec,
        }

    @property
    def oracle(self) -> Oracle:
        if self._oracle is None:
            self._oracle = get_oracle(self.settings.oracle)
        return self._oracle

    @property
    def timeout(self) -> float:
        return self.settings.classifier.pattern_timeout

    def classify(self, path: PathLike) -> Optional[str]:
        """Return the most specific extension for ``path``, or ``None``."""

        return self.explain(path).new_extension

    def explain(self, path: PathLike) -> ClassificationTrace:
        """Classify ``path`` and report which rule produced the answer."""

        old_extension = Path(path).suffix
        try:
            signal = self.oracle(path)
        except (MagicError, OSError) as exc:
            logger.warning("cannot classify %s: %s", path, exc)
            return self._finish(path, old_extension, None, OracleSignal("", ""), "unreadable")

        try:
            default = extension_for_mime(signal.media_type)
            if default is None:
                return self._finish(path, old_extension, None, signal, "unmapped")
            branch = self._branches.get(signal.media_type.casefold())
            if branch is None:
                return self._finish(path, old_extension, default, signal, "default")
            extension, rule = branch(_Attempt(self, path, signal, default))
        except TableError:
            logger.exception("reference tables unavailable while classifying %s", path)
            return self._finish(path, old_extension, None, signal, "table-error")
        except OSError as exc:
            logger.warning("cannot read %s: %s", path, exc)
            return self._finish(path, old_extension, None, signal, "unreadable")
        logger.debug("%s: %s -> %s via %s", path, signal.media_type, extension, rule)
        return self._finish(path, old_extension, extension, signal, rule)

    def _finish(
        self,
        path: PathLike,
        old_extension: str,
        extension: Optional[str],
        signal: OracleSignal,
        rule: str,
    ) -> ClassificationTrace:
        trace = ClassificationTrace(
            path=str(path),
            old_extension=old_extension,
            new_extension=extension,
            media_type=signal.media_type,
            description=signal.description,
            rule=rule,
        )
        self.recorder.record(trace)
        return trace

    def _hit(self, outcome: MatchOutcome) -> bool:
        if outcome.timed_out:
            self.recorder.record_timeout(outcome.pattern)
        return outcome.matched

    def _markup(self, signature: str) -> Optional[str]:
        outcome = match_markup(signature, timeout=self.timeout)
        return outcome.extension if self._hit(outcome) else None

    def _base64(self, signature: str) -> Optional[str]:
        outcome = matchers.base64_extension(signature, timeout=self.timeout)
        return outcome.extension if self._hit(outcome) else None

    def _assembly(self, attempt: _Attempt) -> bool:
        signature = attempt.signature(self.settings.classifier.assembly_length, strip_semicolons=True)
        return bool(signature) and self._hit(matchers.is_assembly(signature or ""))

    # Branches, one per media type. Check order matters.

    def _octet_stream(self, attempt: _Attempt) -> Decision:
        found = lookup_description(get_table(OCTET_STREAM_DESCRIPTIONS), attempt.description)
        if found:
            return found, "octet-stream:description"
        signature = attempt.signature()
        if not signature:
            return attempt.default, "octet-stream:no-text"
        if self._hit(matchers.is_csharp(signature, timeout=self.timeout)):
            return ".cs", "octet-stream:csharp"
        if self._hit(matchers.is_idl(signature, timeout=self.timeout)):
            return ".idl", "octet-stream:idl"
        if "<!doctype html>" in signature.casefold():
            return ".htm", "octet-stream:html-doctype"
        if "<?xml " in signature:
            return ".xml", "octet-stream:xml-declaration"
        if "=pod " in signature:
            return ".pod", "octet-stream:pod"
        if self._hit(matchers.is_javascript(signature, timeout=self.timeout)):
            return ".js", "octet-stream:javascript"
        return ".txt", "octet-stream:text"

    def _text_plain(self, attempt: _Attempt) -> Decision:
        found = lookup_description(get_table(TEXT_PLAIN_DESCRIPTIONS), attempt.description)
        if found:
            return found, "text-plain:description"
        signature = attempt.signature()
        if not signature:
            return attempt.default, "text-plain:no-text"
        found = self._markup(signature)
        if found:
            return found, "text-plain:markup"
        if self._hit(matchers.is_typescript(signature, timeout=self.timeout)):
            return ".ts", "text-plain:typescript"
        if self._hit(matchers.is_csharp(signature, timeout=self.timeout)):
            return ".cs", "text-plain:csharp"
        if self._hit(matchers.is_javascript(signature, timeout=self.timeout)):
            return ".js", "text-plain:javascript"
        if signature.startswith("Microsoft Visual Studio Solution File"):
            return ".sln", "text-plain:solution"
        if self._hit(matchers.is_css(signature, timeout=self.timeout)):
            return ".css", "text-plain:css"
        if self._hit(matchers.is_idl(signature, timeout=self.timeout)):
            return ".idl", "text-plain:idl"
        found = self._base64(signature)
        if found:
            return found, "text-plain:base64"
        if self._assembly(attempt):
            return ".asm", "text-plain:assembly"
        return attempt.default, "text-plain:default"

    def _text_html(self, attempt: _Attempt) -> Decision:
        signature = attempt.signature()
        if not signature:
            return attempt.default, "text-html:no-text"
        found = self._markup(signature)
        if found:
            return found, "text-html:markup"
        if "<?php " in signature:
            return ".php", "text-html:php"
        if "=pod " in signature or "=head1 " in signature:
            return ".pod", "text-html:pod"
        if "HTML Help Workshop" in signature:
            return ".hhc", "text-html:help-contents"
        if self._hit(matchers.is_csharp(signature, timeout=self.timeout)):
            return ".cs", "text-html:csharp"
        if self._hit(matchers.is_javascript(signature, timeout=self.timeout)):
            return ".js", "text-html:javascript"
        if self._hit(matchers.is_css(signature, timeout=self.timeout)):
            return ".css", "text-html:css"
        # Markdown is the usual reason libmagic calls markup-free text HTML.
        if not self._hit(patterns.search("markup", signature, timeout=self.timeout)):
            return ".txt", "text-html:no-markup"
        return attempt.default, "text-html:default"

    def _ini(self, attempt: _Attempt) -> Decision:
        for section, extension in _INI_SECTIONS:
            if attempt.description.endswith(section):
                return extension, "ini:section"
        return attempt.default, "ini:default"

    def _postscript(self, attempt: _Attempt) -> Decision:
        if attempt.description.endswith("type EPS"):
            return ".eps", "postscript:eps"
        return attempt.default, "postscript:default"

    def _setup_script(self, attempt: _Attempt) -> Decision:
        signature = attempt.signature()
        if signature and signature.startswith(("typedef interface ", "extern 'C'{ ")):
            return ".h", "setup-script:header"
        return attempt.default, "setup-script:default"

    def _algol68(self, attempt: _Attempt) -> Decision:
        signature = attempt.signature()
        if not signature:
            return attempt.default, "algol68:no-text"
        if self._hit(matchers.is_csharp(signature, timeout=self.timeout)):
            return ".cs", "algol68:csharp"
        if self._hit(matchers.is_javascript(signature, timeout=self.timeout)):
            return ".js", "algol68:javascript"
        return ".txt", "algol68:text"

    def _asm(self, attempt: _Attempt) -> Decision:
        signature = attempt.signature()
        if not signature:
            return attempt.default, "asm:no-text"
        if self._hit(matchers.is_javascript(signature, timeout=self.timeout)):
            return ".js", "asm:javascript"
        if self._hit(matchers.is_css(signature, timeout=self.timeout)):
            return ".css", "asm:css"
        return attempt.default, "asm:default"

    def _c_source(self, attempt: _Attempt) -> Decision:
        signature = attempt.signature()
        if not signature:
            return attempt.default, "c:no-text"
        if signature.startswith("<duixml>"):
            return ".duixml", "c:duixml"
        if self._hit(matchers.is_csharp(signature, timeout=self.timeout)):
            return ".cs", "c:csharp"
        if self._assembly(attempt):
            return ".asm", "c:assembly"
        return attempt.default, "c:default"

    def _xml(self, attempt: _Attempt) -> Decision:
        signature = attempt.signature(self.settings.classifier.markup_length)
        found = self._markup(signature) if signature else None
        if found:
            return found, "xml:markup"
        return attempt.default, "xml:default"

    def _forth(self, attempt: _Attempt) -> Decision:
        signature = attempt.signature()
        found = self._markup(signature) if signature else None
        if found:
            return found, "forth:markup"
        return attempt.default, "forth:default"

    def _jp2(self, attempt: _Attempt) -> Decision:
        signature = attempt.signature()
        found = self._base64(signature) if signature else None
        if found:
            return found, "jp2:base64"
        return attempt.default, "jp2:default"

    def _dosexec(self, attempt: _Attempt) -> Decision:
        found = get_table(DOSEXEC_DESCRIPTIONS).extension(attempt.description)
        if found:
            return found, "dosexec:description"
        return ".exe", "dosexec:default"


_DEFAULT_CLASSIFIER: Optional[Classifier] = None
_DEFAULT_LOCK = Lock()


def get_classifier() -> Classifier:
    """Return the shared classifier built from the global settings."""

    global _DEFAULT_CLASSIFIER
    with _DEFAULT_LOCK:
        if _DEFAULT_CLASSIFIER is None:
            _DEFAULT_CLASSIFIER = Classifier()
        return _DEFAULT_CLASSIFIER


def classify(path: PathLike) -> Optional[str]:
    """Classify ``path`` with the shared classifier."""

    return get_classifier().classify(path)


__all__ = ["Classifier", "classify", "extension_for_mime", "get_classifier"]
