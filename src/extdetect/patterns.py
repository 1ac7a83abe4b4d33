# SPDX-License-Identifier: AGPL-3.0-or-later
"""Compiled signature patterns evaluated under a wall-clock budget."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

import regex

logger = logging.getLogger(__name__)

DEFAULT_PATTERN_TIMEOUT = 5.0

PATTERN_SOURCES: Dict[str, str] = {
    "idl": r"\bimport '[0-9A-Za-z\._]+.idl'",
    "typescript": r"\bdeclare namespace [0-9A-Za-z$\._]+ \{ ",
    "csharp": r"\bnamespace [0-9A-Za-z$\._]+ \{ ",
    "javascript": (
        r"'use strict'"
        r"|[=:;]\s*require\('[^']+'\)"
        r"|\bfunction\s*(?:[A-Za-z0-9_]+)?\([$A-Za-z0-9_, ]+\)"
    ),
    "css": (
        r"(?:[\.a-zA-Z0-9#*\"', >+~\[\]=|\^\$:() -]+)\s*\{\s*"
        r"(?:(?:[a-zA-Z-]+)\s*:\s*(?:[^;}]+;?)\s*)+\}"
    ),
    "base64": r"\A(?=.*?[A-Za-z0-9/+]{16})[A-Za-z0-9/+\s]+={0,2}\Z",
    "markup": (
        r"\A[^<]?<(?:\?xml[^\?]+\?>\s*)?<?"
        r"(?P<V1>[@%?/\$!:A-Za-z0-9_]+)"
        r"(?:\s+(?P<V2>[a-zA-Z0-9='://\.-]+))?"
        r"(?:.+?(?P<X>xmlns='[^']+'))?"
    ),
    "namespaces": r"\bxmlns(?::(?P<NS>[a-z]+))?='(?P<URL>[^']+)",
}

_PATTERN_FLAGS: Dict[str, int] = {
    "idl": regex.DOTALL,
    "typescript": regex.DOTALL,
    "csharp": regex.DOTALL,
    "base64": regex.DOTALL,
}

_COMPILED: Dict[str, "regex.Pattern[str]"] = {}
_COMPILE_LOCK = Lock()


@dataclass(frozen=True)
class MatchOutcome:
    """Result of one bounded pattern test.

    A timed out test never counts as a match. ``matches`` holds the regex
    matches (or matched tokens) seen before the test stopped.
    """

    pattern: str
    matches: Tuple[Any, ...] = ()
    timed_out: bool = False
    threshold: int = 1
    extension: Optional[str] = None

    @property
    def matched(self) -> bool:
        return not self.timed_out and len(self.matches) >= self.threshold

    @property
    def first(self) -> Any:
        return self.matches[0] if self.matches else None

    def __bool__(self) -> bool:
        return self.matched


def get_pattern(name: str) -> "regex.Pattern[str]":
    """Return the compiled pattern ``name``, compiling it on first use."""

    pattern = _COMPILED.get(name)
    if pattern is not None:
        return pattern
    with _COMPILE_LOCK:
        pattern = _COMPILED.get(name)
        if pattern is None:
            try:
                source = PATTERN_SOURCES[name]
            except KeyError as exc:
                raise KeyError(f"Unknown signature pattern '{name}'") from exc
            pattern = regex.compile(source, _PATTERN_FLAGS.get(name, 0))
            _COMPILED[name] = pattern
    return pattern


def _timeout(value: Optional[float]) -> float:
    return DEFAULT_PATTERN_TIMEOUT if value is None else value


def _log_timeout(name: str, budget: float, text: str) -> None:
    logger.warning(
        "pattern %s timed out after %.2fs on %d characters", name, budget, len(text)
    )


def search(name: str, text: str, *, timeout: Optional[float] = None) -> MatchOutcome:
    """Search ``text`` for the first occurrence of pattern ``name``."""

    budget = _timeout(timeout)
    try:
        found = get_pattern(name).search(text, timeout=budget)
    except TimeoutError:
        _log_timeout(name, budget, text)
        return MatchOutcome(name, timed_out=True)
    return MatchOutcome(name, (found,) if found is not None else ())


def count(
    name: str,
    text: str,
    *,
    threshold: int,
    timeout: Optional[float] = None,
) -> MatchOutcome:
    """Count non-overlapping matches, stopping once ``threshold`` is reached."""

    budget = _timeout(timeout)
    found: List[Any] = []
    try:
        for item in get_pattern(name).finditer(text, timeout=budget):
            found.append(item)
            if len(found) >= threshold:
                break
    except TimeoutError:
        _log_timeout(name, budget, text)
        return MatchOutcome(name, tuple(found), timed_out=True, threshold=threshold)
    return MatchOutcome(name, tuple(found), threshold=threshold)


def find_all(name: str, text: str, *, timeout: Optional[float] = None) -> MatchOutcome:
    """Collect every match of ``name``; a timeout keeps what was found so far."""

    budget = _timeout(timeout)
    found: List[Any] = []
    try:
        for item in get_pattern(name).finditer(text, timeout=budget):
            found.append(item)
    except TimeoutError:
        _log_timeout(name, budget, text)
        return MatchOutcome(name, tuple(found), timed_out=True)
    return MatchOutcome(name, tuple(found))


__all__ = [
    "DEFAULT_PATTERN_TIMEOUT",
    "MatchOutcome",
    "PATTERN_SOURCES",
    "count",
    "find_all",
    "get_pattern",
    "search",
]
