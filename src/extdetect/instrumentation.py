# SPDX-License-Identifier: AGPL-3.0-or-later
"""Optional decision log and per-extension counters for the classifier."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Dict, List, MutableMapping, Optional, TextIO

from .settings import DebugSettings, get_settings

logger = logging.getLogger(__name__)

LOG_HEADER = ("Rule", "Old Ext", "New Ext", "Mime Type", "Description", "Filename")
SUMMARY_HEADER = ("Dest Ext", "Call Count")


def tsv_cell(value: Optional[str]) -> str:
    # Keep one cell per column for spreadsheet imports.
    if not value:
        return " "
    return value.replace("\t", " ").replace("\n", " ")


@dataclass(frozen=True)
class ClassificationTrace:
    """One decision taken by the classification cascade."""

    path: str
    old_extension: str
    new_extension: Optional[str]
    media_type: str
    description: str
    rule: str

    def to_row(self) -> str:
        return "\t".join(
            tsv_cell(value)
            for value in (
                self.rule,
                self.old_extension,
                self.new_extension,
                self.media_type,
                self.description,
                self.path,
            )
        )


@dataclass
class ExtensionStats:
    """How often one extension was produced."""

    extension: str
    calls: int = 0

    def to_dict(self) -> Dict[str, int | str]:
        return {"extension": self.extension, "calls": self.calls}


@dataclass
class RecorderSnapshot:
    """Serializable view of the recorded counters."""

    collected_at: float
    extensions: List[ExtensionStats] = field(default_factory=list)
    timeouts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "collected_at": self.collected_at,
            "extensions": [stat.to_dict() for stat in self.extensions],
            "timeouts": dict(self.timeouts),
        }


class ClassificationRecorder:
    """Thread-safe sink for classification decisions.

    Nothing is recorded unless debug instrumentation is enabled. When it is,
    every decision is appended to a tab-delimited log and counted per
    resulting extension; :meth:`write_summary` dumps the counters.
    """

    def __init__(self, settings: Optional[DebugSettings] = None) -> None:
        self._settings = settings or get_settings().debug
        self._enabled = bool(self._settings.enabled)
        self._log_path = self._settings.resolved_log_path
        self._summary_path = self._settings.resolved_summary_path
        self._lock = Lock()
        self._stats: MutableMapping[str, ExtensionStats] = {}
        self._timeouts: Dict[str, int] = {}
        self._handle: Optional[TextIO] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def log_path(self) -> Path:
        return self._log_path

    @property
    def summary_path(self) -> Path:
        return self._summary_path

    def _log_handle(self) -> TextIO:
        # Caller holds the lock.
        if self._handle is None:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            handle = self._log_path.open("a", encoding="utf-8")
            if handle.tell() == 0:
                handle.write("\t".join(LOG_HEADER) + "\n")
            self._handle = handle
        return self._handle

    def _disable(self, exc: OSError) -> None:
        logger.warning("debug log %s disabled: %s", self._log_path, exc)
        self._enabled = False
        if self._handle is not None:
            try:
                self._handle.close()
            except OSError as close_exc:
                logger.debug("closing debug log %s failed: %s", self._log_path, close_exc)
            self._handle = None

    def record(self, trace: ClassificationTrace) -> None:
        if not self._enabled:
            return
        key = trace.new_extension or ""
        with self._lock:
            if not self._enabled:
                return
            stats = self._stats.setdefault(key, ExtensionStats(key))
            stats.calls += 1
            try:
                handle = self._log_handle()
                handle.write(trace.to_row() + "\n")
                handle.flush()
            except OSError as exc:
                self._disable(exc)

    def record_timeout(self, pattern: str) -> None:
        if not self._enabled:
            return
        with self._lock:
            self._timeouts[pattern] = self._timeouts.get(pattern, 0) + 1

    def snapshot(self) -> RecorderSnapshot:
        with self._lock:
            stats = [ExtensionStats(stat.extension, stat.calls) for stat in self._stats.values()]
            timeouts = dict(self._timeouts)
        stats.sort(key=lambda stat: (stat.calls, stat.extension))
        return RecorderSnapshot(collected_at=time.time(), extensions=stats, timeouts=timeouts)

    def write_summary(self) -> Optional[Path]:
        """Write the per-extension counts, least frequent first.

        Returns the summary path, or ``None`` when nothing was recorded.
        """

        snapshot = self.snapshot()
        if not snapshot.extensions:
            return None
        try:
            self._summary_path.parent.mkdir(parents=True, exist_ok=True)
            with self._summary_path.open("w", encoding="utf-8") as handle:
                handle.write("\t".join(SUMMARY_HEADER) + "\n")
                for stat in snapshot.extensions:
                    handle.write(f"{tsv_cell(stat.extension)}\t{stat.calls}\n")
        except OSError as exc:
            logger.warning("unable to write summary %s: %s", self._summary_path, exc)
            return None
        return self._summary_path

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
            self._timeouts.clear()

    def close(self) -> None:
        """Close the decision log; a later record reopens it."""

        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None


_GLOBAL_RECORDER: Optional[ClassificationRecorder] = None
_GLOBAL_LOCK = Lock()


def get_recorder() -> ClassificationRecorder:
    """Return the process-wide recorder built from the current settings."""

    global _GLOBAL_RECORDER
    with _GLOBAL_LOCK:
        if _GLOBAL_RECORDER is None:
            _GLOBAL_RECORDER = ClassificationRecorder()
        return _GLOBAL_RECORDER


def reset_recorder() -> None:
    """Forget the process-wide recorder (useful for tests)."""

    global _GLOBAL_RECORDER
    with _GLOBAL_LOCK:
        if _GLOBAL_RECORDER is not None:
            _GLOBAL_RECORDER.close()
        _GLOBAL_RECORDER = None


__all__ = [
    "ClassificationRecorder",
    "ClassificationTrace",
    "ExtensionStats",
    "RecorderSnapshot",
    "get_recorder",
    "reset_recorder",
    "tsv_cell",
]
