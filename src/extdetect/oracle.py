# SPDX-License-Identifier: AGPL-3.0-or-later
"""libmagic-backed content sniffing."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .settings import OracleSettings, get_settings

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class MagicError(RuntimeError):
    """libmagic could not describe a file."""


class MagicFileNotFoundError(MagicError, FileNotFoundError):
    """The file handed to the oracle does not exist."""


@dataclass(frozen=True)
class OracleSignal:
    """Coarse media type and free-text description reported for one file."""

    media_type: str
    description: str


Oracle = Callable[[PathLike], OracleSignal]


class MagicOracle:
    """Ask libmagic for a file's media type and description.

    The two libmagic handles (one per query flavour) are opened on first use
    and shared by every thread; python-magic serialises calls per handle.
    """

    def __init__(self, magic_file: Optional[str] = None, uncompress: bool = False) -> None:
        self.magic_file = magic_file
        self.uncompress = uncompress
        self._handles: Optional[Tuple[Any, Any]] = None
        self._lock = Lock()

    @classmethod
    def from_settings(cls, settings: OracleSettings) -> "MagicOracle":
        return cls(magic_file=settings.magic_file, uncompress=settings.uncompress)

    def _open_handles(self) -> Tuple[Any, Any]:
        handles = self._handles
        if handles is not None:
            return handles
        with self._lock:
            if self._handles is None:
                if sys.maxsize <= 2**32:
                    raise MagicError("libmagic support requires a 64-bit interpreter")
                try:
                    import magic  # type: ignore
                except ImportError as exc:
                    raise MagicError(f"libmagic is not available: {exc}") from exc
                try:
                    mime = magic.Magic(mime=True, magic_file=self.magic_file, uncompress=self.uncompress)
                    described = magic.Magic(mime=False, magic_file=self.magic_file, uncompress=self.uncompress)
                except magic.MagicException as exc:
                    raise MagicError(f"unable to load the magic database: {exc}") from exc
                self._handles = (mime, described)
            return self._handles

    def sniff(self, path: PathLike) -> OracleSignal:
        target = Path(path)
        if not target.exists():
            raise MagicFileNotFoundError(f"File not found: {target}")
        mime, described = self._open_handles()
        import magic  # type: ignore

        try:
            media_type = mime.from_file(str(target))
            description = described.from_file(str(target))
        except magic.MagicException as exc:
            raise MagicError(f"libmagic failed on {target}: {exc}") from exc
        except OSError as exc:
            raise MagicError(f"unable to read {target}: {exc}") from exc
        logger.debug("libmagic: %s -> %s (%s)", target, media_type, description)
        return OracleSignal(media_type=media_type or "", description=description or "")

    __call__ = sniff


_ORACLES: Dict[Tuple[Optional[str], bool], MagicOracle] = {}
_ORACLES_LOCK = Lock()


def get_oracle(settings: Optional[OracleSettings] = None) -> MagicOracle:
    """Return the shared oracle for the given libmagic options."""

    if settings is None:
        settings = get_settings().oracle
    key = (settings.magic_file, settings.uncompress)
    with _ORACLES_LOCK:
        oracle = _ORACLES.get(key)
        if oracle is None:
            oracle = MagicOracle.from_settings(settings)
            _ORACLES[key] = oracle
    return oracle


def sniff(path: PathLike) -> OracleSignal:
    """Describe ``path`` with the default oracle."""

    return get_oracle().sniff(path)


__all__ = [
    "MagicError",
    "MagicFileNotFoundError",
    "MagicOracle",
    "Oracle",
    "OracleSignal",
    "get_oracle",
    "sniff",
]
