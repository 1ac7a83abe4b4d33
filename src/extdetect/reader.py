# SPDX-License-Identifier: AGPL-3.0-or-later
"""Bounded, tolerant character readers over file prefixes."""

from __future__ import annotations

import codecs
import io
import os
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

DEFAULT_READ_LIMIT = 1_048_576
_CHUNK_SIZE = 4096

Source = Union[str, os.PathLike, bytes, bytearray, BinaryIO]

# Longest marks first so the UTF-32 LE mark is not mistaken for UTF-16 LE.
_BYTE_ORDER_MARKS = (
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def _sniff_encoding(head: bytes) -> str:
    for mark, encoding in _BYTE_ORDER_MARKS:
        if head.startswith(mark):
            return encoding
    return "utf-8"


class PrefixReader:
    """Sequential character reader over at most ``max_bytes`` of a byte stream.

    Bytes are decoded as UTF-8 (or the Unicode encoding announced by a byte
    order mark); malformed sequences become U+FFFD instead of raising. Only
    forward reads and a short lookahead are supported.
    """

    def __init__(
        self,
        stream: BinaryIO,
        max_bytes: int = DEFAULT_READ_LIMIT,
        *,
        size: Optional[int] = None,
    ) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be > 0")
        self._stream = stream
        self._max_bytes = max_bytes
        self._size = size
        self._decoder: Optional[codecs.IncrementalDecoder] = None
        self._buffer = ""
        self._pos = 0
        self._consumed = 0
        self._exhausted = False

    @property
    def size(self) -> Optional[int]:
        """Byte length of the underlying source, when known."""

        return self._size

    @property
    def consumed_bytes(self) -> int:
        return self._consumed

    def _fill(self, count: int) -> None:
        while len(self._buffer) - self._pos < count and not self._exhausted:
            remaining = self._max_bytes - self._consumed
            if remaining <= 0:
                # A multi-byte sequence cut by the bound is dropped, not replaced.
                self._exhausted = True
                break
            chunk = self._stream.read(min(_CHUNK_SIZE, remaining))
            if self._decoder is None:
                name = _sniff_encoding(chunk or b"")
                self._decoder = codecs.getincrementaldecoder(name)(errors="replace")
            if not chunk:
                self._buffer += self._decoder.decode(b"", final=True)
                self._exhausted = True
                break
            self._consumed += len(chunk)
            self._buffer += self._decoder.decode(chunk)
        if self._pos > _CHUNK_SIZE:
            self._buffer = self._buffer[self._pos :]
            self._pos = 0

    def read_char(self) -> str:
        """Return the next character, or ``""`` once the prefix is exhausted."""

        self._fill(1)
        if self._pos >= len(self._buffer):
            return ""
        char = self._buffer[self._pos]
        self._pos += 1
        return char

    def peek(self, count: int = 1) -> str:
        """Return up to ``count`` upcoming characters without consuming them."""

        self._fill(count)
        return self._buffer[self._pos : self._pos + count]

    def close(self) -> None:
        self._stream.close()

    def __enter__(self) -> "PrefixReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class TextCursor:
    """Reader-compatible cursor over an already decoded string."""

    size: Optional[int] = None

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def read_char(self) -> str:
        if self._pos >= len(self._text):
            return ""
        char = self._text[self._pos]
        self._pos += 1
        return char

    def peek(self, count: int = 1) -> str:
        return self._text[self._pos : self._pos + count]


def _stream_size(stream: BinaryIO) -> Optional[int]:
    try:
        return os.fstat(stream.fileno()).st_size - stream.tell()
    except (AttributeError, OSError, ValueError):
        pass
    if stream.seekable():
        start = stream.tell()
        end = stream.seek(0, io.SEEK_END)
        stream.seek(start)
        return end - start
    return None


@contextmanager
def open_prefix_reader(source: Source, max_bytes: int = DEFAULT_READ_LIMIT) -> Iterator[PrefixReader]:
    """Open ``source`` (a path, raw bytes, or a binary file) for bounded reading.

    Paths are opened and closed here; file objects supplied by the caller are
    left open.
    """

    if isinstance(source, (bytes, bytearray)):
        yield PrefixReader(io.BytesIO(bytes(source)), max_bytes, size=len(source))
        return
    if isinstance(source, (str, os.PathLike)):
        with Path(source).open("rb") as handle:
            yield PrefixReader(handle, max_bytes, size=os.fstat(handle.fileno()).st_size)
        return
    size = _stream_size(source)
    if size is None:
        buffered = source.read(max_bytes)
        source = io.BytesIO(buffered)
        size = len(buffered)
    yield PrefixReader(source, max_bytes, size=size)


__all__ = ["DEFAULT_READ_LIMIT", "PrefixReader", "TextCursor", "open_prefix_reader"]
