# SPDX-License-Identifier: AGPL-3.0-or-later
"""Turn a file prefix into the canonical signature used by the matchers.

The signature is a single line of text with comments removed, every run of
whitespace collapsed to one space and double quotes folded to single quotes.
``None`` means the content is binary (or could not be read); ``""`` means
there was too little text to say anything about it.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from .reader import DEFAULT_READ_LIMIT, Source, TextCursor, open_prefix_reader

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 1024
MIN_SOURCE_BYTES = 16
MIN_SIGNATURE_CHARS = 8

_ALLOWED_CONTROLS = frozenset("\t\n\f\r")
_HTTP_SCHEMES = ("http:", "https:")


class CharReader(Protocol):
    size: Optional[int]

    def read_char(self) -> str: ...

    def peek(self, count: int = 1) -> str: ...


class BinaryContent(Exception):
    """Raised internally when a non-text character is met."""


def is_binary_char(char: str) -> bool:
    """Return True for characters that never occur in a text file."""

    code = ord(char)
    if code < 32:
        return char not in _ALLOWED_CONTROLS
    return code == 0x7F or code == 0xFFFD


def _next(reader: CharReader) -> str:
    char = reader.read_char()
    if char and is_binary_char(char):
        raise BinaryContent(char)
    return char


def _skip_line(reader: CharReader) -> None:
    while True:
        char = _next(reader)
        if not char or char == "\n":
            return


def _skip_until(reader: CharReader, terminator: str) -> None:
    # Consumes through the terminator or to the end of input.
    tail = ""
    while True:
        char = _next(reader)
        if not char:
            return
        tail = (tail + char)[-len(terminator) :]
        if tail == terminator:
            return


def _ends_with_scheme(out: List[str]) -> bool:
    tail = "".join(out[-6:])
    return tail.endswith(_HTTP_SCHEMES)


def _comment_opener(char: str, reader: CharReader, out: List[str], semicolons: bool) -> Optional[str]:
    if char == "<" and reader.peek(3) == "!--":
        return "-->"
    if char == "/":
        following = reader.peek(1)
        if following == "*":
            return "*/"
        if following == "/" and not _ends_with_scheme(out):
            return "\n"
        return None
    if char == "#":
        following = reader.peek(1)
        # A trailing '#' is kept literally so truncated shebangs survive a re-read.
        return "\n" if following and following != "!" else None
    if char == ";" and semicolons:
        return "\n"
    return None


def normalize_stream(
    reader: CharReader,
    max_length: int = DEFAULT_MAX_LENGTH,
    strip_semicolon_comments: bool = False,
    *,
    min_source_bytes: int = MIN_SOURCE_BYTES,
    min_chars: int = MIN_SIGNATURE_CHARS,
) -> Optional[str]:
    """Normalise the characters produced by ``reader`` into a signature."""

    if reader.size is not None and reader.size < min_source_bytes:
        return ""

    out: List[str] = []
    semicolons = strip_semicolon_comments
    try:
        while len(out) < max_length:
            char = _next(reader)
            if not char:
                break
            # INI-style files announce themselves with a leading ';' comment.
            if char == ";" and not out:
                semicolons = True

            terminator = _comment_opener(char, reader, out, semicolons)
            if terminator is not None:
                if terminator == "\n":
                    _skip_line(reader)
                else:
                    _skip_until(reader, terminator)
                char = " "

            if char.isspace():
                if not out or out[-1] == " ":
                    continue
                char = " "
            elif char == '"':
                char = "'"
            out.append(char)
    except BinaryContent as exc:
        logger.debug("binary character %r rejects text signature", exc.args[0])
        return None

    if out and out[-1] == " ":
        out.pop()
    if len(out) < min_chars:
        return ""
    return "".join(out)


def normalize_text(
    text: str,
    max_length: int = DEFAULT_MAX_LENGTH,
    strip_semicolon_comments: bool = False,
    *,
    min_chars: int = MIN_SIGNATURE_CHARS,
) -> Optional[str]:
    """Normalise an already decoded string; no byte-size floor applies."""

    return normalize_stream(
        TextCursor(text),
        max_length,
        strip_semicolon_comments,
        min_chars=min_chars,
    )


def read_signature(
    source: Source,
    max_length: int = DEFAULT_MAX_LENGTH,
    strip_semicolon_comments: bool = False,
    *,
    max_bytes: int = DEFAULT_READ_LIMIT,
    min_source_bytes: int = MIN_SOURCE_BYTES,
    min_chars: int = MIN_SIGNATURE_CHARS,
) -> Optional[str]:
    """Read and normalise the prefix of ``source``.

    I/O failures are reported as ``None``, the same as binary content.
    """

    try:
        with open_prefix_reader(source, max_bytes) as reader:
            return normalize_stream(
                reader,
                max_length,
                strip_semicolon_comments,
                min_source_bytes=min_source_bytes,
                min_chars=min_chars,
            )
    except OSError as exc:
        logger.warning("unable to read %s: %s", source, exc)
        return None


__all__ = [
    "DEFAULT_MAX_LENGTH",
    "MIN_SIGNATURE_CHARS",
    "MIN_SOURCE_BYTES",
    "is_binary_char",
    "normalize_stream",
    "normalize_text",
    "read_signature",
]
