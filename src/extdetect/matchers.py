# SPDX-License-Identifier: AGPL-3.0-or-later
"""Language and encoding detectors operating on normalised signatures."""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from . import patterns
from .patterns import MatchOutcome

CSS_MIN_RULES = 3
ASSEMBLY_MIN_HITS = 6

SHA256_HEX_LENGTH = 64
SHA512_BASE64_LENGTH = 88

# Space padded so that short mnemonics only count as whole tokens.
ASSEMBLY_TOKENS: Tuple[str, ...] = (
    # registers
    ",cl ", " eax,", "eax ", " edx,", "edx ",
    # instructions
    " add ", " addi ", " addis ", " align ", " ands ", " asr ", " b ", " bcl ",
    " bctr ", " beq ", " bgt ", " bhi ", " bl ", " blo ", " blr", " bne ",
    " bswap ", " bt ", " bts ", " call ", " cbnz ", " cbz ", " cld ", " cmeq ",
    " cmp ", " cmpi ", " cmpsb ", " cmpwi ", " dcb ", " dec ", " div ", " ends ",
    " eor ", " equ ", " extsb ", " fmov ", " imul ", " inc ", " int ", " ja ",
    " jae ", " jb ", " jbe ", " jc ", " je ", " jecxz ", " jge ", " jmp ",
    " jnb ", " jnc ", " jne ", " jns ", " jnz ", " jz ", " lbz ", " ld1 ",
    " ldr ", " ldrb ", " lds ", " lea ", " les ", " lfd ", " lfs ", " lg ",
    " lha ", " lhz ", " lwz ", " lwzu", " mflr ", " mov ", " movapd ",
    " movaps ", " movd ", " movdqa ", " movdqu ", " movntps ", " movq ",
    " movups ", " movzx ", " mr ", " mtctr ", " mtlr ", " mul ", " neg ",
    " nop ", " nop", " not ", " or ", " pop ", " push ", " rcr ", " rep ",
    " repe ", " repne ", " ret ", " sar ", " sbb ", " sg ", " sgu ", " shl ",
    " shld ", " shr ", " shrd ", " slwi ", " srdi ", " std ", " stfd ", " sub ",
    " subs ", " test ", " umaxv ", " uminv ", " xchg ", " xor ",
)


def is_typescript(signature: str, *, timeout: Optional[float] = None) -> MatchOutcome:
    return patterns.search("typescript", signature, timeout=timeout)


def is_csharp(signature: str, *, timeout: Optional[float] = None) -> MatchOutcome:
    return patterns.search("csharp", signature, timeout=timeout)


def is_javascript(signature: str, *, timeout: Optional[float] = None) -> MatchOutcome:
    return patterns.search("javascript", signature, timeout=timeout)


def is_idl(signature: str, *, timeout: Optional[float] = None) -> MatchOutcome:
    return patterns.search("idl", signature, timeout=timeout)


def is_css(signature: str, *, timeout: Optional[float] = None) -> MatchOutcome:
    """True when at least three ``selector { prop: value; }`` rules are present.

    The signature is usually cut mid-rule, so a closing brace is appended
    before counting.
    """

    return patterns.count("css", signature + "}", threshold=CSS_MIN_RULES, timeout=timeout)


def base64_extension(signature: str, *, timeout: Optional[float] = None) -> MatchOutcome:
    """Classify a signature made only of base64 text.

    Exactly 64 characters is taken to be a hex SHA-256 digest and exactly 88
    a base64 SHA-512 digest; anything else is generic base64.
    """

    outcome = patterns.search("base64", signature, timeout=timeout)
    if not outcome.matched:
        return outcome
    if len(signature) == SHA256_HEX_LENGTH:
        extension = ".sha256"
    elif len(signature) == SHA512_BASE64_LENGTH:
        extension = ".sha512"
    else:
        extension = ".base64"
    return MatchOutcome(outcome.pattern, outcome.matches, extension=extension)


def is_assembly(signature: str) -> MatchOutcome:
    """Look for assembler mnemonics, stopping after the sixth distinct hit."""

    hits: List[str] = []
    for token in ASSEMBLY_TOKENS:
        if token in signature:
            hits.append(token)
            if len(hits) >= ASSEMBLY_MIN_HITS:
                break
    return MatchOutcome("assembly", tuple(hits), threshold=ASSEMBLY_MIN_HITS)


_LANGUAGE_CHECKS: Tuple[Tuple[str, Callable[..., MatchOutcome]], ...] = (
    (".ts", is_typescript),
    (".cs", is_csharp),
    (".js", is_javascript),
    (".idl", is_idl),
    (".css", is_css),
)


def detect_language(signature: str, *, timeout: Optional[float] = None) -> MatchOutcome:
    """Run every language detector in priority order and report the first hit.

    The returned outcome carries the extension of the winning detector. Base64
    is tried last and its outcome is returned as-is.
    """

    for extension, check in _LANGUAGE_CHECKS:
        outcome = check(signature, timeout=timeout)
        if outcome.matched:
            return MatchOutcome(outcome.pattern, outcome.matches, threshold=outcome.threshold, extension=extension)
    return base64_extension(signature, timeout=timeout)


__all__ = [
    "ASSEMBLY_TOKENS",
    "base64_extension",
    "detect_language",
    "is_assembly",
    "is_csharp",
    "is_css",
    "is_idl",
    "is_javascript",
    "is_typescript",
]
