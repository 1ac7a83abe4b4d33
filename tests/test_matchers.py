import pytest

from extdetect import matchers, patterns
from extdetect.matchers import (
    base64_extension,
    detect_language,
    is_assembly,
    is_csharp,
    is_css,
    is_idl,
    is_javascript,
    is_typescript,
)


class _TimingOutPattern:
    def search(self, text: str, timeout: float = 0.0) -> None:
        raise TimeoutError("regex time out")

    def finditer(self, text: str, timeout: float = 0.0) -> None:
        raise TimeoutError("regex time out")


def test_typescript_declaration_is_detected() -> None:
    outcome = is_typescript("declare namespace Foo.Bar { export interface Widget {} }")

    assert outcome.matched
    assert outcome.first.group(0).startswith("declare namespace Foo.Bar")


def test_csharp_namespace_is_detected() -> None:
    assert is_csharp("using System; namespace Acme.Tools { public class Widget { } }")
    assert not is_csharp("the namespace of this document is implicit")


@pytest.mark.parametrize(
    "signature",
    [
        "'use strict'; var counter = 1;",
        "const fs = require('fs'); fs.readFileSync(path);",
        "function add(a, b) { return a + b; }",
        "var handler = function(event) { return event; }",
    ],
)
def test_javascript_forms_are_detected(signature: str) -> None:
    assert is_javascript(signature).matched


def test_idl_import_is_detected() -> None:
    assert is_idl("import 'oaidl.idl'; interface IFoo : IUnknown { }")
    assert not is_idl("import os, sys")


def test_css_needs_three_rules() -> None:
    three = "body { margin: 0; } h1 { color: red; } p { padding: 4px; }"
    two = "body { margin: 0; } h1 { color: red; }"

    assert is_css(three).matched
    assert not is_css(two).matched
    assert len(is_css(two).matches) == 2


def test_css_tolerates_cut_final_rule() -> None:
    assert is_css("body { margin: 0; } h1 { color: red; } p { padding: 4px").matched


def test_hex_digest_is_sha256() -> None:
    digest = "9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08"

    assert base64_extension(digest).extension == ".sha256"


def test_base64_digest_is_sha512() -> None:
    assert base64_extension("A" * 86 + "==").extension == ".sha512"


def test_generic_base64() -> None:
    outcome = base64_extension("QUJDREVGR0hJSktMTU5PUFFSU1RVVldYWVo=")

    assert outcome.matched
    assert outcome.extension == ".base64"


@pytest.mark.parametrize(
    "signature",
    ["hello there general kenobi", "short+base64==", "not base64! at all, no"],
)
def test_prose_is_not_base64(signature: str) -> None:
    outcome = base64_extension(signature)

    assert not outcome.matched
    assert outcome.extension is None


def test_assembly_needs_six_tokens() -> None:
    listing = "start: mov eax, 1 push ebx call foo xor eax, eax jmp done ret nop"

    outcome = is_assembly(listing)

    assert outcome.matched
    assert len(outcome.matches) == matchers.ASSEMBLY_MIN_HITS


def test_prose_is_not_assembly() -> None:
    outcome = is_assembly("the quick brown fox jumps over the lazy dog")

    assert not outcome.matched
    assert outcome.matches == ()


def test_language_priority_prefers_typescript_then_csharp() -> None:
    assert detect_language("declare namespace Lib { function go(a) { } }").extension == ".ts"
    assert detect_language("namespace App { function go(a) { } }").extension == ".cs"
    assert detect_language("function go(a) { return a; }").extension == ".js"


def test_detect_language_falls_back_to_base64() -> None:
    outcome = detect_language("QUJDREVGR0hJSktMTU5PUFFSU1RVVldYWVo=")

    assert outcome.matched
    assert outcome.extension == ".base64"


def test_detect_language_reports_no_match() -> None:
    outcome = detect_language("just some ordinary words in a sentence.")

    assert not outcome
    assert outcome.extension is None


def test_timed_out_pattern_never_matches(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(patterns, "get_pattern", lambda name: _TimingOutPattern())

    searched = is_javascript("function add(a, b) { return a + b; }", timeout=0.01)
    counted = is_css("body { margin: 0; } h1 { color: red; } p { padding: 4px; }", timeout=0.01)

    assert searched.timed_out and not searched
    assert counted.timed_out and not counted


def test_unknown_pattern_name() -> None:
    with pytest.raises(KeyError):
        patterns.get_pattern("cobol")


def test_compiled_patterns_are_shared() -> None:
    assert patterns.get_pattern("css") is patterns.get_pattern("css")
