from pathlib import Path

import pytest

from extdetect.cli import REPORT_COLUMNS, main
from extdetect.oracle import OracleSignal
from extdetect.settings import reset_settings_cache

_SIGNALS = {
    ".html": OracleSignal("text/html", "HTML document, ASCII text"),
    ".bin": OracleSignal("application/octet-stream", "data"),
    ".txt": OracleSignal("text/plain", "ASCII text"),
}


def _oracle(path) -> OracleSignal:
    return _SIGNALS[Path(path).suffix]


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("EXTDETECT_SETTINGS_PATH", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("EXTDETECT_DOTENV", str(tmp_path / "absent.env"))
    monkeypatch.setenv("EXTDETECT_CACHE_DIR", str(tmp_path / "cache"))
    reset_settings_cache()
    yield
    reset_settings_cache()


def _tree(root: Path) -> Path:
    source = root / "tree"
    (source / "nested").mkdir(parents=True)
    (source / "index.html").write_text(
        "<!DOCTYPE html>\n<html xmlns=\"http://www.w3.org/1999/xhtml\"><body>Hi</body></html>\n",
        encoding="utf-8",
    )
    (source / "nested" / "code.bin").write_text("namespace Foo.Bar { class Baz { } }\n", encoding="utf-8")
    (source / "nested" / "notes.txt").write_text("just some ordinary words in a file\n", encoding="utf-8")
    return source


def test_directory_report(tmp_path: Path) -> None:
    source = _tree(tmp_path)
    out = tmp_path / "report.tsv"

    exit_code = main([str(source), "--out", str(out)], oracle=_oracle)

    assert exit_code == 0
    rows = [line.split("\t") for line in out.read_text(encoding="utf-8").splitlines()]
    assert tuple(rows[0]) == REPORT_COLUMNS
    by_name = {Path(row[0]).name: row for row in rows[1:]}
    assert set(by_name) == {"index.html", "code.bin", "notes.txt"}

    html = by_name["index.html"]
    assert html[1:5] == [".html", ".html", "text/html", "HTML document, ASCII text"]
    assert html[5] == '("!DOCTYPE", "html")'
    assert html[6] == "http://www.w3.org/1999/xhtml"

    code = by_name["code.bin"]
    assert code[2] == ".cs"
    assert code[5] == " "

    notes = by_name["notes.txt"]
    assert notes[2] == ".txt"


def test_report_to_stdout(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = _tree(tmp_path)

    assert main([str(source), "--out", "-"], oracle=_oracle) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "\t".join(REPORT_COLUMNS)
    assert len(lines) == 4


def test_single_file_is_described(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    target = _tree(tmp_path) / "nested" / "code.bin"

    assert main([str(target)], oracle=_oracle) == 0

    output = capsys.readouterr().out.splitlines()
    assert "new_ext: .cs" in output
    assert "rule: octet-stream:csharp" in output
    assert "signature: namespace Foo.Bar { class Baz { } }" in output


def test_missing_path_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main([str(tmp_path / "nowhere")], oracle=_oracle) == 1
    assert "not found" in capsys.readouterr().err


def test_debug_flag_writes_log_and_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = _tree(tmp_path)
    settings = tmp_path / "settings.yaml"
    settings.write_text(
        "debug:\n"
        f"  log_path: {tmp_path / 'debug' / 'log.tsv'}\n"
        f"  summary_path: {tmp_path / 'debug' / 'summary.tsv'}\n",
        encoding="utf-8",
    )

    exit_code = main(
        [str(source), "--out", str(tmp_path / "report.tsv"), "--debug", "--settings", str(settings)],
        oracle=_oracle,
    )

    assert exit_code == 0
    log_lines = (tmp_path / "debug" / "log.tsv").read_text(encoding="utf-8").splitlines()
    assert len(log_lines) == 4
    summary = (tmp_path / "debug" / "summary.tsv").read_text(encoding="utf-8").splitlines()
    assert summary[0] == "Dest Ext\tCall Count"
    assert sorted(summary[1:]) == [".cs\t1", ".html\t1", ".txt\t1"]
    assert "Summary:" in capsys.readouterr().err
