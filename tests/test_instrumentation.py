import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from extdetect.instrumentation import ClassificationRecorder, ClassificationTrace, tsv_cell
from extdetect.settings import DebugSettings


def _trace(extension, rule: str = "text-plain:default", path: str = "/data/file.txt") -> ClassificationTrace:
    return ClassificationTrace(
        path=path,
        old_extension=".txt",
        new_extension=extension,
        media_type="text/plain",
        description="ASCII text",
        rule=rule,
    )


def _recorder(tmp_path: Path, enabled: bool = True) -> ClassificationRecorder:
    return ClassificationRecorder(
        DebugSettings(
            enabled=enabled,
            log_path=str(tmp_path / "debug" / "log.tsv"),
            summary_path=str(tmp_path / "debug" / "summary.tsv"),
        )
    )


def test_disabled_recorder_writes_nothing(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path, enabled=False)

    recorder.record(_trace(".js"))
    recorder.record_timeout("css")

    assert not recorder.log_path.exists()
    assert recorder.snapshot().extensions == []
    assert recorder.write_summary() is None


def test_log_rows_follow_header(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path)

    recorder.record(_trace(".js", rule="text-plain:javascript"))
    recorder.record(_trace(None, rule="unmapped", path="/data/odd\tname"))

    lines = recorder.log_path.read_text(encoding="utf-8").splitlines()
    assert lines == [
        "Rule\tOld Ext\tNew Ext\tMime Type\tDescription\tFilename",
        "text-plain:javascript\t.txt\t.js\ttext/plain\tASCII text\t/data/file.txt",
        "unmapped\t.txt\t \ttext/plain\tASCII text\t/data/odd name",
    ]


def test_header_is_written_once_per_file(tmp_path: Path) -> None:
    _recorder(tmp_path).record(_trace(".js"))
    _recorder(tmp_path).record(_trace(".cs"))

    lines = (tmp_path / "debug" / "log.tsv").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3
    assert lines[0].startswith("Rule\t")


def test_log_survives_close_and_reopen(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path)
    recorder.record(_trace(".js"))
    recorder.record(_trace(".cs"))

    assert len(recorder.log_path.read_text(encoding="utf-8").splitlines()) == 3
    recorder.close()
    recorder.close()
    recorder.record(_trace(".txt"))
    recorder.close()

    lines = recorder.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 4
    assert [line for line in lines if line.startswith("Rule\t")] == [lines[0]]


def test_unwritable_log_disables_recorder(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory\n", encoding="utf-8")
    recorder = ClassificationRecorder(
        DebugSettings(
            enabled=True,
            log_path=str(blocker / "log.tsv"),
            summary_path=str(blocker / "summary.tsv"),
        )
    )

    with caplog.at_level(logging.WARNING, logger="extdetect.instrumentation"):
        recorder.record(_trace(".js"))
        recorder.record(_trace(".cs"))

    assert recorder.enabled is False
    assert "debug log" in caplog.text
    assert [stat.to_dict() for stat in recorder.snapshot().extensions] == [{"extension": ".js", "calls": 1}]
    assert recorder.write_summary() is None
    assert blocker.read_text(encoding="utf-8") == "not a directory\n"


def test_summary_lists_least_frequent_first(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path)
    for extension in (".cs", ".js", ".cs", ".txt", ".cs", ".txt"):
        recorder.record(_trace(extension))

    path = recorder.write_summary()

    assert path == tmp_path / "debug" / "summary.tsv"
    assert path.read_text(encoding="utf-8").splitlines() == [
        "Dest Ext\tCall Count",
        ".js\t1",
        ".txt\t2",
        ".cs\t3",
    ]


def test_snapshot_counts_timeouts(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path)
    recorder.record_timeout("css")
    recorder.record_timeout("css")
    recorder.record_timeout("javascript")

    snapshot = recorder.snapshot().to_dict()

    assert snapshot["timeouts"] == {"css": 2, "javascript": 1}
    recorder.reset()
    assert recorder.snapshot().timeouts == {}


def test_concurrent_records_are_all_counted(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda index: recorder.record(_trace(".js", path=f"/data/{index}")), range(400)))

    assert [stat.to_dict() for stat in recorder.snapshot().extensions] == [{"extension": ".js", "calls": 400}]
    assert len(recorder.log_path.read_text(encoding="utf-8").splitlines()) == 401


def test_tsv_cell_keeps_columns_aligned() -> None:
    assert tsv_cell(None) == " "
    assert tsv_cell("") == " "
    assert tsv_cell("a\tb\nc") == "a b c"
