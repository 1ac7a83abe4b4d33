from pathlib import Path

import pytest
from pydantic import ValidationError

from extdetect.settings import DebugSettings, get_settings, reset_settings_cache


def test_settings_loads_yaml_and_env(tmp_path: Path, monkeypatch) -> None:
    config = tmp_path / "settings.yaml"
    config.write_text(
        """
classifier:
  signature_length: 512
  pattern_timeout: 1.5
oracle:
  magic_file: ~/magic.mgc
  uncompress: true
debug:
  enabled: true
  log_path: /tmp/extdetect/log.tsv
        """,
        encoding="utf-8",
    )
    dotenv = tmp_path / ".env"
    dotenv.write_text("EXTDETECT_CLASSIFIER__MARKUP_LENGTH=4096\n", encoding="utf-8")

    # Registered first so the value written by the .env file is removed afterwards.
    monkeypatch.setenv("EXTDETECT_CLASSIFIER__MARKUP_LENGTH", "0")
    monkeypatch.delenv("EXTDETECT_CLASSIFIER__MARKUP_LENGTH")
    monkeypatch.setenv("EXTDETECT_DOTENV", str(dotenv))
    monkeypatch.setenv("EXTDETECT_CLASSIFIER__MIN_FILE_BYTES", "32")
    reset_settings_cache()
    settings = get_settings(path=config)
    reset_settings_cache()

    assert settings.classifier.signature_length == 512
    assert settings.classifier.pattern_timeout == 1.5
    assert settings.classifier.markup_length == 4096
    assert settings.classifier.min_file_bytes == 32
    assert settings.classifier.assembly_length == 1024
    assert settings.oracle.magic_file == str(Path("~/magic.mgc").expanduser())
    assert settings.oracle.uncompress is True
    assert settings.debug.enabled is True
    assert settings.debug.resolved_log_path == Path("/tmp/extdetect/log.tsv")


def test_missing_settings_file_gives_defaults(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("EXTDETECT_SETTINGS_PATH", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("EXTDETECT_DOTENV", str(tmp_path / "absent.env"))
    reset_settings_cache()
    settings = get_settings()
    reset_settings_cache()

    assert settings.classifier.signature_length == 1024
    assert settings.classifier.markup_length == 2048
    assert settings.classifier.read_limit_bytes == 1_048_576
    assert settings.classifier.pattern_timeout == 5.0
    assert settings.oracle.magic_file is None
    assert settings.debug.enabled is False


def test_invalid_timeout_is_rejected(tmp_path: Path, monkeypatch) -> None:
    config = tmp_path / "settings.yaml"
    config.write_text("classifier:\n  pattern_timeout: 0\n", encoding="utf-8")
    monkeypatch.setenv("EXTDETECT_DOTENV", str(tmp_path / "absent.env"))
    reset_settings_cache()

    with pytest.raises(ValidationError):
        get_settings(path=config)
    reset_settings_cache()


def test_debug_paths_default_to_cache_dir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("EXTDETECT_CACHE_DIR", str(tmp_path / "cache"))

    debug = DebugSettings()

    assert debug.resolved_log_path == tmp_path / "cache" / "debug" / "decisions.tsv"
    assert debug.resolved_summary_path == tmp_path / "cache" / "debug" / "summary.tsv"
