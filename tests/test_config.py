from __future__ import annotations

import logging
from pathlib import Path

import pytest

from registration_desk.config import DEFAULT_EXTRACTION_MODEL, DEFAULT_TOTAL_FEE, load_settings
from registration_desk.logging import get_logger, set_level
from registration_desk.paths import find_project_root, storage_path

_KEYS = (
    "EXTRACTION_API_KEY",
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "EXTRACTION_BASE_URL",
    "EXTRACTION_MODEL",
    "SHEET_WEBAPP_URL",
    "COURSE_TOTAL_FEE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)


def test_settings_from_dotenv_in_parent(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "GEMINI_API_KEY=abc\nSHEET_WEBAPP_URL=https://sheet.test/exec\nCOURSE_TOTAL_FEE=18000\n",
        encoding="utf-8",
    )
    sub = tmp_path / "src"
    sub.mkdir()
    settings = load_settings(str(sub))
    assert settings.extraction_api_key == "abc"
    assert settings.extraction_model == DEFAULT_EXTRACTION_MODEL
    assert settings.sheet_url == "https://sheet.test/exec"
    assert settings.total_fee == 18000


def test_environment_beats_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text("EXTRACTION_MODEL=from-file\nCOURSE_TOTAL_FEE=lots\n", encoding="utf-8")
    monkeypatch.setenv("EXTRACTION_MODEL", "from-env")
    settings = load_settings(str(tmp_path))
    assert settings.extraction_model == "from-env"
    assert settings.total_fee == DEFAULT_TOTAL_FEE


def test_storage_lives_under_project_var(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("", encoding="utf-8")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    root = find_project_root(str(nested))
    assert root == str(tmp_path)
    assert storage_path(root) == str(tmp_path / "var" / "local_storage.json")
    assert (tmp_path / "var").is_dir()


def test_set_level_reaches_existing_loggers() -> None:
    log = get_logger("test-level")
    try:
        assert set_level("debug") == logging.DEBUG
        assert log.level == logging.DEBUG
        assert all(h.level == logging.DEBUG for h in log.handlers)
    finally:
        set_level("info")
    assert log.level == logging.INFO
