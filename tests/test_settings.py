from __future__ import annotations

from pathlib import Path

import pytest

from pixel_mcp.config import Settings, get_settings, reset_settings


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch: pytest.MonkeyPatch):
    for name in ("PIXEL_MCP_WORKSPACE", "PIXEL_MCP_LOG_LEVEL", "PIXEL_MCP_MAX_SAMPLES"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


def test_settings_from_env_workspace_override(tmp_path: Path) -> None:
    settings = Settings.from_env(workspace_override=tmp_path)
    assert settings.workspace_root == tmp_path.resolve()
    assert settings.output_dir == settings.workspace_root / "out"
    assert settings.log_level == "INFO"
    assert settings.engine.max_samples is None


def test_settings_read_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIXEL_MCP_WORKSPACE", str(tmp_path / "ws"))
    monkeypatch.setenv("PIXEL_MCP_LOG_LEVEL", "warning")
    monkeypatch.setenv("PIXEL_MCP_MAX_SAMPLES", "500")

    settings = Settings.from_env()
    assert settings.workspace_root == (tmp_path / "ws").resolve()
    assert settings.log_level == "WARNING"
    assert settings.engine.max_samples == 500


def test_ensure_directories(tmp_path: Path) -> None:
    settings = Settings.from_env(workspace_override=tmp_path / "ws")
    settings.ensure_directories()
    assert settings.workspace_root.is_dir()
    assert settings.output_dir.is_dir()


def test_get_settings_is_cached(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIXEL_MCP_WORKSPACE", str(tmp_path))
    first = get_settings()
    assert get_settings() is first

    override = get_settings(tmp_path / "other")
    assert override.workspace_root == (tmp_path / "other").resolve()

    reset_settings()
    assert get_settings() is not first
