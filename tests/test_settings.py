from __future__ import annotations

import json
from pathlib import Path

import pytest

from kumihan.capacity import Orientation
from kumihan.settings import ReaderSettings, default_settings_path, load_settings, save_settings


def test_missing_file_returns_defaults(tmp_path: Path) -> None:
    assert load_settings(tmp_path / "missing.json") == ReaderSettings()


def test_settings_round_trip(tmp_path: Path) -> None:
    settings = ReaderSettings(vertical_mode=False, font_size=20.0, enable_semantic_boundaries=True)
    path = save_settings(settings, tmp_path / "nested" / "settings.json")
    assert load_settings(path) == settings


def test_unknown_and_mistyped_keys_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps({"font_size": "huge", "line_height": 2, "theme": "dark", "vertical_mode": 0}),
        encoding="utf-8",
    )
    settings = load_settings(path)
    assert settings.font_size == 16.0
    assert settings.line_height == 2.0
    assert settings.vertical_mode is True


def test_malformed_file_raises_value_error(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("[1, 2", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(path)


def test_env_var_overrides_default_path(monkeypatch, tmp_path: Path) -> None:
    target = tmp_path / "custom.json"
    monkeypatch.setenv("KUMIHAN_SETTINGS", str(target))
    assert default_settings_path() == target
    save_settings(ReaderSettings(font_size=12.0))
    assert load_settings().font_size == 12.0


def test_settings_convert_to_core_inputs() -> None:
    settings = ReaderSettings(vertical_mode=False, padding_vertical=0, padding_horizontal=0)
    assert settings.orientation == Orientation.HORIZONTAL
    assert settings.page_options().enable_line_breaking
    capacity = settings.capacity_for(800, 600)
    assert capacity.characters_per_row == 50
    assert capacity.rows == 20
