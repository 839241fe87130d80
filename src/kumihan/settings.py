from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Mapping

from .capacity import (
    CharacterCapacity,
    FontMetrics,
    Length,
    Orientation,
    Padding,
    Viewport,
    compute_capacity,
)
from .pagination import PageOptions

__all__ = [
    "ReaderSettings",
    "SETTINGS_ENV_VAR",
    "default_settings_path",
    "load_settings",
    "save_settings",
]

SETTINGS_ENV_VAR = "KUMIHAN_SETTINGS"
_DEFAULT_SETTINGS_PATH = Path("~/.kumihan/settings.json")


@dataclass(frozen=True)
class ReaderSettings:
    vertical_mode: bool = True
    font_size: float = 16.0
    # Multiplier of font_size.
    line_height: float = 1.8
    padding_vertical: float = 32.0
    padding_horizontal: float = 32.0
    enable_semantic_boundaries: bool = False
    enable_content_aware_capacity: bool = False
    enable_line_breaking: bool = True
    use_capacity_based_wrapping: bool = True

    @property
    def orientation(self) -> str:
        return Orientation.normalize(self.vertical_mode)

    def page_options(self) -> PageOptions:
        return PageOptions(
            enable_semantic_boundaries=self.enable_semantic_boundaries,
            enable_content_aware_capacity=self.enable_content_aware_capacity,
            enable_line_breaking=self.enable_line_breaking,
            use_capacity_based_wrapping=self.use_capacity_based_wrapping,
        )

    def font_metrics(self) -> FontMetrics:
        return FontMetrics(font_size=self.font_size, line_height=Length(self.line_height, "em"))

    def padding(self) -> Padding:
        return Padding.symmetric(self.padding_vertical, self.padding_horizontal)

    def capacity_for(self, width: float, height: float) -> CharacterCapacity:
        return compute_capacity(
            Viewport(width, height),
            self.font_metrics(),
            self.padding(),
            self.orientation,
        )

    def as_payload(self) -> dict[str, object]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "ReaderSettings":
        """Overlay known, correctly typed keys of ``payload`` onto the defaults."""
        settings = cls()
        updates: dict[str, object] = {}
        for spec in fields(cls):
            if spec.name not in payload:
                continue
            value = payload[spec.name]
            default = getattr(settings, spec.name)
            if isinstance(default, bool):
                if isinstance(value, bool):
                    updates[spec.name] = value
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                updates[spec.name] = float(value)
        return replace(settings, **updates)


def default_settings_path() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return _DEFAULT_SETTINGS_PATH.expanduser()


def load_settings(path: Path | None = None) -> ReaderSettings:
    path = Path(path) if path is not None else default_settings_path()
    if not path.exists():
        return ReaderSettings()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Failed to parse settings file: {path}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name} must contain a JSON object.")
    return ReaderSettings.from_payload(raw)


def save_settings(settings: ReaderSettings, path: Path | None = None) -> Path:
    path = Path(path) if path is not None else default_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings.as_payload(), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return path
