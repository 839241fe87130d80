from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Union

__all__ = [
    "CharacterCapacity",
    "FontMetrics",
    "InvalidCapacityError",
    "Length",
    "Orientation",
    "Padding",
    "ReaderDimensions",
    "Viewport",
    "ViewportTextMetrics",
    "DEFAULT_ROOT_FONT_SIZE",
    "calculate_responsive_font_size",
    "calculate_total_pages",
    "calculate_viewport_metrics",
    "capacity_from_dimensions",
    "capacity_to_payload",
    "char_width_ratio",
    "compute_capacity",
    "ensure_ready",
    "to_pixels",
]

DEFAULT_ROOT_FONT_SIZE = 16.0
JAPANESE_CHAR_WIDTH_RATIO = 1.0
ASCII_CHAR_WIDTH_RATIO = 0.5
_UNITS = ("px", "rem", "em")


class InvalidCapacityError(ValueError):
    """Raised when a layout cannot hold a single character (font size or line height <= 0)."""


class Orientation:
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"

    @staticmethod
    def normalize(value: str | bool) -> str:
        if isinstance(value, bool):
            return Orientation.VERTICAL if value else Orientation.HORIZONTAL
        lowered = str(value).strip().lower()
        if lowered in {"vertical", "tate", "v"}:
            return Orientation.VERTICAL
        if lowered in {"horizontal", "yoko", "h"}:
            return Orientation.HORIZONTAL
        raise ValueError(f"Unknown orientation: {value!r}")


@dataclass(frozen=True)
class Length:
    value: float
    unit: str = "px"

    def __post_init__(self) -> None:
        if self.unit not in _UNITS:
            raise ValueError(f"Unsupported unit {self.unit!r}; expected one of {', '.join(_UNITS)}")


LengthLike = Union[float, int, Length]


def to_pixels(value: LengthLike, base_size: float = DEFAULT_ROOT_FONT_SIZE, parent_size: float | None = None) -> float:
    """
    Resolve a length to pixels.

    Plain numbers are already pixels. ``rem`` is relative to ``base_size``
    (the root font size); ``em`` is relative to ``parent_size`` and falls back
    to ``base_size`` when no parent is known.
    """
    if not isinstance(value, Length):
        return float(value)
    if value.unit == "rem":
        return value.value * base_size
    if value.unit == "em":
        return value.value * (parent_size if parent_size else base_size)
    return float(value.value)


@dataclass(frozen=True)
class Viewport:
    width: float
    height: float


@dataclass(frozen=True)
class FontMetrics:
    font_size: LengthLike = DEFAULT_ROOT_FONT_SIZE
    line_height: LengthLike = Length(1.8, "em")
    letter_spacing: LengthLike = 0.0
    char_width_ratio: float = JAPANESE_CHAR_WIDTH_RATIO


@dataclass(frozen=True)
class Padding:
    top: LengthLike = 0.0
    right: LengthLike = 0.0
    bottom: LengthLike = 0.0
    left: LengthLike = 0.0

    @classmethod
    def symmetric(cls, vertical: LengthLike, horizontal: LengthLike) -> "Padding":
        return cls(top=vertical, right=horizontal, bottom=vertical, left=horizontal)


@dataclass(frozen=True)
class CharacterCapacity:
    total_characters: int = 0
    rows: int = 0
    cols: int = 0
    characters_per_row: int = 0
    characters_per_column: int = 0

    @property
    def is_ready(self) -> bool:
        return self.total_characters > 0


ZERO_CAPACITY = CharacterCapacity()


def ensure_ready(capacity: CharacterCapacity) -> CharacterCapacity:
    if not capacity.is_ready:
        raise InvalidCapacityError(
            "Viewport cannot hold any characters; check font size, line height and padding."
        )
    return capacity


def char_width_ratio(char_type: str = "japanese") -> float:
    if char_type == "ascii":
        return ASCII_CHAR_WIDTH_RATIO
    if char_type == "mixed":
        return (JAPANESE_CHAR_WIDTH_RATIO + ASCII_CHAR_WIDTH_RATIO) / 2
    return JAPANESE_CHAR_WIDTH_RATIO


def _usable_extent(total: float, before: float, after: float) -> float:
    return max(0.0, total - before - after)


def _slots(extent: float, pitch: float) -> int:
    if pitch <= 0:
        return 0
    return max(0, int(math.floor(extent / pitch)))


def compute_capacity(
    viewport: Viewport,
    font_metrics: FontMetrics,
    padding: Padding | None = None,
    orientation: str = Orientation.VERTICAL,
    *,
    root_font_size: float = DEFAULT_ROOT_FONT_SIZE,
) -> CharacterCapacity:
    """
    Count the character slots a viewport can show.

    In vertical mode glyphs stack top-to-bottom inside columns that run
    right-to-left: the column pitch is the line height and the glyph pitch is
    the font size. Horizontal mode swaps the axes. Degenerate metrics yield an
    all-zero capacity rather than an error.
    """
    padding = padding or Padding()
    orientation = Orientation.normalize(orientation)
    font_size = to_pixels(font_metrics.font_size, root_font_size)
    if font_size <= 0:
        return ZERO_CAPACITY
    line_height = to_pixels(font_metrics.line_height, root_font_size, font_size)
    if line_height <= 0:
        return ZERO_CAPACITY
    letter_spacing = to_pixels(font_metrics.letter_spacing, root_font_size, font_size)

    usable_width = _usable_extent(
        viewport.width,
        to_pixels(padding.left, root_font_size),
        to_pixels(padding.right, root_font_size),
    )
    usable_height = _usable_extent(
        viewport.height,
        to_pixels(padding.top, root_font_size),
        to_pixels(padding.bottom, root_font_size),
    )

    if orientation == Orientation.VERTICAL:
        per_column = _slots(usable_height, font_size + letter_spacing)
        cols = _slots(usable_width, line_height)
        return CharacterCapacity(
            total_characters=per_column * cols,
            rows=per_column,
            cols=cols,
            characters_per_row=cols,
            characters_per_column=per_column,
        )

    per_row = _slots(usable_width, font_size * font_metrics.char_width_ratio + letter_spacing)
    rows = _slots(usable_height, line_height)
    return CharacterCapacity(
        total_characters=per_row * rows,
        rows=rows,
        cols=per_row,
        characters_per_row=per_row,
        characters_per_column=rows,
    )


@dataclass(frozen=True)
class ReaderDimensions:
    """Measured reader element: outer size, resolved font metrics and padding, all in px."""

    width: float
    height: float
    font_size: float
    line_height: float
    padding_top: float = 0.0
    padding_bottom: float = 0.0
    padding_left: float = 0.0
    padding_right: float = 0.0


def capacity_from_dimensions(
    dimensions: ReaderDimensions,
    vertical: bool = True,
    char_type: str = "japanese",
) -> CharacterCapacity:
    return compute_capacity(
        Viewport(dimensions.width, dimensions.height),
        FontMetrics(
            font_size=dimensions.font_size,
            line_height=dimensions.line_height,
            char_width_ratio=char_width_ratio(char_type),
        ),
        Padding(
            top=dimensions.padding_top,
            right=dimensions.padding_right,
            bottom=dimensions.padding_bottom,
            left=dimensions.padding_left,
        ),
        Orientation.normalize(vertical),
    )


@dataclass(frozen=True)
class ViewportTextMetrics:
    characters_per_line: int
    visible_lines: int
    total_characters: int
    usable_width: float
    usable_height: float


def calculate_viewport_metrics(
    viewport: Viewport,
    font_metrics: FontMetrics,
    padding: Padding | None = None,
    orientation: str = Orientation.HORIZONTAL,
    *,
    root_font_size: float = DEFAULT_ROOT_FONT_SIZE,
) -> ViewportTextMetrics:
    """Line-oriented view of the same numbers: characters along a line and lines per page."""
    padding = padding or Padding()
    orientation = Orientation.normalize(orientation)
    capacity = compute_capacity(viewport, font_metrics, padding, orientation, root_font_size=root_font_size)
    usable_width = _usable_extent(
        viewport.width,
        to_pixels(padding.left, root_font_size),
        to_pixels(padding.right, root_font_size),
    )
    usable_height = _usable_extent(
        viewport.height,
        to_pixels(padding.top, root_font_size),
        to_pixels(padding.bottom, root_font_size),
    )
    if orientation == Orientation.VERTICAL:
        per_line, lines = capacity.characters_per_column, capacity.cols
    else:
        per_line, lines = capacity.characters_per_row, capacity.rows
    return ViewportTextMetrics(
        characters_per_line=per_line,
        visible_lines=lines,
        total_characters=capacity.total_characters,
        usable_width=usable_width,
        usable_height=usable_height,
    )


def calculate_total_pages(total_characters: int, characters_per_page: int) -> int:
    if characters_per_page <= 0:
        return 0
    return math.ceil(total_characters / characters_per_page)


def calculate_responsive_font_size(
    viewport: Viewport,
    target_characters_per_line: int,
    padding: Padding | None = None,
    orientation: str = Orientation.HORIZONTAL,
    *,
    root_font_size: float = DEFAULT_ROOT_FONT_SIZE,
) -> int:
    """Largest whole-pixel font size that fits ``target_characters_per_line`` glyphs along a line."""
    if target_characters_per_line <= 0:
        return int(DEFAULT_ROOT_FONT_SIZE)
    padding = padding or Padding()
    if Orientation.normalize(orientation) == Orientation.VERTICAL:
        extent = _usable_extent(
            viewport.height,
            to_pixels(padding.top, root_font_size),
            to_pixels(padding.bottom, root_font_size),
        )
    else:
        extent = _usable_extent(
            viewport.width,
            to_pixels(padding.left, root_font_size),
            to_pixels(padding.right, root_font_size),
        )
    return int(math.floor(extent / target_characters_per_line))


def capacity_to_payload(capacity: CharacterCapacity) -> dict[str, int]:
    return {
        "total_characters": capacity.total_characters,
        "rows": capacity.rows,
        "cols": capacity.cols,
        "characters_per_row": capacity.characters_per_row,
        "characters_per_column": capacity.characters_per_column,
    }
