from __future__ import annotations

from dataclasses import dataclass

from .nodes import Node, serialize_nodes

__all__ = [
    "Line",
    "Page",
    "PLACEHOLDER_TEXT",
    "count_characters",
    "line_to_payload",
    "page_to_payload",
]

# Stands in for a blank source line so the empty line still occupies a slot.
PLACEHOLDER_TEXT = "\u00a0"


def count_characters(text: str) -> int:
    return len(text.replace("\n", ""))


@dataclass(frozen=True)
class Line:
    """
    One logical line (or one part of a split logical line).

    ``normalized_count`` is the number of capacity slots the line consumes
    once rounded up to whole columns (vertical) or rows (horizontal).
    """

    nodes: tuple[Node, ...]
    text: str
    character_count: int
    normalized_count: int = 0
    is_continuation: bool = False
    continuation_index: int = 0
    total_parts: int = 1
    is_placeholder: bool = False


@dataclass(frozen=True)
class Page:
    lines: tuple[Line, ...]
    total_characters: int
    start_index: int
    end_index: int


def line_to_payload(line: Line) -> dict[str, object]:
    return {
        "nodes": serialize_nodes(line.nodes),
        "text": line.text,
        "character_count": line.character_count,
        "normalized_count": line.normalized_count,
        "is_continuation": line.is_continuation,
        "continuation_index": line.continuation_index,
        "total_parts": line.total_parts,
        "is_placeholder": line.is_placeholder,
    }


def page_to_payload(page: Page) -> dict[str, object]:
    return {
        "lines": [line_to_payload(line) for line in page.lines],
        "total_characters": page.total_characters,
        "start_index": page.start_index,
        "end_index": page.end_index,
    }
