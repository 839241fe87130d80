from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from .capacity import CharacterCapacity
from .nodes import (
    BlockIndent,
    Emphasis,
    EmphasisDots,
    Node,
    Ruby,
    SpecialCharNote,
    Text,
    TextSize,
    extract_text,
    is_heading_node,
)

__all__ = [
    "Boundary",
    "ContentComplexity",
    "OptimalBreakPoint",
    "PenaltyWeights",
    "BOUNDARY_STRENGTHS",
    "adjust_capacity_for_content",
    "detect_boundaries",
    "find_optimal_break_point",
    "score_complexity",
]

SENTENCE = "sentence"
PARAGRAPH = "paragraph"
DIALOGUE = "dialogue"
CLAUSE = "clause"
HEADING = "heading"
FALLBACK = "fallback"

BOUNDARY_STRENGTHS = {
    SENTENCE: 1.0,
    PARAGRAPH: 0.8,
    DIALOGUE: 0.6,
    CLAUSE: 0.3,
}

# char -> (kind, offset of the break relative to the char)
_BOUNDARY_TABLE: dict[str, tuple[str, int]] = {
    "。": (SENTENCE, 1),
    "！": (SENTENCE, 1),
    "？": (SENTENCE, 1),
    "｡": (SENTENCE, 1),
    "!": (SENTENCE, 1),
    "?": (SENTENCE, 1),
    "「": (DIALOGUE, 0),
    "」": (DIALOGUE, 1),
    "、": (CLAUSE, 1),
}
_DIALOGUE_BRACKETS = frozenset("「」")

COMPLEXITY_WEIGHTS = {
    "ruby": 0.4,
    "emphasis": 0.3,
    "special_char": 0.2,
    "dialogue": 0.1,
}
MIN_COMPLEXITY_SCORE = 0.1
MAX_CAPACITY_REDUCTION = 0.3


@dataclass(frozen=True)
class Boundary:
    position: int
    kind: str
    strength: float
    char: str | None = None


def detect_boundaries(text: str) -> list[Boundary]:
    """
    Scan ``text`` for break candidates.

    Positions are offsets into ``text`` at which a break may be placed; the
    result is sorted by position and may hold several records per position.
    """
    boundaries: list[Boundary] = []
    length = len(text)
    idx = 0
    while idx < length:
        ch = text[idx]
        entry = _BOUNDARY_TABLE.get(ch)
        if entry is not None:
            kind, offset = entry
            boundaries.append(Boundary(idx + offset, kind, BOUNDARY_STRENGTHS[kind], ch))
        elif ch == "\n":
            end = _paragraph_end(text, idx)
            if end is not None:
                boundaries.append(Boundary(end, PARAGRAPH, BOUNDARY_STRENGTHS[PARAGRAPH]))
                idx = end
                continue
        idx += 1
    boundaries.sort(key=lambda boundary: boundary.position)
    return boundaries


def _paragraph_end(text: str, newline_idx: int) -> int | None:
    # A newline, any run of whitespace, then another newline.
    cursor = newline_idx + 1
    last_newline = None
    while cursor < len(text) and text[cursor].isspace():
        if text[cursor] == "\n":
            last_newline = cursor
        cursor += 1
    if last_newline is None:
        return None
    return last_newline + 1


@dataclass(frozen=True)
class ContentComplexity:
    ruby_density: float = 0.0
    emphasis_density: float = 0.0
    special_char_density: float = 0.0
    dialogue_density: float = 0.0
    overall_score: float = 0.0


@dataclass
class _ComplexityCounts:
    total: int = 0
    ruby: int = 0
    emphasis: int = 0
    special_char: int = 0
    dialogue: int = 0


def score_complexity(nodes: Iterable[Node]) -> ContentComplexity:
    counts = _ComplexityCounts()
    _count_nodes(nodes, counts)
    if counts.total == 0:
        return ContentComplexity()
    ruby_density = counts.ruby / counts.total
    emphasis_density = counts.emphasis / counts.total
    special_density = counts.special_char / counts.total
    dialogue_density = counts.dialogue / counts.total
    overall = max(
        MIN_COMPLEXITY_SCORE,
        ruby_density * COMPLEXITY_WEIGHTS["ruby"]
        + emphasis_density * COMPLEXITY_WEIGHTS["emphasis"]
        + special_density * COMPLEXITY_WEIGHTS["special_char"]
        + dialogue_density * COMPLEXITY_WEIGHTS["dialogue"],
    )
    return ContentComplexity(
        ruby_density=ruby_density,
        emphasis_density=emphasis_density,
        special_char_density=special_density,
        dialogue_density=dialogue_density,
        overall_score=overall,
    )


def _count_nodes(nodes: Iterable[Node], counts: _ComplexityCounts) -> None:
    for node in nodes:
        if isinstance(node, (TextSize, BlockIndent)):
            _count_nodes(node.content, counts)
            continue
        text = extract_text(node)
        counts.total += len(text)
        if isinstance(node, Ruby):
            counts.ruby += len(node.base)
        elif isinstance(node, EmphasisDots):
            counts.emphasis += len(node.text)
        elif isinstance(node, Emphasis):
            counts.emphasis += len(node.content)
        elif isinstance(node, SpecialCharNote):
            counts.special_char += 1
        elif isinstance(node, Text):
            counts.dialogue += sum(1 for ch in text if ch in _DIALOGUE_BRACKETS)


def adjust_capacity_for_content(capacity: CharacterCapacity, complexity: ContentComplexity) -> CharacterCapacity:
    """Shrink capacity by up to 30% for ruby- and annotation-dense text."""
    excess = max(0.0, complexity.overall_score - MIN_COMPLEXITY_SCORE)
    factor = max(1.0 - MAX_CAPACITY_REDUCTION, 1.0 - excess * MAX_CAPACITY_REDUCTION)
    return CharacterCapacity(
        total_characters=_scaled(capacity.total_characters, factor),
        rows=_scaled(capacity.rows, factor),
        cols=_scaled(capacity.cols, factor),
        characters_per_row=_scaled(capacity.characters_per_row, factor),
        characters_per_column=_scaled(capacity.characters_per_column, factor),
    )


def _scaled(value: int, factor: float) -> int:
    # Absorb float error so 40 * 0.7 floors to 28, not 27.
    return math.floor(value * factor + 1e-9)


@dataclass(frozen=True)
class PenaltyWeights:
    mid_sentence: float = 1.0
    mid_paragraph: float = 0.5
    far_from_target: float = 0.3
    content_complexity: float = 0.2


@dataclass(frozen=True)
class OptimalBreakPoint:
    position: int
    penalty: float
    reason: str


def find_optimal_break_point(
    source: str | Sequence[Node],
    target: int,
    *,
    semantic: bool = True,
    limit: int | None = None,
    weights: PenaltyWeights | None = None,
) -> OptimalBreakPoint:
    """
    Choose where to end a page whose ideal length is ``target`` characters.

    A heading near the target wins outright; otherwise the boundary with the
    lowest distance-plus-weakness penalty is used, and ``target`` itself is
    the fallback. ``limit`` excludes every position past it.
    """
    weights = weights or PenaltyWeights()
    if isinstance(source, str):
        text = source
        heading_positions: list[int] = []
    else:
        text = extract_text(source)
        heading_positions = _heading_positions(source)

    def allowed(position: int) -> bool:
        return position > 0 and (limit is None or position <= limit)

    for position in heading_positions:
        if target * 0.5 <= position <= target * 1.5 and allowed(position):
            return OptimalBreakPoint(position=position, penalty=0.1, reason=HEADING)

    fallback_position = target if limit is None else min(target, limit)
    best = OptimalBreakPoint(position=fallback_position, penalty=1.0, reason=FALLBACK)
    if not semantic or target <= 0:
        return best
    for boundary in detect_boundaries(text):
        if not (target * 0.3 <= boundary.position <= target * 1.5) or not allowed(boundary.position):
            continue
        distance = abs(boundary.position - target) / target * weights.far_from_target
        weakness = (1 - boundary.strength) * weights.mid_sentence
        penalty = distance + weakness
        if penalty < best.penalty:
            best = OptimalBreakPoint(position=boundary.position, penalty=penalty, reason=boundary.kind)
    return best


def _heading_positions(nodes: Sequence[Node]) -> list[int]:
    positions: list[int] = []
    cursor = 0
    for node in nodes:
        if is_heading_node(node):
            positions.append(cursor)
        cursor += len(extract_text(node))
    return positions
