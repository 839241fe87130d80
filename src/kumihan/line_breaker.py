from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Iterable, Sequence

from .layout import Line, count_characters
from .nodes import (
    BlockIndent,
    Node,
    Text,
    TextSize,
    extract_text,
    is_heading_node,
    is_structured_node,
)

__all__ = [
    "BreakCandidate",
    "BreakPriority",
    "KINSOKU_END_CHARS",
    "KINSOKU_START_CHARS",
    "PARTICLES",
    "apply_line_breaking",
    "break_long_line",
    "find_break_candidates",
    "heading_offsets",
    "is_legal_break",
    "select_break_point",
    "slice_nodes",
    "structured_spans",
]

# Must not begin a line.
KINSOKU_START_CHARS = frozenset(
    "、。，．・：；？！」』】〕）｝〉》］〟’”"
    "ヽヾゝゞ々ー"
    "ぁぃぅぇぉっゃゅょゎァィゥェォッャュョヮヵヶ"
    ",.:;!?)]}"
)
# Must not end a line.
KINSOKU_END_CHARS = frozenset("「『【〔（｛〈《［〝‘“([{")
# Runs of these read as one mark and are never separated.
_INSEPARABLE = frozenset("…‥―—")

SENTENCE_END_CHARS = frozenset("。！？｡!?")
CLAUSE_CHARS = frozenset("、")
PARTICLES = (
    "ながら",
    "から",
    "まで",
    "より",
    "だけ",
    "しか",
    "でも",
    "さえ",
    "こそ",
    "つつ",
    "は",
    "が",
    "を",
    "に",
    "で",
    "と",
    "の",
    "へ",
    "ば",
    "て",
)

IDEAL_WINDOW_RATIO = 0.7


class BreakPriority(IntEnum):
    SENTENCE = 1
    CLAUSE = 2
    DIALOGUE = 3
    PARTICLE = 4
    KINSOKU = 5
    FORCED = 6


PRIORITY_PENALTIES = {
    BreakPriority.SENTENCE: 0.1,
    BreakPriority.CLAUSE: 0.3,
    BreakPriority.DIALOGUE: 0.2,
    BreakPriority.PARTICLE: 0.5,
    BreakPriority.KINSOKU: 0.8,
    BreakPriority.FORCED: 1.0,
}


@dataclass(frozen=True)
class BreakCandidate:
    position: int
    priority: BreakPriority
    penalty: float
    char: str = ""


Span = tuple[int, int]


def is_legal_break(text: str, position: int) -> bool:
    """True when cutting before ``text[position]`` strands no forbidden character."""
    if position <= 0 or position >= len(text):
        return False
    before = text[position - 1]
    after = text[position]
    if after in KINSOKU_START_CHARS or before in KINSOKU_END_CHARS:
        return False
    if before == after and before in _INSEPARABLE:
        return False
    return True


def _inside(position: int, spans: Iterable[Span]) -> bool:
    return any(start < position < end for start, end in spans)


def _classify(text: str, position: int) -> BreakPriority:
    before = text[position - 1]
    after = text[position]
    if before in SENTENCE_END_CHARS:
        return BreakPriority.SENTENCE
    if before in CLAUSE_CHARS:
        return BreakPriority.CLAUSE
    if before == "」" or after == "「":
        return BreakPriority.DIALOGUE
    if any(text.endswith(particle, 0, position) for particle in PARTICLES):
        return BreakPriority.PARTICLE
    return BreakPriority.KINSOKU


def find_break_candidates(
    text: str,
    limit: int | None = None,
    blocked: Sequence[Span] = (),
) -> list[BreakCandidate]:
    """
    Every kinsoku-legal cut position in ``text`` up to ``limit``.

    A position ``p`` means the first line ends with ``text[:p]``. Positions
    strictly inside a ``blocked`` span are skipped.
    """
    last = len(text) - 1
    if limit is not None:
        last = min(last, limit)
    candidates: list[BreakCandidate] = []
    for position in range(1, last + 1):
        if not is_legal_break(text, position) or _inside(position, blocked):
            continue
        priority = _classify(text, position)
        candidates.append(
            BreakCandidate(
                position=position,
                priority=priority,
                penalty=PRIORITY_PENALTIES[priority],
                char=text[position - 1],
            )
        )
    return candidates


def select_break_point(
    text: str,
    max_length: int,
    candidates: Sequence[BreakCandidate] | None = None,
    blocked: Sequence[Span] = (),
) -> int:
    if candidates is None:
        candidates = find_break_candidates(text, max_length, blocked)
    window_start = math.floor(max_length * IDEAL_WINDOW_RATIO)
    in_window = [c for c in candidates if window_start <= c.position <= max_length]
    if in_window:
        best = min(in_window, key=lambda c: (c.priority, c.penalty, -c.position))
        return best.position
    within = [c.position for c in candidates if 0 < c.position <= max_length]
    if within:
        return max(within)
    return _forced_cut(max_length, blocked)


def _forced_cut(max_length: int, blocked: Sequence[Span]) -> int:
    """
    Cut at ``max_length`` when no legal break exists.

    No kinsoku walk happens here: every legal position was already a
    candidate, so the cut only backs off to the start of a structured node
    it would land inside.
    """
    cut = max(1, max_length)
    for start, end in blocked:
        if start < cut < end and start > 0:
            cut = start
    return cut


def structured_spans(nodes: Sequence[Node], offset: int = 0) -> list[Span]:
    spans: list[Span] = []
    cursor = offset
    for node in nodes:
        if isinstance(node, (TextSize, BlockIndent)):
            spans.extend(structured_spans(node.content, cursor))
            cursor += len(extract_text(node))
            continue
        length = len(extract_text(node))
        if is_structured_node(node) and length > 1:
            spans.append((cursor, cursor + length))
        cursor += length
    return spans


def slice_nodes(nodes: Sequence[Node], start: int, end: int) -> list[Node]:
    """
    Rebuild the nodes covering text offsets ``[start, end)``.

    Text is cut as needed and containers keep their wrapper around the sliced
    children. Any other node that straddles a boundary is reduced to a
    ``Text`` of its overlapping base text.
    """
    result: list[Node] = []
    cursor = 0
    for node in nodes:
        text = extract_text(node)
        node_start, node_end = cursor, cursor + len(text)
        cursor = node_end
        if node_start == node_end:
            if start <= node_start < end:
                result.append(node)
            continue
        if node_end <= start or node_start >= end:
            continue
        lo = max(start, node_start) - node_start
        hi = min(end, node_end) - node_start
        if lo == 0 and hi == len(text):
            result.append(node)
        elif isinstance(node, TextSize):
            result.append(TextSize(content=tuple(slice_nodes(node.content, lo, hi)), size=node.size, level=node.level))
        elif isinstance(node, BlockIndent):
            result.append(BlockIndent(content=tuple(slice_nodes(node.content, lo, hi)), indent=node.indent))
        elif hi > lo:
            result.append(Text(text[lo:hi]))
    return result


def heading_offsets(nodes: Sequence[Node]) -> list[int]:
    """Text offsets (after 0) where a top-level heading node begins."""
    offsets: list[int] = []
    cursor = 0
    for node in nodes:
        length = len(extract_text(node))
        if is_heading_node(node) and cursor > 0 and length:
            offsets.append(cursor)
        cursor += length
    return offsets


def break_long_line(text: str, nodes: Sequence[Node], max_length: int) -> list[Line]:
    """
    Split one logical line into parts of at most ``max_length`` characters.

    Short lines come back as a single part. A heading node inside a long line
    always starts a part of its own. Parts are numbered through
    ``continuation_index``/``total_parts``; every part after the first is a
    continuation.
    """
    nodes = tuple(nodes)
    if max_length <= 0 or len(text) <= max_length:
        return [Line(nodes=nodes, text=text, character_count=count_characters(text))]

    spans = structured_spans(nodes)
    cuts: list[Span] = []
    bounds = [0, *heading_offsets(nodes), len(text)]
    for segment_start, segment_end in zip(bounds, bounds[1:]):
        offset = segment_start
        while segment_end - offset > max_length:
            remaining = text[offset:segment_end]
            local_spans = [
                (span_start - offset, span_end - offset)
                for span_start, span_end in spans
                if span_end > offset and span_start < segment_end
            ]
            cut = select_break_point(remaining, max_length, blocked=local_spans)
            cuts.append((offset, offset + cut))
            offset += cut
        if segment_end > offset:
            cuts.append((offset, segment_end))

    total = len(cuts)
    lines: list[Line] = []
    for index, (start, end) in enumerate(cuts):
        part = text[start:end]
        lines.append(
            Line(
                nodes=tuple(slice_nodes(nodes, start, end)),
                text=part,
                character_count=count_characters(part),
                is_continuation=index > 0,
                continuation_index=index,
                total_parts=total,
            )
        )
    return lines


def apply_line_breaking(lines: Iterable[Line], max_chars: int) -> list[Line]:
    broken: list[Line] = []
    for line in lines:
        if line.is_placeholder or line.character_count <= max_chars:
            broken.append(line)
            continue
        parts = break_long_line(line.text, line.nodes, max_chars)
        if line.is_continuation:
            # Already a tail of an earlier split; keep the chain unbroken.
            parts = [replace(part, is_continuation=True) for part in parts]
        broken.extend(parts)
    return broken
