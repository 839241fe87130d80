from __future__ import annotations

import math
import sys
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

from .boundaries import (
    DIALOGUE,
    FALLBACK,
    adjust_capacity_for_content,
    detect_boundaries,
    find_optimal_break_point,
    score_complexity,
)
from .capacity import CharacterCapacity, Orientation
from .layout import PLACEHOLDER_TEXT, Line, Page, count_characters
from .line_breaker import (
    apply_line_breaking,
    break_long_line,
    heading_offsets,
    is_legal_break,
    slice_nodes,
    structured_spans,
)
from .nodes import (
    BlockIndent,
    Node,
    Text,
    TextSize,
    extract_text,
    is_heading_node,
)

__all__ = [
    "PageOptions",
    "calculate_normalized_count",
    "divide_into_pages",
    "force_split_line",
    "get_nodes_from_page",
    "pages_to_text",
    "set_debug_logging",
    "split_into_lines",
    "split_line_by_sentences",
]

_DEBUG_LOG = False
VERTICAL_LINE_RATIO = 0.6
_PERIOD = "。"


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def _debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"[kumihan debug] {message}", file=sys.stderr)


@dataclass(frozen=True)
class PageOptions:
    enable_semantic_boundaries: bool = False
    enable_content_aware_capacity: bool = False
    enable_line_breaking: bool = True
    use_capacity_based_wrapping: bool = True


def _placeholder_line() -> Line:
    return Line(
        nodes=(Text(PLACEHOLDER_TEXT),),
        text=PLACEHOLDER_TEXT,
        character_count=1,
        is_placeholder=True,
    )


def _node_segments(node: Node) -> list[list[Node]]:
    # One entry per source line the node touches.
    if isinstance(node, Text):
        return [[Text(part)] if part else [] for part in node.content.split("\n")]
    if isinstance(node, (TextSize, BlockIndent)):
        segments = _join_segments(node.content)
        wrapped: list[list[Node]] = []
        for segment in segments:
            if not segment:
                wrapped.append([])
            elif isinstance(node, TextSize):
                wrapped.append([TextSize(content=tuple(segment), size=node.size, level=node.level)])
            else:
                wrapped.append([BlockIndent(content=tuple(segment), indent=node.indent)])
        return wrapped
    return [[node]]


def _join_segments(nodes: Iterable[Node]) -> list[list[Node]]:
    segments: list[list[Node]] = [[]]
    for node in nodes:
        parts = _node_segments(node)
        segments[-1].extend(parts[0])
        segments.extend(list(part) for part in parts[1:])
    return segments


def split_into_lines(nodes: Sequence[Node], max_chars: int | None = None) -> list[Line]:
    """
    Split a node stream into logical lines on literal newlines.

    Containers spanning several lines are copied once per line. Blank lines
    become placeholder lines, and the result mirrors ``text.split("\\n")``.
    When ``max_chars`` is given, longer lines go through the line breaker.
    """
    if not extract_text(nodes):
        return []
    lines: list[Line] = []
    for segment in _join_segments(nodes):
        text = extract_text(segment)
        if not text:
            lines.append(_placeholder_line())
            continue
        lines.append(Line(nodes=tuple(segment), text=text, character_count=count_characters(text)))
    if max_chars and max_chars > 0:
        return apply_line_breaking(lines, max_chars)
    return lines


def calculate_normalized_count(text: str, characters_per_line: int) -> int:
    """Number of rows (columns, in vertical text) ``text`` occupies."""
    if characters_per_line <= 0:
        return 0
    count = count_characters(text)
    if count <= 0:
        return 0
    return math.ceil(count / characters_per_line)


def _rows_occupied(line: Line, per_row: int) -> int:
    count = line.character_count
    if line.text.endswith(_PERIOD) and count == per_row + 1:
        return 1
    return max(1, math.ceil(count / per_row))


def _as_parts(line: Line, pieces: Sequence[tuple[int, int]]) -> list[Line]:
    total = len(pieces)
    parts: list[Line] = []
    for index, (start, end) in enumerate(pieces):
        text = line.text[start:end]
        parts.append(
            Line(
                nodes=tuple(slice_nodes(line.nodes, start, end)),
                text=text,
                character_count=count_characters(text),
                is_continuation=line.is_continuation if index == 0 else True,
                continuation_index=index,
                total_parts=total,
            )
        )
    return parts


def _cuts_to_pieces(cuts: Iterable[int], length: int) -> list[tuple[int, int]]:
    pieces: list[tuple[int, int]] = []
    start = 0
    for cut in cuts:
        pieces.append((start, cut))
        start = cut
    pieces.append((start, length))
    return pieces


def split_line_by_sentences(line: Line) -> list[Line]:
    """Split after sentence enders, clause commas and closing quotes."""
    if line.is_placeholder or not line.text:
        return [line]
    text = line.text
    spans = structured_spans(line.nodes)
    cuts = sorted(
        {
            boundary.position
            for boundary in detect_boundaries(text)
            if not (boundary.kind == DIALOGUE and boundary.char == "「")
            and is_legal_break(text, boundary.position)
            and not any(start < boundary.position < end for start, end in spans)
        }
        | set(heading_offsets(line.nodes))
    )
    if not cuts:
        return [line]
    return _as_parts(line, _cuts_to_pieces(cuts, len(text)))


def force_split_line(line: Line, characters_per_line: int) -> list[Line]:
    """
    Cut ``line`` every ``characters_per_line`` characters.

    A full-width period that would open the next piece stays on the
    current one instead. A heading node always starts a new piece.
    """
    if characters_per_line <= 0 or line.is_placeholder or len(line.text) <= characters_per_line:
        return [line]
    text = line.text
    cuts: list[int] = []
    bounds = [0, *heading_offsets(line.nodes), len(text)]
    for segment_start, segment_end in zip(bounds, bounds[1:]):
        if segment_start > 0:
            cuts.append(segment_start)
        position = segment_start
        while segment_end - position > characters_per_line:
            end = position + characters_per_line
            if text[end] == _PERIOD:
                end += 1
            if end >= segment_end:
                break
            cuts.append(end)
            position = end
    if not cuts:
        return [line]
    return _as_parts(line, _cuts_to_pieces(cuts, len(text)))


def _has_heading(line: Line) -> bool:
    return any(is_heading_node(node) for node in line.nodes)


@dataclass
class _PageBuilder:
    lines: list[Line] = field(default_factory=list)
    total: int = 0
    start_index: int = 0
    end_index: int = 0

    def add(self, line: Line, node_index: int) -> None:
        if not self.lines:
            self.start_index = node_index
        self.lines.append(line)
        self.total += line.normalized_count
        self.end_index = node_index + max(len(line.nodes), 1) - 1

    def freeze(self) -> Page:
        return Page(
            lines=tuple(self.lines),
            total_characters=self.total,
            start_index=self.start_index,
            end_index=self.end_index,
        )


class _PageSink:
    def __init__(self) -> None:
        self.pages: list[Page] = []
        self.current = _PageBuilder()
        self.node_index = 0

    def add(self, line: Line) -> None:
        self.current.add(line, self.node_index)
        self.node_index += max(len(line.nodes), 1)

    def flush(self, reason: str) -> None:
        if not self.current.lines:
            return
        page = self.current.freeze()
        self.pages.append(page)
        _debug_log(
            f"page {len(self.pages)}: {len(page.lines)} lines, "
            f"{page.total_characters} slots ({reason})"
        )
        self.current = _PageBuilder()

    @property
    def empty(self) -> bool:
        return not self.current.lines


def _quota(count: int, per_column: int) -> int:
    if count <= 0:
        return 0
    if count < per_column:
        return per_column
    return math.ceil(count / per_column) * per_column


def _semantic_split(line: Line, limit: int) -> tuple[Line, Line] | None:
    if limit <= 0 or limit >= len(line.text):
        return None
    point = find_optimal_break_point(line.nodes, limit, limit=limit)
    position = point.position
    if point.reason == FALLBACK or not 0 < position < len(line.text):
        return None
    if not is_legal_break(line.text, position):
        return None
    if any(start < position < end for start, end in structured_spans(line.nodes)):
        return None
    head, tail = _as_parts(line, [(0, position), (position, len(line.text))])
    return head, tail


def _divide_vertical(nodes: Sequence[Node], capacity: CharacterCapacity, options: PageOptions) -> list[Page]:
    page_capacity = capacity.total_characters
    per_column = max(1, capacity.rows)
    max_chars = None
    if options.enable_line_breaking:
        max_chars = max(1, math.floor(page_capacity * VERTICAL_LINE_RATIO))
    queue = deque(
        replace(line, normalized_count=_quota(line.character_count, per_column))
        for line in split_into_lines(nodes, max_chars)
    )
    sink = _PageSink()
    while queue:
        line = queue.popleft()
        if _has_heading(line) and not sink.empty:
            sink.flush("heading")
        if sink.current.total + line.normalized_count <= page_capacity:
            sink.add(line)
            continue
        if sink.empty:
            sink.add(line)
            sink.flush("oversized line")
            continue
        if options.enable_semantic_boundaries and not _has_heading(line):
            remaining = page_capacity - sink.current.total
            split = _semantic_split(line, (remaining // per_column) * per_column)
            if split is not None:
                head, tail = split
                sink.add(replace(head, normalized_count=_quota(head.character_count, per_column)))
                queue.appendleft(replace(tail, normalized_count=_quota(tail.character_count, per_column)))
                sink.flush("semantic boundary")
                continue
        sink.flush("full")
        sink.add(line)
    sink.flush("end")
    return sink.pages


def _divide_horizontal(nodes: Sequence[Node], capacity: CharacterCapacity, options: PageOptions) -> list[Page]:
    per_row = max(1, capacity.characters_per_row)
    visible_rows = max(1, capacity.rows)

    def wrap(line: Line) -> list[Line]:
        if options.enable_line_breaking:
            parts = break_long_line(line.text, line.nodes, per_row)
            if len(parts) == 1:
                return [line]
            return _as_parts(line, [_part_span(parts, index) for index in range(len(parts))])
        return force_split_line(line, per_row)

    queue = deque(split_into_lines(nodes))
    sink = _PageSink()
    remaining = visible_rows
    while queue:
        line = queue[0]
        if _has_heading(line) and not sink.empty:
            sink.flush("heading")
            remaining = visible_rows
        rows = _rows_occupied(line, per_row)
        if rows <= remaining:
            queue.popleft()
            segments = wrap(line) if rows > 1 and options.use_capacity_based_wrapping else [line]
            if len(segments) > 1:
                queue.extendleft(reversed(segments))
                continue
            sink.add(replace(line, normalized_count=rows * per_row))
            remaining -= rows
            if remaining <= 0 and queue:
                sink.flush("full")
                remaining = visible_rows
            continue

        if options.use_capacity_based_wrapping:
            pieces = split_line_by_sentences(line)
            if len(pieces) == 1:
                pieces = wrap(line)
            if len(pieces) > 1:
                queue.popleft()
                queue.extendleft(reversed(pieces))
                continue
        if not sink.empty:
            sink.flush("full")
            remaining = visible_rows
            continue
        queue.popleft()
        sink.add(replace(line, normalized_count=rows * per_row))
        sink.flush("oversized line")
        remaining = visible_rows
    sink.flush("end")
    return sink.pages


def _renumber_parts(pages: Sequence[Page]) -> list[Page]:
    """Number every part against the whole logical line it was cut from."""
    lines = [line for page in pages for line in page.lines]
    numbered: list[Line] = []
    start = 0
    while start < len(lines):
        end = start + 1
        while end < len(lines) and lines[end].is_continuation:
            end += 1
        total = end - start
        numbered.extend(
            replace(line, continuation_index=index, total_parts=total)
            for index, line in enumerate(lines[start:end])
        )
        start = end
    result: list[Page] = []
    cursor = 0
    for page in pages:
        count = len(page.lines)
        result.append(replace(page, lines=tuple(numbered[cursor : cursor + count])))
        cursor += count
    return result


def _part_span(parts: Sequence[Line], index: int) -> tuple[int, int]:
    start = sum(len(part.text) for part in parts[:index])
    return start, start + len(parts[index].text)


def divide_into_pages(
    nodes: Sequence[Node],
    capacity: CharacterCapacity,
    orientation: str = Orientation.VERTICAL,
    options: PageOptions | None = None,
) -> list[Page]:
    """
    Lay ``nodes`` out into pages that fit ``capacity``.

    Vertical text fills pages by character slots, rounding every line up to
    whole columns. Horizontal text fills pages by visible rows. Headings
    always open a new page. Empty input or an unready capacity yields no
    pages.
    """
    options = options or PageOptions()
    orientation = Orientation.normalize(orientation)
    nodes = tuple(nodes)
    if not nodes or not capacity.is_ready:
        return []
    effective = capacity
    if options.enable_content_aware_capacity:
        complexity = score_complexity(nodes)
        effective = adjust_capacity_for_content(capacity, complexity)
        _debug_log(
            f"content-aware capacity {capacity.total_characters} -> {effective.total_characters} "
            f"(score {complexity.overall_score:.3f})"
        )
        if not effective.is_ready:
            return []
    if orientation == Orientation.VERTICAL:
        pages = _divide_vertical(nodes, effective, options)
    else:
        pages = _divide_horizontal(nodes, effective, options)
    return _renumber_parts(pages)


def _line_walk(lines: Iterable[Line], first: bool = True) -> Iterable[tuple[bool, Line]]:
    for line in lines:
        yield (not first and not line.is_continuation), line
        first = False


def get_nodes_from_page(page: Page) -> list[Node]:
    """Rebuild a page's node stream with ``Text("\\n")`` between logical lines."""
    result: list[Node] = []
    for needs_break, line in _line_walk(page.lines):
        if needs_break:
            result.append(Text("\n"))
        if not line.is_placeholder:
            result.extend(line.nodes)
    return result


def pages_to_text(pages: Iterable[Page]) -> str:
    """Join every page back into the text the pages were laid out from."""
    chunks: list[str] = []
    lines = (line for page in pages for line in page.lines)
    for needs_break, line in _line_walk(lines):
        if needs_break:
            chunks.append("\n")
        if not line.is_placeholder:
            chunks.append(extract_text(line.nodes))
    return "".join(chunks)
