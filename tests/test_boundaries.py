from __future__ import annotations

from kumihan.boundaries import (
    ContentComplexity,
    adjust_capacity_for_content,
    detect_boundaries,
    find_optimal_break_point,
    score_complexity,
)
from kumihan.capacity import CharacterCapacity
from kumihan.nodes import Heading, Ruby, Text, TextSize


def test_detect_boundaries_kinds_and_positions() -> None:
    text = "「はい」と言った。次、"
    found = [(b.position, b.kind) for b in detect_boundaries(text)]
    assert (0, "dialogue") in found
    assert (4, "dialogue") in found
    assert (9, "sentence") in found
    assert (11, "clause") in found


def test_paragraph_boundary_after_blank_line() -> None:
    text = "一段落。\n\n二段落"
    paragraphs = [b for b in detect_boundaries(text) if b.kind == "paragraph"]
    assert [b.position for b in paragraphs] == [6]
    assert paragraphs[0].strength == 0.8


def test_boundaries_are_sorted() -> None:
    text = "「あ、い。」う！え？\n \nお、「か」。" * 3
    positions = [b.position for b in detect_boundaries(text)]
    assert positions == sorted(positions)


def test_complexity_of_plain_text_is_floored() -> None:
    complexity = score_complexity([Text("ただの文章です")])
    assert complexity.ruby_density == 0
    assert complexity.overall_score == 0.1


def test_complexity_counts_container_children_once() -> None:
    nodes = [TextSize(content=(Ruby(base="漢字", reading="かんじ"), Text("です")))]
    complexity = score_complexity(nodes)
    assert complexity.ruby_density == 0.5


def test_empty_content_has_zero_complexity() -> None:
    assert score_complexity([]) == ContentComplexity()


def test_adjust_capacity_caps_reduction_at_thirty_percent() -> None:
    capacity = CharacterCapacity(total_characters=1000, rows=40, cols=25, characters_per_row=25, characters_per_column=40)
    plain = adjust_capacity_for_content(capacity, ContentComplexity(overall_score=0.1))
    assert plain == capacity
    dense = adjust_capacity_for_content(capacity, ContentComplexity(overall_score=5.0))
    assert dense.total_characters == 700
    assert dense.rows == 28


def test_break_point_prefers_heading_near_target() -> None:
    nodes = [Text("あ" * 80), Heading(content="第二章"), Text("い" * 40)]
    point = find_optimal_break_point(nodes, 100)
    assert point.reason == "heading"
    assert point.position == 80


def test_break_point_prefers_strong_boundary() -> None:
    text = "あ" * 45 + "。" + "い" * 10 + "、" + "う" * 50
    point = find_optimal_break_point(text, 50)
    assert point.reason == "sentence"
    assert point.position == 46


def test_break_point_respects_limit_and_falls_back() -> None:
    text = "あ" * 100
    point = find_optimal_break_point(text, 60, limit=40)
    assert point.reason == "fallback"
    assert point.position == 40
