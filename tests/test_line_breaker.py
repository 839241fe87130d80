from __future__ import annotations

from kumihan.layout import PLACEHOLDER_TEXT, Line
from kumihan.line_breaker import (
    KINSOKU_END_CHARS,
    KINSOKU_START_CHARS,
    BreakPriority,
    apply_line_breaking,
    break_long_line,
    find_break_candidates,
    slice_nodes,
)
from kumihan.nodes import Heading, Ruby, Text, TextSize, extract_text


def _texts(lines: list[Line]) -> list[str]:
    return [line.text for line in lines]


def test_short_line_is_returned_whole() -> None:
    (line,) = break_long_line("短い", [Text("短い")], 10)
    assert line.text == "短い"
    assert line.total_parts == 1
    assert not line.is_continuation


def test_sentence_end_wins_inside_ideal_window() -> None:
    text = "あいうえおかきくけこ。さしすせそたちつてと"
    lines = break_long_line(text, [Text(text)], 12)
    assert _texts(lines) == ["あいうえおかきくけこ。", "さしすせそたちつてと"]
    assert [line.is_continuation for line in lines] == [False, True]
    assert [line.continuation_index for line in lines] == [0, 1]
    assert {line.total_parts for line in lines} == {2}


def test_kinsoku_rules_hold_for_every_part() -> None:
    text = "「こんにちは」と彼は言った。" * 10
    lines = break_long_line(text, [Text(text)], 7)
    assert "".join(_texts(lines)) == text
    for index, line in enumerate(lines):
        assert len(line.text) <= 7
        if index > 0:
            assert line.text[0] not in KINSOKU_START_CHARS
        if index < len(lines) - 1:
            assert line.text[-1] not in KINSOKU_END_CHARS
        assert extract_text(line.nodes) == line.text


def test_ruby_is_never_cut_when_a_legal_break_exists() -> None:
    ruby = Ruby(base="漢字", reading="かんじ")
    nodes = [Text("あ" * 8), ruby, Text("い" * 8)]
    text = extract_text(nodes)
    lines = break_long_line(text, nodes, 9)
    assert _texts(lines) == ["あ" * 8, "漢字" + "い" * 7, "い"]
    assert lines[1].nodes == (ruby, Text("い" * 7))
    for line in lines:
        assert extract_text(line.nodes) == line.text


def test_forced_cut_when_no_legal_break_exists() -> None:
    text = "ー" * 10
    lines = break_long_line(text, [Text(text)], 4)
    assert _texts(lines) == ["ーーーー", "ーーーー", "ーー"]


def test_oversized_structured_node_degrades_to_text() -> None:
    nodes = [Ruby(base="一二三四五六", reading="いちにさんしごろく")]
    lines = break_long_line("一二三四五六", nodes, 4)
    assert [line.nodes for line in lines] == [(Text("一二三四"),), (Text("五六"),)]


def test_multi_character_particle_candidate() -> None:
    candidates = {c.position: c.priority for c in find_break_candidates("雨だから行く")}
    assert candidates[4] == BreakPriority.PARTICLE


def test_closing_quote_before_comma_is_not_a_break() -> None:
    candidates = find_break_candidates("「あ」、い")
    assert [c.position for c in candidates] == [4]
    assert candidates[0].priority == BreakPriority.CLAUSE


def test_slice_nodes_keeps_container_wrapper() -> None:
    nodes = [Text("前"), TextSize(content=(Text("あいうえお"),), size="large", level=2)]
    assert slice_nodes(nodes, 2, 4) == [TextSize(content=(Text("いう"),), size="large", level=2)]
    assert slice_nodes(nodes, 0, 2) == [Text("前"), TextSize(content=(Text("あ"),), size="large", level=2)]


def test_apply_line_breaking_skips_placeholders() -> None:
    placeholder = Line(nodes=(Text(PLACEHOLDER_TEXT),), text=PLACEHOLDER_TEXT, character_count=1, is_placeholder=True)
    long_text = "あいうえおかきくけこ。さしすせそ"
    lines = apply_line_breaking(
        [placeholder, Line(nodes=(Text(long_text),), text=long_text, character_count=len(long_text))],
        12,
    )
    assert lines[0] is placeholder
    assert _texts(lines[1:]) == ["あいうえおかきくけこ。", "さしすせそ"]


def test_heading_inside_long_line_starts_its_own_part() -> None:
    nodes = [Text("あ" * 10), Heading(content="章"), Text("いいい")]
    lines = break_long_line(extract_text(nodes), nodes, 8)
    assert _texts(lines) == ["あ" * 8, "ああ", "章いいい"]
    assert lines[2].nodes == (Heading(content="章"), Text("いいい"))
    assert [line.continuation_index for line in lines] == [0, 1, 2]
