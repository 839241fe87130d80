from __future__ import annotations

import warnings

import pytest

from kumihan.nodes import (
    BlockIndent,
    EmphasisDots,
    Heading,
    Ruby,
    SpecialCharNote,
    Text,
    TextSize,
    extract_text,
)
from kumihan.parser import (
    StrayCloseTagWarning,
    UnterminatedScopeWarning,
    format_markup,
    parse,
)


def _parse_quiet(text: str):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return parse(text)


def test_plain_text_round_trips() -> None:
    text = "吾輩は猫である。名前はまだ無い。\n\nどこで生れたかとんと見当がつかぬ。"
    document = parse(text)
    assert extract_text(document.nodes) == text
    assert document.nodes == (Text(text),)


def test_implicit_ruby_takes_trailing_kanji_run() -> None:
    document = parse("団扇《うちわ》を持つ")
    assert document.nodes == (Ruby(base="団扇", reading="うちわ"), Text("を持つ"))


def test_implicit_ruby_splits_preceding_kana() -> None:
    document = parse("大きな団扇《うちわ》")
    assert document.nodes == (Text("大きな"), Ruby(base="団扇", reading="うちわ"))


def test_implicit_ruby_handles_iteration_mark() -> None:
    document = parse("人々《ひとびと》")
    assert document.nodes == (Ruby(base="人々", reading="ひとびと"),)


def test_pipe_ruby_sets_explicit_base() -> None:
    document = parse("｜これ全部《ぜんぶ》がルビ")
    assert document.nodes == (Ruby(base="これ全部", reading="ぜんぶ"), Text("がルビ"))
    assert "｜" not in extract_text(document.nodes)


def test_ruby_after_kana_stays_literal() -> None:
    document = parse("ひらがな《よみ》")
    assert document.nodes == (Text("ひらがな《よみ》"),)


def test_unclosed_ruby_is_literal() -> None:
    text = "漢字《かんじ\nつづき"
    document = parse(text)
    assert extract_text(document.nodes) == text


def test_indent_tag_expands_to_ideographic_spaces() -> None:
    document = parse("［＃３字下げ］テキスト")
    assert document.nodes == (Text("　　　テキスト"),)


def test_kanji_indent_count() -> None:
    document = parse("［＃十二字下げ］x")
    assert document.nodes == (Text("　" * 12 + "x"),)


def test_emphasis_dots_replace_trailing_text() -> None:
    document = parse("これは大事［＃「大事」に傍点］なこと")
    assert document.nodes == (
        Text("これは"),
        EmphasisDots(content="大事", text="大事"),
        Text("なこと"),
    )


def test_inline_heading() -> None:
    document = parse("第一章［＃「第一章」は大見出し］\n本文")
    assert document.nodes == (Heading(content="第一章", level="large"), Text("\n本文"))


def test_emphasis_target_missing_from_text_becomes_standalone() -> None:
    document = parse("あ［＃「漢」に傍点］")
    assert document.nodes == (Text("あ"), EmphasisDots(content="漢", text="漢"))


def test_emphasis_target_inside_ruby_becomes_standalone() -> None:
    document = parse("漢字《かんじ》［＃「漢字」に傍点］")
    assert document.nodes == (
        Ruby(base="漢字", reading="かんじ"),
        EmphasisDots(content="漢字", text="漢字"),
    )


def test_inline_heading_target_missing_becomes_standalone() -> None:
    document = parse("本文［＃「第一章」は中見出し］")
    assert document.nodes == (Text("本文"), Heading(content="第一章", level="medium"))


def test_scoped_heading() -> None:
    document = parse("［＃中見出し］二［＃中見出し終わり］\n本文")
    assert document.nodes == (Heading(content="二", level="medium"), Text("\n本文"))


def test_heading_scope_closes_at_end_of_line() -> None:
    with pytest.warns(UnterminatedScopeWarning):
        document = parse("［＃小見出し］節\n本文")
    assert document.nodes == (Heading(content="節", level="small"), Text("\n本文"))


def test_text_size_scope() -> None:
    document = parse("前［＃２段階大きな文字］大きい［＃大きな文字終わり］後")
    assert document.nodes == (
        Text("前"),
        TextSize(content=(Text("大きい"),), size="large", level=2),
        Text("後"),
    )


def test_unterminated_text_size_is_flushed_with_warning() -> None:
    with pytest.warns(UnterminatedScopeWarning):
        document = parse("［＃１段階小さな文字］未完了のテキスト")
    assert document.nodes == (
        TextSize(content=(Text("未完了のテキスト"),), size="small", level=1),
    )


def test_block_indent_with_nested_ruby() -> None:
    document = parse("［＃ここから２字下げ］漢字《かんじ》です\n次［＃ここで字下げ終わり］")
    assert document.nodes == (
        BlockIndent(
            content=(Ruby(base="漢字", reading="かんじ"), Text("です\n次")),
            indent=2,
        ),
    )


def test_nested_scopes_flush_lifo() -> None:
    with pytest.warns(UnterminatedScopeWarning) as record:
        document = parse("［＃ここから１字下げ］外［＃小さな文字］内")
    assert len(record) == 2
    assert document.nodes == (
        BlockIndent(
            content=(Text("外"), TextSize(content=(Text("内"),), size="small", level=1)),
            indent=1,
        ),
    )


def test_stray_close_tag_is_dropped_with_warning() -> None:
    with pytest.warns(StrayCloseTagWarning):
        document = parse("本文［＃ここで字下げ終わり］続き")
    assert document.nodes == (Text("本文続き"),)


def test_special_char_note_with_unicode() -> None:
    document = parse("※［＃「てへん＋劣」、U+6318、123-4］")
    note = document.nodes[-1]
    assert isinstance(note, SpecialCharNote)
    assert note.char == "てへん＋劣"
    assert note.unicode == "U+6318"
    assert extract_text(note) == "挘"


def test_special_char_note_with_jis_code() -> None:
    document = parse("［＃「土へん＋竒」、第3水準1-15-65］")
    (note,) = document.nodes
    assert isinstance(note, SpecialCharNote)
    assert note.unicode == "1-15-65"
    assert extract_text(note) == "〓"


def test_unknown_tag_is_literal() -> None:
    text = "本文［＃ここに挿絵］続き"
    document = parse(text)
    assert extract_text(document.nodes) == text


def test_unclosed_tag_is_literal() -> None:
    text = "本文［＃未完\n続き"
    assert extract_text(parse(text).nodes) == text


def test_title_from_source_line() -> None:
    text = "吾輩は猫である\n夏目漱石\n\n本文\n\n底本：「吾輩は猫である（上）」岩波書店"
    document = parse(text)
    assert document.metadata.title == "吾輩は猫である"


def test_parse_records_encoding() -> None:
    document = parse("本文", encoding="cp932")
    assert document.metadata.encoding == "cp932"


@pytest.mark.parametrize(
    "markup",
    [
        "団扇《うちわ》を持つ",
        "｜これ全部《ぜんぶ》がルビ",
        "漢《か》字《じ》",
        "これは大事［＃「大事」に傍点］なこと",
        "第一章［＃「第一章」は大見出し］\n本文",
        "［＃２段階大きな文字］大きい［＃大きな文字終わり］",
        "［＃ここから２字下げ］字下げ漢字《かんじ》\n二行目［＃ここで字下げ終わり］",
        "※［＃「てへん＋劣」、U+6318、123-4］",
    ],
)
def test_format_markup_reparses_to_same_tree(markup: str) -> None:
    nodes = _parse_quiet(markup).nodes
    assert _parse_quiet(format_markup(nodes)).nodes == nodes


def test_parse_is_pure() -> None:
    text = "［＃ここから２字下げ］漢字《かんじ》［＃ここで字下げ終わり］"
    assert parse(text) == parse(text)
