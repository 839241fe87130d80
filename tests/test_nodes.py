from __future__ import annotations

import json

from kumihan.nodes import (
    BlockIndent,
    DocumentMetadata,
    EmphasisDots,
    Header,
    Heading,
    ParsedDocument,
    Ruby,
    SpecialCharNote,
    Text,
    TextSize,
    deserialize_nodes,
    document_from_payload,
    document_to_payload,
    extract_text,
    is_heading_node,
    is_structured_node,
    serialize_nodes,
)


def test_extract_text_walks_containers_depth_first() -> None:
    nodes = [
        Text("前"),
        TextSize(content=(Ruby(base="漢字", reading="かんじ"), BlockIndent(content=(Text("内"),), indent=1))),
        EmphasisDots(content="点", text="点"),
    ]
    assert extract_text(nodes) == "前漢字内点"


def test_special_char_glyph_rules() -> None:
    assert SpecialCharNote(char="x", description="d", unicode="U+4E00").glyph == "一"
    assert SpecialCharNote(char="鷗", description="d").glyph == "鷗"
    assert SpecialCharNote(char="てへん＋劣", description="d", unicode="1-15-65").glyph == "〓"


def test_heading_detection_covers_legacy_header() -> None:
    assert is_heading_node(Heading(content="章"))
    assert is_heading_node(Header(content="章", level=2))
    assert not is_heading_node(Text("章"))


def test_serialization_uses_tagged_shape() -> None:
    payload = serialize_nodes([Ruby(base="団扇", reading="うちわ")])
    assert payload == [{"type": "ruby", "base": "団扇", "reading": "うちわ"}]


def test_deserialize_skips_malformed_entries() -> None:
    raw = [
        {"type": "text", "content": "ok"},
        {"type": "text"},
        {"type": "mystery", "content": "x"},
        "not a dict",
        {"type": "heading", "content": "章", "level": "huge"},
    ]
    assert deserialize_nodes(raw) == [Text("ok"), Heading(content="章", level="large")]


def test_document_payload_round_trip_through_json() -> None:
    document = ParsedDocument(
        nodes=(
            Text("本文"),
            TextSize(content=(Ruby(base="漢", reading="かん"),), size="large", level=2),
            SpecialCharNote(char="てへん＋劣", description="「てへん＋劣」、U+6318", unicode="U+6318"),
        ),
        metadata=DocumentMetadata(title="題", encoding="utf-8"),
    )
    encoded = json.dumps(document_to_payload(document), ensure_ascii=False)
    assert document_from_payload(json.loads(encoded)) == document


def test_structured_nodes_exclude_text_and_containers() -> None:
    assert is_structured_node(Ruby(base="漢字", reading="かんじ"))
    assert is_structured_node(Heading(content="章"))
    assert not is_structured_node(Text("本文"))
    assert not is_structured_node(TextSize(content=(Text("小"),), size="small"))
    assert not is_structured_node(BlockIndent(content=(Text("内"),), indent=1))
