from __future__ import annotations

import json
from pathlib import Path

import pytest

from kumihan.book_io import (
    calculate_total_length,
    extract_title,
    generate_thumbnail,
    load_document,
    read_document_json,
    read_markup_file,
    summarize_document,
    write_document_json,
)
from kumihan.nodes import DocumentMetadata, ParsedDocument, Ruby, SpecialCharNote, Text
from kumihan.parser import parse

AOZORA_TEXT = "羅生門\n芥川龍之介\n\n　ある日の暮方《くれがた》の事である。\n\n底本：「芥川龍之介全集（第一巻）」筑摩書房\n"


def test_read_markup_file_detects_shift_jis(tmp_path: Path) -> None:
    path = tmp_path / "rashomon.txt"
    path.write_bytes(AOZORA_TEXT.replace("\n", "\r\n").encode("cp932"))
    text, encoding = read_markup_file(path)
    assert encoding == "cp932"
    assert text == AOZORA_TEXT


def test_read_markup_file_strips_utf8_bom(tmp_path: Path) -> None:
    path = tmp_path / "bom.txt"
    path.write_bytes(b"\xef\xbb\xbf" + "本文".encode("utf-8"))
    assert read_markup_file(path) == ("本文", "utf-8-sig")


def test_load_document_records_encoding_and_title(tmp_path: Path) -> None:
    path = tmp_path / "rashomon.txt"
    path.write_text(AOZORA_TEXT, encoding="utf-8")
    document = load_document(path)
    assert document.metadata.encoding == "utf-8"
    assert extract_title(document) == "芥川龍之介全集"


def test_extract_title_falls_back_to_metadata() -> None:
    document = ParsedDocument(nodes=(Text("本文"),), metadata=DocumentMetadata(title="題名"))
    assert extract_title(document) == "題名"


def test_thumbnail_uses_top_level_text_only() -> None:
    document = parse("あ" * 60 + "漢字《かんじ》" + "い" * 60)
    thumbnail = generate_thumbnail(document)
    assert len(thumbnail) == 100
    assert "漢" not in thumbnail
    assert generate_thumbnail(document, limit=5) == "あああああ"


def test_total_length_counts_ruby_base_and_notes_once() -> None:
    document = ParsedDocument(
        nodes=(
            Ruby(base="団扇", reading="うちわ"),
            Text("を持つ"),
            SpecialCharNote(char="てへん＋劣", description="「てへん＋劣」、U+6318", unicode="U+6318"),
        )
    )
    assert calculate_total_length(document) == 6


def test_document_json_round_trip(tmp_path: Path) -> None:
    document = parse(AOZORA_TEXT, encoding="utf-8")
    path = write_document_json(tmp_path / "out" / "doc.json", document)
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert read_document_json(path) == document


def test_read_document_json_rejects_garbage(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        read_document_json(path)


def test_summarize_document(tmp_path: Path) -> None:
    document = parse(AOZORA_TEXT)
    summary = summarize_document(document, source=tmp_path / "a.txt")
    payload = summary.as_payload()
    assert payload["title"] == "芥川龍之介全集"
    assert payload["total_length"] == len(document.nodes[0].content) + 2 + len(document.nodes[-1].content)
    assert payload["source"].endswith("a.txt")
