from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from .nodes import (
    ParsedDocument,
    Text,
    document_from_payload,
    document_to_payload,
    extract_text,
)
from .parser import parse, source_title

__all__ = [
    "DocumentSummary",
    "DOCUMENT_FORMAT_VERSION",
    "calculate_total_length",
    "extract_author",
    "extract_title",
    "generate_thumbnail",
    "load_document",
    "read_document_json",
    "read_markup_file",
    "summarize_document",
    "write_document_json",
]

# Aozora Bunko distributes Shift_JIS; volunteer transcriptions vary.
_ENCODINGS = ("utf-8", "utf-8-sig", "cp932", "shift_jis", "euc_jp", "utf-16")
THUMBNAIL_LENGTH = 100
DOCUMENT_FORMAT_VERSION = 1


def _decode_markup(raw: bytes) -> tuple[str, str]:
    if raw.startswith(b"\xef\xbb\xbf"):
        return raw[3:].decode("utf-8"), "utf-8-sig"
    for enc in _ENCODINGS:
        try:
            return raw.decode(enc), enc
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="replace"), "utf-8"


def read_markup_file(path: Path) -> tuple[str, str]:
    """Read a markup file, returning its text with ``\\n`` newlines and the encoding used."""
    text, encoding = _decode_markup(Path(path).read_bytes())
    return text.replace("\r\n", "\n").replace("\r", "\n"), encoding


def load_document(path: Path) -> ParsedDocument:
    text, encoding = read_markup_file(path)
    return parse(text, encoding=encoding)


def extract_title(document: ParsedDocument) -> str | None:
    return source_title(document.nodes) or document.metadata.title


def extract_author(document: ParsedDocument) -> str | None:
    return document.metadata.author


def generate_thumbnail(document: ParsedDocument, limit: int = THUMBNAIL_LENGTH) -> str:
    """First ``limit`` characters of the document's top-level plain text."""
    chunks: list[str] = []
    length = 0
    for node in document.nodes:
        if not isinstance(node, Text):
            continue
        chunks.append(node.content)
        length += len(node.content)
        if length > limit:
            break
    return "".join(chunks)[:limit]


def calculate_total_length(document: ParsedDocument) -> int:
    return len(extract_text(document.nodes))


@dataclass
class DocumentSummary:
    title: str | None
    author: str | None
    encoding: str | None
    total_length: int
    thumbnail: str
    source: Path | None = None

    def as_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "total_length": self.total_length,
            "thumbnail": self.thumbnail,
        }
        if self.title is not None:
            payload["title"] = self.title
        if self.author is not None:
            payload["author"] = self.author
        if self.encoding is not None:
            payload["encoding"] = self.encoding
        if self.source is not None:
            payload["source"] = self.source.as_posix()
        return payload


def summarize_document(document: ParsedDocument, source: Path | None = None) -> DocumentSummary:
    return DocumentSummary(
        title=extract_title(document),
        author=extract_author(document),
        encoding=document.metadata.encoding,
        total_length=calculate_total_length(document),
        thumbnail=generate_thumbnail(document),
        source=source,
    )


def write_document_json(path: Path, document: ParsedDocument) -> Path:
    path = Path(path)
    payload = {"version": DOCUMENT_FORMAT_VERSION, **document_to_payload(document)}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return path


def read_document_json(path: Path) -> ParsedDocument:
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Failed to read document file: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"{path.name} must contain a JSON object.")
    return document_from_payload(payload)
