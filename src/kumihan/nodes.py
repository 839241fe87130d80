from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Union

__all__ = [
    "Text",
    "Ruby",
    "EmphasisDots",
    "Emphasis",
    "Header",
    "Heading",
    "TextSize",
    "BlockIndent",
    "SpecialCharNote",
    "Node",
    "DocumentMetadata",
    "ParsedDocument",
    "HEADING_LEVELS",
    "GETA_MARK",
    "extract_text",
    "is_heading_node",
    "is_structured_node",
    "serialize_nodes",
    "deserialize_nodes",
    "document_to_payload",
    "document_from_payload",
]

HEADING_LEVELS = ("large", "medium", "small")
TEXT_SIZES = ("small", "large")
GETA_MARK = "〓"


@dataclass(frozen=True)
class Text:
    content: str
    type: str = field(default="text", init=False, repr=False)


@dataclass(frozen=True)
class Ruby:
    """A base run annotated with its phonetic reading (furigana)."""

    base: str
    reading: str
    type: str = field(default="ruby", init=False, repr=False)


@dataclass(frozen=True)
class EmphasisDots:
    content: str
    text: str
    type: str = field(default="emphasis_dots", init=False, repr=False)


@dataclass(frozen=True)
class Emphasis:
    content: str
    level: int = 1
    type: str = field(default="emphasis", init=False, repr=False)


@dataclass(frozen=True)
class Header:
    content: str
    level: int = 1
    type: str = field(default="header", init=False, repr=False)


@dataclass(frozen=True)
class Heading:
    content: str
    level: str = "large"
    type: str = field(default="heading", init=False, repr=False)


@dataclass(frozen=True)
class TextSize:
    content: tuple["Node", ...] = ()
    size: str = "small"
    level: int = 1
    type: str = field(default="text_size", init=False, repr=False)


@dataclass(frozen=True)
class BlockIndent:
    content: tuple["Node", ...] = ()
    indent: int = 0
    type: str = field(default="block_indent", init=False, repr=False)


@dataclass(frozen=True)
class SpecialCharNote:
    """
    Annotation for a glyph that cannot be typed directly.

    ``char`` is the quoted description from the note (``てへん＋劣``), and
    ``unicode`` holds either a ``U+XXXX`` code point or a JIS 面-区-点 code.
    The note always occupies exactly one character slot; :attr:`glyph` is the
    character that stands for it.
    """

    char: str
    description: str
    unicode: str | None = None
    type: str = field(default="special_char_note", init=False, repr=False)

    @property
    def glyph(self) -> str:
        code = self.unicode or ""
        if code.upper().startswith("U+"):
            try:
                return chr(int(code[2:], 16))
            except (ValueError, OverflowError):
                pass
        if len(self.char) == 1:
            return self.char
        return GETA_MARK


Node = Union[
    Text,
    Ruby,
    EmphasisDots,
    Emphasis,
    Header,
    Heading,
    TextSize,
    BlockIndent,
    SpecialCharNote,
]
NODE_CLASSES = (
    Text,
    Ruby,
    EmphasisDots,
    Emphasis,
    Header,
    Heading,
    TextSize,
    BlockIndent,
    SpecialCharNote,
)


@dataclass(frozen=True)
class DocumentMetadata:
    title: str | None = None
    author: str | None = None
    encoding: str | None = None


@dataclass(frozen=True)
class ParsedDocument:
    nodes: tuple[Node, ...] = ()
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)


def extract_text(value: Node | Iterable[Node]) -> str:
    """Return the visible text of a node or node sequence (ruby counts its base only)."""
    if isinstance(value, NODE_CLASSES):
        return _node_text(value)
    return "".join(_node_text(node) for node in value)


def _node_text(node: Node) -> str:
    if isinstance(node, Text):
        return node.content
    if isinstance(node, Ruby):
        return node.base
    if isinstance(node, EmphasisDots):
        return node.text
    if isinstance(node, (Heading, Header, Emphasis)):
        return node.content
    if isinstance(node, (TextSize, BlockIndent)):
        return "".join(_node_text(child) for child in node.content)
    if isinstance(node, SpecialCharNote):
        return node.glyph
    return ""


def is_heading_node(node: Node) -> bool:
    return isinstance(node, (Heading, Header))


def is_structured_node(node: Node) -> bool:
    """
    True for atomic annotated nodes such as ruby, emphasis or headings.

    Plain text and the TextSize/BlockIndent containers are not structured;
    line breaks avoid landing inside structured nodes wider than one glyph.
    """
    return not isinstance(node, (Text, TextSize, BlockIndent))


def serialize_nodes(nodes: Iterable[Node]) -> list[dict[str, object]]:
    return [_serialize_node(node) for node in nodes]


def _serialize_node(node: Node) -> dict[str, object]:
    if isinstance(node, Text):
        return {"type": node.type, "content": node.content}
    if isinstance(node, Ruby):
        return {"type": node.type, "base": node.base, "reading": node.reading}
    if isinstance(node, EmphasisDots):
        return {"type": node.type, "content": node.content, "text": node.text}
    if isinstance(node, (Emphasis, Header, Heading)):
        return {"type": node.type, "content": node.content, "level": node.level}
    if isinstance(node, TextSize):
        return {
            "type": node.type,
            "content": serialize_nodes(node.content),
            "size": node.size,
            "level": node.level,
        }
    if isinstance(node, BlockIndent):
        return {
            "type": node.type,
            "content": serialize_nodes(node.content),
            "indent": node.indent,
        }
    if isinstance(node, SpecialCharNote):
        entry: dict[str, object] = {
            "type": node.type,
            "char": node.char,
            "description": node.description,
        }
        if node.unicode is not None:
            entry["unicode"] = node.unicode
        return entry
    raise TypeError(f"Unsupported node type: {type(node).__name__}")


def deserialize_nodes(data: Iterable[Mapping[str, object]]) -> list[Node]:
    nodes: list[Node] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        node = _deserialize_node(entry)
        if node is not None:
            nodes.append(node)
    return nodes


def _str_field(entry: Mapping[str, object], key: str) -> str | None:
    value = entry.get(key)
    return value if isinstance(value, str) else None


def _children(entry: Mapping[str, object]) -> tuple[Node, ...]:
    raw = entry.get("content")
    if not isinstance(raw, list):
        return ()
    return tuple(deserialize_nodes(raw))


def _deserialize_node(entry: Mapping[str, object]) -> Node | None:
    kind = entry.get("type")
    if kind == "text":
        content = _str_field(entry, "content")
        return Text(content) if content is not None else None
    if kind == "ruby":
        base = _str_field(entry, "base")
        reading = _str_field(entry, "reading")
        if base is None:
            return None
        return Ruby(base=base, reading=reading or "")
    if kind == "emphasis_dots":
        text = _str_field(entry, "text")
        content = _str_field(entry, "content")
        if text is None and content is None:
            return None
        return EmphasisDots(content=content or text or "", text=text or content or "")
    if kind in {"emphasis", "header"}:
        content = _str_field(entry, "content")
        if content is None:
            return None
        level_val = entry.get("level")
        level = level_val if isinstance(level_val, int) else 1
        if kind == "emphasis":
            return Emphasis(content=content, level=level)
        return Header(content=content, level=level)
    if kind == "heading":
        content = _str_field(entry, "content")
        if content is None:
            return None
        level = _str_field(entry, "level")
        if level not in HEADING_LEVELS:
            level = "large"
        return Heading(content=content, level=level)
    if kind == "text_size":
        size = _str_field(entry, "size")
        if size not in TEXT_SIZES:
            size = "small"
        level_val = entry.get("level")
        level = level_val if isinstance(level_val, int) and level_val > 0 else 1
        return TextSize(content=_children(entry), size=size, level=level)
    if kind == "block_indent":
        indent_val = entry.get("indent")
        indent = indent_val if isinstance(indent_val, int) else 0
        return BlockIndent(content=_children(entry), indent=indent)
    if kind == "special_char_note":
        char = _str_field(entry, "char")
        if char is None:
            return None
        description = _str_field(entry, "description") or char
        return SpecialCharNote(char=char, description=description, unicode=_str_field(entry, "unicode"))
    return None


def document_to_payload(document: ParsedDocument) -> dict[str, object]:
    metadata = document.metadata
    return {
        "nodes": serialize_nodes(document.nodes),
        "metadata": {
            key: value
            for key, value in (
                ("title", metadata.title),
                ("author", metadata.author),
                ("encoding", metadata.encoding),
            )
            if value is not None
        },
    }


def document_from_payload(payload: Mapping[str, object]) -> ParsedDocument:
    raw_nodes = payload.get("nodes")
    nodes = deserialize_nodes(raw_nodes) if isinstance(raw_nodes, list) else []
    raw_meta = payload.get("metadata")
    meta = raw_meta if isinstance(raw_meta, Mapping) else {}
    return ParsedDocument(
        nodes=tuple(nodes),
        metadata=DocumentMetadata(
            title=_str_field(meta, "title"),
            author=_str_field(meta, "author"),
            encoding=_str_field(meta, "encoding"),
        ),
    )
