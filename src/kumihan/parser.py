from __future__ import annotations

import re
import unicodedata
import warnings
from dataclasses import dataclass, field
from typing import Iterable

from .nodes import (
    BlockIndent,
    DocumentMetadata,
    Emphasis,
    EmphasisDots,
    Header,
    Heading,
    Node,
    ParsedDocument,
    Ruby,
    SpecialCharNote,
    Text,
    TextSize,
    extract_text,
)

__all__ = [
    "parse",
    "format_markup",
    "source_title",
    "StrayCloseTagWarning",
    "UnterminatedScopeWarning",
]

PIPE = "｜"
RUBY_OPEN = "《"
RUBY_CLOSE = "》"
TAG_OPEN = "［＃"
TAG_CLOSE = "］"
IDEOGRAPHIC_SPACE = "　"

_HEADING_LEVEL_MAP = {"大": "large", "中": "medium", "小": "small"}
_HEADING_LEVEL_MARKS = {value: key for key, value in _HEADING_LEVEL_MAP.items()}
_TEXT_SIZE_MAP = {"小さ": "small", "大き": "large"}
_TEXT_SIZE_MARKS = {value: key for key, value in _TEXT_SIZE_MAP.items()}
_KANJI_DIGITS = {
    "〇": 0,
    "一": 1,
    "二": 2,
    "三": 3,
    "四": 4,
    "五": 5,
    "六": 6,
    "七": 7,
    "八": 8,
    "九": 9,
}

_NUMBER = r"[0-9０-９〇一二三四五六七八九十]+"
_EMPHASIS_RE = re.compile(r"^「(.+?)」に傍点$")
_INLINE_HEADING_RE = re.compile(r"^「(.+?)」は(大|中|小)見出し$")
_HEADING_OPEN_RE = re.compile(r"^(大|中|小)見出し$")
_HEADING_CLOSE_RE = re.compile(r"^(大|中|小)見出し終わり$")
_INDENT_RE = re.compile(rf"^({_NUMBER})字下げ$")
_BLOCK_INDENT_OPEN_RE = re.compile(rf"^ここから({_NUMBER})字下げ$")
_BLOCK_INDENT_CLOSE = "ここで字下げ終わり"
_TEXT_SIZE_OPEN_RE = re.compile(rf"^(?:({_NUMBER})段階)?(小さ|大き)な文字$")
_TEXT_SIZE_CLOSE_RE = re.compile(r"^(小さ|大き)な文字終わり$")
_QUOTED_NOTE_RE = re.compile(r"^「(.+?)」(.+)$")
_UNICODE_CODE_RE = re.compile(r"U\+([0-9A-Fa-f]{4,6})")
_JIS_CODE_RE = re.compile(r"([0-9]+(?:-[0-9]+)+)$")
_SPECIAL_RE = re.compile(r"[｜《]|［＃")

_SOURCE_TITLE_RE = re.compile(r"底本：「(.+?)」")
_SUBTITLE_RE = re.compile(r"[\(（].+?[\)）]")


class UnterminatedScopeWarning(UserWarning):
    """Emitted when a scoped annotation is still open and gets closed implicitly."""


class StrayCloseTagWarning(UserWarning):
    """Emitted when a closing annotation has no matching opening annotation."""


@dataclass
class _ScopeFrame:
    kind: str
    label: str
    nodes: list[Node] = field(default_factory=list)
    size: str = "small"
    level: int = 1
    indent: int = 0
    heading_level: str = "large"

    def close(self) -> Node:
        if self.kind == "text_size":
            return TextSize(content=tuple(self.nodes), size=self.size, level=self.level)
        if self.kind == "block_indent":
            return BlockIndent(content=tuple(self.nodes), indent=self.indent)
        return Heading(content=extract_text(self.nodes), level=self.heading_level)


@dataclass
class _ParserState:
    text: str
    position: int = 0
    nodes: list[Node] = field(default_factory=list)
    stack: list[_ScopeFrame] = field(default_factory=list)

    def current(self) -> list[Node]:
        return self.stack[-1].nodes if self.stack else self.nodes

    def has_heading_scope(self) -> bool:
        return any(frame.kind == "heading" for frame in self.stack)


def parse(text: str, *, encoding: str | None = None) -> ParsedDocument:
    """
    Parse Aozora Bunko markup into a document tree.

    Malformed or unknown annotations never raise: they are kept as literal
    text. Scopes still open at the end of the input are closed implicitly and
    reported with :class:`UnterminatedScopeWarning`.
    """
    state = _ParserState(text=text)
    while state.position < len(state.text):
        _process_next(state)
    _flush_scopes(state)
    nodes = tuple(state.nodes)
    metadata = DocumentMetadata(title=source_title(nodes), encoding=encoding)
    return ParsedDocument(nodes=nodes, metadata=metadata)


def _process_next(state: _ParserState) -> None:
    text = state.text
    ch = text[state.position]
    if ch == PIPE and _consume_pipe_ruby(state):
        return
    if text.startswith(TAG_OPEN, state.position) and _consume_tag(state):
        return
    if ch == RUBY_OPEN and _consume_implicit_ruby(state):
        return
    _consume_plain(state)


def _consume_plain(state: _ParserState) -> None:
    # Always advance at least one character so a failed annotation becomes literal.
    match = _SPECIAL_RE.search(state.text, state.position + 1)
    end = match.start() if match else len(state.text)
    _emit_text(state, state.text[state.position : end])
    state.position = end


def _find_on_line(text: str, needle: str, start: int) -> int:
    idx = text.find(needle, start)
    if idx == -1:
        return -1
    newline = text.find("\n", start, idx)
    if newline != -1:
        return -1
    return idx


def _consume_pipe_ruby(state: _ParserState) -> bool:
    text = state.text
    start = state.position
    open_idx = _find_on_line(text, RUBY_OPEN, start + 1)
    if open_idx == -1:
        return False
    base = text[start + 1 : open_idx]
    if not base or PIPE in base or TAG_OPEN in base:
        return False
    close_idx = _find_on_line(text, RUBY_CLOSE, open_idx + 1)
    if close_idx == -1:
        return False
    _add_node(state, Ruby(base=base, reading=text[open_idx + 1 : close_idx]))
    state.position = close_idx + 1
    return True


def _consume_implicit_ruby(state: _ParserState) -> bool:
    text = state.text
    open_idx = state.position
    close_idx = _find_on_line(text, RUBY_CLOSE, open_idx + 1)
    if close_idx == -1:
        return False
    target = state.current()
    if not target or not isinstance(target[-1], Text):
        return False
    content = target[-1].content
    run_start = len(content)
    while run_start > 0 and _is_ideograph(content[run_start - 1]):
        run_start -= 1
    if run_start == len(content):
        return False
    head = content[:run_start]
    if head:
        target[-1] = Text(head)
    else:
        target.pop()
    target.append(Ruby(base=content[run_start:], reading=text[open_idx + 1 : close_idx]))
    state.position = close_idx + 1
    return True


def _consume_tag(state: _ParserState) -> bool:
    text = state.text
    start = state.position
    end = _find_on_line(text, TAG_CLOSE, start + len(TAG_OPEN))
    if end == -1:
        return False
    content = text[start + len(TAG_OPEN) : end]
    state.position = end + 1
    if not _apply_tag(state, content):
        _add_node(state, Text(text[start : end + 1]))
    return True


def _apply_tag(state: _ParserState, content: str) -> bool:
    if content == "":
        return True

    match = _EMPHASIS_RE.match(content)
    if match:
        target = match.group(1)
        _replace_trailing(state, target, EmphasisDots(content=target, text=target))
        return True

    match = _INLINE_HEADING_RE.match(content)
    if match:
        target = match.group(1)
        level = _HEADING_LEVEL_MAP[match.group(2)]
        _replace_trailing(state, target, Heading(content=target, level=level))
        return True

    match = _HEADING_OPEN_RE.match(content)
    if match:
        level = _HEADING_LEVEL_MAP[match.group(1)]
        state.stack.append(
            _ScopeFrame(kind="heading", label=f"heading:{level}", heading_level=level)
        )
        return True

    match = _HEADING_CLOSE_RE.match(content)
    if match:
        _close_scope(state, f"heading:{_HEADING_LEVEL_MAP[match.group(1)]}", content)
        return True

    match = _TEXT_SIZE_OPEN_RE.match(content)
    if match:
        level = _parse_japanese_number(match.group(1)) if match.group(1) else 1
        size = _TEXT_SIZE_MAP[match.group(2)]
        state.stack.append(
            _ScopeFrame(kind="text_size", label=f"text_size:{size}", size=size, level=max(1, level))
        )
        return True

    match = _TEXT_SIZE_CLOSE_RE.match(content)
    if match:
        _close_scope(state, f"text_size:{_TEXT_SIZE_MAP[match.group(1)]}", content)
        return True

    match = _BLOCK_INDENT_OPEN_RE.match(content)
    if match:
        indent = _parse_japanese_number(match.group(1))
        state.stack.append(_ScopeFrame(kind="block_indent", label="block_indent", indent=indent))
        return True

    if content == _BLOCK_INDENT_CLOSE:
        _close_scope(state, "block_indent", content)
        return True

    match = _INDENT_RE.match(content)
    if match:
        count = _parse_japanese_number(match.group(1))
        if count > 0:
            _add_node(state, Text(IDEOGRAPHIC_SPACE * count))
        return True

    note = _special_char_note(content)
    if note is not None:
        _add_node(state, note)
        return True

    return False


def _special_char_note(content: str) -> SpecialCharNote | None:
    match = _QUOTED_NOTE_RE.match(content)
    if not match:
        return None
    char, rest = match.group(1), match.group(2)
    code_match = _UNICODE_CODE_RE.search(rest)
    if code_match:
        return SpecialCharNote(char=char, description=content, unicode=f"U+{code_match.group(1).upper()}")
    code_match = _JIS_CODE_RE.search(rest)
    if code_match:
        return SpecialCharNote(char=char, description=content, unicode=code_match.group(1))
    return None


def _replace_trailing(state: _ParserState, target: str, node: Node) -> None:
    nodes = state.current()
    if nodes and isinstance(nodes[-1], Text):
        content = nodes[-1].content
        idx = content.rfind(target)
        if idx != -1:
            before = content[:idx]
            after = content[idx + len(target) :]
            nodes.pop()
            if before:
                nodes.append(Text(before))
            nodes.append(node)
            if after:
                _emit_text(state, after)
            return
    _add_node(state, node)


def _emit_text(state: _ParserState, chunk: str) -> None:
    while chunk:
        if "\n" in chunk and state.has_heading_scope():
            # Heading annotations never span lines.
            head, _, rest = chunk.partition("\n")
            if head:
                _add_node(state, Text(head))
            _close_line_headings(state)
            chunk = "\n" + rest
            continue
        _add_node(state, Text(chunk))
        return


def _add_node(state: _ParserState, node: Node) -> None:
    target = state.current()
    if isinstance(node, Text):
        if not node.content:
            return
        if target and isinstance(target[-1], Text):
            target[-1] = Text(target[-1].content + node.content)
            return
    target.append(node)


def _close_scope(state: _ParserState, label: str, tag: str) -> None:
    depth = None
    for idx in range(len(state.stack) - 1, -1, -1):
        if state.stack[idx].label == label:
            depth = idx
            break
    if depth is None:
        warnings.warn(
            f"Closing annotation ［＃{tag}］ has no matching opening annotation; ignored.",
            StrayCloseTagWarning,
            stacklevel=2,
        )
        return
    while len(state.stack) > depth:
        frame = state.stack.pop()
        if len(state.stack) > depth:
            warnings.warn(
                f"Scope {frame.label} closed implicitly by ［＃{tag}］.",
                UnterminatedScopeWarning,
                stacklevel=2,
            )
        _add_node(state, frame.close())


def _close_line_headings(state: _ParserState) -> None:
    depth = next(idx for idx, frame in enumerate(state.stack) if frame.kind == "heading")
    while len(state.stack) > depth:
        frame = state.stack.pop()
        warnings.warn(
            f"Scope {frame.label} closed implicitly at end of line.",
            UnterminatedScopeWarning,
            stacklevel=2,
        )
        _add_node(state, frame.close())


def _flush_scopes(state: _ParserState) -> None:
    while state.stack:
        frame = state.stack.pop()
        warnings.warn(
            f"Scope {frame.label} was never closed; flushed at end of input.",
            UnterminatedScopeWarning,
            stacklevel=3,
        )
        _add_node(state, frame.close())


def _parse_japanese_number(raw: str) -> int:
    normalized = unicodedata.normalize("NFKC", raw)
    if normalized.isdigit():
        return int(normalized)
    if "十" in normalized:
        tens, _, ones = normalized.partition("十")
        tens_value = _kanji_value(tens) if tens else 1
        ones_value = _kanji_value(ones) if ones else 0
        return tens_value * 10 + ones_value
    return _kanji_value(normalized)


def _kanji_value(raw: str) -> int:
    value = 0
    for ch in raw:
        if ch.isdigit():
            value = value * 10 + int(ch)
        else:
            value = value * 10 + _KANJI_DIGITS.get(ch, 0)
    return value


def _is_ideograph(ch: str) -> bool:
    if not ch:
        return False
    code = ord(ch)
    return (
        0x4E00 <= code <= 0x9FFF
        or 0x3400 <= code <= 0x4DBF
        or 0x20000 <= code <= 0x2A6DF
        or 0x2A700 <= code <= 0x2EBEF
        or 0x30000 <= code <= 0x3134F
        or 0xF900 <= code <= 0xFAFF
        or 0x2F800 <= code <= 0x2FA1F
        or ch in "々〆ヵヶ〇"
    )


def source_title(nodes: Iterable[Node]) -> str | None:
    """Title taken from the last ``底本：「…」`` line, without parenthesized subtitles."""
    for node in reversed(list(nodes)):
        if not isinstance(node, Text):
            continue
        for candidate in reversed(_SOURCE_TITLE_RE.findall(node.content)):
            title = _SUBTITLE_RE.sub("", candidate).strip()
            if title:
                return title
    return None


def _full_width_number(value: int) -> str:
    return str(value).translate(str.maketrans("0123456789", "０１２３４５６７８９"))


def format_markup(nodes: Iterable[Node]) -> str:
    """Render nodes back into Aozora markup that parses to the same tree."""
    out: list[str] = []
    _format_into(out, nodes)
    return "".join(out)


def _format_into(out: list[str], nodes: Iterable[Node]) -> None:
    for node in nodes:
        if isinstance(node, Text):
            out.append(node.content)
        elif isinstance(node, Ruby):
            previous = out[-1][-1:] if out and out[-1] else ""
            implicit = node.base and all(_is_ideograph(ch) for ch in node.base)
            if implicit and not _is_ideograph(previous):
                out.append(f"{node.base}{RUBY_OPEN}{node.reading}{RUBY_CLOSE}")
            else:
                out.append(f"{PIPE}{node.base}{RUBY_OPEN}{node.reading}{RUBY_CLOSE}")
        elif isinstance(node, EmphasisDots):
            out.append(f"{node.text}{TAG_OPEN}「{node.text}」に傍点{TAG_CLOSE}")
        elif isinstance(node, Heading):
            mark = _HEADING_LEVEL_MARKS.get(node.level, "大")
            out.append(f"{node.content}{TAG_OPEN}「{node.content}」は{mark}見出し{TAG_CLOSE}")
        elif isinstance(node, (Emphasis, Header)):
            out.append(node.content)
        elif isinstance(node, TextSize):
            mark = _TEXT_SIZE_MARKS.get(node.size, "小さ")
            out.append(f"{TAG_OPEN}{_full_width_number(node.level)}段階{mark}な文字{TAG_CLOSE}")
            _format_into(out, node.content)
            out.append(f"{TAG_OPEN}{mark}な文字終わり{TAG_CLOSE}")
        elif isinstance(node, BlockIndent):
            out.append(f"{TAG_OPEN}ここから{_full_width_number(node.indent)}字下げ{TAG_CLOSE}")
            _format_into(out, node.content)
            out.append(f"{TAG_OPEN}{_BLOCK_INDENT_CLOSE}{TAG_CLOSE}")
        elif isinstance(node, SpecialCharNote):
            out.append(f"{TAG_OPEN}{node.description}{TAG_CLOSE}")
