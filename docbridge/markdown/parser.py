"""Markdown → IR parser built on markdown-it-py.

markdown-it does the block and inline scanning (CommonMark plus GFM tables
and strikethrough); this module folds its flat token stream into the IR
tree. Parsing never fails: unmatched delimiters come back as literal text
and unterminated fences are closed at end of input.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from markdown_it import MarkdownIt

from docbridge.ir.models import (
    Block,
    Blockquote,
    BulletList,
    CodeBlock,
    ConversionWarning,
    Document,
    Emphasis,
    Heading,
    HorizontalRule,
    Image,
    InlineCode,
    LineBreak,
    Link,
    ListItem,
    OrderedList,
    Paragraph,
    PlainText,
    SheetMarker,
    SlideMarker,
    Span,
    Strikethrough,
    Strong,
    Table,
)
from docbridge.ir.repair import plain_text, rectangularize

if TYPE_CHECKING:
    from markdown_it.token import Token

logger = logging.getLogger(__name__)

MARKER_RE = re.compile(r"^<!--\s*(?P<kind>sheet|slide)\s*(?::\s*(?P<name>.*?))?\s*-->\s*$", re.DOTALL)
_BR_RE = re.compile(r"^<br\s*/?>$", re.IGNORECASE)
_QUOTE_PREFIX_RE = re.compile(r"^[\s>]*")
_UNESCAPED_PIPE_RE = re.compile(r"(?<!\\)\|")
_ALIGN_RE = re.compile(r"text-align:\s*(left|center|right)")

_CONTAINERS: dict[str, type] = {
    "em_open": Emphasis,
    "strong_open": Strong,
    "s_open": Strikethrough,
}


def create_markdown_it() -> MarkdownIt:
    """CommonMark with GFM tables and strikethrough enabled."""
    return MarkdownIt("commonmark").enable("table").enable("strikethrough")


def _count_raw_cells(line: str) -> int:
    row = _QUOTE_PREFIX_RE.sub("", line).strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|") and not row.endswith("\\|"):
        row = row[:-1]
    return len(_UNESCAPED_PIPE_RE.split(row))


class _TokenReader:
    """Walks one token stream. Created per parse call."""

    def __init__(self, tokens: list[Token], lines: list[str]) -> None:
        self.tokens = tokens
        self.lines = lines
        self.pos = 0
        self.warnings: list[ConversionWarning] = []

    # -- blocks ------------------------------------------------------------

    def blocks(self, until: str | None = None) -> list[Block]:
        out: list[Block] = []
        while self.pos < len(self.tokens):
            tok = self.tokens[self.pos]
            if until is not None and tok.type == until:
                self.pos += 1
                return out
            block = self._block(tok)
            if block is not None:
                out.append(block)
        return out

    def _block(self, tok: Token) -> Block | None:
        kind = tok.type

        if kind == "heading_open":
            spans = self._inline_token(self.tokens[self.pos + 1])
            self.pos += 3
            return Heading(level=int(tok.tag[1]), children=spans)

        if kind == "paragraph_open":
            inline = self.tokens[self.pos + 1]
            self.pos += 3
            image = self._lone_image(inline)
            if image is not None:
                return image
            spans = self._inline_token(inline)
            return Paragraph(children=spans) if spans else None

        if kind == "bullet_list_open":
            self.pos += 1
            return BulletList(items=self._items("bullet_list_close"))

        if kind == "ordered_list_open":
            start = tok.attrGet("start")
            self.pos += 1
            items = self._items("ordered_list_close")
            return OrderedList(items=items, start=int(start) if start is not None else 1)

        if kind == "blockquote_open":
            self.pos += 1
            return Blockquote(blocks=self.blocks("blockquote_close"))

        if kind in ("fence", "code_block"):
            self.pos += 1
            info = tok.info.strip() if kind == "fence" else ""
            language = info.split()[0] if info else None
            code = tok.content[:-1] if tok.content.endswith("\n") else tok.content
            return CodeBlock(code=code, language=language)

        if kind == "hr":
            self.pos += 1
            return HorizontalRule()

        if kind == "html_block":
            self.pos += 1
            return self._html_block(tok.content)

        if kind == "table_open":
            return self._table(tok)

        # Closing tokens of unknown containers and anything unsupported.
        self.pos += 1
        return None

    def _items(self, close: str) -> list[ListItem]:
        items: list[ListItem] = []
        while self.pos < len(self.tokens):
            tok = self.tokens[self.pos]
            self.pos += 1
            if tok.type == close:
                break
            if tok.type == "list_item_open":
                items.append(ListItem(blocks=self.blocks("list_item_close")))
        return items

    def _html_block(self, content: str) -> Block:
        match = MARKER_RE.match(content.strip())
        if match:
            name = (match.group("name") or "").strip()
            if match.group("kind") == "sheet":
                return SheetMarker(name=name)
            return SlideMarker(title=name)
        return CodeBlock(code=content.rstrip("\n"), language="html")

    def _table(self, open_tok: Token) -> Table:
        rows: list[list[list[Span]]] = []
        alignments: list = []
        row: list[list[Span]] | None = None
        self.pos += 1

        while self.pos < len(self.tokens):
            tok = self.tokens[self.pos]
            self.pos += 1
            if tok.type == "table_close":
                break
            if tok.type == "tr_open":
                row = []
            elif tok.type == "tr_close" and row is not None:
                rows.append(row)
                row = None
            elif tok.type in ("th_open", "td_open"):
                if tok.type == "th_open":
                    match = _ALIGN_RE.search(tok.attrGet("style") or "")
                    alignments.append(match.group(1) if match else None)
                inline = self.tokens[self.pos]
                if inline.type == "inline":
                    self.pos += 1
                    cell = self._inline_token(inline)
                else:
                    cell = []
                if row is not None:
                    row.append(cell)

        self.warnings.extend(self._shape_warnings(open_tok, len(alignments)))
        rows, _ = rectangularize(rows, len(alignments))
        return Table(rows=rows, alignments=alignments)

    def _shape_warnings(self, open_tok: Token, width: int) -> list[ConversionWarning]:
        # markdown-it already pads and truncates rows; the source lines tell
        # us whether it had to.
        if not open_tok.map or width == 0:
            return []
        start, end = open_tok.map
        raw = self.lines[start:end]
        if len(raw) < 2:
            return []
        counts = [_count_raw_cells(raw[0]), *(_count_raw_cells(line) for line in raw[2:] if line.strip())]
        _, warnings = rectangularize([[[] for _ in range(n)] for n in counts], width)
        return warnings

    # -- inline ------------------------------------------------------------

    def _lone_image(self, inline: Token) -> Image | None:
        children = inline.children or []
        if len(children) != 1 or children[0].type != "image":
            return None
        image = children[0]
        return Image(
            src=image.attrGet("src") or "",
            alt=plain_text(self._inline(image.children or [])),
            title=image.attrGet("title") or None,
        )

    def _inline_token(self, inline: Token) -> list[Span]:
        return self._inline(inline.children or [])

    def _inline(self, children: list[Token]) -> list[Span]:
        # Stack of (open token type, collected spans, open token).
        stack: list[tuple[str, list[Span], Token | None]] = [("root", [], None)]

        for tok in children:
            current = stack[-1][1]
            kind = tok.type

            if kind in ("text", "text_special"):
                current.append(PlainText(text=tok.content))
            elif kind == "softbreak":
                current.append(PlainText(text=" "))
            elif kind == "hardbreak":
                current.append(LineBreak())
            elif kind == "code_inline":
                current.append(InlineCode(code=tok.content))
            elif kind in _CONTAINERS or kind == "link_open":
                stack.append((kind, [], tok))
            elif kind in ("em_close", "strong_close", "s_close", "link_close") and len(stack) > 1:
                open_kind, spans, open_tok = stack.pop()
                stack[-1][1].append(self._close(open_kind, spans, open_tok))
            elif kind == "image":
                alt = self._inline(tok.children or [])
                if any(entry[0] == "link_open" for entry in stack):
                    current.extend(alt)
                else:
                    current.append(Link(children=alt, target=tok.attrGet("src") or ""))
            elif kind == "html_inline":
                if _BR_RE.match(tok.content.strip()):
                    current.append(LineBreak())
                else:
                    current.append(PlainText(text=tok.content))
            elif tok.content:
                current.append(PlainText(text=tok.content))

        # Unbalanced open tokens should not happen; flatten them if they do.
        while len(stack) > 1:
            _, spans, _ = stack.pop()
            stack[-1][1].extend(spans)

        return _join_text(stack[0][1])

    @staticmethod
    def _close(open_kind: str, spans: list[Span], open_tok: Token | None) -> Span:
        spans = _join_text(spans)
        if open_kind == "link_open" and open_tok is not None:
            return Link(
                children=spans,
                target=open_tok.attrGet("href") or "",
                title=open_tok.attrGet("title") or None,
            )
        return _CONTAINERS[open_kind](children=spans)


def _join_text(spans: list[Span]) -> list[Span]:
    out: list[Span] = []
    for span in spans:
        if isinstance(span, PlainText):
            if not span.text:
                continue
            if out and isinstance(out[-1], PlainText):
                out[-1] = PlainText(text=out[-1].text + span.text)
                continue
        out.append(span)
    return out


class MarkdownParser:
    """Parses Markdown text into a Document."""

    def __init__(self) -> None:
        self._md = create_markdown_it()

    def parse(self, text: str) -> tuple[Document, list[ConversionWarning]]:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        reader = _TokenReader(self._md.parse(text), text.split("\n"))
        document = Document(blocks=reader.blocks())
        logger.debug(
            "parsed markdown: %d block(s), %d warning(s)",
            len(document.blocks), len(reader.warnings),
        )
        return document, reader.warnings


def parse_with_warnings(text: str) -> tuple[Document, list[ConversionWarning]]:
    return MarkdownParser().parse(text)


def parse(text: str) -> Document:
    """Parse Markdown text into an IR Document."""
    document, _ = parse_with_warnings(text)
    return document
