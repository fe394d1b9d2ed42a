"""IR → canonical Markdown serializer.

Output is chosen so that parsing it again yields the same IR: text is
escaped wherever a character could start Markdown syntax, adjacent lists
alternate their markers so they stay separate, and list item content is
indented to the item's content column.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from docbridge.ir.models import (
    Block,
    Blockquote,
    BulletList,
    CodeBlock,
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

_ENTITY_RE = re.compile(r"&(?:#[0-9]{1,7}|#[xX][0-9a-fA-F]{1,6}|[A-Za-z][A-Za-z0-9]{0,31});")
_ORDERED_START_RE = re.compile(r"^(\d{1,9})([.)])")
_ALWAYS_ESCAPE = set("\\`*[]~")
_LINE_START_ESCAPE = set("#>+-=")
_DELIMITER_CELL = {None: "---", "left": ":--", "right": "--:", "center": ":-:"}


class _InlineContext:
    __slots__ = ("in_table", "in_heading", "at_line_start")

    def __init__(self, in_table: bool = False, in_heading: bool = False) -> None:
        self.in_table = in_table
        self.in_heading = in_heading
        self.at_line_start = not (in_table or in_heading)


def _escape_text(text: str, ctx: _InlineContext) -> str:
    text = text.replace("\n", " ")
    out: list[str] = []

    if ctx.at_line_start and text:
        match = _ORDERED_START_RE.match(text)
        if match:
            out.append(match.group(1) + "\\" + match.group(2))
            text = text[match.end():]
            ctx.at_line_start = False
        elif text[0] in _LINE_START_ESCAPE:
            out.append("\\" + text[0])
            text = text[1:]
            ctx.at_line_start = False

    for index, char in enumerate(text):
        prev_char = text[index - 1] if index > 0 else ""
        next_char = text[index + 1] if index + 1 < len(text) else ""
        if char in _ALWAYS_ESCAPE:
            out.append("\\" + char)
        elif char == "_" and not (prev_char.isalnum() and next_char.isalnum()):
            out.append("\\_")
        elif char == "!" and not next_char:
            out.append("\\!")
        elif char == "<" and (not next_char or next_char.isalpha() or next_char in "/!?"):
            out.append("\\<")
        elif char == "&" and _ENTITY_RE.match(text, index):
            out.append("\\&")
        elif char == "|" and ctx.in_table:
            out.append("\\|")
        elif char == "#" and ctx.in_heading:
            out.append("\\#")
        else:
            out.append(char)

    if out:
        ctx.at_line_start = False
    return "".join(out)


def _code_span(code: str, in_table: bool = False) -> str:
    code = code.replace("\n", " ")
    runs = re.findall(r"`+", code)
    fence = "`" * (max((len(r) for r in runs), default=0) + 1)
    needs_pad = (
        code.startswith("`")
        or code.endswith("`")
        or (code.startswith(" ") and code.endswith(" ") and code.strip() != "")
    )
    pad = " " if needs_pad else ""
    if in_table:
        # the table splitter turns "\|" back into "|" before inline parsing
        code = code.replace("|", "\\|")
    return f"{fence}{pad}{code}{pad}{fence}"


def _link_target(target: str, title: str | None, in_table: bool = False) -> str:
    if not target or re.search(r"[\s()<>]", target):
        dest = "<" + target.replace("\\", "\\\\").replace("<", "\\<").replace(">", "\\>") + ">"
    else:
        dest = target.replace("\\", "\\\\")
    if title:
        dest += ' "' + title.replace("\\", "\\\\").replace('"', '\\"') + '"'
    if in_table:
        dest = dest.replace("|", "\\|")
    return f"({dest})"


class MarkdownSerializer:
    """Writes a Document as canonical Markdown.

    ``list_indent`` is the number of spaces nested list content is indented
    per level, from 2 to 5; ordered markers wider than that widen their own item.
    ``pad_tables`` pads table columns to equal width for readability.
    """

    def __init__(self, list_indent: int = 2, pad_tables: bool = False) -> None:
        # five or more spaces after a marker would open an indented code block
        self.list_indent = min(max(2, list_indent), 5)
        self.pad_tables = pad_tables

    def serialize(self, document: Document) -> str:
        text = self._blocks(document.blocks)
        return text + "\n" if text else ""

    # -- blocks ------------------------------------------------------------

    def _blocks(self, blocks: Sequence[Block], *, in_item: bool = False) -> str:
        parts: list[str] = []
        prev: Block | None = None
        alternate = False

        for block in blocks:
            # Two lists of the same kind in a row would merge on re-parse
            # unless their markers differ.
            if isinstance(block, (BulletList, OrderedList)) and type(prev) is type(block):
                alternate = not alternate
            else:
                alternate = False

            rendered = self._block(block, alternate=alternate, first_in_item=in_item and not parts)
            if rendered is None:
                continue

            if parts:
                tight = in_item and isinstance(prev, Paragraph) and _interrupts_paragraph(block, rendered)
                parts.append("\n" if tight else "\n\n")
            parts.append(rendered)
            prev = block

        return "".join(parts)

    def _block(self, block: Block, *, alternate: bool = False, first_in_item: bool = False) -> str | None:
        if isinstance(block, Heading):
            ctx = _InlineContext(in_heading=True)
            content = self._inline(block.children, ctx)
            return "#" * block.level + (" " + content if content else "")

        if isinstance(block, Paragraph):
            return self._inline(block.children, _InlineContext()) or None

        if isinstance(block, BulletList):
            return self._list(block.items, ["*" if alternate else "-"] * len(block.items))

        if isinstance(block, OrderedList):
            delim = ")" if alternate else "."
            markers = [f"{block.start + i}{delim}" for i in range(len(block.items))]
            return self._list(block.items, markers)

        if isinstance(block, Blockquote):
            inner = self._blocks(block.blocks)
            if not inner:
                return ">"
            return "\n".join("> " + line if line else ">" for line in inner.split("\n"))

        if isinstance(block, CodeBlock):
            runs = re.findall(r"`+", block.code)
            fence = "`" * max(3, max((len(r) for r in runs), default=0) + 1)
            info = block.language or ""
            if block.code:
                return f"{fence}{info}\n{block.code}\n{fence}"
            return f"{fence}{info}\n{fence}"

        if isinstance(block, Table):
            return self._table(block)

        if isinstance(block, HorizontalRule):
            # "- ---" would itself read as a thematic break.
            return "___" if first_in_item else "---"

        if isinstance(block, Image):
            ctx = _InlineContext()
            ctx.at_line_start = False
            return f"![{_escape_text(block.alt, ctx)}]{_link_target(block.src, block.title)}"

        if isinstance(block, SheetMarker):
            return f"<!-- sheet: {_marker_text(block.name)} -->"

        if isinstance(block, SlideMarker):
            if block.title:
                return f"<!-- slide: {_marker_text(block.title)} -->"
            return "<!-- slide -->"

        return None

    def _list(self, items: Sequence[ListItem], markers: list[str]) -> str:
        rendered: list[str] = []
        for item, marker in zip(items, markers):
            width = max(self.list_indent, len(marker) + 1)
            body = self._blocks(item.blocks, in_item=True)
            if not body:
                rendered.append(marker)
                continue
            lines = body.split("\n")
            head = marker + " " * (width - len(marker)) + lines[0]
            rest = [" " * width + line if line else "" for line in lines[1:]]
            rendered.append("\n".join([head, *rest]))
        return "\n".join(rendered)

    def _table(self, table: Table) -> str | None:
        width = table.width
        if width == 0:
            return None

        text_rows = [
            [self._inline(cell, _InlineContext(in_table=True)) for cell in row[:width]]
            + [""] * max(0, width - len(row))
            for row in table.rows
        ]
        alignments = list(table.alignments[:width]) + [None] * max(0, width - len(table.alignments))
        delimiter = [_DELIMITER_CELL[a] for a in alignments]

        if self.pad_tables:
            widths = [
                max(3, *(len(row[col]) for row in text_rows))
                for col in range(width)
            ]
            text_rows = [[cell.ljust(widths[i]) for i, cell in enumerate(row)] for row in text_rows]
            delimiter = [_pad_delimiter(cell, widths[i]) for i, cell in enumerate(delimiter)]

        lines = [_table_row(text_rows[0]), _table_row(delimiter)]
        lines.extend(_table_row(row) for row in text_rows[1:])
        return "\n".join(lines)

    # -- inline ------------------------------------------------------------

    def _inline(self, spans: Sequence[Span], ctx: _InlineContext, *, strong_char: str | None = None) -> str:
        out: list[str] = []
        last = len(spans) - 1
        for index, span in enumerate(spans):
            if isinstance(span, PlainText):
                out.append(_escape_text(span.text, ctx))
            elif isinstance(span, LineBreak):
                if ctx.in_table or ctx.in_heading or index == 0 or index == last:
                    out.append("<br>")
                    ctx.at_line_start = False
                else:
                    out.append("\\\n")
                    ctx.at_line_start = True
            elif isinstance(span, InlineCode):
                out.append(_code_span(span.code, ctx.in_table))
                ctx.at_line_start = False
            elif isinstance(span, Strong):
                ctx.at_line_start = False
                char = _delimiter_char(spans, index, "".join(out), strong_char)
                out.append(char * 2 + self._inline(span.children, ctx, strong_char=char) + char * 2)
            elif isinstance(span, Emphasis):
                ctx.at_line_start = False
                char = _delimiter_char(spans, index, "".join(out), strong_char)
                out.append(char + self._inline(span.children, ctx) + char)
            elif isinstance(span, Strikethrough):
                ctx.at_line_start = False
                out.append("~~" + self._inline(span.children, ctx) + "~~")
            elif isinstance(span, Link):
                ctx.at_line_start = False
                target = _link_target(span.target, span.title, ctx.in_table)
                out.append("[" + self._inline(span.children, ctx) + "]" + target)
        return "".join(out)


def _delimiter_char(spans: Sequence[Span], index: int, before: str, strong_char: str | None) -> str:
    """Pick ``*`` or ``_`` for the emphasis or strong span at ``index``.

    ``*`` is the default. ``_`` is used where ``*`` would re-parse
    differently: emphasis that is the only content of ``**`` strong text
    ("***a***" reads as emphasis around strong), and a span directly after
    one of its own kind written with ``*`` (the two runs would merge).
    ``_`` cannot open after or close before a letter or digit, so those
    positions keep ``*``.
    """
    span = spans[index]
    wants_underscore = (
        isinstance(span, Emphasis) and strong_char == "*" and len(spans) == 1
    ) or (index > 0 and type(spans[index - 1]) is type(span) and before.endswith("*"))
    if not wants_underscore:
        return "*"
    following = spans[index + 1] if index + 1 < len(spans) else None
    if before[-1:].isalnum() or (isinstance(following, PlainText) and following.text[:1].isalnum()):
        return "*"
    return "_"


def _interrupts_paragraph(block: Block, rendered: str) -> bool:
    """Whether a list written right under a paragraph line starts a list."""
    if not isinstance(block, (BulletList, OrderedList)):
        return False
    if isinstance(block, OrderedList) and block.start != 1:
        return False
    # an empty first item cannot interrupt a paragraph
    return len(rendered.split("\n", 1)[0].split(maxsplit=1)) == 2


def _marker_text(text: str) -> str:
    return text.replace("-->", "").replace("\n", " ").strip()


def _table_row(cells: list[str]) -> str:
    return "| " + " | ".join(cells) + " |"


def _pad_delimiter(cell: str, width: int) -> str:
    left = ":" if cell.startswith(":") else "-"
    right = ":" if cell.endswith(":") else "-"
    return left + "-" * (width - 2) + right


def serialize(document: Document, *, list_indent: int = 2, pad_tables: bool = False) -> str:
    """Serialize an IR Document to Markdown text."""
    return MarkdownSerializer(list_indent=list_indent, pad_tables=pad_tables).serialize(document)
