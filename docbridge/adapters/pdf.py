"""Fixed-layout adapter (PyMuPDF).

PDF carries no structure, only positioned glyphs. Import recovers blocks
heuristically from font sizes, glyph flags and geometry; export does its
own word wrapping and pagination and draws everything with Base-14 fonts
unless ``pdf.font_file`` names a TrueType font for body text.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

import pymupdf

from docbridge.adapters.base import AdapterOutput, FormatAdapter, is_monospace_font
from docbridge.adapters.images import ImageSink, load_image, unresolved
from docbridge.errors import SourceUnreadable, UnsupportedVariant
from docbridge.ir import (
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
    OrderedList,
    Paragraph,
    PlainText,
    SheetMarker,
    SlideMarker,
    Span,
    Strikethrough,
    Strong,
    StyleContext,
    Table,
    nest_list_items,
    normalize_spans,
    plain_text,
    rectangularize,
    styled,
    text_spans,
)

logger = logging.getLogger(__name__)

PAGE_SIZES = {"a4": (595.0, 842.0), "letter": (612.0, 792.0)}
LINE_SPACING = 1.4
LIST_INDENT = 18.0
CELL_PADDING = 4.0
CODE_PADDING = 4.0
MONO_ADVANCE = 0.6  # Courier glyph width as a fraction of the font size
CUSTOM_FONT = "docbridge"

BLACK = (0, 0, 0)
GREY = (0.6, 0.6, 0.6)
LINK_BLUE = (0.02, 0.39, 0.76)
CODE_FILL = (0.95, 0.95, 0.95)

_FLAG_ITALIC = 2
_FLAG_MONO = 8
_FLAG_BOLD = 16

_MARKER_RE = re.compile(r"^(?:[•◦▪‣·]\s*|[–*-]\s+|(?P<number>\d{1,9})[.)]\s+)")
_MARKER_ONLY_RE = re.compile(r"^(?:[•◦▪‣·–*-]|\d{1,9}[.)])$")
_WS_RE = re.compile(r"(\s+)")

_HELVETICA = ("helv", "hebo", "heit", "hebi")
_COURIER = ("cour", "cobo", "coit", "cobi")

# MuPDF keeps global state; one document operation at a time per process.
_MUPDF_LOCK = threading.RLock()


def open_pdf(path: Path) -> pymupdf.Document:
    try:
        document = pymupdf.open(str(path))
    except (RuntimeError, ValueError) as exc:
        raise SourceUnreadable(f"corrupt or unreadable PDF: {exc}", path=path) from exc
    if not document.is_pdf:
        document.close()
        raise UnsupportedVariant("not a PDF document", path=path)
    if document.needs_pass:
        document.close()
        raise UnsupportedVariant("encrypted PDF", path=path)
    if document.page_count == 0:
        document.close()
        raise SourceUnreadable("PDF has no pages", path=path)
    return document


# ── Import ──────────────────────────────────────────────────────────


@dataclass
class _Line:
    page: int
    bbox: tuple[float, float, float, float]
    size: float
    text: str
    spans: list[Span]
    mono: bool
    region: tuple[float, float, float, float] | None = None

    @property
    def x(self) -> float:
        return self.bbox[0]

    @property
    def y(self) -> float:
        return self.bbox[1]

    @property
    def bottom(self) -> float:
        return self.bbox[3]


@dataclass
class _Placed:
    page: int
    bbox: tuple[float, float, float, float]
    block: Block

    @property
    def x(self) -> float:
        return self.bbox[0]

    @property
    def y(self) -> float:
        return self.bbox[1]


def _center(bbox) -> pymupdf.Point:
    rect = pymupdf.Rect(bbox)
    return pymupdf.Point((rect.x0 + rect.x1) / 2, (rect.y0 + rect.y1) / 2)


def _drop_prefix(spans: list[Span], count: int) -> tuple[list[Span], int]:
    """Remove the first ``count`` visible characters from a span list."""
    out: list[Span] = []
    for span in spans:
        if count <= 0:
            out.append(span)
        elif isinstance(span, PlainText):
            if len(span.text) <= count:
                count -= len(span.text)
            else:
                out.append(PlainText(text=span.text[count:]))
                count = 0
        elif isinstance(span, (Strong, Emphasis, Strikethrough, Link)):
            children, count = _drop_prefix(span.children, count)
            if children:
                out.append(span.model_copy(update={"children": children}))
        else:
            out.append(span)
    return out, count


def _join_lines(spans: list[Span], more: list[Span]) -> list[Span]:
    """Join two wrapped lines, undoing a line-end hyphenation."""
    if spans and more and isinstance(spans[-1], PlainText) and isinstance(more[0], PlainText):
        left, right = spans[-1].text.rstrip(), more[0].text.lstrip()
        if len(left) > 1 and left.endswith("-") and left[-2].isalpha() and right[:1].islower():
            return [*spans[:-1], PlainText(text=left[:-1] + right), *more[1:]]
    return [*spans, PlainText(text=" "), *more]


def _unwrap_strong(spans: list[Span]) -> list[Span]:
    if len(spans) == 1 and isinstance(spans[0], Strong):
        return spans[0].children
    return spans


class _PageScanner:
    """Pulls lines, tables, images and rules off one page."""

    def __init__(self, reader: _PdfReader, page: pymupdf.Page, number: int) -> None:
        self.reader = reader
        self.page = page
        self.number = number
        self.tables: list[pymupdf.Rect] = []
        self.code_regions: list[pymupdf.Rect] = []

    def scan(self) -> list[_Line | _Placed]:
        items: list[_Line | _Placed] = []
        items.extend(self._tables())
        items.extend(self._drawings())
        links = [(pymupdf.Rect(link["from"]), link["uri"]) for link in self.page.get_links() if link.get("uri")]

        data = self.page.get_text("dict", sort=True)
        for block in data["blocks"]:
            if self._in_table(block["bbox"]):
                continue
            if block["type"] == 1:
                image = self.reader.sink.add(block["image"], block.get("ext"), "", self.reader.warnings)
                if image is not None:
                    items.append(_Placed(self.number, tuple(block["bbox"]), image))
                continue
            for line in block.get("lines", []):
                if self._in_table(line["bbox"]):
                    continue
                parsed = self._line(line, links)
                if parsed is not None:
                    items.append(parsed)

        items.sort(key=lambda item: (round(item.y), item.x))
        return items

    def _in_table(self, bbox) -> bool:
        center = _center(bbox)
        return any(rect.contains(center) for rect in self.tables)

    def _tables(self) -> list[_Placed]:
        placed: list[_Placed] = []
        try:
            found = self.page.find_tables().tables
        except (RuntimeError, ValueError) as exc:
            logger.debug("table detection failed on page %d: %s", self.number + 1, exc)
            return placed

        for table in found:
            rows = table.extract()
            if not rows or len(rows) * max(len(row) for row in rows) < 2:
                # a lone filled rectangle, e.g. a code background
                continue
            cells = [
                [normalize_spans(text_spans((value or "").replace("\n", " "))) for value in row]
                for row in rows
            ]
            cells, warnings = rectangularize(cells)
            self.reader.warnings.extend(warnings)
            rect = pymupdf.Rect(table.bbox)
            self.tables.append(rect)
            placed.append(_Placed(self.number, tuple(rect), Table(rows=cells, alignments=[None] * len(cells[0]))))
        return placed

    def _drawings(self) -> list[_Placed]:
        rules: list[_Placed] = []
        min_rule = self.page.rect.width * 0.4
        for drawing in self.page.get_drawings():
            rect = drawing["rect"]
            if drawing.get("fill") is not None and rect.width > 50 and not self._in_table(rect):
                self.code_regions.append(pymupdf.Rect(rect))
                continue
            items = drawing["items"]
            if len(items) != 1 or items[0][0] != "l":
                continue
            start, end = items[0][1], items[0][2]
            if abs(start.y - end.y) < 1 and abs(end.x - start.x) > min_rule and not self._in_table(rect):
                rules.append(_Placed(self.number, tuple(rect), HorizontalRule()))
        return rules

    def _line(self, line: dict, links: list[tuple[pymupdf.Rect, str]]) -> _Line | None:
        spans: list[Span] = []
        texts: list[str] = []
        sizes: list[float] = []
        mono_all = True
        for span in line["spans"]:
            text = span["text"]
            if not text:
                continue
            texts.append(text)
            font, flags = span.get("font", ""), span.get("flags", 0)
            mono = bool(flags & _FLAG_MONO) or is_monospace_font(font)
            if text.strip():
                sizes.append(span["size"])
                mono_all = mono_all and mono
            if mono:
                piece: list[Span] = [InlineCode(code=text)]
            else:
                lowered = font.lower()
                piece = styled(
                    [PlainText(text=text)],
                    bold=bool(flags & _FLAG_BOLD) or "bold" in lowered or "black" in lowered,
                    italic=bool(flags & _FLAG_ITALIC) or "italic" in lowered or "oblique" in lowered,
                )
            center = _center(span["bbox"])
            target = next((uri for rect, uri in links if rect.contains(center)), None)
            if target:
                piece = [Link(children=piece, target=target)]
            spans.extend(piece)

        text = "".join(texts)
        if not text.strip():
            return None
        bbox = tuple(line["bbox"])
        region = None
        if mono_all:
            center = _center(bbox)
            region = next((tuple(rect) for rect in self.code_regions if rect.contains(center)), None)
        return _Line(self.number, bbox, max(sizes), text, spans, mono_all, region)


def _wrapped_marker(match: re.Match) -> bool:
    """Markers that often open a wrapped line of prose: dashes and numbers past 1."""
    number = match.group("number")
    if number is not None:
        return int(number) != 1
    return match.group(0)[0] in "–*-"


class _BlockBuilder:
    """Folds a page-ordered stream of lines into IR blocks."""

    def __init__(self, reader: _PdfReader) -> None:
        self.reader = reader
        self.blocks: list[Block] = []
        self.kind: str | None = None
        self.lines: list[_Line] = []
        self.spans: list[Span] = []
        self.heading_level = 0
        self.code: list[str] = []
        self.code_x = 0.0
        self.entries: list[tuple[bool, int, list[Span]]] = []
        self.marker_x = 0.0
        self.pending: _Line | None = None

    def add(self, item: _Line | _Placed) -> None:
        if isinstance(item, _Placed):
            self._flush_pending()
            self._close()
            self.blocks.append(item.block)
            return

        line = item
        if self.pending is not None:
            marker, self.pending = self.pending, None
            same_row = marker.page == line.page and abs(marker.y - line.y) < marker.size * 0.5
            if same_row and line.x > marker.x:
                line = _Line(
                    line.page,
                    (marker.x, min(marker.y, line.y), line.bbox[2], max(marker.bottom, line.bottom)),
                    max(marker.size, line.size),
                    f"{marker.text.strip()} {line.text}",
                    [PlainText(text=f"{marker.text.strip()} "), *line.spans],
                    False,
                )
            else:
                self._line(marker)
        if _MARKER_ONLY_RE.match(line.text.strip()):
            self.pending = line
            return
        self._line(line)

    def finish(self) -> list[Block]:
        self._flush_pending()
        self._close()
        return self.blocks

    def _flush_pending(self) -> None:
        if self.pending is not None:
            marker, self.pending = self.pending, None
            self._line(marker)

    def _continues(self, line: _Line) -> bool:
        if not self.lines:
            return False
        last = self.lines[-1]
        gap = line.y - last.bottom
        return line.page == last.page and -last.size < gap < last.size * 0.6

    def _line(self, line: _Line) -> None:
        level = self.reader.heading_level(line)
        if level:
            if self.kind == "heading" and self.heading_level == level and self._continues(line):
                self.spans = _join_lines(self.spans, line.spans)
            else:
                self._start("heading")
                self.heading_level = level
                self.spans = list(line.spans)
            self.lines.append(line)
            return

        if line.mono:
            self._code(line)
            return

        stripped = line.text.lstrip()
        match = _MARKER_RE.match(stripped)
        if match and self.kind == "para" and self._continues(line) and _wrapped_marker(match):
            match = None
        if match:
            self._list_item(line, match, len(line.text) - len(stripped))
            return

        if self.kind == "list" and self._continues(line) and line.x > self.marker_x + 2:
            ordered, level, spans = self.entries[-1]
            self.entries[-1] = (ordered, level, _join_lines(spans, line.spans))
            self.lines.append(line)
            return

        if self.kind == "para" and self._continues(line):
            self.spans = _join_lines(self.spans, line.spans)
        else:
            self._start("para")
            self.spans = list(line.spans)
        self.lines.append(line)

    def _code(self, line: _Line) -> None:
        same_block = False
        if self.kind == "code" and self.lines:
            prev = self.lines[-1]
            if line.region is not None:
                same_block = line.region == prev.region
            else:
                same_block = self._continues(line)
        if same_block:
            prev = self.lines[-1]
            blanks = round((line.y - prev.y) / (prev.size * LINE_SPACING)) - 1
            self.code.extend([""] * max(0, blanks))
        else:
            self._start("code")
            self.code_x = line.region[0] + CODE_PADDING if line.region else line.x
        indent = max(0, round((line.x - self.code_x) / (line.size * MONO_ADVANCE)))
        self.code.append(" " * indent + line.text.rstrip())
        self.lines.append(line)

    def _list_item(self, line: _Line, match: re.Match, lead: int) -> None:
        if self.kind != "list":
            self._start("list")
        spans, _ = _drop_prefix(line.spans, lead + len(match.group(0)))
        level = max(0, round((line.x - self.reader.base_x) / LIST_INDENT))
        self.entries.append((match.group("number") is not None, level, spans))
        self.marker_x = line.x
        self.lines.append(line)

    def _start(self, kind: str) -> None:
        self._close()
        self.kind = kind

    def _close(self) -> None:
        if self.kind == "para":
            spans = normalize_spans(self.spans)
            if spans:
                self.blocks.append(Paragraph(children=spans))
        elif self.kind == "heading":
            spans = _unwrap_strong(normalize_spans(self.spans))
            if spans:
                self.blocks.append(Heading(level=self.heading_level, children=spans))
        elif self.kind == "code":
            self.blocks.append(CodeBlock(code="\n".join(self.code)))
        elif self.kind == "list":
            entries = [
                (ordered, level, [Paragraph(children=normalize_spans(spans))])
                for ordered, level, spans in self.entries
            ]
            self.blocks.extend(nest_list_items(entries))
        self.kind = None
        self.lines = []
        self.spans = []
        self.code = []
        self.entries = []


class _PdfReader:
    def __init__(self, adapter: PdfAdapter, sink: ImageSink, warnings: list[ConversionWarning]) -> None:
        self.config = adapter.config.pdf
        self.sink = sink
        self.warnings = warnings
        self.body_size = self.config.body_font_size
        self.base_x = 0.0

    def read(self, document: pymupdf.Document) -> list[Block]:
        pages = [_PageScanner(self, page, number).scan() for number, page in enumerate(document)]
        lines = [item for items in pages for item in items if isinstance(item, _Line)]
        if not lines and not any(pages):
            self.warnings.append(ConversionWarning(
                code="content.dropped", message="PDF has no text layer; nothing extracted",
            ))
        self.body_size = _body_size(lines) or self.config.body_font_size
        self.base_x = min((line.x for line in lines), default=0.0)
        logger.debug("pdf body size %.1f, left edge %.1f", self.body_size, self.base_x)

        builder = _BlockBuilder(self)
        for items in pages:
            for item in items:
                builder.add(item)
        return builder.finish()

    def heading_level(self, line: _Line) -> int | None:
        if line.mono or len(line.text.strip()) > self.config.max_heading_chars:
            return None
        ratio = line.size / self.body_size
        if ratio >= self.config.h1_ratio:
            return 1
        if ratio >= self.config.h2_ratio:
            return 2
        if ratio >= self.config.h3_ratio:
            return 3
        return None


def _body_size(lines: list[_Line]) -> float | None:
    """Character-weighted most common font size, to the nearest half point."""
    weights: Counter[float] = Counter()
    for line in lines:
        weights[round(line.size * 2) / 2] += len(line.text.strip())
    if not weights:
        return None
    return weights.most_common(1)[0][0]


# ── Export ──────────────────────────────────────────────────────────


@dataclass
class _Piece:
    text: str
    font: str
    link: str | None = None
    newline: bool = False


@dataclass
class _Layout:
    lines: list[list[_Piece]] = field(default_factory=lambda: [[]])
    x: float = 0.0


class _PdfWriter:
    def __init__(self, adapter: PdfAdapter, document: Document, base_dir: Path,
                 warnings: list[ConversionWarning]) -> None:
        config = adapter.config.pdf
        self.document = document
        self.base_dir = base_dir
        self.warnings = warnings
        self.width, self.height = PAGE_SIZES[config.page_size]
        self.margin = config.margin_pt
        self.size = config.body_font_size
        self.font_file = config.font_file
        self.custom_font = pymupdf.Font(fontfile=config.font_file) if config.font_file else None
        self.max_image_width = adapter.config.images.max_width_in * 72
        self.ctx = StyleContext.from_document(document)
        self.pdf = pymupdf.open()
        self.page: pymupdf.Page | None = None
        self.y = self.margin
        self.quote_rules: list[float] = []

    @property
    def bottom(self) -> float:
        return self.height - self.margin

    @property
    def content_width(self) -> float:
        return self.width - 2 * self.margin

    def build(self) -> pymupdf.Document:
        try:
            for block in self.document.blocks:
                self._block(block, 0.0)
        except BaseException:
            self.pdf.close()
            raise
        if self.page is None:
            self._new_page()
        title = next((b for b in self.document.blocks if isinstance(b, Heading)), None)
        if title is not None:
            self.pdf.set_metadata({"title": plain_text(title.children, line_break=" ")})
        return self.pdf

    # ── pages and fonts ──

    def _new_page(self) -> None:
        self.page = self.pdf.new_page(width=self.width, height=self.height)
        self.y = self.margin

    def _ensure(self, height: float) -> None:
        if self.page is None or self.y + height > self.bottom:
            self._new_page()

    def _gap(self, amount: float) -> None:
        if self.page is not None and self.y > self.margin:
            self.y += amount

    def _font(self, bold: bool = False, italic: bool = False, code: bool = False) -> str:
        if code:
            return _COURIER[bold + 2 * italic]
        if self.custom_font is not None:
            return CUSTOM_FONT
        return _HELVETICA[bold + 2 * italic]

    def _measure(self, text: str, font: str, size: float) -> float:
        if font == CUSTOM_FONT:
            return self.custom_font.text_length(text, fontsize=size)
        return pymupdf.get_text_length(text, fontname=font, fontsize=size)

    def _insert(self, x: float, baseline: float, text: str, font: str, size: float, color=BLACK) -> None:
        extra = {"fontfile": self.font_file} if font == CUSTOM_FONT else {}
        self.page.insert_text((x, baseline), text, fontname=font, fontsize=size, color=color, **extra)

    # ── inline layout ──

    def _pieces(self, spans: list[Span], *, bold: bool = False, italic: bool = False,
                link: str | None = None) -> list[_Piece]:
        out: list[_Piece] = []
        for span in spans:
            if isinstance(span, PlainText):
                out.append(_Piece(span.text, self._font(bold, italic), link))
            elif isinstance(span, InlineCode):
                out.append(_Piece(span.code, self._font(bold, italic, code=True), link))
            elif isinstance(span, LineBreak):
                out.append(_Piece("", "", newline=True))
            elif isinstance(span, Strong):
                out.extend(self._pieces(span.children, bold=True, italic=italic, link=link))
            elif isinstance(span, Emphasis):
                out.extend(self._pieces(span.children, bold=bold, italic=True, link=link))
            elif isinstance(span, Strikethrough):
                out.extend(self._pieces(span.children, bold=bold, italic=italic, link=link))
            elif isinstance(span, Link):
                out.extend(self._pieces(span.children, bold=bold, italic=italic, link=link or span.target))
        return out

    def _wrap(self, pieces: list[_Piece], width: float, size: float) -> list[list[_Piece]]:
        layout = _Layout()
        space: _Piece | None = None
        for piece in pieces:
            if piece.newline:
                layout.lines.append([])
                layout.x, space = 0.0, None
                continue
            for token in _WS_RE.split(piece.text):
                if not token:
                    continue
                if token.isspace():
                    if layout.lines[-1]:
                        space = _Piece(" ", piece.font, piece.link)
                    continue
                token_width = self._measure(token, piece.font, size)
                space_width = self._measure(" ", space.font, size) if space else 0.0
                if layout.lines[-1] and layout.x + space_width + token_width > width:
                    layout.lines.append([])
                    layout.x, space, space_width = 0.0, None, 0.0
                if space is not None:
                    layout.lines[-1].append(space)
                    layout.x += space_width
                    space = None
                while token_width > width and len(token) > 1:
                    cut = 1
                    while cut < len(token) and self._measure(token[: cut + 1], piece.font, size) <= width:
                        cut += 1
                    layout.lines[-1].append(_Piece(token[:cut], piece.font, piece.link))
                    layout.lines.append([])
                    token = token[cut:]
                    token_width = self._measure(token, piece.font, size)
                    layout.x = 0.0
                layout.lines[-1].append(_Piece(token, piece.font, piece.link))
                layout.x += token_width
        return [_merge_pieces(line) for line in layout.lines]

    def _draw_pieces(self, line: list[_Piece], x: float, baseline: float, size: float) -> None:
        for piece in line:
            piece_width = self._measure(piece.text, piece.font, size)
            color = LINK_BLUE if piece.link else BLACK
            self._insert(x, baseline, piece.text, piece.font, size, color)
            if piece.link:
                self.page.insert_link({
                    "kind": pymupdf.LINK_URI,
                    "from": pymupdf.Rect(x, baseline - size, x + piece_width, baseline + size * 0.3),
                    "uri": piece.link,
                })
            x += piece_width

    def _line_width(self, line: list[_Piece], size: float) -> float:
        return sum(self._measure(piece.text, piece.font, size) for piece in line)

    def _draw_lines(self, lines: list[list[_Piece]], indent: float, size: float, *,
                    alignment: str | None = None, marker: tuple[float, str] | None = None) -> None:
        line_height = size * LINE_SPACING
        x0 = self.margin + indent
        width = self.content_width - indent
        for index, line in enumerate(lines):
            self._ensure(line_height)
            baseline = self.y + size
            x = x0
            if alignment in ("center", "right"):
                slack = width - self._line_width(line, size)
                x += slack / 2 if alignment == "center" else slack
            if index == 0 and marker is not None:
                self._insert(self.margin + marker[0], baseline, marker[1], self._font(), size)
            self._draw_pieces(line, x, baseline, size)
            for rule_x in self.quote_rules:
                self.page.draw_line((rule_x, self.y), (rule_x, self.y + line_height), color=GREY, width=2)
            self.y += line_height

    # ── blocks ──

    def _block(self, block: Block, indent: float) -> None:
        if isinstance(block, Heading):
            size = self.ctx.heading_size(block, self.size)
            self._gap(size * 0.5)
            # keep a heading with at least one following line
            self._ensure(size * LINE_SPACING + self.size * LINE_SPACING * 2)
            lines = self._wrap(self._pieces(block.children, bold=True), self.content_width - indent, size)
            self._draw_lines(lines, indent, size, alignment=self.ctx.style_for(block).alignment)
            self._gap(size * 0.3)
        elif isinstance(block, Paragraph):
            lines = self._wrap(self._pieces(block.children), self.content_width - indent, self.size)
            self._draw_lines(lines, indent, self.size, alignment=self.ctx.style_for(block).alignment)
            self._gap(self.size * 0.8)
        elif isinstance(block, (BulletList, OrderedList)):
            self._list(block, indent)
            self._gap(self.size * 0.8)
        elif isinstance(block, Blockquote):
            self.quote_rules.append(self.margin + indent + 4)
            for child in block.blocks:
                self._block(child, indent + LIST_INDENT)
            self.quote_rules.pop()
        elif isinstance(block, CodeBlock):
            self._code(block, indent)
            self._gap(self.size * 0.8)
        elif isinstance(block, Table):
            self._table(block, indent)
            self._gap(self.size * 0.8)
        elif isinstance(block, HorizontalRule):
            self._gap(4)
            self._ensure(12)
            y = self.y + 6
            self.page.draw_line((self.margin + indent, y), (self.width - self.margin, y), color=GREY, width=0.75)
            self.y += 12
        elif isinstance(block, Image):
            self._image(block, indent)
        elif isinstance(block, SlideMarker):
            if self.page is not None and self.y > self.margin:
                self._new_page()
        elif isinstance(block, SheetMarker):
            pass

    def _list(self, block: BulletList | OrderedList, indent: float) -> None:
        ordered = isinstance(block, OrderedList)
        for number, item in enumerate(block.items, start=block.start if ordered else 1):
            marker = (indent, f"{number}." if ordered else "•")
            content_indent = indent + LIST_INDENT
            children = list(item.blocks)
            if children and isinstance(children[0], Paragraph):
                first = children.pop(0)
                lines = self._wrap(self._pieces(first.children), self.content_width - content_indent, self.size)
            else:
                lines = [[]]
            self._draw_lines(lines, content_indent, self.size, marker=marker)
            for child in children:
                self._block(child, content_indent)

    def _code(self, block: CodeBlock, indent: float) -> None:
        size = self.size * 0.9
        line_height = size * LINE_SPACING
        x0 = self.margin + indent
        width = self.content_width - indent
        per_line = max(1, int((width - 2 * CODE_PADDING) / (size * MONO_ADVANCE)))
        lines: list[str] = []
        for raw in block.code.split("\n"):
            chunks = [raw[i:i + per_line] for i in range(0, len(raw), per_line)]
            lines.extend(chunks or [""])

        self._gap(self.size * 0.4)
        while lines:
            self._ensure(line_height + 2 * CODE_PADDING)
            room = max(1, int((self.bottom - self.y - 2 * CODE_PADDING) // line_height))
            chunk, lines = lines[:room], lines[room:]
            rect = pymupdf.Rect(x0, self.y, x0 + width, self.y + 2 * CODE_PADDING + len(chunk) * line_height)
            self.page.draw_rect(rect, color=None, fill=CODE_FILL, width=0)
            y = self.y + CODE_PADDING
            for line in chunk:
                if line.strip():
                    self._insert(x0 + CODE_PADDING, y + size, line, self._font(code=True), size)
                y += line_height
            self.y = rect.y1
            if lines:
                self._new_page()

    def _table(self, table: Table, indent: float) -> None:
        if not table.rows or not table.width:
            return
        size = self.size * 0.95
        line_height = size * LINE_SPACING
        x0 = self.margin + indent
        column = (self.content_width - indent) / table.width
        self._gap(self.size * 0.4)
        for r, row in enumerate(table.rows):
            cells = [
                self._wrap(self._pieces(cell, bold=r == 0), column - 2 * CELL_PADDING, size)
                for cell in row
            ]
            row_height = max(len(lines) for lines in cells) * line_height + 2 * CELL_PADDING
            self._ensure(row_height)
            for c, lines in enumerate(cells):
                left = x0 + c * column
                self.page.draw_rect(pymupdf.Rect(left, self.y, left + column, self.y + row_height), color=BLACK, width=0.5)
                alignment = self.ctx.column_alignment(table, c)
                y = self.y + CELL_PADDING
                for line in lines:
                    x = left + CELL_PADDING
                    if alignment in ("center", "right"):
                        slack = column - 2 * CELL_PADDING - self._line_width(line, size)
                        x += slack / 2 if alignment == "center" else slack
                    self._draw_pieces(line, x, y + size, size)
                    y += line_height
            self.y += row_height

    def _image(self, image: Image, indent: float) -> None:
        blob = load_image(image.src, self.base_dir)
        pixmap = None
        if blob is not None:
            try:
                pixmap = pymupdf.Pixmap(blob)
            except (RuntimeError, ValueError, TypeError) as exc:
                logger.debug("PyMuPDF cannot decode image: %s", exc)
        if pixmap is None:
            self.warnings.append(unresolved(image))
            if image.alt:
                self._block(Paragraph(children=[Emphasis(children=[PlainText(text=image.alt)])]), indent)
            return

        width, height = float(pixmap.width), float(pixmap.height)
        scale = min(1.0, min(self.content_width - indent, self.max_image_width) / width)
        width, height = width * scale, height * scale
        max_height = self.bottom - self.margin
        if height > max_height:
            width, height = width * max_height / height, max_height

        self._gap(self.size * 0.4)
        self._ensure(height)
        x0 = self.margin + indent
        self.page.insert_image(pymupdf.Rect(x0, self.y, x0 + width, self.y + height), stream=blob)
        self.y += height
        self._gap(self.size * 0.8)


def _merge_pieces(line: list[_Piece]) -> list[_Piece]:
    merged: list[_Piece] = []
    for piece in line:
        if merged and (merged[-1].font, merged[-1].link) == (piece.font, piece.link):
            merged[-1] = _Piece(merged[-1].text + piece.text, piece.font, piece.link)
        else:
            merged.append(piece)
    return merged


class PdfAdapter(FormatAdapter):
    format_tag = "pdf"
    extensions = (".pdf",)
    label = "PDF document"

    def read(self, path: str | Path) -> AdapterOutput:
        with _MUPDF_LOCK:
            return super().read(path)

    def write(self, document: Document, path: str | Path) -> list[ConversionWarning]:
        with _MUPDF_LOCK:
            return super().write(document, path)

    def _read(self, path: Path) -> AdapterOutput:
        document = open_pdf(path)
        warnings: list[ConversionWarning] = []
        try:
            reader = _PdfReader(self, ImageSink(self.config.images, path), warnings)
            blocks = reader.read(document)
        finally:
            document.close()
        return AdapterOutput(document=Document(blocks=blocks), warnings=warnings)

    def _build(self, document: Document, dest: Path, warnings: list[ConversionWarning]) -> pymupdf.Document:
        base_dir = Path(self.config.images.base_dir) if self.config.images.base_dir else dest.parent
        return _PdfWriter(self, document, base_dir, warnings).build()

    def _save(self, native: pymupdf.Document, path: Path) -> None:
        native.save(str(path), garbage=3, deflate=True)

    def _discard(self, native: pymupdf.Document) -> None:
        native.close()
