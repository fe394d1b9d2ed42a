"""Word-processor adapter (python-docx)."""

from __future__ import annotations

import io
import logging
import re
import zipfile
from pathlib import Path

import docx
from docx.document import Document as WordDocument
from docx.enum.style import WD_STYLE_TYPE
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.image.exceptions import UnrecognizedImageError
from docx.opc.constants import RELATIONSHIP_TYPE
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Inches, Pt, RGBColor
from docx.table import Table as WordTable
from docx.text.hyperlink import Hyperlink
from docx.text.paragraph import Paragraph as WordParagraph
from docx.text.run import Run

from docbridge.adapters.base import AdapterOutput, FormatAdapter, is_monospace_font, is_ole_container
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

_HEADING_RE = re.compile(r"^Heading (\d+)$")
_LIST_STYLE_RE = re.compile(r"^List (Bullet|Number)(?: (\d+))?$")
_QUOTE_STYLES = {"Quote", "Intense Quote"}
_UNORDERED_FORMATS = {None, "bullet", "none"}

_ALIGN_TO_WORD = {
    "left": WD_ALIGN_PARAGRAPH.LEFT,
    "center": WD_ALIGN_PARAGRAPH.CENTER,
    "right": WD_ALIGN_PARAGRAPH.RIGHT,
}
_WORD_TO_ALIGN = {value: key for key, value in _ALIGN_TO_WORD.items()}

LINK_COLOR = RGBColor(0x05, 0x63, 0xC1)
CODE_STYLE = "Code"


def _style_name(obj: WordParagraph | Run) -> str:
    style = obj.style
    return style.name if style is not None and style.name else ""


def open_word_document(path: Path) -> WordDocument:
    if is_ole_container(path):
        raise UnsupportedVariant("legacy binary (.doc) or encrypted document", path=path)
    try:
        return docx.Document(str(path))
    except PackageNotFoundError as exc:
        raise SourceUnreadable("not a Word package (corrupt or not a zip container)", path=path) from exc
    except ValueError as exc:
        # python-docx rejects .docm / .dotx main parts by content type
        raise UnsupportedVariant(str(exc), path=path) from exc
    except (zipfile.BadZipFile, KeyError) as exc:
        raise SourceUnreadable(f"corrupt package: {exc}", path=path) from exc


# ── Import ──────────────────────────────────────────────────────────


def _child_val(element, tag: str) -> str | None:
    """``w:val`` of the first ``tag`` child, via lxml so unregistered elements work."""
    child = element.find(qn(tag))
    return child.get(qn("w:val")) if child is not None else None


def _numbering_formats(document: WordDocument) -> dict[tuple[str, str], str]:
    """Map (numId, ilvl) to the Word numFmt value for that level."""
    try:
        numbering = document.part.numbering_part.element
    except (KeyError, NotImplementedError):
        return {}

    abstract_formats: dict[tuple[str, str], str] = {}
    for abstract in numbering.iterchildren(qn("w:abstractNum")):
        abstract_id = abstract.get(qn("w:abstractNumId"))
        for level in abstract.iterchildren(qn("w:lvl")):
            fmt = _child_val(level, "w:numFmt")
            if fmt:
                abstract_formats[(abstract_id, level.get(qn("w:ilvl")))] = fmt

    formats: dict[tuple[str, str], str] = {}
    for num in numbering.iterchildren(qn("w:num")):
        num_id = num.get(qn("w:numId"))
        abstract_id = _child_val(num, "w:abstractNumId")
        if abstract_id is None:
            continue
        for (aid, ilvl), fmt in abstract_formats.items():
            if aid == abstract_id:
                formats[(num_id, ilvl)] = fmt
    return formats


def _run_spans(run: Run) -> list[Span]:
    text = run.text
    if not text:
        return []
    if is_monospace_font(run.font.name):
        return [InlineCode(code=text.replace("\n", " "))]
    style = _style_name(run)
    return styled(
        text_spans(text),
        bold=run.bold is True or style == "Strong",
        italic=run.italic is True or style == "Emphasis",
        strike=run.font.strike is True,
    )


def _paragraph_spans(paragraph: WordParagraph) -> list[Span]:
    spans: list[Span] = []
    for item in paragraph.iter_inner_content():
        if isinstance(item, Hyperlink):
            inner = [span for run in item.runs for span in _run_spans(run)]
            target = item.url or (f"#{item.fragment}" if item.fragment else "")
            if target and inner:
                spans.append(Link(children=inner, target=target))
            else:
                spans.extend(inner)
        else:
            spans.extend(_run_spans(item))
    return normalize_spans(spans)


def _has_bottom_border(paragraph: WordParagraph) -> bool:
    return bool(paragraph._p.xpath("./w:pPr/w:pBdr/w:bottom"))


class _BodyReader:
    """Walks the document body once, folding flat paragraphs into blocks."""

    def __init__(self, document: WordDocument, sink: ImageSink, warnings: list[ConversionWarning]) -> None:
        self.document = document
        self.sink = sink
        self.warnings = warnings
        self.blocks: list[Block] = []
        self._numbering = _numbering_formats(document)
        self._list_entries: list[tuple[bool, int, list[Block]]] = []
        self._quote: list[Block] = []
        self._code: list[str] = []

    def read(self) -> list[Block]:
        for item in self.document.iter_inner_content():
            if isinstance(item, WordTable):
                self._flush()
                table = self._table(item)
                if table is not None:
                    self.blocks.append(table)
            else:
                self._paragraph(item)
        self._flush()
        return self.blocks

    def _flush(self, keep: str | None = None) -> None:
        if keep != "list" and self._list_entries:
            self.blocks.extend(nest_list_items(self._list_entries))
            self._list_entries = []
        if keep != "quote" and self._quote:
            self.blocks.append(Blockquote(blocks=self._quote))
            self._quote = []
        if keep != "code" and self._code:
            self.blocks.append(CodeBlock(code="\n".join(self._code)))
            self._code = []

    def _paragraph(self, paragraph: WordParagraph) -> None:
        style = _style_name(paragraph)
        images = self._images(paragraph)

        level = self._heading_level(style)
        if level:
            self._flush()
            spans = _paragraph_spans(paragraph)
            if spans:
                self.blocks.append(Heading(level=level, children=spans))
            self.blocks.extend(images)
            return

        if self._is_code(paragraph, style):
            self._flush(keep="code")
            self._code.append(paragraph.text)
            return

        spans = _paragraph_spans(paragraph)
        content: list[Block] = [Paragraph(children=spans)] if spans else []
        content.extend(images)

        list_info = self._list_info(paragraph, style)
        if list_info is not None:
            self._flush(keep="list")
            ordered, list_level = list_info
            self._list_entries.append((ordered, list_level, content))
            return

        if style in _QUOTE_STYLES:
            self._flush(keep="quote")
            self._quote.extend(content)
            return

        self._flush()
        if not content and _has_bottom_border(paragraph):
            self.blocks.append(HorizontalRule())
            return
        self.blocks.extend(content)

    @staticmethod
    def _heading_level(style: str) -> int | None:
        if style == "Title":
            return 1
        match = _HEADING_RE.match(style)
        if match:
            return min(max(int(match.group(1)), 1), 6)
        return None

    @staticmethod
    def _is_code(paragraph: WordParagraph, style: str) -> bool:
        if CODE_STYLE in style:
            return True
        runs = [run for run in paragraph.runs if run.text.strip()]
        return bool(runs) and all(is_monospace_font(run.font.name) for run in runs)

    def _list_info(self, paragraph: WordParagraph, style: str) -> tuple[bool, int] | None:
        match = _LIST_STYLE_RE.match(style)
        if match:
            return match.group(1) == "Number", int(match.group(2) or 1) - 1

        # queried from the registered w:p so the w: prefix always resolves
        num_id = paragraph._p.xpath("./w:pPr/w:numPr/w:numId/@w:val")
        if not num_id or num_id[0] == "0":
            return None
        ilvl = paragraph._p.xpath("./w:pPr/w:numPr/w:ilvl/@w:val")
        level = ilvl[0] if ilvl else "0"
        fmt = self._numbering.get((num_id[0], level))
        return fmt not in _UNORDERED_FORMATS, int(level)

    def _images(self, paragraph: WordParagraph) -> list[Block]:
        images: list[Block] = []
        for drawing in paragraph._p.iter(qn("w:drawing")):
            blip = next(drawing.iter(qn("a:blip")), None)
            rel_id = blip.get(qn("r:embed")) if blip is not None else None
            if not rel_id:
                continue
            try:
                part = self.document.part.related_parts[rel_id]
            except KeyError:
                logger.debug("dangling image relationship %s", rel_id)
                continue
            doc_pr = next(drawing.iter(qn("wp:docPr")), None)
            alt = doc_pr.get("descr", "") if doc_pr is not None else ""
            image = self.sink.add(part.blob, part.partname.ext, alt, self.warnings)
            if image is not None:
                images.append(image)
        return images

    def _table(self, table: WordTable) -> Table | None:
        rows: list[list[list[Span]]] = []
        for row in table.rows:
            cells: list[list[Span]] = []
            for cell in row.cells:
                spans: list[Span] = []
                for paragraph in cell.paragraphs:
                    para_spans = _paragraph_spans(paragraph)
                    if para_spans:
                        if spans:
                            spans.append(LineBreak())
                        spans.extend(para_spans)
                cells.append(spans)
            rows.append(cells)
        if not rows or not rows[0]:
            return None

        rows, warnings = rectangularize(rows)
        self.warnings.extend(warnings)

        # A bold header row is how tables are written; unwrap it.
        header = rows[0]
        if all(len(cell) == 1 and isinstance(cell[0], Strong) for cell in header if cell):
            rows[0] = [cell[0].children if cell else cell for cell in header]

        alignments = []
        for cell in table.rows[0].cells[: len(header)]:
            alignment = cell.paragraphs[0].alignment if cell.paragraphs else None
            alignments.append(_WORD_TO_ALIGN.get(alignment))
        alignments.extend([None] * (len(header) - len(alignments)))
        return Table(rows=rows, alignments=alignments)


# ── Export ──────────────────────────────────────────────────────────


class _DocxWriter:
    """Builds one python-docx Document from the IR."""

    def __init__(
        self, adapter: DocxAdapter, document: Document, base_dir: Path, warnings: list[ConversionWarning]
    ) -> None:
        self.document = document
        self.config = adapter.config
        self.code_font = adapter.config.docx.code_font
        self.max_depth = adapter.config.docx.max_list_depth
        self.base_dir = base_dir
        self.warnings = warnings
        self.word = docx.Document()
        self.ctx = StyleContext.from_document(document, code_font=self.code_font)
        self._flattened = False

    def build(self) -> WordDocument:
        document = self.document
        for block in document.blocks:
            self._block(block)
        title = next((b for b in document.blocks if isinstance(b, Heading)), None)
        if title is not None:
            self.word.core_properties.title = plain_text(title.children, line_break=" ")
        return self.word

    def _block(self, block: Block, *, quote: bool = False, depth: int = 0) -> None:
        if isinstance(block, Heading):
            paragraph = self.word.add_heading(level=block.level)
            self._spans(paragraph, block.children)
        elif isinstance(block, Paragraph):
            paragraph = self.word.add_paragraph(style="Quote" if quote else None)
            alignment = self.ctx.style_for(block).alignment
            if alignment:
                paragraph.alignment = _ALIGN_TO_WORD[alignment]
            self._spans(paragraph, block.children)
        elif isinstance(block, (BulletList, OrderedList)):
            self._list(block, depth + 1, quote)
        elif isinstance(block, Blockquote):
            for child in block.blocks:
                self._block(child, quote=True, depth=depth)
        elif isinstance(block, CodeBlock):
            self._code(block)
        elif isinstance(block, Table):
            self._table(block)
        elif isinstance(block, HorizontalRule):
            self._rule()
        elif isinstance(block, Image):
            self._image(block)
        # Sheet and slide markers have no counterpart in a flowing document.

    def _list(self, block: BulletList | OrderedList, depth: int, quote: bool) -> None:
        if depth > self.max_depth and not self._flattened:
            self._flattened = True
            self.warnings.append(ConversionWarning(
                code="list.flattened",
                message=f"list nesting deeper than {self.max_depth} levels flattened",
            ))
        level = min(depth, self.max_depth)
        base = "List Number" if isinstance(block, OrderedList) else "List Bullet"
        style = base if level == 1 else f"{base} {level}"

        for item in block.items:
            if not item.blocks:
                self.word.add_paragraph(style=style)
            for index, child in enumerate(item.blocks):
                if index == 0 and isinstance(child, Paragraph):
                    self._spans(self.word.add_paragraph(style=style), child.children)
                elif isinstance(child, (BulletList, OrderedList)):
                    self._list(child, depth + 1, quote)
                else:
                    self._block(child, quote=quote, depth=depth)

    def _code_style(self):
        styles = self.word.styles
        try:
            return styles[CODE_STYLE]
        except KeyError:
            style = styles.add_style(CODE_STYLE, WD_STYLE_TYPE.PARAGRAPH)
            style.base_style = styles["Normal"]
            style.font.name = self.code_font
            style.font.size = Pt(10)
            return style

    def _code(self, block: CodeBlock) -> None:
        paragraph = self.word.add_paragraph(style=self._code_style())
        lines = block.code.split("\n")
        for index, line in enumerate(lines):
            run = paragraph.add_run(line)
            if index < len(lines) - 1:
                run.add_break()

    def _table(self, table: Table) -> None:
        if not table.rows or not table.width:
            return
        grid = self.word.add_table(rows=len(table.rows), cols=table.width)
        try:
            grid.style = self.word.styles["Table Grid"]
        except KeyError:
            logger.debug("template has no Table Grid style")

        for r, row in enumerate(table.rows):
            for c, cell in enumerate(row):
                paragraph = grid.cell(r, c).paragraphs[0]
                alignment = self.ctx.column_alignment(table, c)
                if alignment:
                    paragraph.alignment = _ALIGN_TO_WORD[alignment]
                spans = [Strong(children=cell)] if r == 0 and cell else cell
                self._spans(paragraph, spans)

    def _rule(self) -> None:
        paragraph = self.word.add_paragraph()
        borders = OxmlElement("w:pBdr")
        bottom = OxmlElement("w:bottom")
        bottom.set(qn("w:val"), "single")
        bottom.set(qn("w:sz"), "6")
        bottom.set(qn("w:space"), "1")
        bottom.set(qn("w:color"), "auto")
        borders.append(bottom)
        paragraph._p.get_or_add_pPr().append(borders)

    def _image(self, image: Image) -> None:
        paragraph = self.word.add_paragraph()
        blob = load_image(image.src, self.base_dir)
        if blob is not None:
            try:
                shape = paragraph.add_run().add_picture(io.BytesIO(blob))
            except UnrecognizedImageError:
                logger.debug("python-docx cannot place image %s", image.src[:60])
            else:
                max_width = Inches(self.config.images.max_width_in)
                if shape.width > max_width:
                    shape.height = int(shape.height * max_width / shape.width)
                    shape.width = max_width
                shape._inline.docPr.set("descr", image.alt)
                return

        self.warnings.append(unresolved(image))
        paragraph.clear()
        if image.alt:
            self._spans(paragraph, [Emphasis(children=[PlainText(text=image.alt)])])

    def _spans(
        self,
        paragraph: WordParagraph,
        spans: list[Span],
        *,
        bold: bool = False,
        italic: bool = False,
        strike: bool = False,
        link=None,
    ) -> None:
        for span in spans:
            if isinstance(span, PlainText):
                self._run(paragraph, span.text, bold, italic, strike, link)
            elif isinstance(span, InlineCode):
                run = self._run(paragraph, span.code, bold, italic, strike, link)
                run.font.name = self.code_font
            elif isinstance(span, LineBreak):
                self._run(paragraph, "", bold, italic, strike, link).add_break()
            elif isinstance(span, Strong):
                self._spans(paragraph, span.children, bold=True, italic=italic, strike=strike, link=link)
            elif isinstance(span, Emphasis):
                self._spans(paragraph, span.children, bold=bold, italic=True, strike=strike, link=link)
            elif isinstance(span, Strikethrough):
                self._spans(paragraph, span.children, bold=bold, italic=italic, strike=True, link=link)
            elif isinstance(span, Link):
                target = link
                if target is None and span.children:
                    target = self._hyperlink(paragraph, span.target)
                self._spans(paragraph, span.children, bold=bold, italic=italic, strike=strike, link=target)

    @staticmethod
    def _hyperlink(paragraph: WordParagraph, target: str):
        element = OxmlElement("w:hyperlink")
        if target.startswith("#"):
            element.set(qn("w:anchor"), target[1:])
        else:
            r_id = paragraph.part.relate_to(target, RELATIONSHIP_TYPE.HYPERLINK, is_external=True)
            element.set(qn("r:id"), r_id)
        paragraph._p.append(element)
        return element

    @staticmethod
    def _run(paragraph: WordParagraph, text: str, bold: bool, italic: bool, strike: bool, link) -> Run:
        run = paragraph.add_run(text)
        if bold:
            run.bold = True
        if italic:
            run.italic = True
        if strike:
            run.font.strike = True
        if link is not None:
            run.font.underline = True
            run.font.color.rgb = LINK_COLOR
            # moves the w:r out of the paragraph and into the hyperlink
            link.append(run._r)
        return run


class DocxAdapter(FormatAdapter):
    format_tag = "docx"
    extensions = (".docx",)
    label = "Word document"

    def _read(self, path: Path) -> AdapterOutput:
        word = open_word_document(path)
        warnings: list[ConversionWarning] = []
        reader = _BodyReader(word, ImageSink(self.config.images, path), warnings)
        return AdapterOutput(document=Document(blocks=reader.read()), warnings=warnings)

    def _build(self, document: Document, dest: Path, warnings: list[ConversionWarning]) -> WordDocument:
        base_dir = Path(self.config.images.base_dir) if self.config.images.base_dir else dest.parent
        return _DocxWriter(self, document, base_dir, warnings).build()

    def _save(self, native: WordDocument, path: Path) -> None:
        native.save(str(path))
