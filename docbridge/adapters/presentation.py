"""Presentation adapter (python-pptx).

Export splits the document into slides the way pandoc does: the slide
level is the shallowest heading level that is directly followed by
content. Headings above it become section title slides, headings at it
open a content slide, and anything deeper stays on the current slide as
a bold paragraph.
"""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from pptx import Presentation
from pptx.enum.shapes import PP_PLACEHOLDER
from pptx.enum.text import PP_ALIGN
from pptx.exc import PackageNotFoundError
from pptx.oxml.ns import qn
from pptx.oxml.xmlchemy import OxmlElement
from pptx.shapes.group import GroupShape
from pptx.shapes.picture import Picture
from pptx.text.text import _Paragraph, _Run
from pptx.util import Emu

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
    SheetMarker,
    SlideMarker,
    Span,
    Strikethrough,
    Strong,
    Table,
    nest_list_items,
    normalize_spans,
    plain_text,
    rectangularize,
    styled,
)

logger = logging.getLogger(__name__)

TITLE_LAYOUT = 0
CONTENT_LAYOUT = 1
BODY_IDX = 1
MAX_LEVEL = 8
TEXT_SHARE = 0.4
MAX_ROW_HEIGHT = Emu(457200)

_BODY_TYPES = {PP_PLACEHOLDER.BODY, PP_PLACEHOLDER.OBJECT}
_ALIGN_TO_PPTX = {"left": PP_ALIGN.LEFT, "center": PP_ALIGN.CENTER, "right": PP_ALIGN.RIGHT}
_PPTX_TO_ALIGN = {value: key for key, value in _ALIGN_TO_PPTX.items()}
_BULLET_TAGS = {qn("a:buNone"): "none", qn("a:buAutoNum"): "number", qn("a:buChar"): "char"}


def open_presentation(path: Path):
    if is_ole_container(path):
        raise UnsupportedVariant("legacy binary (.ppt) or encrypted presentation", path=path)
    try:
        return Presentation(str(path))
    except PackageNotFoundError as exc:
        raise SourceUnreadable("not a PowerPoint package (corrupt or not a zip container)", path=path) from exc
    except ValueError as exc:
        # .pptm / .potx main parts are rejected by content type
        raise UnsupportedVariant(str(exc), path=path) from exc
    except (zipfile.BadZipFile, KeyError) as exc:
        raise SourceUnreadable(f"corrupt package: {exc}", path=path) from exc


# ── Import ──────────────────────────────────────────────────────────


def _bullet_kind(paragraph: _Paragraph) -> str | None:
    p_pr = paragraph._p.pPr
    if p_pr is None:
        return None
    for child in p_pr.iterchildren():
        kind = _BULLET_TAGS.get(child.tag)
        if kind:
            return kind
    return None


def _run_spans(run: _Run) -> list[Span]:
    text = run.text
    if not text:
        return []
    if is_monospace_font(run.font.name):
        spans: list[Span] = [InlineCode(code=text)]
    else:
        r_pr = run._r.rPr
        strike = r_pr is not None and r_pr.get("strike") in ("sngStrike", "dblStrike")
        spans = styled(
            [PlainText(text=text)],
            bold=run.font.bold is True,
            italic=run.font.italic is True,
            strike=strike,
        )
    address = run.hyperlink.address
    if address:
        spans = [Link(children=spans, target=address)]
    return spans


def _paragraph_spans(paragraph: _Paragraph) -> list[Span]:
    spans: list[Span] = []
    for child in paragraph._p.iterchildren():
        if child.tag == qn("a:r"):
            spans.extend(_run_spans(_Run(child, paragraph)))
        elif child.tag == qn("a:br"):
            spans.append(LineBreak())
        elif child.tag == qn("a:fld"):
            field_text = child.find(qn("a:t"))
            text = field_text.text if field_text is not None else ""
            if text:
                spans.append(PlainText(text=text))
    return normalize_spans(spans)


def _is_code(paragraph: _Paragraph) -> bool:
    runs = [run for run in paragraph.runs if run.text.strip()]
    return bool(runs) and all(is_monospace_font(run.font.name) for run in runs)


def _plain_block(paragraph: _Paragraph, spans: list[Span]) -> Block:
    if _is_code(paragraph):
        return CodeBlock(code=paragraph.text.replace("\v", "\n"))
    return Paragraph(children=spans)


def _frame_spans(frame) -> list[Span]:
    spans: list[Span] = []
    for paragraph in frame.paragraphs:
        para_spans = _paragraph_spans(paragraph)
        if para_spans:
            if spans:
                spans.append(LineBreak())
            spans.extend(para_spans)
    return spans


class _SlideReader:
    def __init__(self, adapter: PresentationAdapter, sink: ImageSink, warnings: list[ConversionWarning]) -> None:
        self.include_notes = adapter.config.pptx.include_notes
        self.sink = sink
        self.warnings = warnings
        self._notes_dropped = 0

    def read(self, presentation) -> list[Block]:
        blocks: list[Block] = []
        for number, slide in enumerate(presentation.slides, start=1):
            blocks.extend(self._slide(slide))
            logger.debug("slide %d read", number)
        if self._notes_dropped:
            self.warnings.append(ConversionWarning(
                code="notes.dropped",
                message=f"speaker notes on {self._notes_dropped} slide(s) dropped",
            ))
        return blocks

    def _slide(self, slide) -> list[Block]:
        blocks: list[Block] = []
        title = slide.shapes.title
        title_spans = _frame_spans(title.text_frame) if title is not None else []
        if title_spans:
            centred = title.placeholder_format.type == PP_PLACEHOLDER.CENTER_TITLE
            blocks.append(Heading(level=1 if centred else 2, children=title_spans))
        else:
            blocks.append(SlideMarker())

        title_id = title.shape_id if title is not None else None
        self._shapes(slide.shapes, title_id, blocks)
        self._notes(slide, blocks)
        return blocks

    def _shapes(self, shapes, title_id: int | None, blocks: list[Block]) -> None:
        for shape in shapes:
            if shape.shape_id == title_id:
                continue
            if isinstance(shape, GroupShape):
                self._shapes(shape.shapes, title_id, blocks)
            elif shape.has_chart:
                self.warnings.append(ConversionWarning(code="chart.dropped", message=f"chart {shape.name!r} dropped"))
            elif shape.has_table:
                table = self._table(shape.table)
                if table is not None:
                    blocks.append(table)
            elif isinstance(shape, Picture):
                self._picture(shape, blocks)
            elif shape.has_text_frame:
                if shape.is_placeholder and shape.placeholder_format.type in _BODY_TYPES:
                    blocks.extend(self._body(shape.text_frame))
                else:
                    blocks.extend(self._text(shape.text_frame))

    def _body(self, frame) -> list[Block]:
        paragraphs = [(p, _paragraph_spans(p)) for p in frame.paragraphs]
        paragraphs = [(p, spans) for p, spans in paragraphs if spans]
        single = len(paragraphs) == 1 and paragraphs[0][0].level == 0

        blocks: list[Block] = []
        entries: list[tuple[bool, int, list[Block]]] = []
        for paragraph, spans in paragraphs:
            kind = _bullet_kind(paragraph)
            if kind == "none" or (kind is None and single):
                if entries:
                    blocks.extend(nest_list_items(entries))
                    entries = []
                blocks.append(_plain_block(paragraph, spans))
            else:
                entries.append((kind == "number", paragraph.level, [Paragraph(children=spans)]))
        if entries:
            blocks.extend(nest_list_items(entries))
        return blocks

    @staticmethod
    def _text(frame) -> list[Block]:
        blocks: list[Block] = []
        for paragraph in frame.paragraphs:
            spans = _paragraph_spans(paragraph)
            if spans:
                blocks.append(_plain_block(paragraph, spans))
        return blocks

    def _table(self, grid) -> Table | None:
        rows = [[_frame_spans(cell.text_frame) for cell in row.cells] for row in grid.rows]
        if not rows or not rows[0]:
            return None
        rows, warnings = rectangularize(rows)
        self.warnings.extend(warnings)
        alignments = []
        for cell in grid.rows[0].cells:
            paragraphs = cell.text_frame.paragraphs
            alignments.append(_PPTX_TO_ALIGN.get(paragraphs[0].alignment) if paragraphs else None)
        return Table(rows=rows, alignments=alignments[: len(rows[0])])

    def _picture(self, shape: Picture, blocks: list[Block]) -> None:
        try:
            image = shape.image
        except ValueError:
            # linked rather than embedded
            logger.debug("picture %r has no embedded image", shape.name)
            return
        alt = shape._element._nvXxPr.cNvPr.get("descr", "")
        block = self.sink.add(image.blob, image.ext, alt, self.warnings)
        if block is not None:
            blocks.append(block)

    def _notes(self, slide, blocks: list[Block]) -> None:
        if not slide.has_notes_slide:
            return
        frame = slide.notes_slide.notes_text_frame
        if frame is None or not frame.text.strip():
            return
        if not self.include_notes:
            self._notes_dropped += 1
            return
        paragraphs = [Paragraph(children=spans) for spans in map(_paragraph_spans, frame.paragraphs) if spans]
        blocks.append(Blockquote(blocks=paragraphs))


# ── Export ──────────────────────────────────────────────────────────


@dataclass
class _SlidePlan:
    title: list[Span]
    section: bool = False
    blocks: list[Block] = field(default_factory=list)


def slide_level(blocks: list[Block]) -> int:
    """Shallowest heading level directly followed by non-heading content."""
    levels = [
        block.level
        for block, following in zip(blocks, blocks[1:])
        if isinstance(block, Heading)
        and not isinstance(following, (Heading, SlideMarker, SheetMarker))
    ]
    if levels:
        return min(levels)
    headings = [block.level for block in blocks if isinstance(block, Heading)]
    return min(headings, default=1)


def plan_slides(blocks: list[Block]) -> list[_SlidePlan]:
    level = slide_level(blocks)
    plans: list[_SlidePlan] = []
    current: _SlidePlan | None = None
    for block in blocks:
        if isinstance(block, Heading) and block.level < level:
            plans.append(_SlidePlan(title=block.children, section=True))
            current = None
            continue
        if isinstance(block, Heading) and block.level == level:
            current = _SlidePlan(title=block.children)
            plans.append(current)
            continue
        if isinstance(block, SlideMarker):
            current = _SlidePlan(title=[PlainText(text=block.title)] if block.title else [])
            plans.append(current)
            continue
        if isinstance(block, SheetMarker):
            continue
        if current is None:
            current = _SlidePlan(title=[])
            plans.append(current)
        current.blocks.append(block)
    return plans


def _set_bullet(paragraph: _Paragraph, kind: str, start: int = 1) -> None:
    p_pr = paragraph._p.get_or_add_pPr()
    for child in list(p_pr.iterchildren()):
        if child.tag in _BULLET_TAGS:
            p_pr.remove(child)
    if kind == "none":
        element = OxmlElement("a:buNone")
        p_pr.set("marL", "0")
        p_pr.set("indent", "0")
    elif kind == "number":
        element = OxmlElement("a:buAutoNum")
        element.set("type", "arabicPeriod")
        if start != 1:
            element.set("startAt", str(start))
    else:
        element = OxmlElement("a:buChar")
        element.set("char", "•")
    p_pr.append(element)


def _remove_shape(shape) -> None:
    element = shape._element
    element.getparent().remove(element)


class _DeckWriter:
    def __init__(self, adapter: PresentationAdapter, base_dir: Path, warnings: list[ConversionWarning]) -> None:
        self.code_font = adapter.config.pptx.code_font
        self.base_dir = base_dir
        self.warnings = warnings
        self.deck = Presentation()
        self._first = True

    def build(self, document: Document):
        for plan in plan_slides(document.blocks):
            if plan.section:
                self._section_slide(plan)
            else:
                self._content_slide(plan)
        title = next((b for b in document.blocks if isinstance(b, Heading)), None)
        if title is not None:
            self.deck.core_properties.title = plain_text(title.children, line_break=" ")
        return self.deck

    def _section_slide(self, plan: _SlidePlan) -> None:
        slide = self.deck.slides.add_slide(self.deck.slide_layouts[TITLE_LAYOUT])
        self._spans(slide.shapes.title.text_frame.paragraphs[0], plan.title)
        for placeholder in list(slide.placeholders):
            if placeholder.placeholder_format.idx != 0:
                _remove_shape(placeholder)

    def _content_slide(self, plan: _SlidePlan) -> None:
        slide = self.deck.slides.add_slide(self.deck.slide_layouts[CONTENT_LAYOUT])
        if plan.title:
            self._spans(slide.shapes.title.text_frame.paragraphs[0], plan.title)
        else:
            _remove_shape(slide.shapes.title)

        body = slide.placeholders[BODY_IDX]
        left, top, width, height = body.left, body.top, body.width, body.height
        text_blocks = [b for b in plan.blocks if not isinstance(b, (Table, Image, HorizontalRule))]
        visuals = [b for b in plan.blocks if isinstance(b, (Table, Image))]

        if text_blocks:
            if visuals:
                # setting one dimension on an inheriting placeholder zeroes the others
                body.left, body.top, body.width = left, top, width
                body.height = Emu(int(height * TEXT_SHARE))
                top, height = top + body.height, height - body.height
            self._text(body.text_frame, text_blocks)
        else:
            _remove_shape(body)

        if visuals:
            share = Emu(int(height / len(visuals)))
            for index, block in enumerate(visuals):
                box = (left, Emu(top + share * index), width, share)
                if isinstance(block, Table):
                    self._table(slide, block, box)
                else:
                    self._picture(slide, block, box)

    # ── text ──

    def _text(self, frame, blocks: list[Block]) -> None:
        self._first = True
        for block in blocks:
            self._text_block(frame, block, level=0)

    def _paragraph(self, frame) -> _Paragraph:
        if self._first:
            self._first = False
            return frame.paragraphs[0]
        return frame.add_paragraph()

    def _text_block(self, frame, block: Block, level: int) -> None:
        if isinstance(block, Paragraph):
            paragraph = self._paragraph(frame)
            paragraph.level = level
            _set_bullet(paragraph, "none")
            self._spans(paragraph, block.children)
        elif isinstance(block, Heading):
            paragraph = self._paragraph(frame)
            paragraph.level = level
            _set_bullet(paragraph, "none")
            self._spans(paragraph, [Strong(children=block.children)])
        elif isinstance(block, (BulletList, OrderedList)):
            self._list(frame, block, level)
        elif isinstance(block, CodeBlock):
            paragraph = self._paragraph(frame)
            paragraph.level = level
            _set_bullet(paragraph, "none")
            for index, line in enumerate(block.code.split("\n")):
                if index:
                    paragraph.add_line_break()
                run = paragraph.add_run()
                run.text = line
                run.font.name = self.code_font
        elif isinstance(block, Blockquote):
            for child in block.blocks:
                self._text_block(frame, child, level)

    def _list(self, frame, block: BulletList | OrderedList, level: int) -> None:
        ordered = isinstance(block, OrderedList)
        start = block.start if ordered else 1
        for item in block.items:
            for index, child in enumerate(item.blocks):
                if index == 0 and isinstance(child, Paragraph):
                    paragraph = self._paragraph(frame)
                    paragraph.level = min(level, MAX_LEVEL)
                    _set_bullet(paragraph, "number" if ordered else "char", start)
                    self._spans(paragraph, child.children)
                elif isinstance(child, (BulletList, OrderedList)):
                    self._list(frame, child, level + 1)
                else:
                    self._text_block(frame, child, min(level + 1, MAX_LEVEL))

    def _spans(
        self,
        paragraph: _Paragraph,
        spans: list[Span],
        *,
        bold: bool = False,
        italic: bool = False,
        strike: bool = False,
        link: str | None = None,
    ) -> None:
        for span in spans:
            if isinstance(span, (PlainText, InlineCode)):
                run = paragraph.add_run()
                run.text = span.text if isinstance(span, PlainText) else span.code
                if isinstance(span, InlineCode):
                    run.font.name = self.code_font
                if bold:
                    run.font.bold = True
                if italic:
                    run.font.italic = True
                if strike:
                    run._r.get_or_add_rPr().set("strike", "sngStrike")
                if link:
                    run.hyperlink.address = link
            elif isinstance(span, LineBreak):
                paragraph.add_line_break()
            elif isinstance(span, Strong):
                self._spans(paragraph, span.children, bold=True, italic=italic, strike=strike, link=link)
            elif isinstance(span, Emphasis):
                self._spans(paragraph, span.children, bold=bold, italic=True, strike=strike, link=link)
            elif isinstance(span, Strikethrough):
                self._spans(paragraph, span.children, bold=bold, italic=italic, strike=True, link=link)
            elif isinstance(span, Link):
                self._spans(paragraph, span.children, bold=bold, italic=italic, strike=strike, link=link or span.target)

    # ── visuals ──

    def _table(self, slide, table: Table, box: tuple[int, int, int, int]) -> None:
        if not table.rows or not table.width:
            return
        left, top, width, height = box
        row_height = min(height // len(table.rows), MAX_ROW_HEIGHT)
        frame = slide.shapes.add_table(
            len(table.rows), table.width, left, top, width, Emu(row_height * len(table.rows))
        )
        grid = frame.table
        for r, row in enumerate(table.rows):
            for c, spans in enumerate(row):
                paragraph = grid.cell(r, c).text_frame.paragraphs[0]
                alignment = table.alignments[c] if c < len(table.alignments) else None
                if alignment:
                    paragraph.alignment = _ALIGN_TO_PPTX[alignment]
                self._spans(paragraph, spans)

    def _picture(self, slide, image: Image, box: tuple[int, int, int, int]) -> None:
        left, top, width, height = box
        blob = load_image(image.src, self.base_dir)
        if blob is not None:
            try:
                picture = slide.shapes.add_picture(io.BytesIO(blob), left, top)
            except (OSError, ValueError) as exc:
                logger.debug("python-pptx cannot place image: %s", exc)
            else:
                scale = min(width / picture.width, height / picture.height, 1.0)
                picture.width = Emu(int(picture.width * scale))
                picture.height = Emu(int(picture.height * scale))
                picture.left = Emu(left + (width - picture.width) // 2)
                picture.top = Emu(top + (height - picture.height) // 2)
                picture._element._nvXxPr.cNvPr.set("descr", image.alt)
                return

        self.warnings.append(unresolved(image))
        if image.alt:
            box_shape = slide.shapes.add_textbox(left, top, width, height)
            self._spans(box_shape.text_frame.paragraphs[0], [Emphasis(children=[PlainText(text=image.alt)])])


class PresentationAdapter(FormatAdapter):
    format_tag = "pptx"
    extensions = (".pptx",)
    label = "PowerPoint presentation"

    def _read(self, path: Path) -> AdapterOutput:
        presentation = open_presentation(path)
        warnings: list[ConversionWarning] = []
        reader = _SlideReader(self, ImageSink(self.config.images, path), warnings)
        return AdapterOutput(document=Document(blocks=reader.read(presentation)), warnings=warnings)

    def _build(self, document: Document, dest: Path, warnings: list[ConversionWarning]):
        base_dir = Path(self.config.images.base_dir) if self.config.images.base_dir else dest.parent
        return _DeckWriter(self, base_dir, warnings).build(document)

    def _save(self, native, path: Path) -> None:
        native.save(str(path))
