"""Tests for the presentation adapter (python-pptx)."""

import pytest
from pptx import Presentation

from docbridge.adapters.base import OLE_MAGIC
from docbridge.adapters.presentation import PresentationAdapter, plan_slides, slide_level
from docbridge.config.models import DocBridgeConfig, PptxConfig
from docbridge.errors import SourceUnreadable, UnsupportedVariant
from docbridge.ir import (
    Blockquote,
    Heading,
    Image,
    Paragraph,
    PlainText,
    SlideMarker,
)
from docbridge.markdown import parse

DECK = (
    "# Deck\n"
    "\n"
    "## Intro\n"
    "\n"
    "- alpha\n"
    "- beta\n"
    "  - gamma\n"
    "\n"
    "## Data\n"
    "\n"
    "| A | B |\n"
    "| - | - |\n"
    "| 1 | 2 |\n"
)


def _h(level, text):
    return Heading(level=level, children=[PlainText(text=text)])


def _export_import(markdown, tmp_path, config=None):
    adapter = PresentationAdapter(config)
    dest = tmp_path / "deck.pptx"
    warnings = adapter.write(parse(markdown), dest)
    return adapter.read(dest), warnings


def _notes_deck(path):
    deck = Presentation()
    slide = deck.slides.add_slide(deck.slide_layouts[1])
    slide.shapes.title.text = "Talk"
    slide.placeholders[1].text = "point"
    slide.notes_slide.notes_text_frame.text = "remember the demo"
    deck.save(str(path))


# ── slide planning ──────────────────────────────────────────────────


class TestSlideLevel:
    def test_deepest_heading_with_content(self):
        assert slide_level([_h(1, "a"), _h(2, "b"), Paragraph()]) == 2

    def test_shallow_heading_with_content_wins(self):
        assert slide_level([_h(1, "a"), Paragraph(), _h(2, "b"), Paragraph()]) == 1

    def test_only_headings(self):
        assert slide_level([_h(3, "a"), _h(3, "b")]) == 3

    def test_no_headings(self):
        assert slide_level([Paragraph()]) == 1


class TestPlanSlides:
    def test_sections_and_content_slides(self):
        plans = plan_slides(parse(DECK).blocks)
        assert [p.section for p in plans] == [True, False, False]
        assert [p.title for p in plans] == [
            [PlainText(text="Deck")], [PlainText(text="Intro")], [PlainText(text="Data")],
        ]
        assert len(plans[1].blocks) == 1

    def test_leading_content_gets_untitled_slide(self):
        plans = plan_slides(parse("intro\n\n## A\n\ntext\n").blocks)
        assert plans[0].title == []
        assert len(plans) == 2

    def test_slide_marker_starts_slide(self):
        plans = plan_slides(parse("## A\n\none\n\n<!-- slide: B -->\n\ntwo\n").blocks)
        assert [p.title for p in plans] == [[PlainText(text="A")], [PlainText(text="B")]]

    def test_deeper_heading_stays_on_slide(self):
        plans = plan_slides(parse("## A\n\none\n\n### sub\n\ntwo\n").blocks)
        assert len(plans) == 1
        assert len(plans[0].blocks) == 3


# ── round-trip ──────────────────────────────────────────────────────


class TestPptxRoundTrip:
    def test_deck_survives(self, tmp_path):
        output, warnings = _export_import(DECK, tmp_path)
        assert warnings == []
        assert output.document == parse(DECK)

    def test_slide_count(self, tmp_path):
        dest = tmp_path / "count.pptx"
        PresentationAdapter().write(parse(DECK), dest)
        assert len(Presentation(str(dest)).slides) == 3

    def test_untitled_slide(self, tmp_path):
        output, _ = _export_import("<!-- slide -->\n\nhello\n", tmp_path)
        assert output.document.blocks == [SlideMarker(), Paragraph(children=[PlainText(text="hello")])]

    def test_inline_styles(self, tmp_path):
        md = "## S\n\nsome ~~gone~~ and `code` at [site](https://example.com)\n"
        output, _ = _export_import(md, tmp_path)
        assert output.document == parse(md)

    def test_ordered_list(self, tmp_path):
        md = "## Steps\n\n1. one\n2. two\n"
        output, _ = _export_import(md, tmp_path)
        assert output.document == parse(md)

    def test_picture_keeps_alt_text(self, tmp_path, png_data_uri):
        output, warnings = _export_import(f"## Pic\n\n![box]({png_data_uri})\n", tmp_path)
        assert warnings == []
        image = output.document.blocks[1]
        assert isinstance(image, Image)
        assert image.alt == "box"

    def test_missing_picture_warns(self, tmp_path):
        _, warnings = _export_import("## Pic\n\n![box](missing.png)\n", tmp_path)
        assert [w.code for w in warnings] == ["image.unresolved"]

    def test_top_level_content_slide_reimports_one_level_down(self, tmp_path):
        output, _ = _export_import("# Only\n\ntext\n", tmp_path)
        assert output.document.blocks[0] == _h(2, "Only")


# ── import ──────────────────────────────────────────────────────────


class TestPptxImport:
    def test_notes_dropped_by_default(self, tmp_path):
        path = tmp_path / "notes.pptx"
        _notes_deck(path)
        output = PresentationAdapter().read(path)
        assert output.document.blocks == [_h(2, "Talk"), Paragraph(children=[PlainText(text="point")])]
        assert [w.code for w in output.warnings] == ["notes.dropped"]

    def test_notes_included_as_quote(self, tmp_path):
        path = tmp_path / "notes.pptx"
        _notes_deck(path)
        config = DocBridgeConfig(pptx=PptxConfig(include_notes=True))
        output = PresentationAdapter(config).read(path)
        assert output.document.blocks[-1] == Blockquote(
            blocks=[Paragraph(children=[PlainText(text="remember the demo")])]
        )
        assert output.warnings == []

    def test_legacy_binary(self, tmp_path):
        path = tmp_path / "old.pptx"
        path.write_bytes(OLE_MAGIC + b"\x00" * 512)
        with pytest.raises(UnsupportedVariant):
            PresentationAdapter().read(path)

    def test_not_a_package(self, tmp_path):
        path = tmp_path / "junk.pptx"
        path.write_bytes(b"\x00\x01garbage")
        with pytest.raises(SourceUnreadable):
            PresentationAdapter().read(path)
