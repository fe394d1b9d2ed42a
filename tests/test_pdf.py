"""Tests for the PDF adapter (PyMuPDF).

PDF import is heuristic, so round-trip checks look for the content rather
than exact structural equality.
"""

import pymupdf
import pytest

from docbridge.adapters.images import ImageSink
from docbridge.adapters.pdf import PdfAdapter, _BlockBuilder, _body_size, _join_lines, _Line, _PdfReader
from docbridge.config.models import DocBridgeConfig, ImageConfig, PdfConfig
from docbridge.errors import SourceUnreadable, UnsupportedVariant, WriteFailed
from docbridge.ir import (
    CodeBlock,
    Heading,
    Image,
    Link,
    OrderedList,
    Paragraph,
    PlainText,
    Table,
    plain_text,
)
from docbridge.markdown import parse, serialize


def _export(markdown, path, config=None):
    return PdfAdapter(config).write(parse(markdown), path)


def _roundtrip(markdown, tmp_path, config=None):
    path = tmp_path / "out.pdf"
    _export(markdown, path, config)
    return PdfAdapter(config).read(path)


def _links(spans):
    for span in spans:
        if isinstance(span, Link):
            yield span
        elif hasattr(span, "children"):
            yield from _links(span.children)


def _line(text, size, mono=False, y=72):
    return _Line(0, (72, y, 300, y + size), size, text, [PlainText(text=text)], mono)


# ── export ──────────────────────────────────────────────────────────


class TestPdfExport:
    def test_writes_valid_pdf_with_title(self, sample_markdown, tmp_path):
        path = tmp_path / "report.pdf"
        assert _export(sample_markdown, path) == []
        with pymupdf.open(path) as pdf:
            assert pdf.is_pdf
            assert pdf.metadata["title"] == "Quarterly Report"
            assert "Revenue grew" in pdf[0].get_text()

    def test_page_size_setting(self, tmp_path):
        path = tmp_path / "letter.pdf"
        _export("hello\n", path, DocBridgeConfig(pdf=PdfConfig(page_size="letter")))
        with pymupdf.open(path) as pdf:
            assert (pdf[0].rect.width, pdf[0].rect.height) == (612, 792)

    def test_long_document_paginates(self, tmp_path):
        path = tmp_path / "long.pdf"
        _export("\n\n".join(f"Paragraph number {n} of the long document." for n in range(200)), path)
        with pymupdf.open(path) as pdf:
            assert pdf.page_count > 1

    def test_slide_marker_starts_new_page(self, tmp_path):
        path = tmp_path / "slides.pdf"
        _export("first\n\n<!-- slide -->\n\nsecond\n", path)
        with pymupdf.open(path) as pdf:
            assert pdf.page_count == 2
            assert "second" in pdf[1].get_text()

    def test_empty_document_has_one_page(self, tmp_path):
        path = tmp_path / "empty.pdf"
        _export("", path)
        with pymupdf.open(path) as pdf:
            assert pdf.page_count == 1

    def test_links_are_clickable(self, tmp_path):
        path = tmp_path / "link.pdf"
        _export("see [the site](https://example.com)\n", path)
        with pymupdf.open(path) as pdf:
            assert [link["uri"] for link in pdf[0].get_links()] == ["https://example.com"]

    def test_missing_image_warns(self, tmp_path):
        warnings = _export("![chart](missing.png)\n", tmp_path / "img.pdf")
        assert [w.code for w in warnings] == ["image.unresolved"]


# ── round-trip ──────────────────────────────────────────────────────


class TestPdfRoundTrip:
    def test_sample_content_survives(self, sample_markdown, tmp_path):
        output = _roundtrip(sample_markdown, tmp_path)
        blocks = output.document.blocks

        assert blocks[0] == Heading(level=1, children=[PlainText(text="Quarterly Report")])
        markdown = serialize(output.document)
        for word in ("Revenue grew", "strongly", "alpha", "beta", "gamma", "first", "second", "quoted line"):
            assert word in markdown

        codes = [b for b in blocks if isinstance(b, CodeBlock)]
        assert [c.code for c in codes] == ["print('hi')"]

        tables = [b for b in blocks if isinstance(b, Table)]
        assert len(tables) == 1
        assert [[plain_text(cell) for cell in row] for row in tables[0].rows] == [["Name", "Age"], ["Ada", "36"]]

    def test_heading_levels(self, tmp_path):
        output = _roundtrip("# One\n\nbody text here\n\n## Two\n\nmore body text\n\n### Three\n\nand more\n", tmp_path)
        headings = [(b.level, plain_text(b.children)) for b in output.document.blocks if isinstance(b, Heading)]
        assert headings == [(1, "One"), (2, "Two"), (3, "Three")]

    def test_link_target_recovered(self, tmp_path):
        output = _roundtrip("see [the site](https://example.com) today\n", tmp_path)
        targets = [link.target for link in _links(output.document.blocks[0].children)]
        assert targets == ["https://example.com"]

    def test_wrapped_paragraph_rejoins(self, tmp_path):
        text = " ".join(["lorem ipsum dolor sit amet"] * 12)
        output = _roundtrip(text + "\n", tmp_path)
        assert len(output.document.blocks) == 1
        assert plain_text(output.document.blocks[0].children) == text

    def test_image_recovered(self, tmp_path, png_data_uri):
        output = _roundtrip(f"![red]({png_data_uri})\n", tmp_path)
        assert any(isinstance(b, Image) for b in output.document.blocks)

    def test_images_can_be_dropped(self, tmp_path, png_data_uri):
        config = DocBridgeConfig(images=ImageConfig(mode="drop"))
        output = _roundtrip(f"text\n\n![red]({png_data_uri})\n", tmp_path, config)
        assert not any(isinstance(b, Image) for b in output.document.blocks)
        assert "image.dropped" in [w.code for w in output.warnings]

    def test_blank_page_has_no_text_layer(self, tmp_path):
        output = _roundtrip("", tmp_path)
        assert output.document.blocks == []
        assert [w.code for w in output.warnings] == ["content.dropped"]


# ── import heuristics ───────────────────────────────────────────────


class TestHeuristics:
    def _reader(self, tmp_path):
        reader = _PdfReader(PdfAdapter(), ImageSink(ImageConfig(), tmp_path / "x.pdf"), [])
        reader.body_size = 10.0
        return reader

    def test_heading_level_thresholds(self, tmp_path):
        reader = self._reader(tmp_path)
        assert reader.heading_level(_line("Big", 18)) == 1
        assert reader.heading_level(_line("Medium", 14)) == 2
        assert reader.heading_level(_line("Small", 12)) == 3
        assert reader.heading_level(_line("Body", 10)) is None

    def test_monospace_and_long_lines_are_not_headings(self, tmp_path):
        reader = self._reader(tmp_path)
        assert reader.heading_level(_line("code", 18, mono=True)) is None
        assert reader.heading_level(_line("x" * 200, 18)) is None

    def test_body_size_is_character_weighted(self):
        lines = [_line("Title", 20), _line("a long line of body text", 10.9), _line("more body", 11.1)]
        assert _body_size(lines) == 11.0
        assert _body_size([]) is None

    def test_join_lines_undoes_hyphenation(self):
        joined = _join_lines([PlainText(text="conver-")], [PlainText(text="sion works")])
        assert joined == [PlainText(text="conversion works")]

    def test_join_lines_keeps_real_dashes(self):
        joined = _join_lines([PlainText(text="well-")], [PlainText(text="Known")])
        assert plain_text(joined) == "well- Known"

    def test_wrapped_line_starting_with_a_year_stays_in_paragraph(self, tmp_path):
        builder = _BlockBuilder(self._reader(tmp_path))
        builder.add(_line("The project began in", 10, y=72))
        builder.add(_line("1999. Then it grew.", 10, y=86))
        assert builder.finish() == [Paragraph(children=[PlainText(text="The project began in 1999. Then it grew.")])]

    def test_list_after_a_gap_is_still_a_list(self, tmp_path):
        builder = _BlockBuilder(self._reader(tmp_path))
        builder.add(_line("Steps:", 10, y=72))
        builder.add(_line("2. second", 10, y=96))
        blocks = builder.finish()
        assert blocks[0] == Paragraph(children=[PlainText(text="Steps:")])
        assert isinstance(blocks[1], OrderedList)


# ── errors ──────────────────────────────────────────────────────────


class TestPdfErrors:
    def test_document_closed_when_destination_cannot_be_created(self, tmp_path, monkeypatch):
        built = []
        build = PdfAdapter._build

        def keep(adapter, *args):
            native = build(adapter, *args)
            built.append(native)
            return native

        def refuse(*args, **kwargs):
            raise PermissionError("read-only directory")

        monkeypatch.setattr(PdfAdapter, "_build", keep)
        monkeypatch.setattr("docbridge.adapters.base.tempfile.mkstemp", refuse)
        with pytest.raises(WriteFailed):
            _export("# Title\n\nbody\n", tmp_path / "out.pdf")
        assert built[0].is_closed

    def test_encrypted(self, tmp_path):
        path = tmp_path / "locked.pdf"
        pdf = pymupdf.open()
        pdf.new_page().insert_text((72, 72), "secret")
        pdf.save(str(path), encryption=pymupdf.PDF_ENCRYPT_AES_256, owner_pw="owner", user_pw="user")
        pdf.close()
        with pytest.raises(UnsupportedVariant, match="encrypted"):
            PdfAdapter().read(path)

    def test_image_file_is_not_a_pdf(self, tmp_path, png_bytes):
        path = tmp_path / "picture.png"
        path.write_bytes(png_bytes)
        with pytest.raises(UnsupportedVariant):
            PdfAdapter().read(path)

    def test_corrupt(self, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"%PDF-1.7\nthis is not really a pdf\n")
        with pytest.raises(SourceUnreadable):
            PdfAdapter().read(path)

    def test_missing(self, tmp_path):
        with pytest.raises(SourceUnreadable):
            PdfAdapter().read(tmp_path / "nope.pdf")
