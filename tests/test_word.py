"""Tests for the Word-processor adapter (python-docx)."""

import zipfile

import docx
import pytest
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt

from docbridge.adapters.base import OLE_MAGIC
from docbridge.adapters.word import DocxAdapter, _numbering_formats
from docbridge.config.models import DocBridgeConfig, DocxConfig
from docbridge.errors import SourceUnreadable, UnsupportedVariant
from docbridge.ir import (
    BulletList,
    CodeBlock,
    Emphasis,
    Heading,
    Image,
    InlineCode,
    OrderedList,
    Paragraph,
    PlainText,
    Strong,
    Table,
)
from docbridge.markdown import parse


def _export_import(markdown, tmp_path, config=None):
    adapter = DocxAdapter(config)
    dest = tmp_path / "out.docx"
    warnings = adapter.write(parse(markdown), dest)
    return adapter.read(dest), warnings


# ── round-trip ──────────────────────────────────────────────────────


class TestDocxRoundTrip:
    def test_full_document_survives(self, sample_markdown, tmp_path):
        output, _ = _export_import(sample_markdown, tmp_path)
        assert output.document == parse(sample_markdown)

    def test_heading_levels(self, tmp_path):
        output, _ = _export_import("# One\n\n### Three\n\n###### Six\n", tmp_path)
        assert [b.level for b in output.document.blocks] == [1, 3, 6]

    def test_three_level_list(self, tmp_path):
        md = "- a\n  - b\n    - c\n"
        output, warnings = _export_import(md, tmp_path)
        assert output.document == parse(md)
        assert warnings == []

    def test_deep_list_flattened_with_warning(self, tmp_path):
        md = "- a\n  - b\n    - c\n      - d\n"
        output, warnings = _export_import(md, tmp_path)
        assert [w.code for w in warnings] == ["list.flattened"]
        third = output.document.blocks[0].items[0].blocks[1].items[0].blocks[1]
        texts = [item.blocks[0].children[0].text for item in third.items]
        assert texts == ["c", "d"]

    def test_max_list_depth_setting(self, tmp_path):
        config = DocBridgeConfig(docx=DocxConfig(max_list_depth=1))
        output, warnings = _export_import("- a\n  - b\n", tmp_path, config)
        assert warnings[0].code == "list.flattened"
        assert len(output.document.blocks[0].items) == 2

    def test_table_alignment(self, tmp_path):
        md = "| a | b |\n| :-: | --: |\n| 1 | 2 |\n"
        output, _ = _export_import(md, tmp_path)
        assert output.document.blocks[0].alignments == ["center", "right"]

    def test_internal_anchor_link(self, tmp_path):
        output, _ = _export_import("see [below](#details)\n", tmp_path)
        link = output.document.blocks[0].children[1]
        assert link.target == "#details"

    def test_core_title_from_first_heading(self, tmp_path):
        dest = tmp_path / "t.docx"
        DocxAdapter().write(parse("intro\n\n## The *Title*\n"), dest)
        assert docx.Document(str(dest)).core_properties.title == "The Title"

    def test_embedded_image(self, tmp_path, png_data_uri):
        output, warnings = _export_import(f"![a red box]({png_data_uri})\n", tmp_path)
        assert warnings == []
        image = output.document.blocks[0]
        assert isinstance(image, Image)
        assert image.alt == "a red box"
        assert image.src.startswith("data:image/png;base64,")

    def test_relative_image_resolves_against_destination(self, tmp_path, png_bytes):
        (tmp_path / "pic.png").write_bytes(png_bytes)
        output, warnings = _export_import("![pic](pic.png)\n", tmp_path)
        assert warnings == []
        assert isinstance(output.document.blocks[0], Image)

    def test_missing_image_keeps_alt_text(self, tmp_path):
        output, warnings = _export_import("![gone](nowhere.png)\n", tmp_path)
        assert [w.code for w in warnings] == ["image.unresolved"]
        assert output.document.blocks == [Paragraph(children=[Emphasis(children=[PlainText(text="gone")])])]


# ── import of hand-built documents ──────────────────────────────────


class TestDocxImport:
    def test_title_style_and_numbering_lists(self, tmp_path):
        word = docx.Document()
        word.add_paragraph("Doc", style="Title")
        word.add_paragraph("first", style="List Number")
        word.add_paragraph("second", style="List Number")
        word.add_paragraph("dot", style="List Bullet")
        path = tmp_path / "in.docx"
        word.save(str(path))

        blocks = DocxAdapter().read(path).document.blocks
        assert blocks[0] == Heading(level=1, children=[PlainText(text="Doc")])
        assert [len(b.items) for b in blocks[1:]] == [2, 1]
        assert isinstance(blocks[2], BulletList)

    def test_direct_numbering_resolved_through_numbering_part(self, tmp_path):
        word = docx.Document()
        number_id = word.styles["List Number"].element.xpath("./w:pPr/w:numPr/w:numId/@w:val")[0]
        bullet_id = word.styles["List Bullet"].element.xpath("./w:pPr/w:numPr/w:numId/@w:val")[0]
        for text, num_id in (("one", number_id), ("two", number_id), ("dot", bullet_id)):
            paragraph = word.add_paragraph(text)
            num_pr = OxmlElement("w:numPr")
            ilvl = OxmlElement("w:ilvl")
            ilvl.set(qn("w:val"), "0")
            num = OxmlElement("w:numId")
            num.set(qn("w:val"), num_id)
            num_pr.append(ilvl)
            num_pr.append(num)
            paragraph._p.get_or_add_pPr().append(num_pr)
        path = tmp_path / "numbered.docx"
        word.save(str(path))

        formats = _numbering_formats(docx.Document(str(path)))
        assert formats[(number_id, "0")] == "decimal"
        assert formats[(bullet_id, "0")] == "bullet"

        blocks = DocxAdapter().read(path).document.blocks
        assert [type(b) for b in blocks] == [OrderedList, BulletList]
        assert [item.blocks for item in blocks[0].items] == [
            [Paragraph(children=[PlainText(text="one")])],
            [Paragraph(children=[PlainText(text="two")])],
        ]

    def test_default_template_imports(self, tmp_path):
        path = tmp_path / "plain.docx"
        word = docx.Document()
        word.add_paragraph("just text")
        word.save(str(path))
        assert DocxAdapter().read(path).document.blocks == [Paragraph(children=[PlainText(text="just text")])]

    def test_monospace_runs(self, tmp_path):
        word = docx.Document()
        paragraph = word.add_paragraph("call ")
        run = paragraph.add_run("main()")
        run.font.name = "Consolas"
        code = word.add_paragraph()
        code_run = code.add_run("x = 1")
        code_run.font.name = "Courier New"
        code_run.font.size = Pt(10)
        path = tmp_path / "in.docx"
        word.save(str(path))

        blocks = DocxAdapter().read(path).document.blocks
        assert blocks[0].children == [PlainText(text="call "), InlineCode(code="main()")]
        assert blocks[1] == CodeBlock(code="x = 1")

    def test_ragged_table_is_padded(self, tmp_path):
        word = docx.Document()
        table = word.add_table(rows=2, cols=2)
        table.cell(0, 0).text = "h1"
        table.cell(0, 1).text = "h2"
        table.cell(1, 0).merge(table.cell(1, 1)).text = "wide"
        path = tmp_path / "in.docx"
        word.save(str(path))

        output = DocxAdapter().read(path)
        table_block = output.document.blocks[0]
        assert isinstance(table_block, Table)
        assert all(len(row) == 2 for row in table_block.rows)

    def test_bold_header_unwrapped_only_when_uniform(self, tmp_path):
        word = docx.Document()
        table = word.add_table(rows=2, cols=2)
        table.cell(0, 0).paragraphs[0].add_run("bold").bold = True
        table.cell(0, 1).paragraphs[0].add_run("plain")
        table.cell(1, 0).text = "1"
        table.cell(1, 1).text = "2"
        path = tmp_path / "in.docx"
        word.save(str(path))

        header = DocxAdapter().read(path).document.blocks[0].rows[0]
        assert header[0] == [Strong(children=[PlainText(text="bold")])]


# ── errors ──────────────────────────────────────────────────────────


class TestDocxErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceUnreadable, match="not found"):
            DocxAdapter().read(tmp_path / "nope.docx")

    def test_directory(self, tmp_path):
        with pytest.raises(SourceUnreadable, match="not a regular file"):
            DocxAdapter().read(tmp_path)

    def test_corrupt_container(self, tmp_path):
        path = tmp_path / "bad.docx"
        path.write_bytes(b"this is not a zip file")
        with pytest.raises(SourceUnreadable):
            DocxAdapter().read(path)

    def test_legacy_binary(self, tmp_path):
        path = tmp_path / "old.docx"
        path.write_bytes(OLE_MAGIC + b"\x00" * 512)
        with pytest.raises(UnsupportedVariant):
            DocxAdapter().read(path)

    def test_zip_without_word_part(self, tmp_path):
        path = tmp_path / "empty.docx"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("hello.txt", "hi")
        with pytest.raises(SourceUnreadable):
            DocxAdapter().read(path)
