"""Spreadsheet adapter (openpyxl).

A workbook maps to a run of tables: one per worksheet on import, one
worksheet per table on export. Formulas are read through their cached
values, so what comes out is what the user last saw in Excel.
"""

from __future__ import annotations

import logging
import re
import zipfile
from datetime import date, datetime, time, timedelta
from pathlib import Path

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment as CellAlignment
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from docbridge.adapters.base import AdapterOutput, FormatAdapter, is_ole_container
from docbridge.errors import SourceUnreadable, UnsupportedVariant
from docbridge.ir import (
    Block,
    BulletList,
    CodeBlock,
    ConversionWarning,
    Document,
    Heading,
    Image,
    OrderedList,
    Paragraph,
    PlainText,
    SheetMarker,
    Span,
    Table,
    normalize_spans,
    plain_text,
    text_spans,
)

logger = logging.getLogger(__name__)

MAX_SHEET_TITLE = 31
MAX_COLUMN_WIDTH = 60
_INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")
_INT_RE = re.compile(r"^-?\d{1,15}$")
_FLOAT_RE = re.compile(r"^-?\d*\.\d+(?:[eE][+-]?\d+)?$")
_HORIZONTAL = {"left", "center", "right"}


def cell_text(value: object) -> str:
    """Render a cached cell value the way a reader of the sheet would see it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == time(0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return str(value)
    return str(value)


def coerce_cell(text: str) -> object:
    """Turn numeric or boolean-looking text back into a typed cell value.

    Only conversions that render back to the same text are applied, so
    "007" and "1.50" stay strings.
    """
    if _INT_RE.match(text) and str(int(text)) == text:
        return int(text)
    if _FLOAT_RE.match(text):
        value = float(text)
        if str(value) == text:
            return value
    if text in ("TRUE", "FALSE"):
        return text == "TRUE"
    return text


def _check_package(path: Path) -> None:
    if is_ole_container(path):
        raise UnsupportedVariant("legacy binary (.xls) or encrypted workbook", path=path)
    try:
        with zipfile.ZipFile(path) as archive:
            types = archive.read("[Content_Types].xml").decode("utf-8", "replace")
    except (zipfile.BadZipFile, KeyError) as exc:
        raise SourceUnreadable("not a spreadsheet package (corrupt or not a zip container)", path=path) from exc

    if "spreadsheetml.sheet.main+xml" in types:
        return
    if "macroEnabled" in types:
        raise UnsupportedVariant("macro-enabled workbook", path=path)
    if "spreadsheetml.template.main+xml" in types:
        raise UnsupportedVariant("workbook template", path=path)
    raise SourceUnreadable("package has no workbook part", path=path)


# ── Import ──────────────────────────────────────────────────────────


def _sheet_table(sheet: Worksheet) -> Table | None:
    grid: list[list[str]] = []
    header_align: list[str | None] = []
    for row in sheet.iter_rows():
        values = [cell_text(cell.value) for cell in row]
        if not any(value.strip() for value in values):
            continue
        if not grid:
            header_align = [cell.alignment.horizontal if cell.has_style else None for cell in row]
        grid.append(values)
    if not grid:
        return None

    used = [i for row in grid for i, value in enumerate(row) if value.strip()]
    first, last = min(used), max(used) + 1
    rows: list[list[list[Span]]] = []
    for row in grid:
        row = row + [""] * (last - len(row))
        rows.append([normalize_spans(text_spans(value)) for value in row[first:last]])

    alignments = [
        align if align in _HORIZONTAL else None
        for align in (header_align + [None] * last)[first:last]
    ]
    return Table(rows=rows, alignments=alignments)


def _read_workbook(path: Path) -> AdapterOutput:
    _check_package(path)
    try:
        with open(path, "rb") as fh:
            workbook = load_workbook(fh, data_only=True)
    except InvalidFileException as exc:
        raise UnsupportedVariant(str(exc), path=path) from exc
    except (zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise SourceUnreadable(f"corrupt workbook: {exc}", path=path) from exc

    warnings: list[ConversionWarning] = []
    for chart in workbook.chartsheets:
        warnings.append(ConversionWarning(code="chart.dropped", message=f"chart sheet {chart.title!r} dropped"))

    sheets = workbook.worksheets
    blocks: list[Block] = []
    for sheet in sheets:
        table = _sheet_table(sheet)
        if table is None:
            blocks.append(SheetMarker(name=sheet.title))
            continue
        if len(sheets) > 1:
            blocks.append(Heading(level=2, children=[PlainText(text=sheet.title)]))
        blocks.append(table)
        logger.debug("sheet %r: %d row(s) x %d column(s)", sheet.title, len(table.rows), table.width)

    workbook.close()
    return AdapterOutput(document=Document(blocks=blocks), warnings=warnings)


# ── Export ──────────────────────────────────────────────────────────


def _block_text(block: Block) -> str:
    if isinstance(block, (Heading, Paragraph)):
        return plain_text(block.children)
    if isinstance(block, CodeBlock):
        return block.code
    if isinstance(block, Image):
        return block.alt
    if isinstance(block, (BulletList, OrderedList)):
        return "\n".join(
            _block_text(child) for item in block.items for child in item.blocks
        )
    if hasattr(block, "blocks"):
        return "\n".join(_block_text(child) for child in block.blocks)
    return ""


class _WorkbookWriter:
    def __init__(self, adapter: SpreadsheetAdapter, warnings: list[ConversionWarning]) -> None:
        self.config = adapter.config.xlsx
        self.warnings = warnings
        self.workbook = Workbook()
        self.workbook.remove(self.workbook.active)
        self._titles: set[str] = set()

    def build(self, document: Document) -> Workbook:
        tables = [b for b in document.blocks if isinstance(b, (Table, SheetMarker))]
        if tables:
            self._tables(document.blocks)
        else:
            self._prose(document.blocks)
        if not self.workbook.worksheets:
            self.workbook.create_sheet(self._title("", 1))
        return self.workbook

    def _tables(self, blocks: list[Block]) -> None:
        marker: SheetMarker | None = None
        heading: Heading | None = None
        dropped = 0
        for block in blocks:
            if isinstance(block, SheetMarker):
                if marker is not None:
                    self._blank_sheet(marker)
                if heading is not None:
                    dropped += 1
                    heading = None
                marker = block
                continue
            if isinstance(block, Table):
                if marker is not None:
                    name = marker.name
                elif heading is not None:
                    name = plain_text(heading.children, line_break=" ")
                else:
                    name = ""
                self._write_table(block, name)
                marker = heading = None
                continue

            # a marker not directly followed by its table names a blank sheet
            if marker is not None:
                self._blank_sheet(marker)
                marker = None
            if heading is not None:
                dropped += 1
            heading = block if isinstance(block, Heading) else None
            if heading is None:
                dropped += 1

        if heading is not None:
            dropped += 1
        if marker is not None:
            self._blank_sheet(marker)
        if dropped:
            self.warnings.append(ConversionWarning(
                code="content.dropped",
                message=f"{dropped} block(s) outside tables have no place in a workbook",
            ))

    def _blank_sheet(self, marker: SheetMarker) -> None:
        self.workbook.create_sheet(self._title(marker.name, self._next_index()))

    def _prose(self, blocks: list[Block]) -> None:
        sheet = self.workbook.create_sheet(self._title("", 1))
        row = 1
        for block in blocks:
            text = _block_text(block)
            if not text:
                continue
            cell = sheet.cell(row=row, column=1)
            self._set_value(cell, text)
            if "\n" in text:
                cell.alignment = CellAlignment(wrap_text=True)
            row += 1
        self._fit_columns(sheet)

    def _next_index(self) -> int:
        return len(self.workbook.worksheets) + 1

    def _title(self, name: str, index: int) -> str:
        title = _INVALID_TITLE_CHARS.sub("_", name).strip().strip("'")[:MAX_SHEET_TITLE]
        if not title:
            title = f"Sheet{index}"
        base, n = title, 2
        while title.lower() in self._titles:
            suffix = f" ({n})"
            title = base[: MAX_SHEET_TITLE - len(suffix)] + suffix
            n += 1
        self._titles.add(title.lower())
        if name and title != name:
            self.warnings.append(ConversionWarning(
                code="sheet.renamed", message=f"sheet {name!r} renamed to {title!r}",
            ))
        return title

    def _write_table(self, table: Table, name: str) -> None:
        sheet = self.workbook.create_sheet(self._title(name, self._next_index()))
        for r, row in enumerate(table.rows, start=1):
            for c, spans in enumerate(row, start=1):
                text = plain_text(spans)
                cell = sheet.cell(row=r, column=c)
                self._set_value(cell, text)
                if r == 1 and self.config.header_bold:
                    cell.font = Font(bold=True)
                align = table.alignments[c - 1] if c - 1 < len(table.alignments) else None
                if align or "\n" in text:
                    cell.alignment = CellAlignment(horizontal=align, wrap_text="\n" in text or None)
        self._fit_columns(sheet)

    def _set_value(self, cell, text: str) -> None:
        if not text:
            return
        value = coerce_cell(text) if self.config.coerce_values else text
        cell.value = value
        if isinstance(value, str) and value.startswith("="):
            # openpyxl treats leading "=" as a formula
            cell.data_type = "s"

    @staticmethod
    def _fit_columns(sheet: Worksheet) -> None:
        widths: dict[int, int] = {}
        for row in sheet.iter_rows():
            for cell in row:
                if cell.value is None:
                    continue
                longest = max(len(line) for line in str(cell.value).split("\n"))
                widths[cell.column] = max(widths.get(cell.column, 0), longest)
        for column, width in widths.items():
            sheet.column_dimensions[get_column_letter(column)].width = min(width + 2, MAX_COLUMN_WIDTH)


class SpreadsheetAdapter(FormatAdapter):
    format_tag = "xlsx"
    extensions = (".xlsx",)
    label = "Excel workbook"

    def _read(self, path: Path) -> AdapterOutput:
        return _read_workbook(path)

    def _build(self, document: Document, dest: Path, warnings: list[ConversionWarning]) -> Workbook:
        return _WorkbookWriter(self, warnings).build(document)

    def _save(self, native: Workbook, path: Path) -> None:
        native.save(str(path))
