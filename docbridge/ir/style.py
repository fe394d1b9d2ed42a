"""Style Context — presentational side channel used by rich-format writers.

Markdown carries almost no presentation, so writers for formats with real
styling (docx, pptx) ask the context how a node should look. Overrides are
keyed by node identity and live only as long as the export call that
created the context.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel

from docbridge.ir.models import (
    Alignment,
    Block,
    Blockquote,
    BulletList,
    CodeBlock,
    Document,
    Heading,
    OrderedList,
    Table,
)

MONOSPACE_FONT = "Courier New"


class BlockStyle(BaseModel):
    alignment: Alignment | None = None
    bold: bool = False
    italic: bool = False
    font_name: str | None = None
    font_size: float | None = None


_KIND_DEFAULTS: dict[str, BlockStyle] = {
    "heading": BlockStyle(bold=True),
    "code_block": BlockStyle(font_name=MONOSPACE_FONT),
    "blockquote": BlockStyle(italic=True),
}


class StyleContext:
    """Maps IR nodes to BlockStyle, falling back to per-kind defaults."""

    def __init__(self, code_font: str = MONOSPACE_FONT) -> None:
        self._overrides: dict[int, BlockStyle] = {}
        self._column_alignments: dict[int, list[Alignment | None]] = {}
        self._defaults = dict(_KIND_DEFAULTS)
        self._defaults["code_block"] = BlockStyle(font_name=code_font)
        # Keeps styled nodes alive so their ids stay unique for our lifetime.
        self._pinned: list[object] = []

    @classmethod
    def from_document(cls, document: Document, code_font: str = MONOSPACE_FONT) -> StyleContext:
        """Populate a context from what Markdown syntax itself implies."""
        ctx = cls(code_font=code_font)
        for block in _walk(document.blocks):
            if isinstance(block, Table):
                ctx.set_column_alignments(block, block.alignments)
            elif isinstance(block, CodeBlock):
                ctx.set(block, BlockStyle(font_name=code_font))
        return ctx

    def set(self, node: object, style: BlockStyle) -> None:
        self._overrides[id(node)] = style
        self._pinned.append(node)

    def style_for(self, node: object) -> BlockStyle:
        override = self._overrides.get(id(node))
        if override is not None:
            return override
        return self._defaults.get(getattr(node, "kind", ""), BlockStyle())

    def set_column_alignments(self, table: Table, alignments: list[Alignment | None]) -> None:
        self._column_alignments[id(table)] = list(alignments)
        self._pinned.append(table)

    def column_alignment(self, table: Table, column: int) -> Alignment | None:
        alignments = self._column_alignments.get(id(table), table.alignments)
        if column < len(alignments):
            return alignments[column]
        return None

    def heading_size(self, heading: Heading, base_size: float) -> float:
        """Font size for a heading, scaled down from level 1."""
        style = self.style_for(heading)
        if style.font_size:
            return style.font_size
        scale = {1: 2.0, 2: 1.6, 3: 1.35, 4: 1.2, 5: 1.1, 6: 1.0}
        return round(base_size * scale.get(heading.level, 1.0), 1)


def _walk(blocks: Iterable[Block]) -> Iterable[Block]:
    for block in blocks:
        yield block
        if isinstance(block, Blockquote):
            yield from _walk(block.blocks)
        elif isinstance(block, (BulletList, OrderedList)):
            for item in block.items:
                yield from _walk(item.blocks)
