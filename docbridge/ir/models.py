"""Pydantic models for the document intermediate representation.

The IR is an ordered list of Block nodes; inline content inside a block is
an ordered list of Span nodes. Every node carries a ``kind`` literal that
acts as the discriminator when a tree is validated from plain data, and
equality is structural, so two trees built from the same input compare
equal with ``==``.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

Alignment = Literal["left", "center", "right"]


# ---------------------------------------------------------------------------
# Spans
# ---------------------------------------------------------------------------


class PlainText(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class Emphasis(BaseModel):
    kind: Literal["emphasis"] = "emphasis"
    children: list[Span] = Field(default_factory=list)


class Strong(BaseModel):
    kind: Literal["strong"] = "strong"
    children: list[Span] = Field(default_factory=list)


class Strikethrough(BaseModel):
    kind: Literal["strike"] = "strike"
    children: list[Span] = Field(default_factory=list)


class InlineCode(BaseModel):
    kind: Literal["code"] = "code"
    code: str


class Link(BaseModel):
    kind: Literal["link"] = "link"
    children: list[Span] = Field(default_factory=list)
    target: str
    title: str | None = None


class LineBreak(BaseModel):
    kind: Literal["break"] = "break"


Span = Annotated[
    Union[PlainText, Emphasis, Strong, Strikethrough, InlineCode, Link, LineBreak],
    Field(discriminator="kind"),
]

# Span containers share the same shape and differ only by kind.
CONTAINER_SPANS: tuple[type[BaseModel], ...] = (Emphasis, Strong, Strikethrough)


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


class Heading(BaseModel):
    kind: Literal["heading"] = "heading"
    level: int = Field(default=1, ge=1, le=6)
    children: list[Span] = Field(default_factory=list)


class Paragraph(BaseModel):
    kind: Literal["paragraph"] = "paragraph"
    children: list[Span] = Field(default_factory=list)


class ListItem(BaseModel):
    kind: Literal["list_item"] = "list_item"
    blocks: list[Block] = Field(default_factory=list)


class BulletList(BaseModel):
    kind: Literal["bullet_list"] = "bullet_list"
    items: list[ListItem] = Field(default_factory=list)


class OrderedList(BaseModel):
    kind: Literal["ordered_list"] = "ordered_list"
    items: list[ListItem] = Field(default_factory=list)
    start: int = Field(default=1, ge=0)


class Blockquote(BaseModel):
    kind: Literal["blockquote"] = "blockquote"
    blocks: list[Block] = Field(default_factory=list)


class CodeBlock(BaseModel):
    kind: Literal["code_block"] = "code_block"
    code: str = ""
    language: str | None = None


class Table(BaseModel):
    """A rectangular grid of cells; ``rows[0]`` is the header row."""

    kind: Literal["table"] = "table"
    rows: list[list[list[Span]]] = Field(default_factory=list)
    alignments: list[Alignment | None] = Field(default_factory=list)

    @property
    def width(self) -> int:
        return len(self.rows[0]) if self.rows else 0

    @property
    def header(self) -> list[list[Span]]:
        return self.rows[0] if self.rows else []

    @property
    def body(self) -> list[list[list[Span]]]:
        return self.rows[1:]


class HorizontalRule(BaseModel):
    kind: Literal["hr"] = "hr"


class Image(BaseModel):
    kind: Literal["image"] = "image"
    src: str
    alt: str = ""
    title: str | None = None


class SheetMarker(BaseModel):
    """Names the spreadsheet sheet that the following table belongs to."""

    kind: Literal["sheet_marker"] = "sheet_marker"
    name: str = ""


class SlideMarker(BaseModel):
    """Forces a slide break in presentation output."""

    kind: Literal["slide_marker"] = "slide_marker"
    title: str = ""


Block = Annotated[
    Union[
        Heading,
        Paragraph,
        BulletList,
        OrderedList,
        Blockquote,
        CodeBlock,
        Table,
        HorizontalRule,
        Image,
        SheetMarker,
        SlideMarker,
    ],
    Field(discriminator="kind"),
]


class Document(BaseModel):
    """Root of the IR tree. Built fresh for every conversion call."""

    blocks: list[Block] = Field(default_factory=list)


class ConversionWarning(BaseModel):
    """A non-fatal repair or drop that happened during conversion."""

    code: str
    message: str


for _model in (
    Emphasis,
    Strong,
    Strikethrough,
    Link,
    Heading,
    Paragraph,
    ListItem,
    BulletList,
    OrderedList,
    Blockquote,
    Table,
    Document,
):
    _model.model_rebuild()
