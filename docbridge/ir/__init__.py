"""Document IR — the format-neutral Block/Span tree every converter targets."""

from docbridge.ir.models import (
    Alignment,
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
from docbridge.ir.repair import (
    nest_list_items,
    normalize_spans,
    plain_text,
    rectangularize,
    styled,
    text_spans,
)
from docbridge.ir.style import BlockStyle, StyleContext

__all__ = [
    "Alignment",
    "Block",
    "BlockStyle",
    "Blockquote",
    "BulletList",
    "CodeBlock",
    "ConversionWarning",
    "Document",
    "Emphasis",
    "Heading",
    "HorizontalRule",
    "Image",
    "InlineCode",
    "LineBreak",
    "Link",
    "ListItem",
    "OrderedList",
    "Paragraph",
    "PlainText",
    "SheetMarker",
    "SlideMarker",
    "Span",
    "Strikethrough",
    "Strong",
    "StyleContext",
    "Table",
    "nest_list_items",
    "normalize_spans",
    "plain_text",
    "rectangularize",
    "styled",
    "text_spans",
]
