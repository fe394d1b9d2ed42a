"""docbridge — Markdown to and from docx, xlsx, pptx and pdf."""

from docbridge.converter import (
    ConversionEngine,
    ConversionResult,
    FormatTag,
    convert,
    export_document,
    import_document,
)
from docbridge.errors import (
    ConversionError,
    Direction,
    MalformedMarkdown,
    SourceUnreadable,
    UnsupportedFormat,
    UnsupportedVariant,
    WriteFailed,
)

__version__ = "0.1.0"

__all__ = [
    "ConversionEngine",
    "ConversionError",
    "ConversionResult",
    "Direction",
    "FormatTag",
    "MalformedMarkdown",
    "SourceUnreadable",
    "UnsupportedFormat",
    "UnsupportedVariant",
    "WriteFailed",
    "convert",
    "export_document",
    "import_document",
]
