"""Conversion subsystem — orchestrates codec and adapters, sync or pooled."""

from docbridge.converter.engine import ConversionEngine
from docbridge.converter.models import ConversionResult, FormatTag
from docbridge.converter.orchestrator import (
    ADAPTERS,
    convert,
    export_document,
    get_adapter,
    import_document,
)

__all__ = [
    "ADAPTERS",
    "ConversionEngine",
    "ConversionResult",
    "FormatTag",
    "convert",
    "export_document",
    "get_adapter",
    "import_document",
]
