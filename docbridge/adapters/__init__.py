"""Format adapters — one reader/writer pair per external container format."""

from docbridge.adapters.base import AdapterOutput, FormatAdapter, atomic_output
from docbridge.adapters.pdf import PdfAdapter
from docbridge.adapters.presentation import PresentationAdapter
from docbridge.adapters.spreadsheet import SpreadsheetAdapter
from docbridge.adapters.word import DocxAdapter

__all__ = [
    "AdapterOutput",
    "DocxAdapter",
    "FormatAdapter",
    "PdfAdapter",
    "PresentationAdapter",
    "SpreadsheetAdapter",
    "atomic_output",
]
