from .loader import load_config
from .models import (
    DocBridgeConfig,
    DocxConfig,
    EngineConfig,
    ImageConfig,
    MarkdownConfig,
    PdfConfig,
    PptxConfig,
    XlsxConfig,
)

__all__ = [
    "DocBridgeConfig",
    "DocxConfig",
    "EngineConfig",
    "ImageConfig",
    "MarkdownConfig",
    "PdfConfig",
    "PptxConfig",
    "XlsxConfig",
    "load_config",
]
