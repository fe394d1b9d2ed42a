"""Pydantic models for the conversion orchestrator."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from docbridge.errors import Direction, UnsupportedFormat
from docbridge.ir.models import ConversionWarning


class FormatTag(str, Enum):
    DOCX = "docx"
    XLSX = "xlsx"
    PDF = "pdf"
    PPTX = "pptx"

    @classmethod
    def parse(cls, tag: str | FormatTag) -> FormatTag:
        """Resolve a user-supplied tag, case-insensitively."""
        if isinstance(tag, FormatTag):
            return tag
        try:
            return cls(str(tag).strip().lower().lstrip("."))
        except ValueError:
            supported = ", ".join(member.value for member in cls)
            raise UnsupportedFormat(
                f"unsupported format {tag!r} (expected one of: {supported})",
                format_tag=str(tag),
            ) from None

    @classmethod
    def from_path(cls, path: str | Path) -> FormatTag:
        """Infer the tag from a file extension."""
        suffix = Path(path).suffix
        if not suffix:
            raise UnsupportedFormat("cannot infer format: file has no extension", path=path)
        return cls.parse(suffix)


class ConversionResult(BaseModel):
    """Outcome of one import or export call."""

    direction: Direction
    format: FormatTag
    source_path: str | None = None
    output_path: str | None = None
    markdown: str | None = None  # set on import only
    warnings: list[ConversionWarning] = Field(default_factory=list)
