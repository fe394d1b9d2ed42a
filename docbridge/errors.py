"""The single error channel of the conversion engine.

Every failure that reaches a caller is a ConversionError subclass carrying
the format tag, direction and offending path, so one message is enough to
tell the user what went wrong.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class Direction(str, Enum):
    IMPORT = "import"
    EXPORT = "export"


class ErrorKind(str, Enum):
    SOURCE_UNREADABLE = "source_unreadable"
    UNSUPPORTED_VARIANT = "unsupported_variant"
    UNSUPPORTED_FORMAT = "unsupported_format"
    WRITE_FAILED = "write_failed"
    MALFORMED_MARKDOWN = "malformed_markdown"


class ConversionError(Exception):
    """Base class for all conversion failures."""

    kind: ErrorKind

    def __init__(
        self,
        detail: str,
        *,
        format_tag: str | None = None,
        direction: Direction | None = None,
        path: str | Path | None = None,
    ) -> None:
        self.detail = detail
        self.format_tag = format_tag
        self.direction = direction
        self.path = str(path) if path is not None else None
        super().__init__(detail)

    def with_context(
        self,
        *,
        format_tag: str | None = None,
        direction: Direction | None = None,
        path: str | Path | None = None,
    ) -> ConversionError:
        """Fill in context fields the raiser did not know about."""
        if self.format_tag is None and format_tag is not None:
            self.format_tag = str(format_tag)
        if self.direction is None:
            self.direction = direction
        if self.path is None and path is not None:
            self.path = str(path)
        return self

    def __str__(self) -> str:
        prefix = " ".join(
            part for part in (
                self.direction.value if self.direction else None,
                self.format_tag,
            ) if part
        )
        where = f" ({self.path})" if self.path else ""
        if prefix:
            return f"{prefix} failed{where}: {self.detail}"
        return f"{self.detail}{where}"


class SourceUnreadable(ConversionError):
    """Input is missing, not readable, or a corrupt container."""

    kind = ErrorKind.SOURCE_UNREADABLE


class UnsupportedVariant(ConversionError):
    """Recognised format family with an unsupported internal variant."""

    kind = ErrorKind.UNSUPPORTED_VARIANT


class UnsupportedFormat(ConversionError):
    """Format tag is not one of the supported four."""

    kind = ErrorKind.UNSUPPORTED_FORMAT


class WriteFailed(ConversionError):
    """Destination could not be written."""

    kind = ErrorKind.WRITE_FAILED


class MalformedMarkdown(ConversionError):
    """Markdown the codec cannot recover from.

    The parser repairs every known case (unterminated fences auto-close),
    so nothing raises this today.
    """

    kind = ErrorKind.MALFORMED_MARKDOWN
