"""Conversion orchestrator — picks the adapter and runs the codec around it.

Import: adapter.read → IR → Markdown serializer.
Export: Markdown parser → IR → adapter.write.

Every failure leaves as a ConversionError with format, direction and path
filled in.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from docbridge.adapters import (
    DocxAdapter,
    FormatAdapter,
    PdfAdapter,
    PresentationAdapter,
    SpreadsheetAdapter,
)
from docbridge.config.models import DocBridgeConfig
from docbridge.converter.models import ConversionResult, FormatTag
from docbridge.errors import ConversionError, Direction, SourceUnreadable, WriteFailed
from docbridge.markdown import parse_with_warnings, serialize

logger = logging.getLogger(__name__)

ADAPTERS: dict[FormatTag, type[FormatAdapter]] = {
    FormatTag.DOCX: DocxAdapter,
    FormatTag.XLSX: SpreadsheetAdapter,
    FormatTag.PDF: PdfAdapter,
    FormatTag.PPTX: PresentationAdapter,
}

# import: source path; export: (markdown, destination)
Payload = Union[str, Path, tuple[str, Union[str, Path]]]


def get_adapter(format_tag: str | FormatTag, config: DocBridgeConfig | None = None) -> FormatAdapter:
    return ADAPTERS[FormatTag.parse(format_tag)](config)


def payload_path(payload: Payload) -> str | Path:
    """The file a conversion payload reads from or writes to."""
    if isinstance(payload, tuple):
        return payload[-1]
    return payload


def resolve_tag(format_tag: str | FormatTag, direction: Direction, path: str | Path) -> FormatTag:
    """Parse ``format_tag``, naming the direction and file if it is unsupported."""
    try:
        return FormatTag.parse(format_tag)
    except ConversionError as exc:
        raise exc.with_context(direction=direction, path=path)


def convert(
    direction: str | Direction,
    format_tag: str | FormatTag,
    payload: Payload,
    *,
    config: DocBridgeConfig | None = None,
) -> ConversionResult:
    """Run one conversion in the calling thread."""
    direction = Direction(direction)
    config = config or DocBridgeConfig()

    if direction is Direction.IMPORT:
        if isinstance(payload, tuple):
            raise TypeError("import payload must be a source path")
        return import_document(payload, format_tag, config=config)

    if not isinstance(payload, tuple) or len(payload) != 2:
        raise TypeError("export payload must be a (markdown, destination) pair")
    markdown, destination = payload
    return export_document(markdown, destination, format_tag, config=config)


def import_document(
    path: str | Path,
    format_tag: str | FormatTag,
    *,
    config: DocBridgeConfig | None = None,
) -> ConversionResult:
    """Read a document and return it as Markdown."""
    tag = resolve_tag(format_tag, Direction.IMPORT, path)
    config = config or DocBridgeConfig()
    path = Path(path)
    adapter = ADAPTERS[tag](config)

    try:
        output = adapter.read(path)
        markdown = serialize(
            output.document,
            list_indent=config.markdown.list_indent,
            pad_tables=config.markdown.pad_tables,
        )
    except ConversionError as exc:
        raise exc.with_context(format_tag=tag.value, direction=Direction.IMPORT, path=path)
    except Exception as exc:
        logger.debug("unexpected failure importing %s", path, exc_info=True)
        raise SourceUnreadable(
            f"{type(exc).__name__}: {exc}",
            format_tag=tag.value,
            direction=Direction.IMPORT,
            path=path,
        ) from exc

    for warning in output.warnings:
        logger.debug("%s: %s", warning.code, warning.message)
    logger.info("imported %s as %s (%d warning(s))", path, tag.value, len(output.warnings))
    return ConversionResult(
        direction=Direction.IMPORT,
        format=tag,
        source_path=str(path),
        markdown=markdown,
        warnings=output.warnings,
    )


def export_document(
    markdown: str,
    destination: str | Path,
    format_tag: str | FormatTag,
    *,
    config: DocBridgeConfig | None = None,
) -> ConversionResult:
    """Write Markdown out as a document at ``destination``."""
    tag = resolve_tag(format_tag, Direction.EXPORT, destination)
    config = config or DocBridgeConfig()
    destination = Path(destination)
    adapter = ADAPTERS[tag](config)

    try:
        document, warnings = parse_with_warnings(markdown)
        warnings.extend(adapter.write(document, destination))
    except ConversionError as exc:
        raise exc.with_context(format_tag=tag.value, direction=Direction.EXPORT, path=destination)
    except Exception as exc:
        logger.debug("unexpected failure exporting %s", destination, exc_info=True)
        raise WriteFailed(
            f"{type(exc).__name__}: {exc}",
            format_tag=tag.value,
            direction=Direction.EXPORT,
            path=destination,
        ) from exc

    for warning in warnings:
        logger.debug("%s: %s", warning.code, warning.message)
    logger.info("exported %s to %s (%d warning(s))", tag.value, destination, len(warnings))
    return ConversionResult(
        direction=Direction.EXPORT,
        format=tag,
        output_path=str(destination),
        warnings=warnings,
    )
