"""Markdown codec — parses Markdown into the IR and serializes it back."""

from docbridge.markdown.parser import MarkdownParser, parse, parse_with_warnings
from docbridge.markdown.serializer import MarkdownSerializer, serialize

__all__ = [
    "MarkdownParser",
    "MarkdownSerializer",
    "parse",
    "parse_with_warnings",
    "serialize",
]
