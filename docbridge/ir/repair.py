"""Pure repair helpers for IR built from messy sources.

Each helper returns the repaired value (and, where something was changed,
a list of ConversionWarning) instead of logging, so callers decide what to
surface.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from docbridge.ir.models import (
    CONTAINER_SPANS,
    Block,
    BulletList,
    ConversionWarning,
    Emphasis,
    InlineCode,
    LineBreak,
    Link,
    ListItem,
    OrderedList,
    PlainText,
    Span,
    Strikethrough,
    Strong,
)

logger = logging.getLogger(__name__)

Cell = list[Span]


def rectangularize(
    rows: Sequence[Sequence[Cell]], width: int | None = None
) -> tuple[list[list[Cell]], list[ConversionWarning]]:
    """Pad short rows and truncate long rows to ``width`` cells.

    ``width`` defaults to the header (first row) cell count. Row numbers in
    warnings are 1-based and count the header as row 1.
    """
    if not rows:
        return [], []

    target = len(rows[0]) if width is None else width
    fixed: list[list[Cell]] = []
    warnings: list[ConversionWarning] = []

    for number, row in enumerate(rows, start=1):
        cells = [list(cell) for cell in row]
        if len(cells) < target:
            warnings.append(ConversionWarning(
                code="table.padded",
                message=f"row {number} has {len(cells)} cells, padded to {target}",
            ))
            cells.extend([] for _ in range(target - len(cells)))
        elif len(cells) > target:
            warnings.append(ConversionWarning(
                code="table.truncated",
                message=f"row {number} has {len(cells)} cells, truncated to {target}",
            ))
            cells = cells[:target]
        fixed.append(cells)

    if warnings:
        logger.debug("rectangularized table: %d row(s) repaired", len(warnings))
    return fixed, warnings


def text_spans(text: str) -> list[Span]:
    """Split text on newlines into PlainText and LineBreak spans."""
    spans: list[Span] = []
    for index, line in enumerate(text.replace("\r\n", "\n").replace("\r", "\n").split("\n")):
        if index:
            spans.append(LineBreak())
        if line:
            spans.append(PlainText(text=line))
    return spans


def _is_empty(span: Span) -> bool:
    if isinstance(span, PlainText):
        return span.text == ""
    if isinstance(span, InlineCode):
        return span.code == ""
    if isinstance(span, CONTAINER_SPANS):
        return not span.children
    return False


def normalize_spans(spans: Iterable[Span]) -> list[Span]:
    """Canonicalize a span list.

    Adjacent PlainText nodes merge, as do adjacent containers of the same
    kind and adjacent links to the same target. Empty nodes are dropped;
    leading/trailing LineBreaks and surrounding whitespace are stripped.
    """
    merged = _merge(spans)
    while merged and isinstance(merged[0], LineBreak):
        merged.pop(0)
    while merged and isinstance(merged[-1], LineBreak):
        merged.pop()
    _strip_edges(merged)
    return [span for span in merged if not _is_empty(span)]


def _merge(spans: Iterable[Span]) -> list[Span]:
    out: list[Span] = []
    for span in spans:
        if isinstance(span, (Emphasis, Strong, Strikethrough)):
            span = type(span)(children=_merge(span.children))
        elif isinstance(span, Link):
            span = Link(children=_merge(span.children), target=span.target, title=span.title)
        if _is_empty(span):
            continue

        prev = out[-1] if out else None
        if isinstance(span, PlainText) and isinstance(prev, PlainText):
            out[-1] = PlainText(text=prev.text + span.text)
        elif isinstance(span, CONTAINER_SPANS) and type(prev) is type(span):
            out[-1] = type(span)(children=_merge([*prev.children, *span.children]))
        elif (
            isinstance(span, Link) and isinstance(prev, Link)
            and (prev.target, prev.title) == (span.target, span.title)
        ):
            out[-1] = Link(children=_merge([*prev.children, *span.children]), target=span.target, title=span.title)
        else:
            out.append(span)
    return out


def _strip_edges(spans: list[Span]) -> None:
    if spans and isinstance(spans[0], PlainText):
        spans[0] = PlainText(text=spans[0].text.lstrip())
    if spans and isinstance(spans[-1], PlainText):
        spans[-1] = PlainText(text=spans[-1].text.rstrip())
    for index, span in enumerate(spans):
        if not isinstance(span, LineBreak):
            continue
        if index > 0 and isinstance(spans[index - 1], PlainText):
            spans[index - 1] = PlainText(text=spans[index - 1].text.rstrip())
        if index + 1 < len(spans) and isinstance(spans[index + 1], PlainText):
            spans[index + 1] = PlainText(text=spans[index + 1].text.lstrip())


def plain_text(spans: Iterable[Span], *, line_break: str = "\n") -> str:
    """Flatten spans to their visible text."""
    parts: list[str] = []
    for span in spans:
        if isinstance(span, PlainText):
            parts.append(span.text)
        elif isinstance(span, InlineCode):
            parts.append(span.code)
        elif isinstance(span, LineBreak):
            parts.append(line_break)
        else:
            parts.append(plain_text(span.children, line_break=line_break))
    return "".join(parts)


def styled(spans: list[Span], *, bold: bool = False, italic: bool = False,
           strike: bool = False, link: str | None = None) -> list[Span]:
    """Wrap spans in the containers implied by run-level formatting flags."""
    if not spans:
        return []
    wrapped: list[Span] = list(spans)
    if strike:
        wrapped = [Strikethrough(children=wrapped)]
    if italic:
        wrapped = [Emphasis(children=wrapped)]
    if bold:
        wrapped = [Strong(children=wrapped)]
    if link:
        wrapped = [Link(children=wrapped, target=link)]
    return wrapped


def nest_list_items(entries: Iterable[tuple[bool, int, list[Block]]]) -> list[Block]:
    """Rebuild nested lists from flat ``(ordered, level, blocks)`` entries.

    Word-processor and slide formats store list paragraphs flat with an
    indent level; this folds them back into BulletList/OrderedList trees.
    A change of list kind at the same level starts a new sibling list.
    """
    root: list[Block] = []
    stack: list[tuple[int, BulletList | OrderedList]] = []

    for ordered, level, blocks in entries:
        while stack and stack[-1][0] > level:
            stack.pop()
        if stack and stack[-1][0] == level and isinstance(stack[-1][1], OrderedList) != ordered:
            stack.pop()
        if not stack or stack[-1][0] < level:
            new_list: BulletList | OrderedList = OrderedList() if ordered else BulletList()
            if stack:
                parent = stack[-1][1]
                if not parent.items:
                    parent.items.append(ListItem())
                parent.items[-1].blocks.append(new_list)
            else:
                root.append(new_list)
            stack.append((level, new_list))
        stack[-1][1].items.append(ListItem(blocks=list(blocks)))
    return root
