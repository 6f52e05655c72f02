"""
Recovery of tables that an earlier migration flattened into paragraphs.

A previous HTML export turned some comparison tables into one ``<p>`` per
cell (or one ``<p>`` per row with ``|``/newline separated cells).  When a
known header sequence is found, consecutive paragraphs are regrouped into a
real ``<table>``.  Only complete rows are emitted; paragraphs that do not
fill a row are left where they were.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

# (column count, normalized header cells)
HEADER_SEQUENCES: Tuple[Tuple[int, Tuple[str, ...]], ...] = (
    (4, ("variable", "category", "subcategory", "details")),
    (3, ("key metrics", "category", "details")),
)
MIN_PARAGRAPHS = 6
# safety bound on recovery passes
MAX_RECOVERY_PASSES = 1000

_PARAGRAPH_RE = re.compile(r"<p\b[^>]*>.*?</p>", re.IGNORECASE | re.DOTALL)
_ZERO_WIDTH_RE = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")
_HEADING_TEXT_RE = re.compile(r"^#{1,6}\s+")
_HEADING_TAG_RE = re.compile(r"<\s*h[1-6]\b", re.IGNORECASE)


@dataclass
class _Paragraph:
    start: int
    end: int
    text: str


def _paragraph_text(fragment: str) -> str:
    inner = re.sub(r"^<p\b[^>]*>", "", fragment, flags=re.IGNORECASE)
    inner = re.sub(r"</p>$", "", inner, flags=re.IGNORECASE)
    text = re.sub(r"<\s*br\s*/?\s*>", "\n", inner, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text).replace("\xa0", " ")
    text = _ZERO_WIDTH_RE.sub("", text)
    return text.strip()


def _normalize_header(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().lower()


def _split_row(text: str) -> Optional[List[str]]:
    """Split a one-paragraph row on ``|`` (preferred) or newlines."""
    if "|" not in text and "\n" not in text:
        return None
    raw = text.split("|") if "|" in text else re.split(r"\n+", text)
    parts = [re.sub(r"\s+", " ", p).strip() for p in raw]
    parts = [p for p in parts if p]
    if len(parts) < 2 or len(parts) > 6:
        return None
    return parts


def _is_ignorable_between(chunk: str) -> bool:
    text = re.sub(r"<!--.*?-->", "", chunk, flags=re.DOTALL)
    text = re.sub(r"<\s*br\s*/?\s*>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"</?span\b[^>]*>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"&nbsp;|&#160;|&#xa0;", "", text, flags=re.IGNORECASE)
    text = _ZERO_WIDTH_RE.sub("", text)
    return not text.strip()


def _format_cell(text: str) -> str:
    escaped = html.escape(text, quote=True)
    escaped = re.sub(r"\n{2,}", "\n", escaped)
    return escaped.replace("\n", "<br/>")


def _matches_header(cells: Sequence[str], expected: Sequence[str]) -> bool:
    return len(cells) == len(expected) and all(
        _normalize_header(cell) == want for cell, want in zip(cells, expected)
    )


def _find_header(paragraphs: List[_Paragraph]) -> Optional[Tuple[int, int, Tuple[str, ...], Optional[List[str]]]]:
    """Locate the first header.

    Returns ``(index, columns, expected, single_row_cells)`` where
    ``single_row_cells`` is set when the whole header sits in one paragraph.
    """
    for index, paragraph in enumerate(paragraphs):
        if not paragraph.text:
            continue
        for columns, expected in HEADER_SEQUENCES:
            row = _split_row(paragraph.text)
            if row and _matches_header(row, expected):
                return index, columns, expected, row

            collected: List[str] = []
            cursor = index
            while cursor < len(paragraphs) and len(collected) < columns:
                text = paragraphs[cursor].text
                cursor += 1
                if not text:
                    continue
                collected.append(text)
            if _matches_header(collected, expected):
                return index, columns, expected, None
    return None


def _build_table(header: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    head = "".join(f"<th>{_format_cell(cell)}</th>" for cell in header)
    body = "".join(
        "<tr>" + "".join(f"<td>{_format_cell(cell)}</td>" for cell in row) + "</tr>"
        for row in rows
    )
    return f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"


def _recover_once(content: str) -> Optional[str]:
    paragraphs = [
        _Paragraph(m.start(), m.end(), _paragraph_text(m.group(0)))
        for m in _PARAGRAPH_RE.finditer(content)
    ]
    if len(paragraphs) < MIN_PARAGRAPHS:
        return None

    found = _find_header(paragraphs)
    if found is None:
        return None
    header_index, columns, expected, single_row = found

    cells: List[str] = []
    owners: List[int] = []
    first = header_index
    last_end = paragraphs[header_index].start
    if single_row:
        cells.extend(single_row)
        owners.extend([header_index] * len(single_row))
        last_end = paragraphs[header_index].end
        first = header_index + 1

    blank_streak = 0
    for index in range(first, len(paragraphs)):
        paragraph = paragraphs[index]
        between = content[last_end:paragraph.start]
        if not _is_ignorable_between(between) or _HEADING_TAG_RE.search(between):
            break
        if not paragraph.text:
            blank_streak += 1
            if blank_streak >= 2 and len(cells) >= columns * 2:
                break
            last_end = paragraph.end
            continue
        blank_streak = 0
        if _HEADING_TEXT_RE.match(paragraph.text):
            break

        row = _split_row(paragraph.text)
        if len(cells) % columns == 0 and row and len(row) == columns:
            cells.extend(row)
            owners.extend([index] * columns)
        else:
            cells.append(paragraph.text)
            owners.append(index)
        last_end = paragraph.end

    if len(cells) < columns * 2 or not _matches_header(cells[:columns], expected):
        return None

    row_count = (len(cells) - columns) // columns
    used = columns * (row_count + 1)
    header = cells[:columns]
    rows = [cells[columns + r * columns: columns + (r + 1) * columns] for r in range(row_count)]

    start = paragraphs[header_index].start
    end = paragraphs[owners[used - 1]].end
    return content[:start] + _build_table(header, rows) + content[end:]


def recover_flat_tables(content: str) -> str:
    """Rebuild every flattened table in ``content``."""
    if not content:
        return content
    result = content
    for _ in range(MAX_RECOVERY_PASSES):
        recovered = _recover_once(result)
        if recovered is None:
            break
        result = recovered
    return result
