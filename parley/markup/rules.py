"""Formatter stages. Each one is a pure MarkupBuffer -> MarkupBuffer function."""

from __future__ import annotations

import re
from typing import List, Mapping, Optional

from parley.markup.buffer import (
    Line,
    LineKind,
    MarkupBuffer,
    map_unclaimed,
    next_block_id,
    with_text,
)
from parley.markup.inline import convert_inline, link_bare_urls

FENCE_RE = re.compile(r"^\s*```")
RULE_RE = re.compile(r"^\s*([-*_])(?:\s*\1){2,}\s*$")
SEPARATOR_RE = re.compile(r"^\s*[-:|+=\s]*-[-:|+=\s]*$")
COLUMN_GAP_RE = re.compile(r"\S {2,}\S")
BULLET_RE = re.compile(r"^\s*[-*+•]\s+(.*)$")
ORDERED_RE = re.compile(r"^\s*(\d{1,9})[.)]\s+(.*)$")
QUOTE_LINE_RE = re.compile(r"^&gt;\s?(.*)$")
SPEAKER_QUOTE_RE = re.compile(
    r"^[A-Z][\w .'-]{0,40}:\s+[\"“«].*[\"”»]$"
)
SENTENCE_END = (".", "!", "?", ":")

BULLET = "• "


def claim_code_fences(buffer: MarkupBuffer) -> MarkupBuffer:
    """Lines between ``` fences become one claimed CODE block; the fences go away."""
    out: List[Line] = []
    block = next_block_id(buffer)
    in_fence = False
    for line in buffer:
        if line.claimed:
            out.append(line)
            continue
        if FENCE_RE.match(line.text):
            if in_fence:
                block += 1
            in_fence = not in_fence
            continue
        if in_fence:
            out.append(Line(line.text, LineKind.CODE, block))
        else:
            out.append(line)
    return tuple(out)


def is_list_line(text: str) -> bool:
    return bool(BULLET_RE.match(text) or ORDERED_RE.match(text))


def _is_header_candidate(text: str) -> bool:
    return "|" in text or "\t" in text or bool(COLUMN_GAP_RE.search(text.strip()))


def _delimiter_count(text: str, delimiter: str) -> int:
    # A comma-separated row does not read as a sentence.
    if delimiter == "," and text.rstrip().endswith(SENTENCE_END):
        return 0
    return text.count(delimiter)


def _pipe_rows(run: List[str]) -> set[int]:
    rows: set[int] = set()
    start = None
    for i, text in enumerate(run + [""]):
        if "|" in text:
            if start is None:
                start = i
        else:
            if start is not None and i - start >= 2:
                rows.update(range(start, i))
            start = None
    return rows


def _delimited_rows(run: List[str]) -> set[int]:
    rows: set[int] = set()
    for delimiter in ("\t", ","):
        start = 0
        while start < len(run):
            count = 0 if is_list_line(run[start]) else _delimiter_count(run[start], delimiter)
            end = start + 1
            if count:
                while (
                    end < len(run)
                    and not is_list_line(run[end])
                    and _delimiter_count(run[end], delimiter) == count
                ):
                    end += 1
                if end - start >= 2:
                    rows.update(range(start, end))
            start = end
    return rows


def _separator_rows(run: List[str]) -> set[int]:
    rows: set[int] = set()
    for i in range(1, len(run)):
        if not SEPARATOR_RE.match(run[i]) or not _is_header_candidate(run[i - 1]):
            continue
        end = i + 1
        while end < len(run) and (
            _is_header_candidate(run[end]) or SEPARATOR_RE.match(run[end])
        ):
            end += 1
        rows.update(range(i - 1, end))
    return rows


def _claim_run(lines: List[Line], block: int) -> tuple[List[Line], int]:
    texts = [line.text for line in lines]
    rows = _pipe_rows(texts) | _delimited_rows(texts) | _separator_rows(texts)
    out = []
    previous = None
    for i, line in enumerate(lines):
        if i in rows:
            if previous is not None and previous != i - 1:
                block += 1
            out.append(Line(line.text, LineKind.TABLE, block))
            previous = i
        else:
            out.append(line)
    if previous is not None:
        block += 1
    return out, block


def claim_tables(buffer: MarkupBuffer) -> MarkupBuffer:
    """
    Claim tabular runs of two or more consecutive non-blank lines.

    A run is tabular when every line has a '|', when its lines share the same
    non-zero count of tabs or commas (list items never count), or when a
    separator row (dashes, colons, pipes) follows a header-like line.
    """
    out: List[Line] = []
    block = next_block_id(buffer)
    run: List[Line] = []
    for line in buffer + (Line(""),):
        if line.claimed or line.blank:
            if run:
                claimed, block = _claim_run(run, block)
                out.extend(claimed)
                run = []
            out.append(line)
        else:
            run.append(line)
    return tuple(out[:-1])


def drop_rules(buffer: MarkupBuffer) -> MarkupBuffer:
    return tuple(
        line for line in buffer if line.claimed or not RULE_RE.match(line.text)
    )


def escape_inline(buffer: MarkupBuffer) -> MarkupBuffer:
    return map_unclaimed(buffer, lambda line: with_text(line, convert_inline(line.text)))


def rewrite_links(
    buffer: MarkupBuffer, link_labels: Optional[Mapping[str, str]] = None
) -> MarkupBuffer:
    return map_unclaimed(
        buffer, lambda line: with_text(line, link_bare_urls(line.text, link_labels))
    )


def _rewrite_list_line(line: Line) -> Line:
    ordered = ORDERED_RE.match(line.text)
    if ordered:
        return with_text(line, f"{ordered.group(1)}. {ordered.group(2)}", LineKind.LIST_ITEM)
    bullet = BULLET_RE.match(line.text)
    if bullet:
        return with_text(line, BULLET + bullet.group(1), LineKind.LIST_ITEM)
    return line


def rewrite_lists(buffer: MarkupBuffer) -> MarkupBuffer:
    return map_unclaimed(buffer, _rewrite_list_line)


def normalize_spacing(buffer: MarkupBuffer) -> MarkupBuffer:
    """One blank line between paragraphs, none around the edges or inside a list."""
    stripped = map_unclaimed(buffer, lambda line: with_text(line, line.text.rstrip()))
    out: List[Line] = []
    for i, line in enumerate(stripped):
        if not line.blank:
            out.append(line)
            continue
        if not out or out[-1].blank:
            continue
        following = next((nxt for nxt in stripped[i + 1 :] if not nxt.blank), None)
        if following is None:
            continue
        if out[-1].kind == LineKind.LIST_ITEM and following.kind == LineKind.LIST_ITEM:
            continue
        out.append(Line(""))
    return tuple(out)


def wrap_quotations(buffer: MarkupBuffer) -> MarkupBuffer:
    """
    '> ' runs become one <blockquote> keeping their line breaks; a lone
    'Speaker: "text"' line is wrapped whole.
    """
    out: List[Line] = []
    quoted: List[str] = []

    def flush() -> None:
        if quoted:
            out.append(Line("<blockquote>" + "\n".join(quoted) + "</blockquote>", LineKind.QUOTE))
            quoted.clear()

    for line in buffer:
        match = None if line.claimed else QUOTE_LINE_RE.match(line.text)
        if match:
            quoted.append(match.group(1))
            continue
        flush()
        if (
            line.kind == LineKind.TEXT
            and "\n" not in line.text
            and SPEAKER_QUOTE_RE.match(line.text)
        ):
            out.append(with_text(line, f"<blockquote>{line.text}</blockquote>", LineKind.QUOTE))
        else:
            out.append(line)
    flush()
    return tuple(out)
