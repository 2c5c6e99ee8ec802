"""
Line buffer shared by the formatter stages.

A MarkupBuffer is an immutable tuple of Line records. Stages take a buffer
and return a new one; lines whose kind is CODE or TABLE are claimed and
every later stage passes them through untouched.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple


class LineKind(str, Enum):
    TEXT = "text"
    LIST_ITEM = "list_item"
    QUOTE = "quote"
    CODE = "code"
    TABLE = "table"


CLAIMED_KINDS = frozenset({LineKind.CODE, LineKind.TABLE})


@dataclass(frozen=True)
class Line:
    text: str
    kind: LineKind = LineKind.TEXT
    # Lines of one fenced region share a block number.
    block: Optional[int] = None

    @property
    def claimed(self) -> bool:
        return self.kind in CLAIMED_KINDS

    @property
    def blank(self) -> bool:
        return not self.claimed and not self.text.strip()


MarkupBuffer = Tuple[Line, ...]


def from_text(text: str) -> MarkupBuffer:
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    return tuple(Line(line) for line in normalized.split("\n"))


def map_unclaimed(buffer: MarkupBuffer, fn: Callable[[Line], Line]) -> MarkupBuffer:
    return tuple(line if line.claimed else fn(line) for line in buffer)


def with_text(line: Line, text: str, kind: Optional[LineKind] = None) -> Line:
    return replace(line, text=text, kind=kind or line.kind)


def next_block_id(buffer: Iterable[Line]) -> int:
    blocks = [line.block for line in buffer if line.block is not None]
    return max(blocks) + 1 if blocks else 0


def render(buffer: MarkupBuffer) -> str:
    """
    Join the buffer into the final string, wrapping each claimed block in <pre>.

    Claimed text is only entity-escaped, so Telegram shows it exactly as written.
    """
    out: list[str] = []
    i = 0
    while i < len(buffer):
        line = buffer[i]
        if not line.claimed:
            out.append(line.text)
            i += 1
            continue
        block_lines = []
        while i < len(buffer) and buffer[i].claimed and buffer[i].block == line.block:
            block_lines.append(html.escape(buffer[i].text, quote=False))
            i += 1
        out.append("<pre>" + "\n".join(block_lines) + "</pre>")
    return "\n".join(out)
