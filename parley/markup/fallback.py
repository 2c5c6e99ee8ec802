"""Plain-text rendering used when formatted output fails validation."""

from __future__ import annotations

import html
import re

from parley.markup.inline import TAG_ALIASES
from parley.markup.rules import BULLET, BULLET_RE, FENCE_RE, ORDERED_RE, RULE_RE
from parley.markup.validator import ALLOWED_TAGS

_KNOWN_TAGS = sorted(set(TAG_ALIASES) | ALLOWED_TAGS, key=len, reverse=True)
_TAG_RE = re.compile(
    r"</?(?:" + "|".join(re.escape(t) for t in _KNOWN_TAGS) + r")(?=[\s/>])[^<>]*>",
    re.I,
)
_MD_LINK_RE = re.compile(r"\[([^\[\]]+)\]\(\s*([^()\s]+)\s*\)")
_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+")
_QUOTE_RE = re.compile(r"^\s*>\s?")
_EMPHASIS_RE = re.compile(r"(\*\*|__|~~|\|\|)(?=\S)(.+?)(?<=\S)\1")
_ITALIC_RE = re.compile(r"(?<![*\w])\*(?=[^\s*])(.+?)(?<=[^\s*])\*(?![*\w])")
_BACKTICK_RE = re.compile(r"`([^`]+)`")


def _strip_prose(text: str) -> str:
    text = _TAG_RE.sub("", text)
    text = _MD_LINK_RE.sub(r"\1 (\2)", text)
    text = _EMPHASIS_RE.sub(r"\2", text)
    return _ITALIC_RE.sub(r"\1", text)


def _strip_line(line: str) -> str:
    line = _HEADING_RE.sub("", line)
    line = _QUOTE_RE.sub("", line)
    # Inline code keeps its content as written.
    parts = []
    last = 0
    for m in _BACKTICK_RE.finditer(line):
        parts.append(_strip_prose(line[last : m.start()]))
        parts.append(m.group(1))
        last = m.end()
    parts.append(_strip_prose(line[last:]))
    line = "".join(parts)
    ordered = ORDERED_RE.match(line)
    if ordered:
        return f"{ordered.group(1)}. {ordered.group(2)}".rstrip()
    bullet = BULLET_RE.match(line)
    if bullet:
        return (BULLET + bullet.group(1)).rstrip()
    return line.rstrip()


def strip_markup(source: str) -> str:
    """Drop allow-listed tags and Markdown decoration, keep paragraphs and list items."""
    lines = []
    in_fence = False
    for raw in (source or "").replace("\r\n", "\n").split("\n"):
        if FENCE_RE.match(raw):
            in_fence = not in_fence
            continue
        if in_fence:
            lines.append(raw.rstrip())
            continue
        if RULE_RE.match(raw):
            continue
        lines.append(_strip_line(raw))

    out: list[str] = []
    for line in lines:
        if not line.strip():
            if out and out[-1]:
                out.append("")
            continue
        out.append(line)
    while out and not out[-1]:
        out.pop()
    return html.unescape("\n".join(out))


def render_plain_fallback(source: str) -> str:
    """Fully escaped text with no tags; safe to send with parse_mode=HTML."""
    return html.escape(strip_markup(source), quote=False)
