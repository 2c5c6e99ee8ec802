"""Structural checks for Telegram HTML produced by the formatter."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

ALLOWED_TAGS = frozenset(
    {"b", "i", "u", "s", "tg-spoiler", "a", "code", "pre", "blockquote"}
)
STYLE_TAGS = frozenset({"b", "i", "u", "s", "tg-spoiler"})
FENCED_TAGS = frozenset({"pre", "code"})
LINK_EXEMPT_TAGS = frozenset({"a", "code", "pre"})

TAG_RE = re.compile(r"<(/?)([A-Za-z][A-Za-z0-9-]*)([^<>]*)>")
HREF_ATTR_RE = re.compile(r'^\s+href="[^"<>]*"\s*$')
STRAY_AMP_RE = re.compile(r"&(?!(?:lt|gt|amp|quot|#\d+|#x[0-9A-Fa-f]+);)")
BARE_URL_RE = re.compile(r"https?://", re.I)


@dataclass(frozen=True)
class Violation:
    kind: str
    detail: str
    offset: int


@dataclass
class ValidationReport:
    violations: List[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def add(self, kind: str, detail: str, offset: int) -> None:
        self.violations.append(Violation(kind, detail, offset))

    def summary(self) -> str:
        return "; ".join(f"{v.kind}@{v.offset}: {v.detail}" for v in self.violations)


@dataclass
class _Frame:
    tag: str
    offset: int
    has_text: bool = False
    children: List[str] = field(default_factory=list)


def _check_text(report: ValidationReport, text: str, offset: int, stack: List[_Frame]) -> None:
    for ch in ("<", ">"):
        position = text.find(ch)
        if position >= 0:
            report.add("raw_metacharacter", f"unescaped {ch!r}", offset + position)
    stray = STRAY_AMP_RE.search(text)
    if stray:
        report.add("raw_metacharacter", "unescaped '&'", offset + stray.start())
    open_tags = {frame.tag for frame in stack}
    if not open_tags & LINK_EXEMPT_TAGS:
        url = BARE_URL_RE.search(text)
        if url:
            report.add("bare_url", "URL outside a link", offset + url.start())
    if stack and text.strip():
        stack[-1].has_text = True


def _check_open(report: ValidationReport, tag: str, attrs: str, offset: int, stack: List[_Frame]) -> None:
    if tag == "a":
        if not HREF_ATTR_RE.match(attrs):
            report.add("attribute", "<a> needs exactly one quoted href", offset)
    elif attrs.strip():
        report.add("attribute", f"<{tag}> takes no attributes", offset)
    if any(frame.tag == tag for frame in stack):
        report.add("nesting", f"<{tag}> inside <{tag}>", offset)
    if stack:
        stack[-1].children.append(tag)
    stack.append(_Frame(tag, offset))


def _check_close(report: ValidationReport, tag: str, offset: int, stack: List[_Frame]) -> None:
    if not stack:
        report.add("unbalanced", f"</{tag}> without an opening tag", offset)
        return
    if stack[-1].tag != tag:
        if any(frame.tag == tag for frame in stack):
            report.add("crossing", f"</{tag}> closes across <{stack[-1].tag}>", offset)
            while stack and stack[-1].tag != tag:
                stack.pop()
            stack.pop()
        else:
            report.add("unbalanced", f"</{tag}> without an opening tag", offset)
        return
    frame = stack.pop()
    if (
        frame.tag in STYLE_TAGS
        and not frame.has_text
        and len(frame.children) == 1
        and frame.children[0] in STYLE_TAGS
    ):
        report.add(
            "redundant_span",
            f"<{frame.tag}> wraps exactly one <{frame.children[0]}>",
            frame.offset,
        )


def validate_markup(text: str) -> ValidationReport:
    """
    Check balance and nesting, the tag and attribute allow-list, escaping,
    bare URLs, tags inside <pre>/<code>, and style spans stacked on one span.
    """
    report = ValidationReport()
    stack: List[_Frame] = []
    last = 0
    for m in TAG_RE.finditer(text):
        _check_text(report, text[last : m.start()], last, stack)
        last = m.end()
        closing, name, attrs = m.group(1), m.group(2).lower(), m.group(3)
        if name not in ALLOWED_TAGS:
            report.add("disallowed_tag", f"<{closing}{name}>", m.start())
            continue
        if stack and stack[-1].tag in FENCED_TAGS and not (closing and name == stack[-1].tag):
            report.add("fenced_artifact", f"<{closing}{name}> inside <{stack[-1].tag}>", m.start())
            continue
        if closing:
            _check_close(report, name, m.start(), stack)
        else:
            _check_open(report, name, attrs, m.start(), stack)
    _check_text(report, text[last:], last, stack)
    for frame in stack:
        report.add("unbalanced", f"<{frame.tag}> is never closed", frame.offset)
    return report

