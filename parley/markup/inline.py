"""
Inline transforms applied to one unclaimed line at a time.

Pieces that must survive escaping untouched (inline code, anchors, entities)
are swapped for placeholder tokens first and restored at the end, so the
escaping and the Markdown conversions never see their contents.
"""

from __future__ import annotations

import html
import re
from typing import Callable, Mapping, Optional
from urllib.parse import urlsplit

STYLE_TAGS = ("b", "i", "u", "s", "tg-spoiler")

TAG_ALIASES = {
    "b": "b",
    "strong": "b",
    "i": "i",
    "em": "i",
    "u": "u",
    "ins": "u",
    "s": "s",
    "strike": "s",
    "del": "s",
    "tg-spoiler": "tg-spoiler",
}

ENTITY_RE = re.compile(r"&(?:lt|gt|amp|quot|#\d+|#x[0-9A-Fa-f]+);")
URL_RE = re.compile(r"https?://(?:(?!&lt;|&gt;|&quot;)[^\s<>\"\x05-\x07])+")

_HTML_CODE_RE = re.compile(r"<code\b[^<>]*>(.*?)</code>", re.I)
_BACKTICK_RE = re.compile(r"`([^`]+)`")
_MD_LINK_RE = re.compile(r"\[([^\[\]]+)\]\(\s*([^()\s]+)\s*\)")
_HTML_ANCHOR_RE = re.compile(
    r"<a\s[^<>]*?href\s*=\s*([\"'])(.*?)\1[^<>]*>(.*?)</a\s*>", re.I
)
_HTML_STYLE_RE = re.compile(
    r"<(/?)(strong|b|em|i|ins|u|strike|del|s|tg-spoiler)\s*>", re.I
)
_ANY_TAG_RE = re.compile(r"<[^<>]*>")
_STYLE_TOKEN_RE = re.compile(r"<(/?)(b|i|u|s|tg-spoiler)>")
_BOLD_TOKEN_RE = re.compile(r"</?b>")
_REDUNDANT_RE = re.compile(
    r"<(b|i|u|s|tg-spoiler)>"
    r"(<(b|i|u|s|tg-spoiler)>(?:(?!</?(?:b|i|u|s|tg-spoiler)>).)*</\3>)"
    r"</\1>"
)

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.*?)(?:\s+#+)?\s*$")
_BOLD_ITALIC_RE = re.compile(r"(?<!\*)\*\*\*(?=[^\s*])(.+?)(?<=[^\s*])\*\*\*(?!\*)")
_BOLD_RE = re.compile(r"\*\*(?=\S)(.+?)(?<=\S)\*\*")
_UNDERLINE_RE = re.compile(r"(?<!\w)__(?=\S)(.+?)(?<=\S)__(?!\w)")
_STRIKE_RE = re.compile(r"~~(?=\S)(.+?)(?<=\S)~~")
_SPOILER_RE = re.compile(r"\|\|(?=\S)(.+?)(?<=\S)\|\|")
_ITALIC_RE = re.compile(r"(?<![*\w])\*(?=[^\s*])(.+?)(?<=[^\s*])\*(?![*\w])")

_LINK_SKIP_RE = re.compile(r"<a\b[^>]*>.*?</a>|<code>.*?</code>|<[^<>]*>", re.S)
_TRAILING_PUNCTUATION = ".,;:!?'"
LINK_FALLBACK_LABEL = "link"


class _Stash:
    """Placeholder store. Tokens look like <marker>N<marker>."""

    def __init__(self, marker: str) -> None:
        self.marker = marker
        self.values: list[str] = []
        self._token_re = re.compile(re.escape(marker) + r"(\d+)" + re.escape(marker))

    def put(self, value: str) -> str:
        self.values.append(value)
        return f"{self.marker}{len(self.values) - 1}{self.marker}"

    def restore(self, text: str) -> str:
        return self._token_re.sub(lambda m: self.values[int(m.group(1))], text)


def _escape_raw(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def escape_text(text: str) -> str:
    """Escape &, < and > while keeping entities that are already escaped."""
    parts = []
    last = 0
    for m in ENTITY_RE.finditer(text):
        parts.append(_escape_raw(text[last : m.start()]))
        parts.append(m.group(0))
        last = m.end()
    parts.append(_escape_raw(text[last:]))
    return "".join(parts)


def escape_attribute(value: str) -> str:
    return escape_text(value).replace('"', "&quot;")


def strip_tags(text: str) -> str:
    return _ANY_TAG_RE.sub("", text)


def is_balanced(text: str) -> bool:
    stack: list[str] = []
    for m in _STYLE_TOKEN_RE.finditer(text):
        closing, tag = m.group(1), m.group(2)
        if not closing:
            stack.append(tag)
        elif not stack or stack.pop() != tag:
            return False
    return not stack


def is_single_span(text: str) -> bool:
    """True when the whole text is one style span, e.g. <b>x <i>y</i></b>."""
    first = _STYLE_TOKEN_RE.match(text)
    if first is None or first.group(1):
        return False
    depth = 0
    for m in _STYLE_TOKEN_RE.finditer(text):
        depth += -1 if m.group(1) else 1
        if depth == 0:
            return m.end() == len(text)
    return False


def wrap_span(tag: str, inner: str) -> str:
    if is_single_span(inner):
        return inner
    return f"<{tag}>{inner}</{tag}>"


def collapse_redundant_spans(text: str) -> str:
    """<b><i>x</i></b> -> <i>x</i>: two style spans never cover the same characters."""
    while True:
        collapsed = _REDUNDANT_RE.sub(r"\2", text)
        if collapsed == text:
            return text
        text = collapsed


def _anchor(url: str, label_html: str) -> str:
    url = html.unescape(url.strip())
    if not re.match(r"(?i)(https?|tg|mailto):", url):
        return label_html
    return f'<a href="{escape_attribute(url)}">{label_html}</a>'


def _span_converter(tag: str) -> Callable[[re.Match], str]:
    def convert(m: re.Match) -> str:
        inner = m.group(1)
        if not is_balanced(inner):
            return m.group(0)
        return wrap_span(tag, inner)

    return convert


def _convert_markdown(text: str) -> str:
    # ***x*** is one span; bold wins since two spans may not cover the same text.
    text = _BOLD_ITALIC_RE.sub(_span_converter("b"), text)
    text = _BOLD_RE.sub(_span_converter("b"), text)
    text = _UNDERLINE_RE.sub(_span_converter("u"), text)
    text = _STRIKE_RE.sub(_span_converter("s"), text)
    text = _SPOILER_RE.sub(_span_converter("tg-spoiler"), text)
    text = _ITALIC_RE.sub(_span_converter("i"), text)
    heading = _HEADING_RE.match(text)
    if heading and heading.group(1) and is_balanced(heading.group(1)):
        text = wrap_span("b", _BOLD_TOKEN_RE.sub("", heading.group(1)))
    return text


def convert_inline(text: str) -> str:
    """
    Escape one line of model output and turn its inline markup into allowed tags.

    Inline code and anchors (HTML or Markdown) are built first and kept out of
    every later step. Allow-listed style tags already present are canonicalized
    (strong -> b, em -> i, ...); anything else that looks like a tag is escaped
    as text.
    """
    text = re.sub(r"[\x05-\x07]", "", text)
    protected = _Stash("\x07")
    styles = _Stash("\x06")

    def code_span(m: re.Match) -> str:
        return protected.put(f"<code>{escape_text(m.group(1))}</code>")

    text = _HTML_CODE_RE.sub(code_span, text)
    text = _BACKTICK_RE.sub(code_span, text)
    text = _HTML_ANCHOR_RE.sub(
        lambda m: protected.put(_anchor(m.group(2), escape_text(strip_tags(m.group(3))))),
        text,
    )
    text = _MD_LINK_RE.sub(
        lambda m: protected.put(_anchor(m.group(2), escape_text(m.group(1)))), text
    )
    text = _HTML_STYLE_RE.sub(
        lambda m: styles.put(f"<{m.group(1)}{TAG_ALIASES[m.group(2).lower()]}>"), text
    )

    text = escape_text(text)
    text = collapse_redundant_spans(styles.restore(text))

    # Bare URLs stay plain text here; only hide them from the Markdown patterns.
    urls = _Stash("\x05")
    text = URL_RE.sub(lambda m: urls.put(m.group(0)), text)
    text = _convert_markdown(text)
    text = urls.restore(text)
    return protected.restore(text)


def host_label(url: str) -> Optional[str]:
    try:
        return urlsplit(url).hostname or None
    except ValueError:
        return None


def _split_trailing(url: str) -> tuple[str, str]:
    tail = ""
    while url and (
        url[-1] in _TRAILING_PUNCTUATION
        or (url[-1] == ")" and url.count("(") < url.count(")"))
    ):
        tail = url[-1] + tail
        url = url[:-1]
    return url, tail


def _link_segment(segment: str, labels: Mapping[str, str]) -> str:
    def to_anchor(m: re.Match) -> str:
        url, tail = _split_trailing(m.group(0))
        raw_url = html.unescape(url)
        label = labels.get(raw_url) or host_label(raw_url) or LINK_FALLBACK_LABEL
        return f'<a href="{escape_attribute(raw_url)}">{escape_text(label)}</a>{tail}'

    return URL_RE.sub(to_anchor, segment)


def link_bare_urls(text: str, labels: Optional[Mapping[str, str]] = None) -> str:
    """Turn every http(s) URL outside <a>, <code> and tag attributes into an anchor."""
    labels = labels or {}
    out = []
    last = 0
    for m in _LINK_SKIP_RE.finditer(text):
        out.append(_link_segment(text[last : m.start()], labels))
        out.append(m.group(0))
        last = m.end()
    out.append(_link_segment(text[last:], labels))
    return "".join(out)
