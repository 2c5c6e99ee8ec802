"""
Best-effort structural scan of a fetched web document.

The body is kept exactly as received; everything else is derived from it.
A field that the scan cannot fill stays None rather than an empty guess.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import List, Optional, Tuple
from urllib.parse import urljoin

from parley.infra.logging_config import get_logger

logger = get_logger("pipeline.document_scanner")

HTML_HINT_RE = re.compile(r"<\s*(!doctype|html|head|body|div|p|a|title|meta|table|span)\b", re.I)
SKIP_TAGS = frozenset({"script", "style", "noscript", "template", "svg", "head"})
BLOCK_TAGS = frozenset(
    {
        "p", "div", "section", "article", "main", "header", "footer", "nav", "aside",
        "br", "li", "ul", "ol", "tr", "table", "blockquote", "pre",
        "h1", "h2", "h3", "h4", "h5", "h6", "hr",
    }
)
_SPACES_RE = re.compile(r"[ \t\f\v ]+")


@dataclass(frozen=True)
class WebLink:
    url: str
    label: Optional[str] = None


@dataclass(frozen=True)
class WebSnapshot:
    body: str
    title: Optional[str] = None
    description: Optional[str] = None
    text: Optional[str] = None
    links: Optional[Tuple[WebLink, ...]] = None
    images: Optional[Tuple[str, ...]] = None
    tables: Optional[Tuple[str, ...]] = None
    code: Optional[Tuple[str, ...]] = None
    source_url: Optional[str] = None

    def link_labels(self) -> dict[str, str]:
        """URL -> anchor text, first label wins."""
        labels: dict[str, str] = {}
        for link in self.links or ():
            if link.label and link.url not in labels:
                labels[link.url] = link.label
        return labels


def _clean_text(text: str) -> str:
    lines = (_SPACES_RE.sub(" ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


@dataclass
class _Table:
    rows: List[List[str]] = field(default_factory=list)
    cell: Optional[List[str]] = None


class _DocumentParser(HTMLParser):
    def __init__(self, base_url: Optional[str]) -> None:
        super().__init__(convert_charrefs=True)
        self.base_url = base_url
        self.title_parts: List[str] = []
        self.description: Optional[str] = None
        self.text_parts: List[str] = []
        self.links: List[WebLink] = []
        self.images: List[str] = []
        self.tables: List[str] = []
        self.code: List[str] = []
        self._skip_depth = 0
        self._in_title = False
        self._anchor: Optional[Tuple[str, List[str]]] = None
        self._table_stack: List[_Table] = []
        self._code_depth = 0
        self._code_parts: List[str] = []

    def _absolute(self, url: str) -> str:
        return urljoin(self.base_url, url) if self.base_url else url

    def handle_starttag(self, tag, attrs):
        attributes = {name: (value or "") for name, value in attrs}
        if tag == "title":
            self._in_title = True
        elif tag == "meta":
            key = (attributes.get("name") or attributes.get("property") or "").lower()
            if key in ("description", "og:description") and not self.description:
                self.description = attributes.get("content", "").strip() or None
        if tag in SKIP_TAGS:
            self._skip_depth += 1
            return
        if tag in BLOCK_TAGS:
            self.text_parts.append("\n")
        if tag == "a" and attributes.get("href"):
            self._anchor = (self._absolute(attributes["href"].strip()), [])
        elif tag == "img" and attributes.get("src"):
            self.images.append(self._absolute(attributes["src"].strip()))
        elif tag == "table":
            self._table_stack.append(_Table())
        elif tag == "tr" and self._table_stack:
            self._table_stack[-1].rows.append([])
        elif tag in ("td", "th") and self._table_stack:
            self._table_stack[-1].cell = []
        elif tag in ("pre", "code"):
            self._code_depth += 1

    def handle_endtag(self, tag):
        if tag == "title":
            self._in_title = False
        if tag in SKIP_TAGS:
            self._skip_depth = max(self._skip_depth - 1, 0)
            return
        if tag in BLOCK_TAGS:
            self.text_parts.append("\n")
        if tag == "a" and self._anchor is not None:
            url, parts = self._anchor
            label = " ".join("".join(parts).split()) or None
            self.links.append(WebLink(url=url, label=label))
            self._anchor = None
        elif tag in ("td", "th") and self._table_stack:
            table = self._table_stack[-1]
            if table.cell is not None:
                if not table.rows:
                    table.rows.append([])
                table.rows[-1].append(" ".join("".join(table.cell).split()))
                table.cell = None
        elif tag == "table" and self._table_stack:
            table = self._table_stack.pop()
            rendered = "\n".join(" | ".join(row) for row in table.rows if row)
            if rendered:
                self.tables.append(rendered)
        elif tag in ("pre", "code") and self._code_depth:
            self._code_depth -= 1
            if self._code_depth == 0:
                snippet = "".join(self._code_parts).strip("\n")
                if snippet.strip():
                    self.code.append(snippet)
                self._code_parts = []

    def handle_data(self, data):
        if self._in_title:
            self.title_parts.append(data)
            return
        if self._skip_depth:
            return
        self.text_parts.append(data)
        if self._anchor is not None:
            self._anchor[1].append(data)
        if self._table_stack and self._table_stack[-1].cell is not None:
            self._table_stack[-1].cell.append(data)
        if self._code_depth:
            self._code_parts.append(data)


def looks_like_html(body: str) -> bool:
    return bool(HTML_HINT_RE.search(body[:4096]))


def _optional(items: List) -> Optional[tuple]:
    return tuple(items) if items else None


def scan_document(body: str, source_url: Optional[str] = None) -> WebSnapshot:
    """Derive title, description, text, links, images, tables and code from body."""
    if not looks_like_html(body):
        return WebSnapshot(body=body, text=_clean_text(body) or None, source_url=source_url)

    parser = _DocumentParser(source_url)
    try:
        parser.feed(body)
        parser.close()
    except (AssertionError, ValueError) as exc:
        logger.warning("Document scan stopped early for %s: %r", source_url or "<body>", exc)

    title = " ".join("".join(parser.title_parts).split()) or None
    return WebSnapshot(
        body=body,
        title=title,
        description=parser.description,
        text=_clean_text("".join(parser.text_parts)) or None,
        links=_optional(parser.links),
        images=_optional(parser.images),
        tables=_optional(parser.tables),
        code=_optional(parser.code),
        source_url=source_url,
    )
