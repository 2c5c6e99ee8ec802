"""Prompt context assembled from history, the user's text, an optional document and an optional photo."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from parley.pipeline.document_scanner import WebSnapshot
from parley.schemas.context import HistoryTurn
from parley.schemas.messaging import DEFAULT_LANGUAGE

DOCUMENT_TEXT_LIMIT = 12000
STORED_DOCUMENT_LIMIT = 4000
MAX_LISTED_LINKS = 25
MAX_LISTED_ITEMS = 10


_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def detect_image_media_type(data: bytes) -> str:
    """Media type from the file signature; Telegram photos default to JPEG."""
    for signature, media_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return media_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


@dataclass(frozen=True)
class PromptContext:
    user_text: str
    language: str = DEFAULT_LANGUAGE
    # Chronological, oldest first; never contains the no-history sentinel.
    history: Tuple[HistoryTurn, ...] = ()
    snapshot: Optional[WebSnapshot] = None
    image: Optional[bytes] = None

    @property
    def image_media_type(self) -> Optional[str]:
        return detect_image_media_type(self.image) if self.image else None

    def link_labels(self) -> dict[str, str]:
        return self.snapshot.link_labels() if self.snapshot else {}

    def render_prompt(self) -> str:
        """User prompt for the model: language hint, question, then the document."""
        parts = [f'Main language is "{self.language}".', "", self.user_text]
        if self.image:
            parts.extend(["", "The user attached an image."])
        if self.snapshot is not None:
            parts.extend(["", "WebResource:", render_snapshot(self.snapshot)])
        return "\n".join(parts)

    def stored_content(self) -> str:
        """Content persisted for this turn, so later turns still see the document."""
        if self.snapshot is None or not self.snapshot.text:
            return self.user_text
        excerpt = self.snapshot.text[:STORED_DOCUMENT_LIMIT]
        return f"{self.user_text}\n\nWeb Resource:\n\n{excerpt}"


def _section(title: str, items: Iterable[str]) -> Optional[str]:
    lines = [f"- {item}" for item in items]
    if not lines:
        return None
    return f"{title}:\n" + "\n".join(lines)


def render_snapshot(snapshot: WebSnapshot) -> str:
    """Plain-text rendering of the derived fields; absent fields are stated as absent."""
    out = []
    if snapshot.source_url:
        out.append(f"URL: {snapshot.source_url}")
    out.append(f"Title: {snapshot.title or '(absent)'}")
    out.append(f"Description: {snapshot.description or '(absent)'}")
    if snapshot.text:
        out.append("Text:\n" + snapshot.text[:DOCUMENT_TEXT_LIMIT])
    else:
        out.append("Text: (absent)")
    if snapshot.links:
        out.append(
            _section(
                "Links",
                (
                    f"{link.label} <{link.url}>" if link.label else link.url
                    for link in snapshot.links[:MAX_LISTED_LINKS]
                ),
            )
        )
    if snapshot.images:
        out.append(_section("Images", snapshot.images[:MAX_LISTED_ITEMS]))
    for i, table in enumerate((snapshot.tables or ())[:MAX_LISTED_ITEMS], start=1):
        out.append(f"Table {i}:\n{table}")
    for i, snippet in enumerate((snapshot.code or ())[:MAX_LISTED_ITEMS], start=1):
        out.append(f"Code {i}:\n{snippet}")
    return "\n\n".join(part for part in out if part)


def build_prompt_context(
    turns: Sequence[HistoryTurn],
    user_text: str,
    language: str = DEFAULT_LANGUAGE,
    snapshot: Optional[WebSnapshot] = None,
    image: Optional[bytes] = None,
) -> PromptContext:
    """
    turns come from ContextStore.recent_history (newest first, possibly the
    sentinel); the context holds them oldest first without the sentinel.
    """
    history = tuple(turn for turn in reversed(turns) if not turn.is_sentinel)
    return PromptContext(
        user_text=user_text,
        language=language or DEFAULT_LANGUAGE,
        history=history,
        snapshot=snapshot,
        image=image or None,
    )
