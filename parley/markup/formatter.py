"""
Model text -> Telegram HTML.

format_markup runs the stages below in order over a line buffer. Code fences
and tables are claimed first and reach the output inside <pre>, changed only
by entity escaping.
"""

from __future__ import annotations

from functools import partial
from typing import Callable, Mapping, Optional, Sequence

from parley.markup import rules
from parley.markup.buffer import MarkupBuffer, from_text, render

Stage = Callable[[MarkupBuffer], MarkupBuffer]


def build_stages(link_labels: Optional[Mapping[str, str]] = None) -> Sequence[Stage]:
    return (
        rules.claim_code_fences,
        rules.claim_tables,
        rules.drop_rules,
        rules.escape_inline,
        partial(rules.rewrite_links, link_labels=link_labels),
        rules.rewrite_lists,
        rules.normalize_spacing,
        rules.wrap_quotations,
    )


def format_markup(text: str, link_labels: Optional[Mapping[str, str]] = None) -> str:
    """
    Deterministically convert free-form text into the allowed HTML subset.

    link_labels maps a URL to the label its bare occurrences should get;
    URLs without one are labelled with their host.
    """
    buffer = from_text(text or "")
    for stage in build_stages(link_labels):
        buffer = stage(buffer)
    return render(buffer)
