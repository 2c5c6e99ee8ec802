from parley.markup.fallback import render_plain_fallback, strip_markup
from parley.markup.formatter import format_markup
from parley.markup.validator import ValidationReport, Violation, validate_markup

__all__ = [
    "ValidationReport",
    "Violation",
    "format_markup",
    "render_plain_fallback",
    "strip_markup",
    "validate_markup",
]
