"""Errors raised between the orchestrator and its collaborators."""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for exchange pipeline errors."""


class RejectedInputError(PipelineError):
    """The exchange cannot start; the user gets one clarification request."""

    def __init__(self, clarification: str) -> None:
        super().__init__(clarification)
        self.clarification = clarification


class TransientCollaboratorError(PipelineError):
    """A fetch or model call failed in a way worth retrying."""


class CollaboratorError(PipelineError):
    """A fetch or model call failed permanently."""


class RetryBudgetExhausted(PipelineError):
    def __init__(self, label: str, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error!r}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


class DeliveryError(PipelineError):
    """The transport did not accept a reply."""
