"""Errors raised by the context store."""


class ContextStoreError(Exception):
    """Base class for store errors that must not be retried."""


class NotFoundError(ContextStoreError, LookupError):
    """The row does not exist or has been soft-deleted."""


class ConstraintViolationError(ContextStoreError, ValueError):
    """A write referenced a user, chat or language that is not active."""
