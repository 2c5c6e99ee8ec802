from parley.services.context_store import ContextStore
from parley.services.errors import (
    ConstraintViolationError,
    ContextStoreError,
    NotFoundError,
)

__all__ = [
    "ConstraintViolationError",
    "ContextStore",
    "ContextStoreError",
    "NotFoundError",
]
