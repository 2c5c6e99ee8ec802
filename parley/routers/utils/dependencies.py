from parley.db import db_manager
from parley.services.context_store import ContextStore


def get_context_store() -> ContextStore:
    """FastAPI dependency returning the context store bound to the app database."""
    return ContextStore(db_manager)
