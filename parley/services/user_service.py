"""User lookups and lazy creation."""

from __future__ import annotations

from sqlalchemy.orm import Session as DBSession

from parley.models.mixins import utcnow
from parley.models.user import User
from parley.services.soft_delete_service import SoftDeleteService


class UserService(SoftDeleteService[User]):
    def __init__(self, db: DBSession) -> None:
        super().__init__(db, User)

    def ensure_user(self, external_id: int, language_id: int) -> User:
        """Insert the user bound to language_id if absent. An existing user keeps its language and deleted_at."""
        self.insert_if_absent(
            {
                "external_id": external_id,
                "language_id": language_id,
                "created_at": utcnow(),
            }
        )
        return self.get_record(external_id)
