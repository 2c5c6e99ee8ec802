"""Language lookups and get-or-create by name."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session as DBSession

from parley.models.language import Language
from parley.services.errors import ConstraintViolationError
from parley.services.soft_delete_service import SoftDeleteService


class LanguageService(SoftDeleteService[Language]):
    def __init__(self, db: DBSession) -> None:
        super().__init__(db, Language)

    def get_active_by_name(self, name: str) -> Optional[Language]:
        return (
            self.db.query(Language)
            .filter(Language.name == name, Language.active_filter())
            .first()
        )

    def ensure_language(self, name: str) -> int:
        """Return the id of the active language with this exact name, creating it if needed."""
        if not name:
            raise ValueError("language name must not be empty")
        existing = self.get_active_by_name(name)
        if existing is not None:
            return existing.id
        self.insert_if_absent({"name": name})
        language = self.get_active_by_name(name)
        if language is None:
            raise ConstraintViolationError(f"Language {name!r} could not be created")
        return language.id
