from __future__ import annotations

import logging
from typing import Generic, TypeVar, Type, Optional, Any
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

T = TypeVar("T")

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when *exc* came from a unique index rather than a FK/check constraint."""
    orig = exc.orig
    if getattr(orig, "pgcode", None) == UNIQUE_VIOLATION or getattr(orig, "sqlstate", None) == UNIQUE_VIOLATION:
        return True
    message = str(orig).lower()
    return "unique" in message or "duplicate" in message


class BaseRepository(Generic[T]):
    def __init__(self, session: Session, model: Type[T]) -> None:
        self.session = session
        self.model = model

    def create(self, obj: T, *, commit: bool = True) -> T:
        self.session.add(obj)
        if commit:
            self.session.commit()
            self.session.refresh(obj)
        return obj

    def get_by_id(self, id_: Any) -> Optional[T]:
        return self.session.get(self.model, id_)

    def insert_if_absent(self, obj: T) -> bool:
        """
        Insert *obj*, silently dropping it if a row with the same unique key exists.

        Returns True when a row was created. Any other integrity error
        (foreign key, check constraint) is re-raised.
        """
        self.session.add(obj)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if not is_unique_violation(e):
                raise
            logger.debug("Duplicate %s ignored", self.model.__name__)
            return False
        return True
