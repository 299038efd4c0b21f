"""Storage ports for clips, clip memberships and notes, with SQLAlchemy adapters."""

from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models

UNIQUE_VIOLATION = "23505"


def is_duplicate_key_error(error: BaseException) -> bool:
    """Whether ``error`` is a unique constraint violation raised by the database."""
    if not isinstance(error, IntegrityError):
        return False

    orig = error.orig
    if getattr(orig, "pgcode", None) == UNIQUE_VIOLATION or getattr(orig, "sqlstate", None) == UNIQUE_VIOLATION:
        return True

    message = str(orig).lower()
    return "unique constraint" in message or "duplicate key" in message


class ClipRepository(Protocol):
    def count_by(self, **criteria) -> int: ...
    def find_one_by(self, **criteria) -> Optional[models.Clip]: ...
    def insert(self, values: Dict[str, Any]) -> str: ...
    def update(self, id: str, values: Dict[str, Any]) -> None: ...
    def delete_by(self, **criteria) -> int: ...


class ClipNoteRepository(Protocol):
    def count_by(self, **criteria) -> int: ...
    def insert(self, values: Dict[str, Any]) -> str: ...
    def delete_by(self, **criteria) -> int: ...


class NoteRepository(Protocol):
    def find_one_by(self, **criteria) -> Optional[models.Note]: ...
    def increment(self, id: str, column: str, amount: int) -> None: ...
    def decrement(self, id: str, column: str, amount: int) -> None: ...


class SqlAlchemyRepository:
    model = None

    def __init__(self, db: Session):
        self.db = db

    def _where(self, criteria):
        return [getattr(self.model, key) == value for key, value in criteria.items()]

    def count_by(self, **criteria) -> int:
        stmt = select(func.count()).select_from(self.model).where(*self._where(criteria))
        return self.db.scalar(stmt)

    def find_one_by(self, **criteria):
        stmt = select(self.model).where(*self._where(criteria)).limit(1)
        return self.db.scalars(stmt).first()

    def insert(self, values: Dict[str, Any]) -> str:
        row = self.model(**values)
        self.db.add(row)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return values["id"]

    def update(self, id: str, values: Dict[str, Any]) -> None:
        self._execute(update(self.model).where(self.model.id == id).values(**values))

    def delete_by(self, **criteria) -> int:
        result = self._execute(delete(self.model).where(*self._where(criteria)))
        return result.rowcount

    def increment(self, id: str, column: str, amount: int) -> None:
        field = getattr(self.model, column)
        self._execute(update(self.model).where(self.model.id == id).values({field: field + amount}))

    def decrement(self, id: str, column: str, amount: int) -> None:
        self.increment(id, column, -amount)

    def _execute(self, stmt):
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result


class SqlClipRepository(SqlAlchemyRepository):
    model = models.Clip

    def list_by_user(self, user_id: str, limit: int = 10, until_id: Optional[str] = None) -> List[models.Clip]:
        stmt = select(models.Clip).where(models.Clip.user_id == user_id)
        if until_id:
            stmt = stmt.where(models.Clip.id < until_id)
        stmt = stmt.order_by(models.Clip.id.desc()).limit(limit)
        return list(self.db.scalars(stmt))


class SqlClipNoteRepository(SqlAlchemyRepository):
    model = models.ClipNote

    def list_note_ids(self, clip_id: str) -> List[str]:
        stmt = (
            select(models.ClipNote.note_id)
            .where(models.ClipNote.clip_id == clip_id)
            .order_by(models.ClipNote.id)
        )
        return list(self.db.scalars(stmt))


class SqlNoteRepository(SqlAlchemyRepository):
    model = models.Note
