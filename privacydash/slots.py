"""
Durable key-value slots backing the vault, the request collection and the profile map.

Each slot holds one complete serialized blob. Writes replace the whole blob inside a
single transaction, so a reader sees either the previous value or the new one.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import db, errors, models

logger = logging.getLogger(__name__)


class SlotStore(ABC):
    """Interface shared by the SQL store and the in-memory test double."""

    @abstractmethod
    def get(self, label: str) -> Optional[str]:
        ...

    @abstractmethod
    def put(self, label: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, label: str) -> None:
        ...



class MemorySlotStore(SlotStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._slots: Dict[str, str] = dict(initial or {})

    def get(self, label: str) -> Optional[str]:
        return self._slots.get(label)

    def put(self, label: str, value: str) -> None:
        self._slots[label] = value

    def delete(self, label: str) -> None:
        self._slots.pop(label, None)


class SqlSlotStore(SlotStore):
    def __init__(self, url: str | None = None, engine=None):
        self.engine = engine or db.make_engine(url)
        self.SessionLocal = db.make_session_factory(self.engine)
        try:
            db.init_db(self.engine)
        except SQLAlchemyError as exc:
            raise errors.StorageUnavailable("init", str(exc)) from exc

    def get(self, label: str) -> Optional[str]:
        session = self.SessionLocal()
        try:
            slot = session.query(models.Slot).filter(models.Slot.label == label).first()
            return slot.value if slot else None
        except SQLAlchemyError as exc:
            raise errors.StorageUnavailable(f"read of {label}", str(exc)) from exc
        finally:
            session.close()

    def put(self, label: str, value: str) -> None:
        session = self.SessionLocal()
        try:
            session.merge(
                models.Slot(
                    label=label,
                    value=value,
                    updated_at=datetime.now(timezone.utc).isoformat(),
                )
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise errors.StorageUnavailable(f"write of {label}", str(exc)) from exc
        finally:
            session.close()

    def delete(self, label: str) -> None:
        session = self.SessionLocal()
        try:
            session.query(models.Slot).filter(models.Slot.label == label).delete()
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise errors.StorageUnavailable(f"delete of {label}", str(exc)) from exc
        finally:
            session.close()
        logger.debug("Slot %s deleted", label)
