"""
SqlEntityStore -- ``EntityStore`` backed by one ORM model.

Every create and delete is its own committed unit of work.  Rollback in
this system is compensation (deleting what an earlier action created),
not a database transaction spanning the batch, so each write must be
durable the moment the handler returns.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from practice_kernel.db.base import TrackedBase
from practice_kernel.db.engine import session_scope
from practice_kernel.exceptions import EntityNotFoundError
from practice_kernel.logging_config import get_logger

logger = get_logger("batch.entity_store")


class SqlEntityStore:
    """Create/delete records of ``model`` through short-lived sessions."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        model: type[TrackedBase],
        entity_type: str,
    ) -> None:
        self._session_factory = session_factory
        self._model = model
        self._entity_type = entity_type

    @property
    def entity_type(self) -> str:
        return self._entity_type

    def create(self, fields: dict[str, Any]) -> str:
        with session_scope(self._session_factory) as session:
            record = self._model(**fields)
            session.add(record)
            session.flush()
            entity_id = str(record.id)

        logger.debug(
            "entity_created",
            extra={"entity_type": self._entity_type, "entity_id": entity_id},
        )
        return entity_id

    def delete(self, entity_id: str) -> None:
        with session_scope(self._session_factory) as session:
            record = session.get(self._model, UUID(str(entity_id)))
            if record is None:
                raise EntityNotFoundError(self._entity_type, str(entity_id))
            session.delete(record)

        logger.debug(
            "entity_deleted",
            extra={"entity_type": self._entity_type, "entity_id": entity_id},
        )
