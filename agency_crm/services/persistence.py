"""Store-failure translation shared by the service modules."""

from __future__ import annotations

import functools
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import PersistenceFailure, ServiceError

log = logging.getLogger(__name__)


def guarded(what: str):
    """Translate store failures into ``PersistenceFailure`` with a generic message."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(db: AsyncSession, *args, **kwargs):
            try:
                return await fn(db, *args, **kwargs)
            except ServiceError:
                raise
            except SQLAlchemyError as exc:
                log.exception("Failed to %s", what)
                await db.rollback()
                raise PersistenceFailure(f"Failed to {what}") from exc

        return wrapper

    return decorator
