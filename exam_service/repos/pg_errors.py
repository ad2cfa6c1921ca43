"""Translate storage-layer failures into the exam error taxonomy."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from exam_service.core.errors import PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise any SQLAlchemyError as PersistenceError.

    Usage::

        with storage_errors("load attempt"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
    """
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Storage failure during %s: %s", operation, e)
        raise PersistenceError(f"{operation} failed") from e
