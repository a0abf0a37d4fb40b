"""Document-store helpers: lock-tolerant commits, status CAS, sharded inserts."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from ..extensions import db

logger = logging.getLogger(__name__)


class PartialWriteError(Exception):
    """Some shards committed before a later shard failed."""

    def __init__(self, written: int, total: int):
        super().__init__(f"Partial write: {written}/{total} rows committed")
        self.written = written
        self.total = total


def _is_locked(exc: OperationalError) -> bool:
    return "locked" in str(exc).lower()


def commit_with_retry(attempts: int = 5, base_delay: float = 0.2) -> None:
    """Commit with simple backoff to reduce SQLite 'database is locked' errors."""
    for attempt in range(attempts):
        try:
            db.session.commit()
            return
        except OperationalError as exc:
            db.session.rollback()
            if not _is_locked(exc) or attempt == attempts - 1:
                raise
            time.sleep(base_delay * (attempt + 1))
        except Exception:
            db.session.rollback()
            raise


def compare_and_set(
    model,
    entity_id: Any,
    *,
    expected: Mapping[str, Iterable[Any]],
    values: Mapping[str, Any],
    attempts: int = 5,
    base_delay: float = 0.2,
) -> bool:
    """Atomically apply `values` only if every column in `expected` holds an allowed value.

    Returns True when this caller's update matched the row.
    """
    stmt = update(model).where(model.id == entity_id)
    for column, allowed in expected.items():
        stmt = stmt.where(getattr(model, column).in_(tuple(allowed)))
    stmt = stmt.values(**values).execution_options(synchronize_session=False)
    for attempt in range(attempts):
        try:
            result = db.session.execute(stmt)
            db.session.commit()
        except OperationalError as exc:
            db.session.rollback()
            if not _is_locked(exc) or attempt == attempts - 1:
                raise
            time.sleep(base_delay * (attempt + 1))
            continue
        db.session.expire_all()
        return result.rowcount == 1
    return False


def batch_insert(rows: Sequence[Any], shard_size: int) -> int:
    """Insert rows in committed shards of at most `shard_size`.

    A failure on the first shard re-raises the original error; a failure after
    at least one committed shard raises PartialWriteError.
    """
    shard_size = max(1, int(shard_size))
    written = 0
    total = len(rows)
    for start in range(0, total, shard_size):
        shard = rows[start : start + shard_size]
        try:
            db.session.add_all(shard)
            commit_with_retry()
        except Exception as exc:
            if written == 0:
                raise
            logger.error(
                "Sharded insert stopped after %s/%s rows",
                written,
                total,
                extra={"written": written, "total": total},
            )
            raise PartialWriteError(written, total) from exc
        written += len(shard)
    return written
