"""
Optimistic Concurrency Controller.

Reports and work items carry a ``version`` column registered as the SQLAlchemy
mapper ``version_id_col``. Every flush that touches such a row is emitted as

    UPDATE ... SET version = :new WHERE id = :id AND version = :old

so the read-compare-write sequence collapses into a single compare-and-swap
statement. Zero matched rows means another transaction committed first; the
ORM raises ``StaleDataError`` which ``flush_versioned`` turns into a
``ConflictError`` carrying the version that is actually stored.

Report versions are epoch milliseconds and double as the ``updated_at`` value
exposed to clients. They are strictly increasing per row even when two writes
land in the same millisecond.

Usage:
    check_version(report.version, expected_version)
    report.title = "..."
    flush_versioned(store, report)
"""

import logging
import time

from sqlalchemy.orm.exc import StaleDataError

from nippo.core.exceptions import ConflictError

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def next_version(current: int | None) -> int:
    """Return a version strictly greater than *current* (``None`` on insert)."""
    now = _now_ms()
    if current is None:
        return now
    return max(now, current + 1)


def check_version(stored_version: int, expected_version: int | None, *, resource: str = "Report",
                  resource_id=None) -> None:
    """Compare the caller's expected version with the stored one.

    An omitted ``expected_version`` skips the check; callers that must never
    overwrite blindly (report updates) reject ``None`` before getting here.
    Any mismatch raises
    ``ConflictError`` with the stored version so the caller can re-fetch.
    """
    if expected_version is None:
        return
    if int(expected_version) != stored_version:
        logger.warning(
            "Version conflict on %s %s: expected=%s stored=%s",
            resource, resource_id, expected_version, stored_version,
        )
        raise ConflictError(resource=resource, resource_id=resource_id, stored_version=stored_version)


def flush_versioned(store, entity) -> int:
    """Flush pending writes for a versioned entity as a compare-and-swap.

    Returns the new version. On a lost race the transaction is rolled back
    and ``ConflictError`` reports the version another writer committed.
    """
    model = type(entity)
    entity_id = entity.id
    try:
        store.flush()
    except StaleDataError:
        store.rollback()
        stored = store.current_version(model, entity_id)
        logger.warning(
            "Concurrent write lost on %s %s (stored version=%s)",
            model.__name__, entity_id, stored,
        )
        raise ConflictError(resource=model.__name__, resource_id=entity_id, stored_version=stored)
    return entity.version
