# Overview: Row locking and retry helpers shared by the membership and payment services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


CONCURRENT_UPDATE_MESSAGE = "Membership was modified concurrently, retry the request"


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write on money fields.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the version_id column on
    MembersMembership still catches a lost update there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a read-validate-write unit with retry on concurrency failures.

    func must do its own reads, so every retry re-validates against fresh
    state. OperationalError (locks, deadlocks) and StaleDataError (version
    mismatch) are retried; when attempts run out the caller gets a
    ConflictError (409).
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning("Giving up after %d attempts: %s", attempts, exc)
                raise ConflictError(CONCURRENT_UPDATE_MESSAGE) from exc
            current_app.logger.info("Concurrent update detected (attempt %d/%d), retrying", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            # Business rule failures leave nothing half-written in the session
            db.session.rollback()
            raise


