"""Unit-of-work helper shared by every mutating service operation.

Usage::

    with transaction():
        approval.status = "approved"
        write_activity(...)

One commit on success.  On any exception the session is rolled back, so the
primary mutation and its activity record are all-or-nothing.

Optimistic-concurrency losses and unique-index violations surface as
``ConflictError``:

    StaleDataError   → a versioned row changed since it was read
    IntegrityError   → a unique constraint (e.g. one pending approval per post)
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from teamflow.core.exceptions import ConflictError
from teamflow.models import db

logger = logging.getLogger(__name__)


@contextmanager
def transaction(resource: str = "Record"):
    """Commit the session once, or roll it back and re-raise a typed error."""
    try:
        yield db.session
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("Concurrent modification of %s rejected: %s", resource, exc)
        raise ConflictError(
            resource,
            reason=f"{resource} was modified concurrently; re-read and retry",
        ) from exc
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on %s: %s", resource, exc.orig)
        raise ConflictError(
            resource,
            reason=f"{resource} conflicts with an existing record",
        ) from exc
    except Exception:
        db.session.rollback()
        raise
