"""Shared blueprint helpers.

get_or_404:          tuple-return lookup, NOT abort
db_commit_or_error:  commit-or-rollback with a standard 500 envelope
"""
import logging

from siteworks.models import db
from siteworks.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or return a 404 error tuple.

    - Success: (obj, None)
    - Failure: (None, (response, 404))

        obj, err = get_or_404(Project, pid)
        if err:
            return err
    """
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if obj is None:
        return None, api_error(E.NOT_FOUND, f"{label} not found")
    return obj, None


def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure — ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err
    """
    try:
        db.session.commit()
        return None
    except Exception:
        logger.exception("Database commit failed")
        db.session.rollback()
        return api_error(E.DATABASE, "Database error")
