"""
Database helpers shared by the write paths.
"""

import logging
from contextlib import contextmanager

from roundpicks import db

logger = logging.getLogger(__name__)


@contextmanager
def transaction():
    """
    Run a block inside one database transaction.

    Commits when the block finishes and rolls back on any exception, which is
    then re-raised unchanged. Not re-entrant: helpers meant to run inside a
    caller's transaction only flush.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.debug(f"Transaction rolled back: {e.__class__.__name__}: {e}")
        raise


def lock_row(model, row_id):
    """
    Load a row with ``SELECT ... FOR UPDATE`` so concurrent writers serialize on it.

    SQLite has no row locks and ignores the clause; its database-level write
    lock gives the same ordering.
    """
    return (
        db.session.query(model)
        .filter(model.id == row_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
