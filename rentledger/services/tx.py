# rentledger/services/tx.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import LedgerError, TransientStoreError

log = logging.getLogger(__name__)


@contextmanager
def write_transaction(db: Session) -> Iterator[Session]:
    """
    One read-modify-write unit against the database.

    Commits on success. Any failure rolls back so prior state stays intact;
    storage failures (including lost-update detection from the version
    counter) are re-raised as TransientStoreError.
    """
    try:
        yield db
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        log.warning("write transaction failed: %s", type(e).__name__)
        raise TransientStoreError(f"storage error: {type(e).__name__}") from e
