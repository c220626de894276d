# ledger/transaction.py
from contextlib import contextmanager

from extensions import db


@contextmanager
def atomic():
    """
    All-or-nothing unit of work on the shared session.
    Commits when the block finishes, rolls back and re-raises on any error.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
