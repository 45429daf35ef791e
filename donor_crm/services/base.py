"""
Session handling shared by all services.
"""

from typing import Optional
from sqlalchemy.orm import Session

from database.database import SessionLocal


class BaseService:
    """
    Services take an optional session (request-scoped in routes, test
    sessions in tests) and otherwise open and close their own.
    """

    def __init__(self, db: Optional[Session] = None):
        """
        Args:
            db: Optional database session. If not provided, will create new sessions.
        """
        self._db = db

    def _get_db(self) -> Session:
        """Get or create database session."""
        if self._db:
            return self._db
        return SessionLocal()

    def _close_db(self, db: Session):
        """Close database session if we created it."""
        if not self._db:
            db.close()
