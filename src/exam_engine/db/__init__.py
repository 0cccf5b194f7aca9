"""Database module for SQLite persistence.

Provides:
- Database connection management
- Schema initialization
- Repository functions for the catalog (test series, questions)
- Repository functions for attempts and attempt counters
"""

from exam_engine.db.database import get_db, init_db

__all__ = ["get_db", "init_db"]
