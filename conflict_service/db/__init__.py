"""
Database Package - PostgreSQL with SQLAlchemy
==============================================

Case corpus and audit store used by the conflict engine.
"""

from .models import (
    Base,
    User,
    Case, CaseParty, CaseRelatedEntity, CaseLawyer,
    ConflictCheckReport,
)
from .session import get_db, get_db_session, snapshot_session, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Reviewers
    "User",
    # Corpus
    "Case", "CaseParty", "CaseRelatedEntity", "CaseLawyer",
    # Audit
    "ConflictCheckReport",
    # Session
    "get_db", "get_db_session", "snapshot_session", "init_db", "get_engine", "reset_engine",
]
