"""
SQLAlchemy Models for Database
==============================

Schema of the case corpus as seen by the conflict engine:
- Reviewers (users) and their case assignments
- Cases with exactly one client and an optional opponent
- Affiliated entities normalized into one indexed table
- Write-once conflict check reports

Parties and affiliated entities carry `name_key` / `identifier_key` columns
filled from the Entity Normalizer on every insert/update.

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, Enum, ForeignKey,
    UniqueConstraint, Index, JSON, event
)
from sqlalchemy.orm import relationship, declarative_base

from ..errors import PersistenceError
from ..normalizer import index_keys
from ..schemas import PartyRole, PartyKind, EntityCategory, ConflictLevel

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum(enum_cls, name):
    # Store enum values ("client"), not member names ("CLIENT")
    return Enum(enum_cls, name=name, values_callable=lambda cls: [m.value for m in cls])


# =============================================================================
# USERS
# =============================================================================

class User(Base):
    """Lawyer / reviewer"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    assignments = relationship(
        "CaseLawyer", back_populates="lawyer", foreign_keys="CaseLawyer.lawyer_id"
    )


# =============================================================================
# CASE CORPUS
# =============================================================================

class Case(Base):
    """Legal case"""
    __tablename__ = "cases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_number = Column(String(100), nullable=True)
    case_type = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    parties = relationship("CaseParty", back_populates="case", cascade="all, delete-orphan")
    related_entities = relationship("CaseRelatedEntity", back_populates="case", cascade="all, delete-orphan")
    lawyers = relationship("CaseLawyer", back_populates="case", cascade="all, delete-orphan")


class CaseParty(Base):
    """Client or opponent of a case"""
    __tablename__ = "case_parties"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(Integer, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    role = Column(_enum(PartyRole, "party_role"), nullable=False)
    kind = Column(_enum(PartyKind, "party_kind"), default=PartyKind.LEGAL, nullable=False)
    name = Column(String(255), nullable=False)
    identifier = Column(String(50), nullable=True)  # tax id (legal) / personal id (individual)

    # Index keys (Entity Normalizer output)
    name_key = Column(String(255), nullable=False, default="")
    identifier_key = Column(String(50), nullable=True)

    # One client, at most one opponent
    __table_args__ = (
        UniqueConstraint("case_id", "role", name="uq_case_party_role"),
        Index("ix_case_party_name_key", "name_key"),
        Index("ix_case_party_identifier_key", "identifier_key"),
    )

    case = relationship("Case", back_populates="parties")


class CaseRelatedEntity(Base):
    """Affiliated entity of a case (founder, director, related company, ...)"""
    __tablename__ = "case_related_entities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(Integer, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    category = Column(_enum(EntityCategory, "entity_category"), nullable=False)
    name = Column(String(255), nullable=False)
    identifier = Column(String(50), nullable=True)
    phone = Column(String(50), nullable=True)
    extra_data = Column(JSONB, default=dict)  # Note: 'metadata' is reserved by SQLAlchemy
    created_at = Column(DateTime, default=utcnow)

    name_key = Column(String(255), nullable=False, default="")
    identifier_key = Column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_related_entity_case_category", "case_id", "category"),
        Index("ix_related_entity_name_key", "name_key"),
        Index("ix_related_entity_identifier_key", "identifier_key"),
    )

    case = relationship("Case", back_populates="related_entities")


class CaseLawyer(Base):
    """Reviewer assignment (many-to-many between cases and lawyers)"""
    __tablename__ = "case_lawyers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(Integer, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    lawyer_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    assigned_at = Column(DateTime, default=utcnow)
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        UniqueConstraint("case_id", "lawyer_id", name="uq_case_lawyer"),
        Index("ix_case_lawyer_lawyer", "lawyer_id"),
    )

    case = relationship("Case", back_populates="lawyers")
    lawyer = relationship("User", back_populates="assignments", foreign_keys=[lawyer_id])


# =============================================================================
# AUDIT
# =============================================================================

class ConflictCheckReport(Base):
    """Write-once record of one conflict check"""
    __tablename__ = "conflict_check_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(Integer, ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    search_params = Column(JSONB, default=dict)
    level = Column(_enum(ConflictLevel, "conflict_level"), nullable=False)
    reasons = Column(JSONB, default=list)  # [{category, matched_case_id, confidence, detail_text}]
    conflicting_case_ids = Column(JSONB, default=list)
    recommendations = Column(JSONB, default=list)
    warnings = Column(JSONB, default=list)
    language = Column(String(10), default="en")
    checked_by = Column(Integer, nullable=True)  # X-User-Id of the caller, not necessarily a users row
    checked_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_report_case", "case_id"),
        Index("ix_report_level_checked", "level", "checked_at"),
    )


# =============================================================================
# EVENTS
# =============================================================================

@event.listens_for(CaseParty, "before_insert")
@event.listens_for(CaseParty, "before_update")
@event.listens_for(CaseRelatedEntity, "before_insert")
@event.listens_for(CaseRelatedEntity, "before_update")
def _fill_index_keys(mapper, connection, target):
    target.name_key, target.identifier_key = index_keys(target.name, target.identifier)


@event.listens_for(ConflictCheckReport, "before_update")
@event.listens_for(ConflictCheckReport, "before_delete")
def _reject_report_mutation(mapper, connection, target):
    raise PersistenceError(f"Conflict check report {target.id} is write-once")
