"""
Audit / Report Store
====================

Write-once persistence of ConflictCheckRecord plus the read queries used for
report rendering, per-case history, the high-risk listing and statistics.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import case as sql_case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .db.models import CaseParty, ConflictCheckReport
from .errors import PersistenceError
from .schemas import (
    AmbiguousMatchWarning,
    ConflictCheckRecord,
    ConflictLevel,
    ConflictReasonOutput,
    HighRiskEntry,
    PartyRole,
)

logger = logging.getLogger(__name__)


class ReportStore(ABC):
    """Abstract write-once audit store"""

    @abstractmethod
    def save(self, record: ConflictCheckRecord) -> int:
        """Persist a new record and return its id. Raises PersistenceError."""

    @abstractmethod
    def get(self, report_id: int) -> Optional[ConflictCheckRecord]:
        """Fetch a record by id"""

    @abstractmethod
    def history_for_case(self, case_id: int) -> List[ConflictCheckRecord]:
        """All records of a case, newest first"""

    @abstractmethod
    def high_risk(self, limit: int = 50) -> List[HighRiskEntry]:
        """HIGH then MEDIUM records, newest first"""

    @abstractmethod
    def level_stats(self, since: datetime) -> Dict[str, int]:
        """Record count per level since a point in time"""


def _to_record(row: ConflictCheckReport) -> ConflictCheckRecord:
    return ConflictCheckRecord(
        id=row.id,
        case_id=row.case_id,
        search_params=row.search_params or {},
        level=ConflictLevel(row.level),
        reasons=[ConflictReasonOutput(**r) for r in (row.reasons or [])],
        conflicting_case_ids=list(row.conflicting_case_ids or []),
        recommendations=list(row.recommendations or []),
        warnings=[AmbiguousMatchWarning(**w) for w in (row.warnings or [])],
        language=row.language or "en",
        checked_by=row.checked_by,
        checked_at=row.checked_at,
    )


class SqlReportStore(ReportStore):
    """ReportStore backed by the conflict_check_reports table"""

    def __init__(self, db: Session):
        self.db = db

    def save(self, record: ConflictCheckRecord) -> int:
        data = record.model_dump(mode="json", exclude={"id", "checked_at"})
        row = ConflictCheckReport(**data, checked_at=record.checked_at)
        try:
            self.db.add(row)
            self.db.flush()
            report_id = row.id
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to persist conflict check report: {e}", exc_info=True)
            raise PersistenceError("Conflict check result could not be recorded") from e
        return report_id

    def _read(self, what: str, fn):
        try:
            return fn()
        except SQLAlchemyError as e:
            logger.error(f"Audit store read failed ({what}): {e}", exc_info=True)
            raise PersistenceError(f"Audit store read failed ({what})") from e

    def get(self, report_id):
        row = self._read("get", lambda: self.db.get(ConflictCheckReport, report_id))
        return _to_record(row) if row else None

    def history_for_case(self, case_id):
        stmt = (
            select(ConflictCheckReport)
            .where(ConflictCheckReport.case_id == case_id)
            .order_by(ConflictCheckReport.checked_at.desc(), ConflictCheckReport.id.desc())
        )
        rows = self._read("history", lambda: self.db.execute(stmt).scalars().all())
        return [_to_record(r) for r in rows]

    def high_risk(self, limit=50):
        priority = sql_case((ConflictCheckReport.level == ConflictLevel.HIGH, 1), else_=2)
        stmt = (
            select(ConflictCheckReport)
            .where(ConflictCheckReport.level.in_([ConflictLevel.HIGH, ConflictLevel.MEDIUM]))
            .order_by(priority, ConflictCheckReport.checked_at.desc(), ConflictCheckReport.id.desc())
            .limit(limit)
        )
        rows = self._read("high_risk", lambda: self.db.execute(stmt).scalars().all())
        return [
            HighRiskEntry(
                report_id=r.id,
                case_id=r.case_id,
                level=ConflictLevel(r.level),
                conflicting_case_ids=list(r.conflicting_case_ids or []),
                checked_by=r.checked_by,
                checked_at=r.checked_at,
            )
            for r in rows
        ]

    def level_stats(self, since):
        stmt = (
            select(ConflictCheckReport.level, func.count(ConflictCheckReport.id))
            .where(ConflictCheckReport.checked_at >= since)
            .group_by(ConflictCheckReport.level)
        )
        rows = self._read("level_stats", lambda: self.db.execute(stmt).all())
        stats = {level.value: 0 for level in ConflictLevel}
        for level, count in rows:
            stats[ConflictLevel(level).value] = count
        return stats

    def top_conflicted_clients(self, since: datetime, limit: int = 10) -> List[Dict]:
        """Clients of checked cases with the most level > NONE checks"""
        stmt = (
            select(CaseParty.name, ConflictCheckReport.level)
            .join(CaseParty, CaseParty.case_id == ConflictCheckReport.case_id)
            .where(
                CaseParty.role == PartyRole.CLIENT,
                ConflictCheckReport.level != ConflictLevel.NONE,
                ConflictCheckReport.checked_at >= since,
            )
        )
        rows = self._read("top_clients", lambda: self.db.execute(stmt).all())

        counts: Dict[str, int] = {}
        highest: Dict[str, ConflictLevel] = {}
        for name, level in rows:
            counts[name] = counts.get(name, 0) + 1
            highest[name] = ConflictLevel.highest(highest.get(name, ConflictLevel.NONE), ConflictLevel(level))

        ranked = sorted(counts, key=lambda n: (-counts[n], n))[:limit]
        return [
            {"client_name": n, "conflict_count": counts[n], "highest_level": highest[n].value}
            for n in ranked
        ]
