"""
Tests for Report Builder and Report Store
=========================================

Reason dedup, recommendations, persistence and write-once records.
"""

from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from conflict_service.db.models import ConflictCheckReport, utcnow
from conflict_service.db.session import get_db_session
from conflict_service.errors import PersistenceError
from conflict_service.messages import RECOMMENDATIONS
from conflict_service.models import ConflictReason
from conflict_service.report_builder import ReportBuilder, dedupe_reasons
from conflict_service.report_store import SqlReportStore
from conflict_service.schemas import (
    AmbiguousMatchWarning,
    ConflictCategory,
    ConflictLevel,
    MatchConfidence,
)


def _reason(case_id, category=ConflictCategory.DIRECT_OPPOSITION, confidence=MatchConfidence.IDENTIFIER):
    return ConflictReason(
        category=category,
        matched_case_id=case_id,
        confidence=confidence,
        detail_text=f"{category.value}/{confidence.value}/{case_id}",
    )


# =============================================================================
# Dedup
# =============================================================================

class TestDedupeReasons:
    """One relationship reason and one lawyer reason per matched case"""

    def test_keeps_highest_confidence(self):
        reasons = [
            _reason(1, ConflictCategory.DIRECT_OPPOSITION, MatchConfidence.NAME),
            _reason(1, ConflictCategory.RELATED_ENTITY, MatchConfidence.IDENTIFIER),
        ]
        [kept] = dedupe_reasons(reasons)
        assert kept.confidence is MatchConfidence.IDENTIFIER
        assert kept.category is ConflictCategory.RELATED_ENTITY

    def test_same_confidence_keeps_more_severe(self):
        reasons = [
            _reason(1, ConflictCategory.CROSS_ENTITY),
            _reason(1, ConflictCategory.DIRECT_OPPOSITION),
        ]
        [kept] = dedupe_reasons(reasons)
        assert kept.category is ConflictCategory.DIRECT_OPPOSITION

    def test_same_level_keeps_earlier_category(self):
        reasons = [
            _reason(1, ConflictCategory.POSITION_SWITCH),
            _reason(1, ConflictCategory.DIRECT_OPPOSITION),
        ]
        [kept] = dedupe_reasons(reasons)
        assert kept.category is ConflictCategory.DIRECT_OPPOSITION

    def test_ordered_by_case_id(self):
        reasons = [_reason(3), _reason(1), _reason(2), _reason(1)]
        assert [r.matched_case_id for r in dedupe_reasons(reasons)] == [1, 2, 3]

    def test_independent_of_input_order(self):
        reasons = [
            _reason(1, ConflictCategory.CROSS_ENTITY, MatchConfidence.NAME),
            _reason(1, ConflictCategory.LAWYER_CONFLICT, MatchConfidence.IDENTIFIER),
            _reason(2, ConflictCategory.RELATED_ENTITY, MatchConfidence.NAME),
        ]
        assert dedupe_reasons(reasons) == dedupe_reasons(list(reversed(reasons)))

    def test_lawyer_conflict_kept_alongside_relationship(self):
        reasons = [
            _reason(1, ConflictCategory.LAWYER_CONFLICT, MatchConfidence.NAME),
            _reason(1, ConflictCategory.DIRECT_OPPOSITION, MatchConfidence.NAME),
            _reason(1, ConflictCategory.LAWYER_CONFLICT, MatchConfidence.IDENTIFIER),
            _reason(1, ConflictCategory.DIRECT_OPPOSITION, MatchConfidence.IDENTIFIER),
        ]
        kept = dedupe_reasons(reasons)
        assert [(r.category, r.confidence) for r in kept] == [
            (ConflictCategory.DIRECT_OPPOSITION, MatchConfidence.IDENTIFIER),
            (ConflictCategory.LAWYER_CONFLICT, MatchConfidence.IDENTIFIER),
        ]

    def test_case_listed_once_with_lawyer_conflict(self, memory_store):
        reasons = [
            _reason(2, ConflictCategory.LAWYER_CONFLICT),
            _reason(2, ConflictCategory.DIRECT_OPPOSITION),
        ]
        record = ReportBuilder(memory_store).build(ConflictLevel.HIGH, reasons)
        assert record.conflicting_case_ids == [2]
        assert len(record.reasons) == 2


# =============================================================================
# Builder
# =============================================================================

class TestReportBuilder:
    """Tests for ReportBuilder"""

    def test_build_and_persist_returns_id(self, memory_store):
        builder = ReportBuilder(memory_store)
        record = builder.build_and_persist(ConflictLevel.HIGH, [_reason(4), _reason(4)], checked_by=7, case_id=9)

        assert record.id == 1
        assert record.case_id == 9
        assert record.checked_by == 7
        assert record.conflicting_case_ids == [4]
        assert len(record.reasons) == 1
        assert memory_store.get(1).level is ConflictLevel.HIGH

    def test_high_recommendations(self, memory_store):
        record = ReportBuilder(memory_store).build(ConflictLevel.HIGH, [_reason(1)])
        assert "Do not proceed with this case without senior partner approval" in record.recommendations

    def test_none_recommendations(self, memory_store):
        record = ReportBuilder(memory_store).build(ConflictLevel.NONE, [])
        assert record.recommendations == ["No conflicts detected", "Case can proceed normally"]
        assert record.reasons == []
        assert record.conflicting_case_ids == []

    def test_russian_recommendations(self, memory_store):
        record = ReportBuilder(memory_store, "ru").build(ConflictLevel.MEDIUM, [_reason(1)])
        assert record.recommendations == RECOMMENDATIONS["ru"][ConflictLevel.MEDIUM]
        assert record.language == "ru"

    def test_recommendations_are_copies(self, memory_store):
        record = ReportBuilder(memory_store).build(ConflictLevel.LOW, [])
        record.recommendations.append("mutated")
        assert "mutated" not in RECOMMENDATIONS["en"][ConflictLevel.LOW]

    def test_store_failure_propagates(self, failing_store):
        with pytest.raises(PersistenceError):
            ReportBuilder(failing_store).build_and_persist(ConflictLevel.HIGH, [_reason(1)])


# =============================================================================
# SQL store
# =============================================================================

def _record(level=ConflictLevel.HIGH, case_id=None, checked_at=None, **kwargs):
    builder = ReportBuilder(MagicMock())
    record = builder.build(level, kwargs.pop("reasons", [_reason(5)]), case_id=case_id, **kwargs)
    if checked_at is not None:
        record = record.model_copy(update={"checked_at": checked_at})
    return record


class TestSqlReportStore:
    """Tests for SqlReportStore"""

    def test_save_and_get_round_trip(self, sqlalchemy_db):
        warning = AmbiguousMatchWarning(query_name="John Doe", matched_case_ids=[1, 2], message="check")
        record = _record(search_params={"reviewer_ids": [3]}, warnings=[warning], checked_by=3)

        with get_db_session() as db:
            report_id = SqlReportStore(db).save(record)

        with get_db_session() as db:
            stored = SqlReportStore(db).get(report_id)

        assert stored.id == report_id
        assert stored.level is ConflictLevel.HIGH
        assert stored.reasons == record.reasons
        assert stored.warnings == [warning]
        assert stored.search_params == {"reviewer_ids": [3]}
        assert stored.checked_by == 3

    def test_checked_by_is_not_a_foreign_key(self, sqlalchemy_db):
        assert not ConflictCheckReport.__table__.c.checked_by.foreign_keys

        with get_db_session() as db:
            report_id = SqlReportStore(db).save(_record(checked_by=424242))

        with get_db_session() as db:
            assert SqlReportStore(db).get(report_id).checked_by == 424242

    def test_get_missing(self, sqlalchemy_db):
        with get_db_session() as db:
            assert SqlReportStore(db).get(404) is None

    def test_records_are_write_once(self, sqlalchemy_db):
        with get_db_session() as db:
            report_id = SqlReportStore(db).save(_record())

        with pytest.raises(PersistenceError):
            with get_db_session() as db:
                row = db.get(ConflictCheckReport, report_id)
                row.level = ConflictLevel.NONE
                db.flush()

        with pytest.raises(PersistenceError):
            with get_db_session() as db:
                db.delete(db.get(ConflictCheckReport, report_id))
                db.flush()

        with get_db_session() as db:
            assert SqlReportStore(db).get(report_id).level is ConflictLevel.HIGH

    def test_database_error_becomes_persistence_error(self):
        db = MagicMock()
        db.flush.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))

        with pytest.raises(PersistenceError):
            SqlReportStore(db).save(_record())
        db.rollback.assert_called_once()

    def test_history_newest_first(self, seed_case):
        case_id = seed_case("Alpha Corp")
        now = utcnow()
        with get_db_session() as db:
            store = SqlReportStore(db)
            first = store.save(_record(case_id=case_id, checked_at=now - timedelta(hours=1)))
            second = store.save(_record(ConflictLevel.NONE, case_id=case_id, checked_at=now, reasons=[]))
            store.save(_record(case_id=None))

        with get_db_session() as db:
            history = SqlReportStore(db).history_for_case(case_id)

        assert [r.id for r in history] == [second, first]

    def test_high_risk_orders_high_first(self, sqlalchemy_db):
        now = utcnow()
        with get_db_session() as db:
            store = SqlReportStore(db)
            medium = store.save(_record(ConflictLevel.MEDIUM, checked_at=now))
            high = store.save(_record(ConflictLevel.HIGH, checked_at=now - timedelta(days=1)))
            store.save(_record(ConflictLevel.LOW, checked_at=now))

        with get_db_session() as db:
            entries = SqlReportStore(db).high_risk()

        assert [e.report_id for e in entries] == [high, medium]

    def test_level_stats_window(self, sqlalchemy_db):
        now = utcnow()
        with get_db_session() as db:
            store = SqlReportStore(db)
            store.save(_record(ConflictLevel.HIGH, checked_at=now))
            store.save(_record(ConflictLevel.NONE, checked_at=now, reasons=[]))
            store.save(_record(ConflictLevel.HIGH, checked_at=now - timedelta(days=60)))

        with get_db_session() as db:
            stats = SqlReportStore(db).level_stats(now - timedelta(days=30))

        assert stats == {"none": 1, "low": 0, "medium": 0, "high": 1}

    def test_top_conflicted_clients(self, seed_case):
        alpha = seed_case("Alpha Corp")
        beta = seed_case("Beta Inc")
        now = utcnow()
        with get_db_session() as db:
            store = SqlReportStore(db)
            store.save(_record(ConflictLevel.MEDIUM, case_id=alpha))
            store.save(_record(ConflictLevel.HIGH, case_id=alpha))
            store.save(_record(ConflictLevel.LOW, case_id=beta))
            store.save(_record(ConflictLevel.NONE, case_id=beta, reasons=[]))

        with get_db_session() as db:
            top = SqlReportStore(db).top_conflicted_clients(now - timedelta(days=1))

        assert top == [
            {"client_name": "Alpha Corp", "conflict_count": 2, "highest_level": "high"},
            {"client_name": "Beta Inc", "conflict_count": 1, "highest_level": "low"},
        ]
