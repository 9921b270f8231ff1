"""
Shared fixtures for conflict service tests.
"""

import os
from pathlib import Path
from typing import List, Optional

import pytest

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from conflict_service.corpus import CorpusReader
from conflict_service.errors import CorpusLookupError, PersistenceError
from conflict_service.notifications import Notifier
from conflict_service.report_store import ReportStore
from conflict_service.schemas import ConflictLevel, EntityCategory, HighRiskEntry, PartyKind, PartyRole


@pytest.fixture
def sqlalchemy_db(tmp_path):
    """Configure a fresh SQLAlchemy SQLite DB for tests."""
    from conflict_service.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "conflicts.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


@pytest.fixture
def seed_case(sqlalchemy_db):
    """
    Insert a case and return its id.

    entities: iterable of (category, name, identifier) tuples
    lawyers: reviewer user ids, created on first use
    """
    from conflict_service.db.session import get_db_session
    from conflict_service.db.models import Case, CaseParty, CaseRelatedEntity, CaseLawyer, User

    def _seed(
        client: str,
        client_id: Optional[str] = None,
        opponent: Optional[str] = None,
        opponent_id: Optional[str] = None,
        entities=(),
        lawyers=(),
        case_number: Optional[str] = None,
        client_kind: PartyKind = PartyKind.LEGAL,
        opponent_kind: PartyKind = PartyKind.LEGAL,
    ) -> int:
        with get_db_session() as db:
            for lawyer_id in lawyers:
                if db.get(User, lawyer_id) is None:
                    db.add(User(id=lawyer_id, full_name=f"Lawyer {lawyer_id}",
                                email=f"lawyer{lawyer_id}@firm.local"))
            db.flush()

            case = Case(case_number=case_number, case_type="commercial")
            case.parties.append(CaseParty(role=PartyRole.CLIENT, kind=client_kind, name=client,
                                          identifier=client_id))
            if opponent is not None:
                case.parties.append(CaseParty(role=PartyRole.OPPONENT, kind=opponent_kind, name=opponent,
                                              identifier=opponent_id))
            for category, name, identifier in entities:
                case.related_entities.append(
                    CaseRelatedEntity(category=EntityCategory(category), name=name, identifier=identifier)
                )
            for lawyer_id in lawyers:
                case.lawyers.append(CaseLawyer(lawyer_id=lawyer_id))
            db.add(case)
            db.flush()
            return case.id

    return _seed


# =============================================================================
# Fakes
# =============================================================================

class InMemoryReportStore(ReportStore):
    """ReportStore keeping records in a list"""

    def __init__(self):
        self.records = []

    def save(self, record):
        report_id = len(self.records) + 1
        self.records.append(record.model_copy(update={"id": report_id}))
        return report_id

    def get(self, report_id):
        for record in self.records:
            if record.id == report_id:
                return record
        return None

    def history_for_case(self, case_id):
        return [r for r in reversed(self.records) if r.case_id == case_id]

    def high_risk(self, limit=50):
        return [
            HighRiskEntry(report_id=r.id, case_id=r.case_id, level=r.level,
                          conflicting_case_ids=r.conflicting_case_ids, checked_at=r.checked_at)
            for r in self.records
            if r.level in (ConflictLevel.HIGH, ConflictLevel.MEDIUM)
        ][:limit]

    def level_stats(self, since):
        stats = {level.value: 0 for level in ConflictLevel}
        for r in self.records:
            if r.checked_at >= since:
                stats[r.level.value] += 1
        return stats


class FailingReportStore(InMemoryReportStore):
    def save(self, record):
        raise PersistenceError("audit store unavailable")


class UnavailableCorpus(CorpusReader):
    """Corpus whose every lookup fails"""

    def __init__(self):
        self.calls: List[str] = []

    def _fail(self, what):
        self.calls.append(what)
        raise CorpusLookupError(f"{what}: connection refused")

    def parties_by_identifier(self, keys, exclude_case_id=None):
        self._fail("parties_by_identifier")

    def parties_by_name(self, keys, exclude_case_id=None):
        self._fail("parties_by_name")

    def entities_by_identifier(self, keys, exclude_case_id=None):
        self._fail("entities_by_identifier")

    def entities_by_name(self, keys, exclude_case_id=None):
        self._fail("entities_by_name")

    def reviewers_for_cases(self, case_ids):
        self._fail("reviewers_for_cases")

    def load_case(self, case_id):
        self._fail("load_case")


class RecordingNotifier(Notifier):
    def __init__(self):
        self.calls = []

    def conflict_detected(self, result, case_id=None):
        self.calls.append((result, case_id))


@pytest.fixture
def memory_store():
    return InMemoryReportStore()


@pytest.fixture
def failing_store():
    return FailingReportStore()


@pytest.fixture
def unavailable_corpus():
    return UnavailableCorpus()


@pytest.fixture
def notifier():
    return RecordingNotifier()
