"""
Corpus Read Interface
=====================

Read-only access to the historical case corpus (parties, affiliated entities,
reviewer assignments). The engine only talks to `CorpusReader`; the
SQLAlchemy implementation reads from the indexed key columns.

Every backing-store failure surfaces as CorpusLookupError. An empty list
always means "nothing matched", never "could not look".

Inside `deadline_bound(deadline)` the SQL reader also enforces the caller's
deadline within each statement:
- PostgreSQL: `SET LOCAL statement_timeout` derived from the time left
- SQLite: a progress handler that interrupts the running statement
A statement cancelled this way raises CheckTimeoutError.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Collection, Dict, FrozenSet, List, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import Case, CaseParty, CaseRelatedEntity, CaseLawyer
from .deadline import Deadline
from .errors import CheckTimeoutError, CorpusLookupError
from .schemas import (
    PartyRole,
    EntityCategory,
    PartyDescriptor,
    AffiliatedEntityDescriptor,
)

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for a statement cancelled by statement_timeout
QUERY_CANCELED = "57014"

# SQLite VM instructions between deadline checks
SQLITE_PROGRESS_STEPS = 1000


@dataclass(frozen=True)
class CorpusRecord:
    """One party or affiliated-entity occurrence in the corpus"""
    case_id: int
    case_number: Optional[str]
    name: str
    name_key: str
    identifier_key: Optional[str]
    role: Optional[PartyRole] = None
    category: Optional[EntityCategory] = None


@dataclass
class StoredCase:
    """A persisted case, expressed as engine input descriptors"""
    case_id: int
    case_number: Optional[str]
    parties: List[PartyDescriptor]
    affiliated_entities: List[AffiliatedEntityDescriptor] = field(default_factory=list)
    reviewer_ids: List[int] = field(default_factory=list)


class CorpusReader(ABC):
    """Abstract read access to the case corpus"""

    @abstractmethod
    def parties_by_identifier(self, keys: Collection[str],
                              exclude_case_id: Optional[int] = None) -> List[CorpusRecord]:
        """Client/opponent rows whose identifier_key is in `keys`"""

    @abstractmethod
    def parties_by_name(self, keys: Collection[str],
                        exclude_case_id: Optional[int] = None) -> List[CorpusRecord]:
        """Client/opponent rows whose name_key is in `keys`"""

    @abstractmethod
    def entities_by_identifier(self, keys: Collection[str],
                               exclude_case_id: Optional[int] = None) -> List[CorpusRecord]:
        """Affiliated-entity rows whose identifier_key is in `keys`"""

    @abstractmethod
    def entities_by_name(self, keys: Collection[str],
                         exclude_case_id: Optional[int] = None) -> List[CorpusRecord]:
        """Affiliated-entity rows whose name_key is in `keys`"""

    @abstractmethod
    def reviewers_for_cases(self, case_ids: Collection[int]) -> Dict[int, FrozenSet[int]]:
        """Reviewer ids that are or were assigned to each case"""

    @abstractmethod
    def load_case(self, case_id: int) -> Optional[StoredCase]:
        """Load one case's descriptors, None if it does not exist"""

    @contextmanager
    def deadline_bound(self, deadline: Deadline):
        """Bound the lookups made inside the block by `deadline` (no-op here)"""
        yield


class SqlCorpusReader(CorpusReader):
    """CorpusReader backed by the SQLAlchemy models"""

    def __init__(self, db: Session, max_rows: Optional[int] = None):
        settings = get_settings()
        self.db = db
        self.max_rows = max_rows or settings.max_candidates_per_identity
        self.statement_timeout_ms = int(settings.lookup_statement_timeout_ms)
        self._deadline: Optional[Deadline] = None

    def _dialect(self) -> str:
        return self.db.get_bind().dialect.name

    def _set_statement_timeout(self, timeout_ms: int) -> None:
        self.db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))

    @contextmanager
    def deadline_bound(self, deadline: Deadline):
        """
        Enforce `deadline` inside every statement issued in the block.

        Raises:
            CheckTimeoutError: a statement was cancelled by the deadline
        """
        if deadline.remaining is None:
            yield
            return

        dialect = self._dialect()
        self._deadline = deadline
        try:
            if dialect == "sqlite":
                raw = self.db.connection().connection.driver_connection
                raw.set_progress_handler(lambda: 1 if deadline.expired() else 0, SQLITE_PROGRESS_STEPS)
                try:
                    yield
                finally:
                    raw.set_progress_handler(None, 0)
            else:
                yield
                if dialect == "postgresql":
                    # A cancelled statement aborts the transaction; only restore on success
                    try:
                        self._set_statement_timeout(self.statement_timeout_ms)
                    except SQLAlchemyError as e:
                        raise self._lookup_error(e, "statement timeout reset") from e
        finally:
            self._deadline = None

    def _execute(self, stmt):
        if self._deadline is not None and self._dialect() == "postgresql":
            self._set_statement_timeout(self._deadline.statement_timeout_ms(self.statement_timeout_ms))
        return self.db.execute(stmt).all()

    def _lookup_error(self, e: SQLAlchemyError, what: str) -> CorpusLookupError:
        cancelled = getattr(getattr(e, "orig", None), "pgcode", None) == QUERY_CANCELED
        if cancelled or (self._deadline is not None and self._deadline.expired()):
            logger.warning(f"Corpus lookup cancelled by timeout ({what}): {e}")
            return CheckTimeoutError(f"Corpus lookup ({what}) exceeded the check deadline")
        logger.error(f"Corpus lookup failed ({what}): {e}", exc_info=True)
        return CorpusLookupError(f"Corpus lookup failed ({what})")

    def _fetch(self, stmt, what: str):
        try:
            rows = self._execute(stmt.limit(self.max_rows + 1))
        except SQLAlchemyError as e:
            raise self._lookup_error(e, what) from e
        if len(rows) > self.max_rows:
            # A truncated scan could hide a conflict
            raise CorpusLookupError(
                f"Corpus lookup ({what}) exceeded {self.max_rows} rows; result would be incomplete"
            )
        return rows

    def _party_query(self, column, keys, exclude_case_id):
        stmt = (
            select(CaseParty, Case.case_number)
            .join(Case, Case.id == CaseParty.case_id)
            .where(column.in_(sorted(keys)))
            .order_by(CaseParty.case_id, CaseParty.id)
        )
        if exclude_case_id is not None:
            stmt = stmt.where(CaseParty.case_id != exclude_case_id)
        return stmt

    def _entity_query(self, column, keys, exclude_case_id):
        stmt = (
            select(CaseRelatedEntity, Case.case_number)
            .join(Case, Case.id == CaseRelatedEntity.case_id)
            .where(column.in_(sorted(keys)))
            .order_by(CaseRelatedEntity.case_id, CaseRelatedEntity.id)
        )
        if exclude_case_id is not None:
            stmt = stmt.where(CaseRelatedEntity.case_id != exclude_case_id)
        return stmt

    @staticmethod
    def _party_record(party: CaseParty, case_number) -> CorpusRecord:
        return CorpusRecord(
            case_id=party.case_id,
            case_number=case_number,
            name=party.name,
            name_key=party.name_key,
            identifier_key=party.identifier_key,
            role=PartyRole(party.role),
        )

    @staticmethod
    def _entity_record(entity: CaseRelatedEntity, case_number) -> CorpusRecord:
        return CorpusRecord(
            case_id=entity.case_id,
            case_number=case_number,
            name=entity.name,
            name_key=entity.name_key,
            identifier_key=entity.identifier_key,
            category=EntityCategory(entity.category),
        )

    def parties_by_identifier(self, keys, exclude_case_id=None):
        if not keys:
            return []
        stmt = self._party_query(CaseParty.identifier_key, keys, exclude_case_id)
        return [self._party_record(p, num) for p, num in self._fetch(stmt, "party identifier")]

    def parties_by_name(self, keys, exclude_case_id=None):
        if not keys:
            return []
        stmt = self._party_query(CaseParty.name_key, keys, exclude_case_id)
        return [self._party_record(p, num) for p, num in self._fetch(stmt, "party name")]

    def entities_by_identifier(self, keys, exclude_case_id=None):
        if not keys:
            return []
        stmt = self._entity_query(CaseRelatedEntity.identifier_key, keys, exclude_case_id)
        return [self._entity_record(e, num) for e, num in self._fetch(stmt, "entity identifier")]

    def entities_by_name(self, keys, exclude_case_id=None):
        if not keys:
            return []
        stmt = self._entity_query(CaseRelatedEntity.name_key, keys, exclude_case_id)
        return [self._entity_record(e, num) for e, num in self._fetch(stmt, "entity name")]

    def reviewers_for_cases(self, case_ids):
        result: Dict[int, FrozenSet[int]] = {case_id: frozenset() for case_id in case_ids}
        if not case_ids:
            return result
        stmt = select(CaseLawyer.case_id, CaseLawyer.lawyer_id).where(
            CaseLawyer.case_id.in_(sorted(case_ids))
        )
        try:
            rows = self._execute(stmt)
        except SQLAlchemyError as e:
            raise self._lookup_error(e, "reviewer assignments") from e

        grouped: Dict[int, set] = {}
        for case_id, lawyer_id in rows:
            grouped.setdefault(case_id, set()).add(lawyer_id)
        for case_id, lawyers in grouped.items():
            result[case_id] = frozenset(lawyers)
        return result

    def load_case(self, case_id):
        try:
            case = self.db.get(Case, case_id)
            if case is None:
                return None
            parties = [
                PartyDescriptor(role=p.role, kind=p.kind, name=p.name, identifier=p.identifier)
                for p in sorted(case.parties, key=lambda p: p.id)
            ]
            entities = [
                AffiliatedEntityDescriptor(
                    category=e.category, name=e.name, identifier=e.identifier, phone=e.phone
                )
                for e in sorted(case.related_entities, key=lambda e: e.id)
            ]
            reviewer_ids = sorted({a.lawyer_id for a in case.lawyers})
        except SQLAlchemyError as e:
            raise self._lookup_error(e, f"case {case_id}") from e

        return StoredCase(
            case_id=case.id,
            case_number=case.case_number,
            parties=parties,
            affiliated_entities=entities,
            reviewer_ids=reviewer_ids,
        )
