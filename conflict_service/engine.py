"""
Conflict Detection Engine
=========================

Pipeline:
    descriptors -> Normalizer -> Matcher -> Classifier -> Severity Resolver
                -> Report Builder (persist) -> ConflictResult

Entry points:
- ConflictEngine.check_candidate(...)  ad-hoc check, not tied to a stored case
- ConflictEngine.check_case(case_id)   loads the case and excludes it from the scan
- check_candidate(...) / check_case(...) module functions: same, inside a
  snapshot_session()

Failure policy:
- ValidationError before any corpus access, nothing persisted
- CorpusLookupError / CheckTimeoutError abort the check (result unknown)
- PersistenceError carries the computed result in `.result`
Nothing here turns a failure into level NONE.
"""

import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from .classifier import RelationshipClassifier
from .config import Settings, get_settings
from .corpus import CorpusReader, SqlCorpusReader
from .db.session import snapshot_session
from .deadline import Deadline
from .errors import CaseNotFoundError, PersistenceError, ValidationError
from .matcher import CandidateMatcher, find_ambiguous_matches
from .messages import resolve_language
from .models import ConflictCandidate, ConflictReason, QueryCase
from .normalizer import to_query_identity
from .notifications import LoggingNotifier, Notifier, dispatch
from .report_builder import ReportBuilder
from .report_store import ReportStore, SqlReportStore
from .schemas import (
    AffiliatedEntityDescriptor,
    ConflictLevel,
    ConflictResult,
    PartyDescriptor,
    PartyRole,
)
from .severity import resolve

logger = logging.getLogger(__name__)


def build_query_case(
    parties: Sequence[PartyDescriptor],
    affiliated_entities: Sequence[AffiliatedEntityDescriptor] = (),
    reviewer_ids: Sequence[int] = (),
    case_id: Optional[int] = None,
    exclude_case_id: Optional[int] = None,
) -> QueryCase:
    """
    Validate and normalize the query descriptors.

    Raises:
        ValidationError: no client, several clients/opponents, or an empty name
    """
    clients = [p for p in parties if p.role is PartyRole.CLIENT]
    # A blank opponent form means "no opponent"
    opponents = [
        p for p in parties
        if p.role is PartyRole.OPPONENT and ((p.name or "").strip() or (p.identifier or "").strip())
    ]
    if len(clients) != 1:
        raise ValidationError(f"A case needs exactly one client party, got {len(clients)}")
    if len(opponents) > 1:
        raise ValidationError(f"A case has at most one opponent party, got {len(opponents)}")
    if not (clients[0].name or "").strip():
        raise ValidationError("Client name is required")

    identities = [to_query_identity(clients[0])]
    if opponents:
        identities.append(to_query_identity(opponents[0]))
    identities += [to_query_identity(e) for e in affiliated_entities]

    search_params = {
        "parties": [p.model_dump(mode="json") for p in clients + opponents],
        "affiliated_entities": [e.model_dump(mode="json") for e in affiliated_entities],
        "reviewer_ids": sorted(set(reviewer_ids)),
        "exclude_case_id": exclude_case_id,
    }
    return QueryCase(
        identities=identities,
        reviewer_ids=frozenset(reviewer_ids),
        case_id=case_id,
        search_params=search_params,
    )


class ConflictEngine:
    """Runs conflict checks against one corpus reader and one audit store"""

    def __init__(
        self,
        corpus: CorpusReader,
        store: ReportStore,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.corpus = corpus
        self.store = store
        self.settings = settings or get_settings()
        if notifier is None and self.settings.notify_on_conflict:
            notifier = LoggingNotifier()
        self.notifier = notifier

    @classmethod
    def for_session(cls, db: Session, notifier: Optional[Notifier] = None,
                    settings: Optional[Settings] = None) -> "ConflictEngine":
        return cls(SqlCorpusReader(db), SqlReportStore(db), notifier=notifier, settings=settings)

    def _deadline(self, timeout: Optional[float]) -> Deadline:
        if timeout is None:
            timeout = self.settings.check_timeout_seconds
        return Deadline(timeout)

    def check_candidate(
        self,
        parties: Sequence[PartyDescriptor],
        affiliated_entities: Sequence[AffiliatedEntityDescriptor] = (),
        reviewer_ids: Sequence[int] = (),
        exclude_case_id: Optional[int] = None,
        checked_by: Optional[int] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
        case_id: Optional[int] = None,
    ) -> ConflictResult:
        """
        Check a set of descriptors against the whole corpus.

        Raises:
            ValidationError, CorpusLookupError, CheckTimeoutError, PersistenceError
        """
        deadline = self._deadline(timeout)
        language = resolve_language(language)
        query_case = build_query_case(parties, affiliated_entities, reviewer_ids, case_id, exclude_case_id)

        logger.info(
            f"Conflict check started (case={case_id}, exclude={exclude_case_id}, "
            f"identities={[qi.identity.name_key for qi in query_case.identities]})"
        )

        with self.corpus.deadline_bound(deadline):
            candidates = CandidateMatcher(self.corpus, deadline).find_candidates(
                query_case.identities, exclude_case_id
            )
            reasons = self._classify(candidates, query_case, language, deadline)
        level = resolve(reasons)
        warnings = find_ambiguous_matches(candidates, language)
        deadline.check("classification")

        logger.info(f"Conflict check resolved: level={level.value}, reasons={len(reasons)}")

        builder = ReportBuilder(self.store, language)
        try:
            record = builder.build_and_persist(
                level,
                reasons,
                checked_by=checked_by,
                case_id=case_id,
                search_params=query_case.search_params,
                warnings=warnings,
            )
        except PersistenceError as e:
            unsaved = builder.build(level, reasons, checked_by, case_id, query_case.search_params, warnings)
            e.result = self._result(unsaved)
            logger.error(f"Conflict check computed level={level.value} but was not recorded")
            raise

        result = self._result(record)
        if level is not ConflictLevel.NONE:
            dispatch(self.notifier, result, case_id)
        return result

    def check_case(
        self,
        case_id: int,
        checked_by: Optional[int] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ConflictResult:
        """
        Check a stored case, excluding the case itself from the scan.

        Raises:
            CaseNotFoundError, ValidationError, CorpusLookupError,
            CheckTimeoutError, PersistenceError
        """
        stored = self.corpus.load_case(case_id)
        if stored is None:
            raise CaseNotFoundError(case_id)

        return self.check_candidate(
            stored.parties,
            stored.affiliated_entities,
            stored.reviewer_ids,
            exclude_case_id=case_id,
            checked_by=checked_by,
            language=language,
            timeout=timeout,
            case_id=case_id,
        )

    def _classify(self, candidates: List[ConflictCandidate], query_case: QueryCase,
                  language: str, deadline: Deadline) -> List[ConflictReason]:
        by_case: Dict[int, List[ConflictCandidate]] = {}
        for c in candidates:
            by_case.setdefault(c.matched_case_id, []).append(c)

        reviewers = {}
        if query_case.reviewer_ids and by_case:
            deadline.check("reviewer lookup")
            reviewers = self.corpus.reviewers_for_cases(list(by_case))

        classifier = RelationshipClassifier(language)
        reasons = []
        for case_id, siblings in by_case.items():
            matched_reviewers = reviewers.get(case_id, frozenset())
            for candidate in siblings:
                reasons += classifier.classify_all(candidate, query_case, siblings, matched_reviewers)
        return reasons

    @staticmethod
    def _result(record) -> ConflictResult:
        return ConflictResult(
            level=record.level,
            reasons=[r.detail_text for r in record.reasons],
            reason_details=list(record.reasons),
            conflicting_case_ids=list(record.conflicting_case_ids),
            recommendations=list(record.recommendations),
            warnings=list(record.warnings),
            report_id=record.id,
            checked_at=record.checked_at,
        )


# =============================================================================
# Convenience entry points (own snapshot session)
# =============================================================================

def check_candidate(parties, affiliated_entities=(), reviewer_ids=(), exclude_case_id=None,
                    checked_by=None, language=None, timeout=None,
                    notifier: Optional[Notifier] = None) -> ConflictResult:
    with snapshot_session() as db:
        engine = ConflictEngine.for_session(db, notifier=notifier)
        return engine.check_candidate(
            parties, affiliated_entities, reviewer_ids,
            exclude_case_id=exclude_case_id, checked_by=checked_by,
            language=language, timeout=timeout,
        )


def check_case(case_id: int, checked_by=None, language=None, timeout=None,
               notifier: Optional[Notifier] = None) -> ConflictResult:
    with snapshot_session() as db:
        engine = ConflictEngine.for_session(db, notifier=notifier)
        return engine.check_case(case_id, checked_by=checked_by, language=language, timeout=timeout)
