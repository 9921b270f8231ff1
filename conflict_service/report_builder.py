"""
Report Builder / Persister
==========================

Turns the resolved level and the classified reasons into one immutable
ConflictCheckRecord and writes it through the ReportStore.

- One relationship reason per matched case: the highest-confidence one (ties
  broken by severity, then category order), plus that case's lawyer conflict
  reason when one was found
- Recommendations keyed by level, in the report language
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .db.models import utcnow
from .messages import DEFAULT_LANGUAGE, recommendations_for
from .models import ConflictReason
from .report_store import ReportStore
from .schemas import (
    AmbiguousMatchWarning,
    ConflictCategory,
    ConflictCheckRecord,
    ConflictLevel,
    ConflictReasonOutput,
)
from .severity import reason_level

logger = logging.getLogger(__name__)

_CATEGORY_ORDER = {category: index for index, category in enumerate(ConflictCategory)}


def _preference(reason: ConflictReason):
    return (
        reason.confidence.rank,
        reason_level(reason).rank,
        -_CATEGORY_ORDER[reason.category],
    )


def _slot(reason: ConflictReason) -> Tuple[int, bool]:
    return reason.matched_case_id, reason.category is ConflictCategory.LAWYER_CONFLICT


def dedupe_reasons(reasons: Iterable[ConflictReason]) -> List[ConflictReason]:
    """
    Keep the preferred relationship reason and the preferred lawyer conflict
    reason per matched case id, ordered by case id (relationship first).
    """
    best: Dict[Tuple[int, bool], ConflictReason] = {}
    for reason in reasons:
        slot = _slot(reason)
        current = best.get(slot)
        if current is None or _preference(reason) > _preference(current):
            best[slot] = reason
    return [best[slot] for slot in sorted(best)]


class ReportBuilder:
    """Builds and persists conflict check records"""

    def __init__(self, store: ReportStore, language: str = DEFAULT_LANGUAGE):
        self.store = store
        self.language = language

    def build(
        self,
        level: ConflictLevel,
        reasons: Sequence[ConflictReason],
        checked_by: Optional[int] = None,
        case_id: Optional[int] = None,
        search_params: Optional[Dict[str, Any]] = None,
        warnings: Sequence[AmbiguousMatchWarning] = (),
    ) -> ConflictCheckRecord:
        unique = dedupe_reasons(reasons)
        return ConflictCheckRecord(
            case_id=case_id,
            search_params=search_params or {},
            level=level,
            reasons=[
                ConflictReasonOutput(
                    category=r.category,
                    matched_case_id=r.matched_case_id,
                    confidence=r.confidence,
                    detail_text=r.detail_text,
                )
                for r in unique
            ],
            conflicting_case_ids=sorted({r.matched_case_id for r in unique}),
            recommendations=recommendations_for(level, self.language),
            warnings=list(warnings),
            language=self.language,
            checked_by=checked_by,
            checked_at=utcnow(),
        )

    def build_and_persist(
        self,
        level: ConflictLevel,
        reasons: Sequence[ConflictReason],
        checked_by: Optional[int] = None,
        case_id: Optional[int] = None,
        search_params: Optional[Dict[str, Any]] = None,
        warnings: Sequence[AmbiguousMatchWarning] = (),
    ) -> ConflictCheckRecord:
        """
        Build the record and write it once.

        Raises:
            PersistenceError: the store could not record the result
        """
        record = self.build(level, reasons, checked_by, case_id, search_params, warnings)
        report_id = self.store.save(record)
        logger.info(f"Conflict check report {report_id} saved (level={level.value}, case={case_id})")
        return record.model_copy(update={"id": report_id})
