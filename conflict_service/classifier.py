"""
Relationship Classifier
=======================

Labels each candidate with the reason it matters. First matching rule wins:

1. POSITION_SWITCH - query client is the matched case's opponent AND query
   opponent is its client (both sides swapped). Refines rule 2.
2. DIRECT_OPPOSITION - any other cross-side party match (query opponent was
   the client, or query client was the opponent).
3. RELATED_ENTITY - a party on one side, an affiliated person (founder,
   director, beneficiary, related individual, contact person) on the other.
4. CROSS_ENTITY - neither side is a direct party, or the affiliated side is a
   related company (a separate legal person linked to a party).

LAWYER_CONFLICT is reported in addition to rule 1/2 when the matched case
shares a reviewer with the query case; it never replaces the party reason.

Same-side party matches (client/client, opponent/opponent) are not
conflicts and yield no reason.
"""

import logging
from typing import FrozenSet, Iterable, List, Optional, Set, Tuple

from .messages import DEFAULT_LANGUAGE, render_reason, side_label
from .models import ConflictCandidate, ConflictReason, QueryCase
from .schemas import ConflictCategory, EntityCategory, PartyRole

logger = logging.getLogger(__name__)

_CROSS_SIDE = {
    (PartyRole.CLIENT, PartyRole.OPPONENT),
    (PartyRole.OPPONENT, PartyRole.CLIENT),
}


def _side(role: Optional[PartyRole], category: Optional[EntityCategory]) -> str:
    if role is not None:
        return role.value
    return category.value if category is not None else ""


def _party_pairs(candidates: Iterable[ConflictCandidate]) -> Set[Tuple[PartyRole, PartyRole]]:
    return {
        (c.query_identity.role, c.matched_role)
        for c in candidates
        if c.query_identity.is_party and c.matched_is_party
    }


class RelationshipClassifier:
    """Assigns a ConflictCategory and an audit text to each candidate"""

    def __init__(self, language: str = DEFAULT_LANGUAGE):
        self.language = language

    def classify(
        self,
        candidate: ConflictCandidate,
        query_case: QueryCase,
        siblings: Iterable[ConflictCandidate] = (),
        matched_reviewers: FrozenSet[int] = frozenset(),
    ) -> Optional[ConflictReason]:
        """
        Classify one candidate by the relationship of the two sides.

        Returns:
            ConflictReason, or None when the match is not a conflict
        """
        category = self._category(candidate, siblings)
        if category is None:
            return None
        return self._reason(category, candidate, query_case, matched_reviewers)

    def classify_all(
        self,
        candidate: ConflictCandidate,
        query_case: QueryCase,
        siblings: Iterable[ConflictCandidate] = (),
        matched_reviewers: FrozenSet[int] = frozenset(),
    ) -> List[ConflictReason]:
        """
        Every reason one candidate contributes.

        Args:
            candidate: the candidate to classify
            query_case: the case under review
            siblings: every candidate found against the same matched case
            matched_reviewers: reviewers assigned to the matched case

        Returns:
            The relationship reason, followed by a LAWYER_CONFLICT reason when
            a cross-side party match shares a reviewer; empty when no conflict
        """
        reason = self.classify(candidate, query_case, siblings, matched_reviewers)
        if reason is None:
            return []
        reasons = [reason]
        if reason.category in (ConflictCategory.DIRECT_OPPOSITION, ConflictCategory.POSITION_SWITCH) \
                and query_case.reviewer_ids & matched_reviewers:
            reasons.append(
                self._reason(ConflictCategory.LAWYER_CONFLICT, candidate, query_case, matched_reviewers)
            )
        return reasons

    def _reason(self, category, candidate, query_case, matched_reviewers) -> ConflictReason:
        shared = sorted(query_case.reviewer_ids & matched_reviewers)
        detail = render_reason(
            category,
            self.language,
            query_side=side_label(_side(candidate.query_identity.role, candidate.query_identity.category),
                                  self.language),
            query_name=candidate.query_identity.display_name,
            matched_side=side_label(_side(candidate.matched_role, candidate.matched_category),
                                    self.language),
            case_ref=candidate.case_ref,
            confidence=candidate.confidence,
            reviewers=", ".join(f"#{r}" for r in shared),
        )
        return ConflictReason(
            category=category,
            matched_case_id=candidate.matched_case_id,
            confidence=candidate.confidence,
            detail_text=detail,
        )

    def _category(self, candidate, siblings) -> Optional[ConflictCategory]:
        qi = candidate.query_identity

        if qi.is_party and candidate.matched_is_party:
            pair = (qi.role, candidate.matched_role)
            if pair not in _CROSS_SIDE:
                return None
            pairs = _party_pairs(siblings) | {pair}
            if _CROSS_SIDE <= pairs:
                return ConflictCategory.POSITION_SWITCH
            return ConflictCategory.DIRECT_OPPOSITION

        if qi.is_party or candidate.matched_is_party:
            affiliated = qi.category if not qi.is_party else candidate.matched_category
            if affiliated is EntityCategory.RELATED_COMPANY:
                return ConflictCategory.CROSS_ENTITY
            return ConflictCategory.RELATED_ENTITY

        return ConflictCategory.CROSS_ENTITY
