"""
Identity Index / Candidate Matcher
==================================

Finds every occurrence of the query identities across the corpus:

1. Identifier lookups (exact identifier_key) -> confidence=identifier
2. Name lookups (exact name_key, never substring) -> confidence=name

Name matches are kept even when the same identity also matched by
identifier; the severity stage decides which one wins. Identifiers that
differ while names agree therefore still yield a name-confidence candidate,
never an identifier one.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .corpus import CorpusReader, CorpusRecord
from .deadline import Deadline
from .messages import DEFAULT_LANGUAGE, ambiguous_message
from .models import ConflictCandidate, QueryIdentity
from .schemas import AmbiguousMatchWarning, MatchConfidence

logger = logging.getLogger(__name__)


def _index_by(identities: Sequence[QueryIdentity], attr: str) -> Dict[str, List[QueryIdentity]]:
    index: Dict[str, List[QueryIdentity]] = {}
    for qi in identities:
        key = getattr(qi.identity, attr)
        if key:
            index.setdefault(key, []).append(qi)
    return index


class CandidateMatcher:
    """Retrieves raw candidates for a set of query identities"""

    def __init__(self, corpus: CorpusReader, deadline: Optional[Deadline] = None):
        self.corpus = corpus
        self.deadline = deadline or Deadline()

    def _emit(self, records: Iterable[CorpusRecord], index: Dict[str, List[QueryIdentity]],
              attr: str, confidence: MatchConfidence) -> List[ConflictCandidate]:
        candidates = []
        for record in records:
            for qi in index.get(getattr(record, attr), []):
                candidates.append(ConflictCandidate(
                    query_identity=qi,
                    matched_case_id=record.case_id,
                    confidence=confidence,
                    matched_role=record.role,
                    matched_category=record.category,
                    matched_name=record.name,
                    matched_case_number=record.case_number,
                ))
        return candidates

    def find_candidates(self, identities: Sequence[QueryIdentity],
                        exclude_case_id: Optional[int] = None) -> List[ConflictCandidate]:
        """
        Return the union of identifier and name candidates.

        Raises:
            CorpusLookupError: the corpus could not be read
            CheckTimeoutError: the deadline passed during the scan
        """
        by_identifier = _index_by(identities, "identifier_key")
        by_name = _index_by(identities, "name_key")

        found: List[ConflictCandidate] = []

        self.deadline.check("identifier lookup")
        if by_identifier:
            keys = set(by_identifier)
            found += self._emit(self.corpus.parties_by_identifier(keys, exclude_case_id),
                                by_identifier, "identifier_key", MatchConfidence.IDENTIFIER)
            found += self._emit(self.corpus.entities_by_identifier(keys, exclude_case_id),
                                by_identifier, "identifier_key", MatchConfidence.IDENTIFIER)

        self.deadline.check("name lookup")
        if by_name:
            keys = set(by_name)
            found += self._emit(self.corpus.parties_by_name(keys, exclude_case_id),
                                by_name, "name_key", MatchConfidence.NAME)
            found += self._emit(self.corpus.entities_by_name(keys, exclude_case_id),
                                by_name, "name_key", MatchConfidence.NAME)

        self.deadline.check("candidate collection")

        # Self-exclusion also holds for readers that ignore exclude_case_id
        if exclude_case_id is not None:
            found = [c for c in found if c.matched_case_id != exclude_case_id]

        unique = self._dedupe(found)
        unique.sort(key=lambda c: self._sort_key(c, identities))
        logger.info(f"Matcher: {len(unique)} candidates for {len(identities)} identities")
        return unique

    @staticmethod
    def _dedupe(candidates: List[ConflictCandidate]) -> List[ConflictCandidate]:
        # Several entity rows of one category in one case collapse into one candidate
        seen: Set[Tuple] = set()
        unique = []
        for c in candidates:
            key = (c.query_identity, c.matched_case_id, c.matched_role, c.matched_category, c.confidence)
            if key in seen:
                continue
            seen.add(key)
            unique.append(c)
        return unique

    @staticmethod
    def _sort_key(c: ConflictCandidate, identities: Sequence[QueryIdentity]):
        return (
            c.matched_case_id,
            identities.index(c.query_identity),
            -c.confidence.rank,
            c.matched_role.value if c.matched_role else "",
            c.matched_category.value if c.matched_category else "",
        )


def find_ambiguous_matches(candidates: Sequence[ConflictCandidate],
                           language: str = DEFAULT_LANGUAGE) -> List[AmbiguousMatchWarning]:
    """
    Query identities that matched two or more cases by name only.

    Cases that the same identity also matched by identifier do not count.
    """
    name_only: Dict[QueryIdentity, Set[int]] = {}
    by_identifier: Dict[QueryIdentity, Set[int]] = {}
    order: List[QueryIdentity] = []

    for c in candidates:
        qi = c.query_identity
        if qi not in name_only:
            name_only[qi] = set()
            by_identifier[qi] = set()
            order.append(qi)
        if c.confidence is MatchConfidence.IDENTIFIER:
            by_identifier[qi].add(c.matched_case_id)
        else:
            name_only[qi].add(c.matched_case_id)

    warnings = []
    for qi in order:
        case_ids = sorted(name_only[qi] - by_identifier[qi])
        if len(case_ids) >= 2:
            warnings.append(AmbiguousMatchWarning(
                query_name=qi.display_name,
                matched_case_ids=case_ids,
                message=ambiguous_message(qi.display_name, len(case_ids), language),
            ))
    return warnings
