"""
Internal pipeline data structures
=================================

Transient values passed between the pipeline stages:
Normalizer -> Matcher -> Classifier -> Severity Resolver -> Report Builder.
None of these are persisted directly.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, FrozenSet, List, Optional

from .schemas import (
    PartyRole,
    PartyKind,
    EntityCategory,
    MatchConfidence,
    ConflictCategory,
)


@dataclass(frozen=True)
class NormalizedIdentity:
    """Comparable key of a party or affiliated entity"""
    name_key: str
    identifier_key: Optional[str] = None
    kind: Optional[PartyKind] = None


@dataclass(frozen=True)
class QueryIdentity:
    """A normalized identity together with the place it holds in the query case"""
    identity: NormalizedIdentity
    display_name: str
    role: Optional[PartyRole] = None  # set for client/opponent
    category: Optional[EntityCategory] = None  # set for affiliated entities

    @property
    def is_party(self) -> bool:
        return self.role is not None


@dataclass(frozen=True)
class ConflictCandidate:
    """Raw, unclassified occurrence of a query identity in another case"""
    query_identity: QueryIdentity
    matched_case_id: int
    confidence: MatchConfidence
    matched_role: Optional[PartyRole] = None
    matched_category: Optional[EntityCategory] = None
    matched_name: str = ""
    matched_case_number: Optional[str] = None

    @property
    def matched_is_party(self) -> bool:
        return self.matched_role is not None

    @property
    def case_ref(self) -> str:
        return self.matched_case_number or str(self.matched_case_id)


@dataclass(frozen=True)
class ConflictReason:
    """Classified candidate"""
    category: ConflictCategory
    matched_case_id: int
    confidence: MatchConfidence
    detail_text: str


@dataclass
class QueryCase:
    """The case under review, already validated and normalized"""
    identities: List[QueryIdentity]
    reviewer_ids: FrozenSet[int] = frozenset()
    case_id: Optional[int] = None
    search_params: Dict[str, Any] = field(default_factory=dict)

    def party(self, role: PartyRole) -> Optional[QueryIdentity]:
        for identity in self.identities:
            if identity.role is role:
                return identity
        return None

    @property
    def client(self) -> QueryIdentity:
        return self.party(PartyRole.CLIENT)

    @property
    def opponent(self) -> Optional[QueryIdentity]:
        return self.party(PartyRole.OPPONENT)
