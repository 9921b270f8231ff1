"""
Pydantic Schemas for Conflict Service
=====================================

Closed enumerations used across the pipeline plus the stable input/output
schemas of the engine and the HTTP API.

Level order: none < low < medium < high.
Confidence order: name < identifier.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime


# =============================================================================
# ENUMS
# =============================================================================

class PartyRole(str, Enum):
    """Side of a case"""
    CLIENT = "client"
    OPPONENT = "opponent"


class PartyKind(str, Enum):
    """
    Legal form of a party.

    - LEGAL: company, identified by a tax identifier
    - INDIVIDUAL: natural person, identified by a personal identifier
    """
    LEGAL = "legal"
    INDIVIDUAL = "individual"


class EntityCategory(str, Enum):
    """Affiliated (non-party) actor linked to a case"""
    RELATED_COMPANY = "related_company"
    RELATED_INDIVIDUAL = "related_individual"
    FOUNDER = "founder"
    DIRECTOR = "director"
    BENEFICIARY = "beneficiary"
    CONTACT_PERSON = "contact_person"


class MatchConfidence(str, Enum):
    """How a candidate was found"""
    NAME = "name"  # normalized name equality only
    IDENTIFIER = "identifier"  # same tax / personal identifier

    @property
    def rank(self) -> int:
        return 1 if self is MatchConfidence.IDENTIFIER else 0


class ConflictCategory(str, Enum):
    """
    Why a candidate matters.

    - DIRECT_OPPOSITION: client of one case is the opponent of the other
    - POSITION_SWITCH: both sides swapped between the two cases
    - LAWYER_CONFLICT: a shared reviewer previously acted for the other side
    - RELATED_ENTITY: an affiliated person of one case is a party of the other
    - CROSS_ENTITY: the link runs only through affiliated entities
    """
    DIRECT_OPPOSITION = "direct_opposition"
    POSITION_SWITCH = "position_switch"
    LAWYER_CONFLICT = "lawyer_conflict"
    RELATED_ENTITY = "related_entity"
    CROSS_ENTITY = "cross_entity"


_LEVEL_RANK = {"none": 0, "low": 1, "medium": 2, "high": 3}


class ConflictLevel(str, Enum):
    """Overall severity of a check"""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self.value]

    @classmethod
    def highest(cls, *levels: "ConflictLevel") -> "ConflictLevel":
        """Associative maximum; NONE for no input."""
        best = cls.NONE
        for level in levels:
            if level.rank > best.rank:
                best = level
        return best


# =============================================================================
# INPUT DESCRIPTORS
# =============================================================================

class PartyDescriptor(BaseModel):
    """Client or opponent of a (possibly not yet persisted) case"""
    role: PartyRole
    kind: PartyKind = PartyKind.LEGAL
    name: str = ""
    identifier: Optional[str] = Field(
        None, description="Tax identifier for legal kind, personal identifier for individual kind"
    )


class AffiliatedEntityDescriptor(BaseModel):
    """Affiliated entity of a case (founder, director, related company, ...)"""
    category: EntityCategory
    name: str = ""
    identifier: Optional[str] = None
    phone: Optional[str] = None


class CandidateCheckRequest(BaseModel):
    """Ad-hoc conflict search (e.g. before a case is created)"""
    parties: List[PartyDescriptor] = Field(..., description="Exactly one client, optional opponent")
    affiliated_entities: List[AffiliatedEntityDescriptor] = Field(default_factory=list)
    reviewer_ids: List[int] = Field(default_factory=list)
    exclude_case_id: Optional[int] = None
    language: Optional[str] = None


class CaseCheckRequest(BaseModel):
    """Options for a check of an existing case"""
    language: Optional[str] = None


# =============================================================================
# OUTPUT
# =============================================================================

class ConflictReasonOutput(BaseModel):
    """Structured form of one classified reason"""
    category: ConflictCategory
    matched_case_id: int
    confidence: MatchConfidence
    detail_text: str


class AmbiguousMatchWarning(BaseModel):
    """
    Several name-only matches for the same query identity.

    Not an error: prompts a human reviewer even at LOW severity.
    """
    query_name: str
    matched_case_ids: List[int]
    message: str


class ConflictCheckRecord(BaseModel):
    """Immutable audit record of one engine invocation"""
    id: Optional[int] = None
    case_id: Optional[int] = None
    search_params: Dict[str, Any] = Field(default_factory=dict)
    level: ConflictLevel
    reasons: List[ConflictReasonOutput] = Field(default_factory=list)
    conflicting_case_ids: List[int] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    warnings: List[AmbiguousMatchWarning] = Field(default_factory=list)
    language: str = "en"
    checked_by: Optional[int] = None
    checked_at: datetime


class ConflictResult(BaseModel):
    """Result returned to callers of the engine"""
    level: ConflictLevel
    reasons: List[str] = Field(default_factory=list)
    reason_details: List[ConflictReasonOutput] = Field(default_factory=list)
    conflicting_case_ids: List[int] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    warnings: List[AmbiguousMatchWarning] = Field(default_factory=list)
    report_id: Optional[int] = None
    checked_at: Optional[datetime] = None


class HighRiskEntry(BaseModel):
    """Row of the high-risk listing"""
    report_id: int
    case_id: Optional[int] = None
    level: ConflictLevel
    conflicting_case_ids: List[int] = Field(default_factory=list)
    checked_by: Optional[int] = None
    checked_at: datetime


class ConflictStats(BaseModel):
    """Aggregate check statistics over a time window"""
    window_days: int
    total_checks: int
    level_distribution: Dict[str, int]
    top_conflicted_clients: List[Dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Error response with optional partial result"""
    error: str
    detail: Optional[str] = None
    result: Optional[ConflictResult] = None
