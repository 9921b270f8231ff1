"""
Severity Resolver
=================

Deterministic mapping of each reason to a level, then the maximum over all
reasons. The maximum is associative and commutative, so the result does not
depend on the order in which candidates were discovered.

| category                              | identifier | name   |
|---------------------------------------|------------|--------|
| direct_opposition, position_switch    | HIGH       | MEDIUM |
| lawyer_conflict, related_entity       | MEDIUM     | LOW    |
| cross_entity                          | LOW        | LOW    |
"""

from functools import reduce
from typing import Iterable

from .models import ConflictReason
from .schemas import ConflictCategory, ConflictLevel, MatchConfidence

_ID = MatchConfidence.IDENTIFIER
_NAME = MatchConfidence.NAME

REASON_LEVELS = {
    (ConflictCategory.DIRECT_OPPOSITION, _ID): ConflictLevel.HIGH,
    (ConflictCategory.POSITION_SWITCH, _ID): ConflictLevel.HIGH,
    (ConflictCategory.DIRECT_OPPOSITION, _NAME): ConflictLevel.MEDIUM,
    (ConflictCategory.POSITION_SWITCH, _NAME): ConflictLevel.MEDIUM,
    (ConflictCategory.LAWYER_CONFLICT, _ID): ConflictLevel.MEDIUM,
    (ConflictCategory.RELATED_ENTITY, _ID): ConflictLevel.MEDIUM,
    (ConflictCategory.LAWYER_CONFLICT, _NAME): ConflictLevel.LOW,
    (ConflictCategory.RELATED_ENTITY, _NAME): ConflictLevel.LOW,
    (ConflictCategory.CROSS_ENTITY, _ID): ConflictLevel.LOW,
    (ConflictCategory.CROSS_ENTITY, _NAME): ConflictLevel.LOW,
}


def reason_level(reason: ConflictReason) -> ConflictLevel:
    return REASON_LEVELS[(reason.category, reason.confidence)]


def resolve(reasons: Iterable[ConflictReason]) -> ConflictLevel:
    """Overall level of a check; NONE when there are no reasons."""
    return reduce(ConflictLevel.highest, map(reason_level, reasons), ConflictLevel.NONE)
