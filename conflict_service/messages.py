"""
Reason / Recommendation Templates
=================================

Audit texts are rendered from per-language templates. Unknown languages fall
back to English.
"""

from typing import Dict, List, Optional

from .config import SUPPORTED_LANGUAGES, get_settings
from .schemas import ConflictCategory, ConflictLevel, MatchConfidence

DEFAULT_LANGUAGE = "en"


REASON_TEMPLATES: Dict[str, Dict[ConflictCategory, str]] = {
    "en": {
        ConflictCategory.DIRECT_OPPOSITION: (
            'Direct conflict: {query_side} "{query_name}" is {matched_side} in case #{case_ref} '
            "(matched by {confidence})"
        ),
        ConflictCategory.POSITION_SWITCH: (
            "Position switch conflict: parties have switched positions compared to case #{case_ref}; "
            '{query_side} "{query_name}" was {matched_side} there (matched by {confidence})'
        ),
        ConflictCategory.LAWYER_CONFLICT: (
            'Lawyer conflict: reviewer(s) {reviewers} acted in case #{case_ref} where "{query_name}" '
            "was {matched_side}; here it is {query_side} (matched by {confidence})"
        ),
        ConflictCategory.RELATED_ENTITY: (
            'Related party conflict: {query_side} "{query_name}" is {matched_side} in case #{case_ref} '
            "(matched by {confidence})"
        ),
        ConflictCategory.CROSS_ENTITY: (
            'Cross-conflict: {query_side} "{query_name}" is {matched_side} in case #{case_ref} '
            "(matched by {confidence})"
        ),
    },
    "ru": {
        ConflictCategory.DIRECT_OPPOSITION: (
            'Прямой конфликт: {query_side} «{query_name}» является {matched_side} в деле №{case_ref} '
            "(совпадение по {confidence})"
        ),
        ConflictCategory.POSITION_SWITCH: (
            "Конфликт смены позиций: стороны поменялись местами по сравнению с делом №{case_ref}; "
            '{query_side} «{query_name}» был {matched_side} (совпадение по {confidence})'
        ),
        ConflictCategory.LAWYER_CONFLICT: (
            'Конфликт юриста: юрист(ы) {reviewers} вели дело №{case_ref}, где «{query_name}» '
            "был {matched_side}; здесь это {query_side} (совпадение по {confidence})"
        ),
        ConflictCategory.RELATED_ENTITY: (
            'Конфликт связанных лиц: {query_side} «{query_name}» является {matched_side} '
            "в деле №{case_ref} (совпадение по {confidence})"
        ),
        ConflictCategory.CROSS_ENTITY: (
            'Кросс-конфликт: {query_side} «{query_name}» является {matched_side} в деле №{case_ref} '
            "(совпадение по {confidence})"
        ),
    },
}

SIDE_LABELS: Dict[str, Dict[str, str]] = {
    "en": {
        "client": "client",
        "opponent": "opponent",
        "related_company": "related company",
        "related_individual": "related individual",
        "founder": "founder",
        "director": "director",
        "beneficiary": "beneficiary",
        "contact_person": "contact person",
    },
    "ru": {
        "client": "клиент",
        "opponent": "оппонент",
        "related_company": "связанная компания",
        "related_individual": "связанное лицо",
        "founder": "учредитель",
        "director": "директор",
        "beneficiary": "бенефициар",
        "contact_person": "контактное лицо",
    },
}

CONFIDENCE_LABELS: Dict[str, Dict[MatchConfidence, str]] = {
    "en": {MatchConfidence.IDENTIFIER: "identifier", MatchConfidence.NAME: "name only"},
    "ru": {MatchConfidence.IDENTIFIER: "идентификатору", MatchConfidence.NAME: "только имени"},
}

RECOMMENDATIONS: Dict[str, Dict[ConflictLevel, List[str]]] = {
    "en": {
        ConflictLevel.HIGH: [
            "IMMEDIATE ACTION REQUIRED: High conflict detected",
            "Do not proceed with this case without senior partner approval",
            "Consider declining representation or obtaining conflict waiver",
        ],
        ConflictLevel.MEDIUM: [
            "Review conflict details carefully",
            "Consult with compliance department",
            "Document any mitigation measures taken",
        ],
        ConflictLevel.LOW: [
            "Minor conflicts detected - review for potential issues",
            "Ensure proper information barriers if proceeding",
        ],
        ConflictLevel.NONE: [
            "No conflicts detected",
            "Case can proceed normally",
        ],
    },
    "ru": {
        ConflictLevel.HIGH: [
            "ТРЕБУЮТСЯ НЕМЕДЛЕННЫЕ ДЕЙСТВИЯ: обнаружен высокий уровень конфликта",
            "Не продолжайте работу по делу без одобрения старшего партнера",
            "Рассмотрите отказ от представительства или получение согласия на конфликт",
        ],
        ConflictLevel.MEDIUM: [
            "Внимательно изучите детали конфликта",
            "Проконсультируйтесь с отделом комплаенса",
            "Задокументируйте принятые меры",
        ],
        ConflictLevel.LOW: [
            "Обнаружены незначительные конфликты - проверьте возможные проблемы",
            "Обеспечьте информационные барьеры при продолжении работы",
        ],
        ConflictLevel.NONE: [
            "Конфликтов не обнаружено",
            "Работа по делу может продолжаться",
        ],
    },
}

AMBIGUOUS_TEMPLATES: Dict[str, str] = {
    "en": '"{query_name}" matched {count} cases by name only; verify identities manually',
    "ru": "«{query_name}» совпадает только по имени в {count} делах; проверьте личности вручную",
}


def resolve_language(language: Optional[str] = None) -> str:
    language = (language or get_settings().report_language or DEFAULT_LANGUAGE).lower()
    return language if language in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE


def side_label(side: str, language: str) -> str:
    return SIDE_LABELS[language].get(side, side)


def render_reason(category: ConflictCategory, language: str, **fields) -> str:
    fields.setdefault("reviewers", "")
    confidence = fields.get("confidence")
    if isinstance(confidence, MatchConfidence):
        fields["confidence"] = CONFIDENCE_LABELS[language][confidence]
    return REASON_TEMPLATES[language][category].format(**fields)


def recommendations_for(level: ConflictLevel, language: str) -> List[str]:
    return list(RECOMMENDATIONS[language][level])


def ambiguous_message(query_name: str, count: int, language: str) -> str:
    return AMBIGUOUS_TEMPLATES[language].format(query_name=query_name, count=count)
