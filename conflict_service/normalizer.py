"""
Entity Normalizer
=================

Canonicalizes party and affiliated-entity descriptors into comparable keys.

- name_key: casefolded, transliterated to Latin, punctuation and quotes
  removed, whitespace collapsed, leading legal-form token dropped
- identifier_key: digits only, None when nothing is left

Pure functions; the same key builders fill the indexed key columns of the
corpus tables, so stored keys and query keys always agree.
"""

import re
import logging
from typing import Optional, Tuple

from .config import get_settings
from .errors import ValidationError
from .models import NormalizedIdentity, QueryIdentity
from .schemas import PartyKind, EntityCategory, PartyDescriptor, AffiliatedEntityDescriptor
from .transliterate import to_latin_key

logger = logging.getLogger(__name__)


LEGAL_FORM_PREFIXES = frozenset({
    # Latin
    "llc", "ltd", "inc", "jsc", "ooo", "oao", "zao", "pao", "ip", "ao", "mchj", "xk", "qmj", "aj",
    # Cyrillic (used when transliteration is disabled)
    "ооо", "оао", "зао", "пао", "ип", "ао", "нао", "одо", "тоо", "мчж", "хк", "қмж", "аж",
})

TAX_ID_LENGTHS = (9, 12)
PERSONAL_ID_LENGTHS = (14,)

_PUNCT_RE = re.compile(r"[^\w\s]|_", re.UNICODE)
_WS_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")


def name_key(name: Optional[str], transliterate: Optional[bool] = None,
             strip_prefixes: Optional[bool] = None) -> str:
    """Build the normalized name key. Returns "" for blank names."""
    if not name:
        return ""

    settings = get_settings()
    if transliterate is None:
        transliterate = settings.enable_transliteration
    if strip_prefixes is None:
        strip_prefixes = settings.strip_legal_form_prefixes

    key = name.casefold()
    if transliterate:
        key = to_latin_key(key)
    key = _PUNCT_RE.sub(" ", key)
    key = _WS_RE.sub(" ", key).strip()

    if strip_prefixes and " " in key:
        first, rest = key.split(" ", 1)
        if first in LEGAL_FORM_PREFIXES:
            key = rest

    return key


def identifier_key(identifier: Optional[str]) -> Optional[str]:
    """Strip every non-digit character; None when no digit remains."""
    if identifier is None:
        return None
    digits = _NON_DIGIT_RE.sub("", str(identifier))
    return digits or None


def index_keys(name: Optional[str], identifier: Optional[str]) -> Tuple[str, Optional[str]]:
    """Keys stored alongside a corpus row."""
    return name_key(name), identifier_key(identifier)


def _expected_lengths(kind: Optional[PartyKind]) -> Tuple[int, ...]:
    if kind is PartyKind.LEGAL:
        return TAX_ID_LENGTHS
    if kind is PartyKind.INDIVIDUAL:
        return PERSONAL_ID_LENGTHS
    return ()


def normalize_fields(name: Optional[str], identifier: Optional[str] = None,
                     kind: Optional[PartyKind] = None) -> NormalizedIdentity:
    """
    Normalize raw name/identifier values.

    Raises:
        ValidationError: the name is empty or has no comparable characters
    """
    key = name_key(name)
    if not key:
        raise ValidationError("Descriptor name must not be empty")

    id_key = identifier_key(identifier)
    expected = _expected_lengths(kind)
    if id_key and expected and len(id_key) not in expected:
        # Kept as-is: a malformed identifier still matches itself exactly.
        logger.warning(f"Unexpected {kind.value} identifier length {len(id_key)} for '{key}'")

    return NormalizedIdentity(name_key=key, identifier_key=id_key, kind=kind)


def _entity_kind(category: EntityCategory) -> Optional[PartyKind]:
    if category is EntityCategory.RELATED_COMPANY:
        return PartyKind.LEGAL
    if category is EntityCategory.FOUNDER:
        return None  # company or person
    return PartyKind.INDIVIDUAL


def normalize(descriptor) -> NormalizedIdentity:
    """
    Normalize a PartyDescriptor or AffiliatedEntityDescriptor.

    Raises:
        ValidationError: the descriptor has an empty name
    """
    if isinstance(descriptor, PartyDescriptor):
        kind = descriptor.kind
    elif isinstance(descriptor, AffiliatedEntityDescriptor):
        kind = _entity_kind(descriptor.category)
    else:
        kind = getattr(descriptor, "kind", None)
    return normalize_fields(descriptor.name, descriptor.identifier, kind)


def to_query_identity(descriptor) -> QueryIdentity:
    """Normalize a descriptor and remember which side of the query it is on."""
    identity = normalize(descriptor)
    display_name = (descriptor.name or "").strip()
    if isinstance(descriptor, PartyDescriptor):
        return QueryIdentity(identity=identity, display_name=display_name, role=descriptor.role)
    return QueryIdentity(identity=identity, display_name=display_name, category=descriptor.category)
