"""
Cyrillic to Latin transliteration for name keys.

Covers Russian and the Uzbek Cyrillic letters. Output is lowercase; callers
lowercase before transliterating, so only lowercase letters are mapped.
"""

CYRILLIC_TO_LATIN = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "yo",
    "ж": "j",  # Uzbek usage, not "zh"
    "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m", "н": "n",
    "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u", "ф": "f",
    "х": "x",  # Uzbek usage, not "kh"
    "ц": "ts", "ч": "ch", "ш": "sh", "щ": "shch", "ъ": "", "ы": "i", "ь": "",
    "э": "e", "ю": "yu", "я": "ya",
    # Uzbek
    "ў": "o", "қ": "q", "ғ": "g", "ҳ": "h",
}

# Latin digraphs with a common single-letter spelling in Uzbek Latin
LATIN_VARIANTS = (
    ("zh", "j"),
    ("kh", "x"),
)


def cyrillic_to_latin(text: str) -> str:
    """Transliterate lowercase Cyrillic letters, leave everything else as is."""
    if not text:
        return ""
    return "".join(CYRILLIC_TO_LATIN.get(ch, ch) for ch in text)


def fold_latin_variants(text: str) -> str:
    """Collapse equivalent Latin spellings so "Khodjaev" == "Xodjaev"."""
    for variant, canonical in LATIN_VARIANTS:
        text = text.replace(variant, canonical)
    return text


def to_latin_key(text: str) -> str:
    return fold_latin_variants(cyrillic_to_latin(text))
