"""
Best-effort normalization of inflected Czech names.

Names spoken in a "pro <name>" construction arrive in the genitive case
("pro Pavla Nováka"). The normalizer maps the common endings back to the
nominative. It only knows the endings below and will mis-normalize names
outside them.
"""

from typing import Optional

# Feminine given names whose nominative already ends in -a
FEMININE_NAMES = frozenset({
    "alena", "alžběta", "anna", "barbora", "dana", "eva", "hana", "helena",
    "ivana", "jana", "jitka", "kateřina", "klára", "kristýna", "lenka",
    "lucie", "markéta", "martina", "michaela", "monika", "petra", "simona",
    "tereza", "veronika", "věra", "vlasta", "zuzana",
})

_SOFT_ENDINGS = ("še", "če", "ře", "ně")


def normalize_word(word: str) -> str:
    """Strip a genitive ending from a single name token."""
    lowered = word.lower()
    if lowered.endswith(_SOFT_ENDINGS):
        return word[:-1]
    if lowered.endswith("vla"):
        return word[:-3] + word[-3] + "el"
    if lowered in FEMININE_NAMES:
        return word
    if lowered.endswith("a") and len(word) > 2:
        return word[:-1]
    return word


def normalize_name(first: str, last: Optional[str] = None) -> str:
    """Normalize a given name and surname to the nominative.

    Examples:
        normalize_name("Pavla", "Nováka") -> "Pavel Novák"
        normalize_name("Jan", "Novák") -> "Jan Novák"
    """
    parts = [first] if last is None else [first, last]
    return " ".join(normalize_word(part) for part in parts if part)


def normalize_full_name(full_name: str) -> str:
    """Normalize every token of a whitespace-separated name."""
    return " ".join(normalize_word(part) for part in full_name.split())
