"""
Text normalization for comparing French answers.

Two views of an answer are used during evaluation:
- the normalized form (accents stripped) decides whether the *content* matches
- the accent-preserving form decides whether the accents were typed correctly

Both views treat the French typographic space before ? ! ; : as optional, so
"Comment ça va ?" and "Comment ça va?" are the same answer and never count as
an accent mistake.
"""

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCTUATION_RE = re.compile(r"\s+(?=[?!;:])")


def normalize_punctuation_spacing(text: str) -> str:
    """Remove any whitespace run directly preceding ? ! ; or :"""
    return _SPACE_BEFORE_PUNCTUATION_RE.sub("", text)


def collapse_whitespace(text: str) -> str:
    """Collapse internal whitespace runs to single spaces and trim"""
    return _WHITESPACE_RE.sub(" ", text).strip()


def strip_diacritics(text: str) -> str:
    """Decompose (NFD) and drop combining marks: 'marché' -> 'marche'"""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize(text: str) -> str:
    """
    Canonical form used for equality and similarity.

    Lowercases before decomposing so characters whose lowercase form carries a
    combining mark (e.g. 'İ') are stripped as well; this keeps the function
    idempotent.

    Examples:
        >>> normalize("  Je vais au  MARCHÉ ! ")
        'je vais au marche!'
    """
    if not text:
        return ""
    text = strip_diacritics(text.lower())
    return normalize_punctuation_spacing(collapse_whitespace(text))


def _accent_form(text: str) -> str:
    text = unicodedata.normalize("NFC", text or "").lower()
    return normalize_punctuation_spacing(collapse_whitespace(text))


def has_correct_accents(user_answer: str, expected: str) -> bool:
    """
    True iff both answers are identical once case, whitespace and punctuation
    spacing are ignored, with diacritics kept.

    "Café" vs "café" -> True, "cafe" vs "café" -> False.
    """
    return _accent_form(user_answer) == _accent_form(expected)


def normalized_equal(a: str, b: str) -> bool:
    return normalize(a) == normalize(b)
