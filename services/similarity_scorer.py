"""
Edit-distance similarity between two answers.

similarity = 1 - levenshtein(a, b) / max(len(a), len(b)), computed on the
normalized forms, so accents, case, whitespace and French punctuation spacing
never cost anything.
"""

from rapidfuzz.distance import Levenshtein

from services.text_normalizer import normalize


def distance(a: str, b: str) -> int:
    """Unit-cost Levenshtein distance (insertion, deletion, substitution)"""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """
    Similarity ratio in [0, 1] between two answers.

    Examples:
        >>> similarity("Comment ça va ?", "comment ca va?")
        1.0
        >>> similarity("", "")
        1.0
    """
    normalized_a = normalize(a)
    normalized_b = normalize(b)

    max_length = max(len(normalized_a), len(normalized_b))
    if max_length == 0:
        return 1.0

    return 1 - distance(normalized_a, normalized_b) / max_length


def similarity_percent(a: str, b: str) -> int:
    return round(similarity(a, b) * 100)
