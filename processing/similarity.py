"""
Address similarity scoring.

Uses rapidfuzz with a blend of algorithms so that abbreviations
("St" vs "Street") and reordered address parts still score high.
"""

import re

from rapidfuzz import fuzz


def normalize_address(address: str) -> str:
    """
    Normalize an address for comparison.

    - Uppercase
    - Punctuation replaced by spaces
    - Whitespace collapsed
    """
    if not address:
        return ""

    normalized = address.upper().strip()
    normalized = re.sub(r"[^\w\s]", " ", normalized)
    normalized = re.sub(r"\s+", " ", normalized).strip()

    return normalized


def address_similarity(a: str, b: str) -> float:
    """
    Score two addresses on a 0-1 scale.

    Weights:
    - Token sort ratio: 40% (handles reordered parts)
    - Token set ratio: 40% (handles one address containing the other)
    - Ratio: 20% (plain normalized edit similarity)

    Every component is symmetric, so the blend is too. Identical inputs
    always score 1.0, including two empty addresses.
    """
    if a == b:
        return 1.0

    s1 = normalize_address(a)
    s2 = normalize_address(b)
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    token_sort = fuzz.token_sort_ratio(s1, s2)
    token_set = fuzz.token_set_ratio(s1, s2)
    ratio = fuzz.ratio(s1, s2)

    score = (token_sort * 0.4) + (token_set * 0.4) + (ratio * 0.2)
    return max(0.0, min(1.0, score / 100.0))
