"""
Similarity scoring for leak texts.

Two-stage comparison:
1) Cosine similarity over 4-token shingles cheaply rejects texts that are
   obviously different.
2) Pairs that clear the shingle threshold are confirmed with a normalized
   Levenshtein similarity.

All functions are pure and deterministic.
"""

import math
from collections import Counter

from .normalize import normalize_leak_text

SHINGLE_SIZE = 4
SHINGLE_THRESHOLD = 0.6


def build_shingle_vector(text: str) -> Counter:
    """
    Build a shingle frequency vector from normalized text.

    Short texts (fewer than SHINGLE_SIZE tokens) fall back to single tokens
    so the vector is never empty for non-empty input.
    """
    tokens = text.split()
    vector: Counter = Counter()
    if not tokens:
        return vector

    for i in range(len(tokens) - SHINGLE_SIZE + 1):
        vector[" ".join(tokens[i:i + SHINGLE_SIZE])] += 1

    if not vector:
        vector.update(tokens)

    return vector


def cosine_similarity(vec_a: Counter, vec_b: Counter) -> float:
    """Cosine similarity of two frequency vectors, in [0, 1]."""
    if not vec_a or not vec_b:
        return 1.0 if len(vec_a) == len(vec_b) else 0.0

    mag_a = sum(v * v for v in vec_a.values())
    mag_b = sum(v * v for v in vec_b.values())
    if mag_a == 0 or mag_b == 0:
        return 0.0

    # Iterate over the smaller vector
    smaller, larger = (vec_a, vec_b) if len(vec_a) <= len(vec_b) else (vec_b, vec_a)
    dot = sum(v * larger[term] for term, v in smaller.items() if term in larger)

    return min(1.0, dot / math.sqrt(mag_a * mag_b))


def levenshtein_similarity(str1: str, str2: str) -> float:
    """
    Normalized Levenshtein similarity: 1 - distance / max(len1, len2).

    Keeps only two rows of the DP matrix, so memory is O(min(len1, len2)).
    """
    len1 = len(str1)
    len2 = len(str2)

    if len1 == 0 and len2 == 0:
        return 1.0
    if len1 == 0 or len2 == 0:
        return 0.0

    # str2 must be the shorter string
    if len2 > len1:
        return levenshtein_similarity(str2, str1)

    previous_row = list(range(len2 + 1))
    current_row = [0] * (len2 + 1)

    for i in range(1, len1 + 1):
        current_row[0] = i
        char1 = str1[i - 1]
        for j in range(1, len2 + 1):
            cost = 0 if char1 == str2[j - 1] else 1
            current_row[j] = min(
                current_row[j - 1] + 1,  # insertion
                previous_row[j] + 1,  # deletion
                previous_row[j - 1] + cost,  # substitution
            )
        previous_row, current_row = current_row, previous_row

    distance = previous_row[len2]
    return max(0.0, 1.0 - distance / max(len1, len2))


def calculate_similarity(text1: str, text2: str) -> float:
    """
    Score how alike two raw leak texts are, in [0, 1].

    Symmetric, and 1.0 for texts that only differ in case or whitespace.

    Args:
        text1: First raw text
        text2: Second raw text

    Returns:
        Similarity score between 0 and 1
    """
    normalized1 = normalize_leak_text(text1)
    normalized2 = normalize_leak_text(text2)

    if normalized1 == normalized2:
        return 1.0

    shingle_score = cosine_similarity(
        build_shingle_vector(normalized1),
        build_shingle_vector(normalized2),
    )

    if shingle_score < SHINGLE_THRESHOLD:
        return shingle_score

    return min(1.0, max(shingle_score, levenshtein_similarity(normalized1, normalized2)))
