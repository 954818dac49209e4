"""
String similarity primitives.

Every function returns a score in [0, 1] and is symmetric in its two
arguments. Arguments are put in a canonical order before scoring so that
greedy matching inside the underlying libraries cannot introduce
asymmetry.
"""

import logging
import re
from typing import Dict, Optional, Tuple

from Levenshtein import distance as levenshtein_distance
from jellyfish import jaro_winkler_similarity, metaphone
from thefuzz import fuzz

logger = logging.getLogger(__name__)

DEFAULT_NAME_WEIGHTS = {
    "levenshtein": 0.80,
    "jaro_winkler": 0.15,
    "metaphone": 0.05
}

_whitespace_pattern = re.compile(r"\s+")
_non_word_pattern = re.compile(r"[^\w]")


def resolve_name_weights(weights: Optional[Dict[str, float]] = None) -> Dict[str, float]:
    """
    Blend weights for ``name_similarity``: the defaults overlaid with ``weights``.

    Returns a new dict; the module defaults are never modified.

    Raises:
        ValueError: A weight name is not one of the blend components
    """
    resolved = dict(DEFAULT_NAME_WEIGHTS)
    if not weights:
        return resolved
    unknown = set(weights) - set(DEFAULT_NAME_WEIGHTS)
    if unknown:
        raise ValueError(f"Unknown name similarity weights: {sorted(unknown)}")
    resolved.update(weights)
    return resolved


def normalize_spaces(text: Optional[str]) -> str:
    """Trim and collapse consecutive whitespace."""
    if not text:
        return ""
    return _whitespace_pattern.sub(" ", str(text)).strip()


def normalize_key(text: Optional[str]) -> str:
    """Upper-cased, trimmed, space-collapsed form used for lookups."""
    return normalize_spaces(text).upper()


def strip_punctuation(word: str) -> str:
    """Remove every non-word character from a token."""
    return _non_word_pattern.sub("", word)


def _ordered(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a <= b else (b, a)


def levenshtein_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Edit-distance similarity: 1 - distance / longer length.

    Args:
        a: First string
        b: Second string

    Returns:
        Similarity score in [0, 1]
    """
    a = normalize_key(a)
    b = normalize_key(b)
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))


def name_similarity(a: Optional[str], b: Optional[str],
                    weights: Optional[Dict[str, float]] = None) -> float:
    """
    Blend edit distance, Jaro-Winkler and phonetic agreement for name tokens.

    Args:
        a: First name string
        b: Second name string
        weights: Optional override of the blend weights

    Returns:
        Similarity score in [0, 1]
    """
    a = normalize_key(a)
    b = normalize_key(b)
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    a, b = _ordered(a, b)
    weights = weights or DEFAULT_NAME_WEIGHTS

    lev = levenshtein_similarity(a, b)
    jaro = jaro_winkler_similarity(a, b)

    code_a = metaphone(a)
    code_b = metaphone(b)
    phonetic = 1.0 if code_a and code_a == code_b else 0.0

    total_weight = sum(weights.values())
    if total_weight <= 0:
        return lev

    score = (
        weights.get("levenshtein", 0.0) * lev +
        weights.get("jaro_winkler", 0.0) * jaro +
        weights.get("metaphone", 0.0) * phonetic
    ) / total_weight

    return max(0.0, min(1.0, score))


def token_set_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Word-order insensitive similarity for multi-word names.

    Args:
        a: First string
        b: Second string

    Returns:
        Similarity score in [0, 1]
    """
    a = normalize_key(a)
    b = normalize_key(b)
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    a, b = _ordered(a, b)
    return fuzz.token_set_ratio(a, b) / 100.0


def exact_similarity(a, b) -> float:
    """1.0 when both values render to the same normalized key, else 0.0."""
    return 1.0 if normalize_key(str(a)) == normalize_key(str(b)) else 0.0
