"""
Comparison contract shared by every structured value.

A value either implements its own comparator or declares a weight map over
named sub-components; the generic evaluator scores the components present
on both sides and normalizes by the sum of their weights.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from .similarity import levenshtein_similarity, normalize_key

logger = logging.getLogger(__name__)

# Record sources
BLOOMERANG_CSV = "BLOOMERANG_CSV"
VISION_APPRAISAL = "VISION_APPRAISAL"
PHONEBOOK = "PHONEBOOK"
MANUAL_EDIT = "MANUAL_EDIT"


class ComparisonDetail:
    """
    Result of a detailed comparison.

    Attributes:
        overall_similarity: Normalized score in [0, 1]
        components: Per-component similarity, weight and contribution
        check_sum: Sum of the normalized contributions
    """

    def __init__(self, overall_similarity: float,
                 components: Optional[Dict[str, Dict[str, float]]] = None,
                 check_sum: Optional[float] = None):
        self.overall_similarity = overall_similarity
        self.components = components or {}
        self.check_sum = overall_similarity if check_sum is None else check_sum

    def component_similarity(self, name: str) -> Optional[float]:
        component = self.components.get(name)
        return component["similarity"] if component else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_similarity": self.overall_similarity,
            "components": self.components,
            "check_sum": self.check_sum
        }

    def __repr__(self):
        return f"ComparisonDetail({self.overall_similarity:.4f}, components={list(self.components)})"


NO_SIMILARITY = ComparisonDetail(0.0)


class Comparable:
    """
    Base class for every structured value that can be scored.

    Subclasses either set ``comparison_weights`` and expose their parts
    through ``comparison_components`` or override ``_compare_same``.
    """

    comparison_weights: Optional[Dict[str, float]] = None

    def comparison_components(self) -> Dict[str, Any]:
        return {}

    def comparison_text(self) -> Optional[str]:
        """Plain-text rendering used when no specialized comparator applies."""
        return None

    def is_empty(self) -> bool:
        components = self.comparison_components()
        if components:
            return not any(is_present(v) for v in components.values())
        return not self.comparison_text()

    def accepts(self, other: Any) -> bool:
        """Whether ``other`` can be scored with this type's own comparator."""
        return type(other) is type(self)

    def compare_to(self, other: Any, detailed: bool = False) -> Union[float, ComparisonDetail]:
        """
        Compare this value to another.

        Args:
            other: Value to compare against
            detailed: Return a ComparisonDetail instead of a float

        Returns:
            Similarity in [0, 1], or the detailed breakdown
        """
        try:
            if other is None or not isinstance(other, Comparable):
                result = self._fallback_compare(other)
            elif self.accepts(other) and other.accepts(self):
                result = self._compare_same(other)
            else:
                result = self._fallback_compare(other)
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            logger.warning(f"Comparison of {type(self).__name__} and {type(other).__name__} failed: {e}")
            result = NO_SIMILARITY

        return result if detailed else result.overall_similarity

    def _compare_same(self, other: "Comparable") -> ComparisonDetail:
        if self.comparison_weights:
            return weighted_similarity(self, other, self.comparison_weights)
        return self._fallback_compare(other)

    def compare_component(self, name: str, mine: Any, theirs: Any) -> float:
        """Score one named component; subclasses override for custom rules."""
        return compare_values(mine, theirs)

    def _fallback_compare(self, other: Any) -> ComparisonDetail:
        text_a = self.comparison_text()
        text_b = other.comparison_text() if isinstance(other, Comparable) else None
        if text_a and text_b:
            return ComparisonDetail(levenshtein_similarity(text_a, text_b))

        logger.warning(f"No comparator available for {type(self).__name__} and {type(other).__name__}")
        return NO_SIMILARITY


def is_present(value: Any) -> bool:
    """Whether a component value takes part in scoring."""
    if value is None:
        return False
    if isinstance(value, Comparable):
        return not value.is_empty()
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, dict):
        return bool(value)
    if isinstance(value, (list, tuple, set)):
        return any(is_present(v) for v in value)
    return True


def compare_values(a: Any, b: Any) -> float:
    """Score two component values of any supported kind."""
    if isinstance(a, Comparable) and isinstance(b, Comparable):
        return a.compare_to(b)
    if isinstance(a, bool) or isinstance(b, bool):
        return 1.0 if bool(a) == bool(b) else 0.0
    return levenshtein_similarity(_as_text(a), _as_text(b))


def _as_text(value: Any) -> str:
    if isinstance(value, AttributedTerm):
        return str(value.term)
    return str(value)


def weighted_similarity(a: Comparable, b: Comparable, weights: Dict[str, float],
                        scorer: Optional[Callable[[str, Any, Any], float]] = None) -> ComparisonDetail:
    """
    Weighted composite comparison normalized by the weights in play.

    Only components populated on both sides contribute. The result is the
    weighted sum divided by the sum of those components' weights; no shared
    component yields 0.

    Args:
        a: First value
        b: Second value
        weights: Component name to relative weight
        scorer: Component scorer, defaults to ``a.compare_component``

    Returns:
        ComparisonDetail with per-component breakdown
    """
    scorer = scorer or a.compare_component
    parts_a = a.comparison_components()
    parts_b = b.comparison_components()

    scored = {}
    weight_in_play = 0.0
    for name, weight in weights.items():
        mine = parts_a.get(name)
        theirs = parts_b.get(name)
        if weight <= 0 or not is_present(mine) or not is_present(theirs):
            continue
        similarity = scorer(name, mine, theirs)
        scored[name] = (similarity, weight)
        weight_in_play += weight

    if weight_in_play == 0:
        return NO_SIMILARITY

    components = {}
    total = 0.0
    for name, (similarity, weight) in scored.items():
        contribution = similarity * weight / weight_in_play
        components[name] = {
            "similarity": similarity,
            "weight": weight,
            "contribution": contribution
        }
        total += contribution

    overall = max(0.0, min(1.0, total))
    return ComparisonDetail(overall, components, total)


@dataclass(frozen=True)
class AttributedTerm(Comparable):
    """
    A scalar term with provenance.

    Provenance is kept for audit output only and never affects scoring.
    """

    term: Any
    source: Optional[str] = None
    index: Optional[int] = None
    identifier: Optional[str] = None
    field_name: Optional[str] = field(default=None)

    def comparison_text(self) -> Optional[str]:
        if self.term is None:
            return None
        text = str(self.term).strip()
        return text or None

    def is_empty(self) -> bool:
        return self.comparison_text() is None

    @property
    def key(self) -> str:
        return normalize_key(self.comparison_text())

    def _compare_same(self, other: "AttributedTerm") -> ComparisonDetail:
        return ComparisonDetail(levenshtein_similarity(self.comparison_text(), other.comparison_text()))

    def __str__(self):
        return "" if self.term is None else str(self.term)


def attributed(term: Any, source: Optional[str] = None, index: Optional[int] = None,
               identifier: Optional[str] = None, field_name: Optional[str] = None) -> Optional[AttributedTerm]:
    """Build an AttributedTerm, or None when the term is blank."""
    if term is None:
        return None
    if isinstance(term, AttributedTerm):
        return term
    if isinstance(term, str) and not term.strip():
        return None
    return AttributedTerm(term, source, index, identifier, field_name)
