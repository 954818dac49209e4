"""
Household membership information carried by donor records.
"""

import logging
from typing import Any, Dict, Optional

from ..compare.base import Comparable, ComparisonDetail, attributed
from ..compare.similarity import exact_similarity, token_set_similarity

logger = logging.getLogger(__name__)


class HouseholdInformation(Comparable):
    """
    Household identifier, household name and head-of-household flag.

    Weights are conditional: the identifier (or the household name when
    either side has no identifier) weighs 0.7 and the head flag 0.3.
    """

    identifier_weight = 0.7
    head_weight = 0.3

    def __init__(self, household_identifier: Optional[str] = None,
                 household_name: Optional[str] = None,
                 is_head_of_household: Optional[bool] = None,
                 source: Optional[str] = None, index: Optional[int] = None):
        self.household_identifier = attributed(household_identifier, source, index, None, "household_identifier")
        self.household_name = attributed(household_name, source, index, None, "household_name")
        self.is_head_of_household = is_head_of_household

    def is_empty(self) -> bool:
        return (self.household_identifier is None and self.household_name is None
                and self.is_head_of_household is None)

    def comparison_text(self) -> Optional[str]:
        for term in (self.household_identifier, self.household_name):
            if term is not None:
                return str(term)
        return None

    def _compare_same(self, other: "HouseholdInformation") -> ComparisonDetail:
        components = {}

        if self.household_identifier is not None and other.household_identifier is not None:
            similarity = exact_similarity(self.household_identifier, other.household_identifier)
            components["household_identifier"] = (similarity, self.identifier_weight)
        elif self.household_name is not None and other.household_name is not None:
            similarity = token_set_similarity(str(self.household_name), str(other.household_name))
            components["household_name"] = (similarity, self.identifier_weight)

        if self.is_head_of_household is not None and other.is_head_of_household is not None:
            similarity = 1.0 if self.is_head_of_household == other.is_head_of_household else 0.0
            components["is_head_of_household"] = (similarity, self.head_weight)

        weight_in_play = sum(w for _, w in components.values())
        if weight_in_play == 0:
            return ComparisonDetail(0.0)

        breakdown = {}
        total = 0.0
        for name, (similarity, weight) in components.items():
            contribution = similarity * weight / weight_in_play
            breakdown[name] = {"similarity": similarity, "weight": weight, "contribution": contribution}
            total += contribution

        return ComparisonDetail(total, breakdown, total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "household_identifier": None if self.household_identifier is None else str(self.household_identifier),
            "household_name": None if self.household_name is None else str(self.household_name),
            "is_head_of_household": self.is_head_of_household
        }
