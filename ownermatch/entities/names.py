"""
Structured owner names.

Individual names are scored component by component; household and
organization names are scored as whole strings. An individual name and a
household name can be compared directly: the individual is scored against
every parsed member and against the household's own name.
"""

import logging
from typing import Any, Dict, List, Optional

from ..compare.base import (
    AttributedTerm, Comparable, ComparisonDetail, attributed, weighted_similarity
)
from ..compare.similarity import (
    levenshtein_similarity, name_similarity, normalize_key, token_set_similarity
)

logger = logging.getLogger(__name__)


class IndividualName(Comparable):
    """
    A person's name split into title, first, other, last and suffix parts.

    Some records only yield a full name string; those keep ``full_name`` and
    leave the components empty. ``similarity_weights`` optionally
    overrides the blend used to score each component; classifiers set it
    from configuration.
    """

    comparison_weights = {
        "last_name": 0.5,
        "first_name": 0.4,
        "other_names": 0.1
    }

    def __init__(self, first_name: Optional[str] = None, last_name: Optional[str] = None,
                 other_names: Optional[str] = None, title: Optional[str] = None,
                 suffix: Optional[str] = None, full_name: Optional[str] = None,
                 source: Optional[str] = None, index: Optional[int] = None,
                 identifier: Optional[str] = None):
        self.title = attributed(title, source, index, identifier, "title")
        self.first_name = attributed(first_name, source, index, identifier, "first_name")
        self.other_names = attributed(other_names, source, index, identifier, "other_names")
        self.last_name = attributed(last_name, source, index, identifier, "last_name")
        self.suffix = attributed(suffix, source, index, identifier, "suffix")
        self.full_name = attributed(full_name, source, index, identifier, "full_name")
        self.similarity_weights: Optional[Dict[str, float]] = None

    @property
    def complete_name(self) -> str:
        parts = [self.title, self.first_name, self.other_names, self.last_name, self.suffix]
        rendered = " ".join(str(p) for p in parts if p is not None)
        if rendered:
            return rendered
        return str(self.full_name) if self.full_name is not None else ""

    @property
    def has_components(self) -> bool:
        return any(p is not None for p in (self.first_name, self.other_names, self.last_name))

    def comparison_components(self) -> Dict[str, Any]:
        return {
            "last_name": self.last_name,
            "first_name": self.first_name,
            "other_names": self.other_names
        }

    def comparison_text(self) -> Optional[str]:
        return self.complete_name or None

    def is_empty(self) -> bool:
        return not self.complete_name

    def accepts(self, other: Any) -> bool:
        return isinstance(other, (IndividualName, HouseholdName))

    def compare_component(self, name: str, mine: AttributedTerm, theirs: AttributedTerm) -> float:
        return name_similarity(str(mine), str(theirs), self.similarity_weights)

    def _compare_same(self, other: Comparable) -> ComparisonDetail:
        if isinstance(other, HouseholdName):
            return other._compare_same(self)

        if self.has_components and other.has_components:
            detail = weighted_similarity(self, other, self.comparison_weights)
            if detail.components:
                return detail

        score = token_set_similarity(self.complete_name, other.complete_name)
        return ComparisonDetail(score, {"complete_name": {
            "similarity": score, "weight": 1.0, "contribution": score
        }})

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "title": _text(self.title),
            "first_name": _text(self.first_name),
            "other_names": _text(self.other_names),
            "last_name": _text(self.last_name),
            "suffix": _text(self.suffix),
            "complete_name": self.complete_name
        }

    def __repr__(self):
        return f"IndividualName({self.complete_name!r})"


class HouseholdName(Comparable):
    """
    A joint or family ownership name, optionally with parsed member names.
    """

    def __init__(self, full_name: str, members: Optional[List[IndividualName]] = None,
                 raw_name: Optional[str] = None, source: Optional[str] = None,
                 index: Optional[int] = None, identifier: Optional[str] = None):
        self.full_name = attributed(full_name, source, index, identifier, "household_name")
        self.raw_name = raw_name or full_name
        self.members: List[IndividualName] = []
        for member in members or []:
            self.add_member(member)

    def add_member(self, member: IndividualName) -> bool:
        """
        Add a member name unless one with the same complete name exists.

        Returns:
            True if the member was added
        """
        key = normalize_key(member.complete_name)
        if not key:
            return False
        if any(normalize_key(m.complete_name) == key for m in self.members):
            return False
        self.members.append(member)
        return True

    def comparison_text(self) -> Optional[str]:
        return str(self.full_name) if self.full_name is not None else None

    def accepts(self, other: Any) -> bool:
        return isinstance(other, (IndividualName, HouseholdName))

    def _compare_same(self, other: Comparable) -> ComparisonDetail:
        if isinstance(other, IndividualName):
            return self._compare_individual(other)

        name_score = token_set_similarity(self.comparison_text(), other.comparison_text())
        components = {"household_name": {"similarity": name_score, "weight": 1.0, "contribution": name_score}}
        best = name_score

        if self.members and other.members:
            member_score = (_mean_best(self.members, other.members) +
                            _mean_best(other.members, self.members)) / 2
            components["members"] = {"similarity": member_score, "weight": 1.0, "contribution": member_score}
            best = max(best, member_score)

        return ComparisonDetail(best, components, best)

    def _compare_individual(self, individual: IndividualName) -> ComparisonDetail:
        best = token_set_similarity(self.comparison_text(), individual.complete_name)
        raw_score = token_set_similarity(self.raw_name, individual.complete_name)
        best = max(best, raw_score)
        components = {"household_name": {"similarity": best, "weight": 1.0, "contribution": best}}

        for position, member in enumerate(self.members):
            score = individual.compare_to(member)
            if score > best:
                best = score
                components = {"member": {"similarity": score, "weight": 1.0,
                                         "contribution": score, "member_index": position}}

        return ComparisonDetail(best, components, best)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "full_name": _text(self.full_name),
            "raw_name": self.raw_name,
            "members": [m.to_dict() for m in self.members]
        }

    def __repr__(self):
        return f"HouseholdName({self.comparison_text()!r}, members={len(self.members)})"


class OrganizationName(Comparable):
    """
    Business or legal-construct name kept verbatim with no decomposition.
    """

    def __init__(self, full_name: str, source: Optional[str] = None,
                 index: Optional[int] = None, identifier: Optional[str] = None):
        self.full_name = attributed(full_name, source, index, identifier, "organization_name")

    def comparison_text(self) -> Optional[str]:
        return str(self.full_name) if self.full_name is not None else None

    def _compare_same(self, other: "OrganizationName") -> ComparisonDetail:
        a = self.comparison_text()
        b = other.comparison_text()
        score = 0.5 * levenshtein_similarity(a, b) + 0.5 * token_set_similarity(a, b)
        return ComparisonDetail(score)

    def to_dict(self) -> Dict[str, Any]:
        return {"full_name": _text(self.full_name)}

    def __repr__(self):
        return f"OrganizationName({self.comparison_text()!r})"


def _mean_best(left: List[IndividualName], right: List[IndividualName]) -> float:
    scores = [max(a.compare_to(b) for b in right) for a in left]
    return sum(scores) / len(scores)


def _text(term: Optional[AttributedTerm]) -> Optional[str]:
    return None if term is None else str(term)
