"""
Construction of the canonical street database from a raw street list.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence

from ..compare.base import VISION_APPRAISAL, AttributedTerm
from ..compare.similarity import levenshtein_similarity, normalize_key, normalize_spaces
from .abbreviations import DEFAULT_STREET_TYPES, StreetTypeAbbreviations
from .streets import HOMONYMS, SYNONYMS, StreetDatabase, StreetEntry

logger = logging.getLogger(__name__)

_leading_digit = re.compile(r"^\d")


class _StreetGroup:
    """Mutable accumulator for one street while the raw list is grouped."""

    def __init__(self, term: AttributedTerm):
        self.primary = term
        self.aliases: Dict[str, List[AttributedTerm]] = {HOMONYMS: [], SYNONYMS: []}

    @property
    def text(self) -> str:
        return str(self.primary)

    def add(self, term: AttributedTerm, category: str):
        self.aliases[category].append(term)

    def absorb(self, other: "_StreetGroup", category: str):
        self.add(other.primary, category)
        for name, terms in other.aliases.items():
            self.aliases[name].extend(terms)

    def to_entry(self, abbreviations: StreetTypeAbbreviations) -> StreetEntry:
        return StreetEntry(self.primary, tuple(self.aliases[HOMONYMS]), tuple(self.aliases[SYNONYMS]),
                           abbreviations=abbreviations)


def select_primary(name_a: str, name_b: str, index_a: int, index_b: int,
                   abbreviations: StreetTypeAbbreviations = DEFAULT_STREET_TYPES) -> int:
    """
    Decide which of two street names becomes the primary.

    The expanded form of an abbreviation wins, a name that starts with a
    digit never wins over one that does not, and otherwise the name that
    appeared first wins.

    Returns:
        0 when ``name_a`` wins, 1 when ``name_b`` wins
    """
    a = normalize_key(name_a)
    b = normalize_key(name_b)
    a_is_expansion = a != b and a == abbreviations.expand(b)
    b_is_expansion = a != b and b == abbreviations.expand(a)

    if a_is_expansion and not b_is_expansion and not _leading_digit.match(a):
        return 0
    if b_is_expansion and not a_is_expansion and not _leading_digit.match(b):
        return 1

    a_digit = bool(_leading_digit.match(a))
    b_digit = bool(_leading_digit.match(b))
    if a_digit and not b_digit:
        return 1
    if b_digit and not a_digit:
        return 0

    return 0 if index_a <= index_b else 1


def build_street_database(names: Sequence[str], config: Optional[Dict] = None,
                          abbreviations: Optional[StreetTypeAbbreviations] = None,
                          source: str = VISION_APPRAISAL) -> StreetDatabase:
    """
    Group raw street names into canonical streets.

    Names that normalize to the same string are merged as homonyms. Every
    remaining pair is compared with street types stripped; pairs scoring at
    or above the homonym threshold merge as homonyms, those at or above
    the synonym threshold as synonyms.

    Args:
        names: Raw street names in file order
        config: ``streets`` configuration section
        abbreviations: Street-type table
        source: Provenance for the created terms

    Returns:
        New StreetDatabase
    """
    config = config or {}
    abbreviations = abbreviations or DEFAULT_STREET_TYPES
    homonym_threshold = config.get("homonym_threshold", 0.875)
    synonym_threshold = config.get("synonym_threshold", 0.845)

    streets = [normalize_spaces(n) for n in names]
    groups: Dict[str, _StreetGroup] = {}
    group_of: Dict[int, _StreetGroup] = {}
    first_index: Dict[int, int] = {}

    for position, street in enumerate(streets):
        if not street:
            continue
        term = AttributedTerm(street.upper(), source, position, None, "street")
        key = normalize_key(street)
        if key in groups:
            existing = groups[key]
            existing.add(term, HOMONYMS)
            group_of[position] = existing
            logger.debug(f"Merged '{street}' into '{existing.text}' (same normalized form)")
        else:
            group = _StreetGroup(term)
            groups[key] = group
            group_of[position] = group
            first_index[id(group)] = position

    merges = 0
    positions = sorted(group_of)
    for i_pos, i in enumerate(positions):
        for j in positions[i_pos + 1:]:
            group_i = group_of[i]
            group_j = group_of[j]
            if group_i is group_j:
                continue

            prepared_a, prepared_b = abbreviations.prepare_for_comparison(streets[i], streets[j])
            score = levenshtein_similarity(prepared_a, prepared_b)
            if score >= homonym_threshold:
                category = HOMONYMS
            elif score >= synonym_threshold:
                category = SYNONYMS
            else:
                continue

            winner_index = select_primary(group_i.text, group_j.text,
                                          first_index[id(group_i)], first_index[id(group_j)], abbreviations)
            winner, loser = (group_i, group_j) if winner_index == 0 else (group_j, group_i)
            winner.absorb(loser, category)
            first_index[id(winner)] = min(first_index[id(winner)], first_index[id(loser)])
            merges += 1

            for position, group in group_of.items():
                if group is loser:
                    group_of[position] = winner
            groups = {k: g for k, g in groups.items() if g is not loser}

            logger.debug(f"Similar pair ({score:.3f}, {category}): '{streets[i]}' / '{streets[j]}' "
                         f"-> primary '{winner.text}'")

    ordered = sorted(groups.values(), key=lambda g: first_index[id(g)])
    logger.info(f"Built {len(ordered)} canonical streets from {len(streets)} names ({merges} merges)")
    return StreetDatabase([g.to_entry(abbreviations) for g in ordered], config, abbreviations)
