"""
Street-type abbreviation table.

Maps abbreviations such as RD or AVE to their full forms and strips
trailing street types so that "CORN NECK RD" and "CORN NECK ROAD" compare
as the same street.
"""

import logging
from typing import Dict, Optional, Tuple

from ..compare.similarity import normalize_key

logger = logging.getLogger(__name__)

DEFAULT_ABBREVIATIONS = {
    "RD": "ROAD", "RD.": "ROAD",
    "AVE": "AVENUE", "AVE.": "AVENUE", "AV": "AVENUE",
    "ST": "STREET", "ST.": "STREET",
    "DR": "DRIVE", "DR.": "DRIVE",
    "LN": "LANE", "LN.": "LANE",
    "CT": "COURT", "CT.": "COURT",
    "CIR": "CIRCLE",
    "PL": "PLACE",
    "TRL": "TRAIL", "TR": "TRAIL",
    "TER": "TERRACE", "TERR": "TERRACE",
    "BLVD": "BOULEVARD",
    "HWY": "HIGHWAY",
    "EXT": "EXTENSION", "EXTN": "EXTENSION",
    "WY": "WAY",
    "PKY": "PARKWAY", "PKWY": "PARKWAY"
}

OFF_PREFIX = "OFF "


class StreetTypeAbbreviations:
    """
    Abbreviation to full-form table for street types.

    Args:
        abbreviations: Optional replacement table; keys and values are
            upper-cased on load
    """

    def __init__(self, abbreviations: Optional[Dict[str, str]] = None):
        source = DEFAULT_ABBREVIATIONS if abbreviations is None else abbreviations
        self.abbreviations = {k.strip().upper(): v.strip().upper() for k, v in source.items()}
        self._full_forms = set(self.abbreviations.values())
        logger.debug(f"Loaded {len(self.abbreviations)} street type abbreviations")

    def add(self, abbreviation: str, full_form: str):
        self.abbreviations[abbreviation.strip().upper()] = full_form.strip().upper()
        self._full_forms = set(self.abbreviations.values())

    def full_form(self, word: str) -> Optional[str]:
        return self.abbreviations.get(word.strip().upper())

    def is_street_type(self, word: str) -> bool:
        word = word.strip().upper()
        return word in self.abbreviations or word in self._full_forms

    def expand(self, street_name: Optional[str]) -> str:
        """
        Expand an abbreviated street type at the end of a name.

        Consecutive duplicate types left by the expansion are collapsed, so
        "BEACH ROAD RD" becomes "BEACH ROAD".
        """
        words = normalize_key(street_name).split()
        if not words:
            return ""

        expanded = self.full_form(words[-1])
        if expanded:
            words[-1] = expanded

        while len(words) > 2 and words[-1] == words[-2] and words[-1] in self._full_forms:
            words.pop()

        return " ".join(words)

    def strip_street_type(self, street_name: Optional[str]) -> str:
        """Remove trailing street-type words while more than one word remains."""
        words = normalize_key(street_name).split()
        while len(words) > 1 and self.is_street_type(words[-1]):
            words.pop()
        return " ".join(words)

    def prepare_for_comparison(self, street_a: Optional[str], street_b: Optional[str]) -> Tuple[str, str]:
        """
        Normalize two street names for similarity scoring.

        A leading "OFF " is removed only when both names carry it; street
        types are then stripped from both.

        Returns:
            Tuple of the two prepared names
        """
        a = normalize_key(street_a)
        b = normalize_key(street_b)

        if a.startswith(OFF_PREFIX) and b.startswith(OFF_PREFIX):
            a = a[len(OFF_PREFIX):].strip()
            b = b[len(OFF_PREFIX):].strip()

        return self.strip_street_type(a), self.strip_street_type(b)


DEFAULT_STREET_TYPES = StreetTypeAbbreviations()
