"""
Two-tier business entity filter for name matching.

Tier one excludes names on the complete institutional list. Tier two strips
business qualifier words so the personal part of a name like
"SMITH JOHN TRUSTEE" can be matched against individuals; a name with
nothing left after stripping is treated as a business.
"""

import logging
import re
from typing import Any, Dict, Iterable, Optional

from ..compare.similarity import normalize_key, strip_punctuation
from ..config import BUSINESS_TERMS, INSTITUTIONAL_NAMES, normalize_terms

logger = logging.getLogger(__name__)

BUSINESS_ENTITY = "business_entity"
INDIVIDUAL = "individual"


class BusinessEntityFilter:
    """
    Filters and cleans owner names before personal-name matching.

    Args:
        config: ``classification`` configuration section
    """

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}
        self.complete_exclusions = set(normalize_terms(config.get("institutional_names", INSTITUTIONAL_NAMES)))
        self.business_terms = set(normalize_terms(config.get("business_terms", BUSINESS_TERMS)))
        self.edge_pattern = re.compile(r"^[,\s]+|[,\s]+$")
        self.whitespace_pattern = re.compile(r"\s+")

        logger.info(f"Initialized BusinessEntityFilter with {len(self.complete_exclusions)} exclusions "
                    f"and {len(self.business_terms)} business terms")

    def add_exclusions(self, names: Iterable[str]):
        self.complete_exclusions.update(normalize_terms(list(names)))

    def is_complete_business_entity(self, name: Optional[str]) -> bool:
        """Exact match of the trimmed, upper-cased name against the exclusion list."""
        if not name:
            return False
        return name.strip().upper() in self.complete_exclusions

    def strip_business_terms(self, name: Optional[str]) -> str:
        """
        Drop business qualifier words from a name.

        A word is dropped when its upper-cased form, with or without
        punctuation, is a business term. Leading and trailing commas left
        behind are removed.
        """
        if not name:
            return ""

        kept = []
        for word in name.strip().split():
            upper = word.upper()
            if strip_punctuation(upper) in self.business_terms or upper in self.business_terms:
                continue
            kept.append(word)

        cleaned = self.whitespace_pattern.sub(" ", " ".join(kept))
        return self.edge_pattern.sub("", cleaned).strip()

    def classify_and_clean_name(self, name: Optional[str]) -> Dict[str, Any]:
        """
        Classify a name for matching and return its cleaned form.

        Returns:
            Dict with type (business_entity or individual), cleaned_name,
            original_name and should_exclude_from_matching
        """
        original = name or ""

        if self.is_complete_business_entity(original):
            return {
                "type": BUSINESS_ENTITY,
                "cleaned_name": original,
                "original_name": original,
                "should_exclude_from_matching": True
            }

        cleaned = self.strip_business_terms(original)
        if not cleaned:
            return {
                "type": BUSINESS_ENTITY,
                "cleaned_name": original,
                "original_name": original,
                "should_exclude_from_matching": True
            }

        return {
            "type": INDIVIDUAL,
            "cleaned_name": cleaned,
            "original_name": original,
            "should_exclude_from_matching": False
        }

    def personal_name(self, name: Optional[str]) -> Optional[str]:
        """Cleaned name for personal matching, or None for an excluded name."""
        result = self.classify_and_clean_name(name)
        if result["should_exclude_from_matching"]:
            return None
        return normalize_key(result["cleaned_name"])
