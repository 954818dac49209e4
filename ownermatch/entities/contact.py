"""
Structured addresses and contact bundles.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from ..compare.base import (
    AttributedTerm, Comparable, ComparisonDetail, attributed, compare_values, weighted_similarity
)
from ..compare.similarity import exact_similarity, levenshtein_similarity, normalize_key

logger = logging.getLogger(__name__)

PO_BOX_PATTERN = re.compile(r"^(P\.?\s*O\.?\s*B(OX)?\.?|POST\s+OFFICE\s+BOX|POBOX|BOX)$", re.IGNORECASE)

ADDRESS_FIELDS = [
    "street_number", "street_name", "street_type", "secondary_unit_type",
    "secondary_unit_number", "city", "state", "zip_code"
]


class Address(Comparable):
    """
    A parsed postal address.

    ``is_local`` marks an address on the canonical street network and
    ``local_match_method`` records which check established it. When the
    street was resolved against the canonical street database,
    ``street_key`` holds the primary term and ``street_entry`` the entry
    snapshot used for alias scoring.
    """

    comparison_weights = {
        "street_number": 0.3,
        "street_name": 0.4,
        "secondary_unit_number": 0.3,
        "city": 0.1,
        "state": 0.05,
        "zip_code": 0.15
    }

    def __init__(self, street_number=None, street_name=None, street_type=None,
                 secondary_unit_type=None, secondary_unit_number=None,
                 city=None, state=None, zip_code=None,
                 source: Optional[str] = None, index: Optional[int] = None,
                 identifier: Optional[str] = None, field_name: Optional[str] = None,
                 original_address: Optional[str] = None):
        values = {
            "street_number": street_number,
            "street_name": street_name,
            "street_type": street_type,
            "secondary_unit_type": secondary_unit_type,
            "secondary_unit_number": secondary_unit_number,
            "city": city,
            "state": state,
            "zip_code": zip_code
        }
        for key, value in values.items():
            setattr(self, key, attributed(value, source, index, identifier, field_name or key))

        self.original_address = original_address
        self.is_local = False
        self.local_match_method: Optional[str] = None
        self.street_key: Optional[str] = None
        self.street_entry = None

    @property
    def is_po_box(self) -> bool:
        if self.secondary_unit_type is not None and PO_BOX_PATTERN.match(str(self.secondary_unit_type).strip()):
            return True
        if self.street_name is not None and re.match(r"^P\.?\s*O\.?\s*BOX\b", str(self.street_name), re.IGNORECASE):
            return True
        return False

    def mark_local(self, method: str, street_key: Optional[str] = None, street_entry=None):
        self.is_local = True
        self.local_match_method = method
        if street_key:
            self.street_key = street_key
            self.street_entry = street_entry

    def comparison_components(self) -> Dict[str, Any]:
        return {key: getattr(self, key) for key in ADDRESS_FIELDS}

    def comparison_text(self) -> Optional[str]:
        street = " ".join(str(getattr(self, k)) for k in ["street_number", "street_name", "street_type"]
                          if getattr(self, k) is not None)
        unit = " ".join(str(getattr(self, k)) for k in ["secondary_unit_type", "secondary_unit_number"]
                        if getattr(self, k) is not None)
        tail = " ".join(str(getattr(self, k)) for k in ["city", "state", "zip_code"]
                        if getattr(self, k) is not None)
        text = ", ".join(part for part in [street, unit, tail] if part)
        return text or None

    def compare_component(self, name: str, mine: AttributedTerm, theirs: AttributedTerm) -> float:
        if name in ("state", "street_number", "secondary_unit_number"):
            return exact_similarity(mine, theirs)
        if name == "zip_code":
            return exact_similarity(str(mine)[:5], str(theirs)[:5])
        return compare_values(mine, theirs)

    def _compare_same(self, other: "Address") -> ComparisonDetail:
        def scorer(name, mine, theirs):
            if name == "street_name":
                return self.compare_street_names(other)
            return self.compare_component(name, mine, theirs)

        return weighted_similarity(self, other, self.comparison_weights, scorer)

    def compare_street_names(self, peer: "Address") -> float:
        """
        Score street names, using canonical street entries when resolved.

        Identical street strings always match. Two addresses resolved to the
        same canonical street match exactly unless either is written as a
        synonym; otherwise the alias address-match score is used, which
        ignores synonyms.
        """
        mine = str(self.street_name)
        other = str(peer.street_name)
        if normalize_key(mine) == normalize_key(other):
            return 1.0

        if self.street_key and peer.street_key and self.street_key == peer.street_key:
            entry = self.street_entry or peer.street_entry
            if entry is None or not (entry.is_synonym(mine) or entry.is_synonym(other)):
                return 1.0

        scores = []
        if self.street_entry is not None:
            scores.append(self.street_entry.address_match_score(other))
        if peer.street_entry is not None:
            scores.append(peer.street_entry.address_match_score(mine))
        if scores:
            return max(0.0, max(scores))

        return levenshtein_similarity(mine, other)

    def to_dict(self) -> Dict[str, Any]:
        result = {key: (None if getattr(self, key) is None else str(getattr(self, key)))
                  for key in ADDRESS_FIELDS}
        result.update({
            "is_local": self.is_local,
            "local_match_method": self.local_match_method,
            "street_key": self.street_key,
            "original_address": self.original_address
        })
        return result

    def __repr__(self):
        return f"Address({self.comparison_text()!r}, local={self.is_local})"


class ContactInfo(Comparable):
    """
    Addresses, email and phone for one entity.

    When any populated component matches perfectly, that component carries
    90% of the score and the others share the remaining 10%.
    """

    comparison_weights = {
        "primary_address": 0.6,
        "secondary_address": 0.2,
        "email": 0.2,
        "phone": 0.2
    }
    perfect_match_weight = 0.9

    def __init__(self, primary_address: Optional[Address] = None,
                 secondary_addresses: Optional[List[Address]] = None,
                 email: Optional[str] = None, phone: Optional[str] = None,
                 source: Optional[str] = None, index: Optional[int] = None,
                 identifier: Optional[str] = None):
        self.primary_address = primary_address
        self.secondary_addresses: List[Address] = list(secondary_addresses or [])
        self.email = attributed(email.strip().lower() if isinstance(email, str) else email,
                                source, index, identifier, "email")
        self.phone = attributed(phone, source, index, identifier, "phone")

    @property
    def addresses(self) -> List[Address]:
        result = [self.primary_address] if self.primary_address is not None else []
        return result + self.secondary_addresses

    def comparison_components(self) -> Dict[str, Any]:
        return {
            "primary_address": self.primary_address,
            "secondary_address": self.secondary_addresses,
            "email": self.email,
            "phone": self.phone
        }

    def comparison_text(self) -> Optional[str]:
        parts = [a.comparison_text() for a in self.addresses]
        parts += [str(v) for v in (self.email, self.phone) if v is not None]
        text = "; ".join(p for p in parts if p)
        return text or None

    def compare_component(self, name: str, mine: Any, theirs: Any) -> float:
        if name == "secondary_address":
            return max(a.compare_to(b) for a in mine for b in theirs)
        if name in ("email", "phone"):
            return exact_similarity(mine, theirs)
        return compare_values(mine, theirs)

    def _compare_same(self, other: "ContactInfo") -> ComparisonDetail:
        detail = weighted_similarity(self, other, self.comparison_weights)
        if len(detail.components) < 2:
            return detail

        perfect = {k: c for k, c in detail.components.items() if c["similarity"] >= 1.0}
        if not perfect:
            return detail

        rest = {k: c for k, c in detail.components.items() if k not in perfect}
        if not rest:
            return detail

        perfect_total = sum(c["weight"] for c in perfect.values())
        rest_total = sum(c["weight"] for c in rest.values())

        components = {}
        total = 0.0
        for key, component in detail.components.items():
            if key in perfect:
                share = self.perfect_match_weight * component["weight"] / perfect_total
            else:
                share = (1.0 - self.perfect_match_weight) * component["weight"] / rest_total
            contribution = component["similarity"] * share
            components[key] = dict(component, contribution=contribution, effective_weight=share)
            total += contribution

        return ComparisonDetail(max(0.0, min(1.0, total)), components, total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary_address": self.primary_address.to_dict() if self.primary_address else None,
            "secondary_addresses": [a.to_dict() for a in self.secondary_addresses],
            "email": None if self.email is None else str(self.email),
            "phone": None if self.phone is None else str(self.phone)
        }


def address_key(address: Optional[Address]) -> str:
    """Normalized one-line key for de-duplicating addresses."""
    if address is None:
        return ""
    return normalize_key(address.comparison_text())
