"""
Typed entities produced by name classification.

Entities are created once and are read-only inputs to matching. The
variant enum plus ``ENTITY_CONSTRUCTORS`` replaces any class-name based
registry: serializers and builders look constructors up by ``EntityType``.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..compare.base import Comparable, ComparisonDetail, weighted_similarity
from .contact import ContactInfo
from .household import HouseholdInformation
from .names import HouseholdName, IndividualName, OrganizationName

logger = logging.getLogger(__name__)


class EntityType(Enum):
    INDIVIDUAL = "Individual"
    HOUSEHOLD = "AggregateHousehold"
    BUSINESS = "Business"
    LEGAL_CONSTRUCT = "LegalConstruct"

    @classmethod
    def parse(cls, value: Any) -> "EntityType":
        """Accept an EntityType, its value or its name in any case."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text.upper() in (member.name, member.value.upper()):
                return member
        aliases = {"HOUSEHOLD": cls.HOUSEHOLD, "LEGALCONSTRUCT": cls.LEGAL_CONSTRUCT}
        key = text.upper().replace("_", "").replace(" ", "")
        if key in aliases:
            return aliases[key]
        raise ValueError(f"Unknown entity type: {value}")


INDIVIDUAL_WEIGHTS = {
    "name": 0.5,
    "contact_info": 0.3,
    "other_info": 0.15
}

HOUSEHOLD_WEIGHTS = {
    "name": 0.4,
    "contact_info": 0.4,
    "other_info": 0.15
}

ORGANIZATION_WEIGHTS = {
    "name": 0.5,
    "contact_info": 0.5
}


def entity_weights(type_a: EntityType, type_b: EntityType) -> Dict[str, float]:
    """
    Weight map for a pair of entity types.

    The map depends only on the unordered pair so that entity comparison
    stays symmetric across types.
    """
    pair = {type_a, type_b}
    if pair == {EntityType.INDIVIDUAL}:
        return INDIVIDUAL_WEIGHTS
    if EntityType.HOUSEHOLD in pair:
        return HOUSEHOLD_WEIGHTS
    return ORGANIZATION_WEIGHTS


class Entity(Comparable):
    """
    A typed record from one source.

    Args:
        location_identifier: Source-specific key (fire number, PID or account key)
        name: Structured name
        contact_info: Addresses, email and phone
        account_number: Donor account number when the source has one
        source: Source identifier
        other_info: Household membership information
    """

    entity_type: EntityType = None

    def __init__(self, location_identifier: Optional[str] = None, name: Optional[Comparable] = None,
                 contact_info: Optional[ContactInfo] = None, account_number: Optional[str] = None,
                 source: Optional[str] = None, other_info: Optional[HouseholdInformation] = None,
                 raw_name: Optional[str] = None, rule: Optional[str] = None):
        self.location_identifier = location_identifier
        self.name = name
        self.contact_info = contact_info
        self.account_number = account_number
        self.source = source
        self.other_info = other_info
        self.raw_name = raw_name
        self.rule = rule

    @property
    def key(self) -> Tuple[Optional[str], str]:
        """Unique key within a source: the account number, else the location identifier."""
        identifier = self.account_number or self.location_identifier
        return self.source, "" if identifier is None else str(identifier)

    @property
    def display_name(self) -> str:
        if self.name is None:
            return self.raw_name or ""
        if isinstance(self.name, IndividualName):
            return self.name.complete_name
        return self.name.comparison_text() or self.raw_name or ""

    def comparison_components(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "contact_info": self.contact_info,
            "other_info": self.other_info
        }

    def comparison_text(self) -> Optional[str]:
        return self.display_name or None

    def accepts(self, other: Any) -> bool:
        return isinstance(other, Entity)

    def _compare_same(self, other: "Entity") -> ComparisonDetail:
        weights = entity_weights(self.entity_type, other.entity_type)
        return weighted_similarity(self, other, weights)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "location_identifier": self.location_identifier,
            "account_number": self.account_number,
            "source": self.source,
            "name": self.name.to_dict() if self.name is not None else None,
            "contact_info": self.contact_info.to_dict() if self.contact_info is not None else None,
            "other_info": self.other_info.to_dict() if self.other_info is not None else None,
            "raw_name": self.raw_name,
            "rule": self.rule
        }

    def __repr__(self):
        return f"{type(self).__name__}({self.display_name!r}, key={self.key})"


class Individual(Entity):
    entity_type = EntityType.INDIVIDUAL

    def __init__(self, *args, household_key: Optional[Tuple[Optional[str], str]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.household_key = household_key


class Household(Entity):
    """
    An aggregate of member individuals.

    Members may carry their own contact info; a member's addresses are not
    assumed to include the household's.
    """

    entity_type = EntityType.HOUSEHOLD

    def __init__(self, *args, members: Optional[List[Individual]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.members: List[Individual] = []
        for member in members or []:
            self.add_member(member)

    def add_member(self, member: Individual):
        member.household_key = self.key
        self.members.append(member)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["members"] = [m.to_dict() for m in self.members]
        return result


class Business(Entity):
    entity_type = EntityType.BUSINESS


class LegalConstruct(Entity):
    entity_type = EntityType.LEGAL_CONSTRUCT


ENTITY_CONSTRUCTORS = {
    EntityType.INDIVIDUAL: Individual,
    EntityType.HOUSEHOLD: Household,
    EntityType.BUSINESS: Business,
    EntityType.LEGAL_CONSTRUCT: LegalConstruct
}

NAME_TYPES = {
    EntityType.INDIVIDUAL: IndividualName,
    EntityType.HOUSEHOLD: HouseholdName,
    EntityType.BUSINESS: OrganizationName,
    EntityType.LEGAL_CONSTRUCT: OrganizationName
}


def create_entity(entity_type: Any, **kwargs) -> Entity:
    """
    Construct an entity of the given type.

    Args:
        entity_type: EntityType or anything ``EntityType.parse`` accepts
        **kwargs: Entity constructor arguments

    Returns:
        New entity
    """
    return ENTITY_CONSTRUCTORS[EntityType.parse(entity_type)](**kwargs)
