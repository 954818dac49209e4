"""
Owner-name classification for OwnerMatch.

Turns a raw owner name plus its raw address fields into exactly one typed
entity, or raises ClassificationFailure. Batch classification collects
failures into a review report instead of stopping.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from ..address.parser import AddressParser
from ..compare.base import VISION_APPRAISAL
from ..compare.similarity import resolve_name_weights
from ..config import BUSINESS_TERMS, INSTITUTIONAL_NAMES, get_section, normalize_terms
from ..entities.entity import Entity, EntityType, Individual, create_entity
from ..entities.household import HouseholdInformation
from ..entities.names import IndividualName
from ..errors import ClassificationFailure
from .rules import (
    CASCADE, MASTER_LIST_RULE, CascadeRule, Classification, RuleContext, master_list_classification
)
from .signatures import NameSignature, standardize_owner_name

logger = logging.getLogger(__name__)

FAILURE_COLUMNS = ["index", "location_identifier", "raw_name", "reason", "rule"]


class NameClassifier:
    """
    Classifies owner names with the ordered rule cascade.

    Args:
        config: ``classification`` configuration section
        address_parser: Parser used to build contact info from raw address fields
        rules: Cascade to evaluate instead of the default one
        name_weights: Blend weights given to every individual name built
    """

    def __init__(self, config: Optional[Dict] = None, address_parser=None,
                 rules: Optional[List[CascadeRule]] = None,
                 name_weights: Optional[Dict[str, float]] = None):
        self.config = config or {}
        self.business_terms = frozenset(normalize_terms(self.config.get("business_terms", BUSINESS_TERMS)))
        self.legal_terms = frozenset(normalize_terms(self.config.get("legal_terms", ["TRUST", "ESTATE", "LLC"])))
        self.institutional_names = frozenset(
            normalize_terms(self.config.get("institutional_names", INSTITUTIONAL_NAMES)))
        self.address_parser = address_parser
        self.rules = list(rules) if rules is not None else CASCADE
        self.name_weights = dict(name_weights) if name_weights else None

        logger.info(f"Initialized NameClassifier with {len(self.rules)} rules")

    def signature(self, raw_name: Optional[str]) -> NameSignature:
        return NameSignature(standardize_owner_name(raw_name), self.business_terms)

    def detect_rule(self, raw_name: Optional[str]) -> Optional[str]:
        """Id of the rule that classifies a name, or None when no rule applies."""
        name = standardize_owner_name(raw_name)
        if not name:
            return None
        if name in self.institutional_names:
            return MASTER_LIST_RULE
        rule = self._first_rule(NameSignature(name, self.business_terms))
        return rule.rule_id if rule is not None else None

    def matching_rules(self, raw_name: Optional[str]) -> List[str]:
        """Ids of every specific (non-fallback) rule whose predicate holds for a name."""
        signature = self.signature(raw_name)
        if not signature.words:
            return []
        return [rule.rule_id for rule in self.rules if not rule.fallback and rule.matches(signature)]

    def _first_rule(self, signature: NameSignature) -> Optional[CascadeRule]:
        for rule in self.rules:
            if rule.matches(signature):
                return rule
        return None

    def classify_name(self, raw_name: Optional[str], source: Optional[str] = None,
                      index: Optional[int] = None, identifier: Optional[str] = None) -> Classification:
        """
        Run the cascade on a name alone.

        Raises:
            ClassificationFailure: Empty name, a rule that requires review,
                or no rule matched
        """
        name = standardize_owner_name(raw_name)
        if not name:
            raise ClassificationFailure(raw_name, "empty owner name")

        context = RuleContext(str(raw_name), self.legal_terms, source, index, identifier)
        signature = NameSignature(name, self.business_terms)

        if name in self.institutional_names:
            return master_list_classification(signature, context)

        rule = self._first_rule(signature)
        if rule is None:
            raise ClassificationFailure(raw_name, "no classification rule matched")

        logger.debug(f"'{name}' matched rule {rule.rule_id}")
        return self._weighted(rule.build(signature, context))

    def _weighted(self, classification: Classification) -> Classification:
        if self.name_weights is None:
            return classification
        for name in [classification.name] + classification.member_names:
            if isinstance(name, IndividualName):
                name.similarity_weights = self.name_weights
        return classification

    def classify(self, raw_name: Optional[str], raw_address_fields: Optional[Dict[str, Any]] = None,
                 location_identifier: Optional[str] = None, source: str = VISION_APPRAISAL,
                 account_number: Optional[str] = None, index: Optional[int] = None,
                 other_info: Optional[HouseholdInformation] = None) -> Entity:
        """
        Classify an owner name and build the typed entity.

        Args:
            raw_name: Owner name as exported
            raw_address_fields: Raw address, email and phone fields
            location_identifier: Fire number, PID or account key
            source: Record source
            account_number: Donor account number
            index: Record position
            other_info: Household membership information

        Returns:
            Individual, Household, Business or LegalConstruct entity

        Raises:
            ClassificationFailure: The name cannot be classified
        """
        identifier = account_number or location_identifier
        classification = self.classify_name(raw_name, source, index, identifier)

        contact_info = None
        if raw_address_fields and self.address_parser is not None:
            contact_info = self.address_parser.parse_contact_info(raw_address_fields, source, index, identifier)

        entity = create_entity(
            classification.entity_type,
            location_identifier=location_identifier,
            name=classification.name,
            contact_info=contact_info,
            account_number=account_number,
            source=source,
            other_info=other_info,
            raw_name=raw_name,
            rule=classification.rule
        )

        if classification.entity_type == EntityType.HOUSEHOLD:
            for member_name in classification.member_names:
                entity.add_member(Individual(
                    location_identifier=location_identifier,
                    name=member_name,
                    source=source,
                    raw_name=member_name.complete_name,
                    rule=classification.rule
                ))

        return entity

    def classify_batch(self, records: Iterable[Dict[str, Any]],
                       source: str = VISION_APPRAISAL) -> Tuple[List[Entity], pd.DataFrame]:
        """
        Classify many records, collecting failures instead of raising.

        Each record is a dict with ``raw_name`` and optionally
        ``location_identifier``, ``account_number``, ``address_fields`` and
        ``other_info``.

        Returns:
            Tuple of (entities, failure report DataFrame)
        """
        entities = []
        failures = []

        for position, record in enumerate(records):
            try:
                entity = self.classify(
                    record.get("raw_name"),
                    record.get("address_fields"),
                    location_identifier=record.get("location_identifier"),
                    source=record.get("source", source),
                    account_number=record.get("account_number"),
                    index=record.get("index", position),
                    other_info=record.get("other_info")
                )
                entities.append(entity)
            except ClassificationFailure as e:
                logger.warning(f"Record {position}: {e}")
                failures.append(dict(e.to_dict(), index=record.get("index", position),
                                     location_identifier=record.get("location_identifier")))

        report = pd.DataFrame(failures, columns=FAILURE_COLUMNS)
        logger.info(f"Classified {len(entities)} records, {len(failures)} failures")
        return entities, report

    def rule_summary(self, entities: Iterable[Entity]) -> pd.DataFrame:
        """Count of classified entities per rule and entity type."""
        rows = [{"rule": e.rule, "entity_type": e.entity_type.value} for e in entities]
        df = pd.DataFrame(rows, columns=["rule", "entity_type"])
        if df.empty:
            return pd.DataFrame(columns=["rule", "entity_type", "count"])
        return df.groupby(["rule", "entity_type"]).size().reset_index(name="count").sort_values(
            "count", ascending=False).reset_index(drop=True)


def classify(raw_name: Optional[str], raw_address_fields: Optional[Dict[str, Any]] = None,
             config: Optional[Dict] = None, **kwargs) -> Entity:
    """
    Convenience function to classify one owner name.

    Args:
        raw_name: Owner name as exported
        raw_address_fields: Raw address, email and phone fields
        config: Full OwnerMatch configuration (defaults when omitted)
        **kwargs: Passed through to ``NameClassifier.classify``

    Returns:
        Typed entity

    Raises:
        ClassificationFailure: The name cannot be classified
    """
    config = config or {}
    parser = AddressParser(get_section(config, "address"))
    weights = resolve_name_weights(get_section(config, "comparison").get("name_similarity_weights"))
    classifier = NameClassifier(get_section(config, "classification"), parser, name_weights=weights)
    return classifier.classify(raw_name, raw_address_fields, **kwargs)
