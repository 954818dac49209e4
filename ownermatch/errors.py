"""
Exception hierarchy for OwnerMatch.
"""

from typing import Optional


class OwnerMatchError(Exception):
    """Base class for all OwnerMatch errors."""


class ConfigurationError(OwnerMatchError):
    """Raised when a configuration section cannot be used."""


class ClassificationFailure(OwnerMatchError):
    """
    Raised when an owner name cannot be turned into a typed entity.

    Batch callers catch it per record and surface it in a failure report.
    """

    def __init__(self, raw_name: str, reason: str, rule: Optional[str] = None):
        self.raw_name = raw_name
        self.reason = reason
        self.rule = rule
        super().__init__(f"Cannot classify '{raw_name}': {reason}")

    def to_dict(self) -> dict:
        return {"raw_name": self.raw_name, "reason": self.reason, "rule": self.rule}


class StreetDatabaseError(OwnerMatchError):
    """Base class for canonical street database edit errors."""


class DuplicateAliasError(StreetDatabaseError):
    """Raised when an edit would map a term to a second street entry."""

    def __init__(self, term: str, existing_primary: str):
        self.term = term
        self.existing_primary = existing_primary
        super().__init__(f"This alias already exists: '{term}' belongs to '{existing_primary}'")


class StreetNotFoundError(StreetDatabaseError):
    """Raised when an edit targets a street that is not in the database."""

    def __init__(self, primary: str):
        self.primary = primary
        super().__init__(f"Primary alias not found: '{primary}'")
