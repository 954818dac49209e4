"""
OwnerMatch - Property Owner / Donor Reconciliation Engine

Resolves property-owner records and donor records that describe the same
people, households and organizations using rule-based name classification,
street alias resolution and weighted similarity scoring.
"""

__version__ = "1.0.0"
__author__ = "OwnerMatch Team"
