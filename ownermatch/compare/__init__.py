"""
Weighted comparison framework for OwnerMatch.

Defines the similarity contract shared by every structured value and the
string similarity primitives the contract is built on.
"""
