"""
Structured values and typed entities for OwnerMatch.

Names, addresses, contact bundles and household information all implement
the comparison contract; entities compose them with type-specific weights.
"""
