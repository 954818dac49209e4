"""
In-memory batch reconciliation over pandas frames.
"""
