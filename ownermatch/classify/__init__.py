"""
Owner-name classification: rule cascade and business entity filter.
"""
