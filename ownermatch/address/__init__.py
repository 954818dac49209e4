"""
Address parsing and canonical street alias resolution.
"""
