"""
Cross-source match selection: entity scoring, best-match selection and
threshold calibration.
"""
