"""
CSV download resolution for the Parser service.
"""
