"""
Upload staging for the Parser service.
"""
