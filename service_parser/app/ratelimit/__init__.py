"""
Rate limiting package for the Parser service.

Holds the fixed-window limiter that caps parse requests per client
identity until the window resets.
"""
