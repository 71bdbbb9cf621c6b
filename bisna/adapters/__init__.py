"""
Adapters connecting Bisna to persistence backends.
"""
