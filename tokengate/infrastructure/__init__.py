"""
Infrastructure adapters for the shared window store.
"""
