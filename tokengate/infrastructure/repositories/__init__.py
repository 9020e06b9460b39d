"""
Window store implementations.
"""

from .redis_window_store import RedisWindowStore
from .memory_window_store import InMemoryWindowStore

__all__ = ["RedisWindowStore", "InMemoryWindowStore"]
