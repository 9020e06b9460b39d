from .registry import RateLimitRegistry, resolve_overrides, load_overrides_file

__all__ = ["RateLimitRegistry", "resolve_overrides", "load_overrides_file"]
