"""
Limiter services.
"""
