# cybersuite/utils/__init__.py
"""Shared helpers: TTL cache, rate limiter, cipher-suite parsing."""
