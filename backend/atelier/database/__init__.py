"""
Database package: declarative base, models and async connection handling.

Import submodules explicitly when needed to avoid circular dependencies.
"""

__all__ = []
