"""Core repository contracts."""

from modules.core.repositories.interfaces import IRepository, Queryable

__all__ = ["IRepository", "Queryable"]
