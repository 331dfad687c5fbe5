"""Persistence for the catalog and carts."""

from cartwise.db.backends import InMemoryRepository, Repository, SqlRepository

__all__ = ["Repository", "InMemoryRepository", "SqlRepository"]
