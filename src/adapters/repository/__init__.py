"""Repository adapters - Database and in-memory implementations."""

from .memory import InMemoryStore, InMemoryUnitOfWork
from .postgres import PostgresUnitOfWork, run_migrations

__all__ = ["InMemoryStore", "InMemoryUnitOfWork", "PostgresUnitOfWork", "run_migrations"]
