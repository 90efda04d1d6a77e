"""Database connection module for the review service."""

from src.core.database.async_cassandra import AsyncCassandraConnection


__all__ = ["AsyncCassandraConnection"]
