"""Query execution and result formatting."""

from .query import QueryEngine, QueryResult

__all__ = ["QueryEngine", "QueryResult"]
