"""Query routing for the business assistant."""

from .router import QueryRouter

__all__ = [
    "QueryRouter",
]
