"""Adapters layer - storage backends behind the AbstractDatabase contract.

Following Cosmic Python Chapter 2: the service layer talks to
AbstractDatabase; MongoDatabase and InMemoryDatabase implement it.
"""

from .database import AbstractDatabase
from .memory_database import InMemoryClient, InMemoryCollection, InMemoryDatabase
from .mongo_database import MongoDatabase


__all__ = [
    "AbstractDatabase",
    "InMemoryClient",
    "InMemoryCollection",
    "InMemoryDatabase",
    "MongoDatabase",
]
