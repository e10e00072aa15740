"""
Audit Storage Package

Provides the abstract audit storage interface and an in-memory backend.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    StorageError,
)
from src.services.storage.memory import InMemoryAuditStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    # Exceptions
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
]
