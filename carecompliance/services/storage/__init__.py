"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory backend serves tests
and callers that already hold the rows.
"""

from carecompliance.services.storage.interface import (
    AllocationRepositoryInterface,
    AuditStorageInterface,
    ConnectionError,
    NotFoundError,
    StorageError,
)
from carecompliance.services.storage.memory import (
    InMemoryAllocationRepository,
    InMemoryAuditStorage,
)
from carecompliance.services.storage.google_sheets import (
    GoogleSheetsAllocationRepository,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
)

__all__ = [
    # Interfaces
    "AllocationRepositoryInterface",
    "AuditStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAllocationRepository",
    "InMemoryAuditStorage",
    # Google Sheets implementation
    "GoogleSheetsAllocationRepository",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
]
