"""Services package."""

from carecompliance.services.storage import (
    AllocationRepositoryInterface,
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAllocationRepository,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAllocationRepository,
    InMemoryAuditStorage,
    NotFoundError,
    StorageError,
)

__all__ = [
    "AllocationRepositoryInterface",
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAllocationRepository",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryAllocationRepository",
    "InMemoryAuditStorage",
    "NotFoundError",
    "StorageError",
]
