"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the persistent backend; the in-memory backend serves tests.
"""

from cycletrack.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    CycleStorageInterface,
    NotFoundError,
    RecordNotFoundError,
    StorageError,
    merge_override,
)
from cycletrack.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCycleStorage,
)
from cycletrack.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCycleStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CycleStorageInterface",
    "merge_override",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "RecordNotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryCycleStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsCycleStorage",
]
