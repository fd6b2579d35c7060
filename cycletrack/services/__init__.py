"""Services package."""

from cycletrack.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    CycleStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCycleStorage,
    InMemoryAuditStorage,
    InMemoryCycleStorage,
    NotFoundError,
    RecordNotFoundError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "CycleStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsCycleStorage",
    "InMemoryAuditStorage",
    "InMemoryCycleStorage",
    "NotFoundError",
    "RecordNotFoundError",
    "StorageError",
]
