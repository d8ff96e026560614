"""Custom exceptions for the mesh inventory collector."""

from enum import Enum
from typing import Optional, Dict, Any


class InventoryException(Exception):
    """Base exception for the inventory collector."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ClientConnectionException(InventoryException):
    """Raised when client connections fail."""

    def __init__(self, client_type: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.client_type = client_type
        super().__init__(f"{client_type} connection failed: {message}", details)


class ClusterAccessException(InventoryException):
    """Raised when a cluster API call fails after retries."""

    def __init__(self, operation: str, message: str, status: Optional[int] = None):
        self.operation = operation
        self.status = status
        super().__init__(f"Cluster call {operation} failed: {message}", {"status": status})

    @property
    def retryable(self) -> bool:
        # client errors other than throttling will not change on retry
        return self.status is None or self.status == 429 or self.status >= 500


class ConfigurationException(InventoryException):
    """Raised when configuration is invalid."""
    pass


class StorageException(InventoryException):
    """Raised when the snapshot document cannot be read or written."""
    pass


class CheckpointMismatchException(StorageException):
    """Raised when a resumed snapshot belongs to a different cluster."""

    def __init__(self, expected: str, found: str):
        self.expected = expected
        self.found = found
        super().__init__(
            f"Checkpoint belongs to cluster {found!r}, current run targets {expected!r}",
            {"expected": expected, "found": found}
        )


class CollectionErrorKind(str, Enum):
    NO_PODS = "no_pods"
    MALFORMED_DATA = "malformed_data"
    CONSTRUCTION_FAILURE = "construction_failure"
    METRICS_UNAVAILABLE = "metrics_unavailable"
    TIMEOUT = "timeout"


class CollectionError(InventoryException):
    """Recoverable failure of a single node or namespace collection.

    The failing unit is left out of the snapshot and the run continues.
    """

    def __init__(self, kind: CollectionErrorKind, unit: str, message: str):
        self.kind = kind
        self.unit = unit
        super().__init__(f"{unit}: {message}", {"kind": kind.value, "unit": unit})
