from .exceptions import *
from .base_client import BaseClient, ClusterAccessClient
from .obfuscation import IdentityMapper, obfuscate
from .quantity import bytes_to_gib, is_valid_quantity, parse_cpu, parse_memory
from .utils import *

__all__ = [
    "BaseClient",
    "ClusterAccessClient",
    "InventoryException",
    "ClientConnectionException",
    "ClusterAccessException",
    "ConfigurationException",
    "StorageException",
    "CheckpointMismatchException",
    "CollectionError",
    "CollectionErrorKind",
    "IdentityMapper",
    "obfuscate",
    "parse_cpu",
    "parse_memory",
    "bytes_to_gib",
    "is_valid_quantity",
    "retry_with_backoff",
    "setup_logging",
    "default_worker_count",
    "gather_with_concurrency",
    "gather_in_batches",
]
