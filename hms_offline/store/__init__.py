from __future__ import annotations

from ._store import LocalStore, is_storage_available
from .types import (
    OP_CREATE,
    OP_DELETE,
    OP_UPDATE,
    OPERATION_TYPES,
    MetadataStatus,
    SyncMetadata,
    SyncOperation,
)

__all__ = [
    "OPERATION_TYPES",
    "OP_CREATE",
    "OP_DELETE",
    "OP_UPDATE",
    "LocalStore",
    "MetadataStatus",
    "SyncMetadata",
    "SyncOperation",
    "is_storage_available",
]
