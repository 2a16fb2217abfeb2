from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal, TypedDict

OP_CREATE = "CREATE"
OP_UPDATE = "UPDATE"
OP_DELETE = "DELETE"
OPERATION_TYPES = frozenset({OP_CREATE, OP_UPDATE, OP_DELETE})

MetadataStatus = Literal["success", "partial", "failed"]


@dataclass
class SyncOperation:
    id: str
    type: str
    store: str
    entity_id: str
    data: dict[str, Any] | None
    timestamp: int
    retry_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SyncMetadata(TypedDict):
    id: str
    last_sync_time: int
    status: MetadataStatus
    error_count: int
