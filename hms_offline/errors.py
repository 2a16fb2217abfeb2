from __future__ import annotations


class HmsOfflineError(Exception):
    pass


class StorageError(HmsOfflineError):
    """A local read or write failed; the data may not be durable."""


class StorageUnavailable(StorageError):
    """The local database cannot be opened at all."""


class UnknownStore(StorageError, ValueError):
    def __init__(self, store: str) -> None:
        super().__init__(f"unknown store: {store}")
        self.store = store


class SyncError(HmsOfflineError):
    pass


class NetworkError(SyncError):
    """No response was received from the remote."""


class RemoteRejected(SyncError):
    def __init__(self, detail: str, *, status: int | None = None) -> None:
        super().__init__(detail)
        self.status = status
        self.detail = detail


class UnknownOperationType(SyncError):
    def __init__(self, op_type: str) -> None:
        super().__init__(f"Unknown operation type: {op_type}")
        self.op_type = op_type


class OperationExceededRetries(SyncError):
    def __init__(self, operation_id: str, retry_count: int) -> None:
        super().__init__(f"operation {operation_id} exceeded max retries ({retry_count})")
        self.operation_id = operation_id
        self.retry_count = retry_count
