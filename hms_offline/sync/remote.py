from __future__ import annotations

import logging
from typing import Any, Protocol

from ..errors import NetworkError, RemoteRejected, UnknownOperationType, UnknownStore
from ..store.types import OP_CREATE, OP_DELETE, OP_UPDATE, SyncOperation
from . import http_client

logger = logging.getLogger(__name__)

STORE_TO_API_TYPE = {
    "patients": "patient",
    "vitals": "vital",
    "consultations": "consultation",
    "appointments": "appointment",
    "labRequests": "labRequest",
    "labResults": "labResult",
    "prescriptions": "prescription",
    "queueEntries": "queueEntry",
    "admissions": "admission",
    "announcements": "announcement",
    "voiceNotes": "voiceNote",
    "medicalCertificates": "medicalCertificate",
    "referralLetters": "referralLetter",
    "dischargeSummaries": "dischargeSummary",
    "drugs": "drug",
    "rosters": "roster",
}


class Remote(Protocol):
    def apply(self, operation: SyncOperation) -> None: ...

    def is_reachable(self) -> bool: ...


def api_type_for(store: str) -> str:
    api_type = STORE_TO_API_TYPE.get(store)
    if api_type is None:
        raise UnknownStore(store)
    return api_type


def _error_detail(status: int, payload: dict[str, Any] | None) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str) and error.strip():
            return error.strip()
    return f"HTTP {status}"


class RemoteStore:
    """Record-mutation client for the clinic server's generic data endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        data_path: str = "/api/data",
        health_path: str = "/api/health",
        timeout_s: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.base_url = http_client.build_base_url(base_url)
        if not self.base_url:
            raise ValueError("remote url is required")
        self.data_path = data_path
        self.health_path = health_path
        self.timeout_s = timeout_s
        self.headers = dict(headers or {})

    def _send(
        self,
        method: str,
        *,
        body: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = http_client.join_url(self.base_url, self.data_path, query)
        status, payload = http_client.request_json(
            method, url, headers=self.headers, body=body, timeout_s=self.timeout_s
        )
        if 200 <= status < 300 and isinstance(payload, dict) and payload.get("success") is True:
            return payload
        raise RemoteRejected(_error_detail(status, payload), status=status)

    def create(self, store: str, data: dict[str, Any] | None) -> dict[str, Any]:
        return self._send("POST", body={"type": api_type_for(store), "data": data})

    def update(self, store: str, entity_id: str, data: dict[str, Any] | None) -> dict[str, Any]:
        return self._send(
            "PUT", body={"type": api_type_for(store), "id": entity_id, "data": data}
        )

    def delete(self, store: str, entity_id: str) -> dict[str, Any]:
        return self._send("DELETE", query={"type": api_type_for(store), "id": entity_id})

    def apply(self, operation: SyncOperation) -> None:
        if operation.type == OP_CREATE:
            self.create(operation.store, operation.data)
        elif operation.type == OP_UPDATE:
            self.update(operation.store, operation.entity_id, operation.data)
        elif operation.type == OP_DELETE:
            self.delete(operation.store, operation.entity_id)
        else:
            raise UnknownOperationType(operation.type)

    def is_reachable(self) -> bool:
        url = http_client.join_url(self.base_url, self.health_path)
        try:
            status, _payload = http_client.request_json(
                "GET",
                url,
                headers={**self.headers, "Cache-Control": "no-cache"},
                timeout_s=self.timeout_s,
            )
        except NetworkError as exc:
            logger.debug("health probe failed: %s", exc)
            return False
        return status == 200
