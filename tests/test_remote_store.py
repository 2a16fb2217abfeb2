from __future__ import annotations

import json
import socket
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest

from hms_offline.errors import NetworkError, RemoteRejected, UnknownOperationType, UnknownStore
from hms_offline.store import OP_CREATE, LocalStore, SyncOperation
from hms_offline.sync.engine import SyncCoordinator
from hms_offline.sync.remote import RemoteStore, api_type_for


class _ClinicServer:
    def __init__(self) -> None:
        self.requests: list[dict] = []
        self.healthy = True
        self.reject: dict | None = None
        self.status = 200


def _build_handler(state: _ClinicServer) -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args) -> None:
            return

        def _reply(self, status: int, payload: dict | None) -> None:
            body = json.dumps(payload).encode("utf-8") if payload is not None else b""
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _record(self) -> None:
            length = int(self.headers.get("Content-Length") or 0)
            raw = self.rfile.read(length) if length else b""
            parsed = urlparse(self.path)
            state.requests.append(
                {
                    "method": self.command,
                    "path": parsed.path,
                    "query": {k: v[0] for k, v in parse_qs(parsed.query).items()},
                    "body": json.loads(raw) if raw else None,
                    "cache_control": self.headers.get("Cache-Control"),
                }
            )

        def _handle_data(self) -> None:
            self._record()
            if state.reject is not None:
                self._reply(state.status, state.reject)
                return
            self._reply(200, {"success": True})

        def do_GET(self) -> None:  # noqa: N802
            self._record()
            self._reply(200 if state.healthy else 503, {"status": "ok"})

        do_POST = _handle_data  # noqa: N815
        do_PUT = _handle_data  # noqa: N815
        do_DELETE = _handle_data  # noqa: N815

    return Handler


@pytest.fixture
def clinic() -> Iterator[tuple[_ClinicServer, str]]:
    state = _ClinicServer()
    server = HTTPServer(("127.0.0.1", 0), _build_handler(state))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield state, f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


def _closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


def _op(op_type: str, store: str, entity_id: str, data: dict | None = None) -> SyncOperation:
    return SyncOperation(
        id=f"sync_1_{entity_id}",
        type=op_type,
        store=store,
        entity_id=entity_id,
        data=data,
        timestamp=1,
    )


def test_create_update_delete_wire_format(clinic) -> None:
    state, url = clinic
    remote = RemoteStore(url)

    remote.apply(_op("CREATE", "labRequests", "l1", {"id": "l1", "test": "FBC"}))
    remote.apply(_op("UPDATE", "patients", "p1", {"id": "p1", "phone": "0802"}))
    remote.apply(_op("DELETE", "vitals", "v1"))

    create, update, delete = state.requests
    assert create["method"] == "POST"
    assert create["path"] == "/api/data"
    assert create["body"] == {"type": "labRequest", "data": {"id": "l1", "test": "FBC"}}
    assert update["method"] == "PUT"
    assert update["body"] == {"type": "patient", "id": "p1", "data": {"id": "p1", "phone": "0802"}}
    assert delete["method"] == "DELETE"
    assert delete["query"] == {"type": "vital", "id": "v1"}
    assert delete["body"] is None


def test_rejection_carries_server_error(clinic) -> None:
    state, url = clinic
    state.reject = {"success": False, "error": "Patient with this RUHC code already exists"}
    state.status = 400
    remote = RemoteStore(url)

    with pytest.raises(RemoteRejected) as excinfo:
        remote.create("patients", {"id": "p1"})
    assert excinfo.value.status == 400
    assert "already exists" in str(excinfo.value)


def test_success_status_without_success_flag_is_rejected(clinic) -> None:
    state, url = clinic
    state.reject = {"success": False}
    state.status = 200

    with pytest.raises(RemoteRejected, match="HTTP 200"):
        RemoteStore(url).delete("drugs", "d1")


def test_unknown_operation_and_store(clinic) -> None:
    _state, url = clinic
    remote = RemoteStore(url)
    with pytest.raises(UnknownOperationType):
        remote.apply(_op("PATCH", "patients", "p1", {}))
    with pytest.raises(UnknownStore):
        api_type_for("invoices")


def test_health_probe(clinic) -> None:
    state, url = clinic
    remote = RemoteStore(url)
    assert remote.is_reachable() is True
    assert state.requests[-1]["path"] == "/api/health"
    assert state.requests[-1]["cache_control"] == "no-cache"

    state.healthy = False
    assert remote.is_reachable() is False


def test_unreachable_server() -> None:
    remote = RemoteStore(f"127.0.0.1:{_closed_port()}", timeout_s=2)
    assert remote.is_reachable() is False
    with pytest.raises(NetworkError):
        remote.apply(_op("CREATE", "patients", "p1", {"id": "p1"}))


def test_empty_remote_url_is_rejected() -> None:
    with pytest.raises(ValueError):
        RemoteStore("   ")


def test_coordinator_replays_against_server(clinic, tmp_path: Path) -> None:
    state, url = clinic
    with LocalStore(tmp_path / "offline.sqlite") as store:
        store.enqueue(OP_CREATE, "patients", "p1", {"id": "p1", "ruhcCode": "RUHC-001"})
        store.enqueue(OP_CREATE, "patients", "p2", {"id": "p2", "ruhcCode": "RUHC-002"})
        coordinator = SyncCoordinator(store, RemoteStore(url))

        result = coordinator.process_sync_queue()

        assert (result.processed, result.failed) == (2, 0)
        assert store.pending_count() == 0
    assert [req["body"]["data"]["id"] for req in state.requests] == ["p1", "p2"]
