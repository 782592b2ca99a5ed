# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/clients/remote.py

"""HTTP client for remote peers.

Peers answer with a JSON envelope {"ok": bool, "data": {...}} and accept
the shared secret in an X-API-Key header. Every call uses a fixed timeout
and is never retried.
"""

from typing import Any, Dict, List, NamedTuple, Optional

import httpx
from loguru import logger

STATUS_PATH = "/api/sync_status.php"
TRANSFER_PATH = "/api/data_transfer.php"


class RemotePeer(NamedTuple):
    name: str
    url: str
    api_key: str = ""
    database: str = ""


class RemoteResponse(NamedTuple):
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None
    status_code: Optional[int] = None


class RemotePeerClient:
    """Talks to remote peers with a fixed timeout and no retry."""

    def __init__(
        self,
        timeout: float = 5.0,
        verify: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout
        self.verify = verify
        self.transport = transport

    @classmethod
    def from_config(cls, remote) -> "RemotePeerClient":
        return cls(timeout=remote.timeout, verify=not remote.allow_insecure)

    @staticmethod
    def peers(remote) -> List[RemotePeer]:
        return [
            RemotePeer(name=server.name, url=server.url, api_key=server.api_key, database=server.database)
            for server in remote.servers
        ]

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.timeout,
            verify=self.verify,
            transport=self.transport,
            follow_redirects=True,
            max_redirects=3,
        )

    @staticmethod
    def _headers(peer: RemotePeer) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if peer.api_key:
            headers["X-API-Key"] = peer.api_key
        return headers

    @staticmethod
    def _endpoint(peer: RemotePeer, path: str) -> str:
        return peer.url.rstrip("/") + path

    def _send(self, peer: RemotePeer, method: str, path: str, form: Optional[Dict[str, Any]] = None) -> RemoteResponse:
        if not peer.url:
            return RemoteResponse(ok=False, data={}, error="URL not configured")
        try:
            with self._client() as client:
                response = client.request(method, self._endpoint(peer, path), headers=self._headers(peer), data=form)
        except httpx.HTTPError as e:
            logger.warning(f"Remote {peer.name}: {e}")
            return RemoteResponse(ok=False, data={}, error=str(e) or "Connection error")

        if response.status_code != 200:
            return RemoteResponse(ok=False, data={}, error=f"HTTP {response.status_code}", status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError:
            return RemoteResponse(ok=False, data={}, error="Invalid JSON response", status_code=response.status_code)
        if not isinstance(payload, dict) or not isinstance(payload.get("ok"), bool):
            return RemoteResponse(ok=False, data={}, error="Malformed response envelope", status_code=response.status_code)
        if not payload["ok"]:
            return RemoteResponse(
                ok=False,
                data={},
                error=str(payload.get("error") or "Unknown error"),
                status_code=response.status_code,
            )

        data = payload.get("data")
        if data is None:
            data = {key: value for key, value in payload.items() if key != "ok"}
        if not isinstance(data, dict):
            return RemoteResponse(ok=False, data={}, error="Malformed response envelope", status_code=response.status_code)
        return RemoteResponse(ok=True, data=data, status_code=response.status_code)

    def fetch_status(self, peer: RemotePeer) -> Dict[str, Any]:
        """Status record for one peer; failures become status "error"."""
        record: Dict[str, Any] = {"name": peer.name, "url": peer.url, "database": peer.database}
        response = self._send(peer, "GET", STATUS_PATH)
        if not response.ok:
            record.update(status="error", error=response.error)
            return record

        status = response.data.get("status")
        if not isinstance(status, dict):
            status = {}
        record.update(
            status="ok",
            data={
                "state": status.get("state", "unknown"),
                "stage": status.get("stage"),
                "message": status.get("message") or "",
                "total": status.get("total") or 0,
                "processed": status.get("processed") or 0,
                "started_at": status.get("started_at"),
                "updated_at": status.get("updated_at"),
            },
        )
        return record

    def fetch_all_status(self, peers: List[RemotePeer]) -> List[Dict[str, Any]]:
        return [self.fetch_status(peer) for peer in peers]

    def request_transfer(self, peer: RemotePeer, transfer_type: str = "all", **fields: Any) -> RemoteResponse:
        """Ask a peer to run a transfer, e.g. transfer_type="single_image", image_id=7."""
        form = {"transfer_type": transfer_type}
        form.update({key: str(value) for key, value in fields.items()})
        return self._send(peer, "POST", TRANSFER_PATH, form=form)
