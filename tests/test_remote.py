# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# tests/test_remote.py

from urllib.parse import parse_qs

import httpx
import pytest

from vaultsync.clients.remote import STATUS_PATH, TRANSFER_PATH, RemotePeer, RemotePeerClient
from vaultsync.config import RemoteConfig

PEER = RemotePeer(name="office", url="https://office.example.org/", api_key="k1", database="main")

RUNNING = {
    "ok": True,
    "data": {
        "status": {
            "state": "running",
            "stage": "images",
            "message": "Copying",
            "total": 10,
            "processed": 4,
            "started_at": "2026-10-16T10:00:00+00:00",
            "updated_at": "2026-10-16T10:01:00+00:00",
        }
    },
}


def client_for(handler):
    return RemotePeerClient(timeout=1.0, transport=httpx.MockTransport(handler))


class TestFetchStatus:
    """Status polling and envelope validation."""

    def test_ok_envelope(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("X-API-Key")
            return httpx.Response(200, json=RUNNING)

        record = client_for(handler).fetch_status(PEER)

        assert seen["url"] == "https://office.example.org" + STATUS_PATH
        assert seen["key"] == "k1"
        assert record["status"] == "ok"
        assert record["name"] == "office"
        assert record["database"] == "main"
        assert record["data"]["state"] == "running"
        assert record["data"]["processed"] == 4

    def test_missing_status_fields_get_defaults(self):
        record = client_for(lambda request: httpx.Response(200, json={"ok": True, "data": {}})).fetch_status(PEER)
        assert record["data"] == {
            "state": "unknown",
            "stage": None,
            "message": "",
            "total": 0,
            "processed": 0,
            "started_at": None,
            "updated_at": None,
        }

    def test_payload_without_data_key(self):
        body = {"ok": True, "status": {"state": "idle"}}
        record = client_for(lambda request: httpx.Response(200, json=body)).fetch_status(PEER)
        assert record["data"]["state"] == "idle"

    @pytest.mark.parametrize("response,error", [
        (httpx.Response(500, text="boom"), "HTTP 500"),
        (httpx.Response(200, text="<html>"), "Invalid JSON response"),
        (httpx.Response(200, json={"data": {}}), "Malformed response envelope"),
        (httpx.Response(200, json={"ok": "yes"}), "Malformed response envelope"),
        (httpx.Response(200, json=[1, 2]), "Malformed response envelope"),
        (httpx.Response(200, json={"ok": False, "error": "Unauthorized"}), "Unauthorized"),
        (httpx.Response(200, json={"ok": False}), "Unknown error"),
    ])
    def test_failures_become_error_records(self, response, error):
        record = client_for(lambda request: response).fetch_status(PEER)
        assert record["status"] == "error"
        assert record["error"] == error
        assert "data" not in record

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        record = client_for(handler).fetch_status(PEER)
        assert record["status"] == "error"
        assert "refused" in record["error"]

    def test_missing_url(self):
        record = client_for(lambda request: httpx.Response(200, json=RUNNING)).fetch_status(
            RemotePeer(name="nowhere", url="")
        )
        assert record["error"] == "URL not configured"

    def test_no_key_no_header(self):
        seen = {}

        def handler(request):
            seen["key"] = request.headers.get("X-API-Key")
            return httpx.Response(200, json=RUNNING)

        client_for(handler).fetch_status(RemotePeer(name="open", url="https://open.example.org"))
        assert seen["key"] is None

    def test_one_failing_peer_does_not_hide_others(self):
        def handler(request):
            if request.url.host == "down.example.org":
                return httpx.Response(503)
            return httpx.Response(200, json=RUNNING)

        records = client_for(handler).fetch_all_status([
            RemotePeer(name="down", url="https://down.example.org"),
            PEER,
        ])
        assert [record["status"] for record in records] == ["error", "ok"]


class TestRequestTransfer:
    """Transfer requests."""

    def test_posts_form_fields(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"ok": True, "data": {"transferred": 1}})

        response = client_for(handler).request_transfer(PEER, "single_image", image_id=7)

        assert response.ok
        assert response.data == {"transferred": 1}
        assert seen["method"] == "POST"
        assert seen["path"] == TRANSFER_PATH
        assert seen["form"] == {"transfer_type": ["single_image"], "image_id": ["7"]}

    def test_refused_transfer(self):
        body = {"ok": False, "error": "Invalid API key"}
        response = client_for(lambda request: httpx.Response(200, json=body)).request_transfer(PEER)
        assert not response.ok
        assert response.error == "Invalid API key"
        assert response.status_code == 200


class TestFromConfig:
    """Peers and client settings from configuration."""

    def test_peers_and_settings(self):
        remote = RemoteConfig.model_validate({
            "enabled": True,
            "timeout": 2.5,
            "allow_insecure": True,
            "servers": [{"name": "a", "url": "https://a.example.org", "api_key": "x"}],
        })
        client = RemotePeerClient.from_config(remote)
        assert client.timeout == 2.5
        assert client.verify is False
        assert RemotePeerClient.peers(remote) == [RemotePeer("a", "https://a.example.org", "x", "")]
