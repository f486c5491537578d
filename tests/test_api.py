"""Tests for the HTTP surface built by wagateway.main.create_app."""

from __future__ import annotations

import base64

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from wagateway.config.settings import Settings
from wagateway.main import create_app
from wagateway.session import (
    ConfigurationError,
    ConnectionState,
    InMemoryCredentialStore,
    MemorySession,
)

TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}
PDF_BYTES = b"%PDF-1.4 test document"
PDF_B64 = base64.b64encode(PDF_BYTES).decode()


class Gateway:
    """An app wired to MemorySession, plus handles the tests need."""

    def __init__(self, tmp_path, blob: bytes | None = None, **overrides):
        self.settings = Settings(
            _env_file=None,
            API_TOKEN=TOKEN,
            AUTH_DIR=str(tmp_path / "auth"),
            QR_IMAGE_PATH=str(tmp_path / "qr" / "qr-code.png"),
            PRINT_QR_IN_TERMINAL=False,
            LOG_FORMAT="plain",
            **overrides,
        )
        self.sessions: list[MemorySession] = []
        self.credentials = InMemoryCredentialStore(blob)
        self.app = create_app(
            self.settings,
            session_factory=self._factory,
            credentials=self.credentials,
        )
        self.manager = self.app.state.manager

    def _factory(self) -> MemorySession:
        session = MemorySession()
        self.sessions.append(session)
        return session

    @property
    def session(self) -> MemorySession:
        return self.sessions[-1]

    def client(self) -> AsyncClient:
        return AsyncClient(
            transport=ASGITransport(app=self.app),
            base_url="http://test",
            headers=AUTH,
        )


@pytest_asyncio.fixture
async def pairing(tmp_path):
    """Gateway waiting for a QR scan."""
    gw = Gateway(tmp_path)
    await gw.manager.initialize()
    await gw.manager.wait_for_state(ConnectionState.PAIRING_READY, timeout=5)
    yield gw
    await gw.manager.shutdown()


@pytest_asyncio.fixture
async def connected(tmp_path):
    """Gateway with a connected session."""
    gw = Gateway(tmp_path, blob=b"paired", MESSAGE_FOOTER="")
    await gw.manager.initialize()
    await gw.manager.wait_for_state(ConnectionState.CONNECTED, timeout=5)
    yield gw
    await gw.manager.shutdown()


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


class TestCreateApp:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"RECONNECT_FACTOR": 0.5},
            {"RECONNECT_BASE_DELAY": -1.0},
        ],
    )
    def test_bad_reconnect_settings_rejected(self, tmp_path, overrides):
        with pytest.raises(ConfigurationError, match="RECONNECT_"):
            Gateway(tmp_path, **overrides)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    @pytest.mark.asyncio
    async def test_ping_needs_no_token(self, tmp_path):
        gw = Gateway(tmp_path)
        async with AsyncClient(transport=ASGITransport(app=gw.app), base_url="http://test") as client:
            r = await client.get("/api/v1/ping")
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["message"] == "pong"
        assert body["data"]["status"] == "ok"
        assert body["data"]["serviceAlive"] is False

    @pytest.mark.asyncio
    async def test_status_requires_token(self, tmp_path):
        gw = Gateway(tmp_path)
        async with AsyncClient(transport=ASGITransport(app=gw.app), base_url="http://test") as client:
            r = await client.get("/api/v1/status")
        assert r.status_code == 401

    @pytest.mark.asyncio
    async def test_status_while_pairing(self, pairing):
        async with pairing.client() as client:
            r = await client.get("/api/v1/status")
        data = r.json()["data"]
        assert data["isConnected"] is False
        assert data["connectionStatus"] == "qr_ready"
        assert data["qrCodeImageUrl"] == "/api/v1/qr/image"
        assert data["serviceAlive"] is True
        assert data["error"] is None

    @pytest.mark.asyncio
    async def test_status_connected(self, connected):
        async with connected.client() as client:
            r = await client.get("/api/v1/status")
        data = r.json()["data"]
        assert data["isConnected"] is True
        assert data["connectionStatus"] == "connected"
        assert data["qrCodeImageUrl"] is None

    @pytest.mark.asyncio
    async def test_unknown_route(self, tmp_path):
        gw = Gateway(tmp_path)
        async with gw.client() as client:
            r = await client.get("/api/v1/nope")
        assert r.status_code == 404
        assert r.json()["error"] == "Route not found"


# ---------------------------------------------------------------------------
# QR
# ---------------------------------------------------------------------------


class TestQR:
    @pytest.mark.asyncio
    async def test_qr_status(self, pairing):
        async with pairing.client() as client:
            r = await client.get("/api/v1/qr/status")
        data = r.json()["data"]
        assert data["qrAvailable"] is True
        assert data["connectionStatus"] == "qr_ready"
        assert data["qrCodeImageUrl"] == "/api/v1/qr/image"

    @pytest.mark.asyncio
    async def test_qr_image(self, pairing):
        async with pairing.client() as client:
            r = await client.get("/api/v1/qr/image")
        assert r.status_code == 200
        assert r.headers["content-type"] == "image/png"
        assert "no-cache" in r.headers["cache-control"]
        assert r.content.startswith(b"\x89PNG")

    @pytest.mark.asyncio
    async def test_qr_image_unavailable_when_connected(self, connected):
        async with connected.client() as client:
            r = await client.get("/api/v1/qr/image")
        assert r.status_code == 404
        assert r.json()["error"] == "QR Code not available"

    @pytest.mark.asyncio
    async def test_scan_completes_pairing(self, pairing):
        pairing.session.pair()
        await pairing.manager.wait_for_state(ConnectionState.CONNECTED, timeout=5)
        assert await pairing.credentials.exists()
        assert not pairing.manager.get_status().pairing_image_path

        async with pairing.client() as client:
            r = await client.get("/api/v1/qr/status")
        assert r.json()["data"]["qrAvailable"] is False

    @pytest.mark.asyncio
    async def test_logout(self, connected):
        async with connected.client() as client:
            r = await client.post("/api/v1/qr/logout")
            again = await client.post("/api/v1/qr/logout")
        body = r.json()
        assert body["success"] is True
        assert body["data"]["connectionStatus"] == "logged_out"
        assert connected.sessions[0].logged_out is True
        assert await connected.credentials.load() is None

        assert again.json()["success"] is False
        assert again.json()["data"]["message"] == "No active session to logout"

    @pytest.mark.asyncio
    async def test_logout_while_pairing(self, pairing):
        async with pairing.client() as client:
            r = await client.post("/api/v1/qr/logout")
            image = await client.get("/api/v1/qr/image")
        assert r.json()["success"] is True
        assert r.json()["data"]["connectionStatus"] == "logged_out"
        assert pairing.sessions[0].closed is True
        assert image.status_code == 404

    @pytest.mark.asyncio
    async def test_regenerate(self, pairing):
        async with pairing.client() as client:
            r = await client.post("/api/v1/qr/regenerate")
        assert r.json()["success"] is True
        assert r.json()["data"]["message"] == "QR code regeneration initiated"
        assert len(pairing.sessions) == 2
        await pairing.manager.wait_for_state(ConnectionState.PAIRING_READY, timeout=5)

    @pytest.mark.asyncio
    async def test_clear_auth(self, connected):
        async with connected.client() as client:
            r = await client.post("/api/v1/qr/clear-auth")
        assert r.json()["success"] is True
        assert await connected.credentials.load() is None
        assert connected.session.credentials is None
        await connected.manager.wait_for_state(ConnectionState.PAIRING_READY, timeout=5)


# ---------------------------------------------------------------------------
# Text messages
# ---------------------------------------------------------------------------


class TestMessages:
    @pytest.mark.asyncio
    async def test_send_message(self, connected):
        async with connected.client() as client:
            r = await client.post(
                "/api/v1/message",
                json={"phoneNumber": "081234567890", "message": " Hello "},
            )
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["message"] == "Message sent successfully"
        assert body["data"]["status"] == "sent"
        assert body["data"]["message"] == "Hello"
        assert body["data"]["messageId"]
        assert connected.session.sent == [("6281234567890@s.whatsapp.net", {"text": "Hello"})]

    @pytest.mark.asyncio
    async def test_send_group_message(self, connected):
        async with connected.client() as client:
            r = await client.post(
                "/api/v1/message/group",
                json={"groupId": "120363025783457581", "message": "Hi all"},
            )
        assert r.status_code == 200
        assert r.json()["message"] == "Group message sent successfully"
        assert connected.session.sent[0][0] == "120363025783457581@g.us"

    @pytest.mark.asyncio
    async def test_missing_fields(self, connected):
        async with connected.client() as client:
            r = await client.post("/api/v1/message", json={"phoneNumber": "0812"})
        assert r.status_code == 400
        body = r.json()
        assert body["success"] is False
        assert body["error"] == "Missing required fields"
        assert body["message"] == "message is required"
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_both_fields_missing(self, connected):
        async with connected.client() as client:
            r = await client.post("/api/v1/message", json={})
        assert r.json()["message"] == "phoneNumber and message are required"

    @pytest.mark.asyncio
    async def test_not_connected(self, pairing):
        async with pairing.client() as client:
            r = await client.post("/api/v1/message", json={"phoneNumber": "0812", "message": "hi"})
        assert r.status_code == 503
        assert r.json()["error"] == "Service unavailable"

    @pytest.mark.asyncio
    async def test_whitespace_message_rejected(self, connected):
        async with connected.client() as client:
            r = await client.post("/api/v1/message", json={"phoneNumber": "0812", "message": "   "})
        assert r.status_code == 400
        assert r.json()["error"] == "Invalid payload"
        assert connected.session.sent == []

    @pytest.mark.asyncio
    async def test_whitespace_message_rejected_while_disconnected(self, pairing):
        async with pairing.client() as client:
            r = await client.post("/api/v1/message/group", json={"groupId": "123", "message": " "})
        assert r.status_code == 400
        assert r.json()["message"] == "Message must be a non-empty string"

    @pytest.mark.asyncio
    async def test_session_failure(self, connected):
        connected.session._connected = False
        async with connected.client() as client:
            r = await client.post("/api/v1/message", json={"phoneNumber": "0812", "message": "hi"})
        assert r.status_code == 500
        assert r.json()["error"] == "Failed to send message"

    @pytest.mark.asyncio
    async def test_footer_appended(self, tmp_path):
        gw = Gateway(tmp_path, blob=b"paired", MESSAGE_FOOTER="-- sent by gateway")
        await gw.manager.initialize()
        await gw.manager.wait_for_state(ConnectionState.CONNECTED, timeout=5)
        async with gw.client() as client:
            await client.post("/api/v1/message", json={"phoneNumber": "0812", "message": "hi"})
        assert gw.session.sent[0][1] == {"text": "hi\n\n-- sent by gateway"}
        await gw.manager.shutdown()


# ---------------------------------------------------------------------------
# Documents and images
# ---------------------------------------------------------------------------


class TestFiles:
    @pytest.mark.asyncio
    async def test_send_document_data_url(self, connected):
        async with connected.client() as client:
            r = await client.post(
                "/api/v1/document",
                json={
                    "phoneNumber": "0812",
                    "file": f"data:application/pdf;name=invoice.pdf;base64,{PDF_B64}",
                    "caption": "Invoice",
                },
            )
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["filename"] == "invoice.pdf"
        assert data["mimetype"] == "application/pdf"
        assert data["fileSize"] == len(PDF_BYTES)
        address, payload = connected.session.sent[0]
        assert payload == {
            "document": PDF_BYTES,
            "mimetype": "application/pdf",
            "fileName": "invoice.pdf",
            "caption": "Invoice",
        }

    @pytest.mark.asyncio
    async def test_send_document_plain_base64_defaults(self, connected):
        async with connected.client() as client:
            r = await client.post("/api/v1/document", json={"phoneNumber": "0812", "file": PDF_B64})
        data = r.json()["data"]
        assert data["filename"] == "document"
        assert data["mimetype"] == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_send_document_invalid_base64(self, connected):
        async with connected.client() as client:
            r = await client.post("/api/v1/document", json={"phoneNumber": "0812", "file": "%%%"})
        assert r.status_code == 400
        assert r.json()["message"] == "Invalid base64 format"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/api/v1/document", "/api/v1/image"])
    async def test_connection_checked_before_decoding(self, pairing, path):
        async with pairing.client() as client:
            r = await client.post(path, json={"phoneNumber": "0812", "file": "%%%"})
        assert r.status_code == 503
        assert r.json()["error"] == "Service unavailable"

    @pytest.mark.asyncio
    async def test_send_image(self, connected):
        async with connected.client() as client:
            r = await client.post(
                "/api/v1/image",
                json={"phoneNumber": "0812", "file": base64.b64encode(b"\xff\xd8\xff").decode()},
            )
        assert r.status_code == 200
        assert r.json()["message"] == "Image sent successfully"
        assert r.json()["data"]["mimetype"] == "image/jpeg"
        assert "filename" not in r.json()["data"]

    @pytest.mark.asyncio
    async def test_document_upload(self, connected):
        async with connected.client() as client:
            r = await client.post(
                "/api/v1/document/upload",
                data={"phoneNumber": "0812", "caption": "Report"},
                files={"file": ("report.pdf", PDF_BYTES, "application/pdf")},
            )
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["filename"] == "report.pdf"
        assert data["fileSize"] == len(PDF_BYTES)
        assert connected.session.sent[0][1]["fileName"] == "report.pdf"

    @pytest.mark.asyncio
    async def test_upload_disallowed_type(self, connected):
        async with connected.client() as client:
            r = await client.post(
                "/api/v1/document/upload",
                data={"phoneNumber": "0812"},
                files={"file": ("run.sh", b"#!/bin/sh", "application/x-sh")},
            )
        assert r.status_code == 400
        assert "Invalid file type" in r.json()["message"]

    @pytest.mark.asyncio
    async def test_upload_too_large(self, tmp_path):
        gw = Gateway(tmp_path, blob=b"paired", MAX_UPLOAD_BYTES=8)
        await gw.manager.initialize()
        await gw.manager.wait_for_state(ConnectionState.CONNECTED, timeout=5)
        async with gw.client() as client:
            r = await client.post(
                "/api/v1/document/upload",
                data={"phoneNumber": "0812"},
                files={"file": ("big.txt", b"x" * 9, "text/plain")},
            )
        assert r.status_code == 400
        assert "File too large" in r.json()["message"]
        assert gw.session.sent == []
        await gw.manager.shutdown()

    @pytest.mark.asyncio
    async def test_upload_missing_file(self, connected):
        async with connected.client() as client:
            r = await client.post("/api/v1/document/upload", data={"phoneNumber": "0812"})
        assert r.status_code == 400
        assert r.json()["message"] == "file is required"

    @pytest.mark.asyncio
    async def test_image_upload_rejects_non_image(self, connected):
        async with connected.client() as client:
            r = await client.post(
                "/api/v1/image/upload",
                data={"phoneNumber": "0812"},
                files={"file": ("report.pdf", PDF_BYTES, "application/pdf")},
            )
        assert r.status_code == 400
        assert r.json()["message"] == "Uploaded file is not an image"

    @pytest.mark.asyncio
    async def test_image_upload(self, connected):
        async with connected.client() as client:
            r = await client.post(
                "/api/v1/image/upload",
                data={"phoneNumber": "0812", "caption": "pic"},
                files={"file": ("a.png", b"\x89PNG....", "image/png")},
            )
        assert r.status_code == 200
        assert connected.session.sent[0][1] == {
            "image": b"\x89PNG....",
            "mimetype": "image/png",
            "caption": "pic",
        }


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------


class TestUtilities:
    @pytest.mark.asyncio
    async def test_analyze_base64(self, tmp_path):
        gw = Gateway(tmp_path)
        async with gw.client() as client:
            r = await client.post(
                "/api/v1/analyze-base64",
                json={"file": f"data:application/pdf;name=a.pdf;base64,{PDF_B64}"},
            )
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["filename"] == "a.pdf"
        assert data["mimetype"] == "application/pdf"
        assert data["fileSize"] == len(PDF_BYTES)
        assert data["isDataUrl"] is True

    @pytest.mark.asyncio
    async def test_analyze_base64_missing(self, tmp_path):
        gw = Gateway(tmp_path)
        async with gw.client() as client:
            r = await client.post("/api/v1/analyze-base64", json={})
        assert r.status_code == 400

    @pytest.mark.asyncio
    async def test_convert_to_base64(self, tmp_path):
        gw = Gateway(tmp_path)
        async with gw.client() as client:
            r = await client.post(
                "/api/v1/convert-to-base64",
                files={"file": ("notes.txt", b"hello", "text/plain")},
            )
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["fileName"] == "notes.txt"
        assert data["mimeType"] == "text/plain"
        assert base64.b64decode(data["base64"]) == b"hello"
