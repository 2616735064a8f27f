"""
Tests for bravia_remote.web (FastAPI REST API).

These tests verify:
- FastAPI application setup
- Device listing and lookup
- Property get/set/toggle and IR codes
- Mapping of protocol errors to HTTP status codes
"""

from __future__ import annotations

import pytest
from conftest import FakeConnection
from httpx import ASGITransport, AsyncClient

from bravia_remote.device.registry import DiscoveryRegistry
from bravia_remote.device.tv import BraviaTv
from bravia_remote.protocol.errors import TransportError
from bravia_remote.protocol.ssdp import SEARCH_SERVICE
from bravia_remote.web.server import WebServer

DEVICE_ID = "12345678-abcd-ef01-2345-6789abcdef01"
OK = "0" * 16

# =============================================================================
# Fixtures
# =============================================================================


class UnreachableConnection(FakeConnection):
    """Connection whose television never answers the phone."""

    async def open(self) -> None:
        raise TransportError("Could not connect")

    async def send(self, data: bytes) -> None:
        await self.open()


@pytest.fixture
def tv_connection() -> FakeConnection:
    """Connection answering the commands used in these tests."""
    return FakeConnection(
        answers={
            "VOLU": "0000000000000025",
            "CHNN": "00000012.3000000",
            "ISRC": "dvbt############",
            "TPOW": OK,
            "IRCC": OK,
        }
    )


@pytest.fixture
async def registry(tv_connection: FakeConnection) -> DiscoveryRegistry:
    """Registry holding one discovered television."""

    def make_device(host: str, device_id: str) -> BraviaTv:
        return BraviaTv(host, device_id, connection=tv_connection)

    registry = DiscoveryRegistry(device_factory=make_device)
    await registry.handle_response(
        {"ST": SEARCH_SERVICE, "USN": f"uuid:{DEVICE_ID}::{SEARCH_SERVICE}"},
        ("192.168.1.20", 1900),
    )
    return registry


@pytest.fixture
def web_server(registry: DiscoveryRegistry) -> WebServer:
    return WebServer(registry)


@pytest.fixture
async def client(web_server: WebServer) -> AsyncClient:
    transport = ASGITransport(app=web_server.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _property_url(name: str, device_id: str = DEVICE_ID) -> str:
    return f"/api/devices/{device_id}/properties/{name}"


# =============================================================================
# Server and device endpoints
# =============================================================================


class TestServerEndpoints:
    """Tests for /health and /api/status."""

    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "server": "bravia-remote"}

    async def test_status(self, client: AsyncClient) -> None:
        response = await client.get("/api/status")
        assert response.status_code == 200
        data = response.json()
        assert data["server"] == "bravia-remote"
        assert data["devices_known"] == 1
        assert data["discovering"] is False


class TestDeviceEndpoints:
    """Tests for /api/devices."""

    async def test_list_devices(self, client: AsyncClient) -> None:
        response = await client.get("/api/devices")
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["devices"][0]["id"] == DEVICE_ID
        assert data["devices"][0]["host"] == "192.168.1.20"
        assert data["devices"][0]["state"] == "idle"

    async def test_get_device(self, client: AsyncClient) -> None:
        response = await client.get(f"/api/devices/{DEVICE_ID}")
        assert response.status_code == 200
        properties = response.json()["properties"]
        assert properties["volume"] == ["get", "set"]
        assert properties["is_on"] == ["get", "set", "toggle"]
        assert properties["send_ir_code"] == ["invoke"]

    async def test_unknown_device(self, client: AsyncClient) -> None:
        response = await client.get("/api/devices/nope")
        assert response.status_code == 404

        response = await client.get(_property_url("volume", device_id="nope"))
        assert response.status_code == 404


# =============================================================================
# Property endpoints
# =============================================================================


class TestProperties:
    """Tests for reading, changing and toggling properties."""

    async def test_get_volume(self, client: AsyncClient) -> None:
        response = await client.get(_property_url("volume"))
        assert response.status_code == 200
        assert response.json() == {"name": "volume", "value": 25}

    async def test_get_channel(self, client: AsyncClient) -> None:
        response = await client.get(_property_url("channel"))
        assert response.status_code == 200
        assert response.json()["value"] == {"channel": 12, "subchannel": 3}

    async def test_get_enum_value(self, client: AsyncClient) -> None:
        response = await client.get(_property_url("input_source"))
        assert response.json()["value"] == "dvbt"

    async def test_set_volume(self, client: AsyncClient, tv_connection: FakeConnection) -> None:
        tv_connection.answers["VOLU"] = OK

        response = await client.put(_property_url("volume"), json={"value": 20})
        assert response.status_code == 200
        assert response.json() == {"name": "volume", "value": 20}
        assert tv_connection.sent[-1] == b"*SCVOLU0000000000000020\n"

    async def test_set_invalid_value(self, client: AsyncClient) -> None:
        response = await client.put(_property_url("volume"), json={"value": -1})
        assert response.status_code == 400

    async def test_set_without_value(self, client: AsyncClient) -> None:
        response = await client.put(_property_url("volume"), json={})
        assert response.status_code == 400

    async def test_set_readonly(self, client: AsyncClient) -> None:
        response = await client.put(_property_url("mac_address"), json={"value": "x"})
        assert response.status_code == 405

    async def test_get_toggle_only(self, client: AsyncClient) -> None:
        response = await client.get(_property_url("pip_position"))
        assert response.status_code == 405

    async def test_unknown_property(self, client: AsyncClient) -> None:
        response = await client.get(_property_url("brightness"))
        assert response.status_code == 404

    async def test_toggle(self, client: AsyncClient, tv_connection: FakeConnection) -> None:
        response = await client.post(_property_url("is_on") + "/toggle")
        assert response.status_code == 200
        assert tv_connection.sent[-1] == b"*SCTPOW################\n"

    async def test_toggle_unsupported(self, client: AsyncClient) -> None:
        response = await client.post(_property_url("volume") + "/toggle")
        assert response.status_code == 405


# =============================================================================
# IR codes and error mapping
# =============================================================================


class TestIrCode:
    """Tests for POST /api/devices/{id}/ircode."""

    async def test_send(self, client: AsyncClient, tv_connection: FakeConnection) -> None:
        response = await client.post(f"/api/devices/{DEVICE_ID}/ircode", json={"code": "home"})
        assert response.status_code == 200
        assert response.json() == {"code": "home", "sent": True}
        assert tv_connection.sent[-1] == b"*SCIRCC0000000000000006\n"

    async def test_send_documented_example(self, client: AsyncClient) -> None:
        response = await client.post(f"/api/devices/{DEVICE_ID}/ircode", json={"code": "volume_up"})
        assert response.status_code == 200
        assert response.json() == {"code": "volume_up", "sent": True}

    async def test_unknown_code(self, client: AsyncClient) -> None:
        response = await client.post(f"/api/devices/{DEVICE_ID}/ircode", json={"code": "nope"})
        assert response.status_code == 400

    async def test_missing_code(self, client: AsyncClient) -> None:
        response = await client.post(f"/api/devices/{DEVICE_ID}/ircode", json={})
        assert response.status_code == 400


class TestErrorMapping:
    """Protocol errors surface as HTTP status codes."""

    async def test_no_such_thing(self, client: AsyncClient, tv_connection: FakeConnection) -> None:
        tv_connection.answers["CHNN"] = "N" * 16
        response = await client.get(_property_url("channel"))
        assert response.status_code == 404

    async def test_generic_failure(self, client: AsyncClient, tv_connection: FakeConnection) -> None:
        tv_connection.answers["VOLU"] = "F" * 16
        response = await client.get(_property_url("volume"))
        assert response.status_code == 502

    async def test_malformed_answer(self, client: AsyncClient, tv_connection: FakeConnection) -> None:
        tv_connection.answers["VOLU"] = "00000000000000xx"
        response = await client.get(_property_url("volume"))
        assert response.status_code == 502

    async def test_disconnected_device(self, client: AsyncClient, registry: DiscoveryRegistry) -> None:
        tv = registry.get_device_by_id(DEVICE_ID)
        assert tv is not None
        await tv.disconnect()

        response = await client.get(_property_url("volume"))
        assert response.status_code == 409

    async def test_unreachable_device(self, registry: DiscoveryRegistry) -> None:
        def make_device(host: str, device_id: str) -> BraviaTv:
            return BraviaTv(host, device_id, connection=UnreachableConnection())

        registry._device_factory = make_device
        await registry.handle_response(
            {"ST": SEARCH_SERVICE, "USN": f"uuid:offline::{SEARCH_SERVICE}"},
            ("192.168.1.99", 1900),
        )

        transport = ASGITransport(app=WebServer(registry).app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get(_property_url("volume", device_id="offline"))
        assert response.status_code == 503
