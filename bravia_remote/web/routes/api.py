"""
REST API Routes for bravia_remote.

Provides REST endpoints for controlling discovered televisions:
- /api/status: Server status
- /api/devices: Known televisions
- /api/devices/{id}/properties/*: Read, change and toggle properties
- /api/devices/{id}/ircode: Send remote-control button presses
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException, Request

from bravia_remote import __version__
from bravia_remote.protocol.commands import Operation
from bravia_remote.protocol.errors import (
    BraviaError,
    DecodingError,
    EncodingError,
    GenericFailure,
    NoSuchThing,
    NotConnected,
    TransportError,
    UnsupportedOperation,
)

if TYPE_CHECKING:
    from bravia_remote.device.registry import DiscoveryRegistry
    from bravia_remote.device.tv import Accessor, BraviaTv

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])

# Reference set during route registration
_registry: DiscoveryRegistry | None = None

# Checked in order, so subclasses come before their bases
ERROR_STATUS: list[tuple[type[BraviaError], int]] = [
    (UnsupportedOperation, 405),
    (EncodingError, 400),
    (NoSuchThing, 404),
    (GenericFailure, 502),
    (DecodingError, 502),
    (NotConnected, 409),
    (TransportError, 503),
]


def register_api_routes(app, registry: DiscoveryRegistry) -> None:
    """
    Register API routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        registry: DiscoveryRegistry holding the known televisions
    """
    global _registry
    _registry = registry
    app.include_router(router)


def status_for_error(error: BraviaError) -> int:
    """HTTP status code for a protocol error."""
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def to_json(value: Any) -> Any:
    """Convert a decoded property value into something JSON can carry."""
    if hasattr(value, "_asdict"):
        return value._asdict()
    if isinstance(value, Enum):
        return value.value
    return value


def _device_info(tv: BraviaTv) -> dict[str, Any]:
    return {
        "id": tv.id,
        "host": tv.host,
        "port": tv.port,
        "state": tv.state.value,
        "connected": tv.is_connected,
    }


def _get_device(device_id: str) -> BraviaTv:
    if _registry is None:
        raise HTTPException(status_code=503, detail="Server not initialized")

    tv = _registry.get_device_by_id(device_id)
    if tv is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return tv


def _get_accessor(device_id: str, name: str) -> Accessor:
    tv = _get_device(device_id)
    try:
        return tv.accessor(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown property: {name}") from None


async def _run(awaitable: Any) -> Any:
    """Await a device operation, turning protocol errors into HTTP errors."""
    try:
        return await awaitable
    except BraviaError as e:
        status = status_for_error(e)
        logger.debug("Device operation failed (%d): %s", status, e)
        raise HTTPException(status_code=status, detail=str(e)) from e


async def _read_value(request: Request, key: str) -> Any:
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from None

    if not isinstance(body, dict) or key not in body:
        raise HTTPException(status_code=400, detail=f"Missing '{key}' in request body")
    return body[key]


# =============================================================================
# Server Status
# =============================================================================


@router.get("/api/status")
async def server_status() -> dict[str, Any]:
    """Get server status and basic info."""
    if _registry is None:
        raise HTTPException(status_code=503, detail="Server not initialized")

    return {
        "server": "bravia-remote",
        "version": __version__,
        "devices_known": len(_registry),
        "discovering": _registry.is_discovering,
    }


# =============================================================================
# Device Endpoints
# =============================================================================


@router.get("/api/devices")
async def list_devices() -> dict[str, Any]:
    """List all known televisions."""
    if _registry is None:
        raise HTTPException(status_code=503, detail="Server not initialized")

    devices = [_device_info(tv) for tv in _registry.get_all_devices()]
    return {
        "count": len(devices),
        "devices": devices,
    }


@router.get("/api/devices/{device_id}")
async def get_device(device_id: str) -> dict[str, Any]:
    """Get details for a specific television, including what it can do."""
    tv = _get_device(device_id)

    info = _device_info(tv)
    info["properties"] = {name: list(operations) for name, operations in tv.operations.items()}
    return info


@router.get("/api/devices/{device_id}/properties/{name}")
async def get_property(device_id: str, name: str) -> dict[str, Any]:
    """Read the current value of a property."""
    accessor = _get_accessor(device_id, name)
    if not accessor.supports(Operation.GET):
        raise HTTPException(status_code=405, detail=f"{name} cannot be read")

    value = await _run(accessor.get())
    return {"name": name, "value": to_json(value)}


@router.put("/api/devices/{device_id}/properties/{name}")
async def set_property(device_id: str, name: str, request: Request) -> dict[str, Any]:
    """Change a property.

    Request body: {"value": 20}
    """
    accessor = _get_accessor(device_id, name)
    if not accessor.supports(Operation.SET):
        raise HTTPException(status_code=405, detail=f"{name} cannot be changed")

    value = await _read_value(request, "value")
    await _run(accessor.set(value))
    return {"name": name, "value": value}


@router.post("/api/devices/{device_id}/properties/{name}/toggle")
async def toggle_property(device_id: str, name: str) -> dict[str, Any]:
    """Flip a property on the television."""
    accessor = _get_accessor(device_id, name)
    if not accessor.supports(Operation.TOGGLE):
        raise HTTPException(status_code=405, detail=f"{name} cannot be toggled")

    await _run(accessor.toggle())
    return {"name": name, "toggled": True}


@router.post("/api/devices/{device_id}/ircode")
async def send_ir_code(device_id: str, request: Request) -> dict[str, Any]:
    """Press a remote-control button.

    Request body: {"code": "volume_up"}
    """
    tv = _get_device(device_id)
    code = await _read_value(request, "code")

    try:
        accessor = tv.accessor("send_ir_code")
    except KeyError:
        raise HTTPException(status_code=405, detail="Device does not accept IR codes") from None

    await _run(accessor(code))
    return {"code": code, "sent": True}
