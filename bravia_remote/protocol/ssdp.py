"""
SSDP search client for finding Bravia televisions.

Televisions answer SSDP M-SEARCH requests for the Sony ScalarWebAPI
service. We multicast a search and collect the unicast HTTP-style
responses, each of which carries the device's USN:

    HTTP/1.1 200 OK
    ST: urn:schemas-sony-com:service:ScalarWebAPI:1
    USN: uuid:12345678-abcd-...::urn:schemas-sony-com:service:ScalarWebAPI:1
    LOCATION: http://192.168.1.20:52323/dmr.xml

Reference: UPnP Device Architecture 1.1, section 1.3 (Search)
"""

import asyncio
import logging
import re
import socket
from typing import Callable

logger = logging.getLogger(__name__)

SSDP_ADDRESS = "239.255.255.250"
SSDP_PORT = 1900

# Service advertised by Bravia televisions
SEARCH_SERVICE = "urn:schemas-sony-com:service:ScalarWebAPI:1"

# Seconds devices may wait before answering
DEFAULT_MX = 2

USN_UUID_PATTERN = re.compile(r"uuid:([^:]+)")

ResponseHandler = Callable[[dict[str, str], tuple[str, int]], None]


def build_search_request(search_target: str, mx: int = DEFAULT_MX) -> bytes:
    """Build an M-SEARCH request for one search target."""
    lines = [
        "M-SEARCH * HTTP/1.1",
        f"HOST: {SSDP_ADDRESS}:{SSDP_PORT}",
        'MAN: "ssdp:discover"',
        f"MX: {mx}",
        f"ST: {search_target}",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("ascii")


def parse_response(data: bytes) -> dict[str, str] | None:
    """
    Parse an SSDP search response into a header dict.

    Header names are upper-cased. Returns None for anything that is not a
    successful HTTP response (including other hosts' M-SEARCH and NOTIFY
    traffic).
    """
    text = data.decode("utf-8", errors="replace")
    lines = text.split("\r\n") if "\r\n" in text else text.split("\n")
    if not lines:
        return None

    status = lines[0].split(None, 2)
    if len(status) < 2 or not status[0].upper().startswith("HTTP/") or status[1] != "200":
        return None

    headers: dict[str, str] = {}
    for line in lines[1:]:
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        headers[key.strip().upper()] = value.strip()

    return headers


def extract_device_id(usn: str | None) -> str | None:
    """Get the UUID embedded in a USN header."""
    if not usn:
        return None
    match = USN_UUID_PATTERN.search(usn)
    return match.group(1) if match else None


class SSDPSearchProtocol(asyncio.DatagramProtocol):
    """
    Asyncio UDP protocol handler for SSDP search responses.

    Parsed responses are handed to a callback together with the sender
    address.
    """

    def __init__(self, on_response: ResponseHandler) -> None:
        """
        Initialize the search protocol.

        Args:
            on_response: Called with (headers, (host, port)) per response.
        """
        self.on_response = on_response
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.DatagramTransport) -> None:  # type: ignore[override]
        """Called when the UDP socket is ready."""
        self.transport = transport
        logger.debug("SSDP search socket ready")

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        """Handle an incoming response packet."""
        headers = parse_response(data)
        if headers is None:
            logger.debug("Ignoring non-response SSDP packet from %s:%d", addr[0], addr[1])
            return

        try:
            self.on_response(headers, addr)
        except Exception as e:
            logger.exception("Error handling SSDP response from %s: %s", addr[0], e)

    def error_received(self, exc: Exception) -> None:
        """Handle UDP socket errors."""
        logger.warning("SSDP search error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        """Handle socket close."""
        if exc:
            logger.warning("SSDP search socket lost: %s", exc)
        else:
            logger.debug("SSDP search socket closed")


class SSDPClient:
    """
    High-level SSDP search client.

    Manages the lifecycle of the search socket and provides a simple
    start/search/stop interface.
    """

    def __init__(
        self,
        on_response: ResponseHandler,
        host: str = "0.0.0.0",
        mx: int = DEFAULT_MX,
    ) -> None:
        """
        Initialize the SSDP client.

        Args:
            on_response: Called with (headers, (host, port)) per response.
            host: Local address to bind the search socket to.
            mx: MX value sent with each search.
        """
        self.on_response = on_response
        self.host = host
        self.mx = mx

        self._transport: asyncio.DatagramTransport | None = None
        self._protocol: SSDPSearchProtocol | None = None
        self._running = False

    async def start(self) -> None:
        """Open the search socket."""
        if self._running:
            logger.warning("SSDP client already running")
            return

        loop = asyncio.get_running_loop()

        transport, protocol = await loop.create_datagram_endpoint(
            lambda: SSDPSearchProtocol(self.on_response),
            local_addr=(self.host, 0),
            family=socket.AF_INET,
        )
        self._transport = transport
        self._protocol = protocol

        sock = transport.get_extra_info("socket")
        if sock:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)

        self._running = True
        logger.info("SSDP client started")

    def search(self, search_target: str = SEARCH_SERVICE) -> None:
        """Multicast one M-SEARCH request."""
        if not self._running or self._transport is None:
            logger.warning("SSDP search requested while client is stopped")
            return

        self._transport.sendto(build_search_request(search_target, self.mx), (SSDP_ADDRESS, SSDP_PORT))
        logger.debug("Sent M-SEARCH for %s", search_target)

    async def stop(self) -> None:
        """Close the search socket. Safe to call more than once."""
        if not self._running:
            return

        self._running = False

        if self._transport:
            self._transport.close()
            self._transport = None
            self._protocol = None

        logger.info("SSDP client stopped")

    @property
    def is_running(self) -> bool:
        """Check if the client is running."""
        return self._running
