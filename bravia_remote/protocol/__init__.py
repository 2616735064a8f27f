"""
Protocol implementations for bravia_remote.

This package contains the wire-level pieces:
- frames: The 24-byte Simple IP frame codec
- mappers: Conversions between values and 16-character parameters
- commands: The command registry (code, kind, exposed name, mapper)
- connection: The TCP control connection (port 20060)
- correlator: Request/answer pairing over the connection
- notifications: Dispatch of pushed state changes
- ssdp: SSDP search for finding televisions
"""

from bravia_remote.protocol.commands import DEFAULT_REGISTRY, CommandRegistry
from bravia_remote.protocol.connection import TvConnection
from bravia_remote.protocol.correlator import Correlator
from bravia_remote.protocol.ssdp import SSDPClient

__all__ = [
    "CommandRegistry",
    "Correlator",
    "DEFAULT_REGISTRY",
    "SSDPClient",
    "TvConnection",
]
