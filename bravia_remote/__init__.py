"""
Bravia Remote - control Sony Bravia televisions over their Simple IP protocol.

Televisions are found with SSDP and driven over a persistent TCP
connection on port 20060, exchanging fixed 24-byte frames.
"""

__version__ = "0.1.0"
__license__ = "GPL-2.0"

from bravia_remote.device.registry import DiscoveryRegistry
from bravia_remote.device.tv import BraviaTv
from bravia_remote.server import BraviaRemoteServer

__all__ = ["BraviaRemoteServer", "BraviaTv", "DiscoveryRegistry", "__version__"]
