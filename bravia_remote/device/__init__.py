"""
Television management for bravia_remote.

This package handles discovered televisions: the per-device facade and
the registry that tracks which televisions are on the network.
"""

from bravia_remote.device.registry import DiscoveryRegistry
from bravia_remote.device.tv import BraviaTv

__all__ = [
    "BraviaTv",
    "DiscoveryRegistry",
]
