# pingrank/scan/__init__.py
from .base import ScanPlugin, ProbeResult, ProbeResultSet

# Import the icmp submodule so its plugins get registered
from . import icmp

__all__ = [
    "ScanPlugin",
    "ProbeResult",
    "ProbeResultSet",
    "icmp",
]
