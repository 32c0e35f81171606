# pingrank/scan/icmp/__init__.py

# Export the concrete scanner and its building blocks
from .client import IcmpClient, IcmpTransport, EchoSession, PendingTable
from .prober import probe, Ticker
from .echo import IcmpEchoScanner

__all__ = [
    "IcmpClient",
    "IcmpTransport",
    "EchoSession",
    "PendingTable",
    "probe",
    "Ticker",
    "IcmpEchoScanner",
]
