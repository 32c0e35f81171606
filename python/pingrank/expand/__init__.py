# pingrank/expand/__init__.py
from .base import ExpandPlugin
from .ipnet import BaseIpExpander, Ipv4Expander, Ipv6Expander

__all__ = [
    "ExpandPlugin",
    "BaseIpExpander",
    "Ipv4Expander",
    "Ipv6Expander",
]
