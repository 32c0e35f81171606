# pingrank/expand/ipnet.py
import ipaddress
from typing import Any, Optional, Union

from pingrank.core.config import DEFAULT_MAX_ADDRESSES
from pingrank.core.errors import InvalidAddress, PrefixTooNarrow, RangeTooLarge
from pingrank.core.models import AddressSet, AddressSpec, Family
from pingrank.core.registry import pingrank
from .base import ExpandPlugin

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

class BaseIpExpander(ExpandPlugin):
    """
    Enumerates every address of a prefix by subnetting it into units of
    `granularity` bits and taking each unit's network address. Network and
    broadcast addresses are included.
    """

    def __init__(
        self,
        granularity: Optional[int] = None,
        max_addresses: int = DEFAULT_MAX_ADDRESSES,
        **kwargs: Any
    ):
        super().__init__(**kwargs)
        width = self.family.width
        if granularity is None:
            granularity = width
        if not 0 <= granularity <= width:
            raise ValueError(f"granularity must be between 0 and {width}, got {granularity}")
        self.granularity = granularity
        self.max_addresses = max_addresses

    def parse(self, spec: AddressSpec) -> IPNetwork:
        if spec.family is not self.family:
            raise InvalidAddress(spec.text, self.family.value, f"tagged as {spec.family.value}")
        try:
            # Host bits are masked off, "10.0.0.7/30" means 10.0.0.4/30.
            network = ipaddress.ip_network(spec.text, strict=False)
        except ValueError as e:
            raise InvalidAddress(spec.text, self.family.value, str(e)) from None
        if network.max_prefixlen != self.family.width:
            raise InvalidAddress(spec.text, self.family.value, f"parses as IPv{network.version}")
        return network

    def expand(self, spec: AddressSpec) -> AddressSet:
        network = self.parse(spec)
        if self.granularity < network.prefixlen:
            raise PrefixTooNarrow(spec.text, network.prefixlen, self.granularity)

        count = 1 << (self.granularity - network.prefixlen)
        if count > self.max_addresses:
            raise RangeTooLarge(spec.text, count, self.max_addresses)

        step = 1 << (self.family.width - self.granularity)
        first = network.network_address
        addresses = [str(first + i * step) for i in range(count)]
        self.debug(f"{spec.text} -> {count} addresses")
        return AddressSet(name=spec.text, addresses=addresses)

@pingrank(kind="expand", name="ipv4")
class Ipv4Expander(BaseIpExpander):
    version = "0.1.0"
    description = "Expands IPv4 hosts and prefixes into individual /32 addresses."
    family = Family.IPV4

@pingrank(kind="expand", name="ipv6")
class Ipv6Expander(BaseIpExpander):
    version = "0.1.0"
    description = "Expands IPv6 hosts and prefixes into individual /128 addresses."
    family = Family.IPV6
