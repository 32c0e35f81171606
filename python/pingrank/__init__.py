# pingrank/__init__.py
"""Find the lowest-latency hosts of IPv4/IPv6 address ranges with concurrent ICMP echo probes."""

__version__ = "0.1.0"
