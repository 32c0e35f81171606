# pingrank/core/errors.py

class PingRankError(Exception):
    """Base class for every error raised by pingrank."""

class ConfigError(PingRankError):
    """Configuration values or the configuration file are invalid."""

class InvalidModeSelector(PingRankError):
    """The requested address family mode has no registered expander."""

    def __init__(self, mode: str, available=()):
        self.mode = mode
        self.available = sorted(available)
        message = f"Invalid mode '{mode}'"
        if self.available:
            message += f" (expected one of: {', '.join(self.available)})"
        super().__init__(message)

class ExpandError(PingRankError):
    """An address specification could not be expanded."""

class InvalidAddress(ExpandError):
    def __init__(self, text: str, family: str, reason: str = ""):
        self.text = text
        self.family = family
        message = f"'{text}' is not a valid {family} address or prefix"
        if reason:
            message += f": {reason}"
        super().__init__(message)

class PrefixTooNarrow(ExpandError):
    def __init__(self, text: str, prefixlen: int, new_prefix: int):
        self.text = text
        self.prefixlen = prefixlen
        self.new_prefix = new_prefix
        super().__init__(
            f"Cannot subdivide {text} into /{new_prefix} units: "
            f"new prefix length cannot be shorter than existing /{prefixlen}"
        )

class RangeTooLarge(ExpandError):
    def __init__(self, text: str, count: int, limit: int):
        self.text = text
        self.count = count
        self.limit = limit
        super().__init__(f"{text} expands to {count} addresses, more than the limit of {limit}")

class SessionConstructionFailure(PingRankError):
    """An ICMP client or echo session could not be created."""

class ProbeTaskFailure(PingRankError):
    """A host probe task failed for a reason other than packet loss."""

    def __init__(self, address: str, cause: BaseException):
        self.address = address
        self.cause = cause
        super().__init__(f"Probe task for {address} failed: {cause!r}")
