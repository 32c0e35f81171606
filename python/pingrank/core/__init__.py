# pingrank/core/__init__.py
from .models import Family, AddressSpec, AddressSet
from .config import ProbeConfig, load_config
from .errors import (
    PingRankError,
    ConfigError,
    InvalidModeSelector,
    ExpandError,
    InvalidAddress,
    PrefixTooNarrow,
    RangeTooLarge,
    SessionConstructionFailure,
    ProbeTaskFailure,
)

__all__ = [
    "Family",
    "AddressSpec",
    "AddressSet",
    "ProbeConfig",
    "load_config",
    "PingRankError",
    "ConfigError",
    "InvalidModeSelector",
    "ExpandError",
    "InvalidAddress",
    "PrefixTooNarrow",
    "RangeTooLarge",
    "SessionConstructionFailure",
    "ProbeTaskFailure",
]
