# pingrank/core/config.py
import logging
import pathlib
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ADDRESSES = 1 << 20

class ProbeConfig(BaseModel):
    """Tunables for one ranking run. Every field can come from a JSON file or the CLI."""
    model_config = ConfigDict(extra="forbid")

    attempts: int = Field(4, ge=1, description="Echo requests sent to every host")
    interval: float = Field(1.0, gt=0, description="Seconds between two requests to the same host")
    timeout: float = Field(2.0, gt=0, description="Seconds to wait for each reply")
    payload_size: int = Field(56, ge=0, le=65000, description="Echo payload size in bytes")
    max_concurrency: int = Field(512, ge=0, description="Hosts probed at once (0: no limit)")
    deadline: Optional[float] = Field(None, gt=0, description="Overall time budget in seconds")
    privileged: bool = Field(True, description="Use raw sockets (requires root or CAP_NET_RAW)")
    top_n: int = Field(10, ge=0, description="Number of hosts to report")
    max_addresses: int = Field(DEFAULT_MAX_ADDRESSES, ge=1, description="Largest range a single spec may expand to")

def load_config(path: Optional[Union[str, pathlib.Path]] = None, **overrides: Any) -> ProbeConfig:
    """
    Builds a ProbeConfig from an optional JSON file, then applies overrides.

    Overrides whose value is None are ignored so argparse defaults do not
    mask values from the file.
    """
    values = {}
    if path is not None:
        path = pathlib.Path(path)
        try:
            values = ProbeConfig.model_validate_json(path.read_text()).model_dump(exclude_unset=True)
        except FileNotFoundError:
            raise ConfigError(f"Configuration file not found: {path}") from None
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration file {path}: {e}") from None
        logger.debug(f"Loaded configuration from {path}: {values}")

    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return ProbeConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from None
