# pingrank/core/registry.py
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Type

from .errors import InvalidModeSelector

if TYPE_CHECKING:
    from .plugin import BasePlugin

logger = logging.getLogger(__name__)

PLUGIN_KINDS = ("dataset", "expand", "scan", "analyze")
# kind -> registered name -> plugin class
PLUGINS: Dict[str, Dict[str, Type["BasePlugin"]]] = defaultdict(dict)

def pingrank(kind: str, name: Optional[str] = None) -> Callable[[Type["BasePlugin"]], Type["BasePlugin"]]:
    """
    Class decorator that makes a plugin reachable by `(kind, name)`.

    The registered name is written back onto the class, and a missing
    version defaults to 0.1.0. Registering the same name twice keeps the
    newer class and logs a warning.
    """
    if kind not in PLUGIN_KINDS:
        raise ValueError(f"Unknown plugin kind '{kind}', expected one of {PLUGIN_KINDS}")

    def register(cls: Type["BasePlugin"]) -> Type["BasePlugin"]:
        from .plugin import BasePlugin
        if not (isinstance(cls, type) and issubclass(cls, BasePlugin)):
            raise TypeError(f"{cls!r} cannot be registered as a {kind} plugin: not a BasePlugin subclass")

        key = name or cls.__name__
        previous = PLUGINS[kind].get(key)
        if previous is not None and previous is not cls:
            logger.warning(f"{kind}/{key}: {previous.__module__}.{previous.__name__} replaced by {cls.__module__}.{cls.__name__}")

        PLUGINS[kind][key] = cls
        cls.name = key
        if getattr(cls, "version", None) is None:
            cls.version = "0.1.0"
        logger.debug(f"Registered {kind}/{key}")
        return cls

    return register

def get_plugin(kind: str, name: str) -> Type["BasePlugin"]:
    """Looks up a registered plugin; unknown expanders are invalid mode selectors."""
    plugin_cls = PLUGINS[kind].get(name)
    if plugin_cls is not None:
        return plugin_cls
    if kind == "expand":
        raise InvalidModeSelector(name, PLUGINS[kind].keys())
    raise KeyError(f"No {kind} plugin named '{name}' is registered")

def get_all_plugins() -> List[Type["BasePlugin"]]:
    return [plugin_cls for kind in PLUGIN_KINDS for plugin_cls in PLUGINS[kind].values()]
