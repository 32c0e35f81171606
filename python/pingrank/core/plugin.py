# pingrank/core/plugin.py
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

import tqdm
from pydantic import BaseModel

class BasePlugin(ABC):
    """
    Common base of every dataset, expand, scan and analyze stage.

    A stage consumes an `input_type` model (None for sources) and produces an
    `output_type` model. `name` and `version` are filled in by the registry.
    Each instance logs through its own `<module>.<ClassName>` logger and can
    show tqdm bars on stderr when the caller asks for them.
    """
    name: str
    version: str
    description: Optional[str] = None

    input_type: Optional[Type[BaseModel]] = None
    output_type: Type[BaseModel]

    def __init__(self, progress_bars_enabled: bool = False, **kwargs: Any):
        # Handlers and levels belong to the entry point, not to plugins.
        self.logger = logging.getLogger(f"{type(self).__module__}.{type(self).__name__}")
        self.progress_bars_enabled = progress_bars_enabled
        self._bars: Dict[str, tqdm.tqdm] = {}

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.error(message, *args, exc_info=exc_info, **kwargs)

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.debug(message, *args, **kwargs)

    def add_progress_bar(
        self,
        handle: str,
        total: Optional[int] = None,
        description: Optional[str] = None,
        unit: str = "it",
        **kwargs: Any
    ) -> Optional[str]:
        """
        Opens a bar and returns its handle, or None when bars are disabled.
        Every other progress method accepts None and does nothing with it,
        so callers never need to check.
        """
        if not self.progress_bars_enabled:
            return None
        if handle not in self._bars:
            self._bars[handle] = tqdm.tqdm(
                total=total,
                desc=description or handle,
                unit=unit,
                position=len(self._bars),
                dynamic_ncols=True,
                **kwargs
            )
        return handle

    def update_progress_bar(
        self,
        handle: Optional[str],
        advance: int = 1,
        description: Optional[str] = None,
        postfix: Optional[Dict[str, Any]] = None,
    ) -> None:
        bar = self._bars.get(handle) if handle else None
        if bar is None:
            return
        if description is not None:
            bar.set_description_str(description, refresh=False)
        if postfix is not None:
            bar.set_postfix(postfix, refresh=False)
        if advance:
            bar.update(advance)

    def close_progress_bar(self, handle: Optional[str]) -> None:
        bar = self._bars.pop(handle, None) if handle else None
        if bar is not None:
            bar.close()

    def close_all_progress_bars(self) -> None:
        for handle in list(self._bars):
            self.close_progress_bar(handle)

    @abstractmethod
    def run(self, data: Optional[BaseModel], **kwargs: Any) -> Any:
        """
        Runs the stage on `data`. Scanners return a coroutine, which the
        runner drives on a fresh event loop.
        """
