# pingrank/runners/local_runner.py
import asyncio
import inspect
import logging
import time
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel

from pingrank.core.plugin import BasePlugin
from .base import BaseRunner

logger = logging.getLogger(__name__)

class LocalRunner(BaseRunner):
    """Runs plugins in this interpreter. Coroutine results get a fresh event loop each."""

    def execute(
        self,
        plugin_cls: Type[BasePlugin],
        plugin_init_args: Dict[str, Any],
        run_method_args: Dict[str, Any],
        input_data: Optional[BaseModel] = None,
    ) -> BaseModel:
        plugin = plugin_cls(**plugin_init_args)
        started = time.monotonic()

        result = plugin.run(input_data, **run_method_args)
        if inspect.iscoroutine(result):
            result = asyncio.run(result)

        logger.debug(f"{plugin_cls.name} finished in {time.monotonic() - started:.2f}s")
        return self.coerce_output(plugin_cls, result)
