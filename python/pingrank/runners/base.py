# pingrank/runners/base.py
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel

from pingrank.core.plugin import BasePlugin

class BaseRunner(ABC):
    """Carries out one plugin invocation and hands back its output model."""

    @abstractmethod
    def execute(
        self,
        plugin_cls: Type[BasePlugin],
        plugin_init_args: Dict[str, Any],
        run_method_args: Dict[str, Any],
        input_data: Optional[BaseModel] = None,
    ) -> BaseModel:
        ...

    @staticmethod
    def coerce_output(plugin_cls: Type[BasePlugin], result: Any) -> BaseModel:
        """Plugins may answer with a plain dict; anything else must already be the output model."""
        if isinstance(result, dict):
            return plugin_cls.output_type.model_validate(result)
        if not isinstance(result, plugin_cls.output_type):
            raise TypeError(
                f"{plugin_cls.name} returned {type(result).__name__}, "
                f"expected {plugin_cls.output_type.__name__}"
            )
        return result

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
