# pingrank/runners/__init__.py
from .base import BaseRunner
from .local_runner import LocalRunner

__all__ = ["BaseRunner", "LocalRunner"]
