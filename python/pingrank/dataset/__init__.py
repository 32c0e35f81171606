# pingrank/dataset/__init__.py
from .base import DatasetPlugin, SpecList
from .text_file import TextFileDataset, parse_lines

__all__ = [
    "DatasetPlugin",
    "SpecList",
    "TextFileDataset",
    "parse_lines",
]
