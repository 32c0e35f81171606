# pingrank/dataset/text_file.py
import pathlib
from typing import Any, Iterable, List

from pingrank.core.registry import pingrank
from .base import DatasetPlugin, SpecList

def parse_lines(lines: Iterable[str]) -> List[str]:
    """Trims every line and drops the blank ones. There is no comment syntax."""
    specs = []
    for line in lines:
        line = line.strip()
        if not line:
            continue  # skip blank lines
        specs.append(line)
    return specs

@pingrank(kind="dataset", name="text_file")
class TextFileDataset(DatasetPlugin):
    """
    Reads one address or prefix per line from a text file.
    """
    version = "0.1.0"
    description = "Reads address specifications, one per line, from a text file."

    def __init__(self, path: str, encoding: str = "utf-8", **kwargs: Any):
        super().__init__(**kwargs)
        self.path = pathlib.Path(path)
        self.encoding = encoding

    def load(self, **kwargs: Any) -> SpecList:
        with self.path.open("r", encoding=self.encoding) as f:
            specs = parse_lines(f)
        self.info(f"Read {len(specs)} address specifications from {self.path}")
        return SpecList(source=str(self.path), specs=specs)
