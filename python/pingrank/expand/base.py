# pingrank/expand/base.py
from abc import abstractmethod
from typing import Any, Iterable, Optional

from pingrank.core.errors import InvalidAddress
from pingrank.core.models import AddressSet, AddressSpec, Family
from pingrank.core.plugin import BasePlugin
from pingrank.dataset.base import SpecList

class ExpandPlugin(BasePlugin):
    """
    Turns address specifications into concrete host addresses.
    The registered name of an expander doubles as the CLI mode selector.
    """
    family: Family
    input_type = SpecList
    output_type = AddressSet

    @abstractmethod
    def expand(self, spec: AddressSpec) -> AddressSet:
        """Expand a single specification. Pure: no I/O."""
        pass

    def expand_all(self, specs: Iterable[str], name: Optional[str] = None) -> AddressSet:
        """
        Expands every specification into one ordered, duplicate-free set.

        Invalid lines are logged and skipped; every other ExpandError
        propagates to the caller.
        """
        addresses = {}
        skipped = 0
        for text in specs:
            spec = AddressSpec(text=text, family=self.family)
            try:
                expanded = self.expand(spec)
            except InvalidAddress as e:
                self.warning(f"Skipping {e}")
                skipped += 1
                continue
            addresses.update(dict.fromkeys(expanded.addresses))

        self.info(f"Expanded specifications into {len(addresses)} {self.family.value} addresses ({skipped} skipped)")
        return AddressSet(
            name=name or f"{self.name}_targets",
            description=f"{self.family.value} hosts expanded by {self.name}",
            addresses=list(addresses),
        )

    def run(self, data: SpecList, **kwargs: Any) -> AddressSet:
        return self.expand_all(data.specs, name=kwargs.get("name"))
