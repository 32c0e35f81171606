# pingrank/analyze/latency.py
from typing import Any, Iterable, List

from pingrank.core.registry import pingrank
from pingrank.scan.base import ProbeResult, ProbeResultSet
from .base import AnalyzePlugin, RankedEntry, Ranking

DEFAULT_TOP_N = 10

def rank(results: Iterable[ProbeResult], top_n: int = DEFAULT_TOP_N) -> List[RankedEntry]:
    """
    Orders hosts by mean round trip, fastest first, and keeps the first top_n.

    Hosts without a single successful exchange are left out, and so is a
    zero mean. The sort is stable, equal means keep their input order.
    """
    if top_n < 0:
        raise ValueError(f"top_n cannot be negative, got {top_n}")
    entries = [
        RankedEntry(address=result.address, mean_rtt=result.mean_rtt)
        for result in results
        if result.received > 0 and result.mean_rtt > 0
    ]
    entries.sort(key=lambda entry: entry.mean_rtt)
    return entries[:top_n]

@pingrank(kind="analyze", name="mean_latency")
class MeanLatencyRanker(AnalyzePlugin):
    version = "0.1.0"
    description = "Ranks hosts by their mean ICMP round-trip time and keeps the fastest."

    def __init__(self, top_n: int = DEFAULT_TOP_N, **kwargs: Any):
        super().__init__(**kwargs)
        if top_n < 0:
            raise ValueError(f"top_n cannot be negative, got {top_n}")
        self.top_n = top_n

    def analyze(self, data: ProbeResultSet, **kwargs: Any) -> Ranking:
        entries = rank(data.results, self.top_n)
        self.info(f"Ranked {len(entries)} of {len(data.results)} probed hosts (top {self.top_n})")
        return Ranking(entries=entries, top_n=self.top_n, considered=len(data.results))
