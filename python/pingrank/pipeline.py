# pingrank/pipeline.py
import logging
from typing import Sequence

from pingrank.core.config import ProbeConfig
from pingrank.core.registry import get_plugin
from pingrank.analyze import MeanLatencyRanker, Ranking
from pingrank.scan.icmp import IcmpEchoScanner
import pingrank.expand # registers the ipv4/ipv6 expanders

logger = logging.getLogger(__name__)

async def find_fastest(
    specs: Sequence[str],
    mode: str,
    config: ProbeConfig,
    progress_bars_enabled: bool = False,
) -> Ranking:
    """
    Expands `specs` under `mode`, probes every resulting host and ranks them.

    The mode is resolved before anything else, so an unknown mode raises
    InvalidModeSelector without sending a single packet.
    """
    expander_cls = get_plugin("expand", mode)
    expander = expander_cls(max_addresses=config.max_addresses)
    targets = expander.expand_all(specs)

    scanner = IcmpEchoScanner(
        attempts=config.attempts,
        interval=config.interval,
        timeout=config.timeout,
        payload_size=config.payload_size,
        max_concurrency=config.max_concurrency,
        deadline=config.deadline,
        privileged=config.privileged,
        progress_bars_enabled=progress_bars_enabled,
    )
    results = await scanner.scan(targets)

    ranker = MeanLatencyRanker(top_n=config.top_n)
    return ranker.analyze(results)

def format_ranking(ranking: Ranking) -> str:
    """One `<address> <ms>` line per entry, fastest first."""
    return "\n".join(f"{entry.address} {entry.delay_ms}" for entry in ranking.entries)
