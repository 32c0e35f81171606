# pingrank/analyze/__init__.py
from .base import AnalyzePlugin, RankedEntry, Ranking
from .latency import MeanLatencyRanker, rank

__all__ = [
    "AnalyzePlugin",
    "RankedEntry",
    "Ranking",
    "MeanLatencyRanker",
    "rank",
]
