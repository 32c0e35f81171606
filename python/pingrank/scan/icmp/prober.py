# pingrank/scan/icmp/prober.py
import asyncio
import logging
from typing import Optional

from icmplib.exceptions import ICMPLibError

from pingrank.scan.base import ProbeResult

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 4
DEFAULT_INTERVAL = 1.0
DEFAULT_TIMEOUT = 2.0
DEFAULT_PAYLOAD_SIZE = 56

class Ticker:
    """
    Fixed-rate pacing: tick k fires at start + k * interval. The first tick
    is immediate and a tick that is already late fires at once.
    """

    def __init__(self, interval: float):
        self.interval = interval
        self._start: Optional[float] = None
        self._ticks = 0

    async def tick(self) -> None:
        loop = asyncio.get_running_loop()
        if self._start is None:
            self._start = loop.time()
        delay = self._start + self._ticks * self.interval - loop.time()
        self._ticks += 1
        if delay > 0:
            await asyncio.sleep(delay)

async def probe(
    client,
    address: str,
    attempts: int = DEFAULT_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    timeout: float = DEFAULT_TIMEOUT,
    payload_size: int = DEFAULT_PAYLOAD_SIZE,
    result: Optional[ProbeResult] = None,
) -> ProbeResult:
    """
    Sends `attempts` echo requests to one host and records the successful
    round trips. Lost, late and rejected packets are dropped without retry.

    `result` lets the caller keep a handle on the record being filled, so a
    cancelled probe still leaves its partial measurements behind.
    SessionConstructionFailure from the client propagates.
    """
    if result is None:
        result = ProbeResult(address=address, attempts=attempts)
    payload = bytes(payload_size)
    ticker = Ticker(interval)

    with client.session(address) as session:
        for sequence in range(attempts):
            await ticker.tick()
            result.sent += 1
            try:
                rtt = await session.ping(sequence, timeout, payload)
            except asyncio.TimeoutError:
                logger.debug(f"{address} seq={sequence}: timed out after {timeout}s")
                continue
            except (ICMPLibError, OSError) as e:
                logger.debug(f"{address} seq={sequence}: {e!r}")
                continue
            result.rtts.append(rtt)

    result.completed = True
    return result
