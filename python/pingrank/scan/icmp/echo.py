# pingrank/scan/icmp/echo.py
import asyncio
import ipaddress
from typing import Any, Dict, List, Optional, Sequence, Union

from pingrank.core.errors import ProbeTaskFailure, SessionConstructionFailure
from pingrank.core.models import AddressSet, Family
from pingrank.core.registry import pingrank
from pingrank.scan.base import ProbeResult, ProbeResultSet, ScanPlugin
from .client import IcmpClient
from .prober import probe, DEFAULT_ATTEMPTS, DEFAULT_INTERVAL, DEFAULT_TIMEOUT, DEFAULT_PAYLOAD_SIZE

Outcome = Union[None, ProbeResult, ProbeTaskFailure]

def family_of(address: str) -> Family:
    return Family.IPV4 if ipaddress.ip_address(address).version == 4 else Family.IPV6

@pingrank(kind="scan", name="icmp_echo")
class IcmpEchoScanner(ScanPlugin):
    """
    Probes every address of an AddressSet with ICMP echo requests.

    Hosts are probed concurrently on one event loop. Each family present in
    the set gets one shared IcmpClient for the whole scan. At most
    `max_concurrency` hosts are in flight (0 lifts the limit), and an
    optional `deadline` cancels whatever is still running, keeping the
    round trips measured so far.
    """

    version = "0.1.0"
    description = "Measures round-trip times with ICMP echo requests (IPv4 and IPv6)."

    client_factory = IcmpClient

    def __init__(
        self,
        attempts: int = DEFAULT_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        payload_size: int = DEFAULT_PAYLOAD_SIZE,
        max_concurrency: int = 512,
        deadline: Optional[float] = None,
        privileged: bool = True,
        progress_bars_enabled: bool = False,
        **kwargs: Any
    ):
        super().__init__(progress_bars_enabled=progress_bars_enabled, **kwargs)
        if attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {attempts}")
        if max_concurrency < 0:
            raise ValueError(f"max_concurrency cannot be negative, got {max_concurrency}")
        self.attempts = attempts
        self.interval = interval
        self.timeout = timeout
        self.payload_size = payload_size
        self.max_concurrency = max_concurrency
        self.deadline = deadline
        self.privileged = privileged

    async def scan(self, data: AddressSet, **kwargs: Any) -> ProbeResultSet:
        if not data.addresses:
            self.info(f"No addresses provided to scan for {self.name}.")
            return ProbeResultSet(scan_name=self.name)

        families = set()
        for address in data.addresses:
            try:
                families.add(family_of(address))
            except ValueError:
                self.warning(f"'{address}' is not an IP address, it will be reported as failed")

        clients: Dict[Family, IcmpClient] = {}
        try:
            # A client that cannot be opened is fatal for the whole scan.
            for family in sorted(families, key=lambda f: f.value):
                clients[family] = await self.client_factory(family, privileged=self.privileged).open()
            return await self.run_all(data.addresses, clients)
        finally:
            for client in clients.values():
                await client.close()
            self.close_all_progress_bars()

    async def run_all(self, addresses: Sequence[str], clients: Dict[Family, IcmpClient]) -> ProbeResultSet:
        """Fans the probes out and collects one outcome per address, in address order."""
        outcomes: List[Outcome] = [None] * len(addresses)
        work = iter(enumerate(addresses))
        width = len(addresses) if not self.max_concurrency else min(self.max_concurrency, len(addresses))
        bar = self.add_progress_bar(f"{self.name}_hosts", total=len(addresses), description="probing", unit="host")

        async def worker() -> None:
            for index, address in work:
                record = ProbeResult(address=address, attempts=self.attempts)
                outcomes[index] = record
                try:
                    client = clients[family_of(address)]
                    await probe(
                        client, address,
                        attempts=self.attempts,
                        interval=self.interval,
                        timeout=self.timeout,
                        payload_size=self.payload_size,
                        result=record,
                    )
                except SessionConstructionFailure as e:
                    self.error(f"Could not start probing {address}: {e}")
                    outcomes[index] = ProbeTaskFailure(address, e)
                except Exception as e:
                    self.error(f"Probe task for {address} failed: {e!r}", exc_info=True)
                    outcomes[index] = ProbeTaskFailure(address, e)
                finally:
                    self.update_progress_bar(bar)

        self.info(
            f"Probing {len(addresses)} hosts with {width} concurrent workers "
            f"({self.attempts} x {self.interval}s, timeout {self.timeout}s)"
        )
        workers = [asyncio.create_task(worker()) for _ in range(width)]
        done, pending = await asyncio.wait(workers, timeout=self.deadline)
        if pending:
            self.warning(f"Deadline of {self.deadline}s reached, cancelling {len(pending)} running probes")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        results: List[ProbeResult] = []
        failed: List[str] = []
        not_started = 0
        for outcome in outcomes:
            if outcome is None:
                not_started += 1
            elif isinstance(outcome, ProbeTaskFailure):
                failed.append(outcome.address)
            else:
                results.append(outcome)
        if not_started:
            self.warning(f"{not_started} hosts were never probed before the deadline")

        responsive = sum(1 for result in results if result.received)
        self.info(f"{self.name} scan complete: {responsive}/{len(addresses)} hosts responded, {len(failed)} failed")
        self.close_progress_bar(bar)
        return ProbeResultSet(results=results, failed=failed, scan_name=self.name)
