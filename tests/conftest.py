import asyncio
from typing import Dict, List, Optional

import pytest

from pingrank.core.errors import SessionConstructionFailure
from pingrank.core.models import Family

HANG = "hang"

class FakeSession:
    def __init__(self, client: "FakeClient", address: str, identifier: int):
        self.client = client
        self.address = address
        self.identifier = identifier
        self.closed = False

    async def ping(self, sequence: int, timeout: float, payload: bytes = bytes(56)) -> float:
        self.client.sequences.setdefault(self.address, []).append(sequence)
        self.client.in_flight += 1
        self.client.max_in_flight = max(self.client.max_in_flight, self.client.in_flight)
        try:
            script = self.client.script.get(self.address, [])
            step = script[sequence] if sequence < len(script) else None
            if step == HANG:
                await asyncio.sleep(3600)
            await asyncio.sleep(0)
            if step is None:
                raise asyncio.TimeoutError()
            if isinstance(step, BaseException):
                raise step
            return step
        finally:
            self.client.in_flight -= 1

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

class FakeClient:
    """
    In-memory stand-in for IcmpClient. `script` maps an address to the
    outcome of each sequence number: a round trip in ms, None for a lost
    packet, an exception to raise, or HANG to never answer.
    """

    def __init__(self, family: Family, privileged: bool = True, script: Optional[Dict[str, list]] = None,
                 broken_sessions=(), fail_open: bool = False):
        self.family = family
        self.privileged = privileged
        self.script = script or {}
        self.broken_sessions = set(broken_sessions)
        self.fail_open = fail_open
        self.sessions: List[FakeSession] = []
        self.sequences: Dict[str, List[int]] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.opened = False
        self.closed = False

    async def open(self) -> "FakeClient":
        if self.fail_open:
            raise SessionConstructionFailure(f"Could not open {self.family.value} ICMP socket")
        self.opened = True
        return self

    async def close(self) -> None:
        self.closed = True

    def session(self, address: str) -> FakeSession:
        if address in self.broken_sessions:
            raise SessionConstructionFailure(f"No free echo identifier for {address}")
        session = FakeSession(self, address, identifier=len(self.sessions))
        self.sessions.append(session)
        return session

class ClientFactory:
    """Records every client the scanner builds; all of them share one script."""

    def __init__(self, script=None, **client_kwargs):
        self.script = script or {}
        self.client_kwargs = client_kwargs
        self.clients: Dict[Family, FakeClient] = {}

    def __call__(self, family: Family, privileged: bool = True) -> FakeClient:
        client = FakeClient(family, privileged, script=self.script, **self.client_kwargs)
        self.clients[family] = client
        return client

@pytest.fixture
def client_factory():
    return ClientFactory
