import asyncio
import contextlib
import logging
import socket
import struct
import time

import pytest
from icmplib import ICMPReply, ICMPRequest, ICMPv4Socket
from icmplib.exceptions import ICMPLibError, SocketUnavailableError, TimeoutExceeded

from pingrank.core.errors import SessionConstructionFailure
from pingrank.core.models import Family
from pingrank.scan.icmp import client as client_module
from pingrank.scan.icmp.client import IcmpClient, IcmpTransport, PendingTable, normalize_address

class FakeSocket:
    """Answers through `responder(request) -> [ICMPReply, ...]`."""

    def __init__(self, responder):
        self.responder = responder
        self.sent = []
        self.queue = asyncio.Queue()
        self.closed = False

    def send(self, request):
        self.sent.append(request)
        for reply in self.responder(request):
            self.queue.put_nowait(reply)

    async def receive(self, timeout):
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            raise TimeoutExceeded(timeout) from None

    def close(self):
        self.closed = True

def make_reply(request, source=None, type=0, code=0, id=None, delay=0.012, family=4):
    return ICMPReply(
        source=source or request.destination,
        family=family,
        id=request.id if id is None else id,
        sequence=request.sequence,
        type=type,
        code=code,
        bytes_received=64,
        time=request.time + delay,
    )

def open_client(responder, family=Family.IPV4, privileged=True):
    sockets = []

    def factory(fam, priv):
        sock = FakeSocket(responder)
        sockets.append(sock)
        return sock

    client = IcmpClient(family, privileged=privileged, poll_timeout=0.05, socket_factory=factory)
    return client, sockets

def test_normalize_address():
    assert normalize_address("2001:DB8:0::1") == "2001:db8::1"
    assert normalize_address("fe80::1%eth0") == "fe80::1"
    assert normalize_address("10.0.0.1") == "10.0.0.1"

def test_echo_returns_round_trip_in_ms():
    client, sockets = open_client(lambda request: [make_reply(request, delay=0.025)])

    async def main():
        async with client:
            with client.session("192.0.2.1") as session:
                return await session.ping(0, timeout=1.0)

    assert asyncio.run(main()) == pytest.approx(25.0)
    assert sockets[0].closed

def test_replies_reach_the_right_session():
    held = []

    def responder(request):
        # Answer only once both hosts have asked, in reverse order.
        held.append(request)
        if len(held) < 2:
            return []
        return [make_reply(held[1], delay=0.030), make_reply(held[0], delay=0.010)]

    client, _ = open_client(responder)

    async def main():
        async with client:
            first = client.session("192.0.2.1")
            second = client.session("192.0.2.2")
            # Same identifier and sequence for both, only the source tells them apart.
            second.identifier = first.identifier
            return await asyncio.gather(first.ping(0, 1.0), second.ping(0, 1.0))

    first_rtt, second_rtt = asyncio.run(main())
    assert first_rtt == pytest.approx(10.0)
    assert second_rtt == pytest.approx(30.0)

def test_error_reply_from_router_fails_the_exchange():
    client, _ = open_client(lambda request: [make_reply(request, source="198.51.100.254", type=3, code=1)])

    async def main():
        async with client:
            with client.session("192.0.2.1") as session:
                await session.ping(0, timeout=1.0)

    with pytest.raises(ICMPLibError):
        asyncio.run(main())

def test_timeout_clears_pending_exchange():
    client, _ = open_client(lambda request: [])

    async def main():
        async with client:
            with client.session("192.0.2.1") as session:
                with pytest.raises(asyncio.TimeoutError):
                    await session.ping(0, timeout=0.05)
            return len(client._pending)

    assert asyncio.run(main()) == 0

def test_stray_and_reflected_replies_are_dropped():
    client, sockets = open_client(lambda request: [])

    async def main():
        async with client:
            request = ICMPRequest(destination="192.0.2.9", id=4242, sequence=0)
            stray = make_reply(request)
            reflected = make_reply(request, type=8)
            return client.dispatch(stray), client.dispatch(reflected)

    assert asyncio.run(main()) == (False, False)

def test_unprivileged_sockets_match_on_source_and_sequence():
    # Datagram sockets let the kernel pick the identifier.
    client, _ = open_client(lambda request: [make_reply(request, id=(request.id + 1) % 0x10000)], privileged=False)

    async def main():
        async with client:
            with client.session("192.0.2.1") as session:
                return await session.ping(0, timeout=1.0)

    assert asyncio.run(main()) == pytest.approx(12.0)

def test_ipv6_client():
    client, _ = open_client(lambda request: [make_reply(request, type=129, family=6)], family=Family.IPV6)

    async def main():
        async with client:
            with client.session("2001:db8::1") as session:
                return await session.ping(3, timeout=1.0)

    assert asyncio.run(main()) == pytest.approx(12.0)

def test_identifiers_are_unique_per_address(monkeypatch):
    draws = iter([7, 7, 9])
    monkeypatch.setattr(client_module.random, "randint", lambda a, b: next(draws))
    client, _ = open_client(lambda request: [])

    async def main():
        async with client:
            first = client.session("192.0.2.1")
            second = client.session("192.0.2.1")
            return first.identifier, second.identifier

    assert asyncio.run(main()) == (7, 9)

def test_identifier_released_on_close(monkeypatch):
    monkeypatch.setattr(client_module.random, "randint", lambda a, b: 7)
    client, _ = open_client(lambda request: [])

    async def main():
        async with client:
            with client.session("192.0.2.1"):
                with pytest.raises(SessionConstructionFailure):
                    client.session("192.0.2.1")
            return client.session("192.0.2.1").identifier

    assert asyncio.run(main()) == 7

def test_session_requires_open_client_of_the_right_family():
    client, _ = open_client(lambda request: [])
    with pytest.raises(SessionConstructionFailure):
        client.session("192.0.2.1")

    async def main():
        async with client:
            with pytest.raises(SessionConstructionFailure):
                client.session("2001:db8::1")
            with pytest.raises(SessionConstructionFailure):
                client.session("not-an-address")

    asyncio.run(main())

def test_socket_failure_becomes_session_construction_failure():
    def factory(family, privileged):
        raise PermissionError("Operation not permitted")

    client = IcmpClient(Family.IPV4, socket_factory=factory)
    with pytest.raises(SessionConstructionFailure):
        asyncio.run(client.open())
    assert not client.is_open

def test_pending_table_prefers_exact_source():
    loop = asyncio.new_event_loop()
    try:
        table = PendingTable()
        first, second = loop.create_future(), loop.create_future()
        table.add(5, 0, "192.0.2.1", first)
        table.add(5, 0, "192.0.2.2", second)
        request = ICMPRequest(destination="192.0.2.2", id=5, sequence=0)
        assert table.match(make_reply(request), is_echo_reply=True, privileged=True) is second
        # Two candidates and a foreign source: ambiguous.
        router = make_reply(request, source="198.51.100.1", type=11)
        assert table.match(router, is_echo_reply=False, privileged=True) is None
        table.discard(5, 0, "192.0.2.1")
        assert table.match(router, is_echo_reply=False, privileged=True) is second
        assert len(table) == 1
    finally:
        loop.close()

class LoopbackIcmpSocket(ICMPv4Socket):
    """
    icmplib's IPv4 socket with a UDP socket on 127.0.0.1 underneath, so the
    library's own packet parsing runs without raw-socket privileges.
    Outgoing requests go to `on_send(sock, request)` instead of the wire.
    """

    def __init__(self, on_send):
        self.on_send = on_send
        super().__init__(privileged=True)

    def _create_socket(self, type):
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind(("127.0.0.1", 0))
        return sock

    def send(self, request):
        request._time = time.time()
        self.on_send(self, request)

def echo_reply_packet(id, sequence, type=0):
    # IPv4 header, then the ICMP header and a 56-byte payload
    return bytes(20) + struct.pack("!BBHHH", type, 0, 0, id, sequence) + bytes(56)

@pytest.fixture
def peer():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    yield sock
    sock.close()

def loopback_client(peer, *leading_packets):
    """Client whose every request is answered from 127.0.0.1, after `leading_packets`."""
    def on_send(icmp_sock, request):
        target = icmp_sock.sock.getsockname()
        for packet in leading_packets:
            peer.sendto(packet, target)
        peer.sendto(echo_reply_packet(request.id, request.sequence), target)

    return IcmpClient(
        Family.IPV4,
        poll_timeout=0.05,
        socket_factory=lambda family, privileged: IcmpTransport(LoopbackIcmpSocket(on_send)),
    )

def test_transport_keeps_the_sender_of_parsed_packets(peer):
    transport = IcmpTransport(LoopbackIcmpSocket(lambda sock, request: None))

    async def main():
        peer.sendto(echo_reply_packet(0x1234, 7), transport._icmp_sock.sock.getsockname())
        return await transport.receive(1.0)

    try:
        reply = asyncio.run(main())
    finally:
        transport.close()
    assert reply.source == "127.0.0.1"
    assert (reply.id, reply.sequence, reply.type) == (0x1234, 7, 0)

def test_transport_times_out_and_reports_closed_socket():
    transport = IcmpTransport(LoopbackIcmpSocket(lambda sock, request: None))
    with pytest.raises(TimeoutExceeded):
        asyncio.run(transport.receive(0.05))
    transport.close()
    with pytest.raises(SocketUnavailableError):
        asyncio.run(transport.receive(0.05))

def test_parsed_replies_complete_the_exchange(peer):
    client = loopback_client(peer)

    async def main():
        async with client:
            with client.session("127.0.0.1") as session:
                return [await session.ping(sequence, timeout=1.0) for sequence in range(3)]

    rtts = asyncio.run(main())
    assert len(rtts) == 3
    assert all(rtt >= 0 for rtt in rtts)

def test_undecodable_packets_are_skipped(peer):
    client = loopback_client(peer, b"\x45\x00", b"")

    async def main():
        async with client:
            with client.session("127.0.0.1") as session:
                first = await session.ping(0, timeout=1.0)
                second = await session.ping(1, timeout=1.0)
            return first, second

    assert all(rtt >= 0 for rtt in asyncio.run(main()))

def test_reply_that_cannot_be_dispatched_does_not_stop_the_reader():
    # The first reply carries a source that is not an address.
    client, _ = open_client(lambda request: [make_reply(request, source="not-an-address"), make_reply(request)])

    async def main():
        async with client:
            with client.session("192.0.2.1") as session:
                first = await session.ping(0, timeout=1.0)
                second = await session.ping(1, timeout=1.0)
            return first, second

    assert asyncio.run(main()) == (pytest.approx(12.0), pytest.approx(12.0))

def test_reply_without_sender_matches_on_identifier():
    client, _ = open_client(lambda request: [])

    async def main():
        async with client:
            with client.session("192.0.2.1") as session:
                task = asyncio.create_task(session.ping(0, timeout=1.0))
                await asyncio.sleep(0)
                reply = ICMPReply(source=None, family=4, id=session.identifier, sequence=0,
                                  type=0, code=0, bytes_received=64, time=time.time())
                assert client.dispatch(reply)
                return await task

    assert asyncio.run(main()) is not None

def test_close_logs_a_crashed_reader(caplog):
    client, sockets = open_client(lambda request: [])

    async def crash():
        raise RuntimeError("reader crashed")

    async def main():
        await client.open()
        original = client._reader
        original.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await original
        client._reader = asyncio.create_task(crash())
        await asyncio.sleep(0)
        await client.close()

    with caplog.at_level(logging.ERROR, logger="pingrank.scan.icmp.client"):
        asyncio.run(main())
    assert "reader crashed" in caplog.text
    assert sockets[0].closed
