# pingrank/scan/icmp/client.py
import asyncio
import ipaddress
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from icmplib import ICMPv4Socket, ICMPv6Socket, ICMPRequest, ICMPReply
from icmplib.exceptions import ICMPLibError, ICMPSocketError, SocketUnavailableError, TimeoutExceeded
from icmplib.sockets import ICMPSocket

from pingrank.core.errors import SessionConstructionFailure
from pingrank.core.models import Family

logger = logging.getLogger(__name__)

ECHO_REPLY_TYPES = {Family.IPV4: 0, Family.IPV6: 129}
ECHO_REQUEST_TYPES = {Family.IPV4: 8, Family.IPV6: 128}
MAX_IDENTIFIER = 0xFFFF
IDENTIFIER_DRAWS = 32

SocketFactory = Callable[[Family, bool], Any]
RECEIVE_BUFFER = 1024

def normalize_address(address: Optional[str]) -> Optional[str]:
    """Canonical text form used as the demultiplexing key (drops any IPv6 zone)."""
    if address is None:
        return None
    return str(ipaddress.ip_address(address.split("%", 1)[0]))

class IcmpTransport:
    """
    Non-blocking wrapper around an icmplib socket that keeps the sender of
    every reply. icmplib's AsyncSocket drops it, and replies from different
    hosts sharing one socket can only be told apart with it.
    """

    def __init__(self, icmp_sock: ICMPSocket):
        self._icmp_sock = icmp_sock
        icmp_sock.blocking = False

    def send(self, request: ICMPRequest) -> None:
        self._icmp_sock.send(request)

    async def receive(self, timeout: float) -> Optional[ICMPReply]:
        """Next reply on the socket, or None for a packet icmplib cannot decode."""
        sock = self._icmp_sock.sock
        if sock is None:
            raise SocketUnavailableError()
        loop = asyncio.get_running_loop()
        try:
            packet, sender = await asyncio.wait_for(loop.sock_recvfrom(sock, RECEIVE_BUFFER), timeout)
        except asyncio.TimeoutError:
            raise TimeoutExceeded(timeout) from None
        except OSError as e:
            raise ICMPSocketError(str(e)) from None
        return self._icmp_sock._parse_reply(packet=packet, source=sender[0], current_time=time.time())

    def close(self) -> None:
        self._icmp_sock.close()

def open_icmp_socket(family: Family, privileged: bool) -> IcmpTransport:
    sock_cls = ICMPv4Socket if family is Family.IPV4 else ICMPv6Socket
    return IcmpTransport(sock_cls(privileged=privileged))

class PendingTable:
    """
    Outstanding echo requests of every session sharing one socket.

    Echo replies are matched on (identifier, sequence, source). Error replies
    (unreachable, time exceeded) come from a router, so they are matched on
    (identifier, sequence) alone when that is unambiguous. Datagram sockets
    let the kernel rewrite the identifier, so without privileges a reply may
    also be matched on (source, sequence).
    """

    def __init__(self):
        self._by_key: Dict[Tuple[int, int], Dict[str, asyncio.Future]] = {}
        self._by_source: Dict[Tuple[str, int], List[asyncio.Future]] = {}

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._by_key.values())

    def add(self, identifier: int, sequence: int, address: str, future: asyncio.Future) -> None:
        self._by_key.setdefault((identifier, sequence), {})[address] = future
        self._by_source.setdefault((address, sequence), []).append(future)

    def discard(self, identifier: int, sequence: int, address: str) -> None:
        bucket = self._by_key.get((identifier, sequence))
        if bucket is None or address not in bucket:
            return
        future = bucket.pop(address)
        if not bucket:
            del self._by_key[(identifier, sequence)]
        waiting = self._by_source[(address, sequence)]
        waiting.remove(future)
        if not waiting:
            del self._by_source[(address, sequence)]

    def match(self, reply: ICMPReply, is_echo_reply: bool, privileged: bool) -> Optional[asyncio.Future]:
        source = normalize_address(reply.source)
        bucket = self._by_key.get((reply.id, reply.sequence), {})
        if source in bucket:
            return bucket[source]
        # Without a sender only the identifier can vouch for the reply.
        if (source is None or not is_echo_reply) and len(bucket) == 1:
            return next(iter(bucket.values()))
        if not privileged and source is not None:
            waiting = self._by_source.get((source, reply.sequence), [])
            if len(waiting) == 1:
                return waiting[0]
        return None

class EchoSession:
    """One host's view of a shared IcmpClient, bound to a random identifier."""

    def __init__(self, client: "IcmpClient", address: str, identifier: int):
        self.client = client
        self.address = address
        self.identifier = identifier

    async def ping(self, sequence: int, timeout: float, payload: bytes = bytes(56)) -> float:
        """Round trip in milliseconds. Raises on timeout or an ICMP error reply."""
        return await self.client.echo(self.address, self.identifier, sequence, timeout, payload)

    def close(self) -> None:
        self.client.release(self.address, self.identifier)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

class IcmpClient:
    """
    A shared ICMP endpoint for one address family.

    Owns a single socket and a background task that reads every reply and
    hands it to the exchange waiting for it. Safe for concurrent use by any
    number of sessions running on the same event loop.
    """

    def __init__(
        self,
        family: Family,
        privileged: bool = True,
        poll_timeout: float = 1.0,
        socket_factory: SocketFactory = open_icmp_socket,
    ):
        self.family = family
        self.privileged = privileged
        self.poll_timeout = poll_timeout
        self._socket_factory = socket_factory
        self._socket = None
        self._reader: Optional[asyncio.Task] = None
        self._pending = PendingTable()
        self._identifiers: Dict[str, Set[int]] = {}

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    async def open(self) -> "IcmpClient":
        if self.is_open:
            return self
        try:
            self._socket = self._socket_factory(self.family, self.privileged)
        except (ICMPLibError, OSError) as e:
            raise SessionConstructionFailure(
                f"Could not open {self.family.value} ICMP socket "
                f"({'privileged' if self.privileged else 'unprivileged'}): {e}"
            ) from e
        self._reader = asyncio.create_task(self._receive_loop(), name=f"icmp-{self.family.value}-reader")
        logger.debug(f"Opened {self.family.value} ICMP client (privileged={self.privileged})")
        return self

    async def close(self) -> None:
        if self._reader is not None:
            reader, self._reader = self._reader, None
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
            except Exception as e:
                # Results gathered so far stay valid; only the reader is lost.
                logger.error(f"{self.family.value} ICMP reader had stopped with {e!r}")
        if self._socket is not None:
            self._socket.close()
            self._socket = None
            logger.debug(f"Closed {self.family.value} ICMP client")

    async def __aenter__(self) -> "IcmpClient":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def session(self, address: str) -> EchoSession:
        """Creates an echo session with an identifier no other session uses for this address."""
        if not self.is_open:
            raise SessionConstructionFailure(f"{self.family.value} ICMP client is not open")
        try:
            parsed = ipaddress.ip_address(address)
        except ValueError as e:
            raise SessionConstructionFailure(f"Cannot ping '{address}': {e}") from None
        if parsed.max_prefixlen != self.family.width:
            raise SessionConstructionFailure(f"{address} is not an {self.family.value} address")

        address = str(parsed)
        in_use = self._identifiers.setdefault(address, set())
        for _ in range(IDENTIFIER_DRAWS):
            identifier = random.randint(0, MAX_IDENTIFIER)
            if identifier not in in_use:
                in_use.add(identifier)
                return EchoSession(self, address, identifier)
        raise SessionConstructionFailure(f"No free echo identifier for {address}")

    def release(self, address: str, identifier: int) -> None:
        in_use = self._identifiers.get(address)
        if in_use is None:
            return
        in_use.discard(identifier)
        if not in_use:
            del self._identifiers[address]

    async def echo(self, address: str, identifier: int, sequence: int, timeout: float, payload: bytes) -> float:
        if not self.is_open:
            raise SocketUnavailableError()
        request = ICMPRequest(destination=address, id=identifier, sequence=sequence, payload=payload)
        future = asyncio.get_running_loop().create_future()
        self._pending.add(identifier, sequence, address, future)
        try:
            self._socket.send(request)
            reply = await asyncio.wait_for(future, timeout)
        finally:
            self._pending.discard(identifier, sequence, address)
        reply.raise_for_status()
        return (reply.time - request.time) * 1000

    def dispatch(self, reply: ICMPReply) -> bool:
        """Completes the exchange the reply belongs to. Returns False for strays."""
        if reply.type == ECHO_REQUEST_TYPES[self.family]:
            return False
        is_echo_reply = reply.type == ECHO_REPLY_TYPES[self.family]
        future = self._pending.match(reply, is_echo_reply, self.privileged)
        if future is None or future.done():
            logger.debug(f"Dropping stray ICMP reply from {reply.source} (id={reply.id}, seq={reply.sequence}, type={reply.type})")
            return False
        future.set_result(reply)
        return True

    async def _receive_loop(self) -> None:
        while True:
            try:
                reply = await self._socket.receive(self.poll_timeout)
            except TimeoutExceeded:
                continue
            except SocketUnavailableError:
                logger.debug(f"{self.family.value} ICMP socket went away, stopping reader")
                return
            except (ICMPLibError, OSError) as e:
                logger.debug(f"Error while receiving on {self.family.value} ICMP socket: {e}")
                await asyncio.sleep(0.01)
                continue
            except Exception:
                logger.warning(f"Unexpected error while receiving on {self.family.value} ICMP socket", exc_info=True)
                await asyncio.sleep(0.01)
                continue

            if reply is None:
                logger.debug(f"Dropping undecodable packet on {self.family.value} ICMP socket")
                continue
            try:
                self.dispatch(reply)
            except Exception:
                logger.warning(f"Could not dispatch ICMP reply from {reply.source}", exc_info=True)
