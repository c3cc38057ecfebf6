"""UDP peers whose reads are awaited through an :class:`IoScheduler`."""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from typing import Any, Union

from cokit.io_scheduler import IoScheduler
from cokit.poll import PollOp, PollStatus

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class UdpNotBoundError(RuntimeError):
    """Raised when receiving on a peer that was not bound to a local address."""


@dataclass(frozen=True, order=True)
class PeerInfo:
    """The address and port of a UDP peer."""

    address: IpAddress = ipaddress.ip_address("127.0.0.1")
    port: int = 8080

    def __post_init__(self) -> None:
        if not isinstance(self.address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            object.__setattr__(self, "address", ipaddress.ip_address(self.address))
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port out of range: {self.port}")

    @property
    def family(self) -> int:
        """The socket address family matching the address."""
        return socket.AF_INET6 if self.address.version == 6 else socket.AF_INET


class UdpPeer:
    """A non-blocking UDP socket driven by an :class:`IoScheduler`.

    Without ``bind`` the peer can only send.  Given ``bind`` it is bound to
    that local address and port and can also receive.
    """

    def __init__(
        self,
        scheduler: IoScheduler,
        bind: PeerInfo | None = None,
        family: int = socket.AF_INET,
    ) -> None:
        if scheduler is None:
            raise ValueError("udp_peer requires a scheduler")
        self._scheduler = scheduler
        if bind is not None:
            family = bind.family
        self._socket = socket.socket(family, socket.SOCK_DGRAM)
        self._socket.setblocking(False)
        self._bound = False
        if bind is not None:
            try:
                self._socket.bind((str(bind.address), bind.port))
            except OSError:
                self._socket.close()
                raise
            self._bound = True

    def __enter__(self) -> UdpPeer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def fileno(self) -> int:
        """The underlying socket's descriptor."""
        return self._socket.fileno()

    async def poll(self, op: PollOp, timeout: float = 0.0) -> PollStatus:
        """Wait until the socket is ready for ``op``; zero timeout waits forever.

        Polling an unbound peer for reading never becomes ready.
        """
        return await self._scheduler.poll(self._socket, op, timeout)

    def sendto(self, peer_info: PeerInfo, data: Any) -> bytes:
        """Send ``data`` to ``peer_info`` and return the bytes that were not sent.

        Socket errors are raised as :class:`OSError`.
        """
        view = memoryview(data).cast("B")
        if len(view) == 0:
            return b""
        sent = self._socket.sendto(view, (str(peer_info.address), peer_info.port))
        return bytes(view[sent:])

    def recvfrom(self, size: int) -> tuple[PeerInfo, bytes]:
        """Receive one datagram of at most ``size`` bytes and who sent it.

        Raises :class:`UdpNotBoundError` if the peer was not bound, and
        :class:`BlockingIOError` if no datagram is waiting.
        """
        if not self._bound:
            raise UdpNotBoundError("udp peer must be bound to receive packets")
        data, address = self._socket.recvfrom(size)
        return PeerInfo(ipaddress.ip_address(address[0]), address[1]), data

    def close(self) -> None:
        """Close the socket; later calls do nothing."""
        self._socket.close()