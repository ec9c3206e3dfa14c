"""The SNMP trap listener: a UDP receive loop that hands every received datagram to a trap handler.

Traps are asynchronous: an agent sends an unsolicited notification without expecting it to be received by
anyone.  There is consequently no correlation between what comes in and what goes out, and a listener will
accept anything that arrives on its bound port until it is told to stop.
"""

import asyncio
import logging
import socket
from dataclasses import dataclass
from ipaddress import ip_address
from typing import Any, Optional, Tuple

from traplistener.config import (
    Configuration,
    DecodeConfiguration,
    DispatchConfiguration,
    ReadErrorPolicy,
    default_configuration,
)
from traplistener.decoder import Decoder, decode
from traplistener.dispatch import TrapDispatchQueue, invoke_handler
from traplistener.handlers import TrapHandler, log_trap
from traplistener.packet import TrapSource

_logger = logging.getLogger(__name__)

# Datagrams larger than this are truncated
MAX_DATAGRAM_SIZE = 4096


class ListenerError(Exception):
    """Base class for errors that stop a trap listener"""


class AddressResolutionError(ListenerError):
    """Raised if the listen address is malformed or cannot be resolved"""


class BindError(ListenerError):
    """Raised if a UDP socket cannot be created or bound to the listen address"""


class ReadError(ListenerError):
    """Raised if reading from the socket failed more times in a row than the read error policy allows"""


@dataclass(frozen=True)
class ListenerSettings:
    """The fully resolved settings a trap listener runs with"""

    handler: TrapHandler
    decoder: Decoder
    logger: logging.Logger
    address: str
    decoding: DecodeConfiguration
    read_errors: ReadErrorPolicy
    dispatch: DispatchConfiguration

    @classmethod
    def build(
        cls,
        handler: Optional[TrapHandler] = None,
        config: Optional[Configuration] = None,
        logger: Optional[logging.Logger] = None,
        decoder: Optional[Decoder] = None,
    ) -> "ListenerSettings":
        """Returns settings where every omitted value has been replaced by its default"""
        config = config if config is not None else default_configuration()
        return cls(
            handler=handler or log_trap,
            decoder=decoder or decode,
            logger=logger or _logger,
            address=config.address,
            decoding=config.decoding,
            read_errors=config.read_errors,
            dispatch=config.dispatch,
        )


class TrapListener:
    """Receives SNMP traps on a UDP port and passes them on to a trap handler.

    Omitted arguments are replaced with their defaults when `listen()` is called: traps are logged by `log_trap`,
    and the configuration is `default_configuration()`.  Changing these attributes while the listener is running
    has no effect until the next call to `listen()`.
    """

    def __init__(
        self,
        handler: Optional[TrapHandler] = None,
        config: Optional[Configuration] = None,
        logger: Optional[logging.Logger] = None,
        decoder: Optional[Decoder] = None,
    ):
        self.handler = handler
        self.config = config
        self.logger = logger
        self.decoder = decoder
        self.listening = asyncio.Event()
        self.local_address: Optional[Tuple[str, int]] = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False

    async def listen(self, address: Optional[str] = None) -> None:
        """Listens on the UDP address `address` and calls the trap handler for every datagram received.

        `address` is a host:port string, where IPv6 hosts must be enclosed in brackets.  If omitted, the address
        from the configuration is used.  This only returns once `close()` has been called.

        A listener runs one `listen()` at a time; use separate listeners to listen on several addresses.

        Raises AddressResolutionError or BindError if the socket could not be set up, ReadError if the read
        error policy gives up, and ListenerError if this listener is already listening.
        """
        if self._task is not None:
            raise ListenerError("this listener is already listening")
        settings = ListenerSettings.build(self.handler, self.config, self.logger, self.decoder)
        address = address if address is not None else settings.address

        self._task = asyncio.current_task()
        self._closing = False
        try:
            await self._listen(address, settings)
        except asyncio.CancelledError:
            if not self._closing:
                raise
            asyncio.current_task().uncancel()
            _logger.info("Stopped listening for SNMP traps on %s", address)
        finally:
            self._task = None

    async def _listen(self, address: str, settings: ListenerSettings):
        loop = asyncio.get_running_loop()
        family, sockaddr = await resolve_address(address, loop)
        sock = _open_socket(family, sockaddr)

        queue = None
        try:
            self.local_address = sock.getsockname()[:2]
            _logger.info("Listening for incoming SNMP traps on %r", self.local_address)
            if settings.dispatch.mode == "queued":
                queue = TrapDispatchQueue(
                    settings.handler, settings.dispatch.queue_size, settings.dispatch.workers, settings.logger
                )
                queue.start()
            self.listening.set()
            await self._receive_loop(sock, settings, queue, loop)
        finally:
            self.listening.clear()
            if queue:
                await queue.stop()
            sock.close()

    def close(self):
        """Stops a running listener, making `listen()` return"""
        if self._task and not self._task.done():
            self._closing = True
            self._task.cancel()

    async def _receive_loop(
        self, sock: socket.socket, settings: ListenerSettings, queue: Optional[TrapDispatchQueue], loop
    ):
        consecutive_errors = 0
        while True:
            try:
                data, remote = await loop.sock_recvfrom(sock, MAX_DATAGRAM_SIZE)
            except OSError as error:
                consecutive_errors += 1
                await self._read_failed(error, consecutive_errors, settings)
                continue
            consecutive_errors = 0
            await self._datagram_received(data, remote, settings, queue)

    async def _read_failed(self, error: OSError, consecutive_errors: int, settings: ListenerSettings):
        if settings.decoding.logging_enabled:
            settings.logger.error("TrapListener: error in read: %s", error)
        policy = settings.read_errors
        if policy.is_exhausted(consecutive_errors):
            raise ReadError(f"giving up after {consecutive_errors} consecutive read errors") from error
        # even without a delay, yield to the event loop so the listener can still be closed
        await asyncio.sleep(policy.delay_for(consecutive_errors))

    async def _datagram_received(
        self, data: bytes, remote: Any, settings: ListenerSettings, queue: Optional[TrapDispatchQueue]
    ):
        source = TrapSource(ip_address(remote[0]), remote[1])
        packet, error = settings.decoder(data)
        if error:
            if settings.decoding.logging_enabled:
                settings.logger.warning("TrapListener: could not decode trap from %s: %s", source, error)
            if not settings.decoding.dispatch_on_decode_error:
                return

        if queue:
            queue.offer(packet, source)
        else:
            await invoke_handler(settings.handler, packet, source, settings.logger)


def split_address(address: str) -> Tuple[str, int]:
    """Splits a host:port string into a host and a port number.

    IPv6 hosts must be enclosed in brackets.  The port can be given as a number or as a UDP service name.
    An empty host means all local addresses.
    """
    host, separator, port = address.rpartition(":")
    if not separator:
        raise AddressResolutionError(f"missing port in address {address!r}")
    if host.startswith("[") or host.endswith("]"):
        if not (host.startswith("[") and host.endswith("]")):
            raise AddressResolutionError(f"missing bracket in address {address!r}")
        host = host[1:-1]
    elif ":" in host:
        raise AddressResolutionError(f"too many colons in address {address!r}")

    if port.isascii() and port.isdecimal():
        port_number = int(port)
    else:
        try:
            port_number = socket.getservbyname(port, "udp")
        except (OSError, UnicodeError):
            raise AddressResolutionError(f"unknown port in address {address!r}")
    if not 0 <= port_number <= 65535:
        raise AddressResolutionError(f"invalid port in address {address!r}")
    return host, port_number


async def resolve_address(address: str, loop: Optional[asyncio.AbstractEventLoop] = None) -> Tuple[int, Any]:
    """Resolves a host:port string to a socket address family and socket address suitable for binding a UDP
    socket.

    Raises AddressResolutionError if the address is malformed or the host name cannot be resolved.
    """
    host, port = split_address(address)
    loop = loop or asyncio.get_running_loop()
    try:
        candidates = await loop.getaddrinfo(
            host or None, port, type=socket.SOCK_DGRAM, proto=socket.IPPROTO_UDP, flags=socket.AI_PASSIVE
        )
    except (socket.gaierror, UnicodeError) as error:
        raise AddressResolutionError(f"could not resolve {address!r}: {error}") from error
    if not candidates:
        raise AddressResolutionError(f"could not resolve {address!r}")
    family, _type, _proto, _canonname, sockaddr = candidates[0]
    return family, sockaddr


def _open_socket(family: int, sockaddr: Any) -> socket.socket:
    """Creates a non-blocking UDP socket bound to sockaddr"""
    sock = None
    try:
        sock = socket.socket(family, socket.SOCK_DGRAM)
        sock.setblocking(False)
        sock.bind(sockaddr)
    except OSError as error:
        if sock:
            sock.close()
        raise BindError(f"could not bind to {sockaddr}: {error}") from error
    return sock


def listen(
    address: str,
    handler: Optional[TrapHandler] = None,
    config: Optional[Configuration] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Listens for traps on `address` in a new event loop, blocking the calling thread.

    This only ever returns by raising an exception, typically because the socket could not be set up.
    """
    listener = TrapListener(handler=handler, config=config, logger=logger)
    asyncio.run(listener.listen(address))
