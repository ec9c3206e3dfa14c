"""Trap handlers, the callables that receive every trap a listener picks up"""

import logging
from typing import Awaitable, Callable, Optional

from traplistener.packet import TrapPacket, TrapSource

_logger = logging.getLogger(__name__)

TrapHandler = Callable[[TrapPacket, TrapSource], Optional[Awaitable[None]]]
"""A handler receives a decoded packet and the address it was sent from.

Plain functions are called directly from the receive loop.  If calling the handler returns an awaitable, it is
awaited before the next datagram is read.
"""


def log_trap(packet: TrapPacket, source: TrapSource) -> None:
    """Trap handler that just logs incoming traps.  Used when a listener is set up without a handler.

    Traps are logged at INFO level on the `traplistener.handlers` logger, so nothing is printed unless logging has
    been configured to show INFO messages, e.g. with `logging.basicConfig(level=logging.INFO)`.
    """
    _logger.info("got trap data from %s: %s", source, packet)
