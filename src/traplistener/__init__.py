"""Receive SNMP traps over UDP and hand them to your own handler"""

from traplistener.config import Configuration, default_configuration, read_configuration
from traplistener.decoder import TrapDecodeError, decode
from traplistener.handlers import TrapHandler, log_trap
from traplistener.listener import (
    AddressResolutionError,
    BindError,
    ListenerError,
    ListenerSettings,
    ReadError,
    TrapListener,
    listen,
)
from traplistener.oid import OID
from traplistener.packet import SnmpVersion, TrapPacket, TrapSource, TrapVarBind

__all__ = [
    "AddressResolutionError",
    "BindError",
    "Configuration",
    "ListenerError",
    "ListenerSettings",
    "OID",
    "ReadError",
    "SnmpVersion",
    "TrapDecodeError",
    "TrapHandler",
    "TrapListener",
    "TrapPacket",
    "TrapSource",
    "TrapVarBind",
    "decode",
    "default_configuration",
    "listen",
    "log_trap",
    "read_configuration",
]
