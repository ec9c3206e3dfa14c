"""Decoding of raw SNMP notification datagrams using PySNMP's protocol API"""

import logging
from ipaddress import ip_address
from typing import Any, Callable, Optional, Tuple, Union

from pyasn1.codec.ber import decoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import univ
from pysnmp.proto import api
from pysnmp.proto.error import ProtocolError

from traplistener.oid import OID
from traplistener.packet import PduType, SnmpVersion, TrapPacket, TrapVarBind

_logger = logging.getLogger(__name__)

DecodeResult = Tuple[TrapPacket, Optional["TrapDecodeError"]]
Decoder = Callable[[bytes], DecodeResult]


class TrapDecodeError(Exception):
    """Raised when a datagram cannot be decoded as an SNMP notification"""


class UnsupportedVersionError(TrapDecodeError):
    """The message uses an SNMP version this decoder cannot handle"""


class UnexpectedPduError(TrapDecodeError):
    """The message is valid SNMP, but does not carry a notification PDU"""


def decode(data: bytes) -> DecodeResult:
    """Decodes a raw datagram into a TrapPacket.

    This never raises on malformed input.  A packet is always returned, filled in as far as decoding got, along
    with the error that stopped it, if any.
    """
    packet = TrapPacket()
    try:
        _decode_into(packet, data)
    except TrapDecodeError as error:
        return packet, error
    except Exception as error:  # noqa
        # pyasn1 does not always report malformed substrate as a PyAsn1Error
        _logger.debug("unexpected error while decoding %r", data, exc_info=True)
        return packet, TrapDecodeError(f"invalid SNMP message: {error!r}")
    return packet, None


def _decode_into(packet: TrapPacket, data: bytes):
    try:
        version = int(api.decodeMessageVersion(data))
    except (PyAsn1Error, ProtocolError) as error:
        raise TrapDecodeError(f"invalid SNMP message: {error}") from error

    try:
        packet.version = SnmpVersion(version)
    except ValueError:
        raise UnsupportedVersionError(f"unknown SNMP version {version}")
    if version not in api.PROTOCOL_MODULES:
        raise UnsupportedVersionError(f"unsupported SNMP version {packet.version.name.lower()}")

    p_mod = api.PROTOCOL_MODULES[version]
    try:
        message, _rest = decoder.decode(data, asn1Spec=p_mod.Message())
        packet.community = bytes(p_mod.apiMessage.get_community(message)).decode("utf-8", errors="replace")
        pdu = p_mod.apiMessage.get_pdu(message)
    except (PyAsn1Error, ProtocolError) as error:
        raise TrapDecodeError(f"invalid {packet.version.name.lower()} message: {error}") from error

    packet.pdu_type = _identify_pdu(version, pdu)
    if packet.pdu_type == PduType.OTHER:
        raise UnexpectedPduError(f"not a notification PDU: {pdu.__class__.__name__}")

    try:
        if packet.pdu_type == PduType.TRAP_V1:
            _decode_v1_trap(packet, p_mod, pdu)
        else:
            packet.request_id = int(p_mod.apiPDU.get_request_id(pdu))
            var_binds = p_mod.apiPDU.get_varbinds(pdu)
            packet.variables = [_make_varbind(name, value) for name, value in var_binds]
    except (PyAsn1Error, ProtocolError, ValueError) as error:
        raise TrapDecodeError(f"invalid {packet.pdu_type.value} PDU: {error}") from error


def _identify_pdu(version: int, pdu: Any) -> PduType:
    if version == api.SNMP_VERSION_1:
        return PduType.TRAP_V1 if pdu.isSameTypeWith(api.v1.TrapPDU()) else PduType.OTHER
    if pdu.isSameTypeWith(api.v2c.SNMPv2TrapPDU()):
        return PduType.TRAP_V2
    if pdu.isSameTypeWith(api.v2c.InformRequestPDU()):
        return PduType.INFORM
    return PduType.OTHER


def _decode_v1_trap(packet: TrapPacket, p_mod: Any, pdu: Any):
    trap_api = p_mod.apiTrapPDU
    packet.enterprise = OID(trap_api.get_enterprise(pdu))
    packet.agent_address = ip_address(bytes(trap_api.get_agent_address(pdu)))
    packet.generic_trap = int(trap_api.get_generic_trap(pdu))
    packet.specific_trap = int(trap_api.get_specific_trap(pdu))
    packet.timestamp = int(trap_api.get_timestamp(pdu))
    packet.variables = [_make_varbind(name, value) for name, value in trap_api.get_varbinds(pdu)]


def _make_varbind(name: Any, raw_value: Any) -> TrapVarBind:
    try:
        value = mib_value_to_python(raw_value)
    except Exception:  # noqa
        _logger.debug("could not convert value of %s: %r", OID(name), raw_value)
        value = None
    return TrapVarBind(OID(name), raw_value, value)


def mib_value_to_python(value: Any) -> Union[str, int, OID, None]:
    """Translates various pyasn1/PySNMP value objects to plainer Python objects, such as strings, integers, IP
    addresses or OIDs.

    SNMPv1 values arrive wrapped in a CHOICE; those are unwrapped first.
    """
    while isinstance(value, univ.Choice):
        value = value.getComponent()

    if isinstance(value, univ.Null):
        return None
    if isinstance(value, univ.Integer):
        return int(value) if not value.namedValues else value.prettyPrint()
    if isinstance(value, univ.OctetString):
        if type(value).__name__ in ("IpAddress", "NetworkAddress"):
            return ip_address(bytes(value))
        if type(value).__name__ == "Opaque":
            return bytes(value).hex()
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            return value.prettyPrint()
    if isinstance(value, univ.ObjectIdentifier):
        return OID(value)
    raise ValueError(f"Could not convert unknown type {type(value)}")
