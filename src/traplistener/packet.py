"""Data structures describing a received SNMP notification"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from ipaddress import IPv4Address, IPv6Address
from typing import Any, List, NamedTuple, Optional, Union

from traplistener.oid import OID

IPAddress = Union[IPv4Address, IPv6Address]

SYS_UPTIME = OID(".1.3.6.1.2.1.1.3.0")
SNMP_TRAP_OID = OID(".1.3.6.1.6.3.1.1.4.1.0")
# RFC 3584 section 3.1: the SNMPv2 equivalents of the SNMPv1 generic traps live under snmpTraps
SNMP_TRAPS = OID(".1.3.6.1.6.3.1.1.5")
ENTERPRISE_SPECIFIC = 6


class SnmpVersion(IntEnum):
    """The value of the version field of an SNMP message"""

    V1 = 0
    V2C = 1
    V3 = 3


class PduType(str, Enum):
    """The kinds of PDUs the decoder can identify"""

    TRAP_V1 = "trap"
    TRAP_V2 = "snmpV2-trap"
    INFORM = "inform"
    OTHER = "other"


class TrapVarBind(NamedTuple):
    """Describes a single trap varbind, both as decoded by pyasn1 and as a plain Python value"""

    oid: OID
    raw_value: Any
    value: Any


class TrapSource(NamedTuple):
    """The UDP endpoint a trap datagram was received from"""

    address: IPAddress
    port: int

    def __str__(self):
        if self.address.version == 6:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


@dataclass
class TrapPacket:
    """Describes an incoming notification in the simplest possible terms.

    A packet is only as complete as the decoder managed to make it: a datagram that could not be decoded at all
    yields a packet where every field is unset.
    """

    version: Optional[SnmpVersion] = None
    community: Optional[str] = None
    pdu_type: Optional[PduType] = None
    request_id: Optional[int] = None
    # SNMPv1 Trap-PDU fields
    enterprise: Optional[OID] = None
    agent_address: Optional[IPv4Address] = None
    generic_trap: Optional[int] = None
    specific_trap: Optional[int] = None
    timestamp: Optional[int] = None
    variables: List[TrapVarBind] = field(default_factory=list)

    def __str__(self):
        variables = ", ".join(f"{v.oid}={v.raw_value if v.value is None else v.value}" for v in self.variables)
        version = self.version.name.lower() if self.version is not None else "unknown"
        trap_oid = self.trap_oid
        return f"<Trap {version} {trap_oid if trap_oid else 'unknown'}: {variables}>"

    def __contains__(self, oid) -> bool:
        oid = OID(oid)
        return any(var.oid == oid for var in self.variables)

    @property
    def is_empty(self) -> bool:
        """Returns True if nothing at all could be decoded into this packet"""
        return self == TrapPacket()

    def get(self, oid) -> Optional[TrapVarBind]:
        """Returns the first variable binding with the given OID, if any"""
        oid = OID(oid)
        for var in self.variables:
            if var.oid == oid:
                return var

    @property
    def uptime(self) -> Optional[int]:
        """The agent's sysUpTime in hundredths of a second, as reported by the trap"""
        if self.version == SnmpVersion.V1:
            return self.timestamp
        var = self.get(SYS_UPTIME)
        return var.value if var else None

    @property
    def trap_oid(self) -> Optional[OID]:
        """Identifies the notification.

        SNMPv2 notifications carry this in their snmpTrapOID.0 varbind.  For SNMPv1 traps, the value is translated
        from the generic/specific trap codes as described by RFC 3584.
        """
        if self.version == SnmpVersion.V1:
            if self.generic_trap is None:
                return None
            if self.generic_trap == ENTERPRISE_SPECIFIC:
                if self.enterprise is None or self.specific_trap is None:
                    return None
                return self.enterprise + (0, self.specific_trap)
            return SNMP_TRAPS + (self.generic_trap + 1,)

        var = self.get(SNMP_TRAP_OID)
        if var and isinstance(var.value, OID):
            return var.value
        return None
