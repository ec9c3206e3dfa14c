import asyncio
import socket

import pytest
import pytest_asyncio
from pyasn1.codec.ber import encoder
from pysnmp.proto import api

from traplistener.oid import OID
from traplistener.packet import SNMP_TRAP_OID, SYS_UPTIME

OID_COLD_START = ".1.3.6.1.6.3.1.1.5.1"
OID_LINK_DOWN = ".1.3.6.1.6.3.1.1.5.3"
OID_SYSNAME_0 = ".1.3.6.1.2.1.1.5.0"
OID_IFINDEX_1 = ".1.3.6.1.2.1.2.2.1.1.1"
OID_CISCO = ".1.3.6.1.4.1.9"


def build_v2c_notification(
    trap_oid: str = OID_COLD_START,
    variables=None,
    uptime: int = 4242,
    request_id: int = 1001,
    community: str = "public",
    inform: bool = False,
) -> bytes:
    """Encodes an SNMPv2c trap (or inform) message in the same way an agent would put it on the wire"""
    p_mod = api.PROTOCOL_MODULES[api.SNMP_VERSION_2C]
    pdu = p_mod.InformRequestPDU() if inform else p_mod.TrapPDU()
    p_mod.apiTrapPDU.set_defaults(pdu)
    p_mod.apiPDU.set_request_id(pdu, request_id)
    var_binds = [
        (p_mod.ObjectIdentifier(tuple(SYS_UPTIME)), p_mod.TimeTicks(uptime)),
        (p_mod.ObjectIdentifier(tuple(SNMP_TRAP_OID)), p_mod.ObjectIdentifier(tuple(OID(trap_oid)))),
    ]
    for oid, value in variables or []:
        var_binds.append((p_mod.ObjectIdentifier(tuple(OID(oid))), value))
    p_mod.apiTrapPDU.set_varbinds(pdu, var_binds)

    message = p_mod.Message()
    p_mod.apiMessage.set_defaults(message)
    p_mod.apiMessage.set_community(message, community)
    p_mod.apiMessage.set_pdu(message, pdu)
    return encoder.encode(message)


def build_v1_trap(
    enterprise: str = OID_CISCO,
    generic_trap: int = 6,
    specific_trap: int = 42,
    timestamp: int = 12345,
    variables=None,
    community: str = "public",
) -> bytes:
    """Encodes an SNMPv1 Trap-PDU message"""
    p_mod = api.PROTOCOL_MODULES[api.SNMP_VERSION_1]
    pdu = p_mod.TrapPDU()
    p_mod.apiTrapPDU.set_defaults(pdu)
    p_mod.apiTrapPDU.set_enterprise(pdu, tuple(OID(enterprise)))
    p_mod.apiTrapPDU.set_generic_trap(pdu, generic_trap)
    p_mod.apiTrapPDU.set_specific_trap(pdu, specific_trap)
    p_mod.apiTrapPDU.set_timestamp(pdu, timestamp)
    var_binds = [(p_mod.ObjectIdentifier(tuple(OID(oid))), value) for oid, value in variables or []]
    p_mod.apiTrapPDU.set_varbinds(pdu, var_binds)

    message = p_mod.Message()
    p_mod.apiMessage.set_defaults(message)
    p_mod.apiMessage.set_community(message, community)
    p_mod.apiMessage.set_pdu(message, pdu)
    return encoder.encode(message)


def build_v2c_get_request(community: str = "public") -> bytes:
    """Encodes an SNMPv2c GetRequest, a valid SNMP message that is not a notification"""
    p_mod = api.PROTOCOL_MODULES[api.SNMP_VERSION_2C]
    pdu = p_mod.GetRequestPDU()
    p_mod.apiPDU.set_defaults(pdu)
    p_mod.apiPDU.set_varbinds(pdu, [(p_mod.ObjectIdentifier(tuple(OID(OID_SYSNAME_0))), None)])

    message = p_mod.Message()
    p_mod.apiMessage.set_defaults(message)
    p_mod.apiMessage.set_community(message, community)
    p_mod.apiMessage.set_pdu(message, pdu)
    return encoder.encode(message)


@pytest.fixture
def v2c_trap() -> bytes:
    p_mod = api.PROTOCOL_MODULES[api.SNMP_VERSION_2C]
    yield build_v2c_notification(
        trap_oid=OID_LINK_DOWN,
        variables=[
            (OID_IFINDEX_1, p_mod.Integer(1)),
            (OID_SYSNAME_0, p_mod.OctetString("example-gw")),
        ],
    )


@pytest.fixture
def v2c_inform() -> bytes:
    yield build_v2c_notification(request_id=2002, inform=True)


@pytest.fixture
def v1_trap() -> bytes:
    p_mod = api.PROTOCOL_MODULES[api.SNMP_VERSION_1]
    yield build_v1_trap(variables=[(OID_SYSNAME_0, p_mod.OctetString("example-gw"))])


@pytest.fixture
def get_request() -> bytes:
    yield build_v2c_get_request()


@pytest.fixture
def v3_message() -> bytes:
    # A SEQUENCE containing only the msgVersion INTEGER 3, which is as far as a version check reads
    yield b"\x30\x03\x02\x01\x03"


@pytest.fixture
def malformed_datagram() -> bytes:
    yield b"this is not an SNMP message"


@pytest.fixture
def received():
    """A list that collects every (packet, source) pair passed to the `collector` handler"""
    yield []


@pytest.fixture
def collector(received):
    def handler(packet, source):
        received.append((packet, source))

    yield handler


@pytest.fixture
def sender():
    """A UDP socket on localhost that tests can send datagrams from"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    yield sock
    sock.close()


@pytest.fixture
def wait_until():
    async def _wait_until(predicate, timeout: float = 2.0):
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.01)

    yield _wait_until


@pytest_asyncio.fixture
async def start_listener():
    """Yields a function that runs a TrapListener in a background task, returning once its socket is bound.

    Every listener started this way is closed when the test is done.
    """
    started = []

    async def _start_listener(listener, address: str = "127.0.0.1:0") -> asyncio.Task:
        task = asyncio.create_task(listener.listen(address))
        started.append((listener, task))
        await asyncio.wait_for(listener.listening.wait(), timeout=2.0)
        return task

    yield _start_listener

    for listener, task in started:
        listener.close()
        await asyncio.gather(task, return_exceptions=True)


@pytest.fixture
def mangled_trap() -> bytes:
    """A corrupted trap that once made pyasn1 raise TypeError rather than a decoding error"""
    yield bytes.fromhex("74270201000406707562576963a41a06062b0601040109400476000001020106020166430230393000")
