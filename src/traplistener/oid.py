"""OID manipulation"""

SEPARATOR = "."


class OID(tuple):
    """Object IDentifier represented in tuple form.

    Accepts dotted strings, bytes, or any iterable of integers, which includes the ObjectIdentifier/ObjectName
    values that pyasn1 produces when decoding a trap:

      >>> snmpTrapOID = OID('.1.3.6.1.6.3.1.1.4.1')
      >>> snmpTrapOID
      OID('.1.3.6.1.6.3.1.1.4.1')
      >>> snmpTrapOID + '0'
      OID('.1.3.6.1.6.3.1.1.4.1.0')
      >>> snmpTrapOID.is_a_prefix_of('.1.3.6.1.6.3.1.1.4.1.0')
      True
      >>> str(OID((1, 3, 6)))
      '.1.3.6'

    """

    def __new__(cls, oid=()):
        if isinstance(oid, OID):
            return oid
        if isinstance(oid, bytes):
            oid = oid.decode("ascii")
        if isinstance(oid, str):
            oid = oid.strip(SEPARATOR)
            oid = map(int, oid.split(SEPARATOR)) if oid else ()
        return tuple.__new__(cls, (int(i) for i in oid))

    def __str__(self):
        return SEPARATOR + SEPARATOR.join(str(i) for i in self)

    def __repr__(self):
        return f"OID({str(self)!r})"

    def __add__(self, other):
        return OID(tuple(self) + tuple(OID(other)))

    def is_a_prefix_of(self, other) -> bool:
        """Returns True if this OID is a proper prefix of other"""
        other = OID(other)
        return len(other) > len(self) and other[: len(self)] == self
