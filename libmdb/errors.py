"""libmdb.errors

Exception taxonomy shared by the mdb and OBJ codecs.

Every failure that should abort the current file (and only the current file)
derives from MdbError, so batch drivers can catch one type at the file
boundary and move on.
"""

from __future__ import annotations


class MdbError(RuntimeError):
    pass


class MdbReadError(MdbError):
    """Truncated or malformed binary data."""


class MdbWriteError(MdbError):
    """Model data that cannot be encoded (bad indices, missing points)."""


class CapacityError(MdbError):
    """A count does not fit the 16-bit index space of the binary format."""
