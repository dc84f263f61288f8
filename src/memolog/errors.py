"""Exception types shared across memolog.

Absence of data (unknown memo id, missing file) is reported through return
values, never raised. Exceptions are reserved for caller misuse.
"""


class MemologError(Exception):
    """Base class for memolog errors."""


class InvalidStateError(MemologError):
    """Operation not allowed in the record's current state.

    Raised for replies to a missing parent, replies across categories and
    restoring a record that is not in the trash.
    """
