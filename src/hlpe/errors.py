"""
Exception taxonomy for the HLPE engine.

Input-integrity problems are recovered by skipping the offending record;
protocol problems are logged and the message is dropped. Neither is fatal
to the engine.
"""

from __future__ import annotations


class HlpeError(Exception):
    """Base class for engine errors."""


class SnapshotFormatError(HlpeError):
    """A persisted record could not be parsed into a domain object."""

    def __init__(self, kind: str, message: str, record_id: str | None = None):
        self.kind = kind
        self.record_id = record_id
        where = f"{kind} {record_id}" if record_id else kind
        super().__init__(f"Malformed {where}: {message}")


class ProtocolError(HlpeError):
    """A host message arrived in the wrong shape or the wrong state."""

    def __init__(self, message_type: str | None, reason: str):
        self.message_type = message_type
        self.reason = reason
        super().__init__(f"{message_type or '<missing type>'}: {reason}")
