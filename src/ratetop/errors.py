"""Exceptions raised by ratetop."""


class RatetopError(Exception):
    """Base class for ratetop errors."""


class AcquisitionError(RatetopError):
    """Raw counters could not be read for a key."""

    def __init__(self, key: object, reason: str) -> None:
        super().__init__(f"cannot acquire counters for {key!r}: {reason}")
        self.key = key
        self.reason = reason
