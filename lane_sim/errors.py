from __future__ import annotations


class LaneStateError(ValueError):
    """Base class for writes that would break a lane's slot invariants."""


class CapacityExceeded(LaneStateError):
    pass


class OrderViolation(LaneStateError):
    pass


class InvalidPosition(LaneStateError):
    pass
