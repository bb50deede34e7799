"""
Exceptions raised by the settlement engine.

Every rejected settlement or aggregation call raises one of these instead of
silently skipping work, so callers (API, CLI, scheduler) can report it.
"""


class SettlementError(Exception):
    """Base class for rejected settlement operations"""


class PreconditionFailed(SettlementError):
    """The operation is not allowed in the current state (e.g. match not finished)"""


class NotFound(SettlementError):
    """A referenced record does not exist"""
