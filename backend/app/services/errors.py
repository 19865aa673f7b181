"""
Match lifecycle error taxonomy.

Precondition failures (not found, already started, already completed) are
user-actionable and surface to the caller. Store failures on advisory steps
are logged and swallowed by the services that raise them.
"""
from typing import Any, Optional


class LifecycleError(Exception):
    """Base class for every error raised by the lifecycle services."""


class MatchNotFound(LifecycleError):
    def __init__(self, match_id: Any):
        self.match_id = match_id
        super().__init__(f"Match {match_id} not found")


class ResourceNotFound(LifecycleError):
    def __init__(self, kind: str, resource_id: Any):
        self.kind = kind
        self.resource_id = resource_id
        super().__init__(f"{kind.capitalize()} {resource_id} not found")


class AlreadyStarted(LifecycleError):
    def __init__(self, match_id: Any):
        self.match_id = match_id
        super().__init__(f"Match {match_id} has already been started")


class AlreadyCompleted(LifecycleError):
    def __init__(self, match_id: Any):
        self.match_id = match_id
        super().__init__(f"Match {match_id} has already been completed")


class MalformedTimestamp(LifecycleError):
    def __init__(self, raw: Any):
        self.raw = raw
        super().__init__(f"Malformed timestamp: {raw!r}")


class MatchCodeInvalid(LifecycleError):
    def __init__(self, match_id: Any):
        self.match_id = match_id
        super().__init__(f"Match code for match {match_id} has been invalidated")


class InvalidResult(LifecycleError):
    pass


class ConditionFailed(LifecycleError):
    """A conditional write found the row no longer in the expected state."""

    def __init__(self, what: str, conditions: Optional[dict] = None):
        self.what = what
        self.conditions = conditions or {}
        super().__init__(f"Condition failed on {what}: {self.conditions}")


class StoreError(LifecycleError):
    """The store rejected or failed a read/write."""


class StoreUnavailable(StoreError):
    """The store could not be reached at all."""
