# repairhub/core/gamification/exceptions.py

from __future__ import annotations


class GamificationError(Exception):
    """Base class for errors raised by the gamification engine."""


class StorageUnavailable(GamificationError):
    """A read or write against the backing store failed."""

    def __init__(self, operation: str, detail: str | None = None) -> None:
        self.operation = operation
        message = f"Storage operation '{operation}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SyncConflict(GamificationError):
    """Concurrent writers kept changing the stats row; the sync was not applied."""

    def __init__(self, customer_id: str, centro_id: str, attempts: int) -> None:
        self.customer_id = customer_id
        self.centro_id = centro_id
        self.attempts = attempts
        super().__init__(
            f"Could not record sync for customer '{customer_id}' at centro '{centro_id}' "
            f"after {attempts} attempts"
        )


class UnknownAchievement(GamificationError):
    def __init__(self, achievement_type: str) -> None:
        self.achievement_type = achievement_type
        super().__init__(f"Unknown achievement type '{achievement_type}'")
