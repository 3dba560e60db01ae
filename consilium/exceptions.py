"""Exception hierarchy for the consultation engine."""

from typing import Optional


class ConsiliumError(Exception):
    """Base exception for all consultation errors."""


class RoutingFailure(ConsiliumError):
    """Raised when the triage specialist cannot produce a usable opinion.

    Recovered inside the Router by falling back to default routing.
    The non-success triage opinion, if any, is kept on ``opinion``.
    """

    def __init__(self, reason: str, opinion=None):
        super().__init__(f"Triage failed: {reason}")
        self.reason = reason
        self.opinion = opinion


class SpecialistUnavailable(ConsiliumError):
    """Raised when a selected specialist is not registered."""

    def __init__(self, specialist_id: str):
        super().__init__(f"Specialist '{specialist_id}' is not registered")
        self.specialist_id = specialist_id


class SpecialistTimeout(ConsiliumError):
    """Raised when a specialist call exceeds its deadline."""

    def __init__(self, specialist_id: str, timeout_seconds: float):
        super().__init__(
            f"Specialist '{specialist_id}' did not answer within {timeout_seconds:.1f}s"
        )
        self.specialist_id = specialist_id
        self.timeout_seconds = timeout_seconds


class SpecialistError(ConsiliumError):
    """Raised when a specialist call fails or returns an unusable opinion."""

    def __init__(self, specialist_id: str, reason: str):
        super().__init__(f"Specialist '{specialist_id}' failed: {reason}")
        self.specialist_id = specialist_id
        self.reason = reason


class ConsultationFailed(ConsiliumError):
    """
    Raised when no specialist produced a successful opinion.

    Attributes:
        session: The terminal (failed) consultation session
        responded_specialists: Specialists that returned anything at all
    """

    def __init__(
        self,
        message: str,
        session=None,
        responded_specialists: Optional[list[str]] = None,
    ):
        super().__init__(message)
        self.session = session
        self.responded_specialists = responded_specialists or []


class CacheWriteConflict(ConsiliumError):
    """Raised when a versioned cache commit loses a race for its key."""

    def __init__(self, key: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Cache entry '{key}' is at version {actual_version}, "
            f"expected {expected_version}"
        )
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version


class SessionNotFound(ConsiliumError):
    """Raised when a session id is not known to the cache."""


class SessionNotReady(ConsiliumError):
    """Raised when a milestone arrives for a session that has no plan yet."""


class RecoveryAlreadyCompleted(ConsiliumError):
    """Raised when a final outcome arrives for a session that already has one."""
