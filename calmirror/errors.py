"""Exception taxonomy for Calmirror synchronization passes."""


class CalmirrorError(Exception):
    """Base class for all Calmirror failures."""


class ConfigError(CalmirrorError):
    """Configuration is missing or invalid."""


class LockTimeout(CalmirrorError):
    """The per-pair lock could not be acquired within the configured wait.

    No state has been touched; the caller may retry later.
    """

    def __init__(self, lock_path: str, timeout: float):
        super().__init__(
            f"Could not acquire sync lock {lock_path} within {timeout:g}s"
        )
        self.lock_path = lock_path
        self.timeout = timeout


class TokenInvalidated(CalmirrorError):
    """The event service rejected a sync token as stale (HTTP 410)."""


class TransientServiceError(CalmirrorError):
    """A generic failure while listing or mutating events."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class PartialBatchFailure(CalmirrorError):
    """A batched mutation returned fewer results than requests submitted."""

    def __init__(self, submitted: int, applied: int):
        super().__init__(
            f"Batch applied {applied} of {submitted} mutation request(s)"
        )
        self.submitted = submitted
        self.applied = applied
