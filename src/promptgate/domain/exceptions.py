"""Domain-specific exception hierarchy.

All exceptions inherit from ``DomainError`` so callers can catch the entire
family in one clause while still discriminating on subclass.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for all domain-layer errors."""

    def __init__(self, message: str, *, code: str = "DOMAIN_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ── Validation ───────────────────────────────────────────────
class ValidationRejectedError(DomainError):
    """Inbound payload failed shape checks before any routing took place."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="VALIDATION_ERROR")


# ── Credentials ──────────────────────────────────────────────
class NoCredentialsConfiguredError(DomainError):
    def __init__(self, pool_name: str) -> None:
        self.pool_name = pool_name
        super().__init__(
            f"No API keys configured for {pool_name!r}",
            code="NO_CREDENTIALS_CONFIGURED",
        )


# ── Backends ─────────────────────────────────────────────────
class BackendUnavailableError(DomainError):
    """A single backend call failed (status, exception or timeout)."""

    def __init__(self, backend: str, reason: str) -> None:
        self.backend = backend
        self.reason = reason
        super().__init__(f"Backend {backend} failed: {reason}", code="BACKEND_UNAVAILABLE")


class AllBackendsExhaustedError(DomainError):
    """Every attempt failed and no fallback could be produced."""

    def __init__(self, attempts: int, last_error: str | None) -> None:
        self.attempts = attempts
        self.last_error = last_error or "Unknown error"
        super().__init__(
            f"All {attempts} backend attempts failed. Last error: {self.last_error}",
            code="ALL_BACKENDS_UNAVAILABLE",
        )


# ── External providers ──────────────────────────────────────
class UpstreamProviderError(DomainError):
    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}", code="UPSTREAM_ERROR")


class KeysBusyError(DomainError):
    """Every key in a leased pool stayed checked out for the whole wait."""

    def __init__(self, pool_name: str, total_keys: int, *, retry_after: int = 5) -> None:
        self.pool_name = pool_name
        self.total_keys = total_keys
        self.retry_after = retry_after
        super().__init__("All API keys are currently busy", code="ALL_KEYS_BUSY")


class KeyLeaseNotFoundError(DomainError):
    def __init__(self, key_id: int) -> None:
        self.key_id = key_id
        super().__init__("Key not found", code="KEY_NOT_FOUND")
