"""
Error taxonomy shared by every component.

Each kind carries the transport status code the HTTP boundary maps it to
and a stable machine-readable code. Anything that is not a ReelworksError
propagates unchanged.
"""

from typing import Optional


class ReelworksError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReelworksError):
    """Bad caller input. Never retried, surfaced verbatim."""

    status_code = 422
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, violations: Optional[list[str]] = None):
        super().__init__(message)
        self.violations = violations or [message]

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        """Collapse a pydantic ValidationError into one error listing every violation."""
        violations = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()) if part != "__root__")
            msg = err.get("msg", "invalid value")
            violations.append(f"{loc}: {msg}" if loc else msg)
        return cls("; ".join(violations), violations)


class AuthError(ReelworksError):
    status_code = 401
    code = "AUTH_ERROR"


class OAuthError(AuthError):
    """A platform rejected a code exchange or token refresh."""

    code = "OAUTH_ERROR"

    def __init__(self, platform: str, message: str):
        super().__init__(f"{platform}: {message}")
        self.platform = platform


class NotFoundError(ReelworksError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ReelworksError):
    status_code = 409
    code = "CONFLICT"


class ProviderError(ReelworksError):
    """A named provider rejected or errored. Triggers fallback while candidates remain."""

    status_code = 502
    code = "PROVIDER_ERROR"

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderTimeoutError(ReelworksError):
    """Deadline exceeded with the remote outcome unknown."""

    status_code = 504
    code = "PROVIDER_TIMEOUT"

    def __init__(self, provider: str, external_id: str, waited_seconds: float):
        super().__init__(
            f"{provider} did not finish {external_id} within {int(waited_seconds)}s; "
            f"remote outcome unknown"
        )
        self.provider = provider
        self.external_id = external_id


class PlatformPublishError(ReelworksError):
    status_code = 502
    code = "PLATFORM_PUBLISH_ERROR"

    def __init__(self, platform: str, message: str):
        super().__init__(f"{platform}: {message}")
        self.platform = platform


class PersistenceError(ReelworksError):
    """The system of record is unreachable or rejected a write."""

    status_code = 503
    code = "PERSISTENCE_ERROR"
