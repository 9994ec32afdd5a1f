"""
Provider failure taxonomy.

Every adapter maps its SDK or HTTP errors onto these classes. The chain
decides retry versus fall-through from ``recoverable`` alone.
"""

from enum import StrEnum


class ProviderErrorKind(StrEnum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    MALFORMED_RESPONSE = "malformed_response"
    AUTH_FAILURE = "auth_failure"
    UNAVAILABLE = "unavailable"


_PUBLIC_MESSAGES = {
    ProviderErrorKind.TIMEOUT: "timed out",
    ProviderErrorKind.RATE_LIMITED: "was rate limited",
    ProviderErrorKind.MALFORMED_RESPONSE: "returned an unreadable analysis",
    ProviderErrorKind.AUTH_FAILURE: "rejected the request",
    ProviderErrorKind.UNAVAILABLE: "was unavailable",
}


class ProviderError(Exception):
    """Base class for analysis provider failures."""

    kind: ProviderErrorKind = ProviderErrorKind.UNAVAILABLE
    recoverable: bool = True

    def __init__(self, provider: str, detail: str = ""):
        message = f"{provider} {self.kind.value}"
        super().__init__(f"{message}: {detail}" if detail else message)
        self.provider = provider
        self.detail = detail

    @property
    def public_message(self) -> str:
        """User-facing description without provider internals."""
        return f"{self.provider} {_PUBLIC_MESSAGES[self.kind]}"


class ProviderTimeoutError(ProviderError):
    kind = ProviderErrorKind.TIMEOUT
    recoverable = True


class RateLimitedError(ProviderError):
    kind = ProviderErrorKind.RATE_LIMITED
    recoverable = True


class ProviderUnavailableError(ProviderError):
    kind = ProviderErrorKind.UNAVAILABLE
    recoverable = True


class MalformedResponseError(ProviderError):
    kind = ProviderErrorKind.MALFORMED_RESPONSE
    recoverable = False


class AuthFailureError(ProviderError):
    kind = ProviderErrorKind.AUTH_FAILURE
    recoverable = False
