"""Error taxonomy for the uploader, decoded once at the HTTP boundary."""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import httpx

# Codes that mean the silent provider cannot help but an interactive one might.
INTERACTIVE_FALLBACK_CODES = frozenset(
    {
        "interaction_required",
        "consent_required",
        "login_required",
        "no_account",
        "account_ambiguous",
        "popup_blocked",
    }
)


class ErrorKind(str, enum.Enum):
    """Discriminant carried by every UploadError."""

    AUTHENTICATION = "authentication"
    TRANSLATION = "translation"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_SERVER = "transient_server"
    CLIENT_REQUEST = "client_request"
    PER_ITEM = "per_item"
    BATCH = "batch"
    ORCHESTRATION = "orchestration"


class UploadError(Exception):
    """Base error for the uploader."""

    kind: ErrorKind = ErrorKind.ORCHESTRATION

    def __init__(
        self,
        message: str,
        code: str = "unknown",
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.RATE_LIMITED, ErrorKind.TRANSIENT_SERVER)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }


class AuthenticationError(UploadError):
    """Token acquisition failed, or the upstream rejected our credential."""

    kind = ErrorKind.AUTHENTICATION

    @property
    def needs_interactive(self) -> bool:
        return self.code in INTERACTIVE_FALLBACK_CODES


class TranslationError(UploadError):
    """The batched identifier translation call failed as a whole."""

    kind = ErrorKind.TRANSLATION


class RateLimitedError(UploadError):
    """Upstream answered 429."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs) -> None:
        kwargs.setdefault("code", "too_many_requests")
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class TransientServerError(UploadError):
    """5xx answer or a transport failure."""

    kind = ErrorKind.TRANSIENT_SERVER


class ClientRequestError(UploadError):
    """Non-retryable 4xx answer or a request we refuse to send."""

    kind = ErrorKind.CLIENT_REQUEST


class ContentTooLargeError(ClientRequestError):
    """Raw content would exceed the gateway body limit once base64 encoded."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Content too large: {size // (1024 * 1024)}MB, maximum is {limit // (1024 * 1024)}MB",
            code="content_too_large",
            details={"size": size, "limit": limit},
        )


class PerItemSubmissionError(UploadError):
    """Failure isolated to one item of a batch."""

    kind = ErrorKind.PER_ITEM

    def __init__(self, item_id: str, message: str, code: str = "item_failed", **kwargs) -> None:
        super().__init__(message, code=code, **kwargs)
        self.item_id = item_id


class BatchUploadError(UploadError):
    """Summary error for a run in which some items failed."""

    kind = ErrorKind.BATCH

    def __init__(self, failed_count: int) -> None:
        super().__init__(
            f"Failed to upload {failed_count} documents",
            code="batch_failed",
            details={"failed_count": failed_count},
        )
        self.failed_count = failed_count


class OrchestrationError(UploadError):
    """Unexpected failure at run level."""

    kind = ErrorKind.ORCHESTRATION


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Read a Retry-After header given as delta-seconds or as an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max((when - datetime.now(tz=UTC)).total_seconds(), 0.0)


def _response_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def error_from_response(response: httpx.Response, context: str) -> UploadError:
    """Map a failed HTTP response onto the taxonomy."""
    status = response.status_code
    detail = _response_detail(response)
    details = {"response": detail}

    if status in (401, 403):
        return AuthenticationError(
            f"{context}: authentication failed ({status})",
            code="unauthorized" if status == 401 else "forbidden",
            status_code=status,
            details=details,
        )
    if status == 429:
        return RateLimitedError(
            f"{context}: rate limited",
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
            details=details,
        )
    if status >= 500:
        return TransientServerError(
            f"{context}: server error ({status})",
            code="server_error",
            status_code=status,
            details=details,
        )
    return ClientRequestError(
        f"{context}: request rejected ({status})",
        code="client_error",
        status_code=status,
        details=details,
    )


def error_from_transport(exc: httpx.TransportError, context: str) -> TransientServerError:
    """Wrap connection-level failures so they are retried like 5xx answers."""
    return TransientServerError(
        f"{context}: {exc.__class__.__name__}: {exc}",
        code="network_error",
    )
