"""Exception hierarchy shared by providers, the session and the HTTP endpoint."""

from __future__ import annotations


class MedScanError(RuntimeError):
    """Base class for all errors raised by the MedScan library."""


class InvalidInput(MedScanError):
    """Raised when no usable image was handed to a provider."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "No image data provided")


class RemoteUnavailable(MedScanError):
    """Raised when the remote analysis service answers with a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimited(RemoteUnavailable):
    """The remote service rejected the call because of rate limiting (HTTP 429)."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "Rate limit exceeded. Please try again in a moment.",
            status_code=429,
        )


class QuotaExhausted(RemoteUnavailable):
    """The remote service reported exhausted usage credits (HTTP 402)."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "AI usage credits exhausted. Please add credits in Settings.",
            status_code=402,
        )


class MalformedResponse(MedScanError):
    """Raised when a provider payload cannot be coerced into an analysis result."""


class CaptureUnavailable(MedScanError):
    """Raised when no camera can be used to capture a scan."""


class AnalysisInProgress(MedScanError):
    """Raised when ``analyze`` is called while another analysis is running."""

    def __init__(self) -> None:
        super().__init__("An analysis is already in progress for this scan.")


class AnalysisCancelled(MedScanError):
    """Raised when an analysis was cancelled or superseded before it finished."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Analysis cancelled.")


class SessionStateError(MedScanError):
    """Raised when a session operation is not allowed in the current state."""


def status_error(status_code: int, message: str | None = None) -> RemoteUnavailable:
    """Map an HTTP status code to the matching remote error."""
    if status_code == 429:
        return RateLimited(message)
    if status_code == 402:
        return QuotaExhausted(message)
    return RemoteUnavailable(
        message or f"Remote analysis service returned HTTP {status_code}",
        status_code=status_code,
    )
