"""Domain-specific exceptions for the services layer."""


class MediaRelayError(Exception):
    """Base exception for media relay errors."""

    def __init__(self, message: str, code: str) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message
            code: Stable error code for API responses
        """
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidInputError(MediaRelayError):
    """Raised when a required request field is missing or empty."""

    def __init__(self, message: str = "Missing url") -> None:
        super().__init__(message, "INVALID_INPUT")


class PayloadTooLargeError(MediaRelayError):
    """Raised when a request body exceeds the configured limit."""

    def __init__(self, message: str = "Request body too large") -> None:
        super().__init__(message, "PAYLOAD_TOO_LARGE")


class ProcessFailureError(MediaRelayError):
    """Raised when yt-dlp cannot be started or exits with a non-zero code."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, "PROCESS_FAILED")


class ParseFailureError(MediaRelayError):
    """Raised when yt-dlp output is not the expected JSON document."""

    def __init__(self, message: str = "Could not parse yt-dlp output") -> None:
        super().__init__(message, "PARSE_FAILED")


class UpstreamFailureError(MediaRelayError):
    """Raised when extraction failed for any upstream reason.

    Wraps :class:`ProcessFailureError` and :class:`ParseFailureError` at
    the endpoint boundary; the original error is chained as ``__cause__``.
    """

    def __init__(self, message: str = "Media extraction failed") -> None:
        super().__init__(message, "UPSTREAM_FAILED")
