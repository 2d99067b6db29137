"""
Error type shared by the tailer and the upload path.
"""

from parsepal.core.constants import ErrorCode, RETRYABLE_ERRORS

# Statuses flagged as transient on the resulting RelayError
RETRYABLE_HTTP_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class RelayError(Exception):
    """
    A known failure with a machine-readable code.

    `message` is meant for the user and is what ends up in an UploadEntry's
    error field. `status_code` is set for HTTP failures only.

    `retryable` is informational: it is logged to tell transient failures
    from permanent ones, but the upload pipeline gives every failure the
    same three attempts.
    """

    def __init__(self, code: str, message: str, retryable: bool | None = None,
                 status_code: int | None = None):
        self.code = code
        self.message = message
        self.status_code = status_code
        if retryable is None:
            retryable = is_retryable(code)
        self.retryable = retryable
        super().__init__(f"[{code}] {message}")


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_ERRORS


def http_error(status_code: int, message: str) -> RelayError:
    """RelayError for a non-2xx response, flagged transient for 408/429/5xx."""
    return RelayError(ErrorCode.HTTP_ERROR, message,
                      retryable=status_code in RETRYABLE_HTTP_STATUSES,
                      status_code=status_code)
