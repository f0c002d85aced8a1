"""Error values surfaced by the API client."""

UNAUTHORIZED = "UNAUTHORIZED"
EMPTY_RESPONSE = "EMPTY_RESPONSE"
INVALID_RESPONSE = "INVALID_RESPONSE"
NETWORK_ERROR = "NETWORK_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"
REFRESH_NO_TOKEN = "REFRESH_NO_TOKEN"
REFRESH_FAILED = "REFRESH_FAILED"
REFRESH_TIMEOUT = "REFRESH_TIMEOUT"


class ApiError(Exception):
    """Failed API call. ``status`` is the HTTP status, 0 when there was none."""

    def __init__(self, code: str, message: str, status: int = 0):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def __repr__(self):
        return f"ApiError(code={self.code!r}, message={self.message!r}, status={self.status})"


class RefreshError(ApiError):
    """Token refresh did not produce a usable token."""

    def __init__(self, code: str, message: str):
        super().__init__(code, message, 0)
