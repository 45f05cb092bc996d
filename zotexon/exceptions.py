"""Custom exceptions for zotexon."""

from typing import Any, Optional


class ZotexonError(Exception):
    """Base exception for all zotexon errors."""

    pass


class ZotexonConfigError(ZotexonError):
    """Configuration error (e.g., missing API key)."""

    pass


class ExportFileError(ZotexonError):
    """The output file could not be opened, created or written."""

    def __init__(self, file_path: str, message: Optional[str] = None):
        self.file_path = file_path
        super().__init__(message or f"Error with file '{file_path}'")


class ZoteroAPIError(ZotexonError):
    """Base exception for errors returned by the Zotero Web API."""

    pass


class ZoteroNetworkError(ZoteroAPIError):
    """Network-related error (connection, timeout, etc.)."""

    pass


class ZoteroUnexpectedStatusError(ZoteroAPIError):
    """The API answered with a status other than 200 or 304.

    The status code and response body are kept for diagnostics.
    """

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"Unexpected response status: '{status_code}' with body: '{body}'"
        )


class ZoteroInvalidResponseError(ZoteroAPIError):
    """The API returned a body that could not be decoded."""

    pass


class ZoteroInsufficientRightsError(ZoteroAPIError):
    """The API key is valid but cannot read the user's library."""

    pass


class OperationCancelledError(ZotexonError):
    """An operation was aborted because its cancellation token fired."""

    pass


class FetchCancelledError(OperationCancelledError):
    """A library fetch was cancelled before it completed."""

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)


class WebSocketError(ZotexonError):
    """Base exception for the push notification trigger."""

    pass


class WebSocketConnectionError(WebSocketError):
    """The WebSocket connection failed or was closed."""

    pass


class WebSocketDecodeError(WebSocketError):
    """A text frame could not be decoded into a known message."""

    pass


class WebSocketUnexpectedResponseError(WebSocketError):
    """A decoded message did not match what the protocol expects here."""

    def __init__(self, response: Any):
        self.response = response
        super().__init__(f"unexpected response: {response!r}")


class SyncTriggerError(ZotexonError):
    """The trigger driving a recurring sync ended with an error."""

    pass
