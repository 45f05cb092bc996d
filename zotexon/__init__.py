"""Zotexon - keep a local export of your Zotero library up to date."""

__version__ = "0.1.0"

from .api import (  # noqa: E402
    HttpZoteroClient,
    InMemoryZoteroClient,
    ZoteroClient,
    ZoteroClientBuilder,
)
from .cancellation import CancellationToken  # noqa: E402
from .checkpoint import FileHeadline, read_headline  # noqa: E402
from .exceptions import (  # noqa: E402
    ExportFileError,
    FetchCancelledError,
    OperationCancelledError,
    SyncTriggerError,
    WebSocketConnectionError,
    WebSocketDecodeError,
    WebSocketError,
    WebSocketUnexpectedResponseError,
    ZotexonConfigError,
    ZotexonError,
    ZoteroAPIError,
    ZoteroInsufficientRightsError,
    ZoteroInvalidResponseError,
    ZoteroNetworkError,
    ZoteroUnexpectedStatusError,
)
from .models import (  # noqa: E402
    ExportFormat,
    FetchItemsParams,
    FetchItemsResponse,
    Updated,
    UpToDate,
)

__all__ = [
    "__version__",
    "CancellationToken",
    "ExportFileError",
    "ExportFormat",
    "FetchCancelledError",
    "FetchItemsParams",
    "FetchItemsResponse",
    "FileHeadline",
    "HttpZoteroClient",
    "InMemoryZoteroClient",
    "OperationCancelledError",
    "SyncTriggerError",
    "UpToDate",
    "Updated",
    "WebSocketConnectionError",
    "WebSocketDecodeError",
    "WebSocketError",
    "WebSocketUnexpectedResponseError",
    "ZotexonConfigError",
    "ZotexonError",
    "ZoteroAPIError",
    "ZoteroClient",
    "ZoteroClientBuilder",
    "ZoteroInsufficientRightsError",
    "ZoteroInvalidResponseError",
    "ZoteroNetworkError",
    "ZoteroUnexpectedStatusError",
    "read_headline",
]
