"""API client for the Zotero Web API (v3)."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Iterable, Union

import httpx

from .cancellation import CancellationToken
from .config import config
from .exceptions import (
    FetchCancelledError,
    ZotexonConfigError,
    ZoteroAPIError,
    ZoteroInsufficientRightsError,
    ZoteroInvalidResponseError,
    ZoteroNetworkError,
    ZoteroUnexpectedStatusError,
)
from .models import (
    ApiKeyInfo,
    FetchItemsParams,
    FetchItemsResponse,
    FetchPageResponse,
    ItemsPage,
    Updated,
    UpToDate,
)
from .utils import (
    API_KEY_HEADER,
    API_VERSION,
    API_VERSION_HEADER,
    DEFAULT_PAGE_SIZE,
    DEFAULT_TIMEOUT,
    IF_MODIFIED_SINCE_VERSION_HEADER,
    LAST_MODIFIED_VERSION_HEADER,
    MAX_PAGE_SIZE,
    mask_api_key,
    parse_library_version,
    parse_next_page_url,
)

logger = logging.getLogger(__name__)


class ZoteroClient(ABC):
    """Anything that can fetch a user library since a given version."""

    @abstractmethod
    async def fetch_items(
        self,
        params: FetchItemsParams,
        cancellation_token: CancellationToken,
    ) -> FetchItemsResponse:
        """Fetch all items changed since ``params.last_modified_version``.

        Args:
            params: Version of the last fetch (None for a full fetch) and
                export format
            cancellation_token: Token that aborts the whole (multi-page) fetch

        Returns:
            UpToDate if nothing changed, otherwise Updated with the library
            version and the concatenated text of all pages

        Raises:
            ZoteroAPIError: If the API request fails
            FetchCancelledError: If the token is cancelled before completion
        """

    async def aclose(self) -> None:
        """Release any resources held by the client."""


class HttpZoteroClient(ZoteroClient):
    """Zotero client that talks to the Web API over HTTP.

    Use :class:`ZoteroClientBuilder` to create one with a validated API key.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        user_url: str,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """Initialize the client.

        Args:
            http_client: Client carrying the authentication headers
            user_url: Base URL of the user library, e.g.
                ``https://api.zotero.org/users/12345``
            page_size: Number of items per request (1-100)
        """
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        self.http_client = http_client
        self.user_url = user_url.rstrip("/")
        self.page_size = page_size
        logger.debug(f"Created client for user URL '{self.user_url}'")

    async def aclose(self) -> None:
        if not self.http_client.is_closed:
            await self.http_client.aclose()

    async def __aenter__(self) -> HttpZoteroClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def fetch_items(
        self,
        params: FetchItemsParams,
        cancellation_token: CancellationToken,
    ) -> FetchItemsResponse:
        headers: dict[str, str] = {}
        if params.last_modified_version is not None:
            headers[IF_MODIFIED_SINCE_VERSION_HEADER] = str(
                params.last_modified_version
            )

        next_url: str | None = f"{self.user_url}/items"
        query: dict[str, Any] | None = {
            "format": params.format.value,
            "limit": self.page_size,
        }
        texts: list[str] = []
        last_modified_version = 0

        while next_url is not None:
            if cancellation_token.is_cancelled:
                logger.info("Cancellation requested, aborting fetch_items.")
                raise FetchCancelledError()

            page_token = cancellation_token.child_token()
            try:
                page = await self._fetch_page(next_url, query, headers, page_token)
            finally:
                page_token.release()
            if isinstance(page, UpToDate):
                return UpToDate()

            texts.append(page.text)
            last_modified_version = page.last_modified_version
            next_url = page.next_page_url
            # Link targets already carry the full query string
            query = None

        return Updated(last_modified_version=last_modified_version, text="".join(texts))

    async def _fetch_page(
        self,
        url: str,
        query: dict[str, Any] | None,
        headers: dict[str, str],
        cancellation_token: CancellationToken,
    ) -> FetchPageResponse:
        """Request a single page and parse it.

        Raises:
            ZoteroNetworkError: On transport failures
            ZoteroUnexpectedStatusError: On any status other than 200/304
            FetchCancelledError: If the token fires while the request runs
        """
        logger.debug(f"Sending request: GET {url} params={query} headers={headers}")
        try:
            response = await cancellation_token.run(
                self.http_client.get(url, params=query, headers=headers),
                FetchCancelledError,
            )
        except httpx.RequestError as e:
            raise ZoteroNetworkError(f"Network error: {e}") from e

        logger.debug(f"Received response: {response.status_code} from {url}")
        return self._parse_page_response(response)

    @staticmethod
    def _parse_page_response(response: httpx.Response) -> FetchPageResponse:
        if response.status_code == httpx.codes.NOT_MODIFIED:
            return UpToDate()
        if response.status_code != httpx.codes.OK:
            raise ZoteroUnexpectedStatusError(response.status_code, response.text)

        return ItemsPage(
            last_modified_version=parse_library_version(
                response.headers.get(LAST_MODIFIED_VERSION_HEADER)
            ),
            text=response.text,
            next_page_url=parse_next_page_url(response.headers.get("Link")),
        )


class ZoteroClientBuilder:
    """Creates an :class:`HttpZoteroClient` after validating the API key."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the builder.

        Args:
            api_key: Zotero API key (uses config if not provided)
            api_url: API base URL (uses config if not provided)
            timeout: Request timeout in seconds (default: 30.0)
            page_size: Items per page for the built client (default: 25)
            transport: Optional httpx transport (used for testing)
        """
        self.api_key = api_key or config.api_key
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.page_size = page_size
        self.key_info: ApiKeyInfo | None = None

        if not self.api_key:
            raise ZotexonConfigError(
                "API key not configured. Please set ZOTERO_API_KEY environment "
                "variable or run 'zotexon init'."
            )

        headers = {
            API_VERSION_HEADER: API_VERSION,
            API_KEY_HEADER: self.api_key,
        }
        logger.debug(
            f"Default http headers: {API_VERSION_HEADER}={API_VERSION}, "
            f"{API_KEY_HEADER}={mask_api_key(self.api_key)}"
        )
        self.http_client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
        )

    async def fetch_key_info(self) -> ApiKeyInfo:
        """Look up the user and permissions behind the API key.

        Raises:
            ZoteroNetworkError: On transport failures
            ZoteroUnexpectedStatusError: If the key is rejected
            ZoteroInvalidResponseError: If the response cannot be decoded
        """
        try:
            response = await self.http_client.get(f"{self.api_url}/keys/current")
        except httpx.RequestError as e:
            raise ZoteroNetworkError(f"Network error: {e}") from e

        if response.status_code != httpx.codes.OK:
            raise ZoteroUnexpectedStatusError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise ZoteroInvalidResponseError(
                "Invalid JSON response from /keys/current"
            ) from e
        return ApiKeyInfo.from_dict(data)

    async def build(self) -> HttpZoteroClient:
        """Validate the API key and return a client ready to be used.

        Fails if the key is invalid, has insufficient rights, or if something
        else went wrong with the Zotero API. The underlying HTTP client is
        closed on failure.
        """
        try:
            key_info = await self.fetch_key_info()
            logger.info(f"Got a valid API key for user {key_info.username}")
            if not key_info.can_access_library:
                logger.error("Key does not have access to library")
                raise ZoteroInsufficientRightsError(
                    "API key does not have read access to the user library"
                )
        except ZoteroAPIError:
            await self.http_client.aclose()
            raise

        self.key_info = key_info
        user_url = f"{self.api_url}/users/{key_info.user_id}"
        return HttpZoteroClient(self.http_client, user_url, page_size=self.page_size)


class InMemoryZoteroClient(ZoteroClient):
    """Client that replays scripted responses instead of calling the API.

    Each call to :meth:`fetch_items` consumes the next scripted entry. An
    entry that is an exception instance is raised instead of returned. The
    parameters of every call are recorded in :attr:`calls`.
    """

    def __init__(
        self, responses: Iterable[Union[FetchItemsResponse, Exception]] = ()
    ):
        self._responses = deque(responses)
        self.calls: list[FetchItemsParams] = []

    def add_response(self, response: Union[FetchItemsResponse, Exception]) -> None:
        self._responses.append(response)

    async def fetch_items(
        self,
        params: FetchItemsParams,
        cancellation_token: CancellationToken,
    ) -> FetchItemsResponse:
        self.calls.append(params)
        if cancellation_token.is_cancelled:
            raise FetchCancelledError()
        if not self._responses:
            raise ZoteroAPIError("No scripted response left")

        response = self._responses.popleft()
        if isinstance(response, Exception):
            raise response
        return response
