"""Data models for Zotero API requests and responses."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from .exceptions import ZoteroInvalidResponseError


class ExportFormat(str, Enum):
    """Bibliographic export formats supported by the Zotero ``/items`` endpoint.

    The value is passed verbatim as the ``format`` query parameter.
    """

    BIBLATEX = "biblatex"
    BIBTEX = "bibtex"
    CSLJSON = "csljson"
    CSV = "csv"
    MODS = "mods"
    REFER = "refer"
    RIS = "ris"
    TEI = "tei"
    WIKIPEDIA = "wikipedia"

    @classmethod
    def default(cls) -> "ExportFormat":
        return cls.BIBLATEX

    @classmethod
    def choices(cls) -> list[str]:
        """Return the format names as accepted on the command line."""
        return [fmt.value for fmt in cls]

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class FetchItemsParams:
    """Input for a request to fetch items from the Zotero API."""

    last_modified_version: Optional[int] = None
    """Version of the library at the time of the last fetch"""

    format: ExportFormat = ExportFormat.BIBLATEX
    """Export format of the returned item text"""


@dataclass(frozen=True)
class UpToDate:
    """No updates since the requested library version."""


@dataclass(frozen=True)
class Updated:
    """New or updated items are available."""

    last_modified_version: int
    text: str


FetchItemsResponse = Union[UpToDate, Updated]


@dataclass(frozen=True)
class ItemsPage:
    """One page of an ``/items`` listing, as returned by a single request."""

    last_modified_version: int
    text: str
    next_page_url: Optional[str] = None


FetchPageResponse = Union[UpToDate, ItemsPage]


@dataclass
class ApiKeyInfo:
    """What the ``/keys/current`` endpoint returns on success.

    Only the subset relevant for exporting a user library is kept.
    """

    user_id: int
    username: str
    library_access: bool = False

    @property
    def can_access_library(self) -> bool:
        return self.library_access

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApiKeyInfo":
        """Create ApiKeyInfo from the API response.

        Raises:
            ZoteroInvalidResponseError: If required fields are missing
        """
        if not isinstance(data, dict):
            raise ZoteroInvalidResponseError(
                f"Unexpected key info response: {data!r}"
            )
        try:
            user_id = int(data["userID"])
        except (KeyError, TypeError, ValueError) as e:
            raise ZoteroInvalidResponseError(
                "Key info response does not contain a valid userID"
            ) from e

        access = data.get("access") or {}
        user_access = access.get("user") or {}
        return cls(
            user_id=user_id,
            username=str(data.get("username", "")),
            library_access=bool(user_access.get("library", False)),
        )
