"""Utility functions and constants for zotexon."""

from typing import Optional

# =============================================================================
# Zotero endpoints and protocol constants
# =============================================================================

API_BASE_URL: str = "https://api.zotero.org"
STREAM_URL: str = "wss://stream.zotero.org"

API_VERSION: str = "3"
API_VERSION_HEADER: str = "Zotero-API-Version"
API_KEY_HEADER: str = "Zotero-API-Key"
IF_MODIFIED_SINCE_VERSION_HEADER: str = "If-Modified-Since-Version"
LAST_MODIFIED_VERSION_HEADER: str = "Last-Modified-Version"

# Items per page for /items requests (the API allows at most 100)
DEFAULT_PAGE_SIZE: int = 25
MAX_PAGE_SIZE: int = 100

# Request timeout in seconds
DEFAULT_TIMEOUT: float = 30.0

# Largest library version the headline accepts (unsigned 64 bit)
MAX_LIBRARY_VERSION: int = 2**64 - 1


# =============================================================================
# Response header parsing
# =============================================================================


def parse_next_page_url(link_header: Optional[str]) -> Optional[str]:
    """Extract the ``rel="next"`` target from a Link header.

    Args:
        link_header: Raw value of the ``Link`` response header, e.g.
            ``<https://api.zotero.org/users/1/items?start=25>; rel="next",
            <https://api.zotero.org/users/1/items?start=50>; rel="last"``

    Returns:
        URL of the next page, or None if this is the last page
    """
    if not link_header:
        return None

    for part in link_header.split(","):
        sections = [section.strip() for section in part.split(";")]
        if len(sections) == 2 and sections[1] == 'rel="next"':
            return sections[0].lstrip("<").rstrip(">")
    return None


def parse_library_version(value: Optional[str]) -> int:
    """Parse a ``Last-Modified-Version`` header value.

    Missing or malformed values are reported as version 0.
    """
    if value is None:
        return 0
    try:
        version = int(value.strip())
    except ValueError:
        return 0
    if version < 0 or version > MAX_LIBRARY_VERSION:
        return 0
    return version


def user_topic(user_id: int) -> str:
    """Return the streaming API topic for a user library."""
    return f"/users/{user_id}"


def mask_api_key(api_key: str) -> str:
    """Hide all but the last four characters of an API key for display."""
    if len(api_key) <= 4:
        return "*" * len(api_key)
    return "*" * (len(api_key) - 4) + api_key[-4:]
