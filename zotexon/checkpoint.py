"""Headline line that records which library version an export contains.

The first line of every exported file looks like::

    % *** THIS FILE WAS AUTO-GENERATED BY ZOTEXON - DO NOT EDIT *** {"zotexon_version": "0.1.0", "library_version": 1234, "format": "biblatex"}

Anything that does not decode is treated as "no previous export".
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from . import __version__
from .models import ExportFormat
from .utils import MAX_LIBRARY_VERSION

logger = logging.getLogger(__name__)

HEADLINE_PREFIX = "% *** THIS FILE WAS AUTO-GENERATED BY ZOTEXON - DO NOT EDIT ***"


@dataclass(frozen=True)
class FileHeadline:
    """Metadata stored in the first line of an exported file."""

    library_version: int
    format: ExportFormat = ExportFormat.BIBLATEX
    zotexon_version: str = field(default=__version__, compare=False)

    def encode(self) -> str:
        """Render the headline as a single line (without newline)."""
        payload = {
            "zotexon_version": self.zotexon_version,
            "library_version": self.library_version,
            "format": self.format.value,
        }
        return f"{HEADLINE_PREFIX} {json.dumps(payload)}"

    @classmethod
    def decode(cls, line: str) -> Optional["FileHeadline"]:
        """Parse a headline.

        Args:
            line: First line of the file, with or without trailing newline

        Returns:
            The decoded headline, or None if the line was not written by
            zotexon or is malformed
        """
        line = line.strip()
        if not line.startswith(HEADLINE_PREFIX):
            return None

        try:
            data = json.loads(line[len(HEADLINE_PREFIX) :].strip())
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None

        version = data.get("library_version")
        # bool is a subclass of int
        if not isinstance(version, int) or isinstance(version, bool):
            return None
        if version < 0 or version > MAX_LIBRARY_VERSION:
            return None

        try:
            export_format = ExportFormat(data.get("format"))
        except ValueError:
            return None

        zotexon_version = data.get("zotexon_version", "")
        if not isinstance(zotexon_version, str):
            return None

        return cls(
            library_version=version,
            format=export_format,
            zotexon_version=zotexon_version,
        )


def read_headline(file_path: Union[str, Path]) -> Optional[FileHeadline]:
    """Read and decode the headline of an exported file.

    A missing or unreadable file is not an error; it just has no headline.
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            first_line = f.readline()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Could not read headline from {file_path}: {e}")
        return None
    return FileHeadline.decode(first_line)
