"""Sync engine keeping a local export file in step with the Zotero library."""

import asyncio
import logging
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..api import ZoteroClient
from ..cancellation import CancellationToken
from ..checkpoint import FileHeadline, read_headline
from ..exceptions import ExportFileError, OperationCancelledError, SyncTriggerError
from ..models import ExportFormat, FetchItemsParams, UpToDate
from .trigger import SyncTrigger

logger = logging.getLogger(__name__)


class SyncOutcome(Enum):
    """Whether a sync run changed the export file."""

    CHANGES = "changes"
    NO_CHANGES = "no_changes"

    @classmethod
    def combine(cls, *outcomes: "SyncOutcome") -> "SyncOutcome":
        return cls.CHANGES if cls.CHANGES in outcomes else cls.NO_CHANGES


class FileSyncer:
    """Mirrors a user library into a single file.

    The first line of the file is a :class:`FileHeadline` recording the
    library version of the payload below it, so later runs only ask the API
    for changes since that version.
    """

    def __init__(
        self,
        client: ZoteroClient,
        file_path: Union[str, Path],
        format: ExportFormat = ExportFormat.BIBLATEX,
    ):
        """Initialize the syncer.

        Prefer :meth:`create`, which also checks that the file is usable.

        Args:
            client: Zotero client used for fetching
            file_path: File the library is exported to
            format: Export format requested from the API
        """
        self.client = client
        self.file_path = Path(file_path)
        self.format = format

    @classmethod
    async def create(
        cls,
        client: ZoteroClient,
        file_path: Union[str, Path],
        format: ExportFormat = ExportFormat.BIBLATEX,
    ) -> "FileSyncer":
        """Create a syncer after making sure the output file can be opened.

        The file is created if missing but never truncated.

        Raises:
            ExportFileError: If the file cannot be opened for writing
        """
        syncer = cls(client, file_path, format)
        await asyncio.to_thread(syncer._touch)
        return syncer

    def _touch(self) -> None:
        try:
            with open(self.file_path, "a", encoding="utf-8"):
                pass
        except OSError as e:
            raise ExportFileError(str(self.file_path)) from e

    async def sync(
        self,
        trigger: Optional[SyncTrigger],
        cancellation_token: CancellationToken,
    ) -> SyncOutcome:
        """Run the sync loop.

        Args:
            trigger: Source of sync signals; None runs exactly one sync
            cancellation_token: Stops the loop (and any running fetch)

        Returns:
            CHANGES if any sync in this run rewrote the file

        Raises:
            ZoteroAPIError: If a fetch fails (aborts the loop)
            ExportFileError: If the file cannot be written
            FetchCancelledError: If a one-time sync is cancelled
            SyncTriggerError: If the trigger ended because of an error
        """
        if trigger is None:
            logger.info("Starting one-time sync.")
            return await self.sync_once(cancellation_token)

        logger.info("Starting triggered sync.")
        return await self._sync_on_trigger(trigger, cancellation_token)

    async def _sync_on_trigger(
        self,
        trigger: SyncTrigger,
        cancellation_token: CancellationToken,
    ) -> SyncOutcome:
        outcome = SyncOutcome.NO_CHANGES
        while True:
            try:
                signal = await cancellation_token.run(trigger.next())
            except OperationCancelledError:
                logger.info("Cancellation requested, stopping sync.")
                break

            if signal is None:
                error = trigger.error
                if error is not None:
                    logger.error(f"Aborting sync, trigger failed: {error}")
                    raise SyncTriggerError(f"Trigger failed: {error}") from error
                logger.info("Trigger finished, stopping sync.")
                break

            logger.info("Starting triggered export.")
            cycle_token = cancellation_token.child_token()
            try:
                result = await self.sync_once(cycle_token)
            except OperationCancelledError:
                if cancellation_token.is_cancelled:
                    logger.info("Cancellation requested, stopping sync.")
                    break
                raise
            except Exception as e:
                logger.error(f"Aborting sync due to error: {e}")
                raise
            finally:
                cycle_token.release()
            outcome = SyncOutcome.combine(outcome, result)

        return outcome

    async def sync_once(self, cancellation_token: CancellationToken) -> SyncOutcome:
        """Fetch changes since the version in the file and rewrite it if needed."""
        headline = await asyncio.to_thread(read_headline, self.file_path)
        if headline is not None and headline.format != self.format:
            logger.info(
                f"Existing export uses format '{headline.format}', "
                f"performing full fetch as '{self.format}'."
            )
            headline = None
        elif headline is not None:
            logger.info(
                f"Found existing export with version {headline.library_version}"
            )
        else:
            logger.info("No existing export found, performing full fetch.")

        params = FetchItemsParams(
            last_modified_version=headline.library_version if headline else None,
            format=self.format,
        )
        response = await self.client.fetch_items(params, cancellation_token)

        if isinstance(response, UpToDate):
            logger.info(f"File '{self.file_path}' is up to date with the library.")
            return SyncOutcome.NO_CHANGES

        new_headline = FileHeadline(
            library_version=response.last_modified_version, format=self.format
        )
        content = f"{new_headline.encode()}\n{response.text}"
        await asyncio.to_thread(self._write, content)
        logger.info(
            f"Wrote library export with version {response.last_modified_version} "
            f"to file '{self.file_path}'."
        )
        return SyncOutcome.CHANGES

    def _write(self, content: str) -> None:
        """Replace the file contents in one step.

        Content goes to a temporary file in the same directory which is then
        renamed over the export, so readers never see a partial file.
        Symlinks are followed, the link itself is kept.
        """
        try:
            target = self.file_path.resolve()
            fd, temp_path = tempfile.mkstemp(
                dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
            )
        except (OSError, RuntimeError) as e:
            raise ExportFileError(str(self.file_path)) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if target.exists():
                os.chmod(temp_path, target.stat().st_mode & 0o777)
            else:
                os.chmod(temp_path, _new_file_mode())
            os.replace(temp_path, target)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise ExportFileError(str(self.file_path)) from e


def _new_file_mode() -> int:
    """Mode that open() would give a new file under the current umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask

