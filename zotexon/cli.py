"""CLI interface for zotexon."""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any, Optional

import click

from . import __version__
from .api import ZoteroClientBuilder
from .cancellation import CancellationToken
from .checkpoint import read_headline
from .config import config
from .exceptions import (
    ExportFileError,
    OperationCancelledError,
    ZotexonError,
)
from .models import ExportFormat
from .output import OutputFormatter
from .sync import FileSyncer, SyncOutcome, SyncTrigger
from .utils import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, mask_api_key

logger = logging.getLogger(__name__)

EXIT_CANCELLED = 130


def _configure_logging(verbose: bool, quiet: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("zotexon").setLevel(logging.DEBUG)
    else:
        # Third-party libraries stay at WARNING
        logging.basicConfig(
            level=logging.WARNING,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        if not quiet:
            logging.getLogger("zotexon").setLevel(logging.INFO)


def _require_api_key(ctx: Any, api_key: Optional[str], out: OutputFormatter) -> str:
    """Return the API key from the option, environment or config file."""
    api_key = api_key or config.api_key
    if not api_key:
        out.error(
            "No API key configured. Pass --api-key, set ZOTERO_API_KEY "
            "or run 'zotexon init'."
        )
        ctx.exit(1)
    return api_key


def _describe_error(error: Exception) -> str:
    if isinstance(error, ExportFileError) and error.__cause__ is not None:
        return f"{error}: {error.__cause__}"
    return str(error)


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output results in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """Zotexon - keep a local export of your Zotero library up to date."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    _configure_logging(verbose, quiet)


@main.command()
@click.option(
    "--api-key",
    "-k",
    prompt="Enter your Zotero API key",
    help="Zotero API key with read access to your library",
)
@click.pass_context
def init(ctx: Any, api_key: str) -> None:
    """Validate an API key and store it for future use.

    Generate a key in your Zotero settings:
    https://www.zotero.org/settings/keys/new
    """
    out: OutputFormatter = ctx.obj["out"]

    out.info("Validating API key...")
    try:
        key_info = asyncio.run(_fetch_key_info(api_key))
    except ZotexonError as e:
        out.error(f"API key validation failed: {e}")
        ctx.exit(1)
        return

    if not key_info.can_access_library:
        out.error("API key does not have read access to your library")
        ctx.exit(1)
        return
    out.success(f"API key is valid for user {key_info.username}")

    try:
        config.save_api_key(api_key)
    except ZotexonError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    out.print_summary(
        "Initialization Complete",
        [
            ("Status", "Configuration saved successfully"),
            ("Config file", str(config.get_config_path())),
            ("API key", mask_api_key(api_key)),
        ],
    )


async def _fetch_key_info(api_key: str):
    builder = ZoteroClientBuilder(api_key=api_key)
    try:
        return await builder.fetch_key_info()
    finally:
        await builder.http_client.aclose()


@main.command()
@click.option("--api-key", "-k", envvar="ZOTERO_API_KEY", help="Zotero API key")
@click.option(
    "--file",
    "-f",
    "file_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="File that the library will be exported to",
)
@click.option(
    "--interval",
    "-i",
    type=click.IntRange(min=1),
    default=None,
    help="Interval (in seconds) for periodic exports. If not provided, "
    "the program exits after exporting once",
)
@click.option(
    "--push",
    is_flag=True,
    help="Re-export whenever the Zotero streaming API reports a library change",
)
@click.option(
    "--format",
    "export_format",
    type=click.Choice(ExportFormat.choices()),
    default=ExportFormat.default().value,
    show_default=True,
    help="Format to be used for the export",
)
@click.option(
    "--page-size",
    type=click.IntRange(min=1, max=MAX_PAGE_SIZE),
    default=DEFAULT_PAGE_SIZE,
    show_default=True,
    help="Number of items fetched per request",
)
@click.pass_context
def export(
    ctx: Any,
    api_key: Optional[str],
    file_path: Path,
    interval: Optional[int],
    push: bool,
    export_format: str,
    page_size: int,
) -> None:
    """Export the Zotero library to FILE and keep it up to date.

    Without --interval or --push the library is exported once. The first
    line of FILE records the library version, so later runs only download
    the library when it changed.

    Examples:
        zotexon export -f library.bib                 # Export once
        zotexon export -f library.bib -i 300          # Re-check every 5 minutes
        zotexon export -f library.bib --push          # Follow live changes
        zotexon export -f library.ris --format ris    # Export as RIS
    """
    out: OutputFormatter = ctx.obj["out"]

    if interval is not None and push:
        raise click.UsageError("--interval and --push cannot be combined")

    api_key = _require_api_key(ctx, api_key, out)

    try:
        outcome = asyncio.run(
            _run_export(
                api_key,
                file_path,
                ExportFormat(export_format),
                interval,
                push,
                page_size,
            )
        )
    except OperationCancelledError:
        out.warning("Export cancelled")
        ctx.exit(EXIT_CANCELLED)
        return
    except ZotexonError as e:
        logger.debug("Export failed", exc_info=True)
        out.error(f"Error during export process: {_describe_error(e)}")
        ctx.exit(1)
        return

    headline = read_headline(file_path)
    out.print_summary(
        "Export Complete",
        [
            ("File", str(file_path)),
            (
                "Status",
                "Updated" if outcome is SyncOutcome.CHANGES else "Up to date",
            ),
            (
                "Library version",
                str(headline.library_version) if headline else "unknown",
            ),
            ("Format", export_format),
        ],
    )


async def _run_export(
    api_key: str,
    file_path: Path,
    export_format: ExportFormat,
    interval: Optional[int],
    push: bool,
    page_size: int,
) -> SyncOutcome:
    cancellation_token = CancellationToken()
    installed_signals = _install_signal_handlers(cancellation_token)
    try:
        builder = ZoteroClientBuilder(api_key=api_key, page_size=page_size)
        client = await builder.build()
        trigger: Optional[SyncTrigger] = None
        try:
            syncer = await FileSyncer.create(client, file_path, export_format)

            if interval is not None:
                logger.info(f"Starting periodic export every {interval} seconds.")
                trigger = SyncTrigger.periodic(
                    interval, cancellation_token.child_token()
                )
            elif push and builder.key_info is not None:
                logger.info("Starting export on library change notifications.")
                trigger = await SyncTrigger.websocket(
                    builder.api_key,
                    builder.key_info.user_id,
                    cancellation_token.child_token(),
                    url=config.stream_url,
                )

            return await syncer.sync(trigger, cancellation_token)
        finally:
            if trigger is not None:
                await trigger.aclose()
            await client.aclose()
    finally:
        _remove_signal_handlers(installed_signals)


def _install_signal_handlers(
    cancellation_token: CancellationToken,
) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()

    def _on_signal() -> None:
        logger.info("Signal received, cancelling...")
        cancellation_token.cancel()

    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not supported on this platform or outside the main thread
            continue
        installed.append(sig)
    return installed


def _remove_signal_handlers(signals: list[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in signals:
        loop.remove_signal_handler(sig)


if __name__ == "__main__":
    main()
