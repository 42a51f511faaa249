# src/ripvid/cli.py

import argparse
import asyncio
import json
import sys
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from rich.console import Console
from rich.table import Table

from ripvid import config as config_module
from ripvid import log_utils
from ripvid.binaries.checksum import calculate_file_sha256
from ripvid.constants import (
    EVENT_BINARY_PROGRESS,
    EVENT_DOWNLOAD_CANCELLED,
    EVENT_DOWNLOAD_COMPLETE,
    EVENT_DOWNLOAD_PROCESSING,
    EVENT_DOWNLOAD_PROGRESS,
    EVENT_DOWNLOAD_STATUS,
)
from ripvid.download.arguments import (
    KIND_AUDIO,
    KIND_VIDEO,
    QUALITY_FORMATS,
    DownloadRequest,
)
from ripvid.engine import Engine
from ripvid.exceptions import RipvidError
from ripvid.notifications import CallbackNotifier

console = Console()


def _render_event(event: str, payload: Dict[str, Any]) -> None:
    """Print a one-line summary of a notification."""
    if event == EVENT_DOWNLOAD_PROGRESS:
        console.print(
            f"[cyan]{payload['percent']:5.1f}%[/cyan] "
            f"at {payload['speed']} ETA {payload['eta']}",
            highlight=False,
        )
    elif event == EVENT_BINARY_PROGRESS:
        console.print(
            f"[dim]{payload['binary']}[/dim] {payload['progress']:.0f}% {payload['status']}",
            highlight=False,
        )
    elif event in (EVENT_DOWNLOAD_PROCESSING, EVENT_DOWNLOAD_STATUS):
        console.print(f"[yellow]{payload.get('message', '')}[/yellow]", highlight=False)
    elif event == EVENT_DOWNLOAD_CANCELLED:
        console.print("[red]Download cancelled[/red]")
    elif event == EVENT_DOWNLOAD_COMPLETE:
        if payload.get("success"):
            console.print(f"[green]Saved to {payload.get('path')}[/green]", highlight=False)
        else:
            console.print(f"[red]{payload.get('error')}[/red]", highlight=False)


def _load_config() -> Optional[Dict[str, Any]]:
    try:
        config = config_module.load_config()
    except RipvidError as e:
        log_utils.logger.error(str(e))
        return None

    if config.get("LOG_TO_FILE"):
        log_utils.add_file_logging(
            config_module.get_log_dir(config), str(config.get("LOG_LEVEL", "INFO"))
        )
    return config


async def run_setup(config: Dict[str, Any]) -> int:
    async with Engine(config, CallbackNotifier(_render_event)) as engine:
        try:
            await engine.provisioner.ensure_all_present()
        except RipvidError as e:
            log_utils.logger.error(str(e))
            return 1
        await engine.provisioner.wait_for_refresh()
    log_utils.logger.info("All tools ready!")
    return 0


async def run_status(config: Dict[str, Any]) -> int:
    async with Engine(config) as engine:
        table = Table(title=f"Managed binaries ({engine.metadata.data_dir})")
        table.add_column("Binary")
        table.add_column("Installed")
        table.add_column("Version")
        table.add_column("Last check")
        table.add_column("SHA-256")
        for name in engine.catalog.binaries:
            record = engine.metadata.read(name)
            checked = (
                datetime.fromtimestamp(record.last_check).strftime("%Y-%m-%d %H:%M")
                if record
                else "-"
            )
            digest = None
            if engine.provisioner.is_present(name):
                digest = calculate_file_sha256(engine.provisioner.binary_path(name))
            table.add_row(
                name,
                "yes" if digest else "no",
                record.version if record else "-",
                checked,
                digest[:12] if digest else "-",
            )
        console.print(table)
        due = engine.metadata.is_refresh_due()
        console.print(f"Refresh due: {'yes' if due else 'no'}")
    return 0


async def run_download(config: Dict[str, Any], request: DownloadRequest) -> int:
    async with Engine(config, CallbackNotifier(_render_event)) as engine:
        try:
            await engine.provisioner.ensure_all_present()
        except RipvidError as e:
            log_utils.logger.warning(f"Continuing with missing tools: {e}")

        download_id = str(uuid.uuid4())
        task = asyncio.ensure_future(engine.coordinator.download(request, download_id))
        try:
            outcome = await asyncio.shield(task)
        except asyncio.CancelledError:
            log_utils.logger.info("Interrupted, cancelling download...")
            try:
                engine.coordinator.cancel(download_id)
            except RipvidError as e:
                log_utils.logger.debug(str(e))
            await asyncio.gather(task, return_exceptions=True)
            return 130
        except RipvidError as e:
            log_utils.logger.error(str(e))
            return 1
    return 0 if outcome.success else 1


async def run_info(config: Dict[str, Any], url: str) -> int:
    async with Engine(config) as engine:
        try:
            info = await engine.coordinator.get_video_info(url)
        except RipvidError as e:
            log_utils.logger.error(str(e))
            return 1
    print(json.dumps(info, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ripvid", description="ripvid - yt-dlp/ffmpeg manager and downloader"
    )
    parser.add_argument(
        "--log-level",
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("setup", help="Download or update yt-dlp, ffmpeg and ffprobe")
    subparsers.add_parser("status", help="Show installed binaries and versions")

    download_parser = subparsers.add_parser("download", help="Download a video or audio")
    download_parser.add_argument("url", help="Video URL")
    download_parser.add_argument(
        "-o", "--output", required=True, help="Output file path"
    )
    download_parser.add_argument(
        "--audio", action="store_true", help="Extract audio as mp3"
    )
    download_parser.add_argument(
        "--quality",
        default="best",
        help=f"Video quality ({', '.join(QUALITY_FORMATS)})",
    )

    info_parser = subparsers.add_parser("info", help="Print video metadata as JSON")
    info_parser.add_argument("url", help="Video URL")
    return parser


def main(argv=None) -> None:
    # Logging is automatically initialized by importing log_utils
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = _load_config()
    if config is None:
        sys.exit(1)

    level = args.log_level or config.get("LOG_LEVEL")
    if level:
        log_utils.set_log_level(str(level))

    if args.command == "setup":
        coro = run_setup(config)
    elif args.command == "status":
        coro = run_status(config)
    elif args.command == "download":
        request = DownloadRequest(
            url=args.url,
            output_path=args.output,
            kind=KIND_AUDIO if args.audio else KIND_VIDEO,
            quality=args.quality,
        )
        coro = run_download(config, request)
    else:
        coro = run_info(config, args.url)

    try:
        exit_code = asyncio.run(coro)
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
