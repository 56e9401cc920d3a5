"""Command line interface for importer package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

import httpx
from rich.logging import RichHandler

from . import __version__
from .cli_progress import (
    FetchProgressDisplay,
    ImportProgressDisplay,
    render_collection,
    render_configuration_summary,
    render_queue,
)
from .errors import ImporterError, describe_error
from .models import FetchConfig, ImportConfig, ImportOptions, ImportStage
from .orchestrator import ImportOrchestrator, ImportQueue
from .services.api_client import HTTPAPIClient
from .services.collection import CollectionFetcher
from .services.destination import DEFAULT_API_BASE
from .services.rate_limit import RateLimitedRequester
from .services.source import VIMEO_API_BASE
from .services.store import JSONFileStore


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug, --log-level or LOG_LEVEL is
    provided. Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if silent or (not debug and not log_level and not env_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (log_level or env_level or "INFO").upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _require_env(name: str) -> str:
    value = (os.getenv(name) or "").strip()
    if not value:
        raise CLIError(f"{name} environment variable is not set")
    return value


def _build_store(state_dir: Optional[Path]) -> JSONFileStore:
    return JSONFileStore(state_dir)


def _options_from_args(args: argparse.Namespace) -> ImportOptions:
    return ImportOptions(
        visibility=args.visibility,
        language=args.language or "",
        auto_transcribe=args.auto_transcribe,
        tags=args.tags or "",
        category_id=args.category or "",
    )


def _warn_if_transferring(importer: ImportOrchestrator) -> bool:
    """Tell the user that running transfers will not survive the exit."""
    if not importer.has_active_transfers:
        return False
    print(
        "WARNING: imports are still transferring. They will be marked as interrupted on the next start.",
        file=sys.stderr,
    )
    return True


async def _run_imports(args: argparse.Namespace, source_ids: Sequence[str]) -> int:
    vimeo_token = _require_env("VIMEO_TOKEN")
    ignite_token = _require_env("IGNITE_TOKEN")
    config = ImportConfig(max_file_size_mb=args.max_size_mb)
    options = _options_from_args(args) if source_ids else None

    display = ImportProgressDisplay()
    async with ImportOrchestrator(
        vimeo_token,
        ignite_token,
        api_base=args.api_base,
        config=config,
        store=_build_store(args.state_dir),
    ) as importer:
        importer.on_item_event(display.on_item_event)
        display.start()
        try:
            importer.resume()
            started = [importer.start_import(source_id, options) for source_id in source_ids]
            watched = {i.id for i in started} | {i.id for i in importer.queue.in_stage(ImportStage.POLLING)}
            if not watched:
                print("Nothing to resume.")
                return 0
            try:
                await importer.wait()
            except (asyncio.CancelledError, KeyboardInterrupt):
                _warn_if_transferring(importer)
                raise
        finally:
            display.stop()

        failed = [
            item for item in importer.items
            if item.id in watched and item.stage == ImportStage.ERROR
        ]
        for item in failed:
            print(f"ERROR: {item.source_id}: {item.error_message}", file=sys.stderr)
        return 1 if failed else 0


def _list_imports(args: argparse.Namespace) -> int:
    queue = ImportQueue(_build_store(args.state_dir))
    items = queue.load()
    if not items:
        print("No imports.")
        return 0
    render_queue(items)
    return 0


def _remove_import(args: argparse.Namespace) -> int:
    queue = ImportQueue(_build_store(args.state_dir))
    queue.load()
    if queue.remove(args.item_id) is None:
        raise CLIError(f"no import with id {args.item_id}")
    print(f"Removed {args.item_id}")
    return 0


def _clear_finished(args: argparse.Namespace) -> int:
    queue = ImportQueue(_build_store(args.state_dir))
    queue.load()
    removed = queue.clear_finished()
    print(f"Removed {len(removed)} finished imports")
    return 0


async def _browse(args: argparse.Namespace) -> int:
    vimeo_token = _require_env("VIMEO_TOKEN")
    display = FetchProgressDisplay()
    async with HTTPAPIClient(VIMEO_API_BASE, token=vimeo_token) as api:
        requester = RateLimitedRequester(api, FetchConfig(), on_rate_limit=display.on_rate_limit)
        fetcher = CollectionFetcher(requester, VIMEO_API_BASE)
        index = await fetcher.fetch_all(args.team_owner, on_progress=display.on_progress)
    render_collection(index, grouped=not args.flat)
    print(f"{len(index.videos)} videos in {len(index.folders)} folders")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vimeo-import",
        description="Import videos from Vimeo to Ignite Video Cloud.",
    )
    parser.add_argument(
        "--api-base",
        default=None,
        help=f"Ignite API base URL (default from IGNITE_API_BASE or {DEFAULT_API_BASE})",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=None,
        help="Directory for the import queue state (default from IMPORTER_STATE_DIR)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command")

    imp = sub.add_parser("import", help="Import one or more Vimeo videos")
    imp.add_argument("source_ids", nargs="+", help="Vimeo video IDs")
    imp.add_argument("--visibility", choices=["private", "public"], default="private")
    imp.add_argument("--language", default="", help="Video language code (e.g. en)")
    imp.add_argument("--tags", default="", help="Comma-separated tags")
    imp.add_argument("--category", default="", help="Ignite category ID")
    imp.add_argument("--auto-transcribe", action="store_true", help="Request automatic transcription")
    imp.add_argument(
        "--max-size-mb",
        type=float,
        default=None,
        help="Refuse videos whose selected rendition is larger than this",
    )

    res = sub.add_parser("resume", help="Resume status polling of unfinished imports")
    res.set_defaults(max_size_mb=None)

    sub.add_parser("list", help="Show the import queue")

    rem = sub.add_parser("remove", help="Remove one import from the queue")
    rem.add_argument("item_id")

    sub.add_parser("clear", help="Remove all complete and failed imports")

    browse = sub.add_parser("browse", help="List every video of the Vimeo library")
    browse.add_argument("--team-owner", default=None, help="Team owner user ID (default: own library)")
    browse.add_argument("--flat", action="store_true", help="Do not group by folder")
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.command is None:
        parser.print_help()
        return 0

    args.api_base = (args.api_base or os.getenv("IGNITE_API_BASE") or DEFAULT_API_BASE).rstrip("/")

    try:
        if args.command == "list":
            return _list_imports(args)
        if args.command == "remove":
            return _remove_import(args)
        if args.command == "clear":
            return _clear_finished(args)

        store = _build_store(args.state_dir)
        render_configuration_summary(
            {
                "Command": args.command,
                "Ignite API": args.api_base,
                "State File": str(store.path),
                "Env File": str(used_env_file) if used_env_file else "-",
                "Logging": effective_log_mode,
            }
        )
        if args.command == "browse":
            return asyncio.run(_browse(args))
        if args.command == "import":
            return asyncio.run(_run_imports(args, args.source_ids))
        if args.command == "resume":
            return asyncio.run(_run_imports(args, []))
        raise CLIError(f"unknown command: {args.command}")
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except (ImporterError, httpx.HTTPError) as exc:
        print(f"ERROR: {describe_error(exc)}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled. Unfinished imports can be resumed with 'vimeo-import resume'.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
