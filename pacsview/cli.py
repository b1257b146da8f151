"""PACSView CLI - Command Line Interface for the server and its index.

Usage:
    pacsview <command> [options]

Commands:
    serve           Run the HTTP server
    index           Rebuild the index once and print its statistics
    clear-cache     Delete every cached thumbnail
    version         Show version information

Examples:
    pacsview serve --port 5180
    pacsview index --root /data/dicom
    pacsview clear-cache

"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import NoReturn

from pacsview.core.config import settings
from pacsview.core.logging import setup_logging


def print_banner() -> None:
    """Print PACSView CLI banner."""
    print("\n" + "=" * 50)
    print(" PACSView CLI")
    print(" DICOM Archive Browser & Image Server")
    print("=" * 50 + "\n")


def print_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"ERROR: {message}", file=sys.stderr)


def print_success(message: str) -> None:
    """Print success message."""
    print(f"SUCCESS: {message}")


def cmd_version(_args: argparse.Namespace) -> int:
    """Show version information."""
    print_banner()
    print(f"Version:     {settings.app_version}")
    print(f"Environment: {settings.environment}")
    print(f"Storage:     {settings.dicom.root_path}")
    print(f"Python:      {sys.version.split()[0]}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP server."""
    import uvicorn

    uvicorn.run(
        "pacsview.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
        workers=1 if args.reload else settings.workers,
        log_level="debug" if settings.debug else "info",
    )
    return 0


def cmd_index(args: argparse.Namespace) -> int:
    """Rebuild the index once and print the statistics as JSON."""
    from pacsview.services.dicom import DicomIndex, DicomIndexService

    root = Path(args.root) if args.root else settings.dicom.root_path
    if not root.is_dir():
        print_error(f"Storage path does not exist: {root}")
        return 1

    service = DicomIndexService(
        DicomIndex(),
        root,
        excluded_extensions=settings.dicom.excluded_extensions,
        progress_log_interval=settings.dicom.progress_log_interval,
    )
    stats = service.rebuild_index()
    print(json.dumps(asdict(stats), indent=2, default=str))
    return 0


def cmd_clear_cache(_args: argparse.Namespace) -> int:
    """Delete every cached thumbnail."""
    from pacsview.services.dicom import DicomImageService, DicomIndex, ThumbnailCache

    print_banner()
    index = DicomIndex()
    cache = ThumbnailCache(index, DicomImageService(index), settings.dicom.thumbnail_cache_path)
    deleted = asyncio.run(cache.clear())
    print_success(f"Deleted {deleted} cached thumbnails from {cache.cache_dir}")
    return 0


def main() -> NoReturn:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pacsview",
        description="PACSView CLI - DICOM archive browser and image server",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"PACSView {settings.app_version}",
    )
    parser.add_argument(
        "--log-level",
        default="DEBUG" if settings.debug else "INFO",
        help="Minimum log level",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    # version command
    version_parser = subparsers.add_parser(
        "version",
        help="Show version information",
    )
    version_parser.set_defaults(func=cmd_version)

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP server",
    )
    serve_parser.add_argument("--host", help=f"Bind address (default {settings.host})")
    serve_parser.add_argument("--port", "-p", type=int, help=f"Port (default {settings.port})")
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes (development)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    # index command
    index_parser = subparsers.add_parser(
        "index",
        help="Rebuild the index once and print its statistics",
    )
    index_parser.add_argument(
        "--root",
        "-r",
        help="Storage root to scan (defaults to DICOM_ROOT_PATH)",
    )
    index_parser.set_defaults(func=cmd_index)

    # clear-cache command
    clear_cache_parser = subparsers.add_parser(
        "clear-cache",
        help="Delete every cached thumbnail",
    )
    clear_cache_parser.set_defaults(func=cmd_clear_cache)

    # Parse arguments
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(
        log_level=args.log_level,
        json_logs=settings.json_logs or settings.environment == "production",
    )

    # Execute command
    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
