"""CLI entry point for the cell extractor."""

import argparse
import asyncio
import sys
from pathlib import Path

import uvicorn

from cell_extractor.core.exceptions import ExtractError
from cell_extractor.core.settings import get_settings
from cell_extractor.core.utils import setup_logging
from cell_extractor.services import ExtractionService


def main() -> int:
    """
    Main CLI entry point.

    Returns:
        int: Exit code (0 for success).
    """
    parser = argparse.ArgumentParser(
        description="Cell Extractor Service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the API server")
    server_parser.add_argument("--host", default=None, help="Server host")
    server_parser.add_argument("--port", type=int, default=None, help="Server port")
    server_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    # Extract command
    extract_parser = subparsers.add_parser("extract", help="Crop one cell from a local image")
    extract_parser.add_argument("image", help="Path to the composite image")
    extract_parser.add_argument("--x", type=float, required=True, help="Click x in [0, 1]")
    extract_parser.add_argument("--y", type=float, required=True, help="Click y in [0, 1]")
    extract_parser.add_argument("-o", "--output", default=None, help="Output file path")

    args = parser.parse_args()

    if args.command == "server":
        return run_server(args)
    if args.command == "extract":
        return run_extract(args)
    parser.print_help()
    return 0


def run_server(args: argparse.Namespace) -> int:
    """
    Run the API server.

    Args:
        args (argparse.Namespace): Parsed command line arguments.

    Returns:
        int: Exit code (0 for success).
    """
    settings = get_settings()

    host = args.host or settings.api_server.host
    port = args.port or settings.api_server.port

    uvicorn.run(
        app="cell_extractor.api.server:app",
        host=host,
        port=port,
        reload=args.reload,
    )
    return 0


def run_extract(args: argparse.Namespace) -> int:
    """
    Crop the cell under a click from a local image and write it to disk.

    Args:
        args (argparse.Namespace): Parsed command line arguments.

    Returns:
        int: Exit code (0 for success, 1 on failure).
    """
    settings = get_settings()
    setup_logging(settings=settings.logging)

    source = Path(args.image)
    if not source.is_file():
        print(f"Image not found: {source}", file=sys.stderr)
        return 1

    service = ExtractionService(settings)
    try:
        result = asyncio.run(
            service.extract_cell(image=source.read_bytes(), x_percent=args.x, y_percent=args.y)
        )
    except ExtractError as e:
        print(f"Could not extract this region: {e}", file=sys.stderr)
        return 1

    suffix = result.format.extension
    output = Path(args.output) if args.output else source.with_name(
        f"{source.stem}_cell_{result.row}_{result.column}{suffix}"
    )
    output.write_bytes(result.data)
    print(
        f"cell=({result.row}, {result.column}) x={result.x} y={result.y} "
        f"w={result.width} h={result.height} -> {output}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
