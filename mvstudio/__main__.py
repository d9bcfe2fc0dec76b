"""
MV Studio Main Entry Point

Serve the HTTP API, or run a single contact sheet / cell expansion from
image files.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from mvstudio.core.config import load_config, set_config
from mvstudio.core.constants import ResolutionTier
from mvstudio.core.exceptions import MVStudioError
from mvstudio.core.logging_config import LogLevel, get_logger, setup_logging
from mvstudio.media.image_preprocessor import sniff_mime_type
from mvstudio.media.types import GenerationOptions, ImagePayload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mvstudio",
        description="MV Studio - contact sheet and panel generation"
    )
    parser.add_argument("--config", "-c", type=str, help="Path to configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=str, help="Also write logs to this file")

    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the FastAPI backend")
    serve.add_argument("--host", type=str, default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000, help="Port for the API server (default: 8000)")
    serve.add_argument("--reload", action="store_true")

    sheet = commands.add_parser("sheet", help="Generate a contact sheet from an image file")
    sheet.add_argument("image", type=str, help="Source image file")
    sheet.add_argument("--reference", type=str, help="Character reference image file")
    sheet.add_argument("--style-hint", type=str, help="Identity hint, e.g. 'East Asian woman'")
    sheet.add_argument("--closeup", action="store_true", help="Use the close-up sheet prompt")
    sheet.add_argument("--base-dir", type=str, help="Project output directory")

    cell = commands.add_parser("cell", help="Expand one cell of a contact sheet file")
    cell.add_argument("sheet", type=str, help="Contact sheet image file")
    cell.add_argument("index", type=int, help="Cell index 1-9")
    cell.add_argument("--reference", type=str, help="Character reference image file")
    cell.add_argument("--style-hint", type=str)
    cell.add_argument("--resolution", type=str, default="2K", choices=["2K", "4K"])
    cell.add_argument("--prompt", type=str, help="Auxiliary instruction")
    cell.add_argument("--base-dir", type=str, help="Project output directory")

    return parser


def read_image(path: str) -> ImagePayload:
    data = Path(path).read_bytes()
    return ImagePayload(data=data, mime_type=sniff_mime_type(data))


async def run_sheet(args, config) -> int:
    from mvstudio.media.studio import MediaStudio

    studio = MediaStudio.from_config(config)
    source = read_image(args.image)
    options = GenerationOptions(
        reference_image=read_image(args.reference) if args.reference else None,
        style_hint=args.style_hint,
    )
    result = await studio.generate_contact_sheet(
        source,
        options=options,
        source_id=source.digest[:16],
        source_label=Path(args.image).name,
        closeup=args.closeup,
        base_dir=args.base_dir,
    )
    return report(result)


async def run_cell(args, config) -> int:
    from mvstudio.media.studio import MediaStudio

    studio = MediaStudio.from_config(config)
    options = GenerationOptions(
        reference_image=read_image(args.reference) if args.reference else None,
        style_hint=args.style_hint,
        resolution=ResolutionTier.parse(args.resolution),
        auxiliary_instruction=args.prompt,
    )
    result = await studio.expand_cell(read_image(args.sheet), args.index, options, base_dir=args.base_dir)
    return report(result)


def report(result) -> int:
    if result.success:
        print(f"Saved: {result.saved_path}" if result.saved_path else "Generated (not saved)")
        return 0
    print(f"Failed: {result.message}")
    return 1


def main(argv=None) -> int:
    """Main entry point for MV Studio."""
    args = build_parser().parse_args(argv)

    if args.debug:
        log_level = LogLevel.DEBUG
    elif args.verbose:
        log_level = LogLevel.INFO
    else:
        log_level = LogLevel.WARNING
    setup_logging(level=log_level, log_file=Path(args.log_file) if args.log_file else None, verbose=args.verbose)

    logger = get_logger("main")

    try:
        config = load_config(Path(args.config) if args.config else None)
        set_config(config)

        if args.command == "serve":
            from mvstudio.api.main import start_server
            logger.info(f"Starting API server on {args.host}:{args.port}")
            start_server(host=args.host, port=args.port, reload=args.reload)
            return 0
        if args.command == "sheet":
            return asyncio.run(run_sheet(args, config))
        return asyncio.run(run_cell(args, config))
    except MVStudioError as e:
        logger.error(str(e))
        print(f"Error: {e.message}")
        return 2
    except OSError as e:
        logger.error(f"File error: {e}")
        print(f"Error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
