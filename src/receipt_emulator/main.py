"""Command line tool for the receipt emulator.

Usage:
    receipt-emulator render <input>            Render a binary ESC/POS dump
    receipt-emulator render --hex <input>      Render a hex text dump
    receipt-emulator encode-image <image>      Print GS ( L commands for an image

Examples:
    receipt-emulator render capture.bin --format png -o out/
    receipt-emulator render dump.txt --hex --page-width 384
    receipt-emulator encode-image logo.png --scale-x 2
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from receipt_emulator.config.settings import PAPER_WIDTHS, RenderSettings
from receipt_emulator.pipeline import BatchPipeline
from receipt_emulator.render.html import HtmlRenderer
from receipt_emulator.render.image import ImageRenderer
from receipt_emulator.utils.hex import hex_to_bytes
from receipt_emulator.utils.image import encode_image_file

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )


def _settings(args) -> RenderSettings:
    overrides = {}
    if args.paper:
        overrides["page_width"] = PAPER_WIDTHS[args.paper]
    if args.page_width is not None:
        overrides["page_width"] = args.page_width
    if args.workers is not None:
        overrides["workers"] = args.workers
    if args.debug:
        overrides["debug"] = True
    return RenderSettings(**overrides)


def cmd_render(args) -> int:
    """Render every receipt of a dump to files."""
    settings = _settings(args)
    setup_logging(settings.debug)

    source = Path(args.input)
    data = hex_to_bytes(source.read_text(encoding="utf-8")) if args.hex else source.read_bytes()
    logger.info(f"Read {len(data)} bytes from {source}")

    if args.format == "html":
        renderer = HtmlRenderer()
    else:
        renderer = ImageRenderer.from_settings(settings)
    result = BatchPipeline(renderer, settings=settings).process(data)

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)
    for artifact in result.output:
        path = output_dir / f"{source.stem}-{artifact.job_index:03d}.{args.format}"
        if args.format == "html":
            artifact.save(path)
        elif artifact.is_empty:
            logger.info(f"Receipt {artifact.job_index} is empty, nothing to save")
            continue
        else:
            artifact.save(path, format=args.format.upper())
        print(path)

    for warning in result.warnings:
        logger.warning(warning.describe())
    for error in result.errors:
        print(error.describe(), file=sys.stderr)

    return 1 if result.errors else 0


def cmd_encode_image(args) -> int:
    """Print the ESC/POS hex for an image."""
    setup_logging()
    print(encode_image_file(args.image, args.scale_x, args.scale_y))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="receipt-emulator",
        description="Thermal receipt printer emulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # render command
    p_render = subparsers.add_parser('render', help='Render an ESC/POS dump')
    p_render.add_argument('input', help='Path to the dump')
    p_render.add_argument('--hex', action='store_true', help='Input is hex text')
    p_render.add_argument('--format', choices=['html', 'png', 'bmp'], default='html', help='Output format (default: html)')
    p_render.add_argument('-o', '--output', default='.', help='Output directory (default: current)')
    p_render.add_argument('--paper', choices=sorted(PAPER_WIDTHS), help='Paper width')
    p_render.add_argument('--page-width', type=int, help='Printable width in dots')
    p_render.add_argument('--workers', type=int, help='Render jobs on N threads')
    p_render.add_argument('--debug', action='store_true', help='Verbose logging')
    p_render.set_defaults(func=cmd_render)

    # encode-image command
    p_encode = subparsers.add_parser('encode-image', help='Encode an image as GS ( L commands')
    p_encode.add_argument('image', help='Path to image file')
    p_encode.add_argument('--scale-x', type=int, choices=[1, 2], default=1, help='Horizontal scale')
    p_encode.add_argument('--scale-y', type=int, choices=[1, 2], default=1, help='Vertical scale')
    p_encode.set_defaults(func=cmd_encode_image)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    from dotenv import load_dotenv

    # Load environment variables
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except (OSError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
