#!/usr/bin/env python3
"""
DocRectify CLI - document detection and rectification from the terminal.

Usage:
    python -m docrectify <command> [options]

Commands:
    detect      Print the detected document corners as JSON
    rectify     Rectify and enhance the document in a photo
    previews    Write bw / gray / color filter previews
    serve       Answer JSON requests line by line on stdin/stdout

Examples:
    docrectify detect photo.jpg
    docrectify rectify photo.jpg -o scan.png --mode gray
    docrectify rectify photo.jpg -o scan.png --corners "0.1,0.1;0.9,0.1;0.9,0.9;0.1,0.9"
    docrectify previews photo.jpg -o previews/
    docrectify serve < requests.jsonl
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from docrectify.config import APP_DESCRIPTION, APP_VERSION, CLI_PROG
from docrectify.utils.logger import setup_logging

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_corners(text: str) -> list[tuple[float, float]]:
    """Parse a corner string into four (x, y) pairs.

    Format: "x,y;x,y;x,y;x,y" in tl, tr, br, bl order, normalized to [0, 1].

    Args:
        text: Corner string.

    Returns:
        List of four (x, y) tuples.
    """
    corners: list[tuple[float, float]] = []
    for part in text.split(";"):
        part = part.strip()
        if not part:
            continue
        try:
            x_s, y_s = part.split(",")
            corners.append((float(x_s.strip()), float(y_s.strip())))
        except ValueError:
            raise ValueError(
                f"Invalid corner '{part}'. Use 'x,y;x,y;x,y;x,y' in tl,tr,br,bl order."
            ) from None
    if len(corners) != 4:
        raise ValueError(f"Expected 4 corners, got {len(corners)}.")
    return corners


def _load_settings(args):
    """Open the settings file given by --config (or the default one)."""
    from docrectify.utils.config_manager import ConfigManager

    return ConfigManager(str(args.config) if args.config else None)


def _build_scanner(settings, logger):
    """Create a scanner from the settings (or defaults)."""
    from docrectify.services.scanner import DocumentScanner

    config = settings.to_scanner_config()
    logger.debug(f"Scanner config: {config}")
    return DocumentScanner(config)


# ---------------------------------------------------------------------------
# Argument parser construction
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with subcommands."""
    p = argparse.ArgumentParser(
        prog=CLI_PROG,
        description=f"{APP_DESCRIPTION}.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging (DEBUG)")
    p.add_argument("--config", type=Path, default=None, help="Settings file (JSON)")
    p.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")

    sub = p.add_subparsers(dest="command", help="Available commands")

    # --- detect ---
    detect_p = sub.add_parser("detect", help="Print detected corners as JSON")
    detect_p.add_argument("input", type=Path, help="Input image")
    detect_p.add_argument(
        "--max-side", type=int, default=None, help="Longer side of the working image (default: 500)"
    )

    # --- rectify ---
    rectify_p = sub.add_parser("rectify", help="Rectify and enhance a document photo")
    rectify_p.add_argument("input", type=Path, help="Input image")
    rectify_p.add_argument("-o", "--output", type=Path, required=True, help="Output image file")
    rectify_p.add_argument(
        "--mode",
        choices=["bw", "gray", "color"],
        default=None,
        help="Enhancement mode (default: output.default_mode setting, else bw)",
    )
    rectify_p.add_argument(
        "--corners",
        type=str,
        default=None,
        help="Corners 'x,y;x,y;x,y;x,y' (tl,tr,br,bl, normalized). Detected if omitted.",
    )

    # --- previews ---
    previews_p = sub.add_parser("previews", help="Write low-resolution filter previews")
    previews_p.add_argument("input", type=Path, help="Input image")
    previews_p.add_argument(
        "-o", "--output", type=Path, default=None, help="Output directory (default: output.preview_dir setting)"
    )
    previews_p.add_argument("--corners", type=str, default=None, help="Corners as for 'rectify'")

    # --- serve ---
    serve_p = sub.add_parser("serve", help="JSON line protocol on stdin/stdout")
    serve_p.add_argument(
        "--ready", action="store_true", help="Announce {\"type\": \"ready\"} before reading"
    )

    return p


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _resolve_corners(args, scanner, logger):
    """Corners from --corners, else detection, else the default inset frame."""
    from docrectify.services.config import DEFAULT_CORNERS, Quad

    if args.corners:
        return Quad.from_array(_parse_corners(args.corners))

    quad = scanner.detect(args.input)
    if quad is None:
        logger.info("No document detected, using default corners")
        return DEFAULT_CORNERS
    return quad


def _cmd_detect(args, logger) -> int:
    """Handle the 'detect' command."""
    scanner = _build_scanner(_load_settings(args), logger)
    quad = scanner.detect(args.input, max_side=args.max_side)
    print(json.dumps(quad.to_dict() if quad is not None else None))
    return 0


def _cmd_rectify(args, logger) -> int:
    """Handle the 'rectify' command."""
    settings = _load_settings(args)
    scanner = _build_scanner(settings, logger)
    quad = _resolve_corners(args, scanner, logger)
    mode = args.mode or settings.get("output.default_mode", "bw")
    result = scanner.rectify(args.input, quad, mode)

    args.output.parent.mkdir(parents=True, exist_ok=True)
    suffix = args.output.suffix or ".png"
    args.output.write_bytes(result.encode(suffix))
    logger.info(f"Saved {result.width}x{result.height} {result.mode.value} scan to {args.output}")
    return 0


def _cmd_previews(args, logger) -> int:
    """Handle the 'previews' command."""
    from docrectify.services.config import EnhanceMode, encode_image

    settings = _load_settings(args)
    output = args.output or settings.get("output.preview_dir")
    if not output:
        raise ValueError("No output directory: pass -o or set output.preview_dir")
    output = Path(output)

    scanner = _build_scanner(settings, logger)
    quad = _resolve_corners(args, scanner, logger)
    previews = scanner.preview_filters(args.input, quad)

    output.mkdir(parents=True, exist_ok=True)
    for mode in EnhanceMode:
        path = output / f"{mode.value}.jpg"
        data = encode_image(getattr(previews, mode.value), ".jpg", scanner.config.preview_jpeg_quality)
        path.write_bytes(data)
        logger.info(f"Wrote {path}")
    return 0


def _cmd_serve(args, logger) -> int:
    """Handle the 'serve' command."""
    from docrectify.services.protocol import serve_lines

    scanner = _build_scanner(_load_settings(args), logger)
    serve_lines(sys.stdin, sys.stdout, scanner, announce_ready=args.ready)
    return 0


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    from docrectify.utils.exceptions import DocRectifyError

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # Configure logging (stderr, so stdout stays clean for JSON output)
    setup_logging(args.verbose)
    logger = logging.getLogger("docrectify.cli")

    # Validate input file existence
    if getattr(args, "input", None) and not args.input.exists():
        print(f"Error: {args.input} not found", file=sys.stderr)
        return 1

    handlers = {
        "detect": _cmd_detect,
        "rectify": _cmd_rectify,
        "previews": _cmd_previews,
        "serve": _cmd_serve,
    }

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args, logger)
    except (DocRectifyError, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
