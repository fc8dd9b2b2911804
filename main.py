#!/usr/bin/env python3
"""
Batch image optimizer: re-encodes jpeg/png files under a directory, optionally
converting them to avif/webp, and reports size and perceptual difference.

Usage examples:
  python main.py ./assets --output ./assets_optimized
  python main.py ./assets --overwrite --format png --convert png-webp
  python main.py ./assets --output ./dist --config web --workers 8
"""

import logging
import sys
from pathlib import Path

from imageoptimize.config import parse_args
from imageoptimize.pipeline import process_tree
from imageoptimize.utils import CONVERT_FORMATS, DEFAULT_CONVERT, IMG_EXTS, convert_map, parse_list


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    source = args.source or args.source_arg
    if not source:
        print("imageoptimize: try 'imageoptimize -h' or 'imageoptimize --help' for more information")
        return 1

    output = args.output or (source if args.overwrite else "")
    if not output:
        print("imageoptimize: output path is empty")
        return 1

    source_root = Path(source)
    if not source_root.is_dir():
        print(f"[ERR] Source is not a directory: {source_root}")
        return 1

    try:
        extensions = set(parse_list(args.format, IMG_EXTS, "format")) or set(IMG_EXTS)
        convert_names = parse_list(args.convert, CONVERT_FORMATS, "convert")
    except ValueError as e:
        print(f"[ERR] {e}")
        return 1
    if args.convert is None:
        convert_names = DEFAULT_CONVERT

    qualities = {
        "avif": args.avif_quality,
        "webp": args.webp_quality,
        "png": args.png_quality,
        "jpeg": args.jpeg_quality,
    }

    results = process_tree(
        source_root=source_root,
        output_root=Path(output),
        extensions=extensions,
        convert=convert_map(convert_names),
        qualities=qualities,
        workers=args.workers,
        show_progress=not args.no_progress,
    )
    return 1 if any("error" in r for r in results) else 0


if __name__ == "__main__":
    sys.exit(main())
