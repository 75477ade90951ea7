"""
reMarkable to Excalidraw CLI

Convert reMarkable .rm files (v3, v5, v6) to Excalidraw drawings.

Usage:
    python -m remarkable_excalidraw <input.rm> [-o output.excalidraw]
    python -m remarkable_excalidraw samples/*.rm -o output/
"""

import argparse
import glob
import logging
import sys
from pathlib import Path

from .config import MAX_STROKE_WIDTH_SCALE, MIN_STROKE_WIDTH_SCALE
from .converter import BackgroundImage, ConversionOptions, ExcalidrawConverter, write_excalidraw
from .parser import DecodeFailure, analyze_file, decode


def main():
    parser = argparse.ArgumentParser(
        description="Convert reMarkable .rm files to Excalidraw",
        prog="remarkable-excalidraw"
    )
    parser.add_argument(
        "input",
        nargs="+",
        type=Path,
        help="Input .rm file(s)"
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Output file or directory (default: same name as input with .excalidraw extension)"
    )
    parser.add_argument(
        "--analyze",
        action="store_true",
        help="Analyze file(s) without converting"
    )
    parser.add_argument(
        "--no-layers",
        action="store_true",
        help="Do not group strokes by layer"
    )
    parser.add_argument(
        "--include-eraser",
        action="store_true",
        help="Keep eraser strokes"
    )
    parser.add_argument(
        "--stroke-width-scale",
        type=float,
        default=0.5,
        help="Stroke width multiplier, 0.25-2.0 (default: 0.5)"
    )
    parser.add_argument(
        "--background",
        type=Path,
        help="Image to place underneath the strokes"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging"
    )

    args = parser.parse_args()

    if not MIN_STROKE_WIDTH_SCALE <= args.stroke_width_scale <= MAX_STROKE_WIDTH_SCALE:
        parser.error(
            f"--stroke-width-scale must be between {MIN_STROKE_WIDTH_SCALE} "
            f"and {MAX_STROKE_WIDTH_SCALE}"
        )

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(message)s",
    )

    # Expand glob patterns
    input_files = []
    for pattern in args.input:
        if pattern.exists():
            input_files.append(pattern)
        else:
            # Might be a glob pattern
            matches = sorted(Path(match) for match in glob.glob(str(pattern)))
            if matches:
                input_files.extend(matches)
            else:
                print(f"Warning: No files matching '{pattern}'", file=sys.stderr)

    if not input_files:
        print("Error: No input files found", file=sys.stderr)
        sys.exit(1)

    # Analyze mode
    if args.analyze:
        for input_file in input_files:
            analyze_file(input_file)
            print()
        return

    options = ConversionOptions(
        preserve_layers=not args.no_layers,
        include_eraser=args.include_eraser,
        stroke_width_scale=args.stroke_width_scale,
    )
    background = BackgroundImage.from_file(args.background) if args.background else None

    # Convert mode
    multiple_inputs = len(input_files) > 1

    if multiple_inputs:
        # Multiple inputs - output must be a directory
        if args.output:
            output_dir = args.output
            output_dir.mkdir(parents=True, exist_ok=True)
        else:
            output_dir = Path(".")
    else:
        output_dir = None

    failures = 0
    for input_file in input_files:
        if output_dir:
            output_file = output_dir / input_file.with_suffix(".excalidraw").name
        elif args.output:
            output_file = args.output
        else:
            output_file = input_file.with_suffix(".excalidraw")

        print(f"Converting {input_file.name}...", end=" ", flush=True)

        try:
            result = decode(input_file.read_bytes())
        except OSError as e:
            print(f"FAILED: {e}", file=sys.stderr)
            failures += 1
            continue

        if isinstance(result, DecodeFailure):
            print(f"FAILED: {result.error}", file=sys.stderr)
            failures += 1
            continue

        converter = ExcalidrawConverter(options)
        converter.background = background
        write_excalidraw(converter.convert(result.document), output_file)
        print(f"OK ({result.document.stroke_count} strokes)")

    if failures and not multiple_inputs:
        sys.exit(1)

    print(f"\nDone! Output in: {output_dir or output_file}")


if __name__ == "__main__":
    main()
