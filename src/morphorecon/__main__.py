# src/morphorecon/__main__.py
from __future__ import annotations

# General imports (stdlib)
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Local imports
from .config import make_config
from .core import ConversionPipeline
from .exceptions import MorphoreconError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="morphorecon",
        description="Convert SWC/JSON neuron reconstructions into portal JSON documents.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("directory", type=Path, help="Directory containing reconstruction files.")
    parser.add_argument("--output-dir", type=Path, default=None, help="Output directory (default: <directory>/Processed).")
    parser.add_argument("--chunked", action="store_true", help="Read JSON files in chunked mode.")
    parser.add_argument("--page-size", type=int, default=None, help="Nodes per structure per output page.")
    parser.add_argument("--skip-invalid", action="store_true", help="Log and skip files that fail to parse.")
    parser.add_argument("--no-overwrite", action="store_true", help="Keep outputs that already exist.")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(asctime)s - %(levelname)s - %(name)s: %(message)s")

    try:
        cfg = make_config(
            args.directory,
            output_directory=args.output_dir,
            chunked_json=args.chunked,
            page_size=args.page_size,
            skip_invalid=args.skip_invalid,
            overwrite=not args.no_overwrite,
        )
        ConversionPipeline(cfg).run()
    except MorphoreconError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
