"""Command-line entry point for responsive-picture."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence

from .builder import DocumentResult, ResponsiveImageBuilder
from .config import ResponsiveImageOptions, load_options, load_options_file
from .errors import ConfigError

logger = logging.getLogger("responsive_picture.cli")

OUTPUT_SUFFIX = ".responsive"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Wrap responsive <img> tags of HTML files into <picture> elements"
    )
    parser.add_argument("files", nargs="+", type=Path, help="HTML files to process")
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON file holding the pipeline options",
    )
    parser.add_argument(
        "--output-root",
        default="output",
        type=Path,
        help="Directory where generated images should be written",
    )
    destination = parser.add_mutually_exclusive_group()
    destination.add_argument(
        "--in-place",
        action="store_true",
        help="Overwrite the input files with the rewritten markup",
    )
    destination.add_argument(
        "--dest",
        type=Path,
        help="Directory where the rewritten markup should be written",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def output_path_for(source: Path, in_place: bool, dest: Optional[Path]) -> Path:
    if in_place:
        return source
    if dest is not None:
        return dest / source.name
    return source.with_name(f"{source.stem}{OUTPUT_SUFFIX}{source.suffix}")


def _load(config: Optional[Path]) -> ResponsiveImageOptions:
    if config is None:
        return load_options()
    return load_options_file(config)


def _write_results(
    files: List[Path],
    results: List[DocumentResult],
    args: argparse.Namespace,
) -> int:
    failures = 0
    for path, result in zip(files, results):
        if not result.ok:
            failures += 1
            continue
        target = output_path_for(path, args.in_place, args.dest)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(result.markup or "", encoding="utf-8")
        logger.info("Saved markup to %s", target)
    return failures


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        options = _load(args.config)
    except ConfigError as exc:
        logger.error("%s", exc)
        sys.exit(2)

    files: List[Path] = []
    documents = []
    for path in args.files:
        try:
            markup = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.error("Could not read %s: %s", path, exc)
            continue
        files.append(path)
        documents.append((markup, str(path.resolve().parent)))

    overall_start = time.perf_counter()
    with ResponsiveImageBuilder(options, args.output_root.resolve()) as builder:
        results = asyncio.run(builder.build(documents))
    total_elapsed = time.perf_counter() - overall_start

    failures = _write_results(files, results, args) + len(args.files) - len(files)
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed, %d image(s) generated)",
        total_elapsed,
        len(args.files) - failures,
        len(args.files),
        failures,
        len(builder.url_map),
    )

    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
