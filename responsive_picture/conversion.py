"""Conversion of every breakpoint into the enabled output formats."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import PurePath
from typing import List, Optional, Tuple

from .config import PipelineContext
from .errors import UnsupportedSourceTypeError
from .models import (
    DEFAULT_KEY,
    ORIGINAL_RATIO,
    PREFERRED_FORMAT_ORDER,
    Breakpoint,
    ConversionWork,
    ImageFormat,
    ResponsiveImage,
    Source,
)
from .utils import (
    change_extension,
    detect_image_format,
    generate_uri,
    read_image_size,
    source_key,
)

logger = logging.getLogger("responsive_picture.conversion")

SUPPORTED_IMAGE_FORMATS = [fmt.value for fmt in ImageFormat]


def by_most_efficient_format(source: Source) -> int:
    """Sort key: earlier in the preferred list means more efficient."""
    if source.format in PREFERRED_FORMAT_ORDER:
        return PREFERRED_FORMAT_ORDER.index(source.format)
    return len(PREFERRED_FORMAT_ORDER)


def guard_against_unsupported_source_type(image_path: str) -> str:
    """Detect the format from the file signature, never from its extension."""
    try:
        image_format = detect_image_format(image_path)
    except OSError as exc:
        raise UnsupportedSourceTypeError(f"Type of {image_path} could not be detected: {exc}") from exc

    if image_format is None:
        raise UnsupportedSourceTypeError(f"Type of {image_path} could not be detected")
    if image_format not in SUPPORTED_IMAGE_FORMATS:
        raise UnsupportedSourceTypeError(
            f"Type {image_format} is not supported. "
            f"Supported types: {', '.join(SUPPORTED_IMAGE_FORMATS)}"
        )
    return image_format


def generate_conversion_uri(output_dir: str, path: str, key: Optional[str] = None) -> str:
    # c: converted
    return generate_uri(output_dir, path, "-c", key)


def generate_fallback_source(
    image: ResponsiveImage,
    image_format: str,
    context: PipelineContext,
) -> Tuple[Source, ConversionWork]:
    """Source made of the whole original image, converted at the default size."""
    output_dir = context.options.paths.output_dir
    name = PurePath(image.original_path).stem
    uri = generate_conversion_uri(
        output_dir, f"{name}.{image_format}", source_key(image.original_path)
    )
    width, _ = read_image_size(image.original_path)
    target_path = context.temp_path(uri)

    source = Source(
        path=image.original_path,
        size=image.sizes[DEFAULT_KEY],
        ratio=ORIGINAL_RATIO,
        format=image_format,
        breakpoints=[Breakpoint(path=target_path, uri=uri, width=width)],
    )
    work = ConversionWork(
        source_path=image.original_path,
        format=image_format,
        uri=uri,
        target_path=target_path,
    )
    return source, work


def apply_conversions(image: ResponsiveImage, context: PipelineContext) -> List[ConversionWork]:
    """Clone every source once per enabled format and return the conversions to run."""
    conversion = context.options.conversion
    output_dir = context.options.paths.output_dir

    if conversion.converter is None:
        if not image.sources:
            return []
        image_format = guard_against_unsupported_source_type(image.original_path)
        image.sources = [replace(source, format=image_format) for source in image.sources]
        return []

    pending: List[ConversionWork] = []
    converted_sources: List[Source] = []

    for image_format in conversion.enabled_formats.enabled():
        for source in image.sources:
            breakpoints: List[Breakpoint] = []
            for breakpoint in source.breakpoints:
                uri = change_extension(
                    generate_conversion_uri(output_dir, breakpoint.uri), image_format
                )
                target_path = context.temp_path(uri)
                breakpoints.append(replace(breakpoint, path=target_path, uri=uri))
                pending.append(
                    ConversionWork(
                        source_path=breakpoint.path,
                        format=image_format,
                        uri=uri,
                        target_path=target_path,
                    )
                )
            # Transformation metadata is retained
            converted_sources.append(
                replace(source, breakpoints=breakpoints, format=image_format)
            )

        fallback, work = generate_fallback_source(image, image_format, context)
        converted_sources.append(fallback)
        pending.append(work)

    image.sources = converted_sources
    logger.debug(
        "Queued %d conversion(s) for %s", len(pending), image.original_path
    )
    return pending
