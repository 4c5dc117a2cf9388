"""Resolution switching: allocation of resized breakpoints across viewports.

Breakpoints are spread over the intervals delimited by the art-direction
sources. Narrow viewports (smartphones) suffer high page weight the most, so
the budget is handed out starting from the lowest intervals; breakpoints an
interval cannot use are passed on to the next, wider interval and dropped when
the widest interval cannot use them either.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

from .config import PipelineContext
from .models import (
    DEFAULT_KEY,
    ORIGINAL_RATIO,
    Breakpoint,
    ResizeWork,
    ResponsiveImage,
    SizesMap,
    Source,
)
from .transformation import by_increasing_max_viewport
from .utils import (
    calculate_width,
    generate_uri,
    ratio_to_number,
    read_image_ratio,
    read_image_size,
    source_key,
)

logger = logging.getLogger("responsive_picture.resizing")


@dataclass
class IntervalDelimiter:
    """Viewport boundary of an interval.

    The width is only known once the delimiter is bound to an interval, since
    both ends of an interval are scaled with the size of its end delimiter.
    """

    path: str
    size: float
    ratio: float
    viewport: int
    source: Optional[Source] = None
    width: int = 0


@dataclass
class ResizingInterval:
    start: IntervalDelimiter
    end: IntervalDelimiter
    breakpoints_count: int


def generate_resizing_uri(
    output_dir: str, path: str, width: int, key: Optional[str] = None
) -> str:
    # b: breakpoint
    return generate_uri(output_dir, path, f"-b_{width}", key)


def by_increasing_width(breakpoint: Breakpoint) -> int:
    return breakpoint.width


def to_kb(size: float) -> float:
    return size / 1024


def estimate_size(width: int, ratio: float) -> int:
    """Pixel count of a rendition, used as a proxy of its file size."""
    height = math.ceil(width * ratio)
    return height * width


def source_ratio(source: Source, original_ratio: float) -> float:
    if source.is_custom:
        try:
            return read_image_ratio(source.custom_path)
        except OSError:
            logger.warning(
                "Could not read %s, using the original image ratio", source.custom_path
            )
            return original_ratio
    return ratio_to_number(source.ratio, original_ratio)


def generate_interval_delimiters(
    sources: Sequence[Source],
    original_path: str,
    original_ratio: float,
    min_viewport: int,
    max_viewport: int,
    sizes: SizesMap,
) -> List[IntervalDelimiter]:
    """Return ``[min, ...sources strictly within the range, max]``.

    The widest source at or beyond ``max_viewport`` anchors the max delimiter.
    """
    delimiters = [
        IntervalDelimiter(
            path=source.path,
            size=source.size,
            ratio=source_ratio(source, original_ratio),
            viewport=source.max_viewport,
            source=source,
        )
        for source in sorted(sources, key=by_increasing_max_viewport)
    ]
    default_size = sizes.get(str(max_viewport), sizes[DEFAULT_KEY])

    first_after_min = next((d for d in delimiters if d.viewport > min_viewport), None)
    last_after_max = next(
        (d for d in reversed(delimiters) if d.viewport >= max_viewport), None
    )

    if first_after_min is not None:
        min_delimiter = replace(first_after_min, viewport=min_viewport, source=None)
    else:
        # A ratio of 0 gives an estimated size of 0, so it never blocks a breakpoint
        min_delimiter = IntervalDelimiter(
            path=original_path, size=default_size, ratio=0.0, viewport=min_viewport
        )

    if last_after_max is not None:
        max_delimiter = replace(last_after_max, viewport=max_viewport)
    else:
        max_delimiter = IntervalDelimiter(
            path=original_path,
            size=default_size,
            ratio=original_ratio,
            viewport=max_viewport,
        )

    within_range = [d for d in delimiters if min_viewport < d.viewport < max_viewport]
    return [min_delimiter, *within_range, max_delimiter]


def generate_intervals(
    delimiters: Sequence[IntervalDelimiter],
    max_breakpoints: int,
    support_retina: bool = False,
) -> List[ResizingInterval]:
    interval_count = len(delimiters) - 1
    per_interval, remainder = divmod(max_breakpoints, interval_count)
    density = 2 if support_retina else 1

    intervals: List[ResizingInterval] = []
    for index in range(1, len(delimiters)):
        previous, current = delimiters[index - 1], delimiters[index]
        intervals.append(
            ResizingInterval(
                # Both ends are scaled with the end delimiter size
                start=replace(
                    previous,
                    width=calculate_width(previous.viewport, current.size) * density,
                ),
                end=replace(
                    current,
                    width=calculate_width(current.viewport, current.size) * density,
                ),
                # Remainder goes to the lowest intervals first
                breakpoints_count=per_interval + (1 if remainder >= index else 0),
            )
        )
    return intervals


def estimate_interval_sizes(interval: ResizingInterval, widths: Sequence[int]) -> List[float]:
    start, end = interval.start, interval.end
    return (
        [to_kb(estimate_size(start.width, start.ratio))]
        + [to_kb(estimate_size(width, end.ratio)) for width in widths]
        + [to_kb(estimate_size(end.width, end.ratio))]
    )


def generate_breakpoint_widths(
    min_size_difference: float,
    interval: ResizingInterval,
    next_interval: Optional[ResizingInterval],
) -> List[int]:
    """Candidate widths for ``interval``, rebalancing its count until all steps are wide enough."""
    while interval.breakpoints_count > 0:
        count = interval.breakpoints_count
        unit = (interval.end.width - interval.start.width) // (count + 1)
        widths = [interval.start.width + unit * (index + 1) for index in range(count)]

        sizes = estimate_interval_sizes(interval, widths)
        if all(
            current - previous >= min_size_difference
            for previous, current in zip(sizes, sizes[1:])
        ):
            return widths

        # Steps are too narrow: move one breakpoint to the next interval, if any
        interval.breakpoints_count -= 1
        if next_interval is not None:
            next_interval.breakpoints_count += 1

    return []


def apply_resizes(image: ResponsiveImage, context: PipelineContext) -> List[ResizeWork]:
    """Replace the image sources with resized ones and return the resizes to run."""
    options = context.options
    resolution = options.resolution_switching

    if resolution.resizer is None:
        return []

    art_direction_sources = [s for s in image.sources if s.is_transformation]
    viewport_to_source: Dict[int, Source] = {
        source.max_viewport: source for source in art_direction_sources
    }

    delimiters = generate_interval_delimiters(
        art_direction_sources,
        image.original_path,
        read_image_ratio(image.original_path),
        resolution.min_viewport,
        resolution.max_viewport,
        image.sizes,
    )
    intervals = generate_intervals(
        delimiters, resolution.max_breakpoints_count, resolution.support_retina
    )

    pending: List[ResizeWork] = []
    for index, interval in enumerate(intervals):
        next_interval = intervals[index + 1] if index + 1 < len(intervals) else None

        if interval.breakpoints_count == 0:
            continue

        end = interval.end
        if to_kb(estimate_size(end.width, end.ratio)) < resolution.min_size_difference * 2:
            # Not even one breakpoint fits here
            if next_interval is not None:
                next_interval.breakpoints_count += interval.breakpoints_count
            interval.breakpoints_count = 0
            continue

        widths = generate_breakpoint_widths(
            resolution.min_size_difference, interval, next_interval
        )
        if not widths:
            continue

        try:
            anchor_width, _ = read_image_size(end.path)
        except OSError as exc:
            logger.warning("Could not read %s, skipping its breakpoints: %s", end.path, exc)
            continue

        source = end.source or viewport_to_source.get(end.viewport)
        if source is None:
            source = Source(
                path=end.path,
                size=end.size,
                ratio=ORIGINAL_RATIO,
                max_viewport=end.viewport,
            )
            viewport_to_source[end.viewport] = source

        # Derivatives of the original carry its key, crops already do
        key = source_key(end.path) if end.path == image.original_path else None
        # Renditions are never wider than the image they are resized from
        existing = {breakpoint.width for breakpoint in source.breakpoints}
        for width in sorted({min(width, anchor_width) for width in widths} - existing):
            uri = generate_resizing_uri(options.paths.output_dir, end.path, width, key)
            breakpoint = Breakpoint(path=context.temp_path(uri), uri=uri, width=width)
            source.breakpoints.append(breakpoint)
            pending.append(ResizeWork(source_path=end.path, breakpoint=breakpoint, uri=uri))
            logger.debug("Queued resize %s", uri)

    image.sources = list(viewport_to_source.values())
    return pending
