"""Re-assembly of the final markup from the processed images."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Mapping, Sequence

from .errors import UnsupportedSourceTypeError
from .models import Breakpoint, ResponsiveImage, Source
from .parsing import (
    URL_PLACEHOLDER_PATTERN,
    ParsedDocument,
    generate_img_tag_placeholder,
    generate_url_placeholder,
)
from .conversion import by_most_efficient_format
from .resizing import by_increasing_width
from .transformation import by_increasing_max_viewport
from .utils import mime_type_for

logger = logging.getLogger("responsive_picture.markup")

# Only the first match of each pattern is taken into account
CLASS_PATTERN = re.compile(r'(?<![\w-])class="([^"]+)"')
IMG_CLASS_PATTERN = re.compile(r'responsive-img-class(?:="([^"]+)")?')
PICTURE_CLASS_PATTERN = re.compile(r'responsive-picture-class(?:="([^"]+)")?')
TAG_NAME_PATTERN = re.compile(r"^<[\w-]+")


def generate_srcset(breakpoints: Sequence[Breakpoint]) -> str:
    if len(breakpoints) == 1:
        return generate_url_placeholder(breakpoints[0].uri)

    return ", ".join(
        f"{generate_url_placeholder(breakpoint.uri)} {breakpoint.width}w"
        for breakpoint in sorted(breakpoints, key=by_increasing_width)
    )


def sort_sources(sources: Iterable[Source]) -> List[Source]:
    # Both sorts are stable: formats group the sources, viewports order each group
    by_viewport = sorted(sources, key=by_increasing_max_viewport)
    return sorted(by_viewport, key=by_most_efficient_format)


def _class_override(pattern: re.Pattern, tag: str, original_class: str) -> str:
    match = pattern.search(tag)
    if match is None:
        return original_class
    return match.group(1) or ""


def _set_class(tag: str, class_name: str) -> str:
    if CLASS_PATTERN.search(tag):
        return CLASS_PATTERN.sub(lambda _: f'class="{class_name}"', tag, count=1)
    if not class_name:
        return tag
    return TAG_NAME_PATTERN.sub(lambda match: f'{match.group(0)} class="{class_name}"', tag, count=1)


def generate_source_tag(source: Source) -> str:
    mime_type = mime_type_for(source.format or "")
    if not mime_type:
        raise UnsupportedSourceTypeError(
            f"Format {source.format!r} could not be resolved to a mime type"
        )

    tag = f'<source type="{mime_type}" '
    if source.is_transformation:
        sizes = f"{source.size:g}px" if source.size > 1.0 else f"{source.size * 100:g}vw"
        tag += f'sizes="{sizes}" '
        tag += f'media="(max-width: {source.max_viewport}px)" '
    tag += f'srcset="{generate_srcset(source.breakpoints)}" '
    return tag + "/>\n"


def generate_picture(image: ResponsiveImage, image_match: str) -> str:
    original_class_match = CLASS_PATTERN.search(image_match)
    original_class = original_class_match.group(1) if original_class_match else ""
    img_class = _class_override(IMG_CLASS_PATTERN, image_match, original_class)
    picture_class = _class_override(PICTURE_CLASS_PATTERN, image_match, original_class)

    picture = f'<picture class="{picture_class}">\n'
    for source in sort_sources(image.sources):
        picture += generate_source_tag(source)

    # The original tag goes last, as-is apart from its class, as the fallback
    picture += _set_class(image_match, img_class) + "\n"
    picture += "</picture>\n"
    return picture


def enhance(document: ParsedDocument) -> str:
    """Swap every image placeholder with its ``<picture>`` element."""
    markup = document.markup

    for image in document.images:
        image_match = document.matches[image.original_path]

        if not image.sources:
            # Nothing was generated, the original tag is left untouched
            enhanced = image_match
        else:
            enhanced = generate_picture(image, image_match)

        markup = markup.replace(
            generate_img_tag_placeholder(image.original_path), enhanced, 1
        )
        logger.debug("Enhanced %s with %d source(s)", image.original_path, len(image.sources))

    return markup


def prune_missing_derivatives(images: Iterable[ResponsiveImage], generated: Mapping[str, str]) -> int:
    """Drop breakpoints that were never generated, then empty sources."""
    pruned = 0
    for image in images:
        for source in image.sources:
            kept = [b for b in source.breakpoints if b.uri in generated]
            pruned += len(source.breakpoints) - len(kept)
            source.breakpoints = kept
        image.sources = [source for source in image.sources if source.breakpoints]
    return pruned


def replace_url_placeholders(markup: str, url_map: Mapping[str, str]) -> str:
    def _replace(match: re.Match) -> str:
        uri = match.group(1)
        return url_map.get(uri, uri)

    return URL_PLACEHOLDER_PATTERN.sub(_replace, markup)
