"""Extraction of responsive image tags from markup."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import MalformedDirectiveError
from .models import (
    DEFAULT_KEY,
    ResponsiveImage,
    SizesMap,
    TransformationInlineOptions,
)
from .properties import parse_properties, resolve_viewport_aliases
from .transformation import decode_transformations
from .utils import resolve_image_path

logger = logging.getLogger("responsive_picture.parsing")

IMG_TAG = "img-tag"
BACKGROUND_IMAGE = "background-image"

MIN_SIZE = 0.1

IMAGES_PATTERN = re.compile(r"<img.*?/>", re.DOTALL)
BACKGROUND_IMAGES_PATTERN = re.compile(
    r'<[a-z]\w*(?=[^<>]*\sresponsive-bg="\S+").*?>', re.IGNORECASE | re.DOTALL
)
IMAGES_ATTRIBUTES_PATTERN = re.compile(
    r'^<img(?=.*\sresponsive(?:="(\S+)")?\s.*)(?=.*\ssrc="(\S+)"\s.*).*/>$',
    re.DOTALL,
)
BACKGROUND_IMAGES_ATTRIBUTES_PATTERN = re.compile(
    r'^<[a-z][\s\S]*(?=.*\sresponsive(?:="(\S+)")?\s.*)(?=.*\sresponsive-bg="(\S+)").*>$',
    re.IGNORECASE | re.DOTALL,
)
# Only the first match of the following patterns is taken into account
ART_DIRECTION_ATTRIBUTE_PATTERN = re.compile(r'responsive-ad(?!-)(?:="(\S+)")?')
ART_DIRECTION_IGNORE_ATTRIBUTE_PATTERN = re.compile(
    r'responsive-ad-ignore(?:="(\S+)")?'
)

BACKGROUND_HOLDER_TEMPLATE = (
    '<img src="{path}" style="display:none" class="responsive-bg-holder" '
    "onload=\"typeof responsiveBgImageHandler !== 'undefined' && "
    'responsiveBgImageHandler(event)"/>'
)


def generate_img_tag_placeholder(path: str) -> str:
    return f"[[responsive:{path}]]"


def generate_url_placeholder(url: str) -> str:
    return f"[[responsive-url:{url}]]"


IMG_TAG_PLACEHOLDER_PATTERN = re.compile(r"\[\[responsive:(.+?)\]\]")
URL_PLACEHOLDER_PATTERN = re.compile(r"\[\[responsive-url:(.+?)\]\]")


@dataclass
class TagDescriptor:
    tag: str
    type: str


@dataclass
class ParsedDocument:
    """Markup with placeholders plus the images found in it."""

    markup: str
    images: List[ResponsiveImage] = field(default_factory=list)
    # Original matched tag text, keyed by resolved image path
    matches: Dict[str, str] = field(default_factory=dict)


class TagExtractor(ABC):
    """Locates responsive image tags and reads their main attributes."""

    @abstractmethod
    def find_tags(self, markup: str) -> List[TagDescriptor]:
        ...

    @abstractmethod
    def parse_attributes(self, descriptor: TagDescriptor) -> Optional[Tuple[Optional[str], str]]:
        """Return ``(inline options, image path)`` or None when the tag is not responsive."""
        ...

    @abstractmethod
    def parse_art_direction(self, tag: str) -> Optional[Tuple[Optional[str], Optional[str], bool]]:
        """Return ``(encoded transformations, ignore list, ignore present)``."""
        ...


class PatternTagExtractor(TagExtractor):
    """Tag extraction based on a fixed attribute grammar, without an HTML parser."""

    def find_tags(self, markup: str) -> List[TagDescriptor]:
        tags = [TagDescriptor(tag, IMG_TAG) for tag in IMAGES_PATTERN.findall(markup)]
        tags.extend(
            TagDescriptor(tag, BACKGROUND_IMAGE)
            for tag in BACKGROUND_IMAGES_PATTERN.findall(markup)
        )
        return tags

    def parse_attributes(self, descriptor: TagDescriptor) -> Optional[Tuple[Optional[str], str]]:
        pattern = (
            IMAGES_ATTRIBUTES_PATTERN
            if descriptor.type == IMG_TAG
            else BACKGROUND_IMAGES_ATTRIBUTES_PATTERN
        )
        match = pattern.match(descriptor.tag)
        if match is None:
            return None
        responsive_options, image_path = match.groups()
        return responsive_options, image_path

    def parse_art_direction(self, tag: str) -> Optional[Tuple[Optional[str], Optional[str], bool]]:
        art_direction = ART_DIRECTION_ATTRIBUTE_PATTERN.search(tag)
        if art_direction is None:
            return None
        ignore = ART_DIRECTION_IGNORE_ATTRIBUTE_PATTERN.search(tag)
        return (
            art_direction.group(1),
            ignore.group(1) if ignore else None,
            ignore is not None,
        )


def parse_size_property(
    responsive_options: Optional[str],
    default_size: float,
    viewport_aliases: Mapping[str, str],
) -> SizesMap:
    raw_sizes: Dict[str, str] = {}
    if responsive_options is not None:
        raw_sizes = parse_properties(responsive_options).get("size", {})

    sizes: SizesMap = {}
    for viewport, value in resolve_viewport_aliases(raw_sizes, viewport_aliases).items():
        try:
            sizes[viewport] = float(value)
        except ValueError as exc:
            raise MalformedDirectiveError(f"Size {value!r} is not a number") from exc
    sizes.setdefault(DEFAULT_KEY, default_size)

    return {viewport: max(size, MIN_SIZE) for viewport, size in sizes.items()}


def parse_ratio_property(responsive_options: Optional[str]) -> Optional[str]:
    if responsive_options is None:
        return None
    return parse_properties(responsive_options).get("ratio", {}).get(DEFAULT_KEY)


def parse_art_direction_attributes(extractor: TagExtractor, tag: str) -> Optional[TransformationInlineOptions]:
    attributes = extractor.parse_art_direction(tag)
    if attributes is None:
        return None

    encoded, ignore_list, ignore_present = attributes
    inline = (
        decode_transformations(parse_properties(encoded))
        if encoded is not None
        else {}
    )
    if not ignore_present:
        to_ignore = False
    elif ignore_list is None:
        to_ignore = True
    else:
        to_ignore = ignore_list.split("|")

    return TransformationInlineOptions(
        inline_transformations=inline,
        transformations_to_ignore=to_ignore,
    )


def generate_replacing_tag(resolved_path: str, tag: str, tag_type: str) -> str:
    placeholder = generate_img_tag_placeholder(resolved_path)
    if tag_type == IMG_TAG:
        return placeholder
    # Background containers are kept: a marker is added and the loader goes right after
    return f"{tag[:-1]} data-responsive-bg>\n{placeholder}\n"


def parse(
    markup: str,
    context_dir: str,
    *,
    default_size: float,
    viewport_aliases: Mapping[str, str],
    path_aliases: Mapping[str, str],
    extractor: Optional[TagExtractor] = None,
) -> ParsedDocument:
    """Replace responsive tags with placeholders and collect their images."""
    extractor = extractor or PatternTagExtractor()
    document = ParsedDocument(markup=markup)

    for descriptor in extractor.find_tags(markup):
        attributes = extractor.parse_attributes(descriptor)
        if attributes is None:
            # Missing "responsive" or the image path attribute
            continue

        responsive_options, image_path = attributes
        tag = descriptor.tag
        resolved_path = resolve_image_path(image_path, context_dir, path_aliases)

        document.matches[resolved_path] = (
            tag
            if descriptor.type == IMG_TAG
            else BACKGROUND_HOLDER_TEMPLATE.format(path=image_path)
        )

        image = ResponsiveImage(
            original_path=resolved_path,
            sizes=parse_size_property(responsive_options, default_size, viewport_aliases),
            context_dir=context_dir,
            ratio=parse_ratio_property(responsive_options),
            inline_art_direction=parse_art_direction_attributes(extractor, tag),
        )
        document.images.append(image)
        logger.debug("Found responsive image %s", resolved_path)

        document.markup = document.markup.replace(
            tag, generate_replacing_tag(resolved_path, tag, descriptor.type), 1
        )

    return document
