"""Data models used throughout the responsive image pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

DEFAULT_KEY = "__default"
ORIGINAL_RATIO = "original"

SizesMap = Dict[str, float]


class ImageFormat(str, Enum):
    """Output formats, listed from the most to the least efficient."""

    WEBP = "webp"
    JPEG = "jpg"


PREFERRED_FORMAT_ORDER: List[str] = [fmt.value for fmt in ImageFormat]


@dataclass
class Breakpoint:
    """One rendition of a source at a given pixel width."""

    path: str
    uri: str
    width: int


@dataclass
class Source:
    """A group of breakpoints sharing viewport, ratio and format."""

    path: str
    size: float
    ratio: str = ORIGINAL_RATIO
    breakpoints: List[Breakpoint] = field(default_factory=list)
    max_viewport: Optional[int] = None
    custom_path: Optional[str] = None
    format: Optional[str] = None

    @property
    def is_transformation(self) -> bool:
        return bool(self.max_viewport)

    @property
    def is_custom(self) -> bool:
        return self.custom_path is not None


@dataclass(frozen=True)
class TransformationDescriptor:
    """Art-direction request for one viewport; exactly one of ratio/path is set."""

    max_viewport: int
    size: float
    ratio: Optional[str] = None
    path: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.ratio is None) == (self.path is None):
            raise ValueError("A transformation needs exactly one of ratio or path")

    @property
    def is_custom(self) -> bool:
        return self.path is not None


@dataclass
class Transformation:
    """Raw transformation entry, as written in defaults or inline options."""

    ratio: Optional[str] = None
    path: Optional[str] = None


@dataclass
class TransformationInlineOptions:
    """Art-direction directives found on a single tag."""

    inline_transformations: Dict[str, Transformation] = field(default_factory=dict)
    transformations_to_ignore: Union[bool, List[str]] = False


@dataclass
class ResponsiveImage:
    """An image found in markup together with the sources derived from it."""

    original_path: str
    sizes: SizesMap
    context_dir: str = "."
    ratio: Optional[str] = None
    sources: List[Source] = field(default_factory=list)
    inline_art_direction: Optional[TransformationInlineOptions] = None


@dataclass
class TransformationWork:
    """Pending crop: read ``source_path`` and write the result to ``source.path``."""

    source_path: str
    descriptor: TransformationDescriptor
    source: Source
    uri: str


@dataclass
class ResizeWork:
    """Pending resize of ``source_path`` to ``breakpoint.width``."""

    source_path: str
    breakpoint: Breakpoint
    uri: str


@dataclass
class ConversionWork:
    """Pending re-encode of ``source_path`` into ``format``."""

    source_path: str
    format: str
    uri: str
    target_path: str
