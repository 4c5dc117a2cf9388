"""Configuration objects and defaults for the responsive image pipeline."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigError
from .models import ORIGINAL_RATIO, Transformation
from .properties import guard_against_reserved_alias

DEFAULT_OUTPUT_DIR = "/"
DEFAULT_SIZE = 1.0

AdapterCallable = Callable[..., Any]
TransformerOption = Union[None, Literal["thumbor"], AdapterCallable]
ResizerOption = Union[None, Literal["pillow"], AdapterCallable]
ConverterOption = Union[None, Literal["pillow"], AdapterCallable]


class _Options(BaseModel):
    # Keys are only accepted under their camelCase alias
    model_config = ConfigDict(extra="forbid")


class PathsOptions(_Options):
    output_dir: str = Field(DEFAULT_OUTPUT_DIR, alias="outputDir")
    aliases: Dict[str, str] = Field(default_factory=dict)


class EnabledFormats(_Options):
    webp: bool = True
    jpg: bool = True

    def enabled(self) -> List[str]:
        return [name for name, value in self.model_dump().items() if value]


class ConversionOptions(_Options):
    converter: ConverterOption = "pillow"
    enabled_formats: EnabledFormats = Field(
        default_factory=EnabledFormats, alias="enabledFormats"
    )


class TransformationOptions(_Options):
    ratio: Optional[str] = None
    path: Optional[str] = None

    @model_validator(mode="after")
    def _check_exactly_one(self) -> "TransformationOptions":
        if (self.ratio is None) == (self.path is None):
            raise ValueError("a transformation needs exactly one of 'ratio' or 'path'")
        return self

    def to_transformation(self) -> Transformation:
        return Transformation(ratio=self.ratio, path=self.path)


class ArtDirectionOptions(_Options):
    transformer: TransformerOption = None
    default_ratio: str = Field(ORIGINAL_RATIO, alias="defaultRatio")
    default_transformations: Dict[str, TransformationOptions] = Field(
        default_factory=dict, alias="defaultTransformations"
    )


class ResolutionSwitchingOptions(_Options):
    resizer: ResizerOption = "pillow"
    support_retina: bool = Field(True, alias="supportRetina")
    min_viewport: int = Field(200, alias="minViewport", gt=0)
    max_viewport: int = Field(3840, alias="maxViewport", gt=0)
    max_breakpoints_count: int = Field(5, alias="maxBreakpointsCount", ge=0)
    min_size_difference: float = Field(35, alias="minSizeDifference", ge=0)

    @model_validator(mode="after")
    def _check_viewport_range(self) -> "ResolutionSwitchingOptions":
        if self.min_viewport >= self.max_viewport:
            raise ValueError("'minViewport' must be lower than 'maxViewport'")
        return self


class ResponsiveImageOptions(_Options):
    """Top-level options controlling every pipeline stage."""

    default_size: float = Field(DEFAULT_SIZE, alias="defaultSize", gt=0)
    viewport_aliases: Dict[str, str] = Field(
        default_factory=dict, alias="viewportAliases"
    )
    paths: PathsOptions = Field(default_factory=PathsOptions)
    conversion: ConversionOptions = Field(default_factory=ConversionOptions)
    art_direction: ArtDirectionOptions = Field(
        default_factory=ArtDirectionOptions, alias="artDirection"
    )
    resolution_switching: ResolutionSwitchingOptions = Field(
        default_factory=ResolutionSwitchingOptions, alias="resolutionSwitching"
    )

    def default_transformations(self) -> Dict[str, Transformation]:
        return {
            name: options.to_transformation()
            for name, options in self.art_direction.default_transformations.items()
        }


def load_options(raw: Optional[Mapping[str, Any]] = None) -> ResponsiveImageOptions:
    """Validate user options, merging them over the defaults."""
    try:
        options = ResponsiveImageOptions.model_validate(dict(raw or {}))
    except ValidationError as exc:
        raise ConfigError(f"Invalid options: {exc}") from exc
    guard_against_reserved_alias(options.viewport_aliases)
    return options


def load_options_file(path: Path) -> ResponsiveImageOptions:
    """Read options from a JSON file."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Could not read options from {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Options in {path} must be a JSON object")
    return load_options(raw)


@dataclass
class PipelineContext:
    """State shared by the pipeline stages during one build."""

    options: ResponsiveImageOptions
    temp_dir: Path

    def temp_path(self, uri: str) -> str:
        """Temporary location for the generated bytes of ``uri``."""
        return str(self.temp_dir / PurePosixPath(uri).name)
