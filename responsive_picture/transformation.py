"""Art direction: per-viewport crops or replacement images."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional, Tuple, Union

from .config import PipelineContext
from .errors import InvalidViewportNameError, MalformedDirectiveError
from .models import (
    DEFAULT_KEY,
    ORIGINAL_RATIO,
    Breakpoint,
    ResponsiveImage,
    SizesMap,
    Source,
    Transformation,
    TransformationDescriptor,
    TransformationInlineOptions,
    TransformationWork,
)
from .properties import resolve_viewport_aliases
from .utils import (
    calculate_width,
    format_size_token,
    generate_uri,
    parse_ratio,
    resolve_image_path,
    source_key,
)

logger = logging.getLogger("responsive_picture.transformation")

MAX_VIEWPORT_PATTERN = re.compile(r"^(\d+)$")


def by_increasing_max_viewport(source: Source) -> Tuple[bool, int]:
    """Sort key placing sources without a max viewport last."""
    return (not source.is_transformation, source.max_viewport or 0)


def decode_transformations(
    properties: Mapping[str, Mapping[str, str]],
) -> Dict[str, Transformation]:
    """Build inline transformations from parsed ``path``/``ratio`` properties."""
    path_options = properties.get("path", {})
    ratio_options = properties.get("ratio", {})

    transformations: Dict[str, Transformation] = {}
    for viewport in ratio_options:
        transformations[viewport] = Transformation(ratio=ratio_options[viewport])
    # A replacement image takes precedence over a ratio
    for viewport in path_options:
        transformations[viewport] = Transformation(path=path_options[viewport])
    return transformations


def validate_transformation_name(name: str) -> int:
    match = MAX_VIEWPORT_PATTERN.match(name)
    if match is None:
        raise InvalidViewportNameError(
            f"{name} is not a valid transformation name. "
            "Have you used an alias without defining it?"
        )
    max_viewport = int(match.group(1))
    if max_viewport == 0:
        raise InvalidViewportNameError(f"{name} is not a valid transformation name, viewports start at 1")
    return max_viewport


def validate_ratio(ratio: str) -> str:
    if ratio != ORIGINAL_RATIO:
        try:
            parse_ratio(ratio)
        except ValueError as exc:
            raise MalformedDirectiveError(str(exc)) from exc
    return ratio


def _filter_defaults(
    default_transformations: Mapping[str, Transformation],
    to_ignore: Union[bool, List[str]],
    viewport_aliases: Mapping[str, str],
) -> Dict[str, Transformation]:
    if to_ignore is False:
        return dict(default_transformations)
    if to_ignore is True:
        return {}
    ignored = set(to_ignore) | {viewport_aliases.get(name, name) for name in to_ignore}
    return {
        name: transformation
        for name, transformation in default_transformations.items()
        if name not in ignored and viewport_aliases.get(name, name) not in ignored
    }


def normalize_transformations(
    inline_options: TransformationInlineOptions,
    default_transformations: Mapping[str, Transformation],
    default_ratio: str,
    sizes: SizesMap,
    viewport_aliases: Mapping[str, str],
) -> List[TransformationDescriptor]:
    """Merge inline directives over the defaults into transformation descriptors."""
    defaults = _filter_defaults(
        default_transformations,
        inline_options.transformations_to_ignore,
        viewport_aliases,
    )

    transformations = resolve_viewport_aliases(defaults, viewport_aliases)
    transformations.update(
        resolve_viewport_aliases(inline_options.inline_transformations, viewport_aliases)
    )

    descriptors: List[TransformationDescriptor] = []
    for name, transformation in transformations.items():
        max_viewport = validate_transformation_name(name)
        size = sizes.get(name, sizes[DEFAULT_KEY])
        if transformation.path is not None:
            descriptors.append(
                TransformationDescriptor(max_viewport=max_viewport, size=size, path=transformation.path)
            )
        else:
            descriptors.append(
                TransformationDescriptor(
                    max_viewport=max_viewport,
                    size=size,
                    ratio=validate_ratio(transformation.ratio or default_ratio),
                )
            )
    return descriptors


def generate_transformation_uri(
    output_dir: str,
    path: str,
    transformation: TransformationDescriptor,
    key: Optional[str] = None,
) -> str:
    # tb: transformation breakpoint, p: path, r: ratio, s: size
    body = f"-tb_{transformation.max_viewport}"
    size = format_size_token(transformation.size)
    if transformation.is_custom:
        body += f"-p-s_{size}"
    else:
        body += f"-r_{transformation.ratio.replace(':', '_')}-s_{size}"
    return generate_uri(output_dir, path, body, key)


def apply_transformations(
    image: ResponsiveImage,
    context: PipelineContext,
) -> List[TransformationWork]:
    """Add one art-direction source per transformation and return the crops to run."""
    options = context.options
    art_direction = options.art_direction

    if art_direction.transformer is None:
        return []

    descriptors = normalize_transformations(
        image.inline_art_direction or TransformationInlineOptions(),
        options.default_transformations(),
        image.ratio or art_direction.default_ratio,
        image.sizes,
        options.viewport_aliases,
    )

    pending: List[TransformationWork] = []
    for descriptor in sorted(descriptors, key=lambda d: d.max_viewport):
        custom_path: Optional[str] = None
        if descriptor.is_custom:
            custom_path = resolve_image_path(
                descriptor.path, image.context_dir, options.paths.aliases
            )
        source_path = custom_path or image.original_path
        uri = generate_transformation_uri(
            options.paths.output_dir,
            image.original_path,
            descriptor,
            source_key(source_path),
        )
        target_path = context.temp_path(uri)

        source = Source(
            path=target_path,
            size=descriptor.size,
            ratio=descriptor.ratio or ORIGINAL_RATIO,
            max_viewport=descriptor.max_viewport,
            custom_path=custom_path,
            breakpoints=[
                Breakpoint(
                    path=target_path,
                    uri=uri,
                    width=calculate_width(descriptor.max_viewport, descriptor.size),
                )
            ],
        )
        image.sources.append(source)
        pending.append(
            TransformationWork(
                source_path=source_path,
                descriptor=descriptor,
                source=source,
                uri=uri,
            )
        )
        logger.debug("Queued transformation %s", uri)

    return pending
