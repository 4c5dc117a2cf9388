"""Utility helpers for URIs, hashing and image metadata."""

from __future__ import annotations

import hashlib
import math
import os
import posixpath
from functools import lru_cache
from pathlib import PurePath, PurePosixPath
from typing import Mapping, Optional, Tuple

import filetype
from PIL import Image

from .models import ORIGINAL_RATIO


def source_key(path: str) -> str:
    """Short digest of a source image path, telling apart same-named images."""
    return hashlib.md5(path.encode("utf-8")).hexdigest()[:6]


def generate_uri(output_dir: str, path: str, body: str = "", key: Optional[str] = None) -> str:
    """Public URI for ``path`` placed in ``output_dir`` with ``body`` before the extension."""
    source = PurePath(path)
    stem = f"{source.stem}-{key}" if key else source.stem
    # URIs are relative URLs and always use "/" separators
    return posixpath.join(output_dir, stem) + body + source.suffix


def change_extension(uri: str, extension: str) -> str:
    return str(PurePosixPath(uri).with_suffix(f".{extension}"))


def get_hash_digest(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()[:8]


def add_hash_to_uri(uri: str, data: bytes) -> str:
    """Insert a content hash before the extension of ``uri``."""
    path = PurePosixPath(uri)
    return str(path.with_name(f"{path.stem}.{get_hash_digest(data)}{path.suffix}"))


def format_size_token(size: float) -> str:
    """Render a size as the percentage token used in derivative names."""
    return f"{size * 100:g}"


def calculate_width(viewport: int, size: float) -> int:
    # Sizes up to 1.0 are a viewport fraction, greater values are pixels
    return int(size) if size > 1.0 else math.ceil(viewport * size)


def parse_ratio(ratio: str) -> float:
    """Convert a ``W:H`` ratio into the height/width factor."""
    width, _, height = ratio.partition(":")
    try:
        return float(height) / float(width)
    except (ValueError, ZeroDivisionError) as exc:
        raise ValueError(f"{ratio!r} is not a valid W:H ratio") from exc


def ratio_to_number(ratio: Optional[str], fallback: float) -> float:
    if ratio is None or ratio == ORIGINAL_RATIO:
        return fallback
    return parse_ratio(ratio)


@lru_cache(maxsize=256)
def read_image_size(path: str) -> Tuple[int, int]:
    with Image.open(path) as image:
        return image.size


def read_image_ratio(path: str) -> float:
    width, height = read_image_size(path)
    return height / width


def detect_image_format(path: str) -> Optional[str]:
    """Detect image type from its byte signature; returns a lowercase extension."""
    kind = filetype.guess(path)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def mime_type_for(image_format: str) -> Optional[str]:
    kind = filetype.get_type(ext=image_format)
    if kind is None and image_format == "jpeg":
        kind = filetype.get_type(ext="jpg")
    return kind.mime if kind else None


def resolve_path_aliases(image_path: str, path_aliases: Mapping[str, str]) -> Optional[str]:
    for name, target in path_aliases.items():
        if image_path.startswith(name):
            return image_path.replace(name, target, 1)
    return None


def resolve_image_path(
    image_path: str,
    context_dir: str,
    path_aliases: Mapping[str, str],
) -> str:
    """Resolve through path aliases, falling back to the markup file directory."""
    aliased = resolve_path_aliases(image_path, path_aliases)
    if aliased is not None:
        return aliased
    return os.path.abspath(os.path.join(context_dir, image_path))
