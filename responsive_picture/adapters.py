"""Adapters performing the actual image operations.

An adapter is either one of the bundled presets or a custom async callable;
both are wrapped into an :class:`Adapter` exposing the optional ``setup`` and
``teardown`` hooks run around each batch of work.
"""

from __future__ import annotations

import asyncio
import inspect
import io
import logging
import math
import os
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import requests
from PIL import Image

from .models import ORIGINAL_RATIO, Breakpoint, TransformationDescriptor
from .utils import calculate_width, parse_ratio

logger = logging.getLogger("responsive_picture.adapters")

PILLOW_FORMATS = {"webp": "WEBP", "jpg": "JPEG", "jpeg": "JPEG"}

AdapterFunction = Callable[..., Awaitable[bytes]]
Hook = Callable[[], Union[None, Awaitable[None]]]


class TransformerPreset(str, Enum):
    THUMBOR = "thumbor"


class ResizerPreset(str, Enum):
    PILLOW = "pillow"


class ConverterPreset(str, Enum):
    PILLOW = "pillow"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class Adapter:
    """A resolved adapter: its call plus optional lifecycle hooks."""

    name: str
    call: AdapterFunction
    setup: Optional[Hook] = None
    teardown: Optional[Hook] = None

    async def __call__(self, *args: Any) -> bytes:
        return await _maybe_await(self.call(*args))

    async def run_setup(self) -> None:
        if self.setup is not None:
            await _maybe_await(self.setup())

    async def run_teardown(self) -> None:
        if self.teardown is not None:
            await _maybe_await(self.teardown())

    @classmethod
    def from_callable(cls, function: Callable[..., Any]) -> "Adapter":
        return cls(
            name=getattr(function, "__name__", type(function).__name__),
            call=function,
            setup=getattr(function, "setup", None),
            teardown=getattr(function, "teardown", None),
        )


class ThumborTransformer:
    """Crops images through a thumbor server running in a docker container."""

    CONTAINER_NAME = "responsive-picture-thumbor"
    IMAGE = "minimalcompact/thumbor"
    # Default file loader root of the minimalcompact/thumbor image
    LOADER_ROOT = "/data/loader"

    def __init__(
        self,
        url: str = "http://localhost",
        port: int = 8888,
        root: Optional[Path] = None,
        env_file: Optional[Path] = None,
        timeout: float = 60.0,
    ) -> None:
        self.url = url
        self.port = port
        self.root = (root or Path.cwd()).resolve()
        self.env_file = env_file
        self.timeout = timeout
        self._process: Optional[subprocess.Popen] = None
        self._session = requests.Session()

    def generate_transformation_url(
        self,
        image_path: str,
        transformation: TransformationDescriptor,
    ) -> str:
        scaled_viewport = calculate_width(transformation.max_viewport, transformation.size)
        relative = os.path.relpath(image_path, self.root).replace(os.sep, "/")

        if transformation.is_custom:
            # Replacement images are already cropped, they are only scaled down
            cropping = f"{scaled_viewport}x0"
        else:
            height = (
                0
                if transformation.ratio == ORIGINAL_RATIO
                else math.ceil(scaled_viewport * parse_ratio(transformation.ratio))
            )
            cropping = f"{scaled_viewport}x{height}"

        return f"{self.url}:{self.port}/unsafe/{cropping}/smart/{relative}"

    def _fetch(self, url: str) -> bytes:
        response = self._session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.content

    async def __call__(self, image_path: str, transformation: TransformationDescriptor) -> bytes:
        url = self.generate_transformation_url(image_path, transformation)
        logger.debug("Requesting %s", url)
        return await asyncio.to_thread(self._fetch, url)

    def _docker_command(self) -> List[str]:
        command = [
            "docker",
            "run",
            "-p",
            f"{self.port}:80",
            "--name",
            self.CONTAINER_NAME,
            "--mount",
            f"type=bind,source={self.root},target={self.LOADER_ROOT},readonly",
            "--rm",
        ]
        if self.env_file is not None:
            command += ["--env-file", str(self.env_file)]
        return command + [self.IMAGE]

    def setup(self) -> None:
        try:
            self._process = subprocess.Popen(self._docker_command())
        except FileNotFoundError:
            logger.error(
                "Could not run docker; install it and run 'docker pull %s'", self.IMAGE
            )
            raise

    async def teardown(self) -> None:
        if self._process is not None:
            self._process.terminate()
            self._process = None
        # Lets a following build start its own container right away
        await asyncio.to_thread(
            subprocess.run,
            ["docker", "container", "stop", self.CONTAINER_NAME],
            capture_output=True,
        )


def _encode(image: Image.Image, pillow_format: str) -> bytes:
    if pillow_format == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format=pillow_format)
    return buffer.getvalue()


def _resize(source_path: str, width: int) -> bytes:
    with Image.open(source_path) as image:
        pillow_format = image.format or "PNG"
        # Shrinks only
        if width < image.width:
            height = max(1, round(image.height * width / image.width))
            resized = image.resize((width, height), Image.Resampling.LANCZOS)
        else:
            resized = image.copy()
        return _encode(resized, pillow_format)


def _convert(source_path: str, image_format: str) -> bytes:
    pillow_format = PILLOW_FORMATS.get(image_format.lower())
    if pillow_format is None:
        raise ValueError(f"Format {image_format} cannot be produced")
    with Image.open(source_path) as image:
        image.load()
        return _encode(image, pillow_format)


async def pillow_resizer(source_path: str, breakpoint: Breakpoint) -> bytes:
    return await asyncio.to_thread(_resize, source_path, breakpoint.width)


async def pillow_converter(source_path: str, image_format: str) -> bytes:
    return await asyncio.to_thread(_convert, source_path, image_format)


def _thumbor_adapter() -> Adapter:
    transformer = ThumborTransformer()
    return Adapter(
        name=TransformerPreset.THUMBOR.value,
        call=transformer,
        setup=transformer.setup,
        teardown=transformer.teardown,
    )


TRANSFORMER_PRESETS: Dict[TransformerPreset, Callable[[], Adapter]] = {
    TransformerPreset.THUMBOR: _thumbor_adapter,
}
RESIZER_PRESETS: Dict[ResizerPreset, Callable[[], Adapter]] = {
    ResizerPreset.PILLOW: lambda: Adapter(ResizerPreset.PILLOW.value, pillow_resizer),
}
CONVERTER_PRESETS: Dict[ConverterPreset, Callable[[], Adapter]] = {
    ConverterPreset.PILLOW: lambda: Adapter(ConverterPreset.PILLOW.value, pillow_converter),
}


def _resolve(option: Any, presets: Dict[Any, Callable[[], Adapter]], preset_type: type) -> Optional[Adapter]:
    if option is None:
        return None
    if isinstance(option, Adapter):
        return option
    if isinstance(option, str):
        return presets[preset_type(option)]()
    return Adapter.from_callable(option)


def resolve_transformer(option: Any) -> Optional[Adapter]:
    return _resolve(option, TRANSFORMER_PRESETS, TransformerPreset)


def resolve_resizer(option: Any) -> Optional[Adapter]:
    return _resolve(option, RESIZER_PRESETS, ResizerPreset)


def resolve_converter(option: Any) -> Optional[Adapter]:
    return _resolve(option, CONVERTER_PRESETS, ConverterPreset)
