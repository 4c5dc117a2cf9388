"""Shared fixtures: images generated with Pillow and fake async adapters."""

from pathlib import Path
from typing import List, Tuple

import pytest
from PIL import Image


def make_image(path: Path, size: Tuple[int, int] = (1600, 1200), fmt: str = "JPEG") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, (200, 80, 40)).save(path, format=fmt)
    return path


@pytest.fixture
def image_dir(tmp_path):
    return tmp_path / "site"


@pytest.fixture
def jpeg_image(image_dir):
    return make_image(image_dir / "photo.jpg")


@pytest.fixture
def output_root(tmp_path):
    return tmp_path / "output"


class RecordingAdapter:
    """Async adapter returning fixed bytes and recording its calls."""

    def __init__(self, payload: bytes = b"generated", fail_on: Tuple[str, ...] = ()):
        self.payload = payload
        self.fail_on = fail_on
        self.calls: List[tuple] = []
        self.setup_calls = 0
        self.teardown_calls = 0

    async def __call__(self, source_path, argument):
        self.calls.append((source_path, argument))
        marker = getattr(argument, "uri", None) or str(argument)
        if any(token in marker for token in self.fail_on):
            raise RuntimeError(f"cannot process {marker}")
        return self.payload + marker.encode()

    def setup(self):
        self.setup_calls += 1

    async def teardown(self):
        self.teardown_calls += 1


@pytest.fixture
def recording_adapter():
    return RecordingAdapter()
