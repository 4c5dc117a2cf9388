from pathlib import Path

import pytest

from conftest import make_image
from responsive_picture.config import PipelineContext, load_options
from responsive_picture.conversion import (
    apply_conversions,
    by_most_efficient_format,
    guard_against_unsupported_source_type,
)
from responsive_picture.errors import UnsupportedSourceTypeError
from responsive_picture.models import Breakpoint, ResponsiveImage, Source
from responsive_picture.utils import source_key


def _context(tmp_path, **conversion):
    options = load_options({"conversion": conversion})
    return PipelineContext(options=options, temp_dir=tmp_path / "tmp")


def test_format_ordering():
    sources = [Source(path="a", size=1.0, format=fmt) for fmt in ("jpg", "png", "webp")]
    assert [s.format for s in sorted(sources, key=by_most_efficient_format)] == ["webp", "jpg", "png"]


def test_signature_wins_over_extension(image_dir):
    disguised = make_image(image_dir / "photo.jpg", fmt="WEBP")
    assert guard_against_unsupported_source_type(str(disguised)) == "webp"


def test_unsupported_signatures(image_dir):
    png = make_image(image_dir / "photo.png", fmt="PNG")
    with pytest.raises(UnsupportedSourceTypeError):
        guard_against_unsupported_source_type(str(png))

    text = image_dir / "notes.jpg"
    text.write_text("not an image", encoding="utf-8")
    with pytest.raises(UnsupportedSourceTypeError):
        guard_against_unsupported_source_type(str(text))


def test_without_converter_sources_are_tagged(tmp_path, jpeg_image):
    source = Source(
        path=str(jpeg_image),
        size=1.0,
        max_viewport=1200,
        breakpoints=[Breakpoint(path=str(jpeg_image), uri="/photo-tb_1200.jpg", width=1200)],
    )
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 1.0}, sources=[source])

    assert apply_conversions(image, _context(tmp_path, converter=None)) == []
    assert [s.format for s in image.sources] == ["jpg"]


def test_without_converter_or_sources_nothing_is_checked(tmp_path, image_dir):
    png = make_image(image_dir / "photo.png", fmt="PNG")
    image = ResponsiveImage(original_path=str(png), sizes={"__default": 1.0})

    assert apply_conversions(image, _context(tmp_path, converter=None)) == []
    assert image.sources == []


def test_conversions_clone_sources_per_format(tmp_path, jpeg_image):
    source = Source(
        path="/tmp/photo-b_640.jpg",
        size=1.0,
        max_viewport=1200,
        breakpoints=[Breakpoint(path="/tmp/photo-b_640.jpg", uri="/photo-b_640.jpg", width=640)],
    )
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 0.5}, sources=[source])

    work = apply_conversions(image, _context(tmp_path))
    key = source_key(str(jpeg_image))

    assert [(w.source_path, w.format, w.uri) for w in work] == [
        ("/tmp/photo-b_640.jpg", "webp", "/photo-b_640-c.webp"),
        (str(jpeg_image), "webp", f"/photo-{key}-c.webp"),
        ("/tmp/photo-b_640.jpg", "jpg", "/photo-b_640-c.jpg"),
        (str(jpeg_image), "jpg", f"/photo-{key}-c.jpg"),
    ]
    assert [(s.format, s.max_viewport) for s in image.sources] == [
        ("webp", 1200),
        ("webp", None),
        ("jpg", 1200),
        ("jpg", None),
    ]

    fallback = image.sources[1]
    assert fallback.size == 0.5
    assert fallback.breakpoints[0].width == 1600
    assert fallback.breakpoints[0].path == str(tmp_path / "tmp" / f"photo-{key}-c.webp")
    # The original source is left untouched
    assert source.breakpoints[0].uri == "/photo-b_640.jpg"


def test_only_enabled_formats(tmp_path, jpeg_image):
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 1.0})
    work = apply_conversions(image, _context(tmp_path, enabledFormats={"jpg": False}))

    key = source_key(str(jpeg_image))
    assert [w.uri for w in work] == [f"/photo-{key}-c.webp"]
    assert Path(work[0].target_path).name == f"photo-{key}-c.webp"
