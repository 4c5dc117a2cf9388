import pytest

from conftest import make_image
from responsive_picture.utils import (
    add_hash_to_uri,
    calculate_width,
    change_extension,
    detect_image_format,
    format_size_token,
    generate_uri,
    mime_type_for,
    parse_ratio,
    ratio_to_number,
    read_image_ratio,
    resolve_image_path,
    source_key,
)


def test_generate_uri():
    assert generate_uri("/", "/site/img/photo.jpg", "-b_300") == "/photo-b_300.jpg"
    assert generate_uri("/static/img", "photo.jpg") == "/static/img/photo.jpg"


def test_change_extension():
    assert change_extension("/img/photo-c.jpg", "webp") == "/img/photo-c.webp"


def test_hash_goes_before_the_extension():
    hashed = add_hash_to_uri("/img/photo.jpg", b"data")
    assert hashed.startswith("/img/photo.")
    assert hashed.endswith(".jpg")
    assert len(hashed) == len("/img/photo.jpg") + 9
    assert add_hash_to_uri("/img/photo.jpg", b"data") == hashed


@pytest.mark.parametrize(
    "size, token",
    [(0.5, "50"), (1.0, "100"), (0.333, "33.3"), (300, "30000")],
)
def test_format_size_token(size, token):
    assert format_size_token(size) == token


def test_calculate_width():
    assert calculate_width(1200, 0.5) == 600
    assert calculate_width(1000, 450) == 450


def test_ratios():
    assert parse_ratio("16:9") == 9 / 16
    assert ratio_to_number("original", 0.75) == 0.75
    assert ratio_to_number(None, 0.75) == 0.75
    with pytest.raises(ValueError):
        parse_ratio("wide")


def test_image_metadata(image_dir):
    path = make_image(image_dir / "photo.webp", size=(400, 100), fmt="WEBP")

    assert read_image_ratio(str(path)) == 0.25
    assert detect_image_format(str(path)) == "webp"
    assert mime_type_for("jpg") == "image/jpeg"
    assert mime_type_for("unknown") is None


def test_resolve_image_path():
    assert resolve_image_path("@img/a.jpg", "/site", {"@img": "/assets"}) == "/assets/a.jpg"
    assert resolve_image_path("a.jpg", "/site/blog", {}).endswith("a.jpg")


def test_source_key_tells_same_named_images_apart():
    first = generate_uri("/", "/site/a/photo.jpg", "-c", source_key("/site/a/photo.jpg"))
    second = generate_uri("/", "/site/b/photo.jpg", "-c", source_key("/site/b/photo.jpg"))

    assert first.startswith("/photo-") and first.endswith("-c.jpg")
    assert first != second
    assert source_key("/site/a/photo.jpg") == source_key("/site/a/photo.jpg")
