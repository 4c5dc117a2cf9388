from conftest import make_image
from responsive_picture.config import PipelineContext, load_options
from responsive_picture.models import Breakpoint, ResponsiveImage, Source
from responsive_picture.resizing import (
    apply_resizes,
    IntervalDelimiter,
    ResizingInterval,
    estimate_interval_sizes,
    generate_breakpoint_widths,
    generate_interval_delimiters,
    generate_intervals,
    generate_resizing_uri,
)
from responsive_picture.utils import source_key


def _delimiter(viewport, size=1.0, ratio=0.75, path="/site/photo.jpg"):
    return IntervalDelimiter(path=path, size=size, ratio=ratio, viewport=viewport)


def _interval(start_width, end_width, count, ratio=0.75):
    return ResizingInterval(
        start=IntervalDelimiter(path="a", size=1.0, ratio=ratio, viewport=start_width, width=start_width),
        end=IntervalDelimiter(path="a", size=1.0, ratio=ratio, viewport=end_width, width=end_width),
        breakpoints_count=count,
    )


def test_delimiters_without_sources_cover_the_whole_range():
    delimiters = generate_interval_delimiters([], "/site/photo.jpg", 0.75, 200, 3840, {"__default": 0.5})

    assert [d.viewport for d in delimiters] == [200, 3840]
    assert delimiters[0].ratio == 0.0
    assert delimiters[1].ratio == 0.75
    assert delimiters[1].size == 0.5


def test_delimiters_keep_only_sources_inside_the_range():
    sources = [
        Source(path="/tmp/b.jpg", size=1.0, ratio="2:3", max_viewport=1200),
        Source(path="/tmp/a.jpg", size=0.5, ratio="1:1", max_viewport=600),
        Source(path="/tmp/c.jpg", size=1.0, ratio="16:9", max_viewport=4000),
        Source(path="/tmp/d.jpg", size=1.0, ratio="1:1", max_viewport=150),
    ]
    delimiters = generate_interval_delimiters(sources, "/site/photo.jpg", 0.75, 200, 3840, {"__default": 1.0})

    assert [d.viewport for d in delimiters] == [200, 600, 1200, 3840]
    # The lowest source above the minimum shapes the first delimiter
    assert delimiters[0].path == "/tmp/a.jpg"
    assert delimiters[0].source is None
    assert delimiters[1].ratio == 1.0
    assert delimiters[2].ratio == 1.5
    # The widest source beyond the maximum shapes the last one
    assert delimiters[3].path == "/tmp/c.jpg"
    assert delimiters[3].source is sources[2]


def test_breakpoint_budget_is_conserved_and_remainder_goes_low():
    delimiters = [_delimiter(200), _delimiter(600), _delimiter(1200), _delimiter(3840)]
    intervals = generate_intervals(delimiters, 5)

    assert [i.breakpoints_count for i in intervals] == [2, 2, 1]
    assert sum(i.breakpoints_count for i in intervals) == 5


def test_interval_widths_use_the_end_size():
    delimiters = [_delimiter(200), _delimiter(1000, size=0.5), _delimiter(2000, size=300)]
    intervals = generate_intervals(delimiters, 2)

    assert (intervals[0].start.width, intervals[0].end.width) == (100, 500)
    assert (intervals[1].start.width, intervals[1].end.width) == (300, 300)


def test_retina_doubles_widths():
    intervals = generate_intervals([_delimiter(200), _delimiter(3840)], 5, support_retina=True)
    assert (intervals[0].start.width, intervals[0].end.width) == (400, 7680)


def test_breakpoint_widths_are_evenly_spaced():
    interval = _interval(200, 1000, 3)
    assert generate_breakpoint_widths(35, interval, None) == [400, 600, 800]


def test_breakpoint_widths_rebalance_to_next_interval():
    interval = _interval(200, 1000, 10)
    next_interval = _interval(1000, 2000, 1)

    widths = generate_breakpoint_widths(35, interval, next_interval)

    assert 0 < len(widths) < 10
    assert interval.breakpoints_count == len(widths)
    assert interval.breakpoints_count + next_interval.breakpoints_count == 11
    sizes = estimate_interval_sizes(interval, widths)
    assert all(b - a >= 35 for a, b in zip(sizes, sizes[1:]))


def test_breakpoint_widths_give_up_on_narrow_interval():
    interval = _interval(200, 300, 3)
    next_interval = _interval(300, 2000, 0)

    assert generate_breakpoint_widths(35, interval, next_interval) == []
    assert interval.breakpoints_count == 0
    assert next_interval.breakpoints_count == 3


def test_resizing_uri():
    assert generate_resizing_uri("/img", "/site/photo.jpg", 640) == "/img/photo-b_640.jpg"


def _context(tmp_path, **resolution):
    options = load_options({"resolutionSwitching": resolution})
    return PipelineContext(options=options, temp_dir=tmp_path / "tmp")


def test_apply_resizes_without_art_direction(tmp_path, image_dir):
    large = str(make_image(image_dir / "large.jpg", size=(4000, 3000)))
    image = ResponsiveImage(original_path=large, sizes={"__default": 1.0})
    work = apply_resizes(image, _context(tmp_path, supportRetina=False))

    assert all(w.source_path == large for w in work)
    assert [w.breakpoint.width for w in work] == [806, 1412, 2018, 2624, 3230]
    assert work[0].uri == f"/large-{source_key(large)}-b_806.jpg"

    (source,) = image.sources
    assert source.max_viewport == 3840
    assert [b.uri for b in source.breakpoints] == [w.uri for w in work]


def test_apply_resizes_attaches_to_art_direction_sources(tmp_path, jpeg_image):
    crop = Source(
        path=str(jpeg_image),
        size=1.0,
        ratio="1:1",
        max_viewport=1200,
        breakpoints=[Breakpoint(path=str(jpeg_image), uri="/photo-tb_1200.jpg", width=1200)],
    )
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 1.0}, sources=[crop])

    work = apply_resizes(image, _context(tmp_path, supportRetina=False, maxBreakpointsCount=4))

    assert crop in image.sources
    assert len(crop.breakpoints) > 1
    assert crop.breakpoints[0].uri == "/photo-tb_1200.jpg"
    assert sum(len(s.breakpoints) for s in image.sources) == len(work) + 1


def test_starved_budget_is_dropped(tmp_path, jpeg_image):
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 1.0})
    context = _context(tmp_path, minViewport=100, maxViewport=150, supportRetina=False)

    assert apply_resizes(image, context) == []
    assert image.sources == []


def test_disabled_resizer_leaves_sources(tmp_path, jpeg_image):
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 1.0})
    assert apply_resizes(image, _context(tmp_path, resizer=None)) == []
    assert image.sources == []


def test_widths_never_exceed_the_source_width(tmp_path, jpeg_image):
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 1.0})

    work = apply_resizes(image, _context(tmp_path))

    # Every retina width is beyond the 1600px original: a single full-size rendition is left
    assert [w.breakpoint.width for w in work] == [1600]


def test_source_at_max_viewport_anchors_the_last_interval(tmp_path, jpeg_image, image_dir):
    crop_path = str(make_image(image_dir / "crop.jpg", size=(3000, 3000)))
    crop = Source(
        path=crop_path,
        size=1.0,
        ratio="1:1",
        max_viewport=3840,
        breakpoints=[Breakpoint(path=crop_path, uri="/photo-tb_3840.jpg", width=3000)],
    )
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 1.0}, sources=[crop])

    work = apply_resizes(image, _context(tmp_path))

    assert image.sources == [crop]
    assert all(w.source_path == crop_path for w in work)
    assert [w.breakpoint.width for w in work] == [1613, 2826]
    assert sorted(b.width for b in crop.breakpoints) == [1613, 2826, 3000]


def test_source_beyond_max_viewport_anchors_the_last_interval(tmp_path, jpeg_image, image_dir):
    crop_path = str(make_image(image_dir / "wide.jpg", size=(2000, 1000)))
    crop = Source(
        path=crop_path,
        size=1.0,
        ratio="2:1",
        max_viewport=4000,
        breakpoints=[Breakpoint(path=crop_path, uri="/photo-tb_4000.jpg", width=2000)],
    )
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 1.0}, sources=[crop])

    work = apply_resizes(image, _context(tmp_path, supportRetina=False, maxBreakpointsCount=4))

    assert image.sources == [crop]
    assert all(w.source_path == crop_path for w in work)
    assert [w.breakpoint.width for w in work] == [928, 1656]
    assert all(w.uri.startswith("/wide-b_") for w in work)


def test_unreadable_anchor_is_skipped(tmp_path, jpeg_image):
    crop = Source(path=str(tmp_path / "missing.jpg"), size=1.0, ratio="1:1", max_viewport=3840)
    image = ResponsiveImage(original_path=str(jpeg_image), sizes={"__default": 1.0}, sources=[crop])

    assert apply_resizes(image, _context(tmp_path)) == []
    assert image.sources == [crop]
