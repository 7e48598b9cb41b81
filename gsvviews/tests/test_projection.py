"""
Tests for the equirectangular to rectilinear reprojection.

This test suite covers:

- `plan_views`: jitter ranges, shared rotation and even spacing.
- `sample_coords`: the spherical mapping recovers the view azimuth.
- `bilinear_sample`: interpolation, horizontal wrap and vertical clamping.
- `render_views`: file names and output sizes.

Usage:
    pytest gsvviews/tests/test_projection.py
"""
import os
import random

import numpy as np
import pytest
from PIL import Image

from ..constants import VIEW_DIRECTIONS
from ..projection import (
    ViewSpec,
    bilinear_sample,
    equirect_to_rectilinear,
    expected_view_paths,
    global_rotation,
    plan_views,
    render_views,
    reproject,
    sample_coords,
    view_filename,
)


def azimuth_ramp(width=720, height=360):
    """Float panorama whose value in every pixel is its column index."""
    return np.tile(np.arange(width, dtype=np.float64), (height, 1))


def test_plan_views_shape():
    specs = plan_views(random.Random(3))
    assert len(specs) == 8
    assert [spec.label for spec in specs] == [label for _, label in VIEW_DIRECTIONS]
    assert [spec.index for spec in specs] == list(range(1, 9))
    assert all(spec.hfov == 90.0 for spec in specs)


@pytest.mark.parametrize("seed", range(20))
def test_plan_views_jitter_ranges(seed):
    specs = plan_views(random.Random(seed))

    rotation = (specs[0].azimuth + 180.0) % 360.0 - 180.0
    assert -22.5 <= rotation <= 22.5

    for spec, (base, _) in zip(specs, VIEW_DIRECTIONS):
        assert 0.0 <= spec.azimuth < 360.0
        delta = (spec.azimuth - base - rotation + 180.0) % 360.0 - 180.0
        assert delta == pytest.approx(0.0, abs=1e-9)
        assert 85.0 <= spec.vfov <= 95.0
        assert 75.0 <= spec.vfov <= 110.0


def test_plan_views_keeps_45_degree_spacing():
    specs = plan_views(random.Random(11))
    for first, second in zip(specs, specs[1:]):
        assert (second.azimuth - first.azimuth) % 360.0 == pytest.approx(45.0)


def test_plan_views_is_seedable():
    assert plan_views(random.Random(5)) == plan_views(random.Random(5))


def test_plan_views_vfov_varies_per_view():
    specs = plan_views(random.Random(2))
    assert len({spec.vfov for spec in specs}) > 1


@pytest.mark.parametrize("azimuth", [0.0, 10.0, 100.0, 225.5, 359.0])
def test_center_ray_recovers_azimuth(azimuth):
    """With no tilt the centre pixel looks straight at the view azimuth on the horizon."""
    width, height, size = 2048, 1024, 64
    map_x, map_y = sample_coords(width, height, azimuth, 90.0, size=size, pitch_deg=0.0, yaw_deg=0.0)

    center = size // 2
    recovered = map_x[center, center] / width * 360.0
    assert recovered == pytest.approx(azimuth, abs=1e-6)
    assert map_y[center, center] == pytest.approx(height / 2)


def test_center_pixel_samples_azimuth_column():
    panorama = azimuth_ramp()
    view = equirect_to_rectilinear(panorama, 100.0, 90.0, size=32, pitch_deg=0.0, yaw_deg=0.0)
    assert view[16, 16] / 720 * 360.0 == pytest.approx(100.0, abs=0.01)


def test_tilt_moves_center_ray():
    width, height, size = 2048, 1024, 64
    map_x, map_y = sample_coords(width, height, 90.0, 90.0, size=size)
    center = size // 2

    # pitch tilts the view below the horizon, yaw turns it right
    assert map_y[center, center] > height / 2
    assert map_x[center, center] / width * 360.0 == pytest.approx(95.0, abs=0.5)


def test_horizontal_fov_spans_90_degrees():
    width, height, size = 3600, 1800, 100
    map_x, _ = sample_coords(width, height, 180.0, 90.0, size=size, pitch_deg=0.0, yaw_deg=0.0)
    left = map_x[size // 2, 0] / width * 360.0
    assert left == pytest.approx(135.0, abs=1e-6)


def test_coords_wrap_across_seam():
    width = 1000
    map_x, _ = sample_coords(width, 500, 0.0, 90.0, size=16, pitch_deg=0.0, yaw_deg=0.0)
    assert (map_x >= 0).all() and (map_x < width).all()
    # left half of a north-facing view samples the right edge of the panorama
    assert map_x[8, 0] > width / 2
    assert map_x[8, 15] < width / 2


def test_bilinear_sample_interpolates():
    image = np.array([[0.0, 10.0], [20.0, 30.0]])
    out = bilinear_sample(image, np.array([[0.5]]), np.array([[0.5]]))
    assert out[0, 0] == pytest.approx(15.0)


def test_bilinear_sample_wraps_horizontally():
    image = np.array([[0.0, 10.0, 20.0, 30.0]] * 2)
    out = bilinear_sample(image, np.array([[3.5]]), np.array([[0.0]]))
    assert out[0, 0] == pytest.approx(15.0)


def test_bilinear_sample_clamps_vertically():
    image = np.array([[1.0, 1.0], [5.0, 5.0]])
    above = bilinear_sample(image, np.array([[0.0]]), np.array([[-3.0]]))
    below = bilinear_sample(image, np.array([[0.0]]), np.array([[7.0]]))
    assert above[0, 0] == pytest.approx(1.0)
    assert below[0, 0] == pytest.approx(5.0)


def test_bilinear_sample_keeps_uint8_rgb():
    image = np.full((4, 8, 3), (10, 100, 250), np.uint8)
    out = bilinear_sample(image, np.full((2, 2), 3.3), np.full((2, 2), 1.7))
    assert out.dtype == np.uint8
    assert out.shape == (2, 2, 3)
    assert (out == (10, 100, 250)).all()


def test_view_filename():
    spec = ViewSpec(3, "E", 97.2, 88.1)
    assert view_filename("abcdefghijklmnopqrstuv", spec) == "abcdefghijklmnopqrstuv_View3_E_FOV90.0.jpg"


def test_expected_view_paths(tmp_path):
    paths = expected_view_paths("pano", str(tmp_path))
    assert [os.path.basename(p) for p in paths] == [
        f"pano_View{i}_{label}_FOV90.0.jpg" for i, (_, label) in enumerate(VIEW_DIRECTIONS, start=1)
    ]


def test_render_views_writes_eight_jpegs(tmp_path):
    panorama = np.full((64, 128, 3), 90, np.uint8)
    specs = plan_views(random.Random(0))

    paths = render_views(panorama, "pano", str(tmp_path), specs, size=32)

    assert paths == expected_view_paths("pano", str(tmp_path))
    for path in paths:
        with Image.open(path) as img:
            assert img.size == (32, 32)
            assert img.format == "JPEG"


def test_reproject_default_size(tmp_path):
    panorama = np.full((128, 256, 3), 200, np.uint8)
    paths = reproject(panorama, "pano", str(tmp_path), random.Random(1))

    assert len(paths) == 8
    with Image.open(paths[0]) as img:
        assert img.size == (512, 512)


@pytest.mark.parametrize("seed", range(5))
def test_global_rotation_matches_drawn_rotation(seed):
    drawn = random.Random(seed).uniform(-22.5, 22.5)
    specs = plan_views(random.Random(seed))
    assert global_rotation(specs) == pytest.approx(drawn)
