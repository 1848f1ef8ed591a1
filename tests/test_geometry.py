import numpy as np
import pytest

from geometry import (Box, Point, IDENTITY, apply_rotation, box_from_quad, distance_to_center,
                      fit_transform, map_point, map_rect, scale_point, upscale)


def test_fit_transform_cover():
    t = fit_transform(640, 480, 1080, 1920)
    assert t.scale == pytest.approx(4.0)
    assert t.offset_x == pytest.approx((1080 - 640 * 4.0) / 2)
    assert t.offset_y == pytest.approx(0.0)


def test_fit_transform_same_size_is_identity():
    assert fit_transform(640, 480, 640, 480) == IDENTITY


@pytest.mark.parametrize("dims", [(0, 480, 100, 100), (640, 0, 100, 100),
                                  (640, 480, 0, 100), (640, 480, 100, 0)])
def test_fit_transform_degenerate(dims):
    assert fit_transform(*dims) == IDENTITY


def test_box_and_point_share_mapping():
    t = fit_transform(960, 720, 1080, 2340)
    box = Box(40.0, 20.0, 40.0, 20.0)
    p = Point(40.0, 20.0)
    mb = map_rect(t, box)
    mp = map_point(t, p)
    assert mb.left == pytest.approx(mp.x)
    assert mb.top == pytest.approx(mp.y)


def test_map_rect_scales_size():
    t = fit_transform(100, 100, 200, 100)
    b = map_rect(t, Box(0, 0, 100, 50))
    assert b.width == pytest.approx(200)
    assert b.height == pytest.approx(100)
    assert b.top == pytest.approx(-50)


def test_rotation_90_clockwise():
    img = np.zeros((2, 3), dtype=np.uint8)
    img[0, 0] = 255
    out = apply_rotation(img, 90)
    assert out.shape == (3, 2)
    assert out[0, 1] == 255


def test_rotation_180_and_270():
    img = np.zeros((2, 3), dtype=np.uint8)
    img[0, 0] = 255
    assert apply_rotation(img, 180)[1, 2] == 255
    out = apply_rotation(img, 270)
    assert out.shape == (3, 2)
    assert out[2, 0] == 255


def test_rotation_zero_returns_same_image():
    img = np.zeros((4, 4), dtype=np.uint8)
    assert apply_rotation(img, 0) is img
    assert apply_rotation(None, 90) is None


def test_rotation_rejects_odd_angles():
    with pytest.raises(ValueError):
        apply_rotation(np.zeros((2, 2), dtype=np.uint8), 45)


def test_upscale():
    img = np.zeros((100, 200, 3), dtype=np.uint8)
    assert upscale(img, 1.5).shape == (150, 300, 3)
    assert upscale(img, 1.0) is img


def test_scale_point():
    assert scale_point(Point(10, 20), 1.5) == Point(15, 30)
    assert scale_point(Point(10, 20), 1.5, 0.5) == Point(15, 10)
    assert scale_point(None, 1.5) is None


def test_box_from_quad_and_center():
    b = box_from_quad([[10, 5], [110, 8], [108, 55], [12, 50]])
    assert b == Box(10, 5, 110, 55)
    assert b.center == Point(60, 30)


def test_distance_to_center():
    assert distance_to_center(Point(40, 20), Box(0, 0, 100, 50)) == pytest.approx(11.18, abs=0.01)
