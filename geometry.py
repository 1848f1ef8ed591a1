# geometry.py — 회전/업스케일/화면 맞춤(cover) 좌표 변환
# 상태 없음. 분석 좌표계(analysis space) → 화면 좌표계(display space)

import math
from typing import NamedTuple, Optional

import cv2
import numpy as np


class Point(NamedTuple):
    x: float
    y: float


class Box(NamedTuple):
    """축 정렬 사각형 (left, top, right, bottom), 픽셀 단위."""
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center(self) -> Point:
        return Point((self.left + self.right) / 2.0, (self.top + self.bottom) / 2.0)


class FitTransform(NamedTuple):
    scale: float
    offset_x: float
    offset_y: float


IDENTITY = FitTransform(1.0, 0.0, 0.0)

_ROTATE_CODES = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def box_from_quad(quad) -> Box:
    """OCR 사각형(4점 polygon) → 축 정렬 bbox."""
    P = np.asarray(quad, dtype=np.float32).reshape(-1, 2)
    x1 = float(np.min(P[:, 0])); y1 = float(np.min(P[:, 1]))
    x2 = float(np.max(P[:, 0])); y2 = float(np.max(P[:, 1]))
    return Box(x1, y1, x2, y2)


def apply_rotation(image: Optional[np.ndarray], degrees: int) -> Optional[np.ndarray]:
    """0/90/180/270 시계방향 회전으로 정방향 이미지를 만든다."""
    if image is None:
        return None
    deg = int(degrees) % 360
    if deg == 0:
        return image
    if deg not in _ROTATE_CODES:
        raise ValueError(f"rotation must be a multiple of 90, got {degrees}")
    return cv2.rotate(image, _ROTATE_CODES[deg])


def upscale(image: Optional[np.ndarray], factor: float) -> Optional[np.ndarray]:
    if image is None or factor is None or factor <= 0 or factor == 1.0:
        return image
    h, w = image.shape[:2]
    if w == 0 or h == 0:
        return image
    new_w, new_h = int(round(w * factor)), int(round(h * factor))
    interp = cv2.INTER_CUBIC if factor > 1.0 else cv2.INTER_AREA
    return cv2.resize(image, (new_w, new_h), interpolation=interp)


def scale_point(point: Optional[Point], fx: float, fy: Optional[float] = None) -> Optional[Point]:
    """축별 배율. fy 생략 시 fx와 동일."""
    if point is None:
        return None
    if fy is None:
        fy = fx
    return Point(point.x * fx, point.y * fy)


def fit_transform(src_w, src_h, dst_w, dst_h) -> FitTransform:
    """CENTER_CROP(cover) 기준 scale/offset. 크기 0이면 IDENTITY."""
    if src_w <= 0 or src_h <= 0 or dst_w <= 0 or dst_h <= 0:
        return IDENTITY
    scale = max(dst_w / float(src_w), dst_h / float(src_h))
    offset_x = (dst_w - src_w * scale) / 2.0
    offset_y = (dst_h - src_h * scale) / 2.0
    return FitTransform(scale, offset_x, offset_y)


def map_point(t: FitTransform, point: Point) -> Point:
    return Point(point.x * t.scale + t.offset_x, point.y * t.scale + t.offset_y)


def map_rect(t: FitTransform, box: Box) -> Box:
    return Box(box.left * t.scale + t.offset_x,
               box.top * t.scale + t.offset_y,
               box.right * t.scale + t.offset_x,
               box.bottom * t.scale + t.offset_y)


def distance_to_center(point: Point, box: Box) -> float:
    c = box.center
    return math.hypot(point.x - c.x, point.y - c.y)
