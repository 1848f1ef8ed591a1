# overlay.py — 미리보기 + 선택 박스/손가락 표시
# 분석 좌표 → 화면 좌표 변환(cover)은 여기서만. 박스와 손가락에 같은 변환을 적용.

import os, threading
from typing import List, Optional

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from geometry import Box, Point, fit_transform, map_point, map_rect

BOX_COLOR = (0, 0, 255)       # BGR 빨강
FINGER_COLOR = (0, 0, 255)
BOX_THICKNESS = 8

FONT_CANDIDATES = [r"C:\Windows\Fonts\malgun.ttf", r"C:\Windows\Fonts\NanumGothic.ttf",
                   r"C:\Windows\Fonts\NotoSansCJKkr-Regular.otf",
                   "/usr/share/fonts/truetype/noto/NotoSansCJKkr-Regular.ttc",
                   "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc"]

_font_cache = {}


def load_font(size=22):
    if size in _font_cache:
        return _font_cache[size]
    font_path = None
    for p in FONT_CANDIDATES:
        if os.path.isfile(p): font_path = p; break
    font = ImageFont.truetype(font_path, size) if font_path else ImageFont.load_default()
    _font_cache[size] = font
    return font


def cover_resize(image: np.ndarray, dst_w: int, dst_h: int) -> np.ndarray:
    """CENTER_CROP 미리보기 — 화면을 꽉 채우고 넘치는 부분은 잘라냄."""
    h, w = image.shape[:2]
    if w == 0 or h == 0 or dst_w <= 0 or dst_h <= 0 or (w, h) == (dst_w, dst_h):
        return image
    t = fit_transform(w, h, dst_w, dst_h)
    sw = max(dst_w, int(round(w * t.scale)))
    sh = max(dst_h, int(round(h * t.scale)))
    scaled = cv2.resize(image, (sw, sh), interpolation=cv2.INTER_LINEAR)
    x0 = (sw - dst_w) // 2; y0 = (sh - dst_h) // 2
    return scaled[y0:y0+dst_h, x0:x0+dst_w]


def draw_hud(frame_bgr, lines, font_size=22):
    if not lines:
        return frame_bgr
    img_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
    pil = Image.fromarray(img_rgb); draw = ImageDraw.Draw(pil)
    font = load_font(font_size)

    pad_x, pad_y, gap = 10, 8, 4
    widths = [draw.textlength(s, font=font) for s in lines]
    tw = int(max(widths)) if widths else 0; lh = font_size + 2
    th = lh*len(lines) + (len(lines)-1)*gap
    x0, y0 = 8, 6
    bg = Image.new("RGBA", (tw+pad_x*2, th+pad_y*2), (0, 0, 0, 180))
    pil.paste(bg, (x0, y0), bg)
    y = y0 + pad_y
    for s in lines:
        draw.text((x0+pad_x, y), s, font=font, fill=(255, 255, 255), stroke_width=2, stroke_fill=(0, 0, 0))
        y += lh + gap
    frame_bgr[:] = cv2.cvtColor(np.array(pil), cv2.COLOR_RGB2BGR)
    return frame_bgr


class OverlayView:
    def __init__(self, finger_radius: int = 25):
        self.finger_radius = finger_radius
        self._lock = threading.Lock()
        self._boxes: List[Box] = []
        self._finger: Optional[Point] = None
        self._analysis_w = 0
        self._analysis_h = 0

    def update_highlight(self, boxes, finger_point, analysis_width, analysis_height):
        with self._lock:
            self._boxes = [Box(*b) for b in boxes]
            self._finger = finger_point
            self._analysis_w = int(analysis_width)
            self._analysis_h = int(analysis_height)

    def snapshot(self):
        with self._lock:
            return list(self._boxes), self._finger, self._analysis_w, self._analysis_h

    def project(self, view_w, view_h):
        """현재 강조 상태를 화면 좌표로. (boxes, finger) — 둘 다 같은 변환."""
        boxes, finger, aw, ah = self.snapshot()
        t = fit_transform(aw, ah, view_w, view_h)
        mapped = [map_rect(t, b) for b in boxes]
        mapped_finger = map_point(t, finger) if finger is not None else None
        return mapped, mapped_finger

    def render(self, camera_frame, view_w, view_h, hud_lines=None):
        if camera_frame is None:
            canvas = np.zeros((view_h, view_w, 3), dtype=np.uint8)
        else:
            canvas = cover_resize(camera_frame, view_w, view_h).copy()

        boxes, finger = self.project(view_w, view_h)
        for b in boxes:
            cv2.rectangle(canvas, (int(b.left), int(b.top)), (int(b.right), int(b.bottom)),
                          BOX_COLOR, BOX_THICKNESS, cv2.LINE_AA)
        if finger is not None:
            cv2.circle(canvas, (int(finger.x), int(finger.y)), self.finger_radius, FINGER_COLOR, -1, cv2.LINE_AA)

        if hud_lines:
            draw_hud(canvas, hud_lines)
        return canvas
