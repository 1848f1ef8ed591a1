# recognizers.py — OCR / 손(검지 끝) 인식 엔진 어댑터
# 엔진은 세션당 1회 생성, 워커 스레드에서 프레임마다 재사용.
# analyze(image) 는 실패 시 빈 결과를 돌려줌 (예외를 밖으로 던지지 않음)

import logging
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np

from geometry import Box, Point, box_from_quad

ocr_log = logging.getLogger("OCR")
hand_log = logging.getLogger("HAND")
yolo_log = logging.getLogger("YOLO")

INDEX_FINGER_TIP = 8      # MediaPipe landmark index
MIN_BOX_AREA = 120        # 너무 작은 박스는 잡음


@dataclass(frozen=True)
class TextDetection:
    text: str
    box: Box


def torch_cuda_ok():
    try:
        import torch
        ok = bool(torch.cuda.is_available())
        ocr_log.info("torch CUDA available: %s", ok)
        return ok
    except Exception as e:
        ocr_log.warning("torch check failed: %s", e)
        return False


# ========= OCR =========
def build_easyocr_reader(langs=("ko", "en"), gpu=None, model_dir=None):
    import easyocr
    if gpu is None:
        gpu = torch_cuda_ok()
    kwargs = {}
    if model_dir:
        kwargs["model_storage_directory"] = model_dir
    reader = easyocr.Reader(list(langs), gpu=gpu, **kwargs)
    ocr_log.info("EasyOCR ready (GPU=%s, langs=%s)", gpu, ",".join(langs))
    return reader


class OcrTask:
    """EasyOCR reader → [TextDetection]. 좌표는 입력 이미지 픽셀 공간."""

    name = "ocr"

    def __init__(self, reader, min_area: float = MIN_BOX_AREA):
        self.reader = reader
        self.min_area = min_area

    def analyze(self, image: Optional[np.ndarray]) -> List[TextDetection]:
        if image is None:
            return []
        try:
            raw = self.reader.readtext(image, detail=1, paragraph=False,
                                       decoder="greedy", min_size=2)
        except Exception:
            ocr_log.exception("OCR Failure")
            return []

        out = []
        for bbox_points, text, _prob in raw:
            text = (text or "").strip()
            if not text:
                continue
            box = box_from_quad(bbox_points)
            if box.width * box.height < self.min_area:
                continue
            out.append(TextDetection(text, box))
            ocr_log.debug("Detected Text: '%s' at %s", text, tuple(int(v) for v in box))
        return out

    def close(self):
        pass


# ========= Hand (MediaPipe) =========
def fingertip_from_landmarks(hand_landmarks, width, height) -> Optional[Point]:
    """첫 번째 손의 검지 끝만 사용. 정규화 좌표 → 픽셀."""
    if not hand_landmarks:
        return None
    hand = hand_landmarks[0]
    if len(hand) <= INDEX_FINGER_TIP:
        return None
    tip = hand[INDEX_FINGER_TIP]
    return Point(float(tip.x) * width, float(tip.y) * height)


def build_hand_landmarker(model_path, min_detection=0.5, min_presence=0.5, min_tracking=0.5):
    import os
    import mediapipe as mp
    if not os.path.isfile(model_path):
        raise FileNotFoundError(f"hand_landmarker.task not found: {model_path}")
    BaseOptions = mp.tasks.BaseOptions
    HandLandmarker = mp.tasks.vision.HandLandmarker
    HandLandmarkerOptions = mp.tasks.vision.HandLandmarkerOptions
    RunningMode = mp.tasks.vision.RunningMode

    options = HandLandmarkerOptions(
        base_options=BaseOptions(model_asset_path=str(model_path)),
        running_mode=RunningMode.IMAGE,
        num_hands=1,
        min_hand_detection_confidence=min_detection,
        min_hand_presence_confidence=min_presence,
        min_tracking_confidence=min_tracking,
    )
    landmarker = HandLandmarker.create_from_options(options)
    hand_log.info("Hand Landmarker ready: %s", model_path)
    return landmarker


class HandLandmarkTask:
    name = "hand"

    def __init__(self, landmarker):
        self.landmarker = landmarker

    def _to_mp_image(self, image_bgr):
        import mediapipe as mp
        rgb = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2RGB)
        return mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)

    def analyze(self, image: Optional[np.ndarray]) -> Optional[Point]:
        if image is None:
            return None
        h, w = image.shape[:2]
        try:
            result = self.landmarker.detect(self._to_mp_image(image))
        except Exception:
            hand_log.exception("Hand Landmarker failure")
            return None
        tip = fingertip_from_landmarks(getattr(result, "hand_landmarks", None), w, h)
        if tip is None:
            hand_log.debug("No hand results")
        else:
            hand_log.debug("Detected Finger Tip: (%.1f, %.1f)", tip.x, tip.y)
        return tip

    def close(self):
        try:
            self.landmarker.close()
        except Exception as e:
            hand_log.warning("close failed: %s", e)


# ========= Hand (YOLO fingertip) =========
def pick_best_tip(cands, last_xy):
    """cands: [(cx, cy, conf)] — 직전 위치와 가까울수록 가산."""
    if not cands:
        return None
    if last_xy is None:
        return max(cands, key=lambda t: t[2])
    lx, ly = last_xy
    def score(t):
        cx, cy, conf = t
        d2 = (cx-lx)**2 + (cy-ly)**2
        return conf - 0.0005*d2
    return max(cands, key=score)


def build_yolo_model(weights):
    from ultralytics import YOLO
    try:
        model = YOLO(weights)
    except Exception as e:
        raise RuntimeError(f"YOLO 모델 로드 실패: {weights}") from e
    yolo_log.info("Loaded: %s", weights)
    return model


class YoloFingertipTask:
    name = "hand"

    def __init__(self, model, img_size=640, conf_th=0.25, iou_th=0.50,
                 class_id: Optional[int] = 0, device=None):
        self.model = model
        self.img_size = img_size
        self.conf_th = conf_th
        self.iou_th = iou_th
        self.class_id = class_id
        self.device = device if device is not None else (0 if torch_cuda_ok() else "cpu")
        self.last_xy = None

    def analyze(self, image: Optional[np.ndarray]) -> Optional[Point]:
        if image is None:
            return None
        try:
            res = self.model.predict(source=image, imgsz=self.img_size,
                                     conf=self.conf_th, iou=self.iou_th,
                                     device=self.device, verbose=False)
        except Exception:
            yolo_log.exception("predict failed")
            return None

        cands = []
        if res and res[0].boxes is not None and len(res[0].boxes) > 0:
            for b in res[0].boxes:
                x1, y1, x2, y2 = b.xyxy[0].tolist()
                conf = float(b.conf[0]) if b.conf is not None else 0.0
                cls_id = int(b.cls[0]) if b.cls is not None else 0
                if self.class_id is not None and cls_id != self.class_id:
                    continue
                cands.append(((x1+x2)/2.0, (y1+y2)/2.0, conf))
        best = pick_best_tip(cands, self.last_xy)
        if best is None:
            return None
        self.last_xy = (best[0], best[1])
        return Point(best[0], best[1])

    def close(self):
        pass


def build_hand_task(settings):
    if settings.hand_engine == "yolo":
        model = build_yolo_model(settings.yolo_weights)
        return YoloFingertipTask(model, img_size=settings.yolo_img_size,
                                 conf_th=settings.yolo_conf_th)
    return HandLandmarkTask(build_hand_landmarker(settings.hand_task_path))


def build_ocr_task(settings):
    return OcrTask(build_easyocr_reader(settings.ocr_langs, model_dir=settings.ocr_model_dir))
