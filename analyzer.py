# analyzer.py — 프레임 분석 엔진
# 카메라 프레임 → (rate limit) → 정방향 회전/업스케일 → OCR + 손 인식 동시 실행
# → 제한 시간 내 join → FusedResult 1개를 다음 단계(피드백)로 전달

import time, logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import numpy as np

from geometry import Point, apply_rotation, scale_point, upscale
from recognizers import TextDetection

log = logging.getLogger("ANALYZER")

LATENCY_EMA_ALPHA = 0.25


@dataclass
class Frame:
    """카메라 버퍼 + 회전 정보. 분석 1회가 끝나면 반드시 release()."""
    image: Optional[np.ndarray]
    rotation: int = 0
    timestamp: float = 0.0
    on_release: Optional[Callable[[], None]] = None
    released: bool = field(default=False, repr=False)

    def release(self):
        if self.released:
            return
        self.released = True
        if self.on_release is not None:
            try:
                self.on_release()
            except Exception:
                log.exception("frame release hook failed")


@dataclass(frozen=True)
class FusedResult:
    detections: Tuple[TextDetection, ...]
    fingertip: Optional[Point]
    analysis_width: int
    analysis_height: int
    timestamp: float = 0.0
    timed_out: Tuple[str, ...] = ()


def _run_task(task, image, empty):
    # 한 쪽 실패가 다른 쪽/프레임 전체를 망치지 않도록 여기서 흡수
    try:
        result = task.analyze(image)
    except Exception:
        log.exception("%s task failed", getattr(task, "name", "?"))
        return empty
    return empty if result is None else result


class FrameAnalyzer:
    def __init__(self, ocr_task, hand_task, on_result: Callable[[FusedResult], None],
                 *, min_interval_sec: float = 3.0, join_timeout_sec: float = 7.0,
                 upscale_factor: float = 1.0,
                 clock: Callable[[], float] = time.monotonic):
        self.ocr_task = ocr_task
        self.hand_task = hand_task
        self.on_result = on_result
        self.min_interval_sec = float(min_interval_sec)
        self.join_timeout_sec = float(join_timeout_sec)
        self.upscale_factor = float(upscale_factor)
        self.clock = clock

        # 모달리티별 단일 워커: 한쪽이 멈춰도 다른 쪽은 매 프레임 계속 돈다
        self._ocr_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ocr")
        self._hand_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hand")
        self._ocr_f = None
        self._hand_f = None
        self._last_analysis_time = None

        # HUD용 통계
        self.frames_seen = 0
        self.frames_admitted = 0
        self.timeouts = 0
        self.latency_ema_ms = None

    @classmethod
    def from_settings(cls, settings, ocr_task, hand_task, on_result, **kw):
        return cls(ocr_task, hand_task, on_result,
                   min_interval_sec=settings.min_interval_sec,
                   join_timeout_sec=settings.join_timeout_sec,
                   upscale_factor=settings.upscale_factor, **kw)

    # ---------- public API ----------
    def deliver_frame(self, buffer, rotation_degrees=0, timestamp=None, release=None):
        frame = Frame(buffer, rotation_degrees,
                      time.time() if timestamp is None else timestamp, release)
        self.on_frame(frame)

    def on_frame(self, frame: Optional[Frame]):
        if frame is None:
            return
        self.frames_seen += 1
        result = None
        try:
            if frame.image is None or frame.image.size == 0:
                return
            if not self._admit():
                return
            self.frames_admitted += 1
            try:
                result = self._analyze(frame)
            except Exception:
                log.exception("Analysis Error")
                h, w = frame.image.shape[:2]
                result = FusedResult((), None, int(w), int(h), frame.timestamp)
        finally:
            frame.release()

        try:
            self.on_result(result)
        except Exception:
            log.exception("result consumer failed")

    def close(self):
        self._ocr_pool.shutdown(wait=False, cancel_futures=True)
        self._hand_pool.shutdown(wait=False, cancel_futures=True)

    # ---------- internals ----------
    def _admit(self) -> bool:
        now = self.clock()
        if self._last_analysis_time is not None and \
                now - self._last_analysis_time < self.min_interval_sec:
            return False
        self._last_analysis_time = now
        return True

    def _prepare(self, frame: Frame):
        upright = apply_rotation(frame.image, frame.rotation)
        if upright is frame.image:
            # 타임아웃 후에도 워커가 읽을 수 있으니 카메라 버퍼와 분리
            upright = upright.copy()
        if self.upscale_factor > 1.0:
            ocr_image = upscale(upright, self.upscale_factor)
        else:
            ocr_image = upright
        return upright, ocr_image

    def _analyze(self, frame: Frame) -> FusedResult:
        t0 = time.perf_counter()
        upright, ocr_image = self._prepare(frame)
        h, w = upright.shape[:2]
        ah, aw = ocr_image.shape[:2]

        # OCR은 업스케일본, 손 인식은 회전본 (속도)
        # 이전 프레임 작업이 아직 안 끝난 쪽은 새로 넣지 않음 (큐 적체 방지)
        busy = []
        if self._ocr_f is None or self._ocr_f.done():
            self._ocr_f = self._ocr_pool.submit(_run_task, self.ocr_task, ocr_image, [])
            ocr_f = self._ocr_f
        else:
            ocr_f = None
            busy.append("ocr")
        if self._hand_f is None or self._hand_f.done():
            self._hand_f = self._hand_pool.submit(_run_task, self.hand_task, upright, None)
            hand_f = self._hand_f
        else:
            hand_f = None
            busy.append("hand")

        pending = [f for f in (ocr_f, hand_f) if f is not None]
        done, _ = wait(pending, timeout=self.join_timeout_sec) if pending else (set(), set())

        timed_out = []
        detections = []
        fingertip = None
        if ocr_f is not None and ocr_f in done:
            detections = ocr_f.result()
        else:
            timed_out.append("ocr")
        if hand_f is not None and hand_f in done:
            fingertip = hand_f.result()
        else:
            timed_out.append("hand")

        if timed_out:
            self.timeouts += 1
            log.warning("Timeout on tasks: %s (%.1fs)%s", ",".join(timed_out), self.join_timeout_sec,
                        f", still busy: {','.join(busy)}" if busy else "")

        # 손 좌표를 OCR 좌표계로 맞춤
        if aw != w or ah != h:
            fingertip = scale_point(fingertip, aw / float(w), ah / float(h))

        dt_ms = (time.perf_counter() - t0) * 1000.0
        if self.latency_ema_ms is None:
            self.latency_ema_ms = dt_ms
        else:
            self.latency_ema_ms = (1-LATENCY_EMA_ALPHA)*self.latency_ema_ms + LATENCY_EMA_ALPHA*dt_ms

        log.debug("fused: %d texts, finger=%s, %dx%d, %.0f ms",
                  len(detections), fingertip, aw, ah, dt_ms)
        return FusedResult(tuple(detections), fingertip, int(aw), int(ah),
                           frame.timestamp, tuple(timed_out))
