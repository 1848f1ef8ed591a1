import threading, time

import numpy as np
import pytest

from analyzer import Frame, FrameAnalyzer, FusedResult
from geometry import Box, Point
from recognizers import TextDetection


class FakeClock:
    def __init__(self, t=0.0):
        self.t = t

    def __call__(self):
        return self.t


class FakeOcr:
    name = "ocr"

    def __init__(self, detections=(), block=None, error=None):
        self.detections = list(detections)
        self.block = block
        self.error = error
        self.shapes = []

    def analyze(self, image):
        self.shapes.append(image.shape)
        if self.block is not None:
            self.block.wait(5.0)
        if self.error is not None:
            raise self.error
        return list(self.detections)


class FakeHand:
    name = "hand"

    def __init__(self, point=None, error=None):
        self.point = point
        self.error = error
        self.shapes = []

    def analyze(self, image):
        self.shapes.append(image.shape)
        if self.error is not None:
            raise self.error
        return self.point


def image(h=100, w=200):
    return np.zeros((h, w, 3), dtype=np.uint8)


def make(ocr=None, hand=None, **kw):
    results = []
    clock = kw.pop("clock", FakeClock())
    a = FrameAnalyzer(ocr or FakeOcr(), hand or FakeHand(), results.append, clock=clock, **kw)
    return a, results, clock


def test_rate_limiter_admits_every_third_frame():
    a, results, clock = make(min_interval_sec=1.5)
    released = []
    admitted_at = []
    for i in range(10):
        clock.t = i * 0.5
        before = len(results)
        a.on_frame(Frame(image(), 0, clock.t, on_release=lambda i=i: released.append(i)))
        if len(results) > before:
            admitted_at.append(clock.t)
    a.close()
    assert admitted_at == [0.0, 1.5, 3.0, 4.5]
    assert len(results) == 4
    assert released == list(range(10))


def test_one_result_per_admitted_frame():
    a, results, clock = make(min_interval_sec=0.0)
    for i in range(3):
        a.on_frame(Frame(image(), 0, float(i)))
    a.close()
    assert len(results) == 3
    assert all(isinstance(r, FusedResult) for r in results)


def test_join_timeout_returns_partial_result():
    gate = threading.Event()
    ocr = FakeOcr([TextDetection("라떼", Box(0, 0, 10, 10))], block=gate)
    hand = FakeHand(Point(12.0, 34.0))
    a, results, _ = make(ocr, hand, join_timeout_sec=0.3)
    try:
        t0 = time.monotonic()
        a.on_frame(Frame(image(), 0))
        elapsed = time.monotonic() - t0
    finally:
        gate.set()
        a.close()
    assert elapsed < 0.3 + 1.0
    (r,) = results
    assert r.detections == ()
    assert r.fingertip == Point(12.0, 34.0)
    assert r.timed_out == ("ocr",)
    assert a.timeouts == 1


def test_late_result_is_not_applied_to_next_frame():
    gate = threading.Event()
    late = TextDetection("late", Box(0, 0, 10, 10))

    class OnceSlowOcr(FakeOcr):
        calls = 0

        def analyze(self, img):
            OnceSlowOcr.calls += 1
            if OnceSlowOcr.calls == 1:
                gate.wait(5.0)
                return [late]
            return []

    a, results, clock = make(OnceSlowOcr(), FakeHand(), join_timeout_sec=0.2, min_interval_sec=1.0)
    try:
        a.on_frame(Frame(image(), 0))
        gate.set()
        time.sleep(0.05)
        clock.t = 5.0
        a.on_frame(Frame(image(), 0))
    finally:
        a.close()
    assert [r.detections for r in results] == [(), ()]


def test_task_failure_only_empties_that_modality():
    ocr = FakeOcr(error=RuntimeError("boom"))
    hand = FakeHand(Point(1.0, 2.0))
    a, results, _ = make(ocr, hand)
    a.on_frame(Frame(image(), 0))
    a.close()
    (r,) = results
    assert r.detections == ()
    assert r.fingertip == Point(1.0, 2.0)
    assert r.timed_out == ()


def test_hand_failure_keeps_detections():
    det = TextDetection("주문하기", Box(5, 5, 50, 20))
    a, results, _ = make(FakeOcr([det]), FakeHand(error=ValueError("bad")))
    a.on_frame(Frame(image(), 0))
    a.close()
    assert results[0].detections == (det,)
    assert results[0].fingertip is None


def test_upscale_puts_fingertip_in_ocr_space():
    ocr = FakeOcr()
    hand = FakeHand(Point(10.0, 20.0))
    a, results, _ = make(ocr, hand, upscale_factor=1.5)
    a.on_frame(Frame(image(100, 200), 0))
    a.close()
    r = results[0]
    assert ocr.shapes == [(150, 300, 3)]
    assert hand.shapes == [(100, 200, 3)]
    assert (r.analysis_width, r.analysis_height) == (300, 150)
    assert r.fingertip.x == pytest.approx(15.0)
    assert r.fingertip.y == pytest.approx(30.0)


def test_rotation_defines_analysis_space():
    ocr = FakeOcr()
    hand = FakeHand()
    a, results, _ = make(ocr, hand)
    a.on_frame(Frame(image(100, 200), 90))
    a.close()
    assert ocr.shapes == [(200, 100, 3)]
    assert (results[0].analysis_width, results[0].analysis_height) == (100, 200)


def test_null_frames_are_skipped():
    a, results, _ = make()
    a.on_frame(None)
    released = []
    a.on_frame(Frame(None, 0, on_release=lambda: released.append(1)))
    assert results == []
    assert released == [1]
    # 빈 프레임은 분석 간격을 소모하지 않음
    a.on_frame(Frame(image(), 0))
    a.close()
    assert len(results) == 1


def test_release_once_even_if_consumer_fails():
    released = []

    def bad_consumer(result):
        raise RuntimeError("display gone")

    a = FrameAnalyzer(FakeOcr(), FakeHand(), bad_consumer, clock=FakeClock())
    frame = Frame(image(), 0, on_release=lambda: released.append(1))
    a.on_frame(frame)
    frame.release()
    a.close()
    assert released == [1]


def test_deliver_frame_builds_frame():
    a, results, _ = make()
    released = []
    a.deliver_frame(image(), 0, 123.0, release=lambda: released.append(1))
    a.close()
    assert results[0].timestamp == 123.0
    assert released == [1]


def test_bad_rotation_still_emits_empty_result():
    a, results, _ = make()
    a.on_frame(Frame(image(100, 200), 45))
    a.close()
    (r,) = results
    assert r.detections == () and r.fingertip is None
    assert (r.analysis_width, r.analysis_height) == (200, 100)


def test_stalled_ocr_does_not_starve_hand_task():
    gate = threading.Event()
    ocr = FakeOcr(block=gate)
    hand = FakeHand(Point(1.0, 2.0))
    a, results, clock = make(ocr, hand, join_timeout_sec=0.3, min_interval_sec=1.0)
    try:
        for i in range(3):
            clock.t = float(i * 2)
            a.on_frame(Frame(image(), 0))
    finally:
        gate.set()
        a.close()
    assert len(results) == 3
    assert all(r.fingertip == Point(1.0, 2.0) for r in results)
    assert all(r.timed_out == ("ocr",) for r in results)
    # 멈춘 OCR 작업 뒤로 새 OCR 작업이 쌓이지 않음
    assert len(ocr.shapes) == 1
    assert len(hand.shapes) == 3


def test_hand_calls_never_overlap():
    active = []
    overlaps = []

    class TrackingHand(FakeHand):
        def analyze(self, img):
            active.append(1)
            if len(active) > 1:
                overlaps.append(len(active))
            time.sleep(0.15)
            active.pop()
            return Point(3.0, 4.0)

    a, results, clock = make(FakeOcr(), TrackingHand(), join_timeout_sec=0.05, min_interval_sec=1.0)
    try:
        for i in range(4):
            clock.t = float(i * 2)
            a.on_frame(Frame(image(), 0))
    finally:
        a.close()
    assert overlaps == []
    assert len(results) == 4
