# camera.py — 카메라 캡처 + 분석기로 최신 프레임만 전달 (keep only latest)
import time, queue, threading, logging

import cv2

from geometry import apply_rotation

log = logging.getLogger("CAMERA")


def open_capture(camera_id, width, height):
    cap = cv2.VideoCapture(camera_id, cv2.CAP_DSHOW) if cv2.getBuildInformation().find('Windows') != -1 \
        else cv2.VideoCapture(camera_id)
    if not cap.isOpened():
        raise RuntimeError(f"카메라 열기 실패: {camera_id}")
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    try:
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
    except cv2.error:
        pass
    w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)); h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    log.info("requested ~%dx%d, actual %dx%d", width, height, w, h)
    return cap


class CameraSource:
    """
    캡처 스레드: 프레임 읽기 → 미리보기용 최신 프레임 갱신 → 분석 큐(크기 1)에 넣기
    분석 스레드: 큐에서 꺼내 deliver(buffer, rotation, timestamp) 호출
    분석 중에 들어온 프레임은 큐가 차 있으면 교체(가장 최신 것만 남김)
    """

    def __init__(self, cap, deliver, rotation=0, mirror=False):
        self.cap = cap
        self.deliver = deliver
        self.rotation = rotation
        self.mirror = mirror
        self._frame_q = queue.Queue(maxsize=1)
        self._latest = None
        self._latest_lock = threading.Lock()
        self._stop = threading.Event()
        self._threads = []
        self.dropped = 0

    @classmethod
    def from_settings(cls, settings, deliver):
        cap = open_capture(settings.camera_id, settings.capture_w, settings.capture_h)
        return cls(cap, deliver, rotation=settings.camera_rotation, mirror=settings.camera_mirror)

    def start(self):
        if self._threads:
            return
        self._stop.clear()
        self._threads = [threading.Thread(target=self._capture_loop, name="capture", daemon=True),
                         threading.Thread(target=self._deliver_loop, name="deliver", daemon=True)]
        for t in self._threads:
            t.start()
        log.info("started (rotation=%d)", self.rotation)

    def stop(self):
        self._stop.set()
        for t in self._threads:
            t.join(timeout=2.0)
        self._threads = []
        if self.cap is not None and self.cap.isOpened():
            self.cap.release()
        log.info("stopped (dropped=%d)", self.dropped)

    def latest_upright(self):
        """미리보기용: 회전 적용된 최신 프레임 (없으면 None)."""
        with self._latest_lock:
            frame = self._latest
        return apply_rotation(frame, self.rotation) if frame is not None else None

    def offer(self, frame, ts=None):
        item = (frame, time.time() if ts is None else ts)
        try:
            self._frame_q.put_nowait(item)
        except queue.Full:
            try:
                self._frame_q.get_nowait()
                self.dropped += 1
            except queue.Empty:
                pass
            try:
                self._frame_q.put_nowait(item)
            except queue.Full:
                self.dropped += 1

    def _capture_loop(self):
        while not self._stop.is_set():
            ret, frame = self.cap.read()
            if not ret:
                time.sleep(0.01)
                continue
            if self.mirror:
                frame = cv2.flip(frame, 1)
            with self._latest_lock:
                self._latest = frame
            self.offer(frame)

    def _deliver_loop(self):
        while not self._stop.is_set():
            try:
                frame, ts = self._frame_q.get(timeout=0.2)
            except queue.Empty:
                continue
            try:
                self.deliver(frame, self.rotation, ts)
            except Exception:
                log.exception("deliver failed")
