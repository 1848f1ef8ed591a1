# feedback.py — 음성 목표 + 분석 결과 → 화면 강조 / 안내 음성 / 진동
# 선택은 매 결과마다 새로 계산, 쿨타임 시각만 누적 상태로 유지

import time, threading, logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from geometry import Box, Point, distance_to_center
from similarity import similarity

log = logging.getLogger("FEEDBACK")

FOUND_MESSAGE = "화면에서 {target} 메뉴를 찾았습니다. 손으로 가리켜주세요."


class GuideState(Enum):
    NO_TARGET = "no_target"
    SEARCHING = "searching"
    TRACKING = "tracking"
    GUIDING = "guiding"


class VoiceTarget:
    """음성 인식 콜백(다른 스레드)이 쓰고 피드백 경로가 읽는 현재 목표 메뉴명."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._lock = threading.Lock()
        self._text = ""
        self._set_at = 0.0
        self._clock = clock

    def set(self, text: Optional[str]):
        text = (text or "").strip()
        with self._lock:
            self._text = text
            self._set_at = self._clock()

    def clear(self):
        self.set("")

    def get(self) -> str:
        with self._lock:
            return self._text

    def snapshot(self) -> Tuple[str, float]:
        with self._lock:
            return self._text, self._set_at


@dataclass
class FeedbackState:
    last_spoken_at: Optional[float] = None
    last_vibrated_at: Optional[float] = None


@dataclass(frozen=True)
class DisplayUpdate:
    boxes: Tuple[Box, ...]
    finger: Optional[Point]
    analysis_width: int
    analysis_height: int


@dataclass(frozen=True)
class FeedbackCommands:
    display: DisplayUpdate
    speech: Optional[str] = None
    vibration_ms: Optional[int] = None
    state: GuideState = GuideState.NO_TARGET
    best_score: float = 0.0
    selected_text: Optional[str] = None


def select_best(target: str, detections: Sequence, scorer=similarity):
    """가장 유사한 검출 하나. 동점이면 먼저 나온 것."""
    best, best_score = None, -1.0
    for det in detections:
        score = scorer(target, det.text)
        if score > best_score:
            best, best_score = det, score
    return best, max(best_score, 0.0)


class FeedbackArbiter:
    def __init__(self, *, similarity_threshold: float = 0.4,
                 speech_cooldown_sec: float = 15.0,
                 vibration_cooldown_sec: float = 1.0,
                 distance_threshold_px: float = 200.0,
                 vibration_ms: int = 150,
                 scorer=similarity,
                 clock: Callable[[], float] = time.monotonic,
                 state: Optional[FeedbackState] = None):
        self.similarity_threshold = similarity_threshold
        self.speech_cooldown_sec = speech_cooldown_sec
        self.vibration_cooldown_sec = vibration_cooldown_sec
        self.distance_threshold_px = distance_threshold_px
        self.vibration_ms = vibration_ms
        self.scorer = scorer
        self.clock = clock
        self.state = state or FeedbackState()

    @classmethod
    def from_settings(cls, settings, **kw):
        from similarity import get_scorer
        return cls(similarity_threshold=settings.similarity_threshold,
                   speech_cooldown_sec=settings.speech_cooldown_sec,
                   vibration_cooldown_sec=settings.vibration_cooldown_sec,
                   distance_threshold_px=settings.distance_threshold_px,
                   vibration_ms=settings.vibration_ms,
                   scorer=get_scorer(settings.match_use_jamo), **kw)

    def on_fused_result(self, result, voice_target: str, now: Optional[float] = None) -> FeedbackCommands:
        now = self.clock() if now is None else now
        target = (voice_target or "").strip()

        def cleared(state, score=0.0):
            # 검색 중이 아니면 아무 박스도 강조하지 않음
            return FeedbackCommands(
                DisplayUpdate((), result.fingertip, result.analysis_width, result.analysis_height),
                state=state, best_score=score)

        if not target:
            return cleared(GuideState.NO_TARGET)
        if not result.detections:
            return cleared(GuideState.SEARCHING)

        best, score = select_best(target, result.detections, self.scorer)
        if best is None or score < self.similarity_threshold:
            log.debug("'%s' not found (best=%.2f)", target, score)
            return cleared(GuideState.SEARCHING, score)

        selected = best.box
        display = DisplayUpdate((selected,), result.fingertip,
                                result.analysis_width, result.analysis_height)

        speech = None
        st = self.state
        if st.last_spoken_at is None or now - st.last_spoken_at > self.speech_cooldown_sec:
            st.last_spoken_at = now
            speech = FOUND_MESSAGE.format(target=target)

        vibration = None
        state = GuideState.TRACKING
        finger = result.fingertip
        if finger is not None:
            dist = distance_to_center(finger, selected)
            log.debug("distance to '%s': %.1f | threshold: %.1f", best.text, dist, self.distance_threshold_px)
            if dist <= self.distance_threshold_px:
                state = GuideState.GUIDING
                if st.last_vibrated_at is None or now - st.last_vibrated_at > self.vibration_cooldown_sec:
                    st.last_vibrated_at = now
                    vibration = self.vibration_ms

        return FeedbackCommands(display, speech, vibration, state, score, best.text)


class FeedbackDispatcher:
    """FusedResult 콜백. 판단은 arbiter, 출력은 display/speaker/haptics 로."""

    def __init__(self, arbiter: FeedbackArbiter, voice_target: VoiceTarget,
                 display=None, speaker=None, haptics=None):
        self.arbiter = arbiter
        self.voice_target = voice_target
        self.display = display
        self.speaker = speaker
        self.haptics = haptics
        self.last_commands: Optional[FeedbackCommands] = None

    def __call__(self, result):
        cmd = self.arbiter.on_fused_result(result, self.voice_target.get())
        self.last_commands = cmd

        if self.display is not None:
            d = cmd.display
            self._fire("display", self.display.update_highlight,
                       list(d.boxes), d.finger, d.analysis_width, d.analysis_height)
        if cmd.speech and self.speaker is not None:
            self._fire("speech", self.speaker.speak, cmd.speech)
        if cmd.vibration_ms and self.haptics is not None:
            self._fire("haptics", self.haptics.vibrate, cmd.vibration_ms)
        return cmd

    @staticmethod
    def _fire(name, fn, *args):
        try:
            fn(*args)
        except Exception:
            log.exception("%s output failed", name)
