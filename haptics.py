# haptics.py — 진동 펄스 (데스크톱에서는 짧은 톤으로 대체)
import logging

import numpy as np
import pygame

log = logging.getLogger("HAPTIC")

TONE_HZ = 180.0
TONE_VOLUME = 0.6


class ToneHaptics:
    """vibrate(ms) — fire-and-forget. 같은 길이의 펄스는 캐시해서 재사용."""

    def __init__(self, tone_hz: float = TONE_HZ, volume: float = TONE_VOLUME):
        if not pygame.mixer.get_init():
            pygame.mixer.init()
        self.tone_hz = tone_hz
        self.volume = volume
        self._cache = {}
        self.pulses = 0

    def _make_pulse(self, duration_ms: int):
        freq, _size, channels = pygame.mixer.get_init()
        n = max(1, int(freq * duration_ms / 1000.0))
        t = np.arange(n) / float(freq)
        wave = np.sin(2*np.pi*self.tone_hz*t)
        # 클릭음 방지용 페이드
        ramp = min(n // 10, int(freq * 0.005))
        if ramp > 0:
            env = np.ones(n)
            env[:ramp] = np.linspace(0, 1, ramp)
            env[-ramp:] = np.linspace(1, 0, ramp)
            wave *= env
        samples = (wave * self.volume * 32767).astype(np.int16)
        if channels > 1:
            samples = np.repeat(samples[:, None], channels, axis=1)
        return pygame.sndarray.make_sound(np.ascontiguousarray(samples))

    def vibrate(self, duration_ms: int):
        duration_ms = int(duration_ms)
        if duration_ms <= 0:
            return
        try:
            snd = self._cache.get(duration_ms)
            if snd is None:
                snd = self._cache[duration_ms] = self._make_pulse(duration_ms)
            snd.play()
            self.pulses += 1
            log.info("!!! VIBRATING !!! (%d ms)", duration_ms)
        except pygame.error as e:
            log.warning("pulse failed: %s", e)
