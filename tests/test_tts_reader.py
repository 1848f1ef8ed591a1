import threading

import pygame

from tts_reader import MixerPlayer, TTSReader, pick_voice


class FakePlayer:
    def __init__(self):
        self.played = []
        self.stops = 0
        self.done = threading.Event()

    def play(self, path, cancelled=None):
        if cancelled is not None and cancelled():
            return False
        self.played.append(path)
        self.done.set()
        return True

    def stop(self):
        self.stops += 1


class GatedSynth:
    """첫 문장 합성을 gate 가 열릴 때까지 붙잡음."""

    def __init__(self):
        self.gate = threading.Event()
        self.started = threading.Event()
        self.calls = []

    def __call__(self, text):
        self.calls.append(text)
        if len(self.calls) == 1:
            self.started.set()
            self.gate.wait(2.0)
        return "mp3:" + text


def test_pick_voice():
    assert pick_voice("아메리카노")[0] == "ko-KR"
    assert pick_voice("latte")[0] == "en-US"


def test_speak_preempts_pending_sentences():
    synth, player = GatedSynth(), FakePlayer()
    tts = TTSReader(synth, player)
    try:
        tts.speak("첫번째 문장")
        assert synth.started.wait(2.0)
        tts.speak("두번째 문장")
        tts.speak("말씀해주세요.")
        synth.gate.set()
        assert player.done.wait(2.0)
    finally:
        tts.close()
    assert player.played == ["mp3:말씀해주세요."]
    assert "두번째 문장" not in synth.calls
    assert player.stops >= 2


def test_speak_between_synthesis_and_playback_cancels_old_sentence():
    tts_ref = []
    played = []
    done = threading.Event()

    class RacingPlayer(FakePlayer):
        def play(self, path, cancelled=None):
            if path == "mp3:이전 안내":
                # 재생 직전에 새 안내가 들어옴
                tts_ref[0].speak("새 안내")
            ok = cancelled is None or not cancelled()
            if ok:
                played.append(path)
                done.set()
            return ok

    tts = TTSReader(lambda t: "mp3:" + t, RacingPlayer())
    tts_ref.append(tts)
    try:
        tts.speak("이전 안내")
        assert done.wait(2.0)
    finally:
        tts.close()
    assert played == ["mp3:새 안내"]


def test_short_text_is_ignored():
    tts = TTSReader(lambda t: t, FakePlayer())
    try:
        assert tts.speak("a") is False
        assert tts.speak("  ") is False
        assert tts.speak(None) is False
        assert tts.speak("라떼") is True
    finally:
        tts.close()


class FakeMusic:
    def __init__(self):
        self.loaded = []
        self.stops = 0

    def load(self, path):
        self.loaded.append(path)

    def play(self):
        pass

    def get_busy(self):
        return False

    def stop(self):
        self.stops += 1


def test_mixer_player_skips_cancelled_sentence(monkeypatch):
    music = FakeMusic()
    monkeypatch.setattr(pygame.mixer, "get_init", lambda: (44100, -16, 2))
    monkeypatch.setattr(pygame.mixer, "music", music)
    player = MixerPlayer()
    assert player.play("a.mp3", cancelled=lambda: True) is False
    assert music.loaded == []
    assert player.play("b.mp3", cancelled=lambda: False) is True
    assert music.loaded == ["b.mp3"]
    player.stop()
    assert music.stops == 1
