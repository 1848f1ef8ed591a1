# tts_reader.py — 안내 음성 출력 (Google Cloud TTS 합성 → mp3 캐시 → pygame 재생)
# speak() 는 선점: 재생 중/대기 중 문장을 버리고 새 문장부터.
import os, time, threading, queue, hashlib, logging, tempfile
from typing import Callable, Optional

import pygame
from google.cloud import texttospeech

log = logging.getLogger("TTS")

KO_VOICE = "ko-KR-Standard-A"
EN_VOICE = "en-US-Standard-C"


def _is_korean(s: str) -> bool:
    return any('가' <= ch <= '힣' for ch in (s or ""))


def pick_voice(text, ko_voice=KO_VOICE, en_voice=EN_VOICE):
    """(language_code, voice name)"""
    return ("ko-KR", ko_voice) if _is_korean(text) else ("en-US", en_voice)


class CloudSynthesizer:
    """text → mp3 경로. 같은 (보이스, 문장)은 디스크 캐시 재사용."""

    def __init__(self, client=None, *, credentials_path=None, cache_dir=None,
                 speaking_rate=1.05, pitch=0.0, ko_voice=KO_VOICE, en_voice=EN_VOICE):
        if client is None:
            if credentials_path:
                client = texttospeech.TextToSpeechClient.from_service_account_file(credentials_path)
            else:
                client = texttospeech.TextToSpeechClient()
        self.client = client
        self.speaking_rate = speaking_rate
        self.pitch = pitch
        self.ko_voice = ko_voice
        self.en_voice = en_voice
        self.cache_dir = cache_dir or os.path.join(tempfile.gettempdir(), "kiosk_tts_cache")
        os.makedirs(self.cache_dir, exist_ok=True)

    def cache_path(self, text):
        _, name = pick_voice(text, self.ko_voice, self.en_voice)
        key = f"{name}|{self.speaking_rate}|{self.pitch}|{text}"
        return os.path.join(self.cache_dir, hashlib.sha1(key.encode("utf-8")).hexdigest() + ".mp3")

    def __call__(self, text):
        path = self.cache_path(text)
        if os.path.exists(path):
            return path
        lang, name = pick_voice(text, self.ko_voice, self.en_voice)
        resp = self.client.synthesize_speech(
            input=texttospeech.SynthesisInput(text=text),
            voice=texttospeech.VoiceSelectionParams(language_code=lang, name=name),
            audio_config=texttospeech.AudioConfig(audio_encoding=texttospeech.AudioEncoding.MP3,
                                                  speaking_rate=self.speaking_rate,
                                                  pitch=self.pitch))
        tmp = path + ".part"
        with open(tmp, "wb") as f:
            f.write(resp.audio_content)
        os.replace(tmp, path)
        return path


class MixerPlayer:
    """pygame.mixer.music 로 mp3 한 개씩 재생. stop() 으로 즉시 끊김."""

    POLL_SEC = 0.03

    def __init__(self):
        if not pygame.mixer.get_init():
            pygame.mixer.init()
        self._stopped = threading.Event()
        self._lock = threading.Lock()

    def play(self, path, cancelled: Optional[Callable[[], bool]] = None):
        # 취소 확인과 재생 시작을 stop() 과 같은 락 안에서: 그 사이 stop 이 끼어들 수 없음
        with self._lock:
            if cancelled is not None and cancelled():
                return False
            self._stopped.clear()
            pygame.mixer.music.load(path)
            pygame.mixer.music.play()
        while pygame.mixer.music.get_busy() and not self._stopped.is_set():
            time.sleep(self.POLL_SEC)
        return True

    def stop(self):
        with self._lock:
            self._stopped.set()
            try:
                pygame.mixer.music.stop()
            except pygame.error as e:
                log.warning("stop failed: %s", e)


class TTSReader:
    """
    speak(text): 선점 발화. 재생 중인 문장을 끊고 대기 중인 문장은 버림.
    세대(generation) 번호로 speak 이전 문장은 합성 전/재생 직전에 걸러냄.
    """

    def __init__(self, synth: Callable[[str], str], player=None, *, min_len: int = 2):
        self.synth = synth
        self.player = player if player is not None else MixerPlayer()
        self.min_len = min_len

        self._q = queue.Queue()
        self._gen = 0
        self._gen_lock = threading.Lock()
        self._worker = threading.Thread(target=self._run, name="tts", daemon=True)
        self._worker.start()

    @classmethod
    def from_settings(cls, settings):
        synth = CloudSynthesizer(credentials_path=settings.tts_credentials,
                                 speaking_rate=settings.tts_speaking_rate,
                                 ko_voice=settings.tts_ko_voice)
        return cls(synth)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def speak(self, text: Optional[str]) -> bool:
        text = (text or "").strip()
        if len(text) < self.min_len:
            return False
        with self._gen_lock:
            self._gen += 1
            gen = self._gen
        # 세대를 올린 뒤 stop: 재생 직전인 이전 문장은 play() 안에서 취소됨
        self.player.stop()
        self._q.put((gen, text))
        return True

    def close(self):
        with self._gen_lock:
            self._gen += 1
        self.player.stop()
        self._q.put(None)
        self._worker.join(timeout=2.0)

    def _stale(self, gen):
        with self._gen_lock:
            return gen != self._gen

    def _run(self):
        while True:
            item = self._q.get()
            if item is None:
                break
            gen, text = item
            if self._stale(gen):
                continue
            try:
                path = self.synth(text)
                if self.player.play(path, cancelled=lambda: self._stale(gen)):
                    log.info("said: %s", text)
                else:
                    log.debug("dropped: %s", text)
            except Exception:
                log.exception("synthesis/playback failed: %s", text)
