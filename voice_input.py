# voice_input.py — 음성으로 목표 메뉴 지정 (요청 1회당 발화 1개)
import time, threading, logging
from typing import Callable, Optional

log = logging.getLogger("STT")

PROMPT_MESSAGE = "말씀해주세요."
CONFIRM_MESSAGE = "선택한 메뉴는 {text} 입니다."


def stt_listen_once(language="ko-KR", timeout=4, phrase_time_limit=4) -> Optional[str]:
    import speech_recognition as sr
    r = sr.Recognizer()
    try:
        with sr.Microphone() as source:
            r.adjust_for_ambient_noise(source, duration=0.5)
            audio = r.listen(source, timeout=timeout, phrase_time_limit=phrase_time_limit)
        return r.recognize_google(audio, language=language)
    except (sr.WaitTimeoutError, sr.UnknownValueError):
        log.info("no speech recognized")
        return None
    except (sr.RequestError, OSError) as e:
        log.error("error: %s", e)
        return None


class VoiceRequester:
    """request() → 안내 멘트 → start_delay 뒤 듣기 → VoiceTarget 갱신 + 확인 멘트."""

    def __init__(self, voice_target, speaker=None, *,
                 listen: Optional[Callable[[], Optional[str]]] = None,
                 start_delay_sec: float = 1.0):
        self.voice_target = voice_target
        self.speaker = speaker
        self.listen = listen or stt_listen_once
        self.start_delay_sec = start_delay_sec
        self._busy = threading.Lock()
        self.last_heard = None

    @classmethod
    def from_settings(cls, settings, voice_target, speaker=None):
        def _listen():
            return stt_listen_once(settings.stt_language, settings.stt_timeout_sec,
                                   settings.stt_phrase_limit_sec)
        return cls(voice_target, speaker, listen=_listen,
                   start_delay_sec=settings.stt_start_delay_sec)

    def request(self, blocking: bool = False) -> bool:
        if not self._busy.acquire(blocking=False):
            log.info("already listening")
            return False
        self._say(PROMPT_MESSAGE)
        if blocking:
            self._run()
        else:
            threading.Thread(target=self._run, name="stt", daemon=True).start()
        return True

    def _run(self):
        try:
            if self.start_delay_sec > 0:
                time.sleep(self.start_delay_sec)
            try:
                text = self.listen()
            except Exception:
                log.exception("listen failed")
                text = None
            text = (text or "").strip()
            if not text:
                log.info("no text, keeping target '%s'", self.voice_target.get())
                return
            self.last_heard = text
            self.voice_target.set(text)
            log.info("heard: %s", text)
            self._say(CONFIRM_MESSAGE.format(text=text))
        finally:
            self._busy.release()

    def _say(self, text):
        if self.speaker is None:
            return
        try:
            self.speaker.speak(text)
        except Exception:
            log.exception("speak failed")
