# settings.py — 키오스크 보조 앱 설정값 + 로깅
# 모든 값은 config.json(또는 KIOSK_CONFIG 경로)으로 덮어쓸 수 있음

import os, json, logging
from dataclasses import dataclass, fields, asdict
from typing import Optional

# ========= Camera =========
CAMERA_ID = 0
CAPTURE_TARGET_W = 1280
CAPTURE_TARGET_H = 960
CAMERA_ROTATION = 0          # 장착 방향 보정 (0/90/180/270)
CAMERA_MIRROR = False

# ========= Analysis =========
MIN_INTERVAL_SEC = 3.0       # 분석 간격 (rate limit)
JOIN_TIMEOUT_SEC = 7.0       # Hand Landmarker 무거움 → 7초
UPSCALE_FACTOR = 1.5         # 1.0이면 업스케일 안 함

# ========= Matching =========
SIMILARITY_THRESHOLD = 0.4   # 이 값 이상이면 매칭 (경계 포함)
MATCH_USE_JAMO = False       # 자모 단위 비교

# ========= Feedback =========
SPEECH_COOLDOWN_SEC = 15.0
VIBRATION_COOLDOWN_SEC = 1.0
DISTANCE_THRESHOLD_PX = 200.0
VIBRATION_MS = 150

# ========= TTS =========
TTS_ENABLE = True
TTS_CREDENTIALS = None       # None이면 GOOGLE_APPLICATION_CREDENTIALS 사용
TTS_SPEAKING_RATE = 1.05
TTS_KO_VOICE = "ko-KR-Standard-A"

# ========= STT =========
USE_STT = True
STT_LANGUAGE = "ko-KR"
STT_START_DELAY_SEC = 1.0
STT_TIMEOUT_SEC = 4.0
STT_PHRASE_LIMIT_SEC = 4.0

# ========= Models =========
OCR_LANGS = ("ko", "en")
OCR_MODEL_DIR = None
HAND_ENGINE = "mediapipe"    # "mediapipe" | "yolo"
HAND_TASK_PATH = "hand_landmarker.task"
YOLO_WEIGHTS = "weights/fingertip.pt"
YOLO_IMG_SIZE = 640
YOLO_CONF_TH = 0.25

# ========= Display =========
WINDOW_NAME = "Kiosk Assist"
DISPLAY_W = 960
DISPLAY_H = 720
FINGER_RADIUS_PX = 25
SHOW_HUD = True

LOG_FORMAT = "[%(name)s] %(message)s"

log = logging.getLogger("CONFIG")


@dataclass
class KioskSettings:
    camera_id: int = CAMERA_ID
    capture_w: int = CAPTURE_TARGET_W
    capture_h: int = CAPTURE_TARGET_H
    camera_rotation: int = CAMERA_ROTATION
    camera_mirror: bool = CAMERA_MIRROR

    min_interval_sec: float = MIN_INTERVAL_SEC
    join_timeout_sec: float = JOIN_TIMEOUT_SEC
    upscale_factor: float = UPSCALE_FACTOR

    similarity_threshold: float = SIMILARITY_THRESHOLD
    match_use_jamo: bool = MATCH_USE_JAMO

    speech_cooldown_sec: float = SPEECH_COOLDOWN_SEC
    vibration_cooldown_sec: float = VIBRATION_COOLDOWN_SEC
    distance_threshold_px: float = DISTANCE_THRESHOLD_PX
    vibration_ms: int = VIBRATION_MS

    tts_enable: bool = TTS_ENABLE
    tts_credentials: Optional[str] = TTS_CREDENTIALS
    tts_speaking_rate: float = TTS_SPEAKING_RATE
    tts_ko_voice: str = TTS_KO_VOICE

    use_stt: bool = USE_STT
    stt_language: str = STT_LANGUAGE
    stt_start_delay_sec: float = STT_START_DELAY_SEC
    stt_timeout_sec: float = STT_TIMEOUT_SEC
    stt_phrase_limit_sec: float = STT_PHRASE_LIMIT_SEC

    ocr_langs: tuple = OCR_LANGS
    ocr_model_dir: Optional[str] = OCR_MODEL_DIR
    hand_engine: str = HAND_ENGINE
    hand_task_path: str = HAND_TASK_PATH
    yolo_weights: str = YOLO_WEIGHTS
    yolo_img_size: int = YOLO_IMG_SIZE
    yolo_conf_th: float = YOLO_CONF_TH

    window_name: str = WINDOW_NAME
    display_w: int = DISPLAY_W
    display_h: int = DISPLAY_H
    finger_radius_px: int = FINGER_RADIUS_PX
    show_hud: bool = SHOW_HUD

    def validate(self):
        if self.camera_rotation % 90 != 0:
            raise ValueError(f"camera_rotation must be a multiple of 90, got {self.camera_rotation}")
        if self.upscale_factor < 1.0:
            raise ValueError(f"upscale_factor must be >= 1.0, got {self.upscale_factor}")
        if self.min_interval_sec < 0 or self.join_timeout_sec <= 0:
            raise ValueError("min_interval_sec must be >= 0 and join_timeout_sec > 0")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError(f"similarity_threshold out of [0,1]: {self.similarity_threshold}")
        if self.hand_engine not in ("mediapipe", "yolo"):
            raise ValueError(f"unknown hand_engine: {self.hand_engine}")
        return self

    def to_dict(self) -> dict:
        return asdict(self)


def _coerce(key, ftype, value):
    """JSON 값 → 필드 타입. 맞지 않으면 ValueError."""
    if ftype == Optional[str]:
        if value is None or isinstance(value, str):
            return value
    elif ftype is bool:
        if isinstance(value, bool):
            return value
    elif ftype is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif ftype is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif ftype is str:
        if isinstance(value, str):
            return value
    elif ftype is tuple:
        # ocr_langs: 문자열 하나가 글자 단위로 쪼개지지 않게 리스트만 허용
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return tuple(value)
    raise ValueError(f"config key {key}: expected {getattr(ftype, '__name__', ftype)}, got {value!r}")


def load_settings(path: Optional[str] = None) -> KioskSettings:
    """config.json 읽어서 기본값 위에 덮어씀. 파일 없으면 기본값."""
    path = path or os.environ.get("KIOSK_CONFIG", "config.json")
    settings = KioskSettings()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        log.warning("%s not found, using defaults", path)
        return settings.validate()
    except json.JSONDecodeError as e:
        raise ValueError(f"malformed config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"config {path} must be a JSON object")

    types = {f.name: f.type for f in fields(KioskSettings)}
    for key, value in data.items():
        if key not in types:
            log.warning("unknown config key ignored: %s", key)
            continue
        setattr(settings, key, _coerce(key, types[key], value))
    log.info("loaded %s", path)
    return settings.validate()


def setup_logging(level: Optional[str] = None):
    level = (level or os.environ.get("KIOSK_LOG_LEVEL", "INFO")).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(getattr(logging, level, logging.INFO))
