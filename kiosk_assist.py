# kiosk_assist.py — 키오스크 메뉴 찾기 보조 (음성 목표 + OCR + 검지 끝 + 진동/음성 안내)
# --------------------------------------------------------------
# 카메라 → FrameAnalyzer(OCR ∥ 손) → FeedbackDispatcher → 화면/TTS/진동
# 'v' 음성으로 메뉴 지정 / 'c' 목표 취소 / 't' HUD / 's' TTS / 'q' 종료

import sys, logging, argparse

import cv2

from settings import load_settings, setup_logging
from analyzer import FrameAnalyzer
from camera import CameraSource
from feedback import FeedbackArbiter, FeedbackDispatcher, VoiceTarget
from overlay import OverlayView
from recognizers import build_hand_task, build_ocr_task
from voice_input import VoiceRequester

log = logging.getLogger("APP")


def hud_lines(analyzer, dispatcher, voice_target, tts_on):
    target = voice_target.get()
    cmd = dispatcher.last_commands
    l1 = f"TARGET: {target or '(none)'}"
    if cmd is not None:
        l1 += f"   STATE: {cmd.state.value}  score={cmd.best_score:.2f}"
    l2 = f"frames {analyzer.frames_admitted}/{analyzer.frames_seen}  timeouts={analyzer.timeouts}"
    if analyzer.latency_ema_ms is not None:
        l2 += f"  ~{int(analyzer.latency_ema_ms)} ms"
    l2 += f"   TTS: {'ON' if tts_on else 'OFF'}"
    lines = [l1, l2]
    if cmd is not None and cmd.selected_text:
        lines.append(f"MATCH: {cmd.selected_text}")
    return lines


def build_speaker(settings):
    if not settings.tts_enable:
        return None
    try:
        from tts_reader import TTSReader
        return TTSReader.from_settings(settings)
    except Exception as e:
        log.error("TTS init failed: %s", e)
        return None


def build_haptics():
    try:
        from haptics import ToneHaptics
        return ToneHaptics()
    except Exception as e:
        log.error("haptics init failed: %s", e)
        return None


def main(argv=None):
    parser = argparse.ArgumentParser(description="Kiosk menu finder for visually impaired users")
    parser.add_argument("--config", default=None, help="JSON config path (default: config.json)")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    settings = load_settings(args.config)
    log.debug("settings: %s", settings.to_dict())

    # 모델은 세션당 1회 로드 (실패 시 세션 시작 중단)
    ocr_task = build_ocr_task(settings)
    hand_task = build_hand_task(settings)

    voice_target = VoiceTarget()
    overlay = OverlayView(finger_radius=settings.finger_radius_px)
    speaker = build_speaker(settings)
    haptics = build_haptics()

    dispatcher = FeedbackDispatcher(FeedbackArbiter.from_settings(settings), voice_target,
                                    display=overlay, speaker=speaker, haptics=haptics)
    analyzer = FrameAnalyzer.from_settings(settings, ocr_task, hand_task, dispatcher)
    voice = VoiceRequester.from_settings(settings, voice_target, speaker) if settings.use_stt else None

    camera = CameraSource.from_settings(settings, analyzer.deliver_frame)
    camera.start()

    print("실시간 시작. 'v' 음성으로 메뉴 지정 / 'c' 목표 취소 / 't' HUD / 's' TTS / 'q' 종료")
    cv2.namedWindow(settings.window_name, cv2.WINDOW_NORMAL)
    cv2.resizeWindow(settings.window_name, settings.display_w, settings.display_h)
    show_hud = settings.show_hud

    try:
        while True:
            try:
                _, _, vw, vh = cv2.getWindowImageRect(settings.window_name)
            except cv2.error:
                vw, vh = settings.display_w, settings.display_h
            if vw <= 0 or vh <= 0:
                vw, vh = settings.display_w, settings.display_h

            lines = hud_lines(analyzer, dispatcher, voice_target, dispatcher.speaker is not None) if show_hud else None
            vis = overlay.render(camera.latest_upright(), vw, vh, lines)
            cv2.imshow(settings.window_name, vis)

            key = cv2.waitKey(15) & 0xFF
            if key == ord('q'):
                break
            elif key == ord('v'):
                if voice is None:
                    log.warning("STT disabled")
                else:
                    voice.request()
            elif key == ord('c'):
                voice_target.clear()
                print("[APP] target cleared")
            elif key == ord('t'):
                show_hud = not show_hud
            elif key == ord('s'):
                dispatcher.speaker = None if dispatcher.speaker is not None else speaker
                print(f"[TTS] {'ENABLED' if dispatcher.speaker is not None else 'DISABLED'}")
    except KeyboardInterrupt:
        pass
    finally:
        camera.stop()
        analyzer.close()
        if speaker is not None:
            speaker.close()
        ocr_task.close()
        hand_task.close()
        cv2.destroyAllWindows()
    return 0


if __name__ == "__main__":
    sys.exit(main())
