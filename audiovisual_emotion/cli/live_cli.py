#!/usr/bin/env python3
"""
Live microphone/camera session from the terminal.

Opens the requested devices, runs the capture loops for a fixed duration and
prints the fused estimate once per second. Devices are released on exit, also
on Ctrl+C.
"""
import argparse
import asyncio
import json

from audiovisual_emotion.inference.fusion import FusionStrategy
from audiovisual_emotion.inference.live import CaptureError
from audiovisual_emotion.inference.session import EmotionSession
from audiovisual_emotion.utils.config import DEFAULT_AUDIO_MODEL, DEFAULT_FUSION_STRATEGY, DEFAULT_VIDEO_MODEL
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("live_cli")


async def run_live(session: EmotionSession, seconds: float, use_audio: bool, use_video: bool, report_every: float = 1.0):
    session.load_models()
    reports = []
    try:
        if use_audio:
            await session.start_audio()
        if use_video:
            await session.start_video()
        elapsed = 0.0
        while elapsed < seconds:
            await asyncio.sleep(report_every)
            elapsed += report_every
            fused = session.fused()
            if fused is None:
                print(f"[{elapsed:5.1f}s] waiting for input...")
                continue
            reports.append(fused)
            print(
                f"[{elapsed:5.1f}s] {fused.dominant_emotion:<8} "
                f"conf={fused.confidence:.2f} faces={session.face_count} model={fused.model}"
            )
    finally:
        session.stop()
    return reports


def main(argv=None):
    parser = argparse.ArgumentParser(description="Live audio-visual emotion recognition")
    parser.add_argument("--seconds", type=float, default=10.0, help="How long to capture")
    parser.add_argument("--no-audio", action="store_true", help="Do not open the microphone")
    parser.add_argument("--no-video", action="store_true", help="Do not open the camera")
    parser.add_argument("--audio-model", type=str, default=DEFAULT_AUDIO_MODEL)
    parser.add_argument("--video-model", type=str, default=DEFAULT_VIDEO_MODEL)
    parser.add_argument("--strategy", type=str, default=DEFAULT_FUSION_STRATEGY, choices=[s.value for s in FusionStrategy])
    args = parser.parse_args(argv)

    if args.no_audio and args.no_video:
        parser.error("Nothing to capture: both --no-audio and --no-video given")

    session = EmotionSession(args.audio_model, args.video_model, args.strategy)
    try:
        reports = asyncio.run(run_live(session, args.seconds, not args.no_audio, not args.no_video))
    except CaptureError as e:
        logger.error(str(e))
        raise SystemExit(1)
    except KeyboardInterrupt:
        session.stop()
        return

    final = session.fused()
    print("\n=== Final estimate ===")
    print(json.dumps(final.to_dict() if final else None, indent=2))
    logger.info(f"Live session finished with {len(reports)} reports")


if __name__ == "__main__":
    main()
