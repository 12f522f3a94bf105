import argparse
import json

from audiovisual_emotion.inference.fusion import FusionStrategy
from audiovisual_emotion.inference.predict_emotion import predict_emotion
from audiovisual_emotion.utils.config import DEFAULT_FUSION_STRATEGY

# CLI wrapper to run audio/video inference and fusion on recorded files


def main(argv=None):
    parser = argparse.ArgumentParser(description="Audio-Visual Emotion Recognition CLI")
    parser.add_argument("--audio", type=str, default=None, help="Path to speech audio (optional)")
    parser.add_argument("--video", type=str, default=None, help="Path to face video (optional)")
    parser.add_argument(
        "--strategy",
        type=str,
        default=DEFAULT_FUSION_STRATEGY,
        choices=[s.value for s in FusionStrategy],
        help="Fusion strategy",
    )
    args = parser.parse_args(argv)
    if not (args.audio or args.video):
        parser.error("Provide at least one of --audio or --video")
    res = predict_emotion(args.audio, args.video, args.strategy)
    print(json.dumps(res, indent=2))
    return res


if __name__ == "__main__":
    main()
