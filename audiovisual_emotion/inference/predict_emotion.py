from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from audiovisual_emotion.core import EmotionResult, InferenceOutcome
from audiovisual_emotion.inference.fallback import simulate_emotion_result
from audiovisual_emotion.inference.fusion import FusionStrategy, fuse_results
from audiovisual_emotion.inference.predict_audio import AudioEmotionAdapter
from audiovisual_emotion.inference.predict_video import VideoEmotionAdapter, combine_emotion_results
from audiovisual_emotion.preprocessing.audio_preprocess import (
    extract_features,
    extract_streaming_features,
    load_audio,
)
from audiovisual_emotion.utils.config import VIDEO_SAMPLE_POINTS
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("inference")


def result_from_outcome(outcome: InferenceOutcome, source: str, model_name: str) -> Optional[EmotionResult]:
    """Success -> real result, failure -> simulated result, no result -> None."""
    if outcome.ok:
        return EmotionResult.from_scores(outcome.scores, source=source, model=model_name)
    if outcome.failed:
        # load() already warned about a missing model; repeats stay at debug
        log = logger.debug if outcome.not_loaded else logger.warning
        log(f"{source} inference failed ({outcome.reason}), using fallback simulation")
        return simulate_emotion_result(source)
    return None


def analyze_audio_samples(
    samples,
    sample_rate: int,
    adapter: Optional[AudioEmotionAdapter],
    streaming: bool = False,
) -> Optional[EmotionResult]:
    try:
        if streaming:
            features = extract_streaming_features(samples, sample_rate)
        else:
            features = extract_features(samples, sample_rate)
    except Exception as e:
        logger.error(f"Feature extraction failed: {e}")
        return simulate_emotion_result("audio")
    if features.size == 0:
        return None
    if adapter is None:
        return simulate_emotion_result("audio")
    return result_from_outcome(adapter.infer(features), "audio", adapter.model_name)


def analyze_audio_file(source: Union[str, Path, bytes], adapter: Optional[AudioEmotionAdapter]) -> Optional[EmotionResult]:
    try:
        y, sr = load_audio(source)
    except Exception as e:
        logger.warning(f"Failed to decode audio: {e}")
        return simulate_emotion_result("audio")
    return analyze_audio_samples(y, sr, adapter)


def analyze_video_frame(frame: Optional[np.ndarray], adapter: Optional[VideoEmotionAdapter]) -> Tuple[Optional[EmotionResult], int]:
    if adapter is None:
        return simulate_emotion_result("video"), 0
    outcome = adapter.infer_frame(frame)
    return result_from_outcome(outcome, "video", adapter.model_name), int(outcome.face_count or 0)


def read_video_frames(path: Union[str, Path], sample_points: Sequence[float] = VIDEO_SAMPLE_POINTS) -> List[np.ndarray]:
    cap = cv2.VideoCapture(str(path))
    try:
        if not cap.isOpened():
            raise ValueError(f"Could not open video: {path}")
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        frames = []
        for point in sample_points:
            cap.set(cv2.CAP_PROP_POS_FRAMES, max(0, int(point * max(frame_count - 1, 0))))
            ok, frame = cap.read()
            if ok and frame is not None:
                frames.append(frame)
        return frames
    finally:
        cap.release()


def analyze_video_file(path: Union[str, Path], adapter: Optional[VideoEmotionAdapter]) -> EmotionResult:
    """Score frames at fixed fractions of the clip and average them.

    Falls back to a simulated result when the file cannot be read, no adapter is
    loaded, or no sampled frame produced a face.
    """
    if adapter is None:
        return simulate_emotion_result("video")
    try:
        frames = read_video_frames(path)
    except Exception as e:
        logger.warning(f"Failed to read video: {e}")
        return simulate_emotion_result("video")

    results = []
    for frame in frames:
        outcome = adapter.infer_frame(frame)
        if outcome.ok:
            results.append(EmotionResult.from_scores(outcome.scores, source="video", model=adapter.model_name))
    combined = combine_emotion_results(results, adapter.model_name)
    if combined is None:
        logger.info(f"No faces found in sampled frames of {path}, using fallback simulation")
        return simulate_emotion_result("video")
    return combined


def predict_emotion(
    audio_path: Optional[str],
    video_path: Optional[str],
    strategy: Union[str, FusionStrategy, None] = FusionStrategy.WEIGHTED,
    session=None,
) -> Dict:
    if session is None:
        from audiovisual_emotion.inference.session import EmotionSession
        session = EmotionSession(strategy=strategy)
    audio_result = None
    video_result = None
    if audio_path:
        audio_result = session.analyze_audio_file(audio_path)
        if audio_result is None:
            logger.warning(f"Audio at '{audio_path}' produced no result.")
    if video_path:
        video_result = session.analyze_video_file(video_path)

    fused = fuse_results(audio_result, video_result, strategy if strategy is not None else session.strategy)
    if fused is not None:
        logger.info(f"Predicted: {fused.dominant_emotion} | confidence={fused.confidence:.3f} | model={fused.model}")
    return {
        "audio": audio_result.to_dict() if audio_result else None,
        "video": video_result.to_dict() if video_result else None,
        "fused": fused.to_dict() if fused else None,
    }
