from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from audiovisual_emotion.core import EmotionResult, EmotionScore, now_ms
from audiovisual_emotion.utils.config import (
    ADAPTIVE_CONFIDENCE_SCALE,
    DEFAULT_FUSION_STRATEGY,
    FUSION_WEIGHTS,
)

# Late fusion of one audio and one video result.
# A single present modality passes through unchanged; two are blended per strategy
# over the union of their labels (audio order first, video-only labels appended).


class FusionStrategy(str, Enum):
    WEIGHTED = "weighted"
    ADAPTIVE = "adaptive"
    CONFIDENCE = "confidence"
    DECISION = "decision"


def parse_strategy(strategy: Union[str, FusionStrategy, None]) -> FusionStrategy:
    if strategy is None:
        return FusionStrategy(DEFAULT_FUSION_STRATEGY)
    if isinstance(strategy, FusionStrategy):
        return strategy
    try:
        return FusionStrategy(str(strategy).strip().lower())
    except ValueError:
        allowed = [s.value for s in FusionStrategy]
        raise ValueError(f"Unknown fusion strategy: {strategy}. Allowed: {allowed}")


def calculate_confidence(emotions: Sequence[EmotionScore]) -> float:
    """Gap between the top two scores scaled by 5, or the lone score."""
    if not emotions:
        return 0.0
    ordered = sorted((e.score for e in emotions), reverse=True)
    if len(ordered) > 1:
        return (ordered[0] - ordered[1]) * ADAPTIVE_CONFIDENCE_SCALE
    return ordered[0]


def _union_labels(audio: EmotionResult, video: EmotionResult) -> List[str]:
    labels = [e.emotion for e in audio.emotions]
    labels += [e.emotion for e in video.emotions if e.emotion not in labels]
    return labels


def _blend(labels: List[str], audio: Dict[str, float], video: Dict[str, float], audio_weight: float, video_weight: float) -> List[Tuple[str, float]]:
    return [(e, audio.get(e, 0.0) * audio_weight + video.get(e, 0.0) * video_weight) for e in labels]


def fuse_results(
    audio: Optional[EmotionResult],
    video: Optional[EmotionResult],
    strategy: Union[str, FusionStrategy, None] = FusionStrategy.WEIGHTED,
) -> Optional[EmotionResult]:
    strategy = parse_strategy(strategy)
    if audio is not None and video is None:
        return audio
    if audio is None and video is not None:
        return video
    if audio is None and video is None:
        return None

    labels = _union_labels(audio, video)
    audio_scores = audio.scores
    video_scores = video.scores

    if strategy is FusionStrategy.ADAPTIVE:
        audio_conf = calculate_confidence(audio.emotions)
        video_conf = calculate_confidence(video.emotions)
        total = audio_conf + video_conf
        audio_weight = audio_conf / total if total > 0 else 0.5
        video_weight = video_conf / total if total > 0 else 0.5
        fused = _blend(labels, audio_scores, video_scores, audio_weight, video_weight)
    elif strategy is FusionStrategy.CONFIDENCE:
        chosen = audio if audio.confidence > video.confidence else video
        fused = [(e.emotion, e.score) for e in chosen.emotions]
    elif strategy is FusionStrategy.DECISION:
        fused = [(e, max(audio_scores.get(e, 0.0), video_scores.get(e, 0.0))) for e in labels]
    else:
        fused = _blend(labels, audio_scores, video_scores, FUSION_WEIGHTS["audio"], FUSION_WEIGHTS["video"])

    # Stable sort keeps union order among equal scores
    fused.sort(key=lambda item: item[1], reverse=True)
    return EmotionResult.from_scores(
        fused,
        source="multimodal",
        model=f"audio-visual-fusion-{strategy.value}",
        timestamp=now_ms(),
    )
