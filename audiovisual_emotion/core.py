# Emotion data model shared by the adapters, fusion engine and API

import time
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

from audiovisual_emotion.utils.config import EMOTIONS

SOURCES = ("audio", "video", "multimodal")

# Basic labels normalization map (third-party model vocabularies -> EMOTIONS)
NORMALIZE = {
    "happiness": "happy",
    "joy": "happy",
    "hap": "happy",
    "sadness": "sad",
    "neu": "neutral",
    "calm": "neutral",
    "anger": "angry",
    "ang": "angry",
    "fearful": "fear",
    "scared": "fear",
}

NORMALIZED_TOLERANCE = 1e-6

MODEL_NOT_LOADED = "model not loaded"


def normalize_label(label: str) -> str:
    key = str(label).strip().lower()
    return NORMALIZE.get(key, key)


def now_ms() -> int:
    return int(time.time() * 1000)


def renormalize(scores: Mapping[str, float]) -> Dict[str, float]:
    """Scale scores to sum to 1, leaving an all-zero map untouched."""
    total = float(sum(scores.values()))
    if total <= 0.0:
        return {k: float(v) for k, v in scores.items()}
    return {k: float(v) / total for k, v in scores.items()}


@dataclass(frozen=True)
class EmotionScore:
    emotion: str
    score: float


ScoresInput = Union[Mapping[str, float], Sequence[Tuple[str, float]], Sequence[EmotionScore]]


def _as_scores(scores: ScoresInput) -> Tuple[EmotionScore, ...]:
    # Mappings are laid out in EMOTIONS order; sequences keep their own order
    if isinstance(scores, Mapping):
        normalized = {normalize_label(k): float(v) for k, v in scores.items()}
        return tuple(EmotionScore(e, normalized.get(e, 0.0)) for e in EMOTIONS)
    out = []
    for item in scores:
        if isinstance(item, EmotionScore):
            out.append(EmotionScore(normalize_label(item.emotion), float(item.score)))
        else:
            label, score = item
            out.append(EmotionScore(normalize_label(label), float(score)))
    return tuple(out)


def dominant_of(emotions: Sequence[EmotionScore]) -> str:
    # First occurrence wins ties
    best = emotions[0]
    for item in emotions[1:]:
        if item.score > best.score:
            best = item
    return best.emotion


@dataclass(frozen=True)
class EmotionResult:
    emotions: Tuple[EmotionScore, ...]
    source: str
    timestamp: int
    model: Optional[str] = None

    def __post_init__(self):
        emotions = _as_scores(self.emotions)
        if not emotions:
            raise ValueError("EmotionResult needs at least one emotion score")
        seen = set()
        for item in emotions:
            if item.emotion not in EMOTIONS:
                raise ValueError(f"Unknown emotion label: {item.emotion}")
            if item.emotion in seen:
                raise ValueError(f"Duplicate emotion label: {item.emotion}")
            if item.score < 0.0:
                raise ValueError(f"Negative score for {item.emotion}: {item.score}")
            seen.add(item.emotion)
        if self.source not in SOURCES:
            raise ValueError(f"Unknown source: {self.source}. Allowed: {list(SOURCES)}")
        object.__setattr__(self, "emotions", emotions)
        object.__setattr__(self, "timestamp", int(self.timestamp))

    @classmethod
    def from_scores(
        cls,
        scores: ScoresInput,
        source: str,
        model: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> "EmotionResult":
        return cls(
            emotions=_as_scores(scores),
            source=source,
            timestamp=now_ms() if timestamp is None else timestamp,
            model=model,
        )

    @property
    def dominant_emotion(self) -> str:
        return dominant_of(self.emotions)

    @property
    def confidence(self) -> float:
        return max(item.score for item in self.emotions)

    @property
    def scores(self) -> Dict[str, float]:
        return {item.emotion: item.score for item in self.emotions}

    def score_of(self, emotion: str) -> float:
        return self.scores.get(normalize_label(emotion), 0.0)

    @property
    def is_normalized(self) -> bool:
        return abs(sum(item.score for item in self.emotions) - 1.0) <= NORMALIZED_TOLERANCE

    def to_dict(self) -> Dict:
        out = {
            "dominantEmotion": self.dominant_emotion,
            "emotions": [{"emotion": item.emotion, "score": item.score} for item in self.emotions],
            "source": self.source,
            "timestamp": self.timestamp,
        }
        if self.model is not None:
            out["model"] = self.model
        return out

    @classmethod
    def from_dict(cls, data: Mapping) -> "EmotionResult":
        # dominantEmotion is derived from the scores, never trusted from input
        emotions = [(str(e["emotion"]), float(e["score"])) for e in data.get("emotions", [])]
        return cls(
            emotions=_as_scores(emotions),
            source=str(data.get("source", "")),
            timestamp=int(data.get("timestamp", now_ms())),
            model=data.get("model"),
        )


@dataclass(frozen=True)
class InferenceOutcome:
    """Typed adapter result: scores on success, a reason on failure, neither for "no result"."""

    scores: Optional[Dict[str, float]] = None
    reason: Optional[str] = None
    face_count: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.scores is not None

    @property
    def failed(self) -> bool:
        return self.reason is not None

    @property
    def not_loaded(self) -> bool:
        return self.failed and self.reason.endswith(MODEL_NOT_LOADED)

    @classmethod
    def success(cls, scores: Mapping[str, float], face_count: Optional[int] = None) -> "InferenceOutcome":
        return cls(scores=dict(scores), face_count=face_count)

    @classmethod
    def failure(cls, reason: str, face_count: Optional[int] = None) -> "InferenceOutcome":
        return cls(reason=str(reason) or "unknown error", face_count=face_count)

    @classmethod
    def no_result(cls, face_count: Optional[int] = None) -> "InferenceOutcome":
        return cls(face_count=face_count)
