from typing import Optional

import numpy as np

from audiovisual_emotion.core import EmotionResult, now_ms
from audiovisual_emotion.utils.config import EMOTIONS, FALLBACK_MODEL_ID
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("fallback")

DOMINANT_MIN = 0.4
DOMINANT_SPAN = 0.3


def _absorb_remainder(scores, idx: int, max_steps: int = 64):
    # scores[idx] is chosen so the left-to-right float sum is exactly 1.0
    scores[idx] = 0.0
    scores[idx] = 1.0 - sum(scores)
    for _ in range(max_steps):
        total = sum(scores)
        if total == 1.0:
            return
        corrected = scores[idx] + (1.0 - total)
        if corrected == scores[idx]:
            corrected = float(np.nextafter(scores[idx], np.inf if total < 1.0 else -np.inf))
        scores[idx] = corrected


def simulate_emotion_result(source: str, rng: Optional[np.random.Generator] = None) -> EmotionResult:
    """Stand-in result used when no adapter is available or inference failed.

    One label gets a score in [0.4, 0.7]; the rest of the mass is spread over the
    other labels with weights in [1, 2) so none of them can overtake it. The last
    non-dominant label takes whatever is left, keeping the total at 1.0.
    """
    rng = rng if rng is not None else np.random.default_rng()
    dominant_idx = int(rng.integers(len(EMOTIONS)))
    dominant_score = DOMINANT_MIN + float(rng.random()) * DOMINANT_SPAN
    remaining = 1.0 - dominant_score

    others = [i for i in range(len(EMOTIONS)) if i != dominant_idx]
    weights = 1.0 + rng.random(len(others))
    weights = weights / weights.sum()

    scores = [0.0] * len(EMOTIONS)
    scores[dominant_idx] = dominant_score
    for i, w in zip(others[:-1], weights[:-1]):
        scores[i] = remaining * float(w)
    _absorb_remainder(scores, others[-1])

    result = EmotionResult.from_scores(
        list(zip(EMOTIONS, scores)),
        source=source,
        model=FALLBACK_MODEL_ID,
        timestamp=now_ms(),
    )
    logger.debug(f"Fallback {source} result: dominant={result.dominant_emotion} ({dominant_score:.3f})")
    return result


def is_simulated(result: Optional[EmotionResult]) -> bool:
    return result is not None and result.model == FALLBACK_MODEL_ID
