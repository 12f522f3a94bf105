import os
import tempfile

# Keep logs and model lookups out of the source tree while testing
_TMP = tempfile.mkdtemp(prefix="ave-tests-")
os.environ.setdefault("AVE_LOG_DIR", os.path.join(_TMP, "logs"))
os.environ.setdefault("AVE_MODELS_DIR", os.path.join(_TMP, "models"))
os.environ.setdefault("AVE_VIDEO_ALLOW_DOWNLOAD", "0")

import numpy as np
import pytest

from audiovisual_emotion.core import EmotionResult, InferenceOutcome


class FakeAudioAdapter:
    model_name = "fake-audio"
    loaded = True

    def __init__(self, outcome):
        self.outcome = outcome
        self.seen = None

    def load(self):
        return True

    def infer(self, features):
        self.seen = features
        return self.outcome


class FakeVideoAdapter:
    model_name = "fake-video"
    loaded = True

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)

    def load(self):
        return True

    def infer_frame(self, frame):
        return self.outcomes.pop(0) if self.outcomes else InferenceOutcome.no_result(face_count=0)


def make_result(scores, source="audio", model=None, timestamp=1000):
    if isinstance(scores, dict):
        scores = list(scores.items())
    return EmotionResult.from_scores(scores, source=source, model=model, timestamp=timestamp)


@pytest.fixture
def tone():
    def _tone(seconds=1.0, sr=22050, freq=440.0, amp=0.5):
        t = np.arange(int(seconds * sr), dtype=np.float32) / sr
        return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)

    return _tone


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
