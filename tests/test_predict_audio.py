import json

import numpy as np
import pytest
import torch

from audiovisual_emotion.inference.model_selection import audio_model_dir, get_audio_option, get_video_option, video_model_dir
from audiovisual_emotion.inference.predict_audio import AudioEmotionAdapter, AudioEmotionNet
from audiovisual_emotion.utils.config import EMOTIONS, N_MFCC


@pytest.fixture
def checkpoint(tmp_path):
    torch.manual_seed(0)
    model = AudioEmotionNet()
    torch.save(model.state_dict(), tmp_path / "model.pt")
    with open(tmp_path / "meta.json", "w") as f:
        json.dump({"name": "toy-net", "emotions": EMOTIONS, "input_dim": N_MFCC}, f)
    return tmp_path


def test_custom_checkpoint_loads_and_infers(checkpoint, rng):
    adapter = AudioEmotionAdapter("custom-audio", checkpoint, device="cpu")
    assert adapter.load()
    assert adapter.model_name == "toy-net"
    outcome = adapter.infer(rng.standard_normal((42, N_MFCC)))
    assert outcome.ok
    assert set(outcome.scores) == set(EMOTIONS)
    assert sum(outcome.scores.values()) == pytest.approx(1.0)


def test_checkpoint_file_path_is_accepted(checkpoint):
    adapter = AudioEmotionAdapter("custom-audio", checkpoint / "model.pt", device="cpu")
    assert adapter.load()


def test_missing_checkpoint_reports_false(tmp_path):
    adapter = AudioEmotionAdapter("custom-audio", tmp_path, device="cpu")
    assert adapter.load() is False
    assert adapter.model_name == "custom-audio-audio-model"
    outcome = adapter.infer(np.zeros((1, N_MFCC)))
    assert outcome.failed and outcome.reason == "audio model not loaded"


def test_bad_feature_shape_is_a_failure(checkpoint):
    adapter = AudioEmotionAdapter("custom-audio", checkpoint, device="cpu")
    adapter.load()
    outcome = adapter.infer(np.zeros(N_MFCC + 3))
    assert outcome.failed


def test_empty_features_are_no_result(checkpoint):
    adapter = AudioEmotionAdapter("custom-audio", checkpoint, device="cpu")
    adapter.load()
    outcome = adapter.infer(np.empty((0, N_MFCC)))
    assert not outcome.ok and not outcome.failed


def test_model_options():
    assert get_audio_option("ravdess").backend == "torch"
    assert get_video_option("deepface").backend == "deepface"
    assert video_model_dir("deepface") is None
    assert audio_model_dir("custom-audio") is None
    assert audio_model_dir("crema").name == "crema"
    with pytest.raises(ValueError):
        get_audio_option("wav2vec")
    with pytest.raises(ValueError):
        AudioEmotionAdapter("wav2vec")
