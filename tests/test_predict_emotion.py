import logging

import numpy as np
import pytest
import soundfile as sf

from audiovisual_emotion.core import InferenceOutcome
from audiovisual_emotion.inference import predict_emotion as pipeline
from audiovisual_emotion.inference.fallback import is_simulated
from audiovisual_emotion.inference.session import EmotionSession
from audiovisual_emotion.utils.config import FALLBACK_MODEL_ID

from conftest import FakeAudioAdapter, FakeVideoAdapter


def test_success_outcome_becomes_result(tone):
    adapter = FakeAudioAdapter(InferenceOutcome.success({"angry": 0.9, "sad": 0.1}))
    result = pipeline.analyze_audio_samples(tone(), 22050, adapter)
    assert result.dominant_emotion == "angry"
    assert result.model == "fake-audio"
    assert adapter.seen.shape[1] == 40


def test_failed_outcome_falls_back(tone):
    result = pipeline.analyze_audio_samples(tone(), 22050, FakeAudioAdapter(InferenceOutcome.failure("bad shape")))
    assert is_simulated(result)
    assert result.source == "audio"


def test_no_adapter_falls_back(tone):
    assert is_simulated(pipeline.analyze_audio_samples(tone(), 22050, None))


def test_empty_audio_is_no_result():
    assert pipeline.analyze_audio_samples(np.array([], dtype=np.float32), 22050, None) is None


def test_undecodable_audio_file_falls_back(tmp_path):
    path = tmp_path / "broken.wav"
    path.write_bytes(b"not really audio")
    assert is_simulated(pipeline.analyze_audio_file(path, None))


def test_video_frame_reports_faces():
    adapter = FakeVideoAdapter([InferenceOutcome.success({"happy": 1.0}, face_count=3)])
    result, faces = pipeline.analyze_video_frame(np.zeros((8, 8, 3), dtype=np.uint8), adapter)
    assert result.dominant_emotion == "happy" and faces == 3
    result, faces = pipeline.analyze_video_frame(np.zeros((8, 8, 3), dtype=np.uint8), adapter)
    assert result is None and faces == 0


def test_video_file_without_faces_falls_back(monkeypatch):
    monkeypatch.setattr(pipeline, "read_video_frames", lambda path, sample_points=None: [np.zeros((8, 8, 3), dtype=np.uint8)] * 3)
    result = pipeline.analyze_video_file("clip.mp4", FakeVideoAdapter([]))
    assert result.model == FALLBACK_MODEL_ID and result.source == "video"


def test_video_file_averages_sampled_frames(monkeypatch):
    monkeypatch.setattr(pipeline, "read_video_frames", lambda path, sample_points=None: [np.zeros((8, 8, 3), dtype=np.uint8)] * 3)
    adapter = FakeVideoAdapter([
        InferenceOutcome.success({"happy": 1.0}, face_count=1),
        InferenceOutcome.no_result(face_count=0),
        InferenceOutcome.success({"sad": 1.0}, face_count=1),
    ])
    result = pipeline.analyze_video_file("clip.mp4", adapter)
    assert result.model == "fake-video (combined)"
    assert result.score_of("happy") == pytest.approx(0.5)


def test_unreadable_video_falls_back(tmp_path):
    result = pipeline.analyze_video_file(tmp_path / "missing.mp4", FakeVideoAdapter([]))
    assert is_simulated(result)


def test_predict_emotion_fuses_both(tmp_path, tone, monkeypatch):
    wav = tmp_path / "speech.wav"
    sf.write(str(wav), tone(), 22050)
    monkeypatch.setattr(pipeline, "read_video_frames", lambda path, sample_points=None: [np.zeros((8, 8, 3), dtype=np.uint8)])
    session = EmotionSession(
        audio_adapter=FakeAudioAdapter(InferenceOutcome.success({"happy": 0.8, "sad": 0.2})),
        video_adapter=FakeVideoAdapter([InferenceOutcome.success({"happy": 0.2, "sad": 0.8}, face_count=1)]),
    )
    out = pipeline.predict_emotion(str(wav), "clip.mp4", "weighted", session=session)
    assert out["audio"]["dominantEmotion"] == "happy"
    assert out["video"]["model"] == "fake-video (combined)"
    assert out["fused"]["dominantEmotion"] == "sad"
    assert out["fused"]["model"] == "audio-visual-fusion-weighted"
    assert out["fused"]["source"] == "multimodal"


def test_predict_emotion_single_modality(tmp_path, tone):
    wav = tmp_path / "speech.wav"
    sf.write(str(wav), tone(), 22050)
    session = EmotionSession(audio_adapter=FakeAudioAdapter(InferenceOutcome.success({"fear": 1.0})))
    out = pipeline.predict_emotion(str(wav), None, session=session)
    assert out["video"] is None
    assert out["fused"] == out["audio"]


def test_missing_model_does_not_flood_the_log(tone, caplog):
    adapter = FakeAudioAdapter(InferenceOutcome.failure("audio model not loaded"))
    with caplog.at_level(logging.DEBUG, logger="inference"):
        for _ in range(20):
            assert is_simulated(pipeline.analyze_audio_samples(tone(), 22050, adapter, streaming=True))
    assert not [r for r in caplog.records if r.name.endswith("inference") and r.levelno >= logging.WARNING]
    assert not [r for r in caplog.records if r.name.endswith("fallback") and r.levelno >= logging.INFO]
    assert any(r.name.endswith("inference") and r.levelno == logging.DEBUG for r in caplog.records)


def test_other_inference_failures_still_warn(tone, caplog):
    adapter = FakeAudioAdapter(InferenceOutcome.failure("bad shape"))
    with caplog.at_level(logging.DEBUG):
        pipeline.analyze_audio_samples(tone(), 22050, adapter)
    assert any(r.levelno == logging.WARNING and "bad shape" in r.getMessage() for r in caplog.records)
