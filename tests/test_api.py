import io

import numpy as np
import pytest
import soundfile as sf
from fastapi.testclient import TestClient

from audiovisual_emotion.api.app import app
from audiovisual_emotion.core import InferenceOutcome
from audiovisual_emotion.inference.session import EmotionSession

from conftest import FakeAudioAdapter, FakeVideoAdapter

AUDIO = {"emotions": [{"emotion": "happy", "score": 0.8}, {"emotion": "sad", "score": 0.2}], "source": "audio", "timestamp": 1}
VIDEO = {"emotions": [{"emotion": "happy", "score": 0.2}, {"emotion": "sad", "score": 0.8}], "source": "video", "timestamp": 2}


@pytest.fixture
def client():
    app.state.session = EmotionSession(
        audio_adapter=FakeAudioAdapter(InferenceOutcome.success({"neutral": 0.7, "sad": 0.3})),
        video_adapter=FakeVideoAdapter([]),
    )
    try:
        yield TestClient(app)
    finally:
        app.state.session = None


def _wav_bytes(seconds=1.0, sr=22050):
    t = np.arange(int(seconds * sr)) / sr
    buf = io.BytesIO()
    sf.write(buf, 0.5 * np.sin(2 * np.pi * 330.0 * t), sr, format="WAV")
    return buf.getvalue()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_ready_with_loaded_models(client):
    r = client.get("/ready")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ready"
    assert body["checks"] == {"audio_model_loaded": True, "video_model_loaded": True, "dry_run_ok": True}


def test_models(client):
    body = client.get("/models").json()
    assert [m["id"] for m in body["audio"]][0] == "mfcc-mlp"
    assert {"id", "name", "description", "backend", "custom"} <= set(body["video"][0])


def test_fuse_weighted(client):
    r = client.post("/fuse", json={"audio": AUDIO, "video": VIDEO, "strategy": "weighted"})
    assert r.status_code == 200
    fused = r.json()["fused"]
    assert fused["dominantEmotion"] == "sad"
    assert fused["emotions"][0]["score"] == pytest.approx(0.56)
    assert fused["model"] == "audio-visual-fusion-weighted"


def test_fuse_single_and_none(client):
    r = client.post("/fuse", json={"audio": AUDIO, "strategy": "decision"})
    assert r.json()["fused"]["source"] == "audio"
    assert client.post("/fuse", json={}).json() == {"fused": None}


@pytest.mark.parametrize(
    "payload",
    [
        {"audio": AUDIO, "video": VIDEO, "strategy": "median"},
        {"audio": {**AUDIO, "emotions": [{"emotion": "surprise", "score": 1.0}]}},
        {"audio": {**AUDIO, "emotions": [{"emotion": "happy", "score": -1.0}]}},
        {"audio": {**AUDIO, "source": "text"}},
    ],
)
def test_fuse_rejects_invalid_input(client, payload):
    assert client.post("/fuse", json=payload).status_code == 422


def test_features(client):
    samples = (0.5 * np.sin(np.linspace(0, 200 * np.pi, 22050))).tolist()
    body = client.post("/features", json={"samples": samples, "sample_rate": 22050}).json()
    assert body["shape"] == [42, 40]
    body = client.post("/features", json={"samples": samples[:2048], "streaming": True}).json()
    assert body["shape"] == [1, 40]
    assert client.post("/features", json={"samples": []}).json()["shape"] == [0, 40]


def test_predict_with_audio_upload(client):
    files = {"audio_file": ("clip.wav", _wav_bytes(), "audio/wav")}
    r = client.post("/predict", files=files, data={"strategy": "adaptive"})
    assert r.status_code == 200
    body = r.json()
    assert body["audio"]["dominantEmotion"] == "neutral"
    assert body["video"] is None
    assert body["fused"] == body["audio"]


def test_predict_rejects_bad_requests(client):
    assert client.post("/predict", data={"strategy": "weighted"}).status_code == 422
    files = {"audio_file": ("clip.wav", _wav_bytes(), "audio/wav")}
    assert client.post("/predict", files=files, data={"strategy": "median"}).status_code == 422
    files = {"audio_file": ("notes.txt", b"hello", "text/plain")}
    assert client.post("/predict", files=files).status_code == 415
    files = {"audio_file": ("empty.wav", b"", "audio/wav")}
    assert client.post("/predict", files=files).status_code == 400
