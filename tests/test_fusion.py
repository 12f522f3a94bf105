import pytest

from audiovisual_emotion.core import EmotionScore
from audiovisual_emotion.inference.fusion import FusionStrategy, calculate_confidence, fuse_results, parse_strategy

from conftest import make_result

AUDIO = make_result([("happy", 0.8), ("sad", 0.2)], source="audio")
VIDEO = make_result([("happy", 0.2), ("sad", 0.8)], source="video")


@pytest.mark.parametrize("strategy", list(FusionStrategy))
def test_single_modality_passes_through(strategy):
    assert fuse_results(AUDIO, None, strategy) is AUDIO
    assert fuse_results(None, VIDEO, strategy) is VIDEO
    assert fuse_results(None, None, strategy) is None


def test_weighted_example():
    fused = fuse_results(AUDIO, VIDEO, "weighted")
    assert fused.source == "multimodal"
    assert fused.model == "audio-visual-fusion-weighted"
    assert fused.dominant_emotion == "sad"
    assert fused.score_of("sad") == pytest.approx(0.56)
    assert fused.score_of("happy") == pytest.approx(0.44)
    assert [e.emotion for e in fused.emotions] == ["sad", "happy"]
    assert fused.is_normalized


def test_decision_tie_follows_union_order():
    fused = fuse_results(AUDIO, VIDEO, FusionStrategy.DECISION)
    assert fused.score_of("happy") == pytest.approx(0.8)
    assert fused.score_of("sad") == pytest.approx(0.8)
    assert fused.dominant_emotion == "happy"
    assert fused.model == "audio-visual-fusion-decision"


def test_union_appends_video_only_labels():
    audio = make_result([("happy", 1.0)], source="audio")
    video = make_result([("fear", 1.0)], source="video")
    fused = fuse_results(audio, video, "decision")
    assert [e.emotion for e in fused.emotions] == ["happy", "fear"]


def test_adaptive_favours_the_more_decisive_modality():
    audio = make_result([("happy", 0.55), ("sad", 0.45)], source="audio")  # conf 0.5
    video = make_result([("happy", 0.1), ("sad", 0.9)], source="video")  # conf 4.0
    fused = fuse_results(audio, video, "adaptive")
    wa, wv = 0.5 / 4.5, 4.0 / 4.5
    assert fused.score_of("sad") == pytest.approx(0.45 * wa + 0.9 * wv)
    assert fused.dominant_emotion == "sad"


def test_adaptive_zero_confidence_splits_evenly():
    audio = make_result([("happy", 0.5), ("sad", 0.5)], source="audio")
    video = make_result([("happy", 0.5), ("sad", 0.5)], source="video")
    fused = fuse_results(audio, video, "adaptive")
    assert fused.score_of("happy") == pytest.approx(0.5)


def test_confidence_picks_higher_and_ties_go_to_video():
    fused = fuse_results(make_result([("angry", 0.9), ("sad", 0.1)]), VIDEO, "confidence")
    assert fused.dominant_emotion == "angry"
    tied = fuse_results(AUDIO, VIDEO, "confidence")
    assert tied.dominant_emotion == "sad"


def test_calculate_confidence():
    assert calculate_confidence([EmotionScore("happy", 0.7), EmotionScore("sad", 0.3)]) == pytest.approx(2.0)
    assert calculate_confidence([EmotionScore("happy", 0.7)]) == pytest.approx(0.7)
    assert calculate_confidence([]) == 0.0


def test_unknown_strategy_raises():
    with pytest.raises(ValueError):
        parse_strategy("median")
    with pytest.raises(ValueError):
        fuse_results(AUDIO, VIDEO, "median")


def test_parse_strategy_defaults_and_case():
    assert parse_strategy(None) is FusionStrategy.WEIGHTED
    assert parse_strategy(" Decision ") is FusionStrategy.DECISION
