from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, List, Optional

from audiovisual_emotion.utils.config import AUDIO_MODEL_DIR, VIDEO_MODEL_DIR

# Model options selectable per session


@dataclass(frozen=True)
class ModelOption:
    id: str
    name: str
    description: str
    backend: str
    custom: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


AUDIO_MODEL_OPTIONS: List[ModelOption] = [
    ModelOption("mfcc-mlp", "MFCC MLP", "Pretrained cepstral-feature network shipped with the project.", "torch"),
    ModelOption("ravdess", "RAVDESS Dataset Model", "Network trained on the RAVDESS emotional speech dataset.", "torch"),
    ModelOption("crema", "CREMA-D Dataset Model", "Network trained on the CREMA-D emotional speech dataset.", "torch"),
    ModelOption("combined", "Combined RAVDESS + CREMA-D", "Network trained on both datasets for better generalization.", "torch"),
    ModelOption("custom-audio", "Custom Audio Model", "User supplied checkpoint for the cepstral-feature network.", "torch", custom=True),
]

VIDEO_MODEL_OPTIONS: List[ModelOption] = [
    ModelOption("deepface", "DeepFace", "Pretrained facial expression recognition model.", "deepface"),
    ModelOption("ravdess-video", "RAVDESS Video Model", "ResNet-18 trained on RAVDESS video frames.", "torch"),
    ModelOption("custom-video", "Custom Video Model", "User supplied ResNet-18 checkpoint directory.", "torch", custom=True),
]

_AUDIO_BY_ID = {o.id: o for o in AUDIO_MODEL_OPTIONS}
_VIDEO_BY_ID = {o.id: o for o in VIDEO_MODEL_OPTIONS}


def get_audio_option(model_id: str) -> ModelOption:
    if model_id not in _AUDIO_BY_ID:
        raise ValueError(f"Unknown audio model: {model_id}. Allowed: {sorted(_AUDIO_BY_ID)}")
    return _AUDIO_BY_ID[model_id]


def get_video_option(model_id: str) -> ModelOption:
    if model_id not in _VIDEO_BY_ID:
        raise ValueError(f"Unknown video model: {model_id}. Allowed: {sorted(_VIDEO_BY_ID)}")
    return _VIDEO_BY_ID[model_id]


def audio_model_dir(model_id: str, custom_path: Optional[Path] = None) -> Optional[Path]:
    """Directory holding model.pt (+ optional meta.json) for an audio option."""
    option = get_audio_option(model_id)
    if option.custom:
        return Path(custom_path) if custom_path else None
    return AUDIO_MODEL_DIR / option.id


def video_model_dir(model_id: str, custom_path: Optional[Path] = None) -> Optional[Path]:
    """Directory holding resnet18.pt + label_map.json for a torch video option; None for DeepFace."""
    option = get_video_option(model_id)
    if option.backend != "torch":
        return None
    if option.custom:
        return Path(custom_path) if custom_path else None
    return VIDEO_MODEL_DIR / option.id
