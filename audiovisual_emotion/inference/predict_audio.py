import json
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F

from audiovisual_emotion.core import MODEL_NOT_LOADED, InferenceOutcome, normalize_label, renormalize
from audiovisual_emotion.inference.model_selection import audio_model_dir, get_audio_option
from audiovisual_emotion.utils.config import DEFAULT_AUDIO_MODEL, EMOTIONS, N_MFCC
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("predict_audio")


# Model architecture must mirror the offline training scripts
class AudioEmotionNet(nn.Module):
    def __init__(self, input_dim: int = N_MFCC, num_classes: int = len(EMOTIONS)):
        super().__init__()
        self.net = nn.Sequential(
            nn.Linear(input_dim, 128),
            nn.ReLU(),
            nn.Dropout(0.1),
            nn.Linear(128, 64),
            nn.ReLU(),
            nn.Linear(64, num_classes),
        )

    def forward(self, x):
        return self.net(x)


class AudioEmotionAdapter:
    """Runs a cepstral-feature checkpoint over feature rows.

    ``load()`` reports success as a bool; ``infer()`` never raises and returns an
    InferenceOutcome so callers can fall back without guessing at None.
    """

    def __init__(
        self,
        model_id: str = DEFAULT_AUDIO_MODEL,
        custom_path: Optional[Union[str, Path]] = None,
        device: Optional[str] = None,
    ):
        get_audio_option(model_id)
        self.model_id = model_id
        self.custom_path = Path(custom_path) if custom_path else None
        self.device = torch.device(device or ("cuda" if torch.cuda.is_available() else "cpu"))
        self.model: Optional[AudioEmotionNet] = None
        self.meta: Dict = {}
        self.labels: List[str] = list(EMOTIONS)
        self.input_dim = N_MFCC
        self.loaded = False

    @property
    def model_name(self) -> str:
        return str(self.meta.get("name") or f"{self.model_id}-audio-model")

    def _checkpoint_path(self) -> Optional[Path]:
        if self.custom_path is not None and self.custom_path.suffix == ".pt":
            return self.custom_path
        model_dir = audio_model_dir(self.model_id, self.custom_path)
        return model_dir / "model.pt" if model_dir is not None else None

    def load(self) -> bool:
        self.loaded = False
        self.model = None
        try:
            model_path = self._checkpoint_path()
            if model_path is None or not model_path.exists():
                logger.warning(f"No checkpoint for audio model '{self.model_id}' at {model_path}")
                return False
            meta_path = model_path.parent / "meta.json"
            meta = {}
            if meta_path.exists():
                with open(meta_path, "r") as f:
                    meta = json.load(f)
            labels = [normalize_label(e) for e in meta.get("emotions", EMOTIONS)]
            input_dim = int(meta.get("input_dim", N_MFCC))
            model = AudioEmotionNet(input_dim=input_dim, num_classes=len(labels)).to(self.device)
            state = torch.load(model_path, map_location=self.device)
            model.load_state_dict(state)
            model.eval()
            self.model = model
            self.meta = meta
            self.labels = labels
            self.input_dim = input_dim
            self.loaded = True
            logger.info(f"Loaded audio model '{self.model_id}' from {model_path}")
            return True
        except Exception as e:
            logger.warning(f"Failed to load audio model artifacts, using fallback: {e}")
            return False

    def infer(self, features) -> InferenceOutcome:
        if not self.loaded or self.model is None:
            return InferenceOutcome.failure(f"audio {MODEL_NOT_LOADED}")
        try:
            x = np.asarray(features, dtype=np.float32)
            if x.size == 0:
                return InferenceOutcome.no_result()
            x = x.reshape(-1, self.input_dim)
            xb = torch.from_numpy(np.ascontiguousarray(x)).to(self.device)
            with torch.no_grad():
                logits = self.model(xb)
            # Optional temperature calibration
            temp = float(self.meta.get("temperature", 1.0))
            probs_arr = F.softmax(logits / max(1e-6, temp), dim=-1).mean(dim=0).cpu().numpy()
            scores = {e: 0.0 for e in EMOTIONS}
            for label, p in zip(self.labels, probs_arr):
                if label in scores:
                    scores[label] += float(p)
            return InferenceOutcome.success(renormalize(scores))
        except Exception as e:
            logger.error(f"Audio inference failed: {e}")
            return InferenceOutcome.failure(str(e))
