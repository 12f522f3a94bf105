import json
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from audiovisual_emotion.core import MODEL_NOT_LOADED, EmotionResult, InferenceOutcome, normalize_label, now_ms, renormalize
from audiovisual_emotion.inference.model_selection import get_video_option, video_model_dir
from audiovisual_emotion.utils.config import DEFAULT_VIDEO_MODEL, EMOTIONS, VIDEO_ALLOW_DOWNLOAD
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("predict_video")

Box = Tuple[int, int, int, int]

DEEPFACE_WEIGHTS = "facial_expression_model_weights.h5"


def _deepface_weights_path() -> Path:
    home = Path(os.getenv("DEEPFACE_HOME", str(Path.home())))
    return home / ".deepface" / "weights" / DEEPFACE_WEIGHTS


def _keep_known(raw: Dict[str, float]) -> Dict[str, float]:
    # Labels outside EMOTIONS (surprise, disgust) are dropped before renormalising
    probs = {e: 0.0 for e in EMOTIONS}
    for k, v in raw.items():
        label = normalize_label(k)
        if label in probs:
            probs[label] += float(v)
    return renormalize(probs)


class VideoEmotionAdapter:
    """Face count + expression scores for a single BGR frame.

    Faces are found with the OpenCV Haar cascade; each crop is scored by DeepFace
    or by a local ResNet-18 checkpoint, and the per-face scores are averaged.
    """

    def __init__(
        self,
        model_id: str = DEFAULT_VIDEO_MODEL,
        custom_path: Optional[Union[str, Path]] = None,
        device: Optional[str] = None,
    ):
        self.option = get_video_option(model_id)
        self.model_id = model_id
        self.custom_path = Path(custom_path) if custom_path else None
        self.device_name = device
        self.loaded = False
        self._cascade = None
        self._deepface = None
        self._local: Dict = {}

    @property
    def model_name(self) -> str:
        if self.option.backend == "deepface":
            return "deepface"
        return str(self._local.get("meta", {}).get("name") or f"{self.model_id}-resnet18")

    def _load_cascade(self) -> bool:
        cascade_path = os.path.join(cv2.data.haarcascades, "haarcascade_frontalface_default.xml")
        if not os.path.exists(cascade_path):
            logger.warning(f"Haar cascade not found at {cascade_path}")
            return False
        cascade = cv2.CascadeClassifier(cascade_path)
        if cascade.empty():
            logger.warning("Haar cascade failed to load")
            return False
        self._cascade = cascade
        return True

    def _load_local(self) -> bool:
        import torch
        from torchvision import models, transforms

        model_dir = video_model_dir(self.model_id, self.custom_path)
        if model_dir is None:
            logger.warning(f"No checkpoint directory configured for video model '{self.model_id}'")
            return False
        model_path = model_dir / "resnet18.pt"
        label_map_path = model_dir / "label_map.json"
        meta_path = model_dir / "meta.json"
        if not (model_path.exists() and label_map_path.exists()):
            logger.warning(f"Missing video model artifacts under {model_dir}")
            return False
        with open(label_map_path, "r") as f:
            label_map = json.load(f)  # {class_name: idx}
        meta = {}
        if meta_path.exists():
            with open(meta_path, "r") as f:
                meta = json.load(f)
        device = torch.device(self.device_name or ("cuda" if torch.cuda.is_available() else "cpu"))
        model = models.resnet18(weights=None)
        model.fc = torch.nn.Linear(model.fc.in_features, len(label_map))
        state = torch.load(model_path, map_location=device)
        model.load_state_dict(state)
        model.eval()
        model.to(device)
        # Inference transform matching training
        tf = transforms.Compose([
            transforms.ToPILImage(),
            transforms.Resize((224, 224)),
            transforms.ToTensor(),
            transforms.Normalize(mean=[0.485, 0.456, 0.406], std=[0.229, 0.224, 0.225]),
        ])
        self._local = {
            "model": model,
            "idx_to_label": {int(v): str(k) for k, v in label_map.items()},
            "meta": meta,
            "device": device,
            "transform": tf,
        }
        return True

    def load(self) -> bool:
        self.loaded = False
        try:
            if not self._load_cascade():
                return False
            if self.option.backend == "deepface":
                weights = _deepface_weights_path()
                if not VIDEO_ALLOW_DOWNLOAD and not weights.exists():
                    logger.warning(
                        f"DeepFace weights not found at {weights} and downloads are disabled. "
                        f"Set AVE_VIDEO_ALLOW_DOWNLOAD=1 or pre-bake the weights."
                    )
                    return False
                from deepface import DeepFace  # lazy import, pulls in TensorFlow
                self._deepface = DeepFace
            elif not self._load_local():
                return False
            self.loaded = True
            logger.info(f"Loaded video model '{self.model_id}'")
            return True
        except Exception as e:
            logger.warning(f"Failed to load video model '{self.model_id}', using fallback: {e}")
            return False

    def detect_faces(self, frame: np.ndarray) -> List[Box]:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        faces = self._cascade.detectMultiScale(gray, scaleFactor=1.1, minNeighbors=5, minSize=(60, 60))
        return [tuple(int(v) for v in box) for box in faces]

    def _score_deepface(self, crop: np.ndarray) -> Dict[str, float]:
        res = self._deepface.analyze(crop, actions=["emotion"], enforce_detection=False, detector_backend="skip", silent=True)
        if isinstance(res, list):
            res = res[0]
        return _keep_known(res.get("emotion", {}))

    def _score_local(self, crop: np.ndarray) -> Dict[str, float]:
        import torch

        tf = self._local["transform"]
        # BGR -> RGB before ToPILImage
        xb = tf(np.ascontiguousarray(crop[..., ::-1])).unsqueeze(0).to(self._local["device"])
        with torch.no_grad():
            logits = self._local["model"](xb)
            probs_arr = torch.softmax(logits, dim=-1).cpu().numpy().reshape(-1)
        idx_to_label = self._local["idx_to_label"]
        return _keep_known({idx_to_label.get(i, str(i)): float(p) for i, p in enumerate(probs_arr)})

    def score_face(self, crop: np.ndarray) -> Dict[str, float]:
        if self.option.backend == "deepface":
            return self._score_deepface(crop)
        return self._score_local(crop)

    def infer_frame(self, frame: Optional[np.ndarray]) -> InferenceOutcome:
        if not self.loaded:
            return InferenceOutcome.failure(f"video {MODEL_NOT_LOADED}")
        try:
            if frame is None or frame.size == 0:
                return InferenceOutcome.no_result(face_count=0)
            faces = self.detect_faces(frame)
            if not faces:
                return InferenceOutcome.no_result(face_count=0)
            per_face = [self.score_face(frame[y:y + h, x:x + w]) for (x, y, w, h) in faces]
            avg = {e: float(np.mean([p.get(e, 0.0) for p in per_face])) for e in EMOTIONS}
            return InferenceOutcome.success(renormalize(avg), face_count=len(faces))
        except Exception as e:
            logger.error(f"Video inference failed: {e}")
            return InferenceOutcome.failure(str(e))

    infer = infer_frame


def combine_emotion_results(results: Sequence[EmotionResult], model: Optional[str] = None) -> Optional[EmotionResult]:
    """Average several video results label by label."""
    if not results:
        return None
    combined = {e: 0.0 for e in EMOTIONS}
    for result in results:
        for item in result.emotions:
            combined[item.emotion] += item.score
    combined = {e: v / len(results) for e, v in combined.items()}
    base = model or results[0].model or "video-model"
    return EmotionResult.from_scores(combined, source="video", model=f"{base} (combined)", timestamp=now_ms())
