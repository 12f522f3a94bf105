from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np

from audiovisual_emotion.core import EmotionResult
from audiovisual_emotion.inference import predict_emotion as pipeline
from audiovisual_emotion.inference.fusion import FusionStrategy, fuse_results, parse_strategy
from audiovisual_emotion.inference.live import (
    CameraSource,
    LiveAudioLoop,
    LiveVideoLoop,
    MicrophoneSource,
)
from audiovisual_emotion.inference.model_selection import get_audio_option, get_video_option
from audiovisual_emotion.inference.predict_audio import AudioEmotionAdapter
from audiovisual_emotion.inference.predict_video import VideoEmotionAdapter
from audiovisual_emotion.utils.config import DEFAULT_AUDIO_MODEL, DEFAULT_FUSION_STRATEGY, DEFAULT_VIDEO_MODEL
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("session")


class EmotionSession:
    """
    Per-user analysis context.

    Holds the selected models, their loaded adapters, the latest live estimate per
    modality and the running capture loops. Sessions share nothing, so several can
    run side by side.

    Parameters
    ----------
    audio_model, video_model : str
        Option ids from ``model_selection``.
    strategy : str or FusionStrategy
        Default strategy for ``fused()``.
    custom_model_paths : dict, optional
        ``{"audio": path, "video": path}`` for the custom options.
    audio_adapter, video_adapter : optional
        Pre-built adapters; used as-is instead of constructing new ones.
    """

    def __init__(
        self,
        audio_model: str = DEFAULT_AUDIO_MODEL,
        video_model: str = DEFAULT_VIDEO_MODEL,
        strategy: Union[str, FusionStrategy, None] = DEFAULT_FUSION_STRATEGY,
        custom_model_paths: Optional[Dict[str, Union[str, Path]]] = None,
        audio_adapter: Optional[AudioEmotionAdapter] = None,
        video_adapter: Optional[VideoEmotionAdapter] = None,
    ):
        get_audio_option(audio_model)
        get_video_option(video_model)
        self.audio_model_id = audio_model
        self.video_model_id = video_model
        self.strategy = parse_strategy(strategy)
        self.custom_model_paths: Dict[str, Union[str, Path]] = dict(custom_model_paths or {})
        self.audio_adapter = audio_adapter
        self.video_adapter = video_adapter
        self.latest_audio: Optional[EmotionResult] = None
        self.latest_video: Optional[EmotionResult] = None
        self.face_count = 0
        self._audio_loop: Optional[LiveAudioLoop] = None
        self._video_loop: Optional[LiveVideoLoop] = None

    # Model management
    def load_audio_model(self) -> bool:
        if self.audio_adapter is None:
            self.audio_adapter = AudioEmotionAdapter(self.audio_model_id, self.custom_model_paths.get("audio"))
        return self.audio_adapter.load()

    def load_video_model(self) -> bool:
        if self.video_adapter is None:
            self.video_adapter = VideoEmotionAdapter(self.video_model_id, self.custom_model_paths.get("video"))
        return self.video_adapter.load()

    def load_models(self) -> Dict[str, bool]:
        return {"audio": self.load_audio_model(), "video": self.load_video_model()}

    def set_custom_model_path(self, modality: str, path: Union[str, Path]):
        if modality not in ("audio", "video"):
            raise ValueError(f"Unknown modality: {modality}")
        self.custom_model_paths[modality] = path

    def select_audio_model(self, model_id: str) -> bool:
        get_audio_option(model_id)
        self.audio_model_id = model_id
        self.audio_adapter = None
        return self.load_audio_model()

    def select_video_model(self, model_id: str) -> bool:
        get_video_option(model_id)
        self.video_model_id = model_id
        self.video_adapter = None
        return self.load_video_model()

    def reload_audio_model(self) -> bool:
        return self.select_audio_model(self.audio_model_id)

    def reload_video_model(self) -> bool:
        return self.select_video_model(self.video_model_id)

    @property
    def audio_ready(self) -> bool:
        return self.audio_adapter is not None and self.audio_adapter.loaded

    @property
    def video_ready(self) -> bool:
        return self.video_adapter is not None and self.video_adapter.loaded

    # One-shot analysis
    def analyze_audio(self, samples, sample_rate: int, streaming: bool = False) -> Optional[EmotionResult]:
        return pipeline.analyze_audio_samples(samples, sample_rate, self.audio_adapter, streaming=streaming)

    def analyze_audio_file(self, source) -> Optional[EmotionResult]:
        if self.audio_adapter is None:
            self.load_audio_model()
        return pipeline.analyze_audio_file(source, self.audio_adapter)

    def analyze_video_frame(self, frame: Optional[np.ndarray]) -> Tuple[Optional[EmotionResult], int]:
        return pipeline.analyze_video_frame(frame, self.video_adapter)

    def analyze_video_file(self, path) -> EmotionResult:
        if self.video_adapter is None:
            self.load_video_model()
        return pipeline.analyze_video_file(path, self.video_adapter)

    # Live estimates (last write wins)
    def record_audio(self, result: EmotionResult):
        self.latest_audio = result

    def record_video(self, result: EmotionResult, face_count: int = 0):
        self.latest_video = result
        self.face_count = face_count

    def fused(self, strategy: Union[str, FusionStrategy, None] = None) -> Optional[EmotionResult]:
        return fuse_results(self.latest_audio, self.latest_video, strategy or self.strategy)

    def reset(self):
        self.latest_audio = None
        self.latest_video = None
        self.face_count = 0

    # Live capture
    @property
    def listening(self) -> bool:
        return self._audio_loop is not None and self._audio_loop.active

    @property
    def watching(self) -> bool:
        return self._video_loop is not None and self._video_loop.active

    async def start_audio(self, source=None, on_result: Optional[Callable[[EmotionResult], None]] = None) -> LiveAudioLoop:
        self.stop_audio()

        def _handle(result: EmotionResult):
            self.record_audio(result)
            if on_result is not None:
                on_result(result)

        loop = LiveAudioLoop(
            source if source is not None else MicrophoneSource(),
            lambda samples, sr: self.analyze_audio(samples, sr, streaming=True),
            _handle,
        )
        await loop.start()
        self._audio_loop = loop
        return loop

    async def start_video(self, source=None, on_result: Optional[Callable[[EmotionResult, int], None]] = None) -> LiveVideoLoop:
        self.stop_video()

        def _handle(result: EmotionResult, face_count: int):
            self.record_video(result, face_count)
            if on_result is not None:
                on_result(result, face_count)

        loop = LiveVideoLoop(
            source if source is not None else CameraSource(),
            self.analyze_video_frame,
            _handle,
        )
        await loop.start()
        self._video_loop = loop
        return loop

    def stop_audio(self):
        if self._audio_loop is not None:
            self._audio_loop.stop()
            self._audio_loop = None

    def stop_video(self):
        if self._video_loop is not None:
            self._video_loop.stop()
            self._video_loop = None

    def stop(self):
        self.stop_audio()
        self.stop_video()
