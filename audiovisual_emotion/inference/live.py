"""
Live capture loops.

Each loop owns one media source for its whole lifetime: ``start()`` acquires it,
``stop()`` halts polling and releases it before returning. Ticks are serialised
(one read and one inference at a time) and anything that completes after
``stop()`` is dropped, so the newest result is always the one that wins.
"""

import asyncio
import threading
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from audiovisual_emotion.core import EmotionResult
from audiovisual_emotion.preprocessing.audio_preprocess import signal_rms
from audiovisual_emotion.utils.config import (
    CAMERA_INDEX,
    LIVE_AUDIO_BLOCK,
    LIVE_AUDIO_INTERVAL_S,
    LIVE_VIDEO_INTERVAL_S,
    SAMPLE_RATE,
    SILENCE_RMS_THRESHOLD,
)
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("live")


class CaptureError(RuntimeError):
    """Microphone or camera could not be acquired."""


class MicrophoneSource:
    def __init__(self, sample_rate: int = SAMPLE_RATE, block_size: int = LIVE_AUDIO_BLOCK, device=None):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.device = device
        self._stream = None
        self._lock = threading.Lock()

    def open(self):
        try:
            import sounddevice as sd  # lazy import, needs the PortAudio library

            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype=np.float32,
                blocksize=self.block_size,
                device=self.device,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise CaptureError(f"Could not access microphone: {e}") from e
        logger.info(f"Microphone opened at {self.sample_rate} Hz")

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._stream is None:
                return None
            data, overflowed = self._stream.read(self.block_size)
        if overflowed:
            logger.debug("Microphone input overflowed")
        return np.asarray(data, dtype=np.float32).reshape(-1)

    def close(self):
        with self._lock:
            if self._stream is not None:
                self._stream.stop()
                self._stream.close()
                self._stream = None
                logger.info("Microphone released")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class CameraSource:
    def __init__(self, index: int = CAMERA_INDEX):
        self.index = index
        self._cap = None
        self._lock = threading.Lock()

    def open(self):
        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            raise CaptureError(f"Could not access camera {self.index}")
        self._cap = cap
        logger.info(f"Camera {self.index} opened")

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._cap is None:
                return None
            ok, frame = self._cap.read()
        return frame if ok else None

    def close(self):
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
                logger.info(f"Camera {self.index} released")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class LiveLoop:
    name = "live"

    def __init__(self, source, interval: float):
        self.source = source
        self.interval = interval
        self._active = False
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._active

    async def start(self):
        if self._active:
            return
        # CaptureError propagates: no retry on acquisition failure
        await asyncio.to_thread(self.source.open)
        self._active = True
        self._task = asyncio.create_task(self._run(), name=f"{self.name}-loop")
        logger.info(f"{self.name} loop started")

    def stop(self):
        was_active = self._active
        self._active = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.source.close()
        if was_active:
            logger.info(f"{self.name} loop stopped")

    async def _run(self):
        try:
            while self._active:
                try:
                    await self._tick()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Error processing {self.name} data: {e}")
                await asyncio.sleep(self.interval)
        finally:
            if self._active:
                # Loop ended on its own; release the device
                self._active = False
                self.source.close()

    async def _tick(self):
        data = await asyncio.to_thread(self.source.read)
        if not self._active or data is None or not self._accept(data):
            return
        event = await asyncio.to_thread(self._process, data)
        # Anything finishing after stop() is dropped
        if self._active and event is not None:
            self._emit(event)

    def _accept(self, data) -> bool:
        return True

    def _process(self, data):
        raise NotImplementedError

    def _emit(self, event):
        raise NotImplementedError


class LiveAudioLoop(LiveLoop):
    name = "audio"

    def __init__(
        self,
        source,
        analyze: Callable[[np.ndarray, int], Optional[EmotionResult]],
        on_result: Callable[[EmotionResult], None],
        interval: float = LIVE_AUDIO_INTERVAL_S,
        silence_threshold: float = SILENCE_RMS_THRESHOLD,
    ):
        super().__init__(source, interval)
        self.analyze = analyze
        self.on_result = on_result
        self.silence_threshold = silence_threshold

    def _accept(self, data) -> bool:
        # Only process audio that is not silence
        return signal_rms(data) > self.silence_threshold

    def _process(self, data) -> Optional[EmotionResult]:
        return self.analyze(data, self.source.sample_rate)

    def _emit(self, event: EmotionResult):
        self.on_result(event)


class LiveVideoLoop(LiveLoop):
    name = "video"

    def __init__(
        self,
        source,
        analyze: Callable[[np.ndarray], Tuple[Optional[EmotionResult], int]],
        on_result: Callable[[EmotionResult, int], None],
        interval: float = LIVE_VIDEO_INTERVAL_S,
    ):
        super().__init__(source, interval)
        self.analyze = analyze
        self.on_result = on_result

    def _process(self, data) -> Optional[Tuple[EmotionResult, int]]:
        result, face_count = self.analyze(data)
        if result is None:
            return None
        return result, face_count

    def _emit(self, event: Tuple[EmotionResult, int]):
        self.on_result(*event)
