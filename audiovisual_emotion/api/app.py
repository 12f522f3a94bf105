import os
import tempfile
from typing import Optional

import numpy as np
from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile

from audiovisual_emotion.api.routes import get_session, router
from audiovisual_emotion.inference.fusion import parse_strategy
from audiovisual_emotion.inference.session import EmotionSession
from audiovisual_emotion.utils.config import DEFAULT_FUSION_STRATEGY, SAMPLE_RATE
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("api")

app = FastAPI(title="Audio-Visual Emotion Recognition API")
app.state.session = None
app.include_router(router)

# Allowed MIME types and size limits (bytes)
AUDIO_MIME_TYPES = {"audio/wav", "audio/x-wav", "audio/wave", "audio/flac", "audio/ogg"}
VIDEO_MIME_TYPES = {"video/mp4", "video/webm", "video/quicktime", "video/x-msvideo"}
MAX_AUDIO_BYTES = 20 * 1024 * 1024  # 20 MB
MAX_VIDEO_BYTES = 100 * 1024 * 1024  # 100 MB

_SUFFIX_MAP = {
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/wave": ".wav",
    "audio/flac": ".flac",
    "audio/ogg": ".ogg",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
}


async def _save_upload_to_temp(upload: UploadFile, allowed_types: set, max_bytes: int) -> str:
    if not upload:
        raise HTTPException(status_code=400, detail="No file provided.")
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if content_type not in allowed_types:
        raise HTTPException(status_code=415, detail=f"Unsupported media type: {content_type}. Allowed: {sorted(allowed_types)}")
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail=f"File too large. Limit: {max_bytes} bytes")
    suffix = _SUFFIX_MAP.get(content_type, "")
    fd, tmp_path = tempfile.mkstemp(suffix=suffix)
    os.close(fd)
    with open(tmp_path, "wb") as f:
        f.write(data)
    return tmp_path


@app.post("/predict")
async def predict(
    audio_file: Optional[UploadFile] = File(None),
    video_file: Optional[UploadFile] = File(None),
    strategy: str = Form(DEFAULT_FUSION_STRATEGY),
    session: EmotionSession = Depends(get_session),
):
    # Lazy import to avoid heavy initialization during app startup
    from audiovisual_emotion.inference.predict_emotion import predict_emotion

    try:
        strategy = parse_strategy(strategy)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    audio_tmp = None
    video_tmp = None
    try:
        if audio_file is not None:
            audio_tmp = await _save_upload_to_temp(audio_file, AUDIO_MIME_TYPES, MAX_AUDIO_BYTES)
        if video_file is not None:
            video_tmp = await _save_upload_to_temp(video_file, VIDEO_MIME_TYPES, MAX_VIDEO_BYTES)
        if not any([audio_tmp, video_tmp]):
            raise HTTPException(status_code=422, detail="Provide at least one modality: audio_file or video_file")

        result = predict_emotion(audio_tmp, video_tmp, strategy, session=session)
        if result["fused"] is None:
            raise HTTPException(status_code=422, detail="No analyzable input: audio was empty and no video was given")
        return result
    finally:
        # Clean up any temporary files we created
        for path in (audio_tmp, video_tmp):
            if path and os.path.exists(path):
                try:
                    os.remove(path)
                except OSError as e:
                    logger.warning(f"Could not remove temp file {path}: {e}")


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready(session: EmotionSession = Depends(get_session)):
    checks = {
        "audio_model_loaded": False,
        "video_model_loaded": False,
        "dry_run_ok": False,
    }
    errors = {}

    try:
        checks["audio_model_loaded"] = session.audio_ready or bool(session.load_audio_model())
    except Exception as e:
        errors["audio"] = str(e)

    try:
        checks["video_model_loaded"] = session.video_ready or bool(session.load_video_model())
    except Exception as e:
        errors["video"] = str(e)

    # Dry-run the audio path on a short tone (trained model or fallback)
    try:
        t = np.arange(SAMPLE_RATE // 2, dtype=np.float32) / SAMPLE_RATE
        res = session.analyze_audio(0.5 * np.sin(2 * np.pi * 220.0 * t), SAMPLE_RATE)
        checks["dry_run_ok"] = res is not None and res.is_normalized
    except Exception as e:
        errors["dry_run"] = str(e)

    # Models are optional (fallback simulation covers them); the pipeline itself must work
    if not checks["dry_run_ok"]:
        raise HTTPException(status_code=503, detail={"status": "not_ready", "checks": checks, "errors": errors})

    return {"status": "ready", "checks": checks, "errors": errors}
