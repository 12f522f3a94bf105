from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from audiovisual_emotion.core import EmotionResult
from audiovisual_emotion.inference.fusion import fuse_results, parse_strategy
from audiovisual_emotion.inference.model_selection import AUDIO_MODEL_OPTIONS, VIDEO_MODEL_OPTIONS
from audiovisual_emotion.inference.session import EmotionSession
from audiovisual_emotion.preprocessing.audio_preprocess import extract_features, extract_streaming_features
from audiovisual_emotion.utils.config import SAMPLE_RATE

router = APIRouter()

MAX_FEATURE_SAMPLES = 10 * SAMPLE_RATE  # 10 s of raw samples per request


def get_session(request: Request) -> EmotionSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        session = EmotionSession()
        request.app.state.session = session
    return session


class EmotionScoreModel(BaseModel):
    emotion: str
    score: float = Field(ge=0.0)


class EmotionResultModel(BaseModel):
    dominantEmotion: Optional[str] = None
    emotions: List[EmotionScoreModel]
    source: str
    timestamp: int
    model: Optional[str] = None


class FuseRequest(BaseModel):
    audio: Optional[EmotionResultModel] = None
    video: Optional[EmotionResultModel] = None
    strategy: str = "weighted"


class FeaturesRequest(BaseModel):
    samples: List[float]
    sample_rate: int = Field(default=SAMPLE_RATE, gt=0)
    streaming: bool = False


def _to_result(model: Optional[EmotionResultModel]) -> Optional[EmotionResult]:
    if model is None:
        return None
    try:
        return EmotionResult.from_dict(model.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/fuse")
async def fuse(req: FuseRequest):
    try:
        strategy = parse_strategy(req.strategy)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    fused = fuse_results(_to_result(req.audio), _to_result(req.video), strategy)
    return {"fused": fused.to_dict() if fused else None}


@router.post("/features")
async def features(req: FeaturesRequest):
    if len(req.samples) > MAX_FEATURE_SAMPLES:
        raise HTTPException(status_code=413, detail=f"Too many samples. Limit: {MAX_FEATURE_SAMPLES}")
    if req.streaming:
        feats = extract_streaming_features(req.samples, req.sample_rate)
    else:
        feats = extract_features(req.samples, req.sample_rate)
    return {"shape": list(feats.shape), "features": feats.tolist()}


@router.get("/models")
async def models():
    return {
        "audio": [o.to_dict() for o in AUDIO_MODEL_OPTIONS],
        "video": [o.to_dict() for o in VIDEO_MODEL_OPTIONS],
    }
