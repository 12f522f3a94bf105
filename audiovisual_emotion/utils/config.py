from pathlib import Path
import os

# Centralized config for paths, signal constants and fusion defaults


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default) in {"1", "true", "True"}


# Allow overriding base/data/models directories via environment variables
BASE_DIR = Path(os.getenv("AVE_BASE_DIR", Path(__file__).resolve().parents[1]))
DATA_DIR = Path(os.getenv("AVE_DATA_DIR", BASE_DIR / "data"))
MODELS_DIR = Path(os.getenv("AVE_MODELS_DIR", BASE_DIR / "models"))
LOG_DIR = Path(os.getenv("AVE_LOG_DIR", BASE_DIR / "logs"))

# Per-modality model directories (default under MODELS_DIR)
AUDIO_MODEL_DIR = Path(os.getenv("AVE_AUDIO_MODEL_DIR", MODELS_DIR / "audio_model"))
VIDEO_MODEL_DIR = Path(os.getenv("AVE_VIDEO_MODEL_DIR", MODELS_DIR / "video_model"))

DEFAULT_AUDIO_MODEL = os.getenv("AVE_AUDIO_MODEL", "mfcc-mlp")
DEFAULT_VIDEO_MODEL = os.getenv("AVE_VIDEO_MODEL", "deepface")

# Closed label set, order is significant for every distribution
EMOTIONS = ["happy", "sad", "neutral", "angry", "fear"]

# Feature extraction
SAMPLE_RATE = int(os.getenv("AVE_SAMPLE_RATE", "22050"))
STANDARD_LENGTH = int(os.getenv("AVE_STANDARD_LENGTH", "22050"))  # 1 second at 22050Hz
N_FFT = 1024
HOP_LENGTH = 512
N_MELS = 40
N_MFCC = 40
LOG_EPSILON = 1e-10

# Fusion
FUSION_WEIGHTS = {
    "audio": 0.4,
    "video": 0.6,
}
ADAPTIVE_CONFIDENCE_SCALE = 5.0
DEFAULT_FUSION_STRATEGY = os.getenv("AVE_FUSION_STRATEGY", "weighted")

FALLBACK_MODEL_ID = "fallback-simulation"

# Live capture
SILENCE_RMS_THRESHOLD = float(os.getenv("AVE_SILENCE_RMS", "0.01"))
LIVE_AUDIO_BLOCK = int(os.getenv("AVE_LIVE_AUDIO_BLOCK", "1024"))
LIVE_AUDIO_INTERVAL_S = float(os.getenv("AVE_LIVE_AUDIO_INTERVAL", "0.016"))
LIVE_VIDEO_INTERVAL_S = float(os.getenv("AVE_LIVE_VIDEO_INTERVAL", "0.2"))
CAMERA_INDEX = int(os.getenv("AVE_CAMERA_INDEX", "0"))

# Video file analysis samples frames at these fractions of the duration
VIDEO_SAMPLE_POINTS = (0.25, 0.5, 0.75)

# Whether DeepFace may fetch its weights at runtime (default: enabled)
VIDEO_ALLOW_DOWNLOAD = _env_flag("AVE_VIDEO_ALLOW_DOWNLOAD", "1")
