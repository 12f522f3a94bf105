import io
from pathlib import Path
from typing import Tuple, Union

import librosa
import numpy as np
import pandas as pd
import soundfile as sf
from scipy.fft import dct

from audiovisual_emotion.utils.config import (
    DATA_DIR,
    HOP_LENGTH,
    LOG_EPSILON,
    N_FFT,
    N_MELS,
    N_MFCC,
    SAMPLE_RATE,
    STANDARD_LENGTH,
)
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("audio_preprocess")

# Cepstral feature extraction: length/amplitude normalisation, framing, Hann window,
# real FFT power spectrum, mel filterbank, log, DCT and per-coefficient z-score.


def _as_mono(samples) -> np.ndarray:
    y = np.asarray(samples, dtype=np.float32)
    if y.ndim > 1:
        y = np.mean(y, axis=1)
    return y.reshape(-1)


def normalize_length(samples, target_length: int = STANDARD_LENGTH) -> np.ndarray:
    y = _as_mono(samples)
    n = y.size
    if n == 0:
        return y
    if n > target_length:
        # Take a section from the middle
        start = (n - target_length) // 2
        return y[start:start + target_length].copy()
    if n < target_length:
        return np.pad(y, (0, target_length - n))
    return y.copy()


def normalize_amplitude(samples) -> np.ndarray:
    y = _as_mono(samples).copy()
    if y.size == 0:
        return y
    peak = float(np.max(np.abs(y)))
    if peak > 0.0:
        y = y / peak
    return y


def prepare_audio(samples, target_length: int = STANDARD_LENGTH) -> np.ndarray:
    return normalize_amplitude(normalize_length(samples, target_length))


def signal_rms(samples) -> float:
    y = _as_mono(samples)
    if y.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(y, dtype=np.float64))))


def hann_window(size: int) -> np.ndarray:
    # Symmetric raised cosine: 0.5 * (1 - cos(2*pi*i / (size - 1)))
    return librosa.filters.get_window("hann", size, fftbins=False).astype(np.float32)


def frame_signal(y: np.ndarray, frame_length: int = N_FFT, hop_length: int = HOP_LENGTH) -> np.ndarray:
    """Slice into overlapping frames, shape (n_frames, frame_length)."""
    if y.size < frame_length:
        return np.empty((0, frame_length), dtype=np.float32)
    frames = librosa.util.frame(np.ascontiguousarray(y), frame_length=frame_length, hop_length=hop_length)
    return np.ascontiguousarray(frames.T)


def power_spectrum(frames: np.ndarray, window: np.ndarray) -> np.ndarray:
    spectrum = np.fft.rfft(frames * window, axis=-1)
    return np.abs(spectrum) ** 2


def hz_to_mel(hz):
    return librosa.hz_to_mel(hz, htk=True)


def mel_to_hz(mel):
    return librosa.mel_to_hz(mel, htk=True)


def mel_filterbank(n_bins: int, sample_rate: int, n_mels: int = N_MELS) -> np.ndarray:
    """Triangular filters uniformly spaced in mel from 0 Hz to Nyquist, shape (n_mels, n_bins)."""
    nyquist = sample_rate / 2.0
    mel_points = np.linspace(hz_to_mel(0.0), hz_to_mel(nyquist), n_mels + 2)
    hz_points = mel_to_hz(mel_points)
    # Edges are exact, the mel round trip can land one ulp under Nyquist
    hz_points[0], hz_points[-1] = 0.0, nyquist
    bins = np.floor((n_bins - 1) * hz_points / nyquist).astype(int)

    filterbank = np.zeros((n_mels, n_bins), dtype=np.float64)
    for i in range(n_mels):
        left, center, right = bins[i], bins[i + 1], bins[i + 2]
        for j in range(left, min(right, n_bins)):
            if j < center:
                filterbank[i, j] = (j - left) / (center - left)
            else:
                filterbank[i, j] = (right - j) / (right - center)
    return filterbank


def log_mel(power: np.ndarray, filterbank: np.ndarray) -> np.ndarray:
    return np.log(power @ filterbank.T + LOG_EPSILON)


def cepstral_coefficients(log_mel_energies: np.ndarray, n_mfcc: int = N_MFCC) -> np.ndarray:
    return dct(log_mel_energies, type=2, axis=-1, norm="ortho")[..., :n_mfcc]


def normalize_coefficients(coeffs: np.ndarray) -> np.ndarray:
    if coeffs.size == 0:
        return coeffs
    mean = coeffs.mean(axis=0)
    std = coeffs.std(axis=0)
    std[std == 0] = 1.0
    return (coeffs - mean) / std


def _single_vector(y: np.ndarray, sample_rate: int, n_mfcc: int) -> np.ndarray:
    power = power_spectrum(y, hann_window(y.size))
    filterbank = mel_filterbank(power.shape[-1], sample_rate, max(N_MELS, n_mfcc))
    coeffs = cepstral_coefficients(log_mel(power, filterbank), n_mfcc)
    return coeffs.reshape(1, -1).astype(np.float32)


def extract_features(
    samples,
    sample_rate: int = SAMPLE_RATE,
    n_mfcc: int = N_MFCC,
    target_length: int = STANDARD_LENGTH,
    n_fft: int = N_FFT,
    hop_length: int = HOP_LENGTH,
    normalize: bool = True,
) -> np.ndarray:
    """Framed path for file/blob analysis.

    Returns an array of shape (n_frames, n_mfcc). Empty input gives an empty
    (0, n_mfcc) array, which callers treat as "no result". When the prepared
    signal is too short for a single frame the whole clip is used as one vector.
    """
    y = prepare_audio(samples, target_length)
    if y.size == 0:
        return np.empty((0, n_mfcc), dtype=np.float32)
    frames = frame_signal(y, n_fft, hop_length)
    if frames.shape[0] == 0:
        return _single_vector(y, sample_rate, n_mfcc)
    power = power_spectrum(frames, hann_window(n_fft))
    filterbank = mel_filterbank(power.shape[1], sample_rate, max(N_MELS, n_mfcc))
    coeffs = cepstral_coefficients(log_mel(power, filterbank), n_mfcc)
    if normalize:
        coeffs = normalize_coefficients(coeffs)
    return coeffs.astype(np.float32)


def extract_streaming_features(
    samples,
    sample_rate: int = SAMPLE_RATE,
    n_mfcc: int = N_MFCC,
    target_length: int = STANDARD_LENGTH,
) -> np.ndarray:
    """Single-vector path for live buffers: one spectrum over the whole prepared clip, shape (1, n_mfcc)."""
    y = prepare_audio(samples, target_length)
    if y.size == 0:
        return np.empty((0, n_mfcc), dtype=np.float32)
    return _single_vector(y, sample_rate, n_mfcc)


def load_audio(source: Union[str, Path, bytes], target_sr: int = SAMPLE_RATE) -> Tuple[np.ndarray, int]:
    """Decode a file path or encoded bytes to mono float32 at target_sr."""
    handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else str(source)
    try:
        y, sr = sf.read(handle, dtype="float32", always_2d=False)
    except Exception as e:
        logger.warning(f"soundfile could not decode audio, trying librosa: {e}")
        if isinstance(handle, io.BytesIO):
            handle.seek(0)
        y, sr = librosa.load(handle, sr=None, mono=True)
    y = _as_mono(y)
    if target_sr and sr != target_sr and y.size > 0:
        y = librosa.resample(y, orig_sr=sr, target_sr=target_sr)
        sr = target_sr
    return y.astype(np.float32), int(sr)


def build_features(labels_csv: Path, audio_root: Path, out_csv: Path, sr: int = SAMPLE_RATE):
    if not labels_csv.exists():
        raise FileNotFoundError(f"Labels CSV not found: {labels_csv}")
    df = pd.read_csv(labels_csv)
    if not {"filepath", "label"}.issubset(df.columns):
        raise ValueError("labels.csv must contain columns: filepath,label")

    rows = []
    for _, row in df.iterrows():
        rel = str(row["filepath"])  # relative path under audio_root
        wav_path = audio_root / rel
        if not wav_path.exists():
            logger.warning(f"Missing audio file: {wav_path}")
            continue
        try:
            y, sr_loaded = load_audio(wav_path, target_sr=sr)
        except Exception as e:
            logger.error(f"Feature extraction failed for {wav_path}: {e}")
            continue
        coeffs = extract_features(y, sr_loaded, normalize=False)
        if coeffs.size == 0:
            logger.warning(f"Empty audio file: {wav_path}")
            continue
        means = coeffs.mean(axis=0)
        feat_dict = {f"mfcc_{i}": float(means[i]) for i in range(means.shape[0])}
        rec = {
            "filepath": rel,
            "label": str(row["label"]),
            **feat_dict,
            "duration": float(y.size / sr_loaded),
        }
        if "speaker_id" in df.columns:
            rec["speaker_id"] = str(row["speaker_id"])
        rows.append(rec)

    if not rows:
        raise RuntimeError("No features computed. Ensure labels.csv and audio files are present.")

    out_df = pd.DataFrame(rows)
    out_df.to_csv(out_csv, index=False)
    logger.info(f"Wrote features to {out_csv} with shape {out_df.shape}")
    return out_df


def main():
    audio_proc_dir = DATA_DIR / "audio" / "processed"
    labels_csv = audio_proc_dir / "labels.csv"
    out_csv = audio_proc_dir / "features.csv"
    build_features(labels_csv, audio_proc_dir, out_csv)


if __name__ == "__main__":
    main()
