#!/usr/bin/env python3
"""
Lightweight CLI evaluator for the fusion strategies.

- Loads labelled clips from a CSV (audio_path, video_path, label; either path may be empty)
- Runs audio and video inference once per clip
- Fuses the pair under every strategy and reports accuracy per strategy

Simulated (fallback) modality results are counted separately and can be excluded.
"""
import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from audiovisual_emotion.core import EmotionResult
from audiovisual_emotion.inference.fallback import is_simulated
from audiovisual_emotion.inference.fusion import FusionStrategy, fuse_results
from audiovisual_emotion.inference.session import EmotionSession
from audiovisual_emotion.utils.config import DATA_DIR, EMOTIONS, LOG_DIR
from audiovisual_emotion.utils.logger import get_logger

logger = get_logger("evaluate_fusion")

Sample = Tuple[Optional[EmotionResult], Optional[EmotionResult], str]


def _resolve(root: Path, value) -> Optional[Path]:
    if value is None or (isinstance(value, float) and pd.isna(value)) or not str(value).strip():
        return None
    p = Path(str(value))
    return p if p.is_absolute() else root / p


def build_samples(labels_csv: Path, session: EmotionSession, limit_per_class: int = 10, skip_simulated: bool = False) -> List[Sample]:
    df = pd.read_csv(labels_csv)
    if "label" not in df.columns:
        raise ValueError("labels CSV must have a 'label' column")
    for col in ("audio_path", "video_path"):
        if col not in df.columns:
            df[col] = None
    df = df[df["label"].isin(EMOTIONS)]
    root = labels_csv.parent

    samples: List[Sample] = []
    counts = {e: 0 for e in EMOTIONS}
    for _, row in df.iterrows():
        label = str(row["label"])
        if counts[label] >= limit_per_class:
            continue
        audio_path = _resolve(root, row["audio_path"])
        video_path = _resolve(root, row["video_path"])
        audio = None
        video = None
        if audio_path is not None:
            if audio_path.exists():
                audio = session.analyze_audio_file(audio_path)
            else:
                logger.warning(f"Missing audio file: {audio_path}")
        if video_path is not None:
            if video_path.exists():
                video = session.analyze_video_file(video_path)
            else:
                logger.warning(f"Missing video file: {video_path}")
        if skip_simulated:
            audio = None if audio is not None and is_simulated(audio) else audio
            video = None if video is not None and is_simulated(video) else video
        # Only consider sample if at least one modality present
        if audio is None and video is None:
            continue
        samples.append((audio, video, label))
        counts[label] += 1
    return samples


def evaluate(samples: Sequence[Sample], strategies: Sequence[FusionStrategy] = tuple(FusionStrategy), per_class: bool = False) -> Dict[str, object]:
    if not samples:
        return {"best": None, "results": [], "note": "No samples to evaluate."}
    results = []
    best = None
    for strategy in strategies:
        total = 0
        correct = 0
        cls_total = {e: 0 for e in EMOTIONS}
        cls_correct = {e: 0 for e in EMOTIONS}
        for audio, video, label in samples:
            fused = fuse_results(audio, video, strategy)
            if fused is None:
                continue
            total += 1
            cls_total[label] += 1
            if fused.dominant_emotion == label:
                correct += 1
                cls_correct[label] += 1
        entry = {"strategy": strategy.value, "accuracy": float(correct) / float(total) if total else 0.0, "samples": total}
        if per_class:
            entry["per_class_accuracy"] = {e: (float(cls_correct[e]) / float(cls_total[e]) if cls_total[e] else 0.0) for e in EMOTIONS}
        results.append(entry)
        if best is None or entry["accuracy"] > best["accuracy"]:
            best = entry
    return {"best": best, "results": results}


def main(argv=None):
    parser = argparse.ArgumentParser(description="CLI evaluator for fusion strategies")
    parser.add_argument("--labels", type=str, default=str(DATA_DIR / "av" / "labels.csv"), help="CSV with audio_path,video_path,label")
    parser.add_argument("--limit-per-class", type=int, default=10, help="Max samples per class")
    parser.add_argument("--skip-simulated", action="store_true", help="Drop modality results produced by the fallback generator")
    parser.add_argument("--per-class", action="store_true", help="Report per-class accuracy")
    parser.add_argument("--out", type=str, default=str(LOG_DIR / "evaluate_fusion_results.csv"), help="Where to save the results CSV")
    args = parser.parse_args(argv)

    labels_csv = Path(args.labels)
    if not labels_csv.exists():
        print(f"Labels CSV not found: {labels_csv}")
        sys.exit(1)

    session = EmotionSession()
    session.load_models()
    samples = build_samples(labels_csv, session, int(args.limit_per_class), bool(args.skip_simulated))
    if not samples:
        print("No samples found. Check the paths in the labels CSV.")
        sys.exit(1)

    res = evaluate(samples, per_class=bool(args.per_class))
    print("\n=== Fusion Strategy Results ===")
    for entry in res["results"]:
        print(f"{entry['strategy']:<10} accuracy={entry['accuracy']:.4f} (n={entry['samples']})")
    best = res.get("best")
    if best:
        print(f"Best strategy: {best['strategy']} -> Accuracy: {best['accuracy']:.4f}")
        if args.per_class:
            print("Per-class accuracy (best):")
            for e in EMOTIONS:
                print(f"  {e}: {best['per_class_accuracy'].get(e, 0.0):.4f}")

    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame([{k: v for k, v in r.items() if k != "per_class_accuracy"} for r in res["results"]]).to_csv(out_path, index=False)
    print(f"Saved results to {out_path}")


if __name__ == "__main__":
    main()
