from __future__ import annotations

"""Metric computations for per-row analytics."""

import numpy as np
import pandas as pd
from .config import AnalyticsConfig


def compute_metrics(df: pd.DataFrame, cfg: AnalyticsConfig) -> pd.DataFrame:
    """Compute raw and shrunk accuracy per (session, topic) row.

    Returns a copy with added columns:
    - acc, missed, acc_adj, weak
    """
    out = df.copy()
    score = out["score"].astype("float32").to_numpy()
    possible = out["possible"].astype("float32").to_numpy()
    # possible >= 1 by construction
    possible = np.where(possible > 0, possible, 1.0).astype("float32")
    out["acc"] = (score / possible).astype("float32")
    out["missed"] = (possible - score).astype("float32")

    # Shrink small samples toward the overall accuracy
    total = possible.sum(dtype="float64")
    overall = float(score.sum(dtype="float64") / total) if total > 0 else 0.0
    k = float(cfg.prior_strength)
    out["acc_adj"] = ((score + k * overall) / (possible + k)).astype("float32")
    out["weak"] = out["acc_adj"] < float(cfg.weak_threshold)
    return out
