from __future__ import annotations

"""Per-topic summary over the whole results history."""

import pandas as pd
from .config import AnalyticsConfig
from .smoothing import ewma_by_session

COLUMNS = ["topic", "sessions", "score", "possible", "acc", "acc_trend", "weak"]


def topic_summary(df: pd.DataFrame, cfg: AnalyticsConfig | None = None) -> pd.DataFrame:
    """One row per topic, weakest first.

    acc_trend is the latest EWMA-smoothed session accuracy for the topic;
    weak uses the same shrunk accuracy as the row metrics, over all sessions.
    """
    cfg = cfg or AnalyticsConfig()
    if df.empty:
        return pd.DataFrame({c: pd.Series(dtype="object") for c in COLUMNS})
    smooth = ewma_by_session(df, "acc", cfg.smoothing_span, ["topic"])
    trend = smooth.groupby("topic", observed=True)["acc_smooth"].last()
    agg = df.groupby("topic", observed=True).agg(
        sessions=("session_id", "nunique"),
        score=("score", "sum"),
        possible=("possible", "sum"),
    )
    score = agg["score"].astype("float64")
    possible = agg["possible"].astype("float64")
    overall = score.sum() / possible.sum() if possible.sum() > 0 else 0.0
    k = float(cfg.prior_strength)
    agg["acc"] = (score / possible.where(possible > 0, 1.0)).astype("float32")
    agg["acc_trend"] = trend.reindex(agg.index).astype("float32")
    agg["weak"] = ((score + k * overall) / (possible + k)) < float(cfg.weak_threshold)
    out = agg.reset_index()
    out["topic"] = out["topic"].astype("string")
    return out.sort_values(["acc", "topic"], kind="stable").reset_index(drop=True)[COLUMNS]
