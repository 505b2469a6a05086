from __future__ import annotations

"""Load the results history and compute derived metrics."""

from pathlib import Path
import pandas as pd
from exampractice.results.store import load_all
from .config import AnalyticsConfig
from .metrics import compute_metrics


def load_and_prepare(data_dir: Path, cfg: AnalyticsConfig | None = None) -> pd.DataFrame:
    """Read the topic results Parquet and compute metrics with consistent dtypes.

    - Ensures 'mode' and 'topic' are categorical.
    - Sorts by (session_start, session_id).
    - Computes metrics and adds a stable session index 'session_idx'.
    """
    cfg = cfg or AnalyticsConfig()
    df = load_all(Path(data_dir)).drop(columns=["acc"])
    for col in ("mode", "topic"):
        df[col] = df[col].astype("category")
    df = df.sort_values(["session_start", "session_id"], kind="stable")
    df = compute_metrics(df, cfg)
    # Stable session order index
    df["session_idx"] = pd.factorize(df["session_id"])[0]
    return df.reset_index(drop=True)
