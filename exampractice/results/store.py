from __future__ import annotations

"""Parquet-backed results history using pandas + pyarrow.

Every ended session appends its per-topic rows; analytics reads them back.
"""

import logging
from pathlib import Path
from typing import Any

import pandas as pd

from .schema import DTYPES, TopicResultRow, rows_for_session

logger = logging.getLogger(__name__)

DATA_FILE = "topic_results.parquet"


def _empty_df() -> pd.DataFrame:
    return pd.DataFrame({k: pd.Series(dtype=v) for k, v in DTYPES.items()})


def init_store(data_dir: Path) -> None:
    """Ensure the data directory and an empty Parquet file with the right schema exist."""
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    path = data_dir / DATA_FILE
    if not path.exists():
        _empty_df().to_parquet(path, engine="pyarrow", compression="zstd", index=False)


def validate_records(records: list[TopicResultRow]) -> pd.DataFrame:
    """Validate rows through Pydantic and return a DataFrame with the history dtypes."""
    if not isinstance(records, list):
        raise TypeError("records must be a list[TopicResultRow]")
    rows = [r if isinstance(r, TopicResultRow) else TopicResultRow.model_validate(r) for r in records]
    df = pd.DataFrame([r.model_dump() for r in rows], columns=list(DTYPES.keys()))
    return _fix_dtypes(df)


def _fix_dtypes(df: pd.DataFrame) -> pd.DataFrame:
    for col, dt in DTYPES.items():
        if col not in df.columns:
            df[col] = pd.NA
        df[col] = df[col].astype(dt)
    return df[list(DTYPES.keys())]


def append_topic_results(df_new: pd.DataFrame, data_path: Path) -> None:
    """Append rows; exact duplicate rows are dropped."""
    data_path = Path(data_path)
    f = data_path / DATA_FILE
    if f.exists():
        df_old = pd.read_parquet(f, engine="pyarrow")
    else:
        data_path.mkdir(parents=True, exist_ok=True)
        df_old = _empty_df()
    frames = [_fix_dtypes(d.copy()) for d in (df_old, df_new) if not d.empty]
    combined = _fix_dtypes(pd.concat(frames, ignore_index=True)) if frames else _empty_df()
    combined = combined.drop_duplicates()
    combined.to_parquet(f, engine="pyarrow", compression="zstd", index=False)


def load_all(data_path: Path) -> pd.DataFrame:
    """Load the whole history with dtypes fixed, plus ``acc`` = score / possible as float32."""
    f = Path(data_path) / DATA_FILE
    if not f.exists():
        return _empty_df().assign(acc=pd.Series(dtype="float32"))
    df = _fix_dtypes(pd.read_parquet(f, engine="pyarrow"))
    possible = df["possible"].astype("float32").where(df["possible"] > 0, other=1.0)
    df["acc"] = (df["score"].astype("float32") / possible).astype("float32")
    return df


def query_topic_trend(df: pd.DataFrame, *, topic: str, mode: str | None = None) -> pd.DataFrame:
    """Rows for one topic (optionally one mode), oldest session first."""
    mask = df["topic"].astype("string") == topic
    if mode is not None:
        mask &= df["mode"].astype("string") == mode
    return df[mask].sort_values("session_start").reset_index(drop=True)


def export_ndjson(df: pd.DataFrame, out_path: Path) -> None:
    """Export a DataFrame to line-delimited JSON (NDJSON) for quick inspection."""
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    df.to_json(out_path, orient="records", lines=True, date_format="iso")


class ParquetResultsSink:
    """Callable handed to the engine; appends an ended session's topic breakdown."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)

    def __call__(self, result: Any) -> int:
        rows = rows_for_session(
            result.session_id,
            result.started_at,
            result.mode,
            result.selected_type,
            [(t.topic, t.score, t.possible) for t in result.topics],
        )
        if not rows:
            return 0
        init_store(self.data_dir)
        append_topic_results(validate_records(rows), self.data_dir)
        logger.info("Recorded %d topic rows for session %s", len(rows), result.session_id)
        return len(rows)
