from __future__ import annotations

"""Schema constants and Pydantic models for the Parquet results history.

Unit of data: (session × topic) summary rows.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Literal, Tuple

import pandas as pd
from pandas.api.types import CategoricalDtype
from pydantic import BaseModel, Field, field_validator, model_validator

# --- Constants ---

MODES = {"practice", "exam"}


def _cat_dtype(categories: set[str]) -> CategoricalDtype:
    return CategoricalDtype(categories=sorted(categories), ordered=False)


DTYPES = {
    "session_id": "string",
    # timezone-aware UTC timestamps
    "session_start": pd.DatetimeTZDtype(tz="UTC"),
    "mode": _cat_dtype(MODES),
    "selected_type": "string",
    "topic": "string",
    "score": "UInt16",
    "possible": "UInt16",
}


# --- Pydantic models ---

class TopicResultRow(BaseModel):
    session_id: str
    session_start: datetime
    mode: Literal["practice", "exam"]
    selected_type: str = "mixed"
    topic: str = Field(min_length=1)
    score: int = Field(ge=0, le=65535)
    possible: int = Field(ge=1, le=65535)

    @model_validator(mode="after")
    def _score_le_possible(self) -> "TopicResultRow":
        if self.score > self.possible:
            raise ValueError("score must be <= possible")
        return self

    @field_validator("session_start")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


def rows_for_session(
    session_id: str,
    session_start: datetime,
    mode: str,
    selected_type: str,
    topics: Iterable[Tuple[str, int, int]],
) -> List[TopicResultRow]:
    """One row per (topic, score, possible) with a non-zero possible."""
    return [
        TopicResultRow(
            session_id=session_id,
            session_start=session_start,
            mode=mode,
            selected_type=selected_type,
            topic=topic,
            score=score,
            possible=possible,
        )
        for topic, score, possible in topics
        if possible > 0
    ]
