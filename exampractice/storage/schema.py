from __future__ import annotations

"""Pydantic models for the persisted session snapshot and flagged registry."""

from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

SNAPSHOT_VERSION = 3


def _utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class QuestionStateModel(BaseModel):
    status: Literal["not-attempted", "correct", "incorrect", "partial"] = "not-attempted"
    answer: Any = None
    score: int = Field(default=0, ge=0)
    flagged: bool = False
    shuffled_options: Optional[List[str]] = None
    shuffled_correct_index: Optional[int] = None
    shuffled_stem_correct_indices: Optional[List[int]] = None
    struck_out_options: List[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _answer_matches_status(self) -> "QuestionStateModel":
        if self.status != "not-attempted" and self.answer is None:
            raise ValueError("graded state must carry its answer")
        return self


class SessionSnapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    mode: Literal["practice", "exam"]
    exam_id: Optional[int] = None
    selected_type: str = "mixed"
    category: Optional[str] = None
    topic_id: Optional[str] = None
    session_id: Optional[str] = None
    started_at: Optional[datetime] = None
    question_ids: List[str]
    question_states: List[QuestionStateModel]
    current_index: int = Field(default=0, ge=0)
    time_left: Optional[float] = None
    total_score: int = Field(default=0, ge=0)
    total_possible: int = Field(default=0, ge=0)
    ended: bool = False
    review_mode: bool = False
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("version")
    @classmethod
    def _known_version(cls, v: int) -> int:
        if v != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version {v}")
        return v

    @field_validator("saved_at", "started_at")
    @classmethod
    def _ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _utc(v) if v is not None else None

    @model_validator(mode="after")
    def _consistent(self) -> "SessionSnapshot":
        if not self.question_ids:
            raise ValueError("snapshot holds no questions")
        if len(self.question_ids) != len(self.question_states):
            raise ValueError("question_ids and question_states differ in length")
        if self.current_index >= len(self.question_ids):
            raise ValueError("current_index out of range")
        if self.total_score > self.total_possible:
            raise ValueError("total_score must be <= total_possible")
        return self


class FlaggedEntry(BaseModel):
    status: Literal["not-attempted", "correct", "incorrect", "partial"] = "not-attempted"
    flagged_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("status", mode="before")
    @classmethod
    def _legacy_status(cls, v: Any) -> Any:
        # older registries stored null for unattempted questions
        return v or "not-attempted"

    @field_validator("flagged_at")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        return _utc(v)
