from __future__ import annotations

"""Canonical question model: one frozen variant per question type."""

from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple, Union

SBA = "sba"
EMQ = "emq"
MBA = "mba"
NUMERIC = "numeric"

QUESTION_TYPES = (SBA, EMQ, MBA, NUMERIC)

INVALID_IDS = {"", "nan", "undefined", "null", "none"}


def is_valid_id(qid: Optional[str]) -> bool:
    return qid is not None and str(qid).strip().lower() not in INVALID_IDS


@dataclass(frozen=True)
class ReadingLink:
    text: str
    url: str = ""


@dataclass(frozen=True)
class EmqStem:
    text: str
    correct_index: int
    explanation: str = ""


@dataclass(frozen=True)
class Question:
    """Fields shared by every question type."""

    id: Optional[str]
    stem: str
    topic: str = ""
    category: str = ""
    topic_id: Optional[str] = None
    explanation: str = ""
    further_reading: Tuple[ReadingLink, ...] = ()
    images: Tuple[str, ...] = ()
    code: Optional[str] = None

    type = ""

    @property
    def has_valid_id(self) -> bool:
        return is_valid_id(self.id)

    @property
    def topic_label(self) -> str:
        return self.topic or "General"

    @property
    def units(self) -> int:
        """Score units this question contributes to the possible total."""
        return 1


@dataclass(frozen=True)
class SbaQuestion(Question):
    options: Tuple[str, ...] = ()
    correct: int = 0

    type = SBA


@dataclass(frozen=True)
class EmqQuestion(Question):
    theme: str = ""
    options: Tuple[str, ...] = ()
    stems: Tuple[EmqStem, ...] = ()

    type = EMQ

    @property
    def correct(self) -> Tuple[int, ...]:
        return tuple(s.correct_index for s in self.stems)

    @property
    def units(self) -> int:
        return len(self.stems)


@dataclass(frozen=True)
class MbaQuestion(Question):
    options: Tuple[str, ...] = ()
    correct: FrozenSet[int] = frozenset()

    type = MBA

    @property
    def required_count(self) -> int:
        return len(self.correct)


@dataclass(frozen=True)
class NumericQuestion(Question):
    correct_answer: float = 0.0
    tolerance: float = 0.0
    unit: str = ""

    type = NUMERIC


AnyQuestion = Union[SbaQuestion, EmqQuestion, MbaQuestion, NumericQuestion]


@dataclass(frozen=True)
class SkippedRecord:
    """A raw row the normalizer could not turn into a usable question."""

    index: int
    reason: str
    raw_id: Optional[str] = None
