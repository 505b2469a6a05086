from __future__ import annotations

"""Scoring policy: (question, submitted answer) → classification, per type.

Grading is pure. The caller passes the correctness target already remapped
into the session's shuffled option order; canonical questions are never
consulted for option positions of shuffled types.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Literal, Optional, Sequence, Tuple

from ..catalog.models import EMQ, MBA, NUMERIC, SBA, EmqQuestion, MbaQuestion, NumericQuestion, Question, SbaQuestion

NOT_ATTEMPTED = "not-attempted"
CORRECT = "correct"
INCORRECT = "incorrect"
PARTIAL = "partial"

Status = Literal["not-attempted", "correct", "incorrect", "partial"]

_LEADING_NUMBER = re.compile(r"\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")


class InvalidAnswer(ValueError):
    """The submission cannot be graded yet (nothing selected, too few picks, out of range)."""


@dataclass(frozen=True)
class Grade:
    status: Status
    score: int
    possible: int
    answer: Any
    stem_results: Tuple[bool, ...] = ()


@dataclass(frozen=True)
class Target:
    """Correctness target in display order for one question."""

    option_count: int = 0
    correct_index: Optional[int] = None
    stem_correct_indices: Tuple[int, ...] = ()


def _option_index(raw: Any, option_count: int) -> int:
    if raw is None or raw == "" or isinstance(raw, bool):
        raise InvalidAnswer("no option selected")
    try:
        idx = int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidAnswer(f"option {raw!r} is not an index") from exc
    if not (0 <= idx < option_count):
        raise InvalidAnswer(f"option {idx} is out of range")
    return idx


def parse_number(raw: Any) -> Optional[float]:
    """Leading number of the input, so "38 C" reads as 38. None when there is no leading number."""
    if raw is None or isinstance(raw, bool):
        return None
    m = _LEADING_NUMBER.match(str(raw))
    if m is None:
        return None
    value = float(m.group(1))
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def within_tolerance(value: float, expected: float, tolerance: float) -> bool:
    diff = abs(value - expected)
    return diff <= tolerance or math.isclose(diff, tolerance, rel_tol=1e-9, abs_tol=1e-12)


def emq_status(stem_results: Sequence[bool]) -> Status:
    if all(stem_results):
        return CORRECT
    if any(stem_results):
        return PARTIAL
    return INCORRECT


def mba_status(selected: FrozenSet[int], correct: FrozenSet[int]) -> Status:
    if selected == correct:
        return CORRECT
    if selected & correct:
        return PARTIAL
    return INCORRECT


class ScoringPolicy:
    """Dispatches grading by question type."""

    def __init__(self, mba_min_selections: int = 2) -> None:
        self.mba_min_selections = int(mba_min_selections)
        self._graders: Dict[str, Callable[[Question, Target, Any], Grade]] = {
            SBA: self.grade_sba,
            EMQ: self.grade_emq,
            MBA: self.grade_mba,
            NUMERIC: self.grade_numeric,
        }

    def grade(self, question: Question, target: Target, raw_answer: Any) -> Grade:
        grader = self._graders.get(question.type)
        if grader is None:
            raise InvalidAnswer(f"unsupported question type {question.type!r}")
        return grader(question, target, raw_answer)

    def grade_sba(self, question: SbaQuestion, target: Target, raw_answer: Any) -> Grade:
        selected = _option_index(raw_answer, target.option_count)
        ok = selected == target.correct_index
        return Grade(status=CORRECT if ok else INCORRECT, score=1 if ok else 0, possible=1, answer=selected)

    def grade_emq(self, question: EmqQuestion, target: Target, raw_answer: Any) -> Grade:
        n = len(target.stem_correct_indices)
        if not isinstance(raw_answer, (list, tuple)) or len(raw_answer) != n:
            raise InvalidAnswer(f"expected {n} stem answers")
        if any(a is None or a == "" for a in raw_answer):
            raise InvalidAnswer("please answer all parts to submit")
        answers: List[int] = [_option_index(a, target.option_count) for a in raw_answer]
        results = tuple(a == c for a, c in zip(answers, target.stem_correct_indices))
        return Grade(
            status=emq_status(results),
            score=sum(results),
            possible=n,
            answer=answers,
            stem_results=results,
        )

    def grade_mba(self, question: MbaQuestion, target: Target, raw_answer: Any) -> Grade:
        if raw_answer is None or isinstance(raw_answer, (str, bytes)):
            raise InvalidAnswer("select options to submit")
        picks: List[int] = []
        for raw in raw_answer:
            idx = _option_index(raw, target.option_count)
            if idx not in picks:
                picks.append(idx)
        if len(picks) < self.mba_min_selections:
            raise InvalidAnswer(f"select at least {self.mba_min_selections} options to submit")
        status = mba_status(frozenset(picks), frozenset(question.correct))
        # overlap without exact match is shown as partial but earns nothing
        return Grade(status=status, score=1 if status == CORRECT else 0, possible=1, answer=sorted(picks))

    def grade_numeric(self, question: NumericQuestion, target: Target, raw_answer: Any) -> Grade:
        text = "" if raw_answer is None else str(raw_answer).strip()
        value = parse_number(text)
        ok = value is not None and within_tolerance(value, question.correct_answer, question.tolerance)
        return Grade(status=CORRECT if ok else INCORRECT, score=1 if ok else 0, possible=1, answer=text)
