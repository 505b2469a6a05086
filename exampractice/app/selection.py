from __future__ import annotations

"""Session entry criteria and working-set selection."""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from ..catalog.models import QUESTION_TYPES, AnyQuestion

PRACTICE = "practice"
EXAM = "exam"
MOCK = "mock"
STUDY = "study"

ENTRY_MODES = (PRACTICE, EXAM, MOCK, STUDY)

MIXED = "mixed"
SMART = "smart"

TYPE_FILTERS = (MIXED, SMART) + QUESTION_TYPES


class SelectionError(ValueError):
    """The criteria cannot produce a session (bad exam id, short mock exam)."""


@dataclass(frozen=True)
class SelectionCriteria:
    mode: str = PRACTICE
    question_type: str = MIXED
    category: Optional[str] = None
    topic_id: Optional[str] = None
    exam_id: Optional[int] = None
    shuffle: bool = True

    def __post_init__(self) -> None:
        if self.mode not in ENTRY_MODES:
            raise SelectionError(f"Unknown mode: {self.mode}")
        if self.question_type not in TYPE_FILTERS:
            raise SelectionError(f"Unknown question type: {self.question_type}")

    @property
    def session_mode(self) -> str:
        return EXAM if self.mode in (EXAM, MOCK) else PRACTICE

    @property
    def implies_exam(self) -> bool:
        return self.session_mode == EXAM

    @property
    def review_mode(self) -> bool:
        return self.mode == STUDY

    @property
    def requires_type(self) -> bool:
        return self.question_type != MIXED

    @classmethod
    def from_params(
        cls,
        *,
        mode: Optional[str] = None,
        question_type: Optional[str] = None,
        topic: Optional[str] = None,
        topic_id: Optional[str] = None,
        exam_id: Optional[int] = None,
        shuffle: bool = True,
    ) -> "SelectionCriteria":
        """Route loose entry parameters the way the practice pages do.

        A mock exam id wins; a topic (category) page runs timed; a topic id
        page runs untimed; ``study`` is untimed with answers revealed.
        """
        qtype = question_type or MIXED
        if exam_id is not None:
            return cls(mode=MOCK, question_type=MIXED, exam_id=int(exam_id), shuffle=shuffle)
        if topic:
            return cls(mode=EXAM, question_type=qtype, category=topic, shuffle=shuffle)
        if topic_id:
            return cls(mode=PRACTICE, question_type=qtype, topic_id=str(topic_id), shuffle=shuffle)
        return cls(mode=mode or PRACTICE, question_type=qtype, shuffle=shuffle)


def select_mock_exam(catalog: Sequence[AnyQuestion], exam_id: int, *, size: int = 20, count: int = 3, require_full: bool = True) -> List[AnyQuestion]:
    """Deterministic partition: catalog positions with ``index % count == exam_id - 1``, first ``size``."""
    if not (1 <= int(exam_id) <= count):
        raise SelectionError(f"Mock exam {exam_id} does not exist (1-{count})")
    picked = [q for i, q in enumerate(catalog) if i % count == int(exam_id) - 1][:size]
    if require_full and len(picked) < size:
        raise SelectionError(f"Mock exam {exam_id} needs {size} questions, only {len(picked)} available")
    return picked


def select_smart(catalog: Sequence[AnyQuestion], weights: Mapping[str, int], *, limit: int = 20) -> List[AnyQuestion]:
    """Highest weak-topic weight first (stable), truncated to ``limit``."""
    ranked = sorted(catalog, key=lambda q: -int(weights.get(q.topic_label, 0)))
    return ranked[:limit]


def select_questions(
    catalog: Sequence[AnyQuestion],
    criteria: SelectionCriteria,
    *,
    weights: Optional[Mapping[str, int]] = None,
    selection_cfg: Optional[Dict] = None,
) -> List[AnyQuestion]:
    cfg = selection_cfg or {}
    if criteria.mode == MOCK:
        if criteria.exam_id is None:
            raise SelectionError("Mock exam requires an exam id")
        return select_mock_exam(
            catalog,
            criteria.exam_id,
            size=int(cfg.get("mock_exam_size", 20)),
            count=int(cfg.get("mock_exam_count", 3)),
            require_full=bool(cfg.get("mock_require_full", True)),
        )
    pool = list(catalog)
    if criteria.topic_id is not None:
        pool = [q for q in pool if q.topic_id is not None and str(q.topic_id) == str(criteria.topic_id)]
    if criteria.category is not None:
        pool = [q for q in pool if q.category == criteria.category]
    if criteria.question_type in QUESTION_TYPES:
        pool = [q for q in pool if q.type == criteria.question_type]
    elif criteria.question_type == SMART:
        pool = select_smart(pool, weights or {}, limit=int(cfg.get("smart_revision_limit", 20)))
    return pool
