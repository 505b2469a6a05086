from __future__ import annotations

"""Session Engine: the one owner of an exam-practice session's state.

Phases::

    UNINITIALIZED ──load_catalog──▶ SELECTING_MODE ──start/resume──▶ ACTIVE ──end/abandon──▶ ENDED
                                          ▲                            │
                                          └────────── suspend ─────────┘

Every command returns a ``CommandResult``; user-level mistakes (double submit,
navigating past either end, flagging a question without an id) come back as
rejected results and leave state untouched. Rendering is pushed on the event
bus as ``SessionView`` objects; the engine never formats anything.
"""

import copy
import logging
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from ..catalog.models import SBA, AnyQuestion
from ..catalog.normalizer import QuestionNormalizer
from ..catalog.repository import CatalogLoad, QuestionRepository, load_catalog
from ..policy.scoring import Grade, InvalidAnswer, ScoringPolicy
from ..storage.kv import KeyValueStore
from ..storage.persistence import FlaggedRegistry, PersistenceAdapter, WeakTopicStore
from ..storage.schema import SessionSnapshot
from ..util.randomness import apply_permutation, make_rng, permutation
from ..util.scheduler import Scheduler
from . import events as ev
from .clock import SessionClock
from .events import EventBus
from .explain import trace as xtrace
from .selection import EXAM, SMART, TYPE_FILTERS, SelectionCriteria, SelectionError, select_questions
from .state import QuestionState, initial_state, state_fits

logger = logging.getLogger(__name__)


class EnginePhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    SELECTING_MODE = "selecting-mode"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True)
class TopicScore:
    topic: str
    score: int
    possible: int

    @property
    def ratio(self) -> float:
        return self.score / self.possible if self.possible else 0.0


@dataclass(frozen=True)
class SessionResult:
    session_id: str
    started_at: datetime
    ended_at: datetime
    mode: str
    selected_type: str
    total_score: int
    total_possible: int
    topics: Tuple[TopicScore, ...]
    weak_topics: Dict[str, int] = field(default_factory=dict)
    distinction: bool = False
    timed_out: bool = False

    @property
    def label(self) -> str:
        return f"{self.total_score}/{self.total_possible}"

    @property
    def ratio(self) -> float:
        return self.total_score / self.total_possible if self.total_possible else 0.0


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    message: str = ""
    grade: Optional[Grade] = None
    result: Optional[SessionResult] = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def accepted(cls, message: str = "", **kwargs: Any) -> "CommandResult":
        return cls(ok=True, message=message, **kwargs)

    @classmethod
    def rejected(cls, message: str) -> "CommandResult":
        return cls(ok=False, message=message)


@dataclass(frozen=True)
class SessionView:
    """Everything a front-end needs to draw one question."""

    index: int
    count: int
    question: AnyQuestion
    state: QuestionState
    options: Tuple[str, ...]
    revealed: bool
    correct_index: Optional[int]
    stem_correct_indices: Optional[Tuple[int, ...]]
    display_code: str
    mode: str
    review_mode: bool
    total_score: int
    total_possible: int
    answered: int
    time_left: Optional[float]
    phase: EnginePhase


ResultsSink = Callable[[SessionResult], Any]


class SessionEngine:
    def __init__(
        self,
        cfg: Dict[str, Any],
        store: KeyValueStore,
        scheduler: Scheduler,
        *,
        rng: Optional[random.Random] = None,
        scoring: Optional[ScoringPolicy] = None,
        events: Optional[EventBus] = None,
        results_sink: Optional[ResultsSink] = None,
    ) -> None:
        self.cfg = cfg
        storage_cfg = cfg["storage"]
        session_cfg = cfg["session"]
        self.events = events or EventBus()
        self.rng = rng or make_rng()
        self.scoring = scoring or ScoringPolicy(cfg["scoring"]["mba_min_selections"])
        self.results_sink = results_sink
        self.persistence = PersistenceAdapter(
            store,
            scheduler,
            key=storage_cfg["session_key"],
            debounce_s=storage_cfg["debounce_ms"] / 1000.0,
            on_warning=self._warn,
        )
        self.flagged = FlaggedRegistry(store, key=storage_cfg["flagged_key"], on_warning=self._warn)
        self.weak_topics = WeakTopicStore(store, key=storage_cfg["weak_topics_key"], on_warning=self._warn)
        self.clock = SessionClock(
            scheduler,
            tick_s=session_cfg["tick_seconds"],
            autosave_every=session_cfg["autosave_interval_ticks"],
            on_tick=self._on_tick,
            on_autosave=self._autosave,
            on_expire=self._on_time_up,
        )

        self.phase = EnginePhase.UNINITIALIZED
        self.catalog: List[AnyQuestion] = []
        self.catalog_load: Optional[CatalogLoad] = None
        self._by_id: Dict[str, AnyQuestion] = {}

        self.criteria: Optional[SelectionCriteria] = None
        self.mode = "practice"
        self.review_mode = False
        self.session_id: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self.questions: List[AnyQuestion] = []
        self.states: List[QuestionState] = []
        self.current_index = 0
        self.total_score = 0
        self.total_possible = 0
        self.result: Optional[SessionResult] = None

    # --- Catalog ---

    def load_catalog(self, repository: QuestionRepository, normalizer: Optional[QuestionNormalizer] = None) -> CatalogLoad:
        """Bulk fetch + normalize. Leaves UNINITIALIZED either way; a failed fetch gives an empty catalog."""
        if self.phase not in (EnginePhase.UNINITIALIZED, EnginePhase.SELECTING_MODE):
            logger.warning("Catalog reload ignored while %s", self.phase.value)
            return self.catalog_load or CatalogLoad(error="catalog unavailable")
        load = load_catalog(repository, normalizer)
        self.catalog_load = load
        self.catalog = list(load.questions)
        self._by_id = {}
        for q in self.catalog:
            if q.has_valid_id:
                self._by_id.setdefault(str(q.id), q)
        self.phase = EnginePhase.SELECTING_MODE
        self.events.emit(ev.NOTICE, load.notice())
        xtrace("catalog_loaded", {"size": load.size, "skipped": load.skipped_count, "error": load.error})
        return load

    # --- Session lifecycle ---

    def start(self, criteria: SelectionCriteria) -> CommandResult:
        refusal = self._entry_refusal()
        if refusal:
            return CommandResult.rejected(refusal)
        weights = self.weak_topics.weights() if criteria.question_type == SMART else None
        try:
            picked = select_questions(self.catalog, criteria, weights=weights, selection_cfg=self.cfg["selection"])
        except SelectionError as exc:
            return self._reject(str(exc))
        if not picked:
            return self._reject("No questions available for this selection.")
        if criteria.shuffle:
            picked = apply_permutation(picked, permutation(len(picked), self.rng))
        states = [initial_state(q, self.rng, shuffle_options=criteria.shuffle) for q in picked]

        self._begin(criteria, picked, states)
        self.session_id = str(uuid4())
        self.started_at = datetime.now(timezone.utc)
        if self.mode == EXAM:
            self.clock.start(self.cfg["session"]["seconds_per_question"] * len(picked))
        self.persistence.save(self._snapshot, immediate=True)
        xtrace(
            "session_started",
            {"mode": self.mode, "type": criteria.question_type, "count": len(picked), "time_left": self.clock.time_left},
        )
        self._render()
        return CommandResult.accepted(f"Started {len(picked)} questions.")

    def resume(self, criteria: SelectionCriteria) -> CommandResult:
        """Adopt the saved snapshot when it matches ``criteria``; otherwise discard it."""
        refusal = self._entry_refusal()
        if refusal:
            return CommandResult.rejected(refusal)
        snapshot = self.persistence.load()
        if snapshot is None:
            return CommandResult.rejected("No saved session.")
        questions = [self._by_id.get(qid) for qid in snapshot.question_ids]
        resolved = [q for q in questions if q is not None]
        states = [QuestionState.from_model(m) for m in snapshot.question_states]
        reason = self._resume_mismatch(snapshot, criteria, resolved, states)
        if reason:
            logger.info("Discarding saved session: %s", reason)
            self.persistence.discard()
            xtrace("resume_rejected", {"reason": reason})
            return CommandResult.rejected(reason)

        context = replace(
            criteria,
            question_type=snapshot.selected_type,
            category=snapshot.category,
            topic_id=snapshot.topic_id,
            exam_id=snapshot.exam_id,
        )
        self._begin(context, resolved, states)
        self.mode = snapshot.mode
        self.review_mode = snapshot.review_mode
        self.session_id = snapshot.session_id or str(uuid4())
        self.started_at = snapshot.started_at or snapshot.saved_at
        self.current_index = snapshot.current_index
        self.total_score = snapshot.total_score
        self.total_possible = snapshot.total_possible
        xtrace("session_resumed", {"mode": self.mode, "index": self.current_index, "time_left": snapshot.time_left})

        if self.mode == EXAM:
            time_left = snapshot.time_left
            if time_left is None:
                time_left = self.cfg["session"]["seconds_per_question"] * len(resolved)
            self.clock.start(time_left)
            if self.clock.expired:
                ended = self.end(timed_out=True)
                return CommandResult.accepted("Time is up.", result=ended.result)
        self._render()
        return CommandResult.accepted(f"Resumed at question {self.current_index + 1} of {len(resolved)}.")

    def discard_saved(self) -> None:
        """Drop any saved snapshot before a fresh start."""
        if self.phase in (EnginePhase.UNINITIALIZED, EnginePhase.SELECTING_MODE):
            self.persistence.discard()

    def suspend(self) -> CommandResult:
        """User exit that keeps progress: save now, stop the clock, back to mode selection."""
        if self.phase is not EnginePhase.ACTIVE:
            return CommandResult.rejected("No active session.")
        self.clock.stop()
        self.persistence.save(self._snapshot, immediate=True)
        self._reset_session()
        self.phase = EnginePhase.SELECTING_MODE
        xtrace("session_suspended", {})
        return CommandResult.accepted("Progress saved.")

    def abandon(self) -> CommandResult:
        """Explicit reset: clear the snapshot and lock persistence without scoring."""
        if self.phase is not EnginePhase.ACTIVE:
            return CommandResult.rejected("No active session.")
        self.clock.stop()
        self.persistence.clear()
        self.phase = EnginePhase.ENDED
        xtrace("session_abandoned", {})
        return CommandResult.accepted("Session cleared.")

    def end(self, *, timed_out: bool = False) -> CommandResult:
        if self.phase is not EnginePhase.ACTIVE:
            return CommandResult.rejected("No active session.")
        self.clock.stop()
        # lock before anything else so a pending debounced save cannot land
        self.persistence.clear()
        self.phase = EnginePhase.ENDED

        topics = self.topic_scores()
        threshold = self.cfg["scoring"]["weak_topic_threshold"]
        weights = self.weak_topics.apply({t.topic: (t.score, t.possible) for t in topics}, threshold)
        ratio = self.total_score / self.total_possible if self.total_possible else 0.0
        result = SessionResult(
            session_id=self.session_id or str(uuid4()),
            started_at=self.started_at or datetime.now(timezone.utc),
            ended_at=datetime.now(timezone.utc),
            mode=self.mode,
            selected_type=self.criteria.question_type if self.criteria else "mixed",
            total_score=self.total_score,
            total_possible=self.total_possible,
            topics=tuple(topics),
            weak_topics=weights,
            distinction=self.total_possible > 0 and ratio >= self.cfg["scoring"]["distinction_threshold"],
            timed_out=timed_out,
        )
        self.result = result
        self._record_result(result)
        xtrace("session_ended", {"score": result.label, "timed_out": timed_out, "distinction": result.distinction})
        self.events.emit(ev.ENDED, result)
        return CommandResult.accepted(f"Final score {result.label}", result=result)

    # --- Commands against the active session ---

    def submit_answer(self, index: int, raw_answer: Any) -> CommandResult:
        refusal = self._active_refusal(index)
        if refusal:
            return CommandResult.rejected(refusal)
        state = self.states[index]
        if state.graded:
            logger.debug("Duplicate submit for question %d ignored", index)
            return CommandResult.rejected("Already answered.")
        question = self.questions[index]
        try:
            grade = self.scoring.grade(question, state.target(question), raw_answer)
        except InvalidAnswer as exc:
            return CommandResult.rejected(str(exc))

        state.record(grade)
        self.total_score += grade.score
        self.total_possible += grade.possible
        self.persistence.save(self._snapshot, immediate=True)
        if question.has_valid_id:
            self.flagged.update_status(str(question.id), grade.status)
        xtrace("graded", {"index": index, "status": grade.status, "score": grade.score, "possible": grade.possible})
        self.events.emit(ev.GRADED, {"index": index, "grade": grade})
        self._render()
        return CommandResult.accepted(grade.status, grade=grade)

    def navigate(self, target: int) -> CommandResult:
        refusal = self._active_refusal(target)
        if refusal:
            return CommandResult.rejected(refusal)
        self.current_index = target
        self.persistence.save(self._snapshot)
        self._render()
        return CommandResult.accepted()

    def next(self) -> CommandResult:
        return self.navigate(self.current_index + 1)

    def previous(self) -> CommandResult:
        return self.navigate(self.current_index - 1)

    def flag(self, index: int) -> CommandResult:
        return self._set_flag(index, True)

    def unflag(self, index: int) -> CommandResult:
        return self._set_flag(index, False)

    def toggle_flag(self, index: int) -> CommandResult:
        refusal = self._active_refusal(index)
        if refusal:
            return CommandResult.rejected(refusal)
        return self._set_flag(index, not self.states[index].flagged)

    def _set_flag(self, index: int, flagged: bool) -> CommandResult:
        refusal = self._active_refusal(index)
        if refusal:
            return CommandResult.rejected(refusal)
        question, state = self.questions[index], self.states[index]
        if not question.has_valid_id:
            logger.info("Question %d has no persistent id; flag ignored", index)
            return CommandResult.rejected("This question cannot be flagged.")
        state.flagged = flagged
        if flagged:
            self.flagged.add(str(question.id), state.status)
        else:
            self.flagged.remove(str(question.id))
        self.persistence.save(self._snapshot)
        self._render()
        return CommandResult.accepted("Flagged." if flagged else "Unflagged.")

    def strike_out(self, index: int, option: int) -> CommandResult:
        """Toggle an option as ruled out on an unanswered sba question."""
        refusal = self._active_refusal(index)
        if refusal:
            return CommandResult.rejected(refusal)
        question, state = self.questions[index], self.states[index]
        if question.type != SBA or state.graded:
            return CommandResult.rejected("Options can only be struck out on unanswered single-best-answer questions.")
        if not (0 <= option < len(state.display_options(question))):
            return CommandResult.rejected("No such option.")
        if option in state.struck_out_options:
            state.struck_out_options.discard(option)
        else:
            state.struck_out_options.add(option)
        self.persistence.save(self._snapshot)
        self._render()
        return CommandResult.accepted()

    # --- Read side ---

    def view(self, index: Optional[int] = None) -> Optional[SessionView]:
        if not self.questions:
            return None
        i = self.current_index if index is None else index
        if not (0 <= i < len(self.questions)):
            return None
        question, state = self.questions[i], self.states[i]
        revealed = state.graded or self.review_mode or self.phase is EnginePhase.ENDED
        target = state.target(question)
        return SessionView(
            index=i,
            count=len(self.questions),
            question=question,
            state=copy.deepcopy(state),
            options=state.display_options(question),
            revealed=revealed,
            correct_index=target.correct_index if revealed else None,
            stem_correct_indices=target.stem_correct_indices if revealed and target.stem_correct_indices else None,
            display_code=question.code or (str(question.id) if question.has_valid_id else f"Q{i + 1}"),
            mode=self.mode,
            review_mode=self.review_mode,
            total_score=self.total_score,
            total_possible=self.total_possible,
            answered=sum(1 for s in self.states if s.graded),
            time_left=self.clock.time_left if self.mode == EXAM else None,
            phase=self.phase,
        )

    def topic_scores(self) -> List[TopicScore]:
        """Per topic over every session question: sba/mba/numeric one unit, emq one per stem."""
        stats: Dict[str, List[int]] = {}
        for question, state in zip(self.questions, self.states):
            entry = stats.setdefault(question.topic_label, [0, 0])
            entry[0] += state.score
            entry[1] += question.units
        return [TopicScore(topic=t, score=s, possible=p) for t, (s, p) in stats.items()]

    # --- Internals ---

    def _entry_refusal(self) -> Optional[str]:
        if self.phase is EnginePhase.UNINITIALIZED:
            return "Questions are still loading."
        if self.phase is EnginePhase.ACTIVE:
            return "A session is already running."
        if self.phase is EnginePhase.ENDED:
            return "This session has ended."
        if self.catalog_load is not None and self.catalog_load.error:
            return f"Questions could not be loaded: {self.catalog_load.error}"
        if not self.catalog:
            return "No questions available."
        return None

    def _active_refusal(self, index: int) -> Optional[str]:
        if self.phase is not EnginePhase.ACTIVE:
            return "No active session."
        if not (0 <= index < len(self.questions)):
            return f"Question {index + 1} is out of range."
        return None

    def _resume_mismatch(
        self,
        snapshot: SessionSnapshot,
        criteria: SelectionCriteria,
        resolved: List[AnyQuestion],
        states: List[QuestionState],
    ) -> Optional[str]:
        if snapshot.ended:
            return "saved session already ended"
        if snapshot.selected_type not in TYPE_FILTERS:
            return "saved session has an unknown question type"
        if criteria.category is not None and snapshot.category != criteria.category:
            return "saved session is for another category"
        if criteria.topic_id is not None and snapshot.topic_id != criteria.topic_id:
            return "saved session is for another topic"
        if snapshot.exam_id != criteria.exam_id:
            return "saved session is for another mock exam"
        if criteria.implies_exam and snapshot.mode != EXAM:
            return "saved session is not an exam"
        if criteria.requires_type and snapshot.selected_type != criteria.question_type:
            return "saved session is for another question type"
        if len(snapshot.question_states) != len(resolved):
            return "saved questions no longer match the catalog"
        if not all(state_fits(q, s) for q, s in zip(resolved, states)):
            return "saved questions no longer match the catalog"
        return None

    def _begin(self, criteria: SelectionCriteria, questions: List[AnyQuestion], states: List[QuestionState]) -> None:
        self.criteria = criteria
        self.mode = criteria.session_mode
        self.review_mode = criteria.review_mode
        self.questions = list(questions)
        self.states = list(states)
        self.current_index = 0
        self.total_score = 0
        self.total_possible = 0
        self.result = None
        self.phase = EnginePhase.ACTIVE

    def _reset_session(self) -> None:
        self.criteria = None
        self.session_id = None
        self.started_at = None
        self.questions = []
        self.states = []
        self.current_index = 0
        self.total_score = 0
        self.total_possible = 0
        self.clock.time_left = None

    def _snapshot(self) -> Optional[SessionSnapshot]:
        if self.phase is not EnginePhase.ACTIVE or self.criteria is None:
            return None
        return SessionSnapshot(
            mode=self.mode,
            exam_id=self.criteria.exam_id,
            selected_type=self.criteria.question_type,
            category=self.criteria.category,
            topic_id=self.criteria.topic_id,
            session_id=self.session_id,
            started_at=self.started_at,
            question_ids=[str(q.id) if q.has_valid_id else "" for q in self.questions],
            question_states=[s.to_model() for s in self.states],
            current_index=self.current_index,
            time_left=self.clock.time_left if self.mode == EXAM else None,
            total_score=self.total_score,
            total_possible=self.total_possible,
            ended=False,
            review_mode=self.review_mode,
        )

    def _record_result(self, result: SessionResult) -> None:
        if self.results_sink is None:
            return
        try:
            self.results_sink(result)
        except (OSError, ValueError) as exc:
            self._warn(f"Results history could not be updated: {exc}")

    def _reject(self, message: str) -> CommandResult:
        logger.info("Session not started: %s", message)
        self.events.emit(ev.NOTICE, message)
        return CommandResult.rejected(message)

    def _render(self) -> None:
        view = self.view()
        if view is not None:
            self.events.emit(ev.RENDER, view)

    def _warn(self, message: str) -> None:
        self.events.emit(ev.WARNING, message)

    def _on_tick(self, time_left: float) -> None:
        self.events.emit(ev.TICK, time_left)

    def _autosave(self) -> None:
        self.persistence.save(self._snapshot, immediate=True)

    def _on_time_up(self) -> None:
        xtrace("time_up", {})
        self.events.emit(ev.NOTICE, "Time is up.")
        self.end(timed_out=True)
