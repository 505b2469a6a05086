from __future__ import annotations

"""Per-question session state and its option shuffle."""

import random
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Set, Tuple

from ..catalog.models import EMQ, MBA, SBA, AnyQuestion, Question
from ..policy.scoring import NOT_ATTEMPTED, Grade, Target
from ..storage.schema import QuestionStateModel
from ..util.randomness import apply_permutation, permutation


@dataclass
class QuestionState:
    status: str = NOT_ATTEMPTED
    answer: Any = None
    score: int = 0
    flagged: bool = False
    shuffled_options: Optional[List[str]] = None
    shuffled_correct_index: Optional[int] = None
    shuffled_stem_correct_indices: Optional[List[int]] = None
    struck_out_options: Set[int] = field(default_factory=set)

    @property
    def graded(self) -> bool:
        return self.status != NOT_ATTEMPTED

    def display_options(self, question: Question) -> Tuple[str, ...]:
        if self.shuffled_options is not None:
            return tuple(self.shuffled_options)
        return tuple(getattr(question, "options", ()))

    def target(self, question: AnyQuestion) -> Target:
        """Correctness target in the order the options are shown."""
        options = self.display_options(question)
        if question.type == SBA:
            correct = self.shuffled_correct_index if self.shuffled_correct_index is not None else question.correct
            return Target(option_count=len(options), correct_index=correct)
        if question.type == EMQ:
            stems = self.shuffled_stem_correct_indices
            if stems is None:
                stems = list(question.correct)
            return Target(option_count=len(options), stem_correct_indices=tuple(stems))
        return Target(option_count=len(options))

    def record(self, grade: Grade) -> None:
        self.status = grade.status
        self.answer = grade.answer
        self.score = grade.score

    def to_model(self) -> QuestionStateModel:
        return QuestionStateModel(
            status=self.status,
            answer=self.answer,
            score=self.score,
            flagged=self.flagged,
            shuffled_options=self.shuffled_options,
            shuffled_correct_index=self.shuffled_correct_index,
            shuffled_stem_correct_indices=self.shuffled_stem_correct_indices,
            struck_out_options=sorted(self.struck_out_options),
        )

    @classmethod
    def from_model(cls, model: QuestionStateModel) -> "QuestionState":
        return cls(
            status=model.status,
            answer=model.answer,
            score=model.score,
            flagged=model.flagged,
            shuffled_options=list(model.shuffled_options) if model.shuffled_options is not None else None,
            shuffled_correct_index=model.shuffled_correct_index,
            shuffled_stem_correct_indices=(
                list(model.shuffled_stem_correct_indices) if model.shuffled_stem_correct_indices is not None else None
            ),
            struck_out_options=set(model.struck_out_options),
        )


def empty_answer(question: Question) -> Any:
    if question.type == EMQ:
        return [None] * question.units
    if question.type == MBA:
        return []
    return None


def _remap(original_index: int, order: Sequence[int]) -> int:
    # order[new_position] == original_position
    return list(order).index(original_index)


def initial_state(question: AnyQuestion, rng: random.Random, *, shuffle_options: bool = True) -> QuestionState:
    """Fresh state; sba/emq options get their own shuffle with correctness remapped."""
    state = QuestionState(answer=empty_answer(question))
    if question.type not in (SBA, EMQ):
        return state
    n = len(question.options)
    order = permutation(n, rng) if shuffle_options else list(range(n))
    state.shuffled_options = apply_permutation(list(question.options), order)
    if question.type == SBA:
        state.shuffled_correct_index = _remap(question.correct, order)
    else:
        state.shuffled_stem_correct_indices = [_remap(c, order) for c in question.correct]
    return state


def state_fits(question: AnyQuestion, state: QuestionState) -> bool:
    """Whether a restored state still lines up with the catalog's question."""
    if question.type in (SBA, EMQ):
        if state.shuffled_options is None or sorted(state.shuffled_options) != sorted(question.options):
            return False
        if question.type == SBA:
            idx = state.shuffled_correct_index
            return idx is not None and 0 <= idx < len(question.options)
        stems = state.shuffled_stem_correct_indices
        return stems is not None and len(stems) == question.units
    return True
