from __future__ import annotations

"""Question normalization: raw catalog rows to canonical Question variants.

Raw rows arrive from the repository in whatever shape the catalog was edited
in: collection fields may be JSON-encoded strings, plain strings or already
structured; the correct answer may be an index, a letter, a JSON value or the
literal option text. This is the only place those shapes are interpreted.

Rows that cannot yield a resolvable correctness target are returned as
``SkippedRecord`` and counted, never folded silently into the usable set.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .models import (
    EMQ,
    MBA,
    NUMERIC,
    SBA,
    AnyQuestion,
    EmqQuestion,
    EmqStem,
    MbaQuestion,
    NumericQuestion,
    ReadingLink,
    SbaQuestion,
    SkippedRecord,
)

logger = logging.getLogger(__name__)

SBA_STEM_PLACEHOLDER = "(No clinical stem provided)"
EMQ_THEME_FALLBACK = "Clinical Case"

_DIGITS = re.compile(r"^\d+$")
_LETTER = re.compile(r"^[A-Ea-e]$")

_UNRESOLVED = object()


def safe_parse(value: Any, fallback: Any = None) -> Any:
    """Parse a JSON collection string; anything else is returned untouched.

    Only strings that look like an encoded collection (leading ``{`` or ``[``)
    are parsed. A failed parse returns the original string.
    """
    if value is None or value == "":
        return fallback
    if not isinstance(value, str):
        return value
    trimmed = value.strip()
    if not trimmed.startswith(("{", "[")):
        return value
    try:
        return json.loads(trimmed)
    except ValueError:
        logger.warning("Failed to parse JSON string: %r", trimmed[:20])
        return value


def _pick(row: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in row and row[name] is not None:
            return row[name]
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value)


def _optional_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    return text or None


def _option_list(value: Any) -> Tuple[str, ...]:
    parsed = safe_parse(value, [])
    if isinstance(parsed, dict):
        parsed = list(parsed.values())
    if not isinstance(parsed, list):
        # literal text is not a usable option list
        return ()
    out = []
    for item in parsed:
        if isinstance(item, dict):
            out.append(_text(item.get("text", item.get("option", ""))))
        else:
            out.append(_text(item))
    return tuple(out)


def _reading_list(value: Any) -> Tuple[ReadingLink, ...]:
    parsed = safe_parse(value, [])
    if isinstance(parsed, str):
        return (ReadingLink(text=parsed, url=parsed if parsed.startswith("http") else ""),)
    if isinstance(parsed, dict):
        parsed = [parsed]
    if not isinstance(parsed, list):
        return ()
    links = []
    for item in parsed:
        if isinstance(item, dict):
            url = _text(item.get("url", ""))
            links.append(ReadingLink(text=_text(item.get("text", url)), url=url))
        elif item:
            links.append(ReadingLink(text=_text(item)))
    return tuple(links)


def _images(value: Any) -> Tuple[str, ...]:
    parsed = safe_parse(value, [])
    if isinstance(parsed, str):
        return (parsed,) if parsed.strip() else ()
    if isinstance(parsed, list):
        return tuple(_text(v) for v in parsed if v)
    return ()


def _as_index(value: Any) -> Any:
    if isinstance(value, bool):
        return _UNRESOLVED
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return _UNRESOLVED


def resolve_correct(raw: Any, options: Sequence[str]) -> Any:
    """Resolve a raw correct-answer value through the fallback chain.

    (a) pure-digit string → index; (b) single letter A–E → zero-based index;
    (c) structured JSON value; (d) text equal to an option (case-insensitive,
    trimmed) → that option's index. The first rule that matches wins.
    Non-string raw values are taken as already structured.

    Returns None when nothing resolves.
    """
    if raw is None:
        return None
    if not isinstance(raw, str):
        idx = _as_index(raw)
        if idx is not _UNRESOLVED:
            return idx
        if isinstance(raw, float) and math.isnan(raw):
            return None
        return raw
    trimmed = raw.strip()
    if not trimmed:
        return None
    if _DIGITS.match(trimmed):
        return int(trimmed)
    if _LETTER.match(trimmed):
        return ord(trimmed.upper()) - ord("A")
    parsed = safe_parse(trimmed, None)
    if parsed is not None and not isinstance(parsed, str):
        return parsed
    lowered = trimmed.lower()
    for i, opt in enumerate(options):
        if opt.strip().lower() == lowered:
            return i
    return None


def _index_token(token: Any, options: Sequence[str]) -> Optional[int]:
    resolved = resolve_correct(token, options) if isinstance(token, str) else _as_index(token)
    if resolved is _UNRESOLVED or not isinstance(resolved, int) or isinstance(resolved, bool):
        return None
    return resolved


def _mba_correct(raw: Any, options: Sequence[str]) -> Tuple[int, ...]:
    resolved = resolve_correct(raw, options)
    tokens: Iterable[Any]
    if isinstance(resolved, list):
        tokens = resolved
    elif resolved is None:
        # rule (d) fails on "A, C" style values; split before giving up
        if isinstance(raw, str) and "," in raw:
            tokens = [t.strip() for t in raw.split(",") if t.strip()]
        else:
            tokens = []
    else:
        tokens = [resolved]
    out: List[int] = []
    for tok in tokens:
        idx = _index_token(tok, options)
        if idx is not None and idx not in out:
            out.append(idx)
    return tuple(out)


def _coerce_number(value: Any) -> Optional[float]:
    value = safe_parse(value, None)
    if isinstance(value, dict):
        for key in ("value", "answer", "correct"):
            if value.get(key) is not None:
                return _coerce_number(value[key])
        return None
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


@dataclass
class NormalizedCatalog:
    """Outcome of normalizing a full catalog read."""

    questions: List[AnyQuestion] = field(default_factory=list)
    skipped: List[SkippedRecord] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.questions)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def notice(self) -> str:
        if self.skipped_count:
            return f"Loaded {self.size} questions. {self.skipped_count} skipped (invalid data)."
        return f"Loaded {self.size} questions."

    def counts_by_type(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for q in self.questions:
            counts[q.type] = counts.get(q.type, 0) + 1
        return counts


class QuestionNormalizer:
    """Turns raw repository rows into canonical questions or skip markers."""

    def normalize(self, row: Dict[str, Any], index: int = 0) -> Union[AnyQuestion, SkippedRecord]:
        if not isinstance(row, dict):
            return SkippedRecord(index=index, reason="record is not an object")
        q = dict(row)
        qid = _optional_id(q.get("id"))
        qtype = _text(q.get("type")).strip().lower()

        if qtype == EMQ:
            self._lift_emq_payload(q)

        common = dict(
            id=qid,
            stem=self._stem_text(q.get("stem")),
            topic=_text(q.get("topic")),
            category=_text(_pick(q, "Category", "category")),
            topic_id=_optional_id(q.get("topic_id")),
            explanation=_text(q.get("explanation")),
            further_reading=_reading_list(_pick(q, "furtherReading", "further_reading")),
            images=_images(q.get("images")),
            code=_optional_id(_pick(q, "Question Code", "question_code", "code")),
        )
        raw_correct = _pick(q, "correct_answer", "correct", "correctAnswer")

        if qtype == SBA:
            return self._sba(q, common, raw_correct, index)
        if qtype == EMQ:
            return self._emq(q, common, raw_correct, index)
        if qtype == MBA:
            return self._mba(q, common, raw_correct, index)
        if qtype == NUMERIC:
            return self._numeric(q, common, raw_correct, index)
        return self._skip(index, qid, f"unknown question type {qtype!r}")

    def normalize_all(self, rows: Iterable[Dict[str, Any]]) -> NormalizedCatalog:
        out = NormalizedCatalog()
        for idx, row in enumerate(rows):
            result = self.normalize(row, idx)
            if isinstance(result, SkippedRecord):
                out.skipped.append(result)
            else:
                out.questions.append(result)
        if out.skipped:
            logger.warning("Skipped %d questions due to missing/invalid data.", out.skipped_count)
        return out

    # --- per-type builders ---

    def _sba(self, q: Dict[str, Any], common: Dict[str, Any], raw_correct: Any, index: int):
        if not common["stem"].strip():
            logger.warning("SBA question %d is missing a stem; using placeholder.", index)
            common["stem"] = SBA_STEM_PLACEHOLDER
        options = _option_list(q.get("options"))
        if not options:
            return self._skip(index, common["id"], "sba question has no options")
        correct = resolve_correct(raw_correct, options)
        if isinstance(correct, list) and len(correct) == 1:
            correct = correct[0]
        idx = _as_index(correct)
        if idx is _UNRESOLVED or not (0 <= idx < len(options)):
            return self._skip(index, common["id"], f"sba correct answer {raw_correct!r} does not resolve to an option")
        return SbaQuestion(options=options, correct=idx, **common)

    def _emq(self, q: Dict[str, Any], common: Dict[str, Any], raw_correct: Any, index: int):
        options = _option_list(q.get("options"))
        stems_raw = safe_parse(q.get("stems"), [])
        if not isinstance(stems_raw, list) or not stems_raw:
            return self._skip(index, common["id"], "emq question has no stems")
        if not options:
            return self._skip(index, common["id"], "emq question has no options")

        # question-level correct may carry one index per stem
        per_stem = resolve_correct(raw_correct, options)
        if not isinstance(per_stem, list) or len(per_stem) != len(stems_raw):
            per_stem = [None] * len(stems_raw)

        stems: List[EmqStem] = []
        for s_idx, item in enumerate(stems_raw):
            if isinstance(item, dict):
                text = _text(_pick(item, "stem", "text"))
                raw = _pick(item, "correct", "correctIndex", "correct_index", "answer")
                explanation = _text(item.get("explanation"))
            else:
                text, raw, explanation = _text(item), None, ""
            if raw is None:
                raw = per_stem[s_idx]
            correct = _index_token(raw, options)
            if correct is None or not (0 <= correct < len(options)):
                return self._skip(index, common["id"], f"emq stem {s_idx} has no resolvable correct option")
            stems.append(EmqStem(text=text, correct_index=correct, explanation=explanation))

        theme = _text(q.get("theme")) or EMQ_THEME_FALLBACK
        return EmqQuestion(theme=theme, options=options, stems=tuple(stems), **common)

    def _mba(self, q: Dict[str, Any], common: Dict[str, Any], raw_correct: Any, index: int):
        options = _option_list(q.get("options"))
        correct = tuple(i for i in _mba_correct(raw_correct, options) if 0 <= i < len(options))
        if not options or not correct:
            logger.warning("MBA question %d has no correct answers after normalization.", index)
            return self._skip(index, common["id"], "mba question has no correct answers")
        return MbaQuestion(options=options, correct=frozenset(correct), **common)

    def _numeric(self, q: Dict[str, Any], common: Dict[str, Any], raw_correct: Any, index: int):
        answer = _coerce_number(raw_correct)
        if answer is None:
            return self._skip(index, common["id"], f"numeric answer {raw_correct!r} is not a number")
        tolerance = _coerce_number(q.get("tolerance"))
        if tolerance is None or tolerance < 0:
            tolerance = 0.0
        return NumericQuestion(
            correct_answer=answer,
            tolerance=tolerance,
            unit=_text(q.get("unit")),
            **common,
        )

    # --- helpers ---

    @staticmethod
    def _lift_emq_payload(q: Dict[str, Any]) -> None:
        payload = safe_parse(q.get("stem"), None)
        if not isinstance(payload, dict):
            return
        for key in ("theme", "options", "stems"):
            if not q.get(key) and payload.get(key) is not None:
                q[key] = payload[key]
        q["stem"] = payload.get("stem") if isinstance(payload.get("stem"), str) else ""

    @staticmethod
    def _stem_text(value: Any) -> str:
        if isinstance(value, (dict, list)):
            return ""
        return _text(value)

    @staticmethod
    def _skip(index: int, qid: Optional[str], reason: str) -> SkippedRecord:
        logger.warning("Question %d (%s) skipped: %s", index, qid, reason)
        return SkippedRecord(index=index, reason=reason, raw_id=qid)


def normalize_catalog(rows: Iterable[Dict[str, Any]]) -> NormalizedCatalog:
    return QuestionNormalizer().normalize_all(rows)
