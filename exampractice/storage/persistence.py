from __future__ import annotations

"""Snapshot persistence with debounce and a terminal clear-lock.

Save lifecycle::

    IDLE ──save()──▶ PENDING ──quiet period──▶ SAVED
      ▲                 │ save(immediate)        │
      └──── discard ────┴────────────────────────┘
    any ──clear()──▶ LOCKED (terminal)

Snapshots are built lazily: a debounced save keeps the provider and calls it
when the write actually happens, so the latest state is what lands on disk.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..catalog.models import is_valid_id
from ..util.scheduler import Scheduler, TimerHandle
from .kv import KeyValueStore, StorageWriteError
from .schema import FlaggedEntry, SessionSnapshot

logger = logging.getLogger(__name__)

SnapshotProvider = Callable[[], Optional[SessionSnapshot]]
WarningSink = Callable[[str], None]


class SaveState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SAVED = "saved"
    LOCKED = "locked"


def _warn(sink: Optional[WarningSink], message: str) -> None:
    logger.warning(message)
    if sink is not None:
        sink(message)


class PersistenceAdapter:
    def __init__(
        self,
        store: KeyValueStore,
        scheduler: Scheduler,
        *,
        key: str = "quizStateV3",
        debounce_s: float = 0.5,
        on_warning: Optional[WarningSink] = None,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.key = key
        self.debounce_s = float(debounce_s)
        self.on_warning = on_warning
        self._state = SaveState.IDLE
        self._pending: Optional[TimerHandle] = None
        self._pending_provider: Optional[SnapshotProvider] = None
        self.writes = 0

    @property
    def state(self) -> SaveState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self._state is SaveState.LOCKED

    def save(self, provider: SnapshotProvider, *, immediate: bool = False) -> bool:
        """Request a write. Returns False when the request was dropped or failed."""
        if self.is_locked:
            logger.debug("Save dropped: persistence is locked")
            return False
        if immediate:
            self._cancel_pending()
            return self._write(provider)
        self._cancel_pending()
        self._pending_provider = provider
        self._pending = self.scheduler.call_later(self.debounce_s, self._fire_pending)
        self._state = SaveState.PENDING
        return True

    def load(self) -> Optional[SessionSnapshot]:
        """Validated snapshot, or None when absent or structurally invalid."""
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            return SessionSnapshot.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring invalid session snapshot: %s", exc.errors()[:3])
            return None

    def discard(self) -> None:
        """Drop the stored snapshot without locking (a fresh start may follow)."""
        if self.is_locked:
            return
        self._cancel_pending()
        self._delete()
        self._state = SaveState.IDLE

    def clear(self) -> None:
        """Lock first, then delete. Nothing writes through this adapter again."""
        self._state = SaveState.LOCKED
        self._cancel_pending()
        self._delete()

    def _fire_pending(self) -> None:
        provider = self._pending_provider
        self._pending = None
        self._pending_provider = None
        if provider is None or self.is_locked:
            return
        self._write(provider)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self.scheduler.cancel(self._pending)
        self._pending = None
        self._pending_provider = None

    def _write(self, provider: SnapshotProvider) -> bool:
        snapshot = provider()
        if snapshot is None:
            self._state = SaveState.IDLE
            return False
        try:
            self.store.set(self.key, snapshot.model_dump(mode="json"))
        except StorageWriteError as exc:
            self._state = SaveState.IDLE
            _warn(self.on_warning, f"Progress could not be saved: {exc}")
            return False
        self.writes += 1
        self._state = SaveState.SAVED
        return True

    def _delete(self) -> None:
        try:
            self.store.delete(self.key)
        except StorageWriteError as exc:
            _warn(self.on_warning, f"Saved session could not be removed: {exc}")


class FlaggedRegistry:
    """Question id → FlaggedEntry, independent of any session."""

    def __init__(self, store: KeyValueStore, *, key: str = "akt-flagged-questions", on_warning: Optional[WarningSink] = None) -> None:
        self.store = store
        self.key = key
        self.on_warning = on_warning

    def all(self) -> Dict[str, FlaggedEntry]:
        raw = self.store.get(self.key)
        if not isinstance(raw, dict):
            return {}
        entries: Dict[str, FlaggedEntry] = {}
        purged = False
        for qid, value in raw.items():
            if not is_valid_id(qid):
                purged = True
                continue
            try:
                entries[qid] = FlaggedEntry.model_validate(value if isinstance(value, dict) else {})
            except ValidationError:
                purged = True
        if purged:
            logger.info("Purged invalid flagged-question entries")
            self._write(entries)
        return entries

    def contains(self, qid: str) -> bool:
        return qid in self.all()

    def add(self, qid: str, status: str) -> bool:
        if not is_valid_id(qid):
            return False
        entries = self.all()
        entries[qid] = FlaggedEntry(status=status, flagged_at=datetime.now(timezone.utc))
        return self._write(entries)

    def remove(self, qid: str) -> bool:
        entries = self.all()
        if qid not in entries:
            return False
        del entries[qid]
        return self._write(entries)

    def update_status(self, qid: str, status: str) -> bool:
        """Mirror a graded status into an existing entry; absent ids are left alone."""
        entries = self.all()
        entry = entries.get(qid)
        if entry is None:
            return False
        entries[qid] = entry.model_copy(update={"status": status})
        return self._write(entries)

    def _write(self, entries: Mapping[str, FlaggedEntry]) -> bool:
        payload = {qid: e.model_dump(mode="json") for qid, e in entries.items()}
        try:
            self.store.set(self.key, payload)
        except StorageWriteError as exc:
            _warn(self.on_warning, f"Flagged questions could not be saved: {exc}")
            return False
        return True


class WeakTopicStore:
    """Topic → non-negative failure weight used by smart revision."""

    def __init__(self, store: KeyValueStore, *, key: str = "weakTopics", on_warning: Optional[WarningSink] = None) -> None:
        self.store = store
        self.key = key
        self.on_warning = on_warning

    def weights(self) -> Dict[str, int]:
        raw = self.store.get(self.key)
        if not isinstance(raw, dict):
            return {}
        out: Dict[str, int] = {}
        for topic, value in raw.items():
            try:
                out[str(topic)] = max(0, int(value))
            except (TypeError, ValueError):
                continue
        return out

    def apply(self, topic_stats: Mapping[str, Tuple[int, int]], threshold: float) -> Dict[str, int]:
        """Increment topics scoring below ``threshold``, decrement the rest (floor 0)."""
        weights = self.weights()
        for topic, (score, possible) in topic_stats.items():
            if possible <= 0:
                continue
            current = weights.get(topic, 0)
            if score / possible < threshold:
                weights[topic] = current + 1
            else:
                weights[topic] = max(0, current - 1)
        try:
            self.store.set(self.key, weights)
        except StorageWriteError as exc:
            _warn(self.on_warning, f"Weak-topic weights could not be saved: {exc}")
        return weights
