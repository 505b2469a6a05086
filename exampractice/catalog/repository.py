from __future__ import annotations

"""Question repositories: a single opaque bulk read of raw catalog rows."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import pandas as pd

from .models import AnyQuestion, SkippedRecord
from .normalizer import NormalizedCatalog, QuestionNormalizer

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Raised when the bulk catalog read fails."""


class QuestionRepository(Protocol):
    """Bulk source of raw rows. Failures should raise CatalogError; OSError is tolerated too."""

    def fetch_all(self) -> List[Dict[str, Any]]: ...


class InMemoryRepository:
    def __init__(self, rows: List[Dict[str, Any]]) -> None:
        self._rows = list(rows)

    def fetch_all(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._rows]


class FileRepository:
    """Reads a catalog export from disk.

    ``.json`` holds a list of rows or ``{"questions": [...]}``; ``.ndjson`` /
    ``.jsonl`` hold one row per line; ``.csv`` and ``.parquet`` are table
    exports read with pandas, with empty cells mapped to None.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def fetch_all(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            raise CatalogError(f"Catalog not found: {self.path}")
        suffix = self.path.suffix.lower()
        try:
            if suffix in (".ndjson", ".jsonl"):
                rows = []
                with self.path.open("r", encoding="utf-8") as f:
                    for line in f:
                        if line.strip():
                            rows.append(json.loads(line))
                return rows
            if suffix == ".csv":
                return _frame_rows(pd.read_csv(self.path, dtype=object))
            if suffix == ".parquet":
                return _frame_rows(pd.read_parquet(self.path, engine="pyarrow"))
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise CatalogError(f"Failed to read catalog {self.path}: {exc}") from exc
        if isinstance(data, dict):
            data = data.get("questions", [])
        if not isinstance(data, list):
            raise CatalogError(f"Catalog {self.path} does not hold a list of questions")
        return data


def _frame_rows(df: pd.DataFrame) -> List[Dict[str, Any]]:
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


@dataclass
class CatalogLoad:
    """Catalog after the bulk read resolved, successfully or not."""

    questions: List[AnyQuestion] = field(default_factory=list)
    skipped: List[SkippedRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.questions)

    @property
    def size(self) -> int:
        return len(self.questions)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def notice(self) -> str:
        if self.error:
            return f"Failed to load questions: {self.error}"
        return NormalizedCatalog(self.questions, self.skipped).notice()

    def counts_by_type(self) -> Dict[str, int]:
        return NormalizedCatalog(self.questions, self.skipped).counts_by_type()


def load_catalog(repository: QuestionRepository, normalizer: Optional[QuestionNormalizer] = None) -> CatalogLoad:
    """Fetch and normalize. Fetch failures become an empty catalog with an error."""
    normalizer = normalizer or QuestionNormalizer()
    try:
        rows = repository.fetch_all()
    except (CatalogError, OSError) as exc:
        logger.error("Catalog fetch failed: %s", exc)
        return CatalogLoad(error=str(exc))
    normalized = normalizer.normalize_all(rows or [])
    return CatalogLoad(questions=normalized.questions, skipped=normalized.skipped)
