from .models import (
    EMQ,
    MBA,
    NUMERIC,
    QUESTION_TYPES,
    SBA,
    EmqQuestion,
    EmqStem,
    MbaQuestion,
    NumericQuestion,
    Question,
    ReadingLink,
    SbaQuestion,
    SkippedRecord,
)
from .normalizer import NormalizedCatalog, QuestionNormalizer, normalize_catalog, resolve_correct, safe_parse
from .repository import CatalogError, CatalogLoad, FileRepository, InMemoryRepository, load_catalog

__all__ = [
    "SBA",
    "EMQ",
    "MBA",
    "NUMERIC",
    "QUESTION_TYPES",
    "Question",
    "SbaQuestion",
    "EmqQuestion",
    "EmqStem",
    "MbaQuestion",
    "NumericQuestion",
    "ReadingLink",
    "SkippedRecord",
    "NormalizedCatalog",
    "QuestionNormalizer",
    "normalize_catalog",
    "resolve_correct",
    "safe_parse",
    "CatalogError",
    "CatalogLoad",
    "FileRepository",
    "InMemoryRepository",
    "load_catalog",
]
