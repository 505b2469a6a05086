from .kv import JsonDirectoryStore, KeyValueStore, MemoryStore, StorageWriteError
from .persistence import FlaggedRegistry, PersistenceAdapter, SaveState, WeakTopicStore
from .schema import SNAPSHOT_VERSION, FlaggedEntry, QuestionStateModel, SessionSnapshot

__all__ = [
    "JsonDirectoryStore",
    "KeyValueStore",
    "MemoryStore",
    "StorageWriteError",
    "FlaggedRegistry",
    "PersistenceAdapter",
    "SaveState",
    "WeakTopicStore",
    "SNAPSHOT_VERSION",
    "FlaggedEntry",
    "QuestionStateModel",
    "SessionSnapshot",
]
