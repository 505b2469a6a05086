from __future__ import annotations

"""Explain Mode: terse one-line JSON traces at session milestones.

Off by default; the CLI turns it on with ``--explain``.
"""

import json
from typing import Any, Dict

_ENABLED = False


def enable(flag: bool = True) -> None:
    global _ENABLED
    _ENABLED = bool(flag)


def trace(event: str, payload: Dict[str, Any] | None = None) -> None:
    if not _ENABLED:
        return
    data = payload or {}
    try:
        body = json.dumps(data, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        body = "{}"
    print(f"[EXPLAIN] {event} :: {body}")
