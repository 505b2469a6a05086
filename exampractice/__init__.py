"""Exam practice engine.

Normalizes a loosely-typed question catalog and runs timed or untimed practice
sessions over it with crash-safe progress persistence.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
