from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def setup_console_logging(level: int = logging.INFO, log_file: Optional[str | Path] = None) -> None:
    """
    Call once at app start. Log lines go to the console and, when given, to ``log_file``.
    """
    root = logging.getLogger()
    root.setLevel(level)
    if root.handlers:
        # already configured (avoid duplicates)
        return

    fmt = logging.Formatter(FORMAT, datefmt="%H:%M:%S")
    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setFormatter(logging.Formatter(FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(fh)
