from __future__ import annotations

"""CLI entry point for the exam practice engine."""

import sys

from .app.cli import main


def cli() -> None:
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()
