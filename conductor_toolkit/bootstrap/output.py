"""Console helpers shared by every bootstrap stage."""

from __future__ import annotations

import sys

PREFIX = "[bootstrap]"


def log(message: str) -> None:
    print(f"{PREFIX} {message}", flush=True)


def warn(message: str) -> None:
    print(f"{PREFIX} WARN: {message}", file=sys.stderr, flush=True)


def fatal(message: str) -> None:
    print(f"{PREFIX} FATAL: {message}", file=sys.stderr, flush=True)
