#!/usr/bin/env python3
"""Run the k3s + FluxCD bootstrap from a repository checkout.

Equivalent to ``conductor bootstrap --repo-root <checkout>`` without installing
the package first.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from conductor_toolkit import cli  # noqa: E402


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--env-file",
        help="Path to the .env file. Defaults to <checkout>/.env.",
    )
    parser.add_argument(
        "--settings",
        help="Optional TOML file overriding paths, versions, and timeouts.",
    )
    parser.add_argument(
        "--plan",
        action="store_true",
        help="Report which stages would run without changing anything.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def build_cli_args(args: argparse.Namespace) -> list[str]:
    forwarded = ["bootstrap", "--repo-root", str(REPO_ROOT)]
    if args.env_file:
        forwarded.extend(["--env-file", args.env_file])
    if args.settings:
        forwarded.extend(["--settings", args.settings])
    if args.plan:
        forwarded.append("--plan")
    return forwarded


def main(argv: Sequence[str] | None = None) -> int:
    return cli.main(build_cli_args(parse_args(argv)))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
