"""Entry points for the conductor CLI."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from .bootstrap import BootstrapError, load_configuration, load_settings, run_bootstrap
from .bootstrap.errors import StageError
from .bootstrap.output import fatal


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="conductor",
        description="Bootstrap a single-node k3s cluster and hand it to FluxCD.",
    )
    parser.set_defaults(handler=None)

    subparsers = parser.add_subparsers(dest="command")

    bootstrap_parser = subparsers.add_parser(
        "bootstrap",
        help="Run the idempotent bootstrap pipeline against this machine.",
    )
    bootstrap_parser.add_argument(
        "--repo-root",
        default=".",
        help="Path to the cluster repository checkout. Defaults to the current directory.",
    )
    bootstrap_parser.add_argument(
        "--env-file",
        help="Path to the .env file. Defaults to <repo-root>/.env.",
    )
    bootstrap_parser.add_argument(
        "--settings",
        help="Optional TOML file overriding paths, versions, and timeouts.",
    )
    bootstrap_parser.add_argument(
        "--plan",
        action="store_true",
        help="Report which stages would run without changing anything.",
    )
    bootstrap_parser.set_defaults(handler=_handle_bootstrap)

    return parser


def _resolve(value: str | None) -> Path | None:
    if value is None:
        return None
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (Path.cwd() / path).resolve()
    return path


def _handle_bootstrap(args: argparse.Namespace) -> int:
    repo_root = _resolve(args.repo_root) or Path.cwd()
    try:
        settings = load_settings(_resolve(args.settings))
        config = load_configuration(repo_root, env_file=_resolve(args.env_file))
        run_bootstrap(config, settings, plan_only=bool(args.plan))
    except StageError as exc:
        fatal(f"stage '{exc.stage}' failed: {exc.__cause__ or exc}")
        return 1
    except BootstrapError as exc:
        fatal(str(exc))
        return 1
    except KeyboardInterrupt:
        fatal("interrupted")
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args)
