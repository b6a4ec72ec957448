"""One-shot replacement of template placeholders across the repository."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import Configuration
from .output import log

SENTINEL = "example.com"
SENTINEL_FILE = Path("infrastructure") / "certs" / "cluster-issuer.yaml"
FILE_SUFFIXES = (".yaml", ".md")


@dataclass(frozen=True, slots=True)
class PersonalizationRule:
    """Literal substitution applied to every file of interest."""

    pattern: str
    replacement: str

    def apply(self, text: str) -> str:
        return text.replace(self.pattern, self.replacement)


def build_rules(config: Configuration) -> list[PersonalizationRule]:
    # The e-mail placeholder contains the domain placeholder, so it goes first.
    return [
        PersonalizationRule("you@example.com", config["ACME_EMAIL"]),
        PersonalizationRule("example.com", config["DOMAIN"]),
        PersonalizationRule("192.168.1.100", config["NAS_IP"]),
        PersonalizationRule("/mnt/nas/media", config["NAS_HTPC_PATH"]),
        PersonalizationRule("/mnt/nas/photos", config["NAS_IMMICH_PATH"]),
        PersonalizationRule("k3s-node", config["NODE_NAME"]),
    ]


def is_personalized(
    repo_root: Path, *, sentinel_file: Path = SENTINEL_FILE, sentinel: str = SENTINEL
) -> bool:
    path = repo_root / sentinel_file
    try:
        return sentinel not in path.read_text(encoding="utf-8", errors="surrogateescape")
    except FileNotFoundError:
        return True


def iter_candidate_files(
    repo_root: Path, suffixes: Sequence[str] = FILE_SUFFIXES
) -> Iterator[Path]:
    for path in sorted(repo_root.rglob("*")):
        if ".git" in path.relative_to(repo_root).parts:
            continue
        if path.suffix in suffixes and path.is_file():
            yield path


def personalize(
    repo_root: Path,
    rules: Iterable[PersonalizationRule],
    *,
    sentinel_file: Path = SENTINEL_FILE,
    sentinel: str = SENTINEL,
) -> list[Path]:
    """Apply ``rules`` in place and return the files that changed.

    A tree whose sentinel file no longer carries the placeholder is left
    untouched. A failed write aborts the pass; files already rewritten keep
    their new content. Bytes that are not UTF-8 are carried through unchanged.
    """

    if is_personalized(repo_root, sentinel_file=sentinel_file, sentinel=sentinel):
        log("  already personalized - skipping")
        return []

    ordered = list(rules)
    log("  replacing placeholders with your values...")
    changed: list[Path] = []
    for path in iter_candidate_files(repo_root):
        original = path.read_text(encoding="utf-8", errors="surrogateescape")
        updated = original
        for rule in ordered:
            updated = rule.apply(updated)
        if updated != original:
            path.write_text(updated, encoding="utf-8", errors="surrogateescape")
            changed.append(path)
    log(f"  personalization complete ({len(changed)} files updated)")
    return changed


__all__ = [
    "FILE_SUFFIXES",
    "PersonalizationRule",
    "SENTINEL",
    "SENTINEL_FILE",
    "build_rules",
    "is_personalized",
    "iter_candidate_files",
    "personalize",
]
