"""Helpers for locating symbol-model documents on disk."""

from __future__ import annotations

from pathlib import Path
from typing import Generator, Iterable

from .fileio import JSON_SUFFIXES, YAML_SUFFIXES

DOCUMENT_SUFFIXES = JSON_SUFFIXES + YAML_SUFFIXES


def iter_document_files(
    paths: Iterable[str], extensions: tuple[str, ...] = DOCUMENT_SUFFIXES
) -> Generator[Path, None, None]:
    """Yield document files given directly or found beneath directories, sorted per root."""

    for root in paths:
        path = Path(root)
        if path.is_file():
            yield path
            continue
        for candidate in sorted(path.rglob("*")):
            if candidate.suffix.lower() in extensions and candidate.is_file():
                yield candidate
