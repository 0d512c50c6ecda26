"""Favorites import/export in the ``<number> - <title>`` line format."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog

from comicsync.errors import StorageError
from comicsync.models import ComicContainer
from comicsync.store import ComicStore

SEPARATOR = " - "


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    failed: int = 0


def format_favorites(favorites: Iterable[ComicContainer], newline: str = os.linesep) -> str:
    lines = []
    for fav in favorites:
        title = fav.comic.title if fav.comic else ""
        lines.append(f"{fav.number}{SEPARATOR}{title}{newline}")
    return "".join(lines)


def export_favorites(favorites: Iterable[ComicContainer], path: str | Path) -> int:
    """Write favorites to ``path`` as UTF-8. Returns the number of lines written."""
    favorites = list(favorites)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(format_favorites(favorites))
    return len(favorites)


def import_favorites(store: ComicStore, lines: Iterable[str], log: structlog.stdlib.BoundLogger) -> ImportResult:
    """Mark every number found at the start of a line as favorite.

    Bad lines are logged and counted; they never abort the import. Numbers that
    are not in the store are skipped.
    """
    result = ImportResult()
    for lineno, line in enumerate(lines, start=1):
        line = line.rstrip("\r\n")
        if not line.strip():
            continue
        try:
            number = int(line.split(SEPARATOR)[0].strip())
        except ValueError:
            log.warning("favorites.malformed_line", lineno=lineno, line=line)
            result.failed += 1
            continue

        try:
            store.set_favorite(number, True)
        except StorageError:
            log.exception("favorites.store_failed", lineno=lineno, number=number)
            result.failed += 1
            continue

        if store.is_favorite(number):
            result.imported += 1
        else:
            log.info("favorites.unknown_comic", lineno=lineno, number=number)
            result.skipped += 1

    log.info("favorites.imported", imported=result.imported, skipped=result.skipped, failed=result.failed)
    return result


def import_favorites_file(store: ComicStore, path: str | Path, log: structlog.stdlib.BoundLogger) -> ImportResult:
    with open(path, encoding="utf-8") as f:
        return import_favorites(store, f, log)
