"""One-shot copy of the legacy comic database into the comics table."""

from __future__ import annotations

from typing import Protocol

import sqlalchemy as sa
import structlog
from pydantic import BaseModel

from comicsync.errors import MigrationError
from comicsync.models import Comic
from comicsync.prefs import Prefs
from comicsync.store import ComicStore

LEGACY_TABLE = "realm_comics"


class LegacyComic(BaseModel):
    comic_number: int
    title: str | None = None
    url: str | None = None
    alt_text: str | None = None
    transcript: str | None = None
    is_favorite: bool = False
    is_read: bool = False

    def to_comic(self) -> Comic:
        return Comic(
            number=self.comic_number,
            title=self.title or "",
            img_url=self.url or "",
            alt_text=self.alt_text or "",
            transcript=self.transcript or "",
            favorite=self.is_favorite,
            read=self.is_read,
        )


class LegacySource(Protocol):
    """Anything that can hand over every legacy record at once."""

    def read_all(self) -> list[LegacyComic]:
        ...


class SqliteLegacySource:
    """Legacy records living in a separate SQLite file."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def read_all(self) -> list[LegacyComic]:
        engine = sa.create_engine(f"sqlite:///{self.db_path}")
        try:
            with engine.connect() as conn:
                if not sa.inspect(conn).has_table(LEGACY_TABLE):
                    # Fresh install: the legacy database was never populated
                    return []
                table = sa.Table(LEGACY_TABLE, sa.MetaData(), autoload_with=conn)
                rows = conn.execute(sa.select(table)).mappings().fetchall()
            return [LegacyComic.model_validate(dict(row)) for row in rows]
        except (sa.exc.SQLAlchemyError, ValueError) as exc:
            raise MigrationError(f"cannot read legacy database {self.db_path}: {exc}") from exc
        finally:
            engine.dispose()


def migrate_legacy_database(
    store: ComicStore,
    prefs: Prefs,
    source: LegacySource,
    log: structlog.stdlib.BoundLogger,
    *,
    force: bool = False,
) -> int | None:
    """Copy legacy comics once; set the done flag only after a successful insert.

    Returns the number of migrated comics, 0 if already done, None on failure.
    Safe to re-run: inserts are upserts keyed by number.
    """
    if prefs.migration_done and not force:
        return 0

    try:
        comics = [legacy.to_comic() for legacy in source.read_all()]
        log.info("migration.starting", comics=len(comics))
        store.insert(comics)
        prefs.set_migration_done()
    except Exception:
        log.exception("migration.failed")
        return None

    log.info("migration.complete", comics=len(comics))
    return len(comics)
