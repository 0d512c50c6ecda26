"""Persisted preference flags stored in the ``preferences`` table."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from comicsync.db import Preference

NEWEST = "newest"
MIGRATION_DONE = "migration_done"
LAST_COMIC = "last_comic"
BOOKMARK = "bookmark"


class Prefs:
    """Typed access to the key/value preferences table."""

    def __init__(self, engine: sa.engine.Engine) -> None:
        self.engine = engine

    def _get(self, key: str) -> str | None:
        with self.engine.connect() as conn:
            return conn.execute(sa.select(Preference.value).where(Preference.key == key)).scalar()

    def _put(self, conn: sa.Connection, key: str, value: str) -> None:
        stmt = sqlite_insert(Preference).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(index_elements=["key"], set_={"value": stmt.excluded.value})
        conn.execute(stmt)

    def _get_int(self, key: str) -> int:
        raw = self._get(key)
        return int(raw) if raw else 0

    @property
    def newest(self) -> int:
        return self._get_int(NEWEST)

    def set_newest(self, number: int) -> int:
        """Persist ``number`` unless a larger one is already stored. Returns the stored value."""
        with self.engine.begin() as conn:
            current = conn.execute(sa.select(Preference.value).where(Preference.key == NEWEST)).scalar()
            current_int = int(current) if current else 0
            if number > current_int:
                self._put(conn, NEWEST, str(number))
                return number
            return current_int

    @property
    def migration_done(self) -> bool:
        return self._get(MIGRATION_DONE) == "1"

    def set_migration_done(self) -> None:
        with self.engine.begin() as conn:
            self._put(conn, MIGRATION_DONE, "1")

    @property
    def last_comic(self) -> int:
        # Written by the reader UI; read-only here
        return self._get_int(LAST_COMIC)

    @property
    def bookmark(self) -> int:
        return self._get_int(BOOKMARK)

    def set_bookmark(self, number: int) -> None:
        with self.engine.begin() as conn:
            self._put(conn, BOOKMARK, str(number))
