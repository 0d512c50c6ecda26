"""Persistent comic store with live queries over the ``comics`` table."""

from __future__ import annotations

import threading
from collections.abc import Iterable

import sqlalchemy as sa
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from comicsync.db import ComicRow
from comicsync.errors import StorageError
from comicsync.live import LiveValue
from comicsync.models import Comic

# Columns replaced on upsert
_UPSERT_COLS = ("title", "img_url", "alt_text", "transcript", "favorite", "read")
# Rows per INSERT statement, below SQLite's bound-parameter limit
_CHUNK_SIZE = 500

_COLUMNS = (
    ComicRow.number,
    ComicRow.title,
    ComicRow.img_url,
    ComicRow.alt_text,
    ComicRow.transcript,
    ComicRow.favorite,
    ComicRow.read,
)


def _to_comic(row: sa.Row) -> Comic:
    return Comic(
        number=row.number,
        title=row.title,
        img_url=row.img_url,
        alt_text=row.alt_text,
        transcript=row.transcript or "",
        favorite=bool(row.favorite),
        read=bool(row.read),
    )


class ComicStore:
    """Durable table of comics keyed by number.

    Every call runs in its own transaction. Writes go through one lock so
    concurrent writers are serialized; reads never take it. ``comics`` and
    ``favorites`` are refreshed after each write that changed a row.
    """

    def __init__(self, engine: sa.engine.Engine) -> None:
        self.engine = engine
        self._write_lock = threading.Lock()
        self.comics: LiveValue[list[Comic]] = LiveValue(loader=self._query_all)
        self.favorites: LiveValue[list[Comic]] = LiveValue(loader=self._query_favorites)

    # -- Queries ---------------------------------------------------------------

    def _select(self, *where: sa.ColumnElement[bool]) -> list[Comic]:
        with self.engine.connect() as conn:
            rows = conn.execute(sa.select(*_COLUMNS).where(*where).order_by(ComicRow.number)).fetchall()
        return [_to_comic(row) for row in rows]

    def _query_all(self) -> list[Comic]:
        return self._select()

    def _query_favorites(self) -> list[Comic]:
        return self._select(ComicRow.favorite.is_(True))

    def get_all(self) -> LiveValue[list[Comic]]:
        return self.comics

    def get_favorites(self) -> LiveValue[list[Comic]]:
        return self.favorites

    def get(self, number: int) -> Comic | None:
        found = self._select(ComicRow.number == number)
        return found[0] if found else None

    def get_all_as_map(self) -> dict[int, Comic]:
        """Non-reactive snapshot for batch scans."""
        return {comic.number: comic for comic in self._select()}

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(sa.select(sa.func.count()).select_from(ComicRow)).scalar() or 0

    def is_favorite(self, number: int) -> bool:
        with self.engine.connect() as conn:
            return bool(conn.execute(sa.select(ComicRow.favorite).where(ComicRow.number == number)).scalar())

    def is_read(self, number: int) -> bool:
        with self.engine.connect() as conn:
            return bool(conn.execute(sa.select(ComicRow.read).where(ComicRow.number == number)).scalar())

    def oldest_unread(self) -> Comic | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                sa.select(*_COLUMNS).where(ComicRow.read.is_(False)).order_by(ComicRow.number).limit(1)
            ).first()
        return _to_comic(row) if row else None

    def search(self, query: str) -> list[Comic]:
        """Exact number match, or substring match on title, alt text or transcript."""
        conditions = [
            ComicRow.title.contains(query, autoescape=True),
            ComicRow.alt_text.contains(query, autoescape=True),
            ComicRow.transcript.contains(query, autoescape=True),
        ]
        if query.strip().isdecimal():
            conditions.append(ComicRow.number == int(query))
        return self._select(sa.or_(*conditions))

    # -- Writes ----------------------------------------------------------------

    def _write(self, numbers: list[int], stmt_fn) -> int:
        """Run ``stmt_fn(conn)`` under the write lock; refresh live queries if rows changed."""
        with self._write_lock:
            try:
                with self.engine.begin() as conn:
                    changed = stmt_fn(conn)
            except SQLAlchemyError as exc:
                raise StorageError(
                    f"write failed for comics {numbers}: {exc}",
                    number=numbers[0] if len(numbers) == 1 else None,
                ) from exc
        # Notify outside the lock so subscribers may write back
        if changed:
            self.comics.refresh()
            self.favorites.refresh()
        return changed

    def insert(self, comics: Comic | Iterable[Comic]) -> int:
        """Upsert one comic or a batch of comics in a single transaction."""
        batch = [comics] if isinstance(comics, Comic) else list(comics)
        if not batch:
            return 0

        def upsert(conn: sa.Connection) -> int:
            for start in range(0, len(batch), _CHUNK_SIZE):
                chunk = batch[start : start + _CHUNK_SIZE]
                stmt = sqlite_insert(ComicRow).values([comic.model_dump() for comic in chunk])
                stmt = stmt.on_conflict_do_update(
                    index_elements=["number"],
                    set_={col: getattr(stmt.excluded, col) for col in _UPSERT_COLS},
                )
                conn.execute(stmt)
            return len(batch)

        return self._write([comic.number for comic in batch], upsert)

    def _set_flag(self, number: int, column: sa.orm.InstrumentedAttribute, value: bool) -> bool:
        def update(conn: sa.Connection) -> int:
            result = conn.execute(
                sa.update(ComicRow)
                .where(ComicRow.number == number, column.is_not(value))
                .values({column.key: value})
            )
            return result.rowcount

        return self._write([number], update) > 0

    def set_read(self, number: int, read: bool) -> bool:
        """Returns True if the flag changed."""
        return self._set_flag(number, ComicRow.read, read)

    def set_favorite(self, number: int, favorite: bool) -> bool:
        """Returns True if the flag changed. Unknown numbers are a no-op."""
        return self._set_flag(number, ComicRow.favorite, favorite)

    def remove_all_favorites(self) -> int:
        def clear(conn: sa.Connection) -> int:
            return conn.execute(
                sa.update(ComicRow).where(ComicRow.favorite.is_(True)).values(favorite=False)
            ).rowcount

        return self._write([], clear)

    def set_transcript(self, number: int, transcript: str) -> bool:
        """Fill in a fetched transcript without touching the comic's flags."""

        def update(conn: sa.Connection) -> int:
            return conn.execute(
                sa.update(ComicRow).where(ComicRow.number == number).values(transcript=transcript)
            ).rowcount

        return self._write([number], update) > 0
