"""Database engine, ORM tables, and connection management."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


metadata = Base.metadata


class ComicRow(Base):
    __tablename__ = "comics"

    number: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=False)
    title: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="")
    img_url: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="")
    alt_text: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="")
    transcript: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="")
    favorite: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())
    read: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())


class Preference(Base):
    __tablename__ = "preferences"

    key: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    value: Mapped[str] = mapped_column(sa.Text, nullable=False)


sa.Index("idx_comics_favorite", ComicRow.favorite, sqlite_where=ComicRow.favorite.is_(True))
sa.Index("idx_comics_read", ComicRow.read)


def _set_sqlite_pragmas(dbapi_conn, connection_record):  # noqa: N802
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def get_engine(database_url: str) -> sa.engine.Engine:
    """Create a SQLAlchemy engine; SQLite connections get WAL + busy timeout."""
    engine = sa.create_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def init_db(engine: sa.engine.Engine) -> None:
    """Create missing tables. Alembic owns schema changes after that."""
    metadata.create_all(engine)
