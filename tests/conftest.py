"""Shared fixtures: a fresh SQLite database per test plus common fakes."""

from __future__ import annotations

import io
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from PIL import Image

from comicsync.db import get_engine, init_db
from comicsync.mirror import AssetMirror
from comicsync.models import Comic
from comicsync.prefs import Prefs
from comicsync.remote import XkcdClient
from comicsync.settings import Settings
from comicsync.store import ComicStore
from comicsync.sync import ComicSync


def make_comic(number: int, **overrides) -> Comic:
    values = dict(
        number=number,
        title=f"Comic {number}",
        img_url=f"https://imgs.xkcd.com/comics/comic_{number}.png",
        alt_text=f"Alt text {number}",
    )
    values.update(overrides)
    return Comic(**values)


def png_bytes() -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (2, 2), color=(255, 255, 255)).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def engine(tmp_path: Path):
    """Per-test SQLite engine with all tables created."""
    eng = get_engine(f"sqlite:///{tmp_path / 'comics.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> ComicStore:
    return ComicStore(engine)


@pytest.fixture
def prefs(engine) -> Prefs:
    return Prefs(engine)


@pytest.fixture
def log() -> MagicMock:
    return MagicMock()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'comics.db'}",
        log_dir=str(tmp_path / "logs"),
        offline_dir=str(tmp_path / "offline"),
        max_workers=4,
    )


@pytest.fixture
def client() -> MagicMock:
    """XkcdClient double serving comics 1..N with a PNG image for each."""
    fake = MagicMock(spec=XkcdClient)
    fake.fetch_comic.side_effect = lambda number: make_comic(number)
    fake.fetch_image.return_value = png_bytes()
    fake.fetch_transcript.side_effect = lambda number: f"Transcript {number}"
    return fake


@pytest.fixture
def mirror(store, client, settings, log) -> AssetMirror:
    return AssetMirror(store, client, settings.offline_dir, log, max_workers=4)


@pytest.fixture
def sync(store, prefs, client, mirror, settings, log) -> ComicSync:
    return ComicSync(store, prefs, client, mirror, settings, log)
