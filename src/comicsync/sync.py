"""Sync engine: discover new comics, backfill the store, mirror images offline."""

from __future__ import annotations

import concurrent.futures
import random
from collections.abc import Iterable, Iterator
from pathlib import Path

import structlog

from comicsync import favorites as favorites_io
from comicsync import search as search_index
from comicsync.errors import ComicSyncError
from comicsync.live import EventStream, LiveValue, Pulse, combine_latest
from comicsync.migration import LegacySource, migrate_legacy_database
from comicsync.mirror import AssetMirror
from comicsync.models import (
    Comic,
    ComicContainer,
    Done,
    Progress,
    Reset,
    SyncProgress,
    to_containers,
    to_range_containers,
)
from comicsync.prefs import Prefs
from comicsync.remote import XkcdClient
from comicsync.settings import Settings
from comicsync.store import ComicStore


def _unread(containers: list[ComicContainer]) -> list[ComicContainer]:
    return [c for c in containers if c.comic is None or not c.comic.read]


class ComicSync:
    """Coordinates the remote adapter, the store, and the image mirror.

    Public methods never raise adapter or storage errors: failures are logged
    with the comic number and reported as None / False / ``Done.failed``.
    """

    def __init__(
        self,
        store: ComicStore,
        prefs: Prefs,
        client: XkcdClient,
        mirror: AssetMirror,
        settings: Settings,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        self.store = store
        self.prefs = prefs
        self.client = client
        self.mirror = mirror
        self.settings = settings
        self.log = log

        self.newest_number: LiveValue[int] = LiveValue(prefs.newest)
        self.new_comic_found = Pulse()
        self.comic_cached: EventStream[Comic] = EventStream()

        self.comics: LiveValue[list[ComicContainer]] = combine_latest(
            store.comics, self.newest_number, to_range_containers
        )
        self.favorites: LiveValue[list[ComicContainer]] = store.favorites.map(to_containers)
        self.unread_comics: LiveValue[list[ComicContainer]] = self.comics.map(_unread)

    @property
    def newest(self) -> int:
        return self.newest_number.value

    # -- Discovery ---------------------------------------------------------------

    def refresh(self) -> int | None:
        """Check upstream for a newer comic. Returns the newest number, None on failure."""
        try:
            latest = self.client.fetch_newest_number()
        except ComicSyncError:
            self.log.exception("sync.newest_fetch_failed")
            return None

        previous = self.newest
        if latest <= previous:
            if latest < previous:
                self.log.warning("sync.newest_went_backwards", latest=latest, known=previous)
            return previous

        # Persist first so every stored comic stays within 1..newest
        self.newest_number.set(self.prefs.set_newest(latest))
        self.log.info("sync.newest_updated", previous=previous, newest=latest)

        if previous != 0:
            self.new_comic_found.fire()
            self.log.info("sync.new_comic_found", newest=latest)

        if self.settings.full_offline_enabled:
            self._cache_offline(range(previous + 1, latest + 1))

        return latest

    def _cache_offline_one(self, number: int) -> Comic | None:
        try:
            comic = self.client.fetch_comic(number)
            self.store.insert(comic)
        except ComicSyncError:
            self.log.exception("sync.offline_cache_failed", number=number)
            return None
        self.mirror.ensure_mirrored(number)
        self.comic_cached.emit(comic)
        return comic

    def _cache_offline(self, numbers: Iterable[int]) -> None:
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            futures = [executor.submit(self._cache_offline_one, n) for n in numbers]
            cached = sum(1 for f in concurrent.futures.as_completed(futures) if f.result() is not None)
        self.log.info("sync.offline_cached", cached=cached, requested=len(futures))

    # -- Caching -----------------------------------------------------------------

    def _download(self, number: int) -> Comic | None:
        try:
            return self.client.fetch_comic(number)
        except ComicSyncError:
            self.log.exception("sync.download_failed", number=number)
            return None

    def cache_one(self, number: int) -> Comic | None:
        """Fetch and store a single comic unless it is already cached."""
        existing = self.store.get(number)
        if existing is not None:
            # Only expected while a legacy migration is still inserting
            self.comic_cached.emit(existing)
            return existing

        comic = self._download(number)
        if comic is None:
            return None
        try:
            self.store.insert(comic)
        except ComicSyncError:
            self.log.exception("sync.store_failed", number=number)
            return None
        self.comic_cached.emit(comic)
        return comic

    def get_or_cache_transcript(self, comic: Comic) -> str | None:
        if comic.transcript != "":
            return comic.transcript
        try:
            transcript = self.client.fetch_transcript(comic.number)
            self.store.set_transcript(comic.number, transcript)
        except ComicSyncError:
            self.log.exception("sync.transcript_failed", number=comic.number)
            return None
        comic.transcript = transcript
        return transcript

    def cache_all(self) -> Iterator[SyncProgress]:
        """Backfill every missing comic in ``1..newest``, then every missing transcript."""
        all_comics = self.store.get_all_as_map()
        newest = self.newest
        failed: list[int] = []

        missing = [n for n in range(1, newest + 1) if n not in all_comics]
        total = len(missing)
        self.log.info("sync.cache_all_starting", missing=total, newest=newest)

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=self.settings.max_workers)
        try:
            futures = {executor.submit(self._download, n): n for n in missing}
            inserted = 0
            for future in concurrent.futures.as_completed(futures):
                comic = future.result()
                if comic is None:
                    failed.append(futures[future])
                    continue
                try:
                    self.store.insert(comic)
                except ComicSyncError:
                    self.log.exception("sync.store_failed", number=comic.number)
                    failed.append(comic.number)
                    continue
                all_comics[comic.number] = comic
                inserted += 1
                yield Progress(inserted, total)

            yield Reset()

            without_transcript = [
                all_comics[n] for n in range(1, newest + 1) if n in all_comics and all_comics[n].transcript == ""
            ]
            total = len(without_transcript)
            yield Progress(0, total)

            futures = {executor.submit(self.get_or_cache_transcript, c): c.number for c in without_transcript}
            for index, future in enumerate(concurrent.futures.as_completed(futures), start=1):
                if future.result() is None:
                    failed.append(futures[future])
                yield Progress(index, total)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        self.log.info("sync.cache_all_complete", failed=len(failed))
        yield Done(failed=tuple(sorted(set(failed))))

    # -- Offline images ----------------------------------------------------------

    def save_offline_images(self) -> Iterator[SyncProgress]:
        return self.mirror.ensure_mirrored_all(self.newest)

    def offline_path(self, number: int) -> Path:
        return self.mirror.offline_path(number)

    def path_for_sharing(self, number: int) -> Path | None:
        return self.mirror.path_for_sharing(number)

    # -- Flags -------------------------------------------------------------------

    def is_favorite(self, number: int) -> bool:
        return self.store.is_favorite(number)

    def set_read(self, number: int, read: bool) -> bool:
        try:
            return self.store.set_read(number, read)
        except ComicSyncError:
            self.log.exception("sync.set_read_failed", number=number)
            return False

    def set_favorite(self, number: int, favorite: bool) -> bool:
        # Favorites stay viewable offline
        if favorite:
            self.mirror.ensure_mirrored(number)
        try:
            return self.store.set_favorite(number, favorite)
        except ComicSyncError:
            self.log.exception("sync.set_favorite_failed", number=number)
            return False

    def remove_all_favorites(self) -> int:
        try:
            return self.store.remove_all_favorites()
        except ComicSyncError:
            self.log.exception("sync.remove_favorites_failed")
            return 0

    def set_bookmark(self, number: int) -> None:
        self.prefs.set_bookmark(number)

    def oldest_unread(self) -> Comic | None:
        return self.store.oldest_unread()

    def random_number(self) -> int:
        """Pick a random comic in ``1..newest`` and start caching it."""
        number = random.randint(1, max(self.newest, 1))
        self.cache_one(number)
        return number

    # -- Search, favorites files, migration, reddit --------------------------------

    def search(self, query: str) -> list[ComicContainer]:
        return search_index.search_comics(self.store, query)

    def export_favorites(self, path: str | Path) -> bool:
        try:
            favorites_io.export_favorites(self.favorites.value, path)
        except OSError:
            self.log.exception("sync.export_favorites_failed", path=str(path))
            return False
        return True

    def import_favorites(self, path: str | Path) -> favorites_io.ImportResult | None:
        try:
            return favorites_io.import_favorites_file(self.store, path, self.log)
        except (OSError, UnicodeDecodeError):
            self.log.exception("sync.import_favorites_failed", path=str(path))
            return None

    def migrate_legacy_database(self, source: LegacySource) -> int | None:
        return migrate_legacy_database(
            self.store, self.prefs, source, self.log, force=self.settings.force_migration
        )

    def reddit_thread(self, comic: Comic) -> str | None:
        try:
            return self.client.find_reddit_thread(comic)
        except ComicSyncError:
            self.log.exception("sync.reddit_thread_failed", number=comic.number)
            return None
