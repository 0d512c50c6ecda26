"""Tests for the sync engine: discovery, backfill, derived collections."""

from __future__ import annotations

from unittest.mock import patch

import sqlalchemy as sa

from comicsync.errors import DecodeError, NetworkError
from comicsync.models import Done, Progress, Reset
from conftest import make_comic


class TestRefresh:
    def test_gap_is_cached_and_mirrored_in_offline_mode(self, sync, prefs, client, mirror, settings) -> None:
        settings.full_offline_enabled = True
        prefs.set_newest(5)
        sync.newest_number.set(5)
        client.fetch_newest_number.return_value = 8
        cached = []
        sync.comic_cached.subscribe(lambda comic: cached.append(comic.number))

        assert sync.refresh() == 8

        assert prefs.newest == 8
        assert sync.newest == 8
        assert sync.new_comic_found.poll() is True
        assert sync.new_comic_found.poll() is False
        for number in (6, 7, 8):
            assert sync.store.get(number) is not None
            assert mirror.image_path(number).exists()
        assert sorted(cached) == [6, 7, 8]
        assert sorted(call.args[0] for call in client.fetch_comic.call_args_list) == [6, 7, 8]

    def test_offline_gap_reaches_observers(self, sync, client, settings) -> None:
        settings.full_offline_enabled = True
        client.fetch_newest_number.return_value = 60
        seen = []
        sync.comics.subscribe(lambda containers: seen.append(sum(c.has_comic for c in containers)))
        unread = []
        sync.unread_comics.subscribe(lambda containers: unread.append(len(containers)))

        sync.refresh()

        assert sync.store.count() == 60
        assert seen[-1] == 60
        assert all(c.has_comic for c in sync.comics.value)
        assert unread[-1] == 60

    def test_online_mode_only_updates_newest(self, sync, prefs, client) -> None:
        prefs.set_newest(5)
        sync.newest_number.set(5)
        client.fetch_newest_number.return_value = 8

        sync.refresh()

        assert prefs.newest == 8
        assert sync.store.count() == 0
        client.fetch_comic.assert_not_called()

    def test_first_sync_does_not_pulse(self, sync, prefs, client) -> None:
        client.fetch_newest_number.return_value = 2900
        assert sync.refresh() == 2900
        assert prefs.newest == 2900
        assert sync.new_comic_found.poll() is False

    def test_no_new_comic(self, sync, prefs, client) -> None:
        prefs.set_newest(10)
        sync.newest_number.set(10)
        client.fetch_newest_number.return_value = 10

        assert sync.refresh() == 10
        assert sync.new_comic_found.poll() is False

    def test_failure_leaves_state_unchanged(self, sync, prefs, client, log) -> None:
        prefs.set_newest(10)
        sync.newest_number.set(10)
        client.fetch_newest_number.side_effect = NetworkError("offline")

        assert sync.refresh() is None
        assert prefs.newest == 10
        assert sync.new_comic_found.poll() is False
        log.exception.assert_called_once()

    def test_offline_failure_is_isolated(self, sync, prefs, client, settings) -> None:
        settings.full_offline_enabled = True
        prefs.set_newest(1)
        sync.newest_number.set(1)
        client.fetch_newest_number.return_value = 4

        def fetch(number):
            if number == 3:
                raise DecodeError("bad payload", number=3)
            return make_comic(number)

        client.fetch_comic.side_effect = fetch

        sync.refresh()

        assert sync.store.get(2) is not None
        assert sync.store.get(3) is None
        assert sync.store.get(4) is not None
        assert prefs.newest == 4


class TestCacheAll:
    def test_backfills_missing_comics_and_transcripts(self, sync, store, client) -> None:
        sync.newest_number.set(5)
        store.insert([make_comic(1, transcript="known"), make_comic(2)])

        steps = list(sync.cache_all())

        first_pass = steps[: steps.index(Reset())]
        assert first_pass == [Progress(1, 3), Progress(2, 3), Progress(3, 3)]
        second_pass = steps[steps.index(Reset()) + 1 : -1]
        assert second_pass[0] == Progress(0, 4)
        assert second_pass[-1] == Progress(4, 4)
        assert steps[-1] == Done(failed=())

        assert sorted(store.get_all_as_map()) == [1, 2, 3, 4, 5]
        assert store.get(1).transcript == "known"
        assert store.get(5).transcript == "Transcript 5"
        assert sorted(call.args[0] for call in client.fetch_comic.call_args_list) == [3, 4, 5]

    def test_backfill_does_not_requery_per_comic(self, sync, store, engine) -> None:
        selects = []

        def record(conn, cursor, statement, *args) -> None:
            if statement.lstrip().upper().startswith("SELECT"):
                selects.append(statement)

        sa.event.listen(engine, "before_cursor_execute", record)
        sync.newest_number.set(300)

        steps = list(sync.cache_all())

        assert steps[-1] == Done(failed=())
        assert store.count() == 300
        assert len(selects) < 10

    def test_failed_ids_are_reported(self, sync, store, client) -> None:
        sync.newest_number.set(4)

        def fetch(number):
            if number == 2:
                raise NetworkError("timeout", number=2)
            return make_comic(number)

        client.fetch_comic.side_effect = fetch

        steps = list(sync.cache_all())

        assert sorted(store.get_all_as_map()) == [1, 3, 4]
        assert steps[-1] == Done(failed=(2,))

    def test_transcript_failure_keeps_sentinel(self, sync, store, client) -> None:
        sync.newest_number.set(1)
        store.insert(make_comic(1))
        client.fetch_transcript.side_effect = NetworkError("down", number=1)

        steps = list(sync.cache_all())

        assert store.get(1).transcript == ""
        assert steps[-1] == Done(failed=(1,))


class TestCacheOne:
    def test_fetches_missing_comic(self, sync, store) -> None:
        cached = []
        sync.comic_cached.subscribe(cached.append)

        comic = sync.cache_one(9)

        assert comic.number == 9
        assert store.get(9) is not None
        assert [c.number for c in cached] == [9]

    def test_existing_comic_is_reemitted_without_fetch(self, sync, store, client) -> None:
        store.insert(make_comic(9, title="Already here"))
        cached = []
        sync.comic_cached.subscribe(cached.append)

        comic = sync.cache_one(9)

        assert comic.title == "Already here"
        assert [c.title for c in cached] == ["Already here"]
        client.fetch_comic.assert_not_called()

    def test_fetch_failure_returns_none(self, sync, client) -> None:
        client.fetch_comic.side_effect = NetworkError("down", number=9)
        assert sync.cache_one(9) is None


class TestDerivedCollections:
    def test_containers_span_newest_range(self, sync, store) -> None:
        store.insert([make_comic(1), make_comic(3)])
        sync.newest_number.set(4)

        containers = sync.comics.value

        assert [c.number for c in containers] == [1, 2, 3, 4]
        assert [c.has_comic for c in containers] == [True, False, True, False]

    def test_containers_follow_store_and_newest(self, sync, store) -> None:
        seen = []
        sync.comics.subscribe(lambda containers: seen.append(len(containers)))
        sync.newest_number.set(2)
        store.insert(make_comic(1))
        assert seen == [0, 2, 2]
        assert sync.comics.value[0].comic.number == 1

    def test_favorites_and_unread(self, sync, store) -> None:
        store.insert([make_comic(1, read=True), make_comic(2, favorite=True), make_comic(3)])
        sync.newest_number.set(4)

        assert [c.number for c in sync.favorites.value] == [2]
        assert [c.number for c in sync.unread_comics.value] == [2, 3, 4]

    def test_set_favorite_mirrors_first(self, sync, store, mirror) -> None:
        store.insert(make_comic(1))
        assert sync.set_favorite(1, True) is True
        assert mirror.image_path(1).exists()
        assert sync.is_favorite(1) is True

    def test_set_read_skips_unchanged(self, sync, store) -> None:
        store.insert(make_comic(1))
        assert sync.set_read(1, True) is True
        assert sync.set_read(1, True) is False


class TestMisc:
    def test_transcript_is_cached(self, sync, store, client) -> None:
        store.insert(make_comic(1))
        comic = store.get(1)

        assert sync.get_or_cache_transcript(comic) == "Transcript 1"
        assert sync.get_or_cache_transcript(comic) == "Transcript 1"
        assert client.fetch_transcript.call_count == 1
        assert store.get(1).transcript == "Transcript 1"

    def test_random_number_in_range(self, sync) -> None:
        sync.newest_number.set(10)
        with patch("comicsync.sync.random.randint", return_value=7):
            assert sync.random_number() == 7
        assert sync.store.get(7) is not None

    def test_reddit_failure_returns_none(self, sync, client) -> None:
        client.find_reddit_thread.side_effect = NetworkError("down")
        assert sync.reddit_thread(make_comic(1)) is None

    def test_bookmark(self, sync, prefs) -> None:
        sync.set_bookmark(99)
        assert prefs.bookmark == 99

    def test_save_offline_images(self, sync, store, mirror) -> None:
        sync.newest_number.set(2)
        store.insert([make_comic(1), make_comic(2)])
        steps = list(sync.save_offline_images())
        assert steps[-1] == Done(failed=())
        assert mirror.image_path(2).exists()
