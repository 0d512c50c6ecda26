"""Tests for search previews and the store-backed search."""

from __future__ import annotations

from comicsync.search import build_preview, search_comics
from conftest import make_comic


class TestBuildPreview:
    def test_highlights_hit(self) -> None:
        preview = build_preview("bob", "Alice talks to Bob about cryptography.")
        assert preview.startswith("...alice talks to <b>bob</b> about")
        assert preview.endswith("...")

    def test_window_is_clipped_around_first_hit(self) -> None:
        words = [f"w{i}" for i in range(21)]
        words[10] = "needle"

        preview = build_preview("needle", " ".join(words))

        assert preview == "...w4 w5 w6 w7 w8 w9 <b>needle</b> w11 w12 w13 w14 w15 ..."

    def test_short_query_matches_whole_words_only(self) -> None:
        text = "concatenate " + " ".join(f"f{i}" for i in range(10)) + " cat"

        preview = build_preview("cat", text)

        assert preview == "...f4 f5 f6 f7 f8 f9 <b>cat</b> ..."

    def test_long_query_matches_substrings(self) -> None:
        text = " ".join(f"f{i}" for i in range(10)) + " cryptography"

        preview = build_preview("crypto", text)

        assert preview == "...f4 f5 f6 f7 f8 f9 <b>crypto</b>graphy ..."

    def test_wiki_markup_is_split_into_words(self) -> None:
        preview = build_preview("link", "see [[link]]here")
        assert "<b>link</b>" in preview
        assert "[[" not in preview

    def test_malformed_query_yields_blank(self) -> None:
        assert build_preview("(", "anything at all") == " "


class TestSearchComics:
    def test_preview_source_depends_on_where_the_hit_is(self, store) -> None:
        store.insert(
            [
                make_comic(1, title="xkcd", alt_text=""),
                make_comic(2, title="Other", alt_text="about xkcd stuff"),
                make_comic(3, title="Third", alt_text="", transcript="we read xkcd daily"),
                make_comic(4, title="Unrelated", alt_text="nothing"),
            ]
        )

        results = {c.number: c.search_preview for c in search_comics(store, "xkcd")}

        assert results == {
            1: "1",
            2: "...about <b>xkcd</b> stuff ...",
            3: "...we read <b>xkcd</b> daily ...",
        }

    def test_results_carry_comics(self, store) -> None:
        store.insert(make_comic(7, title="Exploits of a Mom"))

        results = search_comics(store, "Mom")

        assert [c.number for c in results] == [7]
        assert results[0].has_comic

    def test_no_match(self, store) -> None:
        store.insert(make_comic(1))
        assert search_comics(store, "zeppelin") == []
