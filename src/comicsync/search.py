"""Text search over cached comics with highlighted preview snippets."""

from __future__ import annotations

import re

from comicsync.models import ComicContainer
from comicsync.store import ComicStore

# Words kept on each side of the first hit
WINDOW = 6
# Shorter queries must match a whole word, longer ones any substring
WHOLE_WORD_BELOW = 5


def _normalize(text: str) -> str:
    return (
        text.replace(".", ". ")
        .replace("?", "? ")
        .replace("]]", " ")
        .replace("[[", " ")
        .replace("{{", " ")
        .replace("}}", " ")
    )


def build_preview(query: str, text: str) -> str:
    """Return ``...<words around the first hit>...`` with the query wrapped in <b></b>.

    An unusable query (one that is not a valid pattern) yields a single space.
    """
    first_word = query.split(" ")[0].lower()
    words = _normalize(text).lower().split(" ")

    try:
        pattern = re.compile(rf".*\b{first_word}\b.*") if len(query) < WHOLE_WORD_BELOW else None
    except re.error:
        return " "

    i = 0
    while i < len(words):
        word = words[i]
        found = pattern.fullmatch(word) is not None if pattern else first_word in word
        if found:
            break
        i += 1

    start = 0 if i < WINDOW else i - WINDOW
    end = len(words) if len(words) - i < WINDOW else i + WINDOW
    snippet = "".join(f"{word} " for word in words[start:end])
    return "..." + snippet.replace(query, f"<b>{query}</b>") + "..."


def search_comics(store: ComicStore, query: str) -> list[ComicContainer]:
    results = []
    for comic in store.search(query):
        if query in comic.title:
            # The title is shown next to the preview already
            preview = str(comic.number)
        elif query in comic.alt_text:
            preview = build_preview(query, comic.alt_text)
        else:
            preview = build_preview(query, comic.transcript)
        results.append(ComicContainer(number=comic.number, comic=comic, search_preview=preview))
    return results
