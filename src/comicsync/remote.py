"""Remote source adapter: xkcd JSON API, explainxkcd transcripts, reddit threads."""

from __future__ import annotations

import re

import httpx
import structlog
from bs4 import BeautifulSoup
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from comicsync.errors import DecodeError, NetworkError
from comicsync.http import create_http_client
from comicsync.models import Comic
from comicsync.settings import Settings

# Served locally: the upstream page embeds the whole interactive transcript
TRANSCRIPT_2131 = (
    "[This was an interactive and dynamic comic during April 1st from its release until its completion. "
    "But the final and current image, will be the official image to transcribe. But the dynamic part of the "
    "comic as well as the \"error image\" displayed to services that could not render the dynamic comic is "
    "also transcribed here below.]\n\n"
    "[The final picture shows the winner of the gold medal in the Emojidome bracket tournament, as well as "
    "the runner up with the silver medal. There is no text. The winner is the \"Space\", \"Stars\" or "
    "\"Milky Way\" emoji, which is shown with a blue band on top of a dark blue band on top of an almost "
    "black background, indicating the light band of the Milky Way in the night sky. Stars (in both five "
    "point star shape and as dots) in light blue are spread out in all three bands of color. The large gold "
    "medal with its red neck string, is floating close to the middle of the picture, lacking any kind of "
    "neck in space to tie it around. To the left of the gold medal is the runner up, the brown Hedgehog, "
    "with light-brown face. It clutches the smaller silver medal, also with red neck string, which floats "
    "out there in space. The hedgehog with medal is depicted small enough to fit inside the neck string on "
    "the gold medal.]"
)

_TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})
_TRANSCRIPT_LABEL = re.compile(r"^\s*Transcript\[edit]")


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in _TRANSIENT_STATUSES


def clean_transcript(html: str) -> str:
    """Turn an explainxkcd transcript section into plain text."""
    html = html.replace("\n", "<br />").split('<span id="Discussion"')[0]
    soup = BeautifulSoup(html, "lxml")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    text = soup.get_text()
    return _TRANSCRIPT_LABEL.sub("", text).strip()


def find_transcript_section(sections: list[dict]) -> str | None:
    """Return the section index of the "Transcript" heading, if present."""
    for section in sections:
        if section.get("line", "").strip() == "Transcript":
            return str(section.get("index"))
    return None


class XkcdClient:
    """Fetch comics, transcripts and images.

    Every public method either returns a value or raises ``NetworkError`` /
    ``DecodeError``; raw httpx or JSON errors never escape.
    """

    def __init__(self, settings: Settings, log: structlog.stdlib.BoundLogger, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self.log = log
        self.client = client or create_http_client(
            proxy_url=settings.proxy_url or None,
            timeout=settings.http_timeout,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> XkcdClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _get(self, url: str, params: dict | None = None) -> httpx.Response:
        resp = self.client.get(url, params=params)
        resp.raise_for_status()
        return resp

    def _get_json(self, url: str, *, number: int | None = None, params: dict | None = None) -> dict:
        try:
            resp = self._get(url, params=params)
        except httpx.HTTPError as exc:
            raise NetworkError(f"GET {url} failed: {exc}", number=number) from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise DecodeError(f"GET {url} returned invalid JSON", number=number) from exc
        if not isinstance(data, dict):
            raise DecodeError(f"GET {url} returned {type(data).__name__}, expected object", number=number)
        return data

    # -- xkcd ------------------------------------------------------------------

    def _decode_comic(self, data: dict, number: int | None) -> Comic:
        try:
            return Comic.from_xkcd_json(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"malformed comic payload: {exc}", number=number) from exc

    def fetch_newest(self) -> Comic:
        data = self._get_json(f"{self.settings.xkcd_base_url}/info.0.json")
        return self._decode_comic(data, None)

    def fetch_newest_number(self) -> int:
        return self.fetch_newest().number

    def fetch_comic(self, number: int) -> Comic:
        if number == 404:
            return Comic.make_comic_404()
        data = self._get_json(f"{self.settings.xkcd_base_url}/{number}/info.0.json", number=number)
        comic = self._decode_comic(data, number)
        self.log.debug("remote.comic_fetched", number=number)
        return comic

    def fetch_image(self, url: str, *, number: int | None = None) -> bytes:
        try:
            return self._get(url).content
        except httpx.HTTPError as exc:
            raise NetworkError(f"image download failed: {exc}", number=number) from exc

    # -- explainxkcd -----------------------------------------------------------

    def fetch_transcript(self, number: int) -> str:
        if number == 2131:
            return TRANSCRIPT_2131

        api = self.settings.explain_base_url
        sections = self._get_json(
            api,
            number=number,
            params={"action": "parse", "page": str(number), "prop": "sections", "format": "json"},
        )
        try:
            index = find_transcript_section(sections["parse"]["sections"])
        except (KeyError, TypeError) as exc:
            raise DecodeError("malformed sections payload", number=number) from exc
        if index is None:
            raise DecodeError("no transcript section", number=number)

        section = self._get_json(
            api,
            number=number,
            params={"action": "parse", "page": str(number), "prop": "text", "section": index, "format": "json"},
        )
        try:
            html = section["parse"]["text"]["*"]
        except (KeyError, TypeError) as exc:
            raise DecodeError("malformed section payload", number=number) from exc
        return clean_transcript(html)

    # -- reddit ----------------------------------------------------------------

    def find_reddit_thread(self, comic: Comic) -> str | None:
        """URL of the first r/xkcd search hit for the comic's title."""
        base = self.settings.reddit_base_url
        data = self._get_json(
            f"{base}/r/xkcd/search.json",
            number=comic.number,
            params={"q": comic.title, "restrict_sr": "on"},
        )
        try:
            children = data["data"]["children"]
            if not children:
                return None
            return base + children[0]["data"]["permalink"]
        except (KeyError, TypeError, IndexError) as exc:
            raise DecodeError("malformed reddit search payload", number=comic.number) from exc
