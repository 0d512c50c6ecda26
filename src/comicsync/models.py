"""Pydantic models and progress values passed between components."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field


class Comic(BaseModel):
    number: int = Field(ge=1)
    title: str = ""
    img_url: str = ""
    alt_text: str = ""
    # "" means the transcript has not been fetched yet
    transcript: str = ""
    favorite: bool = False
    read: bool = False

    @classmethod
    def from_xkcd_json(cls, data: dict) -> Comic:
        """Build a comic from an ``info.0.json`` payload."""
        return cls(
            number=int(data["num"]),
            title=data.get("safe_title") or data["title"],
            img_url=data.get("img", ""),
            alt_text=data.get("alt", ""),
        )

    @classmethod
    def make_comic_404(cls) -> Comic:
        """xkcd skips number 404 on purpose; stand in a local placeholder."""
        return cls(
            number=404,
            title="404",
            alt_text="404 - Not Found",
            transcript="There is no comic 404. Requesting it returns an HTTP 404 error page.",
        )


class ComicContainer(BaseModel):
    """A display slot for a comic number; ``comic`` is None until it is cached."""

    number: int
    comic: Comic | None = None
    search_preview: str = ""

    @property
    def has_comic(self) -> bool:
        return self.comic is not None


def to_containers(comics: list[Comic]) -> list[ComicContainer]:
    return [ComicContainer(number=c.number, comic=c) for c in comics]


def to_range_containers(comics: list[Comic], newest: int) -> list[ComicContainer]:
    """One container per number in ``1..newest``, in order."""
    by_number = {c.number: c for c in comics}
    return [ComicContainer(number=n, comic=by_number.get(n)) for n in range(1, newest + 1)]


# -- Batch progress -----------------------------------------------------------


@dataclass(frozen=True)
class Progress:
    current: int
    total: int


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class Done:
    # Numbers that failed during the batch; empty means no losses
    failed: tuple[int, ...] = ()


SyncProgress = Progress | Reset | Done
