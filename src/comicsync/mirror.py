"""Offline image mirror: one PNG per comic number under the offline directory."""

from __future__ import annotations

import concurrent.futures
import io
import os
import threading
from collections.abc import Iterator
from pathlib import Path

import structlog
from PIL import Image, UnidentifiedImageError

from comicsync.errors import ComicSyncError, DecodeError, StorageError
from comicsync.models import Done, Progress, SyncProgress
from comicsync.remote import XkcdClient
from comicsync.store import ComicStore

ASSETS_DIR = Path(__file__).parent / "assets"

# Upstream only serves huge versions of these two; ship small copies instead
BUNDLED_IMAGES = {
    1826: ASSETS_DIR / "birdwatching.png",
    2185: ASSETS_DIR / "cumulonimbus_2x.png",
}

# No image exists upstream; nothing to mirror
IMAGELESS = frozenset({404})


def to_png(data: bytes, *, number: int | None = None) -> bytes:
    """Decode any image format Pillow understands and re-encode it as PNG."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            out = io.BytesIO()
            img.save(out, format="PNG")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"cannot decode image: {exc}", number=number) from exc
    return out.getvalue()


def write_atomic(path: Path, data: bytes) -> Path:
    """Write via a .tmp sibling, fsync, then rename, so readers never see partial files."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)
    return path


class AssetMirror:
    """Keep a local copy of each comic's image, downloading it at most once."""

    def __init__(
        self,
        store: ComicStore,
        client: XkcdClient,
        offline_dir: str | Path,
        log: structlog.stdlib.BoundLogger,
        max_workers: int = 8,
    ) -> None:
        self.store = store
        self.client = client
        self.offline_dir = Path(offline_dir)
        self.log = log
        self.max_workers = max_workers
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def image_path(self, number: int) -> Path:
        return self.offline_dir / f"{number}.png"

    def offline_path(self, number: int) -> Path:
        return BUNDLED_IMAGES.get(number) or self.image_path(number)

    def has_image(self, number: int) -> bool:
        return number in BUNDLED_IMAGES or self.image_path(number).exists()

    def _lock_for(self, number: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(number, threading.Lock())

    def _mirror(self, number: int) -> None:
        comic = self.store.get(number)
        if comic is None:
            raise StorageError("comic is not cached", number=number)
        if not comic.img_url:
            raise DecodeError("comic has no image url", number=number)

        png = to_png(self.client.fetch_image(comic.img_url, number=number), number=number)
        try:
            write_atomic(self.image_path(number), png)
        except OSError as exc:
            raise StorageError(f"cannot write image: {exc}", number=number) from exc

    def ensure_mirrored(self, number: int) -> bool:
        """Make sure the image for ``number`` exists locally. Returns False on failure."""
        if number in IMAGELESS or self.has_image(number):
            return True

        with self._lock_for(number):
            # Another thread may have finished while we waited
            if self.has_image(number):
                return True
            try:
                self._mirror(number)
            except ComicSyncError as exc:
                self.log.warning("mirror.failed", number=number, error=str(exc), kind=type(exc).__name__)
                return False

        self.log.info("mirror.saved", number=number)
        return True

    def ensure_mirrored_all(self, newest: int) -> Iterator[SyncProgress]:
        """Mirror ``1..newest`` concurrently, yielding progress after every completion.

        Abandoning the iterator cancels tasks that have not started; running
        ones finish their write.
        """
        total = newest
        completed = 0
        failed: list[int] = []
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = {executor.submit(self.ensure_mirrored, n): n for n in range(1, newest + 1)}
            for future in concurrent.futures.as_completed(futures):
                completed += 1
                if not future.result():
                    failed.append(futures[future])
                yield Progress(completed, total)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if failed:
            self.log.warning("mirror.batch_losses", failed=len(failed), total=total)
        yield Done(failed=tuple(sorted(failed)))

    def path_for_sharing(self, number: int) -> Path | None:
        if number in IMAGELESS:
            return None
        if not self.ensure_mirrored(number):
            return None
        return self.offline_path(number)
