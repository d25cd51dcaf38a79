"""Local disk cache for blog images.

Entries live at ``{cache_root}/{folder}/{image name}.webp``. The cache is
read-through (a miss downloads the original from its public URL) and
write-through (uploads seed it directly). Entries older than 30 days are
removed by ``sweep``, which also prunes directories left empty.

Sweeping is split in two: ``snapshot_tree`` reads the directory tree into
``CacheNode`` objects and ``plan_sweep`` decides what to delete without
touching the filesystem. ``ImageCache.sweep`` then applies the plan.
"""

import asyncio
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx

from blog_images.config import BlogImagesConfig
from blog_images.services.errors import CacheUninitializedError
from blog_images.services.images import (
    ImageInfo,
    fetch_public_image,
    get_image_url,
    validate_folder,
)
from blog_images.services.s3 import CancelToken, check_cancelled

logger = logging.getLogger(__name__)

CACHE_MAX_AGE = timedelta(days=30)
CACHE_SUFFIX = ".webp"


@dataclass
class CacheNode:
    """Snapshot of one entry in the cache tree.

    Attributes:
        path: Entry path
        mtime: Modification time (regular files only)
        children: Child entries (directories only)
        error: Why the entry could not be read, if it could not
    """

    path: Path
    mtime: Optional[float] = None
    children: Optional[List["CacheNode"]] = None
    error: Optional[str] = None

    @property
    def is_dir(self) -> bool:
        return self.children is not None


@dataclass
class SweepPlan:
    """What a sweep of one directory would delete.

    Attributes:
        surviving: Direct children that remain after the sweep
        stale_files: Files to delete
        empty_dirs: Subdirectories to delete, deepest first
        errors: Entries that could not be read
    """

    surviving: int = 0
    stale_files: List[Path] = field(default_factory=list)
    empty_dirs: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return self.surviving == 0


def snapshot_tree(root: Path, cancel: Optional[CancelToken] = None) -> CacheNode:
    """Read the directory tree under ``root``.

    Entries that disappear while being read are left out. The cancel token
    is checked once per directory.
    """
    check_cancelled(cancel, "Cache sweep")
    node = CacheNode(path=root, children=[])
    try:
        with os.scandir(root) as it:
            entries = list(it)
    except OSError as e:
        node.children = None
        node.error = f"{root}: {e}"
        return node

    for entry in entries:
        path = Path(entry.path)
        try:
            if entry.is_dir(follow_symlinks=False):
                node.children.append(snapshot_tree(path, cancel))
            elif entry.is_file(follow_symlinks=False):
                node.children.append(CacheNode(path=path, mtime=entry.stat(follow_symlinks=False).st_mtime))
            else:
                node.children.append(CacheNode(path=path))
        except FileNotFoundError:
            continue
    return node


def plan_sweep(node: CacheNode, cutoff: float) -> SweepPlan:
    """Decide which entries under ``node`` to delete.

    Files with an mtime before ``cutoff`` are stale. A subdirectory is
    deleted when nothing inside it survives; it is listed after its own
    contents so deletions can be applied in order.
    """
    plan = SweepPlan()
    for child in node.children or []:
        if child.error is not None:
            plan.errors.append(child.error)
            plan.surviving += 1
        elif child.is_dir:
            sub = plan_sweep(child, cutoff)
            plan.stale_files.extend(sub.stale_files)
            plan.empty_dirs.extend(sub.empty_dirs)
            plan.errors.extend(sub.errors)
            if sub.empty:
                plan.empty_dirs.append(child.path)
            else:
                plan.surviving += 1
        elif child.mtime is not None and child.mtime < cutoff:
            plan.stale_files.append(child.path)
        else:
            plan.surviving += 1
    if node.error is not None:
        plan.errors.append(node.error)
        plan.surviving += 1
    return plan


class ImageCache:
    """Read-through/write-through disk cache of blog images.

    Attributes:
        cache_root: Root directory of the cache
        config_provider: Returns the current configuration
        max_age: Age after which entries are evicted
    """

    def __init__(
        self,
        cache_root: Path,
        config_provider: Callable[[], BlogImagesConfig],
        http_client: Optional[httpx.AsyncClient] = None,
        max_age: timedelta = CACHE_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_root = cache_root
        self.config_provider = config_provider
        self.max_age = max_age
        self._http_client = http_client
        self._clock = clock
        self._initialized = False
        self._lock = threading.Lock()
        self._inflight: Dict[Path, asyncio.Task] = {}

    def initialize(self) -> None:
        """Create the cache root. Must be called once before any other operation."""
        self.cache_root.mkdir(parents=True, exist_ok=True)
        self._initialized = True
        logger.debug(f"Image cache at {self.cache_root}")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise CacheUninitializedError(
                f"Image cache at {self.cache_root} used before initialize()"
            )

    def entry_path(self, folder: str, image: ImageInfo) -> Path:
        """Deterministic cache path for an image."""
        validate_folder(folder)
        return self.cache_root / folder / f"{image.name}{CACHE_SUFFIX}"

    async def get_cached_path(self, folder: str, image: ImageInfo) -> Path:
        """Return the local path of an image, downloading it on a miss.

        Concurrent misses for the same entry share one download.

        Raises:
            CacheUninitializedError: If ``initialize`` was not called
            ImageNotFoundError: If the public URL cannot be fetched
        """
        self._require_initialized()
        path = self.entry_path(folder, image)
        if path.exists():
            return path

        task = self._inflight.get(path)
        if task is None:
            url = get_image_url(folder, image, self.config_provider())
            logger.debug(f"Cache miss for {folder}/{image.name}, fetching {url}")
            task = asyncio.ensure_future(self._fetch_into(path, url))
            self._inflight[path] = task
            task.add_done_callback(lambda t: self._forget(path, t))
        return await asyncio.shield(task)

    def _forget(self, path: Path, task: asyncio.Task) -> None:
        if self._inflight.get(path) is task:
            del self._inflight[path]

    async def _fetch_into(self, path: Path, url: str) -> Path:
        data = await fetch_public_image(url, self._http_client)
        await self._run(self._write_entry, path, data)
        return path

    async def write_through(self, folder: str, image: ImageInfo, data: bytes) -> Path:
        """Store freshly uploaded bytes, then sweep expired entries.

        Raises:
            CacheUninitializedError: If ``initialize`` was not called
        """
        self._require_initialized()
        path = self.entry_path(folder, image)
        await self._run(self._write_entry, path, data)
        await self.sweep()
        return path

    async def sweep(
        self, root: Optional[Path] = None, cancel: Optional[CancelToken] = None
    ) -> bool:
        """Delete entries older than ``max_age`` and prune empty directories.

        Args:
            root: Directory to sweep (defaults to the cache root, which is kept)
            cancel: Optional cancellation token, checked once per directory

        Returns:
            True if ``root`` is empty after the sweep
        """
        self._require_initialized()
        return await self._run(self._sweep, root or self.cache_root, cancel)

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _write_entry(self, path: Path, data: bytes) -> None:
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise

    def _sweep(self, root: Path, cancel: Optional[CancelToken]) -> bool:
        cutoff = self._clock() - self.max_age.total_seconds()
        with self._lock:
            plan = plan_sweep(snapshot_tree(root, cancel), cutoff)
            errors = list(plan.errors)

            for path in plan.stale_files:
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    errors.append(f"{path}: {e}")

            for path in plan.empty_dirs:
                try:
                    path.rmdir()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    errors.append(f"{path}: {e}")

        for error in errors:
            logger.warning(f"Cache sweep error: {error}")
        logger.info(
            f"Cache sweep of {root}: removed {len(plan.stale_files)} files, "
            f"{len(plan.empty_dirs)} directories"
        )
        return plan.empty and not errors
