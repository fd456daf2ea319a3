"""Repository fetcher -- branch archives, raw files, kind directory scans.

Archives are downloaded whole and unpacked into a temporary directory held
by a ``RepoSnapshot``. Use it as a context manager so the directory is
removed afterwards::

    async with ... :
        snapshot = await fetcher.download_snapshot("acme", "commands", "main")
        with snapshot:
            scan(snapshot.local_path)
"""

from __future__ import annotations

import io
import logging
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import quote

import httpx

from cfgsync.config import Settings
from cfgsync.errors import LocalIOError, NotFoundError
from cfgsync.remote.github import send_get
from cfgsync.store.ssot import SKIP_DIRS

logger = logging.getLogger(__name__)

FALLBACK_BRANCHES = ("main", "master")


@dataclass
class RepoSnapshot:
    """An unpacked branch archive on local disk."""

    local_path: Path
    owner: str
    name: str
    branch: str
    """The branch that was actually downloaded (may be a fallback)."""

    def __enter__(self) -> RepoSnapshot:
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self.local_path.exists():
            shutil.rmtree(self.local_path, ignore_errors=True)


def extract_archive(data: bytes, dest: Path) -> int:
    """Unpack a GitHub branch zip into ``dest``, dropping the top-level folder.

    Returns the number of files written. Entries that would land outside
    ``dest`` are skipped.
    """
    written = 0
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise LocalIOError(f"Downloaded archive is not a valid zip: {e}") from e

    with archive:
        for info in archive.infolist():
            parts = PurePosixPath(info.filename).parts[1:]
            if not parts or any(p in ("..", "") for p in parts) or info.filename.startswith("/"):
                continue
            target = dest.joinpath(*parts)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, open(target, "wb") as out:
                shutil.copyfileobj(src, out)
            written += 1
    return written


def find_kind_dirs(root: Path, dir_name: str, max_depth: int = 3) -> list[tuple[Path, str]]:
    """Locate directories named ``dir_name`` up to ``max_depth`` levels deep.

    Returns ``(directory, namespace)`` pairs where the namespace is the name
    of the parent directory, or "" when the directory sits at the root.
    Found directories are not searched further.
    """
    found: list[tuple[Path, str]] = []

    def walk(directory: Path, depth: int) -> None:
        if depth > max_depth:
            return
        for child in sorted(directory.iterdir()):
            if not child.is_dir() or child.name.startswith(".") or child.name in SKIP_DIRS:
                continue
            if child.name == dir_name:
                found.append((child, "" if directory == root else directory.name))
                continue
            walk(child, depth + 1)

    walk(root, 1)
    return found


class RepositoryFetcher:
    """Downloads snapshots and single files from a source repository."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.settings = settings

    def archive_url(self, owner: str, name: str, branch: str) -> str:
        base = self.settings.archive_base_url.rstrip("/")
        return f"{base}/{owner}/{name}/archive/refs/heads/{quote(branch)}.zip"

    def raw_url(self, owner: str, name: str, branch: str, path: str) -> str:
        base = self.settings.raw_base_url.rstrip("/")
        return f"{base}/{owner}/{name}/{quote(branch)}/{quote(path)}"

    async def download_snapshot(self, owner: str, name: str, branch: str = "main") -> RepoSnapshot:
        """Download and unpack a branch archive, falling back to main/master."""
        candidates = [branch] + [b for b in FALLBACK_BRANCHES if b != branch]
        for candidate in candidates:
            try:
                response = await send_get(
                    self.client,
                    self.archive_url(owner, name, candidate),
                    f"archive {owner}/{name}@{candidate}",
                    self.settings.archive_timeout,
                )
            except NotFoundError:
                logger.debug("No archive for %s/%s@%s", owner, name, candidate)
                continue

            if candidate != branch:
                logger.info("%s/%s: branch %s missing, using %s", owner, name, branch, candidate)
            dest = Path(tempfile.mkdtemp(prefix="cfgsync-"))
            snapshot = RepoSnapshot(local_path=dest, owner=owner, name=name, branch=candidate)
            try:
                count = extract_archive(response.content, dest)
            except LocalIOError:
                snapshot.cleanup()
                raise
            logger.info("Downloaded %s/%s@%s (%d files)", owner, name, candidate, count)
            return snapshot

        raise NotFoundError(
            f"Repository {owner}/{name} has no downloadable branch (tried {', '.join(candidates)})"
        )

    async def fetch_raw(self, owner: str, name: str, branch: str, path: str) -> bytes:
        response = await send_get(
            self.client,
            self.raw_url(owner, name, branch, path),
            f"{owner}/{name}:{path}@{branch}",
            self.settings.raw_timeout,
        )
        return response.content
