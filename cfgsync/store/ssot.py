"""SSOT store -- the canonical on-disk tree of installed resources.

Layout::

    <data_root>/
      agents/<namespace>/<filename>.md
      commands/<namespace>/<filename>.md
      hooks/<namespace>/<filename>.json
      skills/<namespace>/<dirname>/SKILL.md (+ any other files)

Ids are ``<namespace>/<filename>`` (namespace may be empty, giving a bare
filename). The path of a resource is a pure function of its id.

Hashes use the git blob format so an untouched local copy hashes to the
same value the GitHub API reports for the remote file.
"""

from __future__ import annotations

import hashlib
import shutil
from pathlib import Path
from typing import Iterable

from cfgsync.errors import LocalIOError, ValidationError
from cfgsync.kinds import KindDescriptor

SKIP_DIRS = {".git", "__pycache__", "node_modules", ".DS_Store"}


# ── Ids ──────────────────────────────────────────────────────────────


def validate_id(resource_id: str) -> str:
    """Reject ids that would escape the kind directory or be ambiguous."""
    if not resource_id or resource_id != resource_id.strip():
        raise ValidationError(f"Invalid resource id: {resource_id!r}")
    if resource_id.startswith("/") or "\\" in resource_id:
        raise ValidationError(f"Invalid resource id: {resource_id!r}")
    for segment in resource_id.split("/"):
        if segment in ("", ".", ".."):
            raise ValidationError(f"Invalid resource id: {resource_id!r}")
    return resource_id


def parse_id(resource_id: str) -> tuple[str, str]:
    """Split an id into ``(namespace, filename)`` on the last slash."""
    namespace, _, filename = resource_id.rpartition("/")
    return namespace, filename


def build_id(namespace: str, filename: str) -> str:
    return f"{namespace}/{filename}" if namespace else filename


def id_to_relative_path(resource_id: str, descriptor: KindDescriptor) -> str:
    validate_id(resource_id)
    return resource_id + descriptor.extension


def relative_path_to_id(path: str | Path, descriptor: KindDescriptor) -> str:
    text = str(path).replace("\\", "/")
    if descriptor.extension and text.endswith(descriptor.extension):
        text = text[: -len(descriptor.extension)]
    return text


# ── Hashing ──────────────────────────────────────────────────────────


def git_blob_sha(data: bytes) -> str:
    """SHA-1 of ``data`` in git's blob object format."""
    header = f"blob {len(data)}\0".encode()
    return hashlib.sha1(header + data).hexdigest()


def composite_hash(blobs: Iterable[tuple[str, str]]) -> str:
    """Deterministic hash over ``(relative_path, blob_sha)`` pairs.

    Used for directory resources so a local directory and the matching
    remote tree produce the same value.
    """
    digest = hashlib.sha256()
    for _, sha in sorted(blobs):
        digest.update(sha.encode())
    return digest.hexdigest()


def is_skipped(relative_path: str) -> bool:
    """True for build and VCS clutter that is never part of a resource."""
    return any(part in SKIP_DIRS for part in relative_path.split("/"))


def iter_files(root: Path) -> Iterable[Path]:
    for path in sorted(root.rglob("*")):
        if path.is_file() and not is_skipped(path.relative_to(root).as_posix()):
            yield path


def hash_directory(root: Path) -> str:
    return composite_hash(
        (path.relative_to(root).as_posix(), git_blob_sha(path.read_bytes()))
        for path in iter_files(root)
    )


def hash_path(path: Path) -> str | None:
    """Hash a file or a directory resource; None if it does not exist."""
    try:
        if path.is_dir():
            return hash_directory(path)
        if path.is_file():
            return git_blob_sha(path.read_bytes())
    except OSError as e:
        raise LocalIOError(f"Cannot read {path}: {e}") from e
    return None


# ── Filesystem helpers ───────────────────────────────────────────────


def copy_resource(src: Path, dst: Path) -> None:
    """Mirror a file or directory resource from ``src`` to ``dst``."""
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        if src.is_dir():
            if dst.exists():
                shutil.rmtree(dst)
            shutil.copytree(src, dst, ignore=shutil.ignore_patterns(*SKIP_DIRS))
        else:
            shutil.copyfile(src, dst)
    except OSError as e:
        raise LocalIOError(f"Cannot copy {src} to {dst}: {e}") from e


def remove_resource(path: Path, stop_at: Path) -> bool:
    """Delete a file or directory resource and prune empty parents up to ``stop_at``.

    Returns False when there was nothing to remove.
    """
    try:
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
        else:
            return False
    except OSError as e:
        raise LocalIOError(f"Cannot remove {path}: {e}") from e
    prune_empty_dirs(path.parent, stop_at)
    return True


def prune_empty_dirs(directory: Path, stop_at: Path) -> None:
    stop_at = stop_at.resolve()
    current = directory
    while current.resolve() != stop_at and stop_at in current.resolve().parents:
        try:
            current.rmdir()
        except OSError:
            return  # not empty
        current = current.parent


def list_resource_ids(base: Path, descriptor: KindDescriptor) -> list[str]:
    """Ids of every resource under a kind directory (SSOT or app)."""
    if not base.is_dir():
        return []
    ids = []
    if descriptor.is_directory:
        for marker in sorted(base.rglob(descriptor.entry_file)):
            rel = marker.parent.relative_to(base)
            if not rel.parts or any(p.startswith(".") or p in SKIP_DIRS for p in rel.parts):
                continue
            rel_id = rel.as_posix()
            # Nested SKILL.md files belong to the enclosing skill
            if any(rel_id.startswith(existing + "/") for existing in ids):
                continue
            ids.append(rel_id)
        return ids

    for path in iter_files(base):
        rel = path.relative_to(base)
        if any(p.startswith(".") for p in rel.parts):
            continue
        if descriptor.is_resource_file(path.name):
            ids.append(relative_path_to_id(rel.as_posix(), descriptor))
    return ids


class SsotStore:
    """Path arithmetic and I/O for the canonical tree."""

    def __init__(self, data_root: str | Path):
        self.data_root = Path(data_root)

    def kind_dir(self, descriptor: KindDescriptor) -> Path:
        path = self.data_root / descriptor.dir_name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def path_for(self, descriptor: KindDescriptor, resource_id: str) -> Path:
        return self.kind_dir(descriptor) / id_to_relative_path(resource_id, descriptor)

    def exists(self, descriptor: KindDescriptor, resource_id: str) -> bool:
        return self.path_for(descriptor, resource_id).exists()

    def read_text(self, descriptor: KindDescriptor, resource_id: str) -> str:
        """Text of a file resource, or of the entry file of a directory resource."""
        path = self.path_for(descriptor, resource_id)
        if descriptor.is_directory:
            path = path / descriptor.entry_file
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise LocalIOError(f"Cannot read {path}: {e}") from e

    def write_bytes(self, descriptor: KindDescriptor, resource_id: str, data: bytes) -> Path:
        path = self.path_for(descriptor, resource_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise LocalIOError(f"Cannot write {path}: {e}") from e
        return path

    def write_tree(self, descriptor: KindDescriptor, resource_id: str, source: Path) -> Path:
        path = self.path_for(descriptor, resource_id)
        copy_resource(source, path)
        return path

    def delete(self, descriptor: KindDescriptor, resource_id: str) -> bool:
        return remove_resource(self.path_for(descriptor, resource_id), self.kind_dir(descriptor))

    def hash(self, descriptor: KindDescriptor, resource_id: str) -> str | None:
        return hash_path(self.path_for(descriptor, resource_id))

    def list_ids(self, descriptor: KindDescriptor) -> list[str]:
        return list_resource_ids(self.kind_dir(descriptor), descriptor)

    def namespace_dir(self, descriptor: KindDescriptor, namespace: str) -> Path:
        validate_id(namespace)
        return self.kind_dir(descriptor) / namespace
