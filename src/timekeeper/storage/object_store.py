"""Content-addressed object store for project snapshots.

Blobs, trees and commits use the git object encoding and live in a ``.git``
directory inside the project folder, so history stays readable with standard
git tooling. All encoding and storage goes through dulwich; no git binary is
required.

Ids cross this module's boundary as 40-character hex strings.
"""

import logging
import os
import shutil
import stat
import time
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from dulwich.diff_tree import CHANGE_ADD, CHANGE_DELETE, CHANGE_MODIFY, tree_changes
from dulwich.errors import FileFormatException, NotGitRepository, ObjectFormatException
from dulwich.objects import Blob, Commit, ShaFile, Tree
from dulwich.repo import Repo

from ..errors import NotFoundError, ObjectStoreError, VersioningIoError

logger = logging.getLogger(__name__)

FILE_MODE = 0o100644
TREE_MODE = stat.S_IFDIR

_HEX_DIGITS = frozenset("0123456789abcdef")
_RACY_WINDOW_NS = 2_000_000_000


def is_hex_id(text: str, min_length: int = 40) -> bool:
    """True if ``text`` is a lowercase hex string between min_length and 40 chars."""
    return min_length <= len(text) <= 40 and all(c in _HEX_DIGITS for c in text)


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a tree listing."""

    name: str
    mode: int
    id: str

    @property
    def is_tree(self) -> bool:
        return stat.S_ISDIR(self.mode)


@dataclass(frozen=True)
class CommitRecord:
    """Decoded commit object."""

    id: str
    tree: str
    parent: Optional[str]
    message: str
    author: str
    timestamp: int

    @property
    def committed_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


class ObjectStore:
    """Git-compatible blob/tree/commit storage rooted at a project folder."""

    STORE_DIR_NAME = ".git"
    # Never snapshotted, whatever the hidden prefix is.
    RESERVED_NAMES = frozenset({STORE_DIR_NAME, ".timekeeper"})

    def __init__(self, repo: Repo, project_dir: Path, hidden_prefix: str = "."):
        """Wrap an opened repository.

        Args:
            repo: dulwich repository whose working tree is ``project_dir``
            project_dir: Folder whose visible contents are snapshotted
            hidden_prefix: Entries starting with this marker are never captured
        """
        self.repo = repo
        self.project_dir = Path(project_dir)
        self.hidden_prefix = hidden_prefix
        # (path, mtime_ns, size) -> blob sha, avoids rehashing unchanged files
        self._blob_cache: Dict[Tuple[str, int, int], bytes] = {}

    @classmethod
    def init(cls, project_dir: Path, hidden_prefix: str = ".") -> "ObjectStore":
        """Create the version store in ``project_dir`` (or open the existing one)."""
        project_dir = Path(project_dir)
        if (project_dir / cls.STORE_DIR_NAME).exists():
            return cls.open(project_dir, hidden_prefix)

        try:
            project_dir.mkdir(parents=True, exist_ok=True)
            repo = Repo.init(str(project_dir))
        except OSError as e:
            raise VersioningIoError(
                f"Failed to initialize version store in {project_dir}: {e}"
            ) from e

        logger.info(f"Initialized version store in {project_dir}")
        return cls(repo, project_dir, hidden_prefix)

    @classmethod
    def open(cls, project_dir: Path, hidden_prefix: str = ".") -> "ObjectStore":
        """Open the version store of ``project_dir``.

        Raises:
            NotFoundError: The folder has no version store
        """
        project_dir = Path(project_dir)
        if not (project_dir / cls.STORE_DIR_NAME).is_dir():
            raise NotFoundError(f"No version history in {project_dir}")
        try:
            repo = Repo(str(project_dir))
        except NotGitRepository as e:
            raise NotFoundError(f"No version history in {project_dir}") from e
        except OSError as e:
            raise VersioningIoError(
                f"Failed to open version store in {project_dir}: {e}"
            ) from e
        return cls(repo, project_dir, hidden_prefix)

    @property
    def control_dir(self) -> Path:
        """The hidden directory holding objects, refs and engine side files."""
        return Path(self.repo.controldir())

    def close(self) -> None:
        self.repo.close()

    def is_hidden(self, name: str) -> bool:
        return name.startswith(self.hidden_prefix) or name in self.RESERVED_NAMES

    # ---- writing ----

    def write_blob(self, data: bytes) -> str:
        """Store ``data`` and return its blob id. Idempotent."""
        blob = Blob.from_string(data)
        self._add(blob)
        return blob.id.decode("ascii")

    def build_tree(self, directory: Optional[Path] = None, persist: bool = True) -> str:
        """Hash ``directory`` (default: the project folder) into a tree id.

        Hidden entries, symlinks and empty subdirectories are skipped. With
        ``persist=False`` ids are computed without writing any object.
        """
        directory = Path(directory) if directory is not None else self.project_dir
        return self._build_tree(directory, persist).id.decode("ascii")

    def _build_tree(self, directory: Path, persist: bool) -> Tree:
        tree = Tree()
        try:
            with os.scandir(directory) as it:
                dir_entries = list(it)
        except OSError as e:
            raise VersioningIoError(f"Cannot read directory {directory}: {e}") from e

        for entry in dir_entries:
            if self.is_hidden(entry.name) or entry.is_symlink():
                continue
            name = os.fsencode(entry.name)
            if entry.is_dir(follow_symlinks=False):
                subtree = self._build_tree(Path(entry.path), persist)
                if len(subtree) == 0:
                    continue
                tree.add(name, TREE_MODE, subtree.id)
            elif entry.is_file(follow_symlinks=False):
                tree.add(name, FILE_MODE, self._file_blob_id(entry, persist))

        if persist:
            self._add(tree)
        return tree

    def _file_blob_id(self, entry: os.DirEntry, persist: bool) -> bytes:
        try:
            st = entry.stat(follow_symlinks=False)
            key = (entry.path, st.st_mtime_ns, st.st_size)
            cached = self._blob_cache.get(key)
            if cached is not None and (not persist or cached in self.repo.object_store):
                return cached
            data = Path(entry.path).read_bytes()
        except OSError as e:
            raise VersioningIoError(f"Cannot read file {entry.path}: {e}") from e

        blob = Blob.from_string(data)
        if persist:
            self._add(blob)
        # A file modified within the timestamp resolution could change again
        # without its (mtime, size) changing.
        if time.time_ns() - st.st_mtime_ns > _RACY_WINDOW_NS:
            self._blob_cache[key] = blob.id
        return blob.id

    def create_commit(
        self,
        tree: str,
        parent: Optional[str],
        message: str,
        author: bytes,
        timestamp: Optional[int] = None,
    ) -> str:
        """Create a single-parent (or root) commit and return its id.

        Identical inputs, including ``timestamp``, produce the identical id.
        """
        tree_sha = tree.encode("ascii")
        if tree_sha not in self.repo.object_store:
            raise ObjectStoreError(f"Tree {tree} is not in the object store")
        if parent is not None and parent.encode("ascii") not in self.repo.object_store:
            raise ObjectStoreError(f"Parent commit {parent} is not in the object store")

        commit = Commit()
        commit.tree = tree_sha
        commit.parents = [parent.encode("ascii")] if parent else []
        commit.author = commit.committer = author
        commit.author_time = commit.commit_time = int(
            timestamp if timestamp is not None else time.time()
        )
        commit.author_timezone = commit.commit_timezone = 0
        commit.message = message.encode("utf-8")
        self._add(commit)

        commit_id = commit.id.decode("ascii")
        logger.debug(f"Created commit {commit_id} (tree {tree}, parent {parent})")
        return commit_id

    def _add(self, obj: ShaFile) -> None:
        if obj.id in self.repo.object_store:
            return
        try:
            self.repo.object_store.add_object(obj)
        except OSError as e:
            raise VersioningIoError(
                f"Failed to write {obj.type_name.decode()} {obj.id.decode()}: {e}"
            ) from e

    # ---- reading ----

    def has_object(self, object_id: str) -> bool:
        return is_hex_id(object_id) and object_id.encode("ascii") in self.repo.object_store

    def _get(self, object_id: str, missing: type = NotFoundError) -> ShaFile:
        if not is_hex_id(object_id):
            raise NotFoundError(f"Not a valid object id: {object_id!r}")
        try:
            return self.repo.object_store[object_id.encode("ascii")]
        except KeyError as e:
            raise missing(f"Object {object_id} not found") from e
        except (FileFormatException, zlib.error, ValueError) as e:
            raise ObjectStoreError(f"Object {object_id} is corrupt: {e}") from e
        except OSError as e:
            raise VersioningIoError(f"Failed to read object {object_id}: {e}") from e

    def read_object(self, object_id: str) -> Union[bytes, List[TreeEntry], CommitRecord]:
        """Read a blob (bytes), tree (listing) or commit (record)."""
        obj = self._get(object_id)
        if isinstance(obj, Blob):
            return obj.data
        if isinstance(obj, Tree):
            return self._listing(obj)
        if isinstance(obj, Commit):
            return self._record(obj)
        raise ObjectStoreError(
            f"Unsupported object type {obj.type_name.decode()} for {object_id}"
        )

    def read_commit(self, commit_id: str) -> CommitRecord:
        """Read a commit, raising NotFoundError if it is absent or not a commit."""
        obj = self._get(commit_id)
        if not isinstance(obj, Commit):
            raise NotFoundError(f"{commit_id} is not a commit")
        return self._record(obj)

    def read_tree(self, tree_id: str) -> List[TreeEntry]:
        """Read a tree that something else references; absence is corruption."""
        obj = self._get(tree_id, missing=ObjectStoreError)
        if not isinstance(obj, Tree):
            raise ObjectStoreError(f"{tree_id} is not a tree")
        return self._listing(obj)

    def read_blob(self, blob_id: str) -> bytes:
        obj = self._get(blob_id, missing=ObjectStoreError)
        if not isinstance(obj, Blob):
            raise ObjectStoreError(f"{blob_id} is not a blob")
        return obj.data

    def _listing(self, tree: Tree) -> List[TreeEntry]:
        return [
            TreeEntry(os.fsdecode(name), mode, sha.decode("ascii"))
            for name, mode, sha in tree.items()
        ]

    def _record(self, commit: Commit) -> CommitRecord:
        try:
            return CommitRecord(
                id=commit.id.decode("ascii"),
                tree=commit.tree.decode("ascii"),
                parent=commit.parents[0].decode("ascii") if commit.parents else None,
                message=commit.message.decode("utf-8", errors="replace").strip(),
                author=commit.author.decode("utf-8", errors="replace"),
                timestamp=commit.commit_time,
            )
        except (ObjectFormatException, AttributeError) as e:
            raise ObjectStoreError(f"Commit {commit.id.decode()} is corrupt: {e}") from e

    def lookup_path(self, tree_id: str, relative_path: str) -> TreeEntry:
        """Find the entry at ``relative_path`` ("a/b.txt") inside a tree."""
        parts = [p for p in relative_path.replace("\\", "/").split("/") if p not in ("", ".")]
        if not parts:
            raise NotFoundError("Empty path")

        current = tree_id
        found: Optional[TreeEntry] = None
        for depth, part in enumerate(parts):
            entries = {e.name: e for e in self.read_tree(current)}
            found = entries.get(part)
            if found is None or (depth < len(parts) - 1 and not found.is_tree):
                raise NotFoundError(f"File not found at version: {relative_path}")
            current = found.id
        assert found is not None
        return found

    # ---- history ----

    def iter_first_parent(self, commit_id: Optional[str]) -> Iterator[CommitRecord]:
        """Yield ``commit_id`` and its first-parent ancestors down to the root."""
        current = commit_id
        while current is not None:
            if not self.has_object(current):
                raise ObjectStoreError(f"Commit {current} is referenced but missing")
            record = self.read_commit(current)
            yield record
            current = record.parent

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """True if ``ancestor`` is a strict first-parent ancestor of ``descendant``."""
        if ancestor == descendant:
            return False
        return any(r.id == ancestor for r in self.iter_first_parent(descendant))

    def tree_change_summary(self, old_tree: Optional[str], new_tree: str) -> str:
        """Describe the file-level difference between two trees."""
        counts = {CHANGE_ADD: 0, CHANGE_MODIFY: 0, CHANGE_DELETE: 0}
        old_sha = old_tree.encode("ascii") if old_tree else None
        for change in tree_changes(self.repo.object_store, old_sha, new_tree.encode("ascii")):
            if change.type in counts:
                counts[change.type] += 1

        words = ((CHANGE_ADD, "added"), (CHANGE_MODIFY, "modified"), (CHANGE_DELETE, "deleted"))
        parts = [f"{counts[kind]} {word}" for kind, word in words if counts[kind]]
        return ", ".join(parts) or "No changes"

    # ---- working directory ----

    def write_tree_to_dir(self, tree_id: str, directory: Optional[Path] = None) -> None:
        """Make the visible contents of ``directory`` match a tree exactly.

        Visible entries not in the tree are removed; hidden entries, including
        the version store itself, are left alone.
        """
        directory = Path(directory) if directory is not None else self.project_dir
        wanted = {entry.name: entry for entry in self.read_tree(tree_id)}
        try:
            directory.mkdir(parents=True, exist_ok=True)
            for child in list(directory.iterdir()):
                if self.is_hidden(child.name):
                    continue
                entry = wanted.get(child.name)
                if entry is None or child.is_symlink() or entry.is_tree != child.is_dir():
                    self._remove(child)

            for name, entry in wanted.items():
                target = directory / name
                if entry.is_tree:
                    self.write_tree_to_dir(entry.id, target)
                    continue
                data = self.read_blob(entry.id)
                if target.is_file() and target.read_bytes() == data:
                    continue
                target.write_bytes(data)
        except OSError as e:
            raise VersioningIoError(f"Failed to write working files in {directory}: {e}") from e

    @staticmethod
    def _remove(path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
