"""Snapshot engine: one open project folder and every versioning operation on it."""

import logging
from pathlib import Path
from typing import List, Optional, Set

from .config import Config, ConfigManager
from .errors import NotFoundError
from .graph import GraphBuilder
from .models import GraphNode, TimelineEntry, VersionEntry
from .position import Position, TimelineNavigator
from .stash import StashSlot
from .storage.object_store import ObjectStore, is_hex_id
from .storage.side_files import LabelTable
from .timelines import TimelineRegistry

logger = logging.getLogger(__name__)


class SnapshotEngine:
    """Versioning engine bound to a project folder.

    The engine assumes exclusive access to the folder for the duration of each
    call; callers serialize operations per project.
    """

    MIN_PREFIX_LENGTH = 4

    def __init__(self, project_dir: Path, store: ObjectStore, config: Config):
        self.project_dir = Path(project_dir)
        self.config = config
        self.store = store
        self.registry = TimelineRegistry(store, LabelTable(store.control_dir), config)
        self.navigator = TimelineNavigator(store, self.registry, self.project_dir, config)
        self.stash_slot = StashSlot(store, self.project_dir)
        self.graph_builder = GraphBuilder(store, self.registry, self.navigator)

    @classmethod
    def init(cls, project_dir: Path, config: Optional[Config] = None) -> "SnapshotEngine":
        """Create (or reopen) the version store and point HEAD at main."""
        project_dir = Path(project_dir)
        config = config or ConfigManager.for_project(project_dir).load()
        store = ObjectStore.init(project_dir, config.hidden_prefix)
        engine = cls(project_dir, store, config)
        if engine.registry.head_commit() is None:
            engine.registry.attach(config.timelines.main_slug)
        return engine

    @classmethod
    def open(cls, project_dir: Path, config: Optional[Config] = None) -> "SnapshotEngine":
        """Open an existing version store; NotFoundError if there is none."""
        project_dir = Path(project_dir)
        config = config or ConfigManager.for_project(project_dir).load()
        store = ObjectStore.open(project_dir, config.hidden_prefix)
        return cls(project_dir, store, config)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "SnapshotEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---- commits ----

    def resolve_commit(self, commit_id: str) -> str:
        """Resolve a full or abbreviated commit id.

        Abbreviations are matched against every commit reachable from a
        timeline, HEAD or the saved tip.
        """
        text = commit_id.strip().lower()
        if is_hex_id(text):
            return self.store.read_commit(text).id
        if not is_hex_id(text, min_length=self.MIN_PREFIX_LENGTH):
            raise NotFoundError(f"Not a valid commit id: {commit_id!r}")

        matches = {c for c in self._reachable_commits() if c.startswith(text)}
        if len(matches) != 1:
            reason = "ambiguous" if matches else "unknown"
            raise NotFoundError(f"Commit id {commit_id!r} is {reason}")
        return matches.pop()

    def _reachable_commits(self) -> Set[str]:
        position = self.navigator.position()
        starts = list(self.registry.tips().values()) + [position.head, position.prev_tip]
        seen: Set[str] = set()
        for start in starts:
            for record in self.store.iter_first_parent(start):
                if record.id in seen:
                    break
                seen.add(record.id)
        return seen

    def commit(
        self,
        message: str,
        fork_label: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> str:
        return self.navigator.commit_snapshot(message, fork_label, timestamp)

    def save_with_label(self, label: str) -> str:
        """Commit using a user-chosen label as the message."""
        return self.commit(label.strip() or "Snapshot")

    def list_commits(self) -> List[VersionEntry]:
        """Linear history of the current position, newest first."""
        entries = []
        for record in self.store.iter_first_parent(self.registry.head_commit()):
            parent_tree = None
            if record.parent:
                parent_tree = self.store.read_commit(record.parent).tree
            entries.append(
                VersionEntry(
                    id=record.id,
                    message=record.message,
                    timestamp=record.committed_at,
                    summary=self.store.tree_change_summary(parent_tree, record.tree),
                )
            )
        return entries

    def read_file_at(self, commit_id: str, relative_path: str) -> bytes:
        record = self.store.read_commit(self.resolve_commit(commit_id))
        entry = self.store.lookup_path(record.tree, relative_path)
        if entry.is_tree:
            raise NotFoundError(f"Not a file at version {record.id}: {relative_path}")
        return self.store.read_blob(entry.id)

    def checkout(self, commit_id: str) -> str:
        """Overwrite the working directory with a commit; the position stays put."""
        record = self.store.read_commit(self.resolve_commit(commit_id))
        self.store.write_tree_to_dir(record.tree, self.project_dir)
        logger.info(f"Checked out {record.id} into working directory")
        return record.id

    def restore(self, commit_id: str) -> str:
        """Check out a past version and commit it as the newest snapshot."""
        target = self.checkout(commit_id)
        short_id = target[: self.config.short_id_length]
        return self.commit(self.config.restore_message.format(short_id=short_id))

    def has_changes(self) -> bool:
        return self.navigator.has_unsaved_changes()

    # ---- stash ----

    def stash(self) -> str:
        return self.stash_slot.stash()

    def pop_stash(self) -> bool:
        return self.stash_slot.pop()

    def has_stash(self) -> bool:
        return self.stash_slot.has_stash()

    # ---- timelines ----

    def create_timeline(self, from_commit: str, name: str) -> str:
        return self.registry.create_timeline(self.resolve_commit(from_commit), name)

    def list_timelines(self) -> List[TimelineEntry]:
        return self.registry.list_timelines(self.navigator.active_timeline())

    def switch_timeline(self, name: str) -> str:
        slug = self.registry.resolve(name)
        tip = self.registry.switch(slug, self.project_dir)
        self.navigator.clear_rewind()
        return tip

    def delete_timeline(self, name: str) -> None:
        slug = self.registry.resolve(name)
        self.registry.delete(slug, self.navigator.active_timeline())

    def rename_timeline(self, name: str, label: str) -> None:
        self.registry.rename(self.registry.resolve(name), label)

    # ---- navigation ----

    def navigate(self, commit_id: str) -> Position:
        return self.navigator.navigate_to_snapshot(self.resolve_commit(commit_id))

    def position(self) -> Position:
        return self.navigator.position()

    def is_rewound(self) -> bool:
        return self.navigator.position().is_rewound

    def graph(self) -> List[GraphNode]:
        return self.graph_builder.build_graph()
