"""Per-call operation surface used by the surrounding application.

Every function takes the project folder, opens the engine, performs one
operation and closes it again. Callers must not run two of these against the
same folder at the same time.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from .engine import SnapshotEngine
from .models import GraphNode, TimelineEntry, VersionEntry
from .storage.object_store import ObjectStore

PathLike = Union[str, Path]


@contextmanager
def open_project(project_dir: PathLike) -> Iterator[SnapshotEngine]:
    engine = SnapshotEngine.open(Path(project_dir))
    try:
        yield engine
    finally:
        engine.close()


def init(project_dir: PathLike) -> None:
    SnapshotEngine.init(Path(project_dir)).close()


def commit(
    project_dir: PathLike, message: str, fork_label: Optional[str] = None
) -> str:
    """Snapshot the folder. Forks into a new timeline if the position is rewound."""
    with open_project(project_dir) as engine:
        return engine.commit(message, fork_label)


def save_with_label(project_dir: PathLike, label: str) -> str:
    with open_project(project_dir) as engine:
        return engine.save_with_label(label)


def list_commits(project_dir: PathLike) -> List[VersionEntry]:
    """Linear history ending at the current position; [] without history."""
    if not (Path(project_dir) / ObjectStore.STORE_DIR_NAME).exists():
        return []
    with open_project(project_dir) as engine:
        return engine.list_commits()


def read_file_at(project_dir: PathLike, commit_id: str, relative_path: str) -> bytes:
    with open_project(project_dir) as engine:
        return engine.read_file_at(commit_id, relative_path)


def restore(project_dir: PathLike, commit_id: str) -> str:
    with open_project(project_dir) as engine:
        return engine.restore(commit_id)


def checkout(project_dir: PathLike, commit_id: str) -> None:
    with open_project(project_dir) as engine:
        engine.checkout(commit_id)


def has_changes(project_dir: PathLike) -> bool:
    with open_project(project_dir) as engine:
        return engine.has_changes()


def stash(project_dir: PathLike) -> None:
    with open_project(project_dir) as engine:
        engine.stash()


def pop_stash(project_dir: PathLike) -> bool:
    with open_project(project_dir) as engine:
        return engine.pop_stash()


def has_stash(project_dir: PathLike) -> bool:
    with open_project(project_dir) as engine:
        return engine.has_stash()


def create_timeline(project_dir: PathLike, from_commit: str, name: str) -> str:
    with open_project(project_dir) as engine:
        return engine.create_timeline(from_commit, name)


def list_timelines(project_dir: PathLike) -> List[TimelineEntry]:
    with open_project(project_dir) as engine:
        return engine.list_timelines()


def switch_timeline(project_dir: PathLike, name: str) -> None:
    with open_project(project_dir) as engine:
        engine.switch_timeline(name)


def delete_timeline(project_dir: PathLike, name: str) -> None:
    with open_project(project_dir) as engine:
        engine.delete_timeline(name)


def rename_timeline(project_dir: PathLike, name: str, label: str) -> None:
    with open_project(project_dir) as engine:
        engine.rename_timeline(name, label)


def graph(project_dir: PathLike) -> List[GraphNode]:
    with open_project(project_dir) as engine:
        return engine.graph()


def navigate(project_dir: PathLike, commit_id: str) -> None:
    with open_project(project_dir) as engine:
        engine.navigate(commit_id)


def is_rewound(project_dir: PathLike) -> bool:
    with open_project(project_dir) as engine:
        return engine.is_rewound()
