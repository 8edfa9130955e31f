"""
Shared pytest fixtures for Timekeeper tests.

Provides a fresh project folder with an initialized version store and small
helpers for writing working files.
"""

from pathlib import Path
from typing import Generator

import pytest

from timekeeper.engine import SnapshotEngine


def write_file(project_dir: Path, relative_path: str, content: str) -> Path:
    """Write a working file, creating parent folders as needed."""
    path = project_dir / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def read_file(project_dir: Path, relative_path: str) -> str:
    return (project_dir / relative_path).read_text()


def visible_files(project_dir: Path) -> dict:
    """relative path -> bytes for every non-hidden file under project_dir."""
    files = {}
    for path in sorted(project_dir.rglob("*")):
        rel = path.relative_to(project_dir)
        if any(part.startswith(".") for part in rel.parts):
            continue
        if path.is_file():
            files[rel.as_posix()] = path.read_bytes()
    return files


@pytest.fixture
def project_dir(tmp_path) -> Path:
    """An empty project folder."""
    folder = tmp_path / "project"
    folder.mkdir()
    return folder


@pytest.fixture
def engine(project_dir) -> Generator[SnapshotEngine, None, None]:
    """Engine over a freshly initialized project folder."""
    with SnapshotEngine.init(project_dir) as snapshot_engine:
        yield snapshot_engine
