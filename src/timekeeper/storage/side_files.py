"""Engine-private flat files kept next to the object database.

- ``timeline-labels``: ``slug=label`` lines, one per timeline
- ``prev-tip``: present only while the position is rewound
- ``stash``: the single stash slot
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import VersioningIoError

logger = logging.getLogger(__name__)


def _atomic_write(path: Path, text: str) -> None:
    temp_file = path.with_suffix(".tmp")
    try:
        temp_file.write_text(text, encoding="utf-8")
        temp_file.replace(path)
    except OSError as e:
        raise VersioningIoError(f"Failed to write {path}: {e}") from e


class LabelTable:
    """Maps timeline slugs to display labels, independent of the refs."""

    FILE_NAME = "timeline-labels"

    def __init__(self, store_dir: Path):
        self.path = Path(store_dir) / self.FILE_NAME

    def load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise VersioningIoError(f"Failed to read {self.path}: {e}") from e

        labels: Dict[str, str] = {}
        for line in lines:
            slug, sep, label = line.partition("=")
            if sep and slug:
                labels[slug] = label
        return labels

    def get(self, slug: str) -> Optional[str]:
        return self.load().get(slug)

    def set(self, slug: str, label: str) -> None:
        labels = self.load()
        labels[slug] = " ".join(label.split())
        self._save(labels)

    def remove(self, slug: str) -> None:
        labels = self.load()
        if labels.pop(slug, None) is not None:
            self._save(labels)

    def _save(self, labels: Dict[str, str]) -> None:
        text = "".join(f"{slug}={label}\n" for slug, label in sorted(labels.items()))
        _atomic_write(self.path, text)


class MarkerFile:
    """A small file whose presence is itself the state.

    Holds one value per line; ``read`` returns None when the marker is absent.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[List[str]]:
        if not self.path.exists():
            return None
        try:
            values = [v.strip() for v in self.path.read_text(encoding="utf-8").splitlines()]
        except OSError as e:
            raise VersioningIoError(f"Failed to read {self.path}: {e}") from e
        values = [v for v in values if v]
        return values or None

    def write(self, *values: str) -> None:
        _atomic_write(self.path, "".join(f"{v}\n" for v in values))
        logger.debug(f"Set {self.path.name}: {' '.join(values)}")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise VersioningIoError(f"Failed to remove {self.path}: {e}") from e
        logger.debug(f"Cleared {self.path.name}")
