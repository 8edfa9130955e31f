"""Single-slot stash of uncommitted working content."""

import logging
from pathlib import Path
from typing import Optional

from .storage.object_store import ObjectStore
from .storage.side_files import MarkerFile

logger = logging.getLogger(__name__)


class StashSlot:
    """Set the working directory aside as a tree and bring it back later.

    There is no stash history: stashing again before popping overwrites the
    previous value.
    """

    STASH_FILE = "stash"

    def __init__(self, store: ObjectStore, project_dir: Path):
        self.store = store
        self.project_dir = Path(project_dir)
        self._marker = MarkerFile(store.control_dir / self.STASH_FILE)

    def has_stash(self) -> bool:
        return self._marker.exists()

    def peek(self) -> Optional[str]:
        values = self._marker.read()
        return values[0] if values else None

    def stash(self) -> str:
        tree = self.store.build_tree(self.project_dir, persist=True)
        previous = self.peek()
        if previous is not None and previous != tree:
            logger.warning(f"Overwriting unpopped stash {previous}")
        self._marker.write(tree)
        logger.info(f"Stashed working directory as tree {tree}")
        return tree

    def pop(self) -> bool:
        """Restore the stashed content; False (and no change) if the slot is empty."""
        tree = self.peek()
        if tree is None:
            return False
        self.store.write_tree_to_dir(tree, self.project_dir)
        self._marker.clear()
        logger.info(f"Restored stashed tree {tree}")
        return True
