"""Rewind/fork state machine.

The position is one of three states:

- ``AT_TIP``: HEAD is attached to a timeline and equals its ref.
- ``REWOUND``: the user moved backward from a timeline tip; the ``prev-tip``
  marker remembers that tip (and its timeline) so nothing after it is lost.
- ``DETACHED``: HEAD points at a commit that no timeline tip matches, without
  a saved tip.

Committing while ``REWOUND`` or ``DETACHED`` forks: the new commit starts a
fresh timeline and the original timeline keeps its future untouched.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from .config import Config
from .storage.object_store import ObjectStore
from .storage.side_files import MarkerFile
from .timelines import TimelineRegistry

logger = logging.getLogger(__name__)


class PositionState(Enum):
    AT_TIP = "at_tip"
    REWOUND = "rewound"
    DETACHED = "detached"


@dataclass(frozen=True)
class Position:
    """Snapshot of where the working position is."""

    state: PositionState
    head: Optional[str]
    timeline: Optional[str]
    prev_tip: Optional[str] = None
    rewound_timeline: Optional[str] = None

    @property
    def is_rewound(self) -> bool:
        return self.prev_tip is not None


class TimelineNavigator:
    """Moves the position through history and commits new snapshots."""

    PREV_TIP_FILE = "prev-tip"

    def __init__(
        self,
        store: ObjectStore,
        registry: TimelineRegistry,
        project_dir: Path,
        config: Config,
    ):
        self.store = store
        self.registry = registry
        self.project_dir = Path(project_dir)
        self.config = config
        self._prev_tip = MarkerFile(store.control_dir / self.PREV_TIP_FILE)

    def position(self) -> Position:
        head = self.registry.head_commit()
        timeline = self.registry.attached_slug()
        saved = self._prev_tip.read()
        if saved:
            return Position(
                state=PositionState.REWOUND,
                head=head,
                timeline=timeline,
                prev_tip=saved[0],
                rewound_timeline=saved[1] if len(saved) > 1 else None,
            )
        state = PositionState.AT_TIP if timeline is not None else PositionState.DETACHED
        return Position(state=state, head=head, timeline=timeline)

    def active_timeline(self, position: Optional[Position] = None) -> str:
        """The timeline the position belongs to, even when detached."""
        position = position or self.position()
        if position.timeline is not None:
            return position.timeline
        if position.rewound_timeline and self.registry.exists(position.rewound_timeline):
            return position.rewound_timeline
        return self.registry.descended_timeline(position.head) or self.registry.main_slug

    def clear_rewind(self) -> None:
        self._prev_tip.clear()

    def navigate_to_snapshot(self, target: str) -> Position:
        """Move the position to ``target`` and overwrite the working directory.

        Moving backward from a timeline tip saves that tip; returning to it
        clears it. Nothing is mutated if ``target`` is not a known commit.
        """
        record = self.store.read_commit(target)
        target = record.id
        current = self.position()

        if current.head == target:
            self.store.write_tree_to_dir(record.tree, self.project_dir)
            return current

        prev_tip, rewound = current.prev_tip, current.rewound_timeline
        left_history = prev_tip is not None and not (
            target == prev_tip or self.store.is_ancestor(target, prev_tip)
        )
        if left_history:
            logger.info(f"Left rewound history of {rewound} (saved tip {prev_tip})")
            prev_tip, rewound = None, None
        if (
            prev_tip is None
            and current.state is PositionState.AT_TIP
            and current.head is not None
            and self.store.is_ancestor(target, current.head)
        ):
            prev_tip, rewound = current.head, current.timeline
        if prev_tip == target:
            # Back at the saved tip; ``rewound`` still picks the timeline to reattach.
            prev_tip = None

        self.store.write_tree_to_dir(record.tree, self.project_dir)

        if prev_tip is None:
            self._prev_tip.clear()
        elif prev_tip != current.prev_tip:
            self._prev_tip.write(prev_tip, rewound or "")

        candidates = self.registry.timelines_at(target)
        if candidates:
            preferred = (current.timeline, rewound, self.registry.main_slug)
            slug = next((s for s in preferred if s in candidates), candidates[0])
            self.registry.attach(slug)
        else:
            self.registry.detach(target)

        position = self.position()
        logger.info(f"Navigated to {target} ({position.state.value})")
        return position

    def commit_snapshot(
        self,
        message: str,
        fork_label: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> str:
        """Commit the working directory; fork if the position is off a tip.

        Returns:
            The new commit id
        """
        current = self.position()
        tree = self.store.build_tree(self.project_dir, persist=True)
        commit_id = self.store.create_commit(
            tree, current.head, message, self.config.author.signature(), timestamp
        )

        if current.state is PositionState.AT_TIP:
            self.registry.set_tip(current.timeline, commit_id)
            logger.info(f"Committed {commit_id} on {current.timeline}")
        else:
            self._fork(commit_id, fork_label, current)
        return commit_id

    def _fork(self, commit_id: str, fork_label: Optional[str], current: Position) -> str:
        timelines = self.config.timelines
        label = (fork_label or "").strip() or timelines.default_fork_label
        slug_base = f"{timelines.fork_prefix}-{datetime.now().strftime('%H%M%S')}"
        slug = self.registry.create_timeline(commit_id, label, slug=slug_base)

        # The original timeline keeps the future the user went around.
        original = current.rewound_timeline
        if current.prev_tip and original and self.registry.exists(original):
            self.registry.set_tip(original, current.prev_tip)

        self.registry.attach(slug)
        self._prev_tip.clear()
        logger.info(f"Forked timeline {slug} ({label!r}) at {commit_id}")
        return slug

    def has_unsaved_changes(self) -> bool:
        """True if the working directory differs from the head commit."""
        head = self.registry.head_commit()
        if head is None:
            return True
        live_tree = self.store.build_tree(self.project_dir, persist=False)
        return live_tree != self.store.read_commit(head).tree
