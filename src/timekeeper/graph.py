"""Multi-timeline commit graph for history visualization."""

import logging
from typing import Dict, List

from .models import GraphNode
from .position import TimelineNavigator
from .storage.object_store import CommitRecord, ObjectStore
from .timelines import TimelineRegistry

logger = logging.getLogger(__name__)


class GraphBuilder:
    """Read-only projection of every timeline into one deduplicated graph.

    Attribution rules:

    - Timelines are walked in registry order (main first). A commit belongs to
      the first timeline whose walk reaches it, so shared ancestors go to main.
    - While rewound, the saved tip's chain is walked afterwards and drawn on
      the active timeline, keeping the "future" visible.
    - The HEAD commit is always drawn on the active timeline, overriding any
      earlier claim.
    """

    def __init__(
        self,
        store: ObjectStore,
        registry: TimelineRegistry,
        navigator: TimelineNavigator,
    ):
        self.store = store
        self.registry = registry
        self.navigator = navigator

    def build_graph(self) -> List[GraphNode]:
        order = self.registry.slugs()
        lanes = {slug: lane for lane, slug in enumerate(order)}
        labels = {slug: self.registry.label(slug) for slug in order}
        nodes: Dict[str, GraphNode] = {}

        def walk(tip: str, slug: str) -> None:
            for record in self.store.iter_first_parent(tip):
                if record.id in nodes:
                    break
                nodes[record.id] = self._node(
                    record, slug, labels.get(slug, ""), lanes.get(slug, 0)
                )

        for slug in order:
            tip = self.registry.tip(slug)
            if tip is not None:
                walk(tip, slug)

        position = self.navigator.position()
        active = self.navigator.active_timeline(position)
        if position.prev_tip is not None:
            walk(position.prev_tip, active)

        if position.head is not None:
            if position.head not in nodes:
                walk(position.head, active)
            head_node = nodes[position.head]
            head_node.timeline = active
            head_node.timeline_label = labels.get(active, "")
            head_node.lane = lanes.get(active, 0)
            head_node.is_head = True

        logger.debug(f"Built graph with {len(nodes)} commits over {len(order)} timelines")
        return sorted(nodes.values(), key=lambda node: node.timestamp, reverse=True)

    @staticmethod
    def _node(record: CommitRecord, slug: str, label: str, lane: int) -> GraphNode:
        return GraphNode(
            commit_id=record.id,
            message=record.message,
            timestamp=record.committed_at,
            timeline=slug,
            timeline_label=label,
            parents=[record.parent] if record.parent else [],
            lane=lane,
        )
