"""Response models returned by the operation surface.

These are what the surrounding application serializes for its UI, so they are
pydantic models with JSON-friendly field types.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class VersionEntry(BaseModel):
    """One commit on the active timeline's linear history."""

    id: str = Field(description="Full commit id")
    message: str = Field(description="Commit message, trimmed")
    timestamp: datetime = Field(description="Commit time (UTC)")
    summary: str = Field(
        default="", description="What changed relative to the parent commit"
    )


class TimelineEntry(BaseModel):
    """A timeline as reported by list_timelines."""

    slug: str
    label: str
    head: str = Field(description="Commit id the timeline currently points at")
    is_active: bool = False
    commit_count: int = Field(
        default=0, description="Length of the first-parent chain from head to root"
    )


class GraphNode(BaseModel):
    """A commit in the multi-timeline history graph."""

    commit_id: str
    message: str
    timestamp: datetime
    timeline: str = Field(description="Slug of the timeline the commit is drawn on")
    timeline_label: str = ""
    parents: List[str] = Field(default_factory=list)
    lane: int = Field(default=0, description="Column / color index of the timeline")
    is_head: bool = False
