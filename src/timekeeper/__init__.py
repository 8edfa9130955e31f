"""
Timekeeper - branching snapshot history for folders of creative work.

Every save captures the folder's visible contents as a git-compatible commit.
Rewinding never loses work: committing after a rewind forks a new timeline
and leaves the original timeline's future intact.
"""

__version__ = "0.3.0"
