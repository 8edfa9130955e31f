"""Object database and side-file storage components."""

from .object_store import CommitRecord, ObjectStore, TreeEntry
from .side_files import LabelTable, MarkerFile

__all__ = [
    "CommitRecord",
    "ObjectStore",
    "TreeEntry",
    "LabelTable",
    "MarkerFile",
]
