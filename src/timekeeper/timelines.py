"""Timeline registry: named refs over the commit history.

Each timeline is a git branch ``refs/heads/<slug>``; its display label lives in
the label table. ``HEAD`` is either a symbolic ref to the active timeline or,
when the position sits on an interior commit, a bare commit id.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from dulwich.file import FileLocked, GitFile
from dulwich.refs import SYMREF

from .config import Config
from .errors import InvalidOperationError, NotFoundError, VersioningIoError
from .models import TimelineEntry
from .storage.object_store import ObjectStore
from .storage.side_files import LabelTable

logger = logging.getLogger(__name__)

REF_PREFIX = b"refs/heads/"
HEAD_REF = b"HEAD"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(label: str) -> str:
    """Normalize a label into a ref-safe slug ("My Cut!" -> "my-cut")."""
    return _NON_ALNUM.sub("-", label.lower()).strip("-")


class TimelineRegistry:
    """Create, list, switch and delete timelines of one project folder."""

    def __init__(self, store: ObjectStore, labels: LabelTable, config: Config):
        self.store = store
        self.labels = labels
        self.config = config
        self.main_slug = config.timelines.main_slug

    @property
    def _refs(self):
        return self.store.repo.refs

    @staticmethod
    def _ref(slug: str) -> bytes:
        return REF_PREFIX + slug.encode("ascii")

    # ---- refs ----

    def slugs(self) -> List[str]:
        """All timeline slugs in stable order: main first, then alphabetical."""
        names = sorted(name.decode("ascii") for name in self._refs.keys(base=REF_PREFIX))
        if self.main_slug in names:
            names.remove(self.main_slug)
            names.insert(0, self.main_slug)
        return names

    def exists(self, slug: str) -> bool:
        return slugify(slug) == slug and self._refs.read_ref(self._ref(slug)) is not None

    def tip(self, slug: str) -> Optional[str]:
        if slugify(slug) != slug:
            return None
        value = self._refs.read_ref(self._ref(slug))
        return value.decode("ascii") if value else None

    def tips(self) -> Dict[str, str]:
        """slug -> tip commit id, in stable order."""
        result: Dict[str, str] = {}
        for slug in self.slugs():
            tip = self.tip(slug)
            if tip is not None:
                result[slug] = tip
        return result

    def set_tip(self, slug: str, commit_id: str) -> None:
        """Point ``slug`` at ``commit_id``, creating the ref if needed."""
        ref = self._ref(slug)
        old = self._refs.read_ref(ref)
        try:
            updated = self._refs.set_if_equals(ref, old, commit_id.encode("ascii"))
        except OSError as e:
            raise VersioningIoError(f"Failed to update timeline {slug}: {e}") from e
        if not updated:
            raise VersioningIoError(f"Timeline {slug} changed during update")
        logger.debug(f"Timeline {slug} -> {commit_id}")

    def timelines_at(self, commit_id: str) -> List[str]:
        """Slugs whose tip is exactly ``commit_id``, in stable order."""
        return [slug for slug, tip in self.tips().items() if tip == commit_id]

    # ---- HEAD ----

    def attached_slug(self) -> Optional[str]:
        """The timeline HEAD symbolically points at, or None when detached."""
        raw = self._refs.read_ref(HEAD_REF)
        if raw and raw.startswith(SYMREF):
            target = raw[len(SYMREF):].strip()
            if target.startswith(REF_PREFIX):
                return target[len(REF_PREFIX):].decode("ascii")
        return None

    def head_commit(self) -> Optional[str]:
        """Commit the position points at; None before the first commit."""
        raw = self._refs.read_ref(HEAD_REF)
        if not raw:
            return None
        if raw.startswith(SYMREF):
            slug = self.attached_slug()
            return self.tip(slug) if slug else None
        return raw.strip().decode("ascii")

    def attach(self, slug: str) -> None:
        try:
            self._refs.set_symbolic_ref(HEAD_REF, self._ref(slug))
        except OSError as e:
            raise VersioningIoError(f"Failed to attach HEAD to {slug}: {e}") from e
        logger.debug(f"HEAD attached to {slug}")

    def detach(self, commit_id: str) -> None:
        # Written through a lock file so the symref is replaced instead of followed.
        head_file = self.store.control_dir / HEAD_REF.decode()
        try:
            with GitFile(str(head_file), "wb") as f:
                f.write(f"{commit_id}\n".encode("ascii"))
        except (OSError, FileLocked) as e:
            raise VersioningIoError(f"Failed to detach HEAD: {e}") from e
        logger.debug(f"HEAD detached at {commit_id}")

    # ---- labels ----

    def label(self, slug: str) -> str:
        label = self.labels.get(slug)
        if label:
            return label
        if slug == self.main_slug:
            return self.config.timelines.main_label
        return slug.replace("-", " ").title()

    def rename(self, slug: str, label: str) -> None:
        if not self.exists(slug):
            raise NotFoundError(f"Timeline not found: {slug}")
        self.labels.set(slug, label)
        logger.info(f"Timeline {slug} relabelled to {label!r}")

    def resolve(self, name: str) -> str:
        """Map a slug or an exact label to a slug."""
        if self.exists(name):
            return name
        for slug in self.slugs():
            if self.label(slug) == name:
                return slug
        raise NotFoundError(f"Timeline not found: {name}")

    # ---- operations ----

    def unique_slug(self, base: str) -> str:
        base = slugify(base) or "timeline"
        slug, n = base, 2
        while self.exists(slug):
            slug = f"{base}-{n}"
            n += 1
        return slug

    def create_timeline(
        self, from_commit: str, label: str, slug: Optional[str] = None
    ) -> str:
        """Create a timeline starting at ``from_commit`` and return its slug.

        Args:
            from_commit: Commit the new ref points at; must exist
            label: Display label, also the source of the slug
            slug: Slug base to use instead of the normalized label

        Raises:
            NotFoundError: ``from_commit`` is not a commit in the store
        """
        self.store.read_commit(from_commit)
        new_slug = self.unique_slug(slug if slug is not None else label)
        self.set_tip(new_slug, from_commit)
        self.labels.set(new_slug, label.strip() or self.label(new_slug))
        logger.info(f"Created timeline {new_slug} at {from_commit}")
        return new_slug

    def commit_count(self, slug: str) -> int:
        return sum(1 for _ in self.store.iter_first_parent(self.tip(slug)))

    def descended_timeline(self, commit_id: Optional[str]) -> Optional[str]:
        """The timeline whose tip is met first walking ancestors from ``commit_id``."""
        if commit_id is None:
            return None
        tips = self.tips()
        for record in self.store.iter_first_parent(commit_id):
            for slug, tip in tips.items():
                if tip == record.id:
                    return slug
        return None

    def list_timelines(self, active_slug: Optional[str]) -> List[TimelineEntry]:
        return [
            TimelineEntry(
                slug=slug,
                label=self.label(slug),
                head=tip,
                is_active=slug == active_slug,
                commit_count=self.commit_count(slug),
            )
            for slug, tip in self.tips().items()
        ]

    def switch(self, slug: str, project_dir: Path) -> str:
        """Attach HEAD to ``slug`` and reset the working directory to its tip.

        Returns:
            The tip commit id
        """
        tip = self.tip(slug)
        if tip is None:
            raise NotFoundError(f"Timeline not found: {slug}")
        record = self.store.read_commit(tip)
        self.store.write_tree_to_dir(record.tree, project_dir)
        self.attach(slug)
        logger.info(f"Switched to timeline {slug} at {tip}")
        return tip

    def delete(self, slug: str, active_slug: Optional[str]) -> None:
        if slug == self.main_slug:
            raise InvalidOperationError("The main timeline cannot be deleted")
        if not self.exists(slug):
            raise NotFoundError(f"Timeline not found: {slug}")
        if slug == active_slug:
            raise InvalidOperationError(
                f"Timeline {slug} is active; switch to another timeline first"
            )
        try:
            del self._refs[self._ref(slug)]
        except OSError as e:
            raise VersioningIoError(f"Failed to delete timeline {slug}: {e}") from e
        self.labels.remove(slug)
        logger.info(f"Deleted timeline {slug}")
