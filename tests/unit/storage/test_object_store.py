"""Unit tests for the git-compatible ObjectStore."""

import shutil

import pytest

from timekeeper.errors import NotFoundError, ObjectStoreError
from timekeeper.storage.object_store import CommitRecord, ObjectStore, TreeEntry

from conftest import visible_files, write_file

EMPTY_TREE_ID = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
AUTHOR = b"Test <test@example.com>"


@pytest.fixture
def store(project_dir):
    object_store = ObjectStore.init(project_dir)
    yield object_store
    object_store.close()


class TestBlobsAndTrees:
    """Content addressing of blobs and trees."""

    def test_blob_id_matches_git_hash_object(self, store):
        """Blob ids use the git encoding, so `git hash-object` agrees."""
        assert store.write_blob(b"hello\n") == "ce013625030ba8dba906f756967f9e9ca394464a"

    def test_write_blob_is_idempotent(self, store):
        first = store.write_blob(b"same bytes")
        second = store.write_blob(b"same bytes")
        assert first == second
        assert store.read_object(first) == b"same bytes"

    def test_empty_folder_is_the_empty_tree(self, store, project_dir):
        assert store.build_tree(project_dir) == EMPTY_TREE_ID

    def test_hidden_entries_are_excluded(self, store, project_dir, tmp_path):
        """Dot-prefixed files and folders never reach the tree."""
        write_file(project_dir, "a.txt", "1")
        write_file(project_dir, ".secret", "x")
        write_file(project_dir, ".cache/blob.bin", "y")
        with_hidden = store.build_tree(project_dir)

        other = tmp_path / "other"
        write_file(other, "a.txt", "1")
        assert store.build_tree(other) == with_hidden

        names = [entry.name for entry in store.read_object(with_hidden)]
        assert names == ["a.txt"]

    def test_custom_hidden_prefix_still_skips_store(self, tmp_path):
        folder = tmp_path / "custom"
        store = ObjectStore.init(folder, hidden_prefix="_")
        try:
            write_file(folder, "a.txt", "1")
            write_file(folder, "_draft.txt", "skip me")
            write_file(folder, ".notes", "kept")
            write_file(folder, ".timekeeper/config.json", "{}")
            names = [entry.name for entry in store.read_object(store.build_tree(folder))]
        finally:
            store.close()
        assert names == [".notes", "a.txt"]

    def test_same_content_in_different_folders_gives_same_tree(self, store, tmp_path):
        for name in ("one", "two"):
            write_file(tmp_path / name, "docs/intro.md", "# Intro")
            write_file(tmp_path / name, "sketch.json", "{}")
        assert store.build_tree(tmp_path / "one") == store.build_tree(tmp_path / "two")

    def test_nested_folders_become_subtrees(self, store, project_dir):
        write_file(project_dir, "documents/doc1.json", '{"title": "Doc 1"}')
        listing = store.read_object(store.build_tree(project_dir))
        assert listing == [
            TreeEntry(name="documents", mode=0o40000, id=listing[0].id)
        ]
        assert listing[0].is_tree

    def test_empty_subfolders_are_skipped(self, store, project_dir):
        (project_dir / "empty").mkdir()
        write_file(project_dir, "a.txt", "1")
        names = [entry.name for entry in store.read_object(store.build_tree(project_dir))]
        assert names == ["a.txt"]

    def test_symlinks_are_not_followed(self, store, project_dir, tmp_path):
        """Links pointing outside the folder are neither captured nor traversed."""
        outside = tmp_path / "outside"
        write_file(outside, "secret.txt", "not part of the project")
        write_file(project_dir, "a.txt", "1")
        (project_dir / "linked_dir").symlink_to(outside, target_is_directory=True)
        (project_dir / "linked_file").symlink_to(outside / "secret.txt")

        tree = store.build_tree(project_dir)
        names = [entry.name for entry in store.read_object(tree)]
        assert names == ["a.txt"]

        store.write_tree_to_dir(tree, project_dir)
        assert not (project_dir / "linked_dir").exists()
        assert not (project_dir / "linked_dir").is_symlink()
        assert not (project_dir / "linked_file").is_symlink()
        assert (outside / "secret.txt").read_text() == "not part of the project"

    def test_build_tree_without_persist_writes_nothing(self, store, project_dir):
        write_file(project_dir, "unsaved.txt", "draft")
        tree_id = store.build_tree(project_dir, persist=False)
        assert not store.has_object(tree_id)
        assert store.build_tree(project_dir, persist=True) == tree_id
        assert store.has_object(tree_id)

    def test_modified_file_changes_tree(self, store, project_dir):
        path = write_file(project_dir, "a.txt", "1")
        before = store.build_tree(project_dir)
        path.write_text("22")
        assert store.build_tree(project_dir) != before


class TestCommits:
    """Commit creation and history walks."""

    def test_commit_id_is_deterministic(self, store, project_dir):
        write_file(project_dir, "a.txt", "1")
        tree = store.build_tree(project_dir)
        first = store.create_commit(tree, None, "v1", AUTHOR, timestamp=1700000000)
        second = store.create_commit(tree, None, "v1", AUTHOR, timestamp=1700000000)
        assert first == second

    def test_read_commit_round_trips_fields(self, store, project_dir):
        write_file(project_dir, "a.txt", "1")
        tree = store.build_tree(project_dir)
        root = store.create_commit(tree, None, "first", AUTHOR, timestamp=1700000000)
        child = store.create_commit(tree, root, "second", AUTHOR, timestamp=1700000100)

        record = store.read_commit(child)
        assert isinstance(record, CommitRecord)
        assert record.parent == root
        assert record.tree == tree
        assert record.message == "second"
        assert record.author == AUTHOR.decode()
        assert record.timestamp == 1700000100
        assert store.read_commit(root).parent is None

    def test_create_commit_requires_stored_tree(self, store, project_dir):
        write_file(project_dir, "a.txt", "1")
        tree = store.build_tree(project_dir, persist=False)
        with pytest.raises(ObjectStoreError):
            store.create_commit(tree, None, "v1", AUTHOR)

    def test_first_parent_walk_and_ancestry(self, store, project_dir):
        tree = store.build_tree(project_dir)
        c1 = store.create_commit(tree, None, "c1", AUTHOR, timestamp=1)
        c2 = store.create_commit(tree, c1, "c2", AUTHOR, timestamp=2)
        c3 = store.create_commit(tree, c2, "c3", AUTHOR, timestamp=3)

        assert [r.id for r in store.iter_first_parent(c3)] == [c3, c2, c1]
        assert store.is_ancestor(c1, c3)
        assert not store.is_ancestor(c3, c1)
        assert not store.is_ancestor(c2, c2)
        assert list(store.iter_first_parent(None)) == []

    @pytest.mark.parametrize("bad_id", ["", "zzzz", "abc", "0" * 40, "A" * 40])
    def test_unknown_or_unparsable_commit_is_not_found(self, store, bad_id):
        with pytest.raises(NotFoundError):
            store.read_commit(bad_id)

    def test_blob_id_is_not_a_commit(self, store):
        blob_id = store.write_blob(b"data")
        with pytest.raises(NotFoundError):
            store.read_commit(blob_id)

    def test_corrupt_object_is_reported(self, store):
        blob_id = store.write_blob(b"soon to be damaged")
        path = store.control_dir / "objects" / blob_id[:2] / blob_id[2:]
        path.chmod(0o644)
        path.write_bytes(b"")
        with pytest.raises(ObjectStoreError):
            store.read_object(blob_id)


class TestWorkingDirectory:
    """Writing trees back to disk and looking up paths."""

    def test_write_tree_round_trips_build_tree(self, store, project_dir):
        write_file(project_dir, "a.txt", "1")
        write_file(project_dir, "docs/b.md", "b")
        tree = store.build_tree(project_dir)
        expected = visible_files(project_dir)

        write_file(project_dir, "a.txt", "changed")
        write_file(project_dir, "stray/new.txt", "new")
        (project_dir / "docs" / "b.md").unlink()

        store.write_tree_to_dir(tree, project_dir)
        assert visible_files(project_dir) == expected
        assert store.build_tree(project_dir) == tree

    def test_write_tree_leaves_hidden_entries_alone(self, store, project_dir):
        write_file(project_dir, "a.txt", "1")
        tree = store.build_tree(project_dir)
        write_file(project_dir, ".notes", "private")

        store.write_tree_to_dir(tree, project_dir)
        assert (project_dir / ".notes").read_text() == "private"
        assert (project_dir / ".git").is_dir()

    def test_file_replaced_by_folder(self, store, project_dir):
        write_file(project_dir, "item/inner.txt", "inside")
        tree = store.build_tree(project_dir)
        shutil.rmtree(project_dir / "item")
        write_file(project_dir, "item", "now a file")

        store.write_tree_to_dir(tree, project_dir)
        assert (project_dir / "item" / "inner.txt").read_text() == "inside"

    def test_lookup_path(self, store, project_dir):
        write_file(project_dir, "documents/doc1.json", "Doc 1")
        tree = store.build_tree(project_dir)

        entry = store.lookup_path(tree, "documents/doc1.json")
        assert store.read_blob(entry.id) == b"Doc 1"
        assert store.lookup_path(tree, "documents").is_tree

        with pytest.raises(NotFoundError):
            store.lookup_path(tree, "documents/missing.json")
        with pytest.raises(NotFoundError):
            store.lookup_path(tree, "documents/doc1.json/deeper")

    def test_tree_change_summary(self, store, project_dir):
        write_file(project_dir, "a.txt", "1")
        write_file(project_dir, "b.txt", "1")
        old = store.build_tree(project_dir)

        write_file(project_dir, "a.txt", "2")
        (project_dir / "b.txt").unlink()
        write_file(project_dir, "c.txt", "3")
        new = store.build_tree(project_dir)

        assert store.tree_change_summary(old, new) == "1 added, 1 modified, 1 deleted"
        assert store.tree_change_summary(None, old) == "2 added"
        assert store.tree_change_summary(old, old) == "No changes"


class TestOpen:
    def test_open_without_store_is_not_found(self, tmp_path):
        with pytest.raises(NotFoundError):
            ObjectStore.open(tmp_path)

    def test_init_twice_reopens(self, project_dir):
        first = ObjectStore.init(project_dir)
        blob_id = first.write_blob(b"kept")
        first.close()

        second = ObjectStore.init(project_dir)
        try:
            assert second.read_object(blob_id) == b"kept"
        finally:
            second.close()
