"""Tests for Timekeeper configuration loading and validation."""

import json

import pytest
from pydantic import ValidationError

from timekeeper.config import AuthorConfig, Config, ConfigManager, TimelineConfig
from timekeeper.engine import SnapshotEngine

from conftest import write_file


class TestConfigDefaults:
    def test_defaults(self):
        config = Config()
        assert config.hidden_prefix == "."
        assert config.short_id_length == 8
        assert config.restore_message == "Restored from version {short_id}"
        assert config.timelines.main_slug == "main"
        assert config.timelines.default_fork_label == "New direction"
        assert config.author.signature() == b"Timekeeper <snapshots@timekeeper.local>"

    @pytest.mark.parametrize("length", [3, 41])
    def test_short_id_length_bounds(self, length):
        with pytest.raises(ValidationError):
            Config(short_id_length=length)

    def test_restore_message_needs_placeholder(self):
        with pytest.raises(ValidationError):
            Config(restore_message="Restored")

    def test_empty_hidden_prefix_rejected(self):
        with pytest.raises(ValidationError):
            Config(hidden_prefix="")

    @pytest.mark.parametrize("slug", ["Main", "with space", "-leading", ""])
    def test_timeline_slugs_must_be_ref_safe(self, slug):
        with pytest.raises(ValidationError):
            TimelineConfig(main_slug=slug)

    @pytest.mark.parametrize("name", ["", "   ", "Bad <name>", "two\nlines"])
    def test_author_fields_validated(self, name):
        with pytest.raises(ValidationError):
            AuthorConfig(name=name)

    def test_author_fields_are_trimmed(self):
        assert AuthorConfig(name="  Ada  ").name == "Ada"


class TestConfigManager:
    def test_missing_file_gives_defaults(self, tmp_path):
        manager = ConfigManager.for_project(tmp_path)
        assert manager.load() == Config()
        assert not manager.config_path.exists()

    def test_save_and_load(self, tmp_path):
        manager = ConfigManager.for_project(tmp_path)
        config = Config(short_id_length=12, author=AuthorConfig(name="Ada", email="ada@example.com"))
        manager.save(config)

        assert manager.config_path == tmp_path / ".timekeeper" / "config.json"
        loaded = ConfigManager.for_project(tmp_path).load()
        assert loaded == config

    def test_partial_file_fills_defaults(self, tmp_path):
        path = tmp_path / ".timekeeper" / "config.json"
        path.parent.mkdir()
        path.write_text(json.dumps({"timelines": {"main_label": "Trunk"}}))

        config = ConfigManager.for_project(tmp_path).load()
        assert config.timelines.main_label == "Trunk"
        assert config.timelines.main_slug == "main"

    def test_invalid_json_raises_value_error(self, tmp_path):
        path = tmp_path / ".timekeeper" / "config.json"
        path.parent.mkdir()
        path.write_text("{not json")

        with pytest.raises(ValueError, match="Failed to load config"):
            ConfigManager.for_project(tmp_path).load()

    def test_invalid_values_raise_value_error(self, tmp_path):
        path = tmp_path / ".timekeeper" / "config.json"
        path.parent.mkdir()
        path.write_text(json.dumps({"short_id_length": 1}))

        with pytest.raises(ValueError):
            ConfigManager.for_project(tmp_path).load()

    def test_save_without_config_raises(self, tmp_path):
        with pytest.raises(ValueError, match="No configuration to save"):
            ConfigManager.for_project(tmp_path).save()

    def test_update_config_persists(self, tmp_path):
        manager = ConfigManager.for_project(tmp_path)
        updated = manager.update_config(short_id_length=10)

        assert updated.short_id_length == 10
        assert ConfigManager.for_project(tmp_path).load().short_id_length == 10


class TestConfigInEngine:
    def test_config_directory_is_not_snapshotted(self, project_dir):
        ConfigManager.for_project(project_dir).save(Config())
        with SnapshotEngine.init(project_dir) as engine:
            write_file(project_dir, "a.txt", "1")
            commit_id = engine.commit("first")
            tree = engine.store.read_commit(commit_id).tree
            names = [entry.name for entry in engine.store.read_tree(tree)]
        assert names == ["a.txt"]

    def test_author_from_config(self, project_dir):
        config = Config(author=AuthorConfig(name="Ada", email="ada@example.com"))
        with SnapshotEngine.init(project_dir, config=config) as engine:
            write_file(project_dir, "a.txt", "1")
            commit_id = engine.commit("first")
            assert engine.store.read_commit(commit_id).author == "Ada <ada@example.com>"

    def test_restore_message_and_short_id_from_config(self, project_dir):
        config = Config(short_id_length=12, restore_message="Back to {short_id}")
        with SnapshotEngine.init(project_dir, config=config) as engine:
            write_file(project_dir, "a.txt", "1")
            first = engine.commit("first")
            write_file(project_dir, "a.txt", "2")
            engine.commit("second")

            engine.restore(first)
            assert engine.list_commits()[0].message == f"Back to {first[:12]}"

    def test_custom_main_timeline(self, project_dir):
        config = Config(timelines=TimelineConfig(main_slug="trunk", main_label="Trunk"))
        with SnapshotEngine.init(project_dir, config=config) as engine:
            write_file(project_dir, "a.txt", "1")
            engine.commit("first")
            entries = engine.list_timelines()
        assert [(e.slug, e.label) for e in entries] == [("trunk", "Trunk")]
