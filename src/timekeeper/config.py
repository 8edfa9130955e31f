"""Configuration management for Timekeeper."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_REF_SAFE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


class AuthorConfig(BaseModel):
    """Identity written into every commit as author and committer."""

    name: str = Field(default="Timekeeper", description="Commit author name")
    email: str = Field(
        default="snapshots@timekeeper.local", description="Commit author email"
    )

    @field_validator("name", "email")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        """Author fields end up inside the commit header and cannot be empty."""
        v = v.strip()
        if not v:
            raise ValueError("Author name and email must not be empty")
        if any(c in v for c in "<>\n"):
            raise ValueError(f"Invalid character in author field: {v!r}")
        return v

    def signature(self) -> bytes:
        """Git signature line, e.g. ``b"Name <email>"``."""
        return f"{self.name} <{self.email}>".encode("utf-8")


class TimelineConfig(BaseModel):
    """Naming rules for timelines and forks."""

    main_slug: str = Field(default="main", description="Slug of the permanent timeline")
    main_label: str = Field(default="Main", description="Display label of main")
    fork_prefix: str = Field(
        default="fork", description="Slug prefix for timelines created by forking"
    )
    default_fork_label: str = Field(
        default="New direction",
        description="Label used when a fork is created without an explicit label",
    )

    @field_validator("main_slug", "fork_prefix")
    @classmethod
    def ref_safe(cls, v: str) -> str:
        """Slugs become ref names, so only lowercase alphanumerics and hyphens."""
        if not _REF_SAFE.match(v):
            raise ValueError(f"Not a ref-safe identifier: {v!r}")
        return v


class Config(BaseModel):
    """Main configuration for a versioned project folder."""

    hidden_prefix: str = Field(
        default=".",
        description="Entries whose name starts with this marker are never snapshotted",
    )
    short_id_length: int = Field(
        default=8, ge=4, le=40, description="Length of abbreviated commit ids"
    )
    restore_message: str = Field(
        default="Restored from version {short_id}",
        description="Commit message template used by restore",
    )
    author: AuthorConfig = Field(default_factory=AuthorConfig)
    timelines: TimelineConfig = Field(default_factory=TimelineConfig)

    @field_validator("hidden_prefix")
    @classmethod
    def non_empty_prefix(cls, v: str) -> str:
        if not v:
            raise ValueError("hidden_prefix must not be empty")
        return v

    @field_validator("restore_message")
    @classmethod
    def has_placeholder(cls, v: str) -> str:
        if "{short_id}" not in v:
            raise ValueError("restore_message must contain '{short_id}'")
        return v


class ConfigManager:
    """Manages configuration loading and saving for one project folder."""

    CONFIG_DIR_NAME = ".timekeeper"
    CONFIG_FILE_NAME = "config.json"

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path(self.CONFIG_DIR_NAME) / self.CONFIG_FILE_NAME
        self._config: Optional[Config] = None

    @classmethod
    def for_project(cls, project_dir: Path) -> "ConfigManager":
        """ConfigManager reading ``<project_dir>/.timekeeper/config.json``."""
        return cls(Path(project_dir) / cls.CONFIG_DIR_NAME / cls.CONFIG_FILE_NAME)

    def load(self) -> Config:
        """Load configuration from file, or defaults when there is no file."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._config = Config(**data)
            except Exception as e:
                raise ValueError(f"Failed to load config from {self.config_path}: {e}")
            logger.debug(f"Loaded configuration from {self.config_path}")
        else:
            self._config = Config()

        return self._config

    def save(self, config: Optional[Config] = None) -> None:
        """Save configuration to file."""
        if config is None:
            config = self._config

        if config is None:
            raise ValueError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(config.model_dump(), f, indent=2, sort_keys=True)

    def get_config(self) -> Config:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load()
        if self._config is None:
            raise RuntimeError("Failed to load configuration")
        return self._config

    def update_config(self, **kwargs: Any) -> Config:
        """Update top-level configuration values and persist them."""
        config = self.get_config()

        config_dict = config.model_dump()
        config_dict.update(kwargs)

        new_config = Config(**config_dict)
        self._config = new_config
        self.save()
        return new_config
