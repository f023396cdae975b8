"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, field_validator

from .interfaces import ConfigurationError


class ArchiveSettings(BaseModel):
    """Settings controlling where and how items are archived."""

    target_root: Path = Field(
        default=Path("./archive"), description="Root folder for saved items"
    )
    routes_file: Path = Field(
        default=Path("./routes.json"), description="Routing table JSON file"
    )
    max_messages: int | None = Field(
        default=None, ge=1, description="Hard cap for items processed in a run"
    )
    delete_enabled: bool = Field(
        default=True, description="Allow the archive gate to delete source items"
    )


class StoreSettings(BaseModel):
    """Settings for the source message store."""

    store_path: Path | None = Field(
        default=None, description="Store file attached for the run"
    )
    display_name: str | None = Field(
        default=None, description="Display name of an already mounted store"
    )
    folders: list[str] = Field(
        default_factory=list, description="Folder names to process; empty for all"
    )
    save_format: int = Field(default=9, description="Outlook SaveAs type")

    @field_validator("folders", mode="before")
    @classmethod
    def _split_folders(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(";") if part.strip()]
        return value


# pylint: disable=too-many-instance-attributes
class DirectorySettings(BaseModel):
    """Settings for directory connectivity and group provisioning."""

    server: str = Field(default="localhost", description="Directory server host")
    port: int | None = Field(default=None, description="Override for the LDAP port")
    use_ssl: bool = Field(default=True, description="Use LDAPS")
    username: str | None = Field(default=None, description="Bind user")
    password: str | None = Field(default=None, description="Bind password")
    search_base: str = Field(
        default="", description="Base DN used to load known principals"
    )
    email_access_container: str = Field(
        default="", description="DN of the container that holds access groups"
    )
    netbios_domain: str | None = Field(
        default=None, description="Domain prefix for ACL account names"
    )
    group_prefix: str = Field(
        default="EmailAccess - ", description="Name prefix for access groups"
    )
    convergence_attempts: int = Field(
        default=10, ge=1, description="Visibility polls after creating a group"
    )
    convergence_interval_seconds: float = Field(
        default=3.0, ge=0.0, description="Delay between visibility polls"
    )


class StorageSettings(BaseModel):
    """Settings for the export sink and run log database."""

    enabled: bool = Field(default=True, description="Persist sink rows and events")
    db_path: Path = Field(
        default=Path("./inbox_archiver.db"), description="SQLite database path"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Write one JSON object per log line"
    )
    run_log_path: Path | None = Field(
        default=None, description="Append-only run log file"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    directory: DirectorySettings = Field(default_factory=DirectorySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "INBOX_ARCHIVER_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment)
    if overrides:
        collected.update(overrides)
    try:
        return AppSettings.model_validate(collected)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


__all__ = [
    "AppSettings",
    "ArchiveSettings",
    "DirectorySettings",
    "LoggingSettings",
    "StorageSettings",
    "StoreSettings",
    "load_app_settings",
]
