# =============================================================================
# apphost/lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application host.
# =============================================================================

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId


# =============================================================================
# Project Metadata
# =============================================================================

@dataclass(frozen=True)
class ProjectMetadata:
    """Name, version and description of a hosted application."""
    name: str
    version: str = "0.0.0"
    description: str = ""


def read_project_metadata(dir_path: Path) -> ProjectMetadata:
    """
    Read the [project] table of the application's pyproject.toml.

    Falls back to the directory name when the file or the table is absent.

    Args:
        dir_path: Application root directory

    Returns:
        ProjectMetadata for the application
    """
    pyproject = dir_path / "pyproject.toml"
    if not pyproject.is_file():
        return ProjectMetadata(name=dir_path.name)

    with pyproject.open("rb") as f:
        project = tomllib.load(f).get("project", {})

    return ProjectMetadata(
        name=project.get("name") or dir_path.name,
        version=project.get("version") or "0.0.0",
        description=project.get("description") or "",
    )


# =============================================================================
# Dict Utilities
# =============================================================================

def deep_merge(base: dict[str, Any], override: dict[str, Any] | None) -> dict[str, Any]:
    """
    Recursively merge `override` into `base` and return `base`.

    Nested dicts are merged key by key; any other value in `override`,
    lists included, replaces the value in `base`.

    Example:
        deep_merge({"log": {"level": "info"}}, {"log": {"level": "debug"}})
        # {"log": {"level": "debug"}}
    """
    if not override:
        return base

    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            deep_merge(current, value)
        else:
            base[key] = value
    return base


# =============================================================================
# ObjectId Utilities
# =============================================================================

def normalize_object_id(value: ObjectId | str) -> ObjectId:
    """
    Normalize an id to ObjectId.

    Raises:
        bson.errors.InvalidId: If a string is not a valid ObjectId
    """
    return value if isinstance(value, ObjectId) else ObjectId(value)


def try_object_id(value: Any) -> ObjectId | None:
    """Like normalize_object_id, but returns None for missing or malformed ids."""
    # ObjectId(None) would generate a fresh id
    if value is None:
        return None
    try:
        return normalize_object_id(value)
    except (InvalidId, TypeError):
        return None
