"""Project configuration (``project.toml``) loader.

Only the parts this tool needs are modelled: the project name/version and
the ``[dependencies]`` / ``[dev-dependencies]`` requirement tables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from common.errors import ConfigError, DuplicateDependencyError, FileIoError
from constants import Constants, FileIoAction

try:
    import tomllib as toml  # type: ignore
except ImportError:  # Python < 3.11
    import tomli as toml  # type: ignore

logger = logging.getLogger(__name__)


def _requirement_table(data: Dict[str, Any], key: str) -> Dict[str, str]:
    table = data.get(key, {})
    if not isinstance(table, dict):
        raise ConfigError(f"`{key}` must be a table of package = \"version requirement\"")
    result: Dict[str, str] = {}
    for name, requirement in table.items():
        if not isinstance(requirement, str):
            raise ConfigError(
                f"Requirement for `{key}.{name}` must be a string, got {type(requirement).__name__}"
            )
        result[name] = requirement.strip()
    return result


@dataclass
class ProjectConfig:
    """Declared requirements of a project."""
    name: str
    version: str = "0.0.0"
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectConfig":
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigError("Project configuration must define a `name`")
        version = data.get("version", "0.0.0")
        if not isinstance(version, str):
            raise ConfigError("Project `version` must be a string")
        return cls(
            name=name,
            version=version,
            dependencies=_requirement_table(data, "dependencies"),
            dev_dependencies=_requirement_table(data, "dev-dependencies"),
        )

    @classmethod
    def load(cls, project_dir: Path) -> "ProjectConfig":
        """Read ``project.toml`` from ``project_dir``.

        Raises:
            FileIoError: the file is missing, unreadable or invalid, including
                a package listed in both dependency tables.
        """
        path = Path(project_dir) / Constants.PROJECT_FILE
        try:
            with open(path, "rb") as handle:
                data = toml.load(handle)
        except FileNotFoundError as exc:
            raise FileIoError(path, FileIoAction.READ, "file not found") from exc
        except OSError as exc:
            raise FileIoError(path, FileIoAction.READ, str(exc)) from exc
        except toml.TOMLDecodeError as exc:
            raise FileIoError(path, FileIoAction.PARSE, str(exc)) from exc
        try:
            config = cls.from_dict(data)
            config.all_dependencies()
        except ConfigError as exc:
            raise FileIoError(path, FileIoAction.PARSE, str(exc)) from exc
        logger.debug("Loaded project %s from %s", config.name, path)
        return config

    def all_dependencies(self) -> Dict[str, str]:
        """Merge runtime and development requirements.

        Raises:
            DuplicateDependencyError: a package is listed in both tables.
        """
        merged = dict(self.dependencies)
        for name, requirement in self.dev_dependencies.items():
            if name in merged:
                raise DuplicateDependencyError(name)
            merged[name] = requirement
        return merged
