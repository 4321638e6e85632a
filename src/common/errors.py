"""Exception hierarchy shared by every phase of a dependency download.

Library code raises these; only the command boundary (``depsync.main``)
turns them into exit codes and a single terminal message.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from constants import AcquisitionStage, ExitCodes, FileIoAction


class DepsyncError(Exception):
    """Base class for all fatal errors raised by depsync."""

    exit_code = ExitCodes.FILE_ERROR


class ConfigError(DepsyncError):
    """Invalid tool or project configuration."""


class FileIoError(DepsyncError):
    """A file could not be read, parsed or written."""

    def __init__(
        self,
        path: Union[str, Path],
        action: FileIoAction,
        detail: Optional[str] = None,
    ):
        self.path = Path(path)
        self.action = action
        self.detail = detail
        message = f"Failed to {action.value} {self.path}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DuplicateDependencyError(ConfigError):
    """A package is listed in both dependencies and dev-dependencies."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Package '{name}' is listed in both dependencies and dev-dependencies"
        )


class InvalidRequirementError(ConfigError):
    """A version constraint could not be understood."""

    def __init__(self, package: str, requirement: str, reason: str = ""):
        self.package = package
        self.requirement = requirement
        message = f"Invalid version requirement '{requirement}' for package '{package}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class RegistryError(DepsyncError):
    """Base class for failures talking to the package registry."""

    exit_code = ExitCodes.CONNECTION_ERROR


class RegistryConnectionError(RegistryError):
    """Network failure, timeout or unexpected HTTP status."""


class RegistryResponseError(RegistryError):
    """The registry answered with a payload that could not be decoded."""


class PackageNotFoundError(RegistryError):
    """The registry does not know the requested package."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Package '{name}' was not found in the registry")


class SignatureError(RegistryError):
    """A registry response failed verification against the trusted key."""


class ResolutionError(DepsyncError):
    """No set of versions satisfies the project requirements."""

    exit_code = ExitCodes.RESOLUTION_ERROR


class ArchiveError(DepsyncError):
    """A downloaded archive is malformed or cannot be unpacked safely."""


class AcquisitionError(DepsyncError):
    """Downloading, verifying or unpacking one package failed."""

    exit_code = ExitCodes.ACQUISITION_ERROR

    def __init__(self, name: str, version: str, stage: AcquisitionStage, detail: str):
        self.name = name
        self.version = version
        self.stage = stage
        self.detail = detail
        super().__init__(
            f"Failed to acquire {name} {version} ({stage.value}): {detail}"
        )
