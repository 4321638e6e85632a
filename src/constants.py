"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_ERROR = 4
    ACQUISITION_ERROR = 5


class FileIoAction(Enum):
    """What was being attempted when a file operation failed."""

    READ = "read"
    PARSE = "parse"
    WRITE = "write"


class AcquisitionStage(Enum):
    """Stage of a single package download that failed."""

    NETWORK = "network"
    SIGNATURE = "signature"
    EXTRACTION = "extraction"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration defaults; not intended to provide behavior.
    """

    REGISTRY_URL = "https://repo.hex.pm"
    PROJECT_FILE = "project.toml"
    MANIFEST_FILE = "manifest.toml"
    PACKAGES_TOML_FILE = "packages.toml"
    PACKAGES_DIR = "build/packages"
    TMP_DIR_NAME = ".tmp"
    CACHE_HOME = "~/.cache"
    CACHE_SUBDIR = "depsync/archives"
    MANIFEST_HEADER = (
        "# This file was generated by depsync\n"
        "# You typically do not need to edit this file manually\n"
        "\n"
    )
    SIGNATURE_HEADER = "x-depsync-signature"
    USER_AGENT = "depsync/0.1"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    MAX_CONCURRENCY = 8
    MAX_RESOLUTION_ROUNDS = 10000

    ENV_LOG_LEVEL = "DEPSYNC_LOG_LEVEL"
    ENV_REGISTRY_URL = "DEPSYNC_REGISTRY_URL"
    ENV_REGISTRY_PUBLIC_KEY = "DEPSYNC_REGISTRY_PUBLIC_KEY"
    ENV_PACKAGES_DIR = "DEPSYNC_PACKAGES_DIR"
    ENV_CACHE_DIR = "DEPSYNC_CACHE_DIR"
    ENV_XDG_CACHE_HOME = "XDG_CACHE_HOME"
    ENV_MAX_CONCURRENCY = "DEPSYNC_MAX_CONCURRENCY"
