"""Runtime settings assembled from CLI arguments, environment and a YAML file.

Precedence, highest first: CLI flags, ``DEPSYNC_*`` environment variables,
the YAML file given with ``-c/--config``, then ``Constants`` defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from cryptography.hazmat.primitives.asymmetric import rsa

from common.errors import ConfigError, FileIoError
from constants import Constants, FileIoAction
from registry.signing import load_public_key

logger = logging.getLogger(__name__)

_CONFIG_KEYS = (
    "packages_dir",
    "cache_dir",
    "registry_url",
    "registry_public_key",
    "max_concurrency",
    "request_timeout",
)


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load the YAML settings file.

    A top-level ``depsync`` section is used when present, otherwise the
    whole document. Unknown keys are ignored with a warning.

    Raises:
        FileIoError: the file cannot be read or is not valid YAML.
        ConfigError: the document is not a mapping.
    """
    if not config_path:
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise FileIoError(config_path, FileIoAction.READ, str(exc)) from exc
    except yaml.YAMLError as exc:
        raise FileIoError(config_path, FileIoAction.PARSE, str(exc)) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    section = data.get("depsync", data)
    if not isinstance(section, dict):
        raise ConfigError(f"`depsync` section of {config_path} must be a mapping")

    unknown = sorted(set(section) - set(_CONFIG_KEYS))
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", config_path, ", ".join(unknown))
    return {key: section[key] for key in _CONFIG_KEYS if key in section}


def _positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"`{name}` must be an integer, got {value!r}") from exc
    if number < 1:
        raise ConfigError(f"`{name}` must be at least 1, got {number}")
    return number


@dataclass
class Settings:
    """Everything one ``depsync`` run needs to know.

    ``cache_dir`` is the archive cache shared between projects; ``None``
    disables it and every missing package is fetched from the registry.
    """

    project_dir: Path
    packages_dir: Path
    registry_url: str = Constants.REGISTRY_URL
    registry_public_key: Optional[str] = None
    max_concurrency: int = Constants.MAX_CONCURRENCY
    request_timeout: int = Constants.REQUEST_TIMEOUT
    cache_dir: Optional[Path] = None

    @property
    def manifest_path(self) -> Path:
        return self.project_dir / Constants.MANIFEST_FILE

    @property
    def packages_toml_path(self) -> Path:
        return self.packages_dir / Constants.PACKAGES_TOML_FILE

    @classmethod
    def from_sources(
        cls,
        args: Any,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        """Create settings from parsed CLI arguments and the environment.

        Args:
            args: Parsed CLI arguments namespace.
            environ: Environment mapping; defaults to ``os.environ``.

        Returns:
            Settings instance.
        """
        env = os.environ if environ is None else environ
        file_values = load_config_file(getattr(args, "CONFIG_FILE", None))

        def pick(arg_name: str, env_name: Optional[str], key: str, default: Any) -> Any:
            value = getattr(args, arg_name, None)
            if value is not None:
                return value
            if env_name and env.get(env_name):
                return env[env_name]
            if file_values.get(key) is not None:
                return file_values[key]
            return default

        project_dir = Path(getattr(args, "PROJECT_DIR", None) or ".")
        packages_dir = Path(
            pick("PACKAGES_DIR", Constants.ENV_PACKAGES_DIR, "packages_dir", Constants.PACKAGES_DIR)
        )
        if not packages_dir.is_absolute():
            packages_dir = project_dir / packages_dir

        cache_home = env.get(Constants.ENV_XDG_CACHE_HOME) or Constants.CACHE_HOME
        cache_dir = Path(
            pick("CACHE_DIR", Constants.ENV_CACHE_DIR, "cache_dir", Path(cache_home) / Constants.CACHE_SUBDIR)
        ).expanduser()
        if not cache_dir.is_absolute():
            cache_dir = project_dir / cache_dir

        registry_url = str(
            pick("REGISTRY_URL", Constants.ENV_REGISTRY_URL, "registry_url", Constants.REGISTRY_URL)
        )
        if not registry_url.startswith(("http://", "https://")):
            raise ConfigError(f"Registry URL must be http(s): {registry_url}")

        public_key = pick(
            "REGISTRY_PUBLIC_KEY", Constants.ENV_REGISTRY_PUBLIC_KEY, "registry_public_key", None
        )

        return cls(
            project_dir=project_dir,
            packages_dir=packages_dir,
            registry_url=registry_url,
            registry_public_key=str(public_key) if public_key is not None else None,
            max_concurrency=_positive_int(
                pick("MAX_CONCURRENCY", Constants.ENV_MAX_CONCURRENCY, "max_concurrency",
                     Constants.MAX_CONCURRENCY),
                "max_concurrency",
            ),
            request_timeout=_positive_int(
                pick("REQUEST_TIMEOUT", None, "request_timeout", Constants.REQUEST_TIMEOUT),
                "request_timeout",
            ),
            cache_dir=cache_dir,
        )

    def load_public_key(self) -> rsa.RSAPublicKey:
        """Load the trusted registry key from inline PEM text or a PEM file path.

        Raises:
            ConfigError: no key is configured or it cannot be loaded.
        """
        source = self.registry_public_key
        if not source:
            raise ConfigError(
                "No registry public key configured; pass --registry-public-key "
                f"or set {Constants.ENV_REGISTRY_PUBLIC_KEY}"
            )
        if source.lstrip().startswith("-----BEGIN"):
            return load_public_key(source)
        path = Path(source).expanduser()
        if not path.is_absolute() and not path.exists():
            path = self.project_dir / path
        return load_public_key(path)
