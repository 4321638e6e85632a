"""Tests for argument parsing, settings precedence and the command entrypoint."""

import logging
from pathlib import Path

import pytest

import depsync
from args import parse_args
from cli_config import Settings, load_config_file
from common.errors import (
    AcquisitionError,
    ConfigError,
    FileIoError,
    RegistryConnectionError,
    ResolutionError,
)
from constants import AcquisitionStage, Constants
from dependencies.pipeline import DownloadReport
from manifest.models import Manifest


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        Constants.ENV_LOG_LEVEL,
        Constants.ENV_REGISTRY_URL,
        Constants.ENV_REGISTRY_PUBLIC_KEY,
        Constants.ENV_PACKAGES_DIR,
        Constants.ENV_CACHE_DIR,
        Constants.ENV_XDG_CACHE_HOME,
        Constants.ENV_MAX_CONCURRENCY,
    ):
        monkeypatch.delenv(name, raising=False)

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


class TestParseArgs:
    """Tests for parse_args."""

    def test_no_arguments_required(self):
        args = parse_args([])

        assert args.PROJECT_DIR is None
        assert args.REGISTRY_URL is None
        assert args.QUIET is False

    def test_flags(self):
        args = parse_args([
            "-C", "proj", "--packages-dir", "/tmp/pkgs", "--concurrency", "3",
            "--loglevel", "debug", "-q",
        ])

        assert args.PROJECT_DIR == "proj"
        assert args.PACKAGES_DIR == "/tmp/pkgs"
        assert args.MAX_CONCURRENCY == 3
        assert args.LOG_LEVEL == "DEBUG"
        assert args.QUIET is True


class TestSettings:
    """Tests for Settings.from_sources."""

    def test_defaults(self, tmp_path):
        settings = Settings.from_sources(parse_args(["-C", str(tmp_path)]), environ={})

        assert settings.project_dir == tmp_path
        assert settings.packages_dir == tmp_path / Constants.PACKAGES_DIR
        assert settings.registry_url == Constants.REGISTRY_URL
        assert settings.max_concurrency == Constants.MAX_CONCURRENCY
        assert settings.manifest_path == tmp_path / "manifest.toml"
        assert settings.packages_toml_path == tmp_path / Constants.PACKAGES_DIR / "packages.toml"

    def test_cli_beats_env_beats_file(self, tmp_path):
        config = tmp_path / "depsync.yml"
        config.write_text(
            "depsync:\n"
            "  registry_url: https://file.example\n"
            "  max_concurrency: 2\n"
            "  request_timeout: 11\n",
            encoding="utf-8",
        )
        env = {
            Constants.ENV_REGISTRY_URL: "https://env.example",
            Constants.ENV_MAX_CONCURRENCY: "5",
        }

        settings = Settings.from_sources(
            parse_args(["-c", str(config), "--concurrency", "7"]), environ=env
        )

        assert settings.max_concurrency == 7
        assert settings.registry_url == "https://env.example"
        assert settings.request_timeout == 11

    def test_cache_dir_defaults_under_xdg_cache_home(self, tmp_path):
        settings = Settings.from_sources(
            parse_args(["-C", str(tmp_path)]), environ={Constants.ENV_XDG_CACHE_HOME: str(tmp_path / "xdg")}
        )

        assert settings.cache_dir == tmp_path / "xdg" / "depsync" / "archives"

    def test_cache_dir_from_cli_and_env(self, tmp_path):
        env = {Constants.ENV_CACHE_DIR: str(tmp_path / "env-cache")}

        from_env = Settings.from_sources(parse_args([]), environ=env)
        from_cli = Settings.from_sources(parse_args(["--cache-dir", str(tmp_path / "cli-cache")]), environ=env)

        assert from_env.cache_dir == tmp_path / "env-cache"
        assert from_cli.cache_dir == tmp_path / "cli-cache"

    def test_absolute_packages_dir_is_kept(self, tmp_path):
        settings = Settings.from_sources(
            parse_args(["-C", "proj", "--packages-dir", str(tmp_path)]), environ={}
        )

        assert settings.packages_dir == tmp_path

    def test_invalid_concurrency(self):
        with pytest.raises(ConfigError):
            Settings.from_sources(parse_args(["--concurrency", "0"]), environ={})

    def test_non_http_registry(self):
        with pytest.raises(ConfigError):
            Settings.from_sources(parse_args(["--registry-url", "ftp://x"]), environ={})

    def test_public_key_inline_and_from_file(self, tmp_path, public_key_pem, public_key):
        key_file = tmp_path / "registry.pem"
        key_file.write_text(public_key_pem, encoding="ascii")

        inline = Settings(Path("."), Path("pkgs"), registry_public_key=public_key_pem)
        from_file = Settings(tmp_path, Path("pkgs"), registry_public_key="registry.pem")

        assert inline.load_public_key().public_numbers() == public_key.public_numbers()
        assert from_file.load_public_key().public_numbers() == public_key.public_numbers()

    def test_missing_public_key(self):
        with pytest.raises(ConfigError, match="public key"):
            Settings(Path("."), Path("pkgs")).load_public_key()


class TestConfigFile:
    """Tests for the YAML settings file."""

    def test_no_path(self):
        assert load_config_file(None) == {}

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(FileIoError):
            load_config_file(str(tmp_path / "missing.yml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("registry_url: [unclosed\n", encoding="utf-8")

        with pytest.raises(FileIoError):
            load_config_file(str(path))

    def test_top_level_keys_without_section(self, tmp_path):
        path = tmp_path / "flat.yml"
        path.write_text("packages_dir: vendor\nunknown: 1\n", encoding="utf-8")

        assert load_config_file(str(path)) == {"packages_dir": "vendor"}


class TestMain:
    """Tests for the depsync entrypoint."""

    def test_success_prints_summary(self, monkeypatch, capsys, tmp_path):
        report = DownloadReport(manifest=Manifest(), downloaded=2)
        monkeypatch.setattr(depsync, "run", lambda settings, progress=None: report)

        with pytest.raises(SystemExit) as excinfo:
            depsync.main(["-C", str(tmp_path)])

        assert excinfo.value.code == 0
        assert "Downloaded 2 packages in" in capsys.readouterr().out

    def test_quiet_prints_nothing(self, monkeypatch, capsys, tmp_path):
        report = DownloadReport(manifest=Manifest(), downloaded=2)
        monkeypatch.setattr(depsync, "run", lambda settings, progress=None: report)

        with pytest.raises(SystemExit):
            depsync.main(["-C", str(tmp_path), "-q"])

        assert capsys.readouterr().out == ""

    @pytest.mark.parametrize(
        "error,code",
        [
            (ConfigError("bad config"), 1),
            (RegistryConnectionError("offline"), 2),
            (ResolutionError("no versions"), 4),
            (AcquisitionError("a", "1.0.0", AcquisitionStage.NETWORK, "reset"), 5),
        ],
    )
    def test_errors_map_to_exit_codes(self, monkeypatch, tmp_path, caplog, error, code):
        def fail(settings, progress=None):
            raise error

        monkeypatch.setattr(depsync, "run", fail)

        with pytest.raises(SystemExit) as excinfo:
            depsync.main(["-C", str(tmp_path)])

        assert excinfo.value.code == code
        assert str(error) in caplog.text

    def test_missing_project_file(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            depsync.main(["-C", str(tmp_path), "-q"])

        assert excinfo.value.code == 1
