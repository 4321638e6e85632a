"""Argument parsing functionality for depsync."""

import argparse

from constants import Constants


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="depsync",
        description=(
            "depsync - resolve, download and verify the dependencies of a project"
        ),
        add_help=True,
    )

    parser.add_argument("-C", "--project",
                        dest="PROJECT_DIR",
                        help=f"Project directory containing {Constants.PROJECT_FILE} (default: current directory)",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG_FILE",
                        help="Path to a YAML settings file",
                        action="store",
                        type=str)
    parser.add_argument("--packages-dir",
                        dest="PACKAGES_DIR",
                        help=f"Directory packages are unpacked into (default: {Constants.PACKAGES_DIR})",
                        action="store",
                        type=str)
    parser.add_argument("--cache-dir",
                        dest="CACHE_DIR",
                        help=f"Archive cache shared by all projects (default: {Constants.CACHE_HOME}/{Constants.CACHE_SUBDIR})",
                        action="store",
                        type=str)
    parser.add_argument("--registry-url",
                        dest="REGISTRY_URL",
                        help=f"Package registry base URL (default: {Constants.REGISTRY_URL})",
                        action="store",
                        type=str)
    parser.add_argument("--registry-public-key",
                        dest="REGISTRY_PUBLIC_KEY",
                        help="Trusted registry public key: a PEM file path or inline PEM text",
                        action="store",
                        type=str)
    parser.add_argument("--concurrency",
                        dest="MAX_CONCURRENCY",
                        help=f"Maximum simultaneous downloads (default: {Constants.MAX_CONCURRENCY})",
                        action="store",
                        type=int)
    parser.add_argument("--timeout",
                        dest="REQUEST_TIMEOUT",
                        help=f"HTTP request timeout in seconds (default: {Constants.REQUEST_TIMEOUT})",
                        action="store",
                        type=int)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not print progress to the console.",
                        action="store_true")

    return parser.parse_args(argv)
