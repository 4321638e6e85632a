"""depsync - download the dependencies of a project.

    Returns:
        int: Exit code
"""
import logging
import sys

from args import parse_args
from cli_config import Settings
from common.errors import DepsyncError
from common.logging_utils import Timer, configure_logging, extra_context, is_debug_enabled, redact
from constants import ExitCodes
from dependencies.pipeline import run

logger = logging.getLogger(__name__)


def _printer(quiet):
    if quiet:
        return None

    def progress(message):
        print(message, flush=True)

    return progress


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    progress = _printer(args.QUIET)
    with Timer() as t:
        try:
            settings = Settings.from_sources(args)
            report = run(settings, progress=progress)
        except DepsyncError as exc:
            logger.error("%s", redact(str(exc)))
            sys.exit(exc.exit_code.value)
        except KeyboardInterrupt:
            logger.error("Interrupted")
            sys.exit(130)

    if progress:
        progress(f"Downloaded {report.downloaded} packages in {t.duration():.2f}s")
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
