"""
Command-line entry point.

    snapkeep [--dry-run] [--config PATH] SOURCE_FOLDER

Every fatal error surfaces here as a SnapkeepError subclass, is logged at
ERROR and turns into exit status 1.
"""

import argparse
import logging
import sys
from typing import List, Optional

from snapkeep import DRYRUN, __version__, configure_logging
from snapkeep.backup.executor import BackupExecutor, RunResult
from snapkeep.backup.sources import LocalSource
from snapkeep.config import Config, default_config_path, load_config
from snapkeep.errors import SnapkeepError
from snapkeep.lock import RunLock
from snapkeep.notify import create_notifier


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

EXAMPLES = """\
examples:
  snapkeep /home/user/my_documents
  snapkeep --dry-run /home/user/my_documents
"""


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with exit status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog='snapkeep',
        description='Create a verified, dated archive of a folder and prune old archives '
                    'by a daily/weekly/monthly retention policy.',
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('source', metavar='SOURCE_FOLDER', help='directory to back up')
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='log every action, including deletions, without changing anything'
    )
    parser.add_argument(
        '--config',
        metavar='PATH',
        help='config file (default: $SNAPKEEP_CONFIG or ./backup.config)'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def run_backup(source_path: str, config: Config, dry_run: bool = False) -> RunResult:
    """
    Run one backup under the run lock.

    Raises:
        LockError: If another run holds the lock
        SnapkeepError: Any fatal error from the backup workflow
    """
    source = LocalSource(source_path, config.exclude_patterns)
    with RunLock(config.lock_file):
        executor = BackupExecutor(config, source, dry_run=dry_run)
        return executor.execute()


def _notify(config: Optional[Config], dry_run: bool, status: str, message: str, **details):
    if config is None or not config.notify_target:
        return
    if dry_run:
        logger.log(DRYRUN, f"Would notify {config.notify_target}: {status}")
        return
    create_notifier(config.notify_target).send(status, message, **details)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments, run the backup and map the outcome to an exit status.

    Args:
        argv: Arguments without the program name (sys.argv[1:] if None)

    Returns:
        0 on success, 1 on any fatal error
    """
    args = build_parser().parse_args(argv)

    # Console only until the config tells us where the run log lives
    configure_logging()

    config = None
    try:
        LocalSource(args.source).validate()
        config = load_config(args.config or default_config_path())
        configure_logging(config.log_file, config.debug)
        result = run_backup(args.source, config, dry_run=args.dry_run)
    except SnapkeepError as e:
        logger.error(str(e))
        _notify(config, args.dry_run, 'failed', str(e))
        return EXIT_FAILURE
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        _notify(config, args.dry_run, 'failed', f"Unexpected error: {e}")
        return EXIT_FAILURE

    _notify(
        config,
        args.dry_run,
        'success',
        f"Backup {result.archive_name} verified",
        archive=result.archive_name,
        deleted=result.deleted,
    )
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
