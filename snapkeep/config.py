import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values

from snapkeep.errors import SnapkeepError
from snapkeep.backup.compression import FORMAT_MAP
from snapkeep.backup.retention import RetentionPolicy


DEFAULT_CONFIG_FILE = 'backup.config'
DEFAULT_LOG_NAME = 'backup.log'
DEFAULT_LOCK_FILE = '/tmp/snapkeep.lock'
ENV_PREFIX = 'SNAPKEEP_'

REQUIRED_KEYS = ('BACKUP_DESTINATION', 'DAILY_KEEP', 'WEEKLY_KEEP', 'MONTHLY_KEEP')
OPTIONAL_KEYS = (
    'EXCLUDE_PATTERNS',
    'COMPRESSION_FORMAT',
    'NOTIFY_TARGET',
    'LOG_FILE',
    'LOCK_FILE',
    'DEBUG',
)

NOTIFY_SCHEMES = ('http://', 'https://', 'arn:aws:sns:')


class ConfigError(SnapkeepError):
    """Raised when a required setting is missing or invalid."""
    pass


@dataclass
class Config:
    """Validated run configuration"""

    backup_destination: str
    daily_keep: int
    weekly_keep: int
    monthly_keep: int
    exclude_patterns: List[str] = field(default_factory=list)
    compression_format: str = 'tar.gz'
    notify_target: Optional[str] = None
    log_file: Optional[str] = None
    lock_file: str = DEFAULT_LOCK_FILE
    debug: bool = False

    @property
    def retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(
            daily_keep=self.daily_keep,
            weekly_keep=self.weekly_keep,
            monthly_keep=self.monthly_keep,
        )


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> str:
    """Config file used when none is given on the command line."""
    environ = os.environ if environ is None else environ
    return environ.get(f'{ENV_PREFIX}CONFIG') or DEFAULT_CONFIG_FILE


def parse_exclude_patterns(raw: Optional[str]) -> List[str]:
    """Split a comma-separated pattern list, dropping blanks."""
    if not raw:
        return []
    return [p.strip() for p in raw.split(',') if p.strip()]


def _parse_count(key: str, raw: Optional[str]) -> int:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a non-negative integer, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{key} must be a non-negative integer, got {value}")
    return value


def _parse_bool(raw: Optional[str]) -> bool:
    return (raw or '').strip().lower() in ('1', 'true', 'yes', 'on')


def read_config_values(path: str, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Read raw settings from a KEY=VALUE file with environment overrides.

    The file uses the same shell-assignment syntax as a sourced config
    (comments, quotes and `export` are accepted). SNAPKEEP_<KEY> variables
    in the environment take precedence over the file.

    Raises:
        ConfigError: If the file does not exist
    """
    if not os.path.isfile(path):
        raise ConfigError(f"Config file not found: {path}")

    environ = os.environ if environ is None else environ
    values = {k: v for k, v in dotenv_values(path).items() if v is not None}

    for key in REQUIRED_KEYS + OPTIONAL_KEYS:
        override = environ.get(f'{ENV_PREFIX}{key}')
        if override is not None:
            values[key] = override

    return values


def load_config(path: str, environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Load and validate the run configuration.

    Args:
        path: Config file path
        environ: Environment to read overrides from (os.environ if None)

    Returns:
        Validated Config

    Raises:
        ConfigError: If the file is missing or any setting is invalid
    """
    values = read_config_values(path, environ)

    for key in REQUIRED_KEYS:
        if not (values.get(key) or '').strip():
            raise ConfigError(f"{key} is required in config")

    compression_format = (values.get('COMPRESSION_FORMAT') or 'tar.gz').strip()
    if compression_format not in FORMAT_MAP:
        raise ConfigError(
            f"Invalid COMPRESSION_FORMAT: {compression_format}. "
            f"Valid options: {list(FORMAT_MAP.keys())}"
        )

    notify_target = (values.get('NOTIFY_TARGET') or '').strip() or None
    if notify_target and not notify_target.startswith(NOTIFY_SCHEMES):
        raise ConfigError(f"NOTIFY_TARGET must be an http(s) URL or SNS topic ARN, got {notify_target!r}")

    log_file = (values.get('LOG_FILE') or '').strip()
    if not log_file:
        log_file = os.path.join(os.path.dirname(os.path.abspath(path)), DEFAULT_LOG_NAME)

    return Config(
        backup_destination=os.path.expanduser(values['BACKUP_DESTINATION'].strip()),
        daily_keep=_parse_count('DAILY_KEEP', values['DAILY_KEEP']),
        weekly_keep=_parse_count('WEEKLY_KEEP', values['WEEKLY_KEEP']),
        monthly_keep=_parse_count('MONTHLY_KEEP', values['MONTHLY_KEEP']),
        exclude_patterns=parse_exclude_patterns(values.get('EXCLUDE_PATTERNS')),
        compression_format=compression_format,
        notify_target=notify_target,
        log_file=log_file,
        lock_file=(values.get('LOCK_FILE') or '').strip() or DEFAULT_LOCK_FILE,
        debug=_parse_bool(values.get('DEBUG')),
    )
