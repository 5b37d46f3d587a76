"""Base exception for snapkeep.

Each module defines its own error type (ConfigError, SourceError,
CompressionError, ...) as a subclass so the command-line entry point can
treat every fatal condition uniformly.
"""


class SnapkeepError(Exception):
    """Base class for all fatal snapkeep errors."""
    pass
