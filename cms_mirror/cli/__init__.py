"""Command-line interface for cms-mirror.

This package provides the `cms-mirror` CLI tool: workspace initialization,
pull, save, rename/clone/delete, sync-revision and inspection commands with
rich progress and summary output.
"""

from .models import ExitCode
from .errors import CLIError, PathNotMirroredError
from .output import OutputHandler

__all__ = [
    'ExitCode',
    'CLIError',
    'PathNotMirroredError',
    'OutputHandler',
]
