"""Guard against pulling over uncommitted local edits."""

import logging
import subprocess
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


def uncommitted_changes(root: Path) -> List[str]:
    """List paths with uncommitted changes under root.

    Returns an empty list when root is not inside a git working tree or git
    is not installed, so workspaces without version control are never
    blocked.
    """
    try:
        result = subprocess.run(
            ["git", "status", "--porcelain", "--", "."],
            cwd=root,
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError:
        logger.debug("git command not found, skipping uncommitted changes check")
        return []
    except subprocess.CalledProcessError as e:
        logger.debug(f"Not a git working tree ({root}): {e.stderr.strip()}")
        return []

    changed = []
    for line in result.stdout.splitlines():
        # Porcelain v1: two status columns, a space, then the path
        if len(line) > 3:
            changed.append(line[3:])
    return changed


def has_uncommitted_changes(root: Path) -> bool:
    return bool(uncommitted_changes(root))
