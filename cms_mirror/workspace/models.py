"""Configuration models for a mirrored workspace."""

from dataclasses import dataclass, field
from typing import List

from cms_mirror.mirror.layout import LayoutConfig
from cms_mirror.mirror.pull_pipeline import BATCH_SIZE


@dataclass
class ContainerConfig:
    """One remote container mirrored by the workspace.

    Attributes:
        name: Container name, as known to the remote store
        path: Remote path the container is bound to ("/" for the root)
    """
    name: str
    path: str


@dataclass
class WorkspaceConfig:
    """Contents of .cms-mirror/config.yaml.

    Attributes:
        endpoint: Base URL of the remote store API
        containers: Containers to mirror
        layout: File extensions of the local artifacts
        batch_size: Objects fetched per pull round-trip
    """
    endpoint: str
    containers: List[ContainerConfig] = field(default_factory=list)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    batch_size: int = BATCH_SIZE
