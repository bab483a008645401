"""A workspace: the local folder holding every mirrored container.

Layout under the workspace root:

    .cms-mirror/config.yaml     workspace configuration
    .cms-mirror/workspace.lock  cross-process lock
    __root/                     container bound to the remote path "/"
    <name>/                     container bound to the remote path "/<name>"
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from cms_mirror.mirror.container import Container, local_folder_name
from cms_mirror.mirror.models import ObjectRef, PullResult
from cms_mirror.mirror.pull_pipeline import ProgressCallback
from cms_mirror.mirror.remote_protocol import RemoteStore
from cms_mirror.remote_client.auth import Authenticator
from cms_mirror.remote_client.http_store import HTTPRemoteStore

from .config_loader import ConfigLoader
from .errors import ConfigError, UncommittedChangesError, WorkspaceError
from .git_guard import uncommitted_changes
from .lock import WorkspaceLock
from .models import ContainerConfig, WorkspaceConfig

logger = logging.getLogger(__name__)

STATE_DIR = ".cms-mirror"
CONFIG_FILE = "config.yaml"

# Builds the remote store of one container
RemoteFactory = Callable[[WorkspaceConfig, ContainerConfig], RemoteStore]


def http_remote_factory(authenticator: Optional[Authenticator] = None) -> RemoteFactory:
    """Remote factory connecting every container over HTTP."""
    auth = authenticator or Authenticator()

    def factory(config: WorkspaceConfig, container: ContainerConfig) -> RemoteStore:
        credentials = auth.get_credentials(config.endpoint)
        return HTTPRemoteStore(credentials, container.name)

    return factory


class Workspace:
    """All containers of one workspace, built from its config.

    Example:
        >>> workspace = Workspace.open(Path("site"))
        >>> with workspace.lock():
        ...     workspace.pull()
        >>> container, ref = workspace.find("site/__root/styles/base.less")
    """

    def __init__(self, root: Path, config: WorkspaceConfig, containers: Dict[str, Container]):
        self.root = Path(root)
        self.config = config
        self.containers = containers

    @staticmethod
    def config_path(root: Path) -> Path:
        return Path(root) / STATE_DIR / CONFIG_FILE

    @classmethod
    def locate_root(cls, start: Union[str, Path]) -> Path:
        """Walk up from start to the nearest folder holding a workspace config.

        Raises:
            WorkspaceError: If no workspace encloses start
        """
        start = Path(start).resolve()
        for candidate in [start, *start.parents]:
            if cls.config_path(candidate).is_file():
                return candidate
        raise WorkspaceError(
            f"No cms-mirror workspace found at or above {start} "
            f"(run 'cms-mirror init' first)"
        )

    @classmethod
    def init(cls, root: Path, config: WorkspaceConfig) -> Path:
        """Write a new workspace config.

        Raises:
            ConfigError: If a workspace config already exists
            ConfigFilesystemError: If the config cannot be written
        """
        path = cls.config_path(root)
        if path.exists():
            raise ConfigError(f"Workspace already initialized at {path}")
        ConfigLoader.save(str(path), config)
        logger.info(f"Initialized workspace at {root}")
        return path

    @classmethod
    def open(cls, root: Path, remote_factory: Optional[RemoteFactory] = None) -> "Workspace":
        """Load the config, build every container and load its metadata.

        Args:
            root: Workspace root folder
            remote_factory: Builds each container's remote store (default: HTTP)

        Raises:
            ConfigError, ConfigFilesystemError: If the config is missing or invalid
            InvalidCredentialsError: If the default factory finds no API token
            MetadataError, MetadataFilesystemError: If container metadata is unreadable
        """
        root = Path(root)
        config = ConfigLoader.load(str(cls.config_path(root)))
        factory = remote_factory or http_remote_factory()

        containers: Dict[str, Container] = {}
        for container_config in config.containers:
            container = Container(
                name=container_config.name,
                root=root / local_folder_name(container_config.path),
                remote=factory(config, container_config),
                layout_config=config.layout,
                batch_size=config.batch_size,
            )
            containers[container_config.name] = container.load()
            logger.debug(f"Opened container '{container_config.name}' at {container.root}")

        return cls(root, config, containers)

    def lock(self) -> WorkspaceLock:
        return WorkspaceLock(self.root / STATE_DIR)

    def container(self, name: str) -> Container:
        """Return a container by name.

        Raises:
            ConfigError: If no container has that name
        """
        try:
            return self.containers[name]
        except KeyError:
            known = ", ".join(sorted(self.containers))
            raise ConfigError(f"Unknown container '{name}' (known: {known})", 'containers') from None

    def select(self, names: Optional[Iterable[str]] = None) -> List[Container]:
        """Containers by name, or all of them in config order."""
        if not names:
            return list(self.containers.values())
        return [self.container(name) for name in names]

    def find(self, path: Union[str, Path]) -> Tuple[Optional[Container], Optional[ObjectRef]]:
        """Map a local path to its container and object reference.

        Returns:
            (container, ref); ref is None for paths that are not object
            artifacts, container is None for paths outside every container
        """
        path = Path(path)
        if not path.is_absolute():
            path = Path.cwd() / path
        path = path.resolve()

        for container in self.containers.values():
            try:
                path.relative_to(container.root.resolve())
            except ValueError:
                continue
            return container, container.resolve_path(path)
        return None, None

    def pull(
        self,
        names: Optional[Iterable[str]] = None,
        allow_dirty: bool = False,
        progress: Optional[ProgressCallback] = None,
    ) -> List[PullResult]:
        """Pull the selected containers (all by default) in config order.

        Raises:
            UncommittedChangesError: If a container folder has uncommitted
                changes and allow_dirty is False
            PipelineAbortedError: If a container's pull fails
        """
        containers = self.select(names)
        if not allow_dirty:
            for container in containers:
                if not container.root.exists():
                    continue
                changed = uncommitted_changes(container.root)
                if changed:
                    raise UncommittedChangesError(str(container.root), changed)

        results = []
        for container in containers:
            results.append(container.pull(progress))
        return results

    def reload_metadata(self) -> None:
        for container in self.containers.values():
            container.reload_metadata()
