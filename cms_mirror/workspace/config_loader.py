"""YAML configuration loading and validation.

The workspace config lives at .cms-mirror/config.yaml under the workspace
root and names the remote endpoint and the containers to mirror. The API
token is never stored here; it comes from the environment.
"""

import os
from typing import Any, Dict

import yaml

from cms_mirror.mirror.layout import LayoutConfig

from .errors import ConfigError, ConfigFilesystemError
from .models import ContainerConfig, WorkspaceConfig


class ConfigLoader:
    """Handles configuration file loading, validation, and saving.

    Configuration file structure:
        endpoint: https://cms.example.com/api
        containers:
          - name: main
            path: /
        layout:
          markup_ext: html
          style_ext: less
          script_ext: js
        batch_size: 100
    """

    REQUIRED_TOP_LEVEL_FIELDS = {'endpoint', 'containers'}

    REQUIRED_CONTAINER_FIELDS = {'name', 'path'}

    LAYOUT_FIELDS = ('markup_ext', 'style_ext', 'script_ext')

    DEFAULTS = {
        'batch_size': 100,
    }

    @classmethod
    def load(cls, config_path: str) -> WorkspaceConfig:
        """Load and parse configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            WorkspaceConfig object with parsed configuration

        Raises:
            ConfigFilesystemError: If file cannot be read
            ConfigError: If configuration is invalid or malformed
        """
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise ConfigFilesystemError(
                config_path,
                'read',
                'Configuration file not found'
            )
        except PermissionError:
            raise ConfigFilesystemError(
                config_path,
                'read',
                'Permission denied'
            )
        except OSError as e:
            raise ConfigFilesystemError(config_path, 'read', str(e))

        try:
            config_dict = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax: {str(e)}")

        if config_dict is None:
            raise ConfigError("Configuration file is empty")

        if not isinstance(config_dict, dict):
            raise ConfigError(
                f"Configuration must be a YAML dictionary, got {type(config_dict).__name__}"
            )

        return cls._parse_config(config_dict)

    @classmethod
    def save(cls, config_path: str, config: WorkspaceConfig) -> None:
        """Save configuration to a YAML file.

        Raises:
            ConfigFilesystemError: If file cannot be written
        """
        config_dict = {
            'endpoint': config.endpoint,
            'containers': [
                {'name': container.name, 'path': container.path}
                for container in config.containers
            ],
            'layout': {
                'markup_ext': config.layout.markup_ext,
                'style_ext': config.layout.style_ext,
                'script_ext': config.layout.script_ext,
            },
            'batch_size': config.batch_size,
        }

        yaml_str = yaml.safe_dump(
            config_dict,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False
        )

        config_dir = os.path.dirname(config_path)
        if config_dir:
            try:
                os.makedirs(config_dir, exist_ok=True)
            except OSError as e:
                raise ConfigFilesystemError(config_dir, 'create_directory', str(e))

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                f.write(yaml_str)
        except PermissionError:
            raise ConfigFilesystemError(config_path, 'write', 'Permission denied')
        except OSError as e:
            raise ConfigFilesystemError(config_path, 'write', str(e))

    @classmethod
    def _parse_config(cls, config_dict: Dict[str, Any]) -> WorkspaceConfig:
        """Parse and validate a configuration dictionary.

        Raises:
            ConfigError: If configuration is invalid
        """
        missing_fields = cls.REQUIRED_TOP_LEVEL_FIELDS - set(config_dict.keys())
        if missing_fields:
            raise ConfigError(
                f"Missing required fields: {', '.join(sorted(missing_fields))}"
            )

        endpoint = config_dict['endpoint']
        if not isinstance(endpoint, str) or not endpoint.strip():
            raise ConfigError("Field 'endpoint' must be a non-empty string", 'endpoint')

        containers_raw = config_dict['containers']
        if not isinstance(containers_raw, list):
            raise ConfigError("Field 'containers' must be a list", 'containers')
        if not containers_raw:
            raise ConfigError("At least one container is required", 'containers')

        containers = []
        seen_names = set()
        seen_paths = set()
        for i, container_dict in enumerate(containers_raw):
            if not isinstance(container_dict, dict):
                raise ConfigError(
                    f"Container configuration at index {i} must be a dictionary",
                    f'containers[{i}]'
                )

            missing = cls.REQUIRED_CONTAINER_FIELDS - set(container_dict.keys())
            if missing:
                raise ConfigError(
                    f"Missing required fields in container {i}: {', '.join(sorted(missing))}",
                    f'containers[{i}]'
                )

            name = str(container_dict['name'] or '').strip()
            path = str(container_dict['path'] or '').strip()
            if not name:
                raise ConfigError(
                    f"Field 'name' in container {i} cannot be empty",
                    f'containers[{i}].name'
                )
            if not path.startswith('/'):
                raise ConfigError(
                    f"Field 'path' in container {i} must start with '/', got '{path}'",
                    f'containers[{i}].path'
                )
            if name in seen_names:
                raise ConfigError(f"Duplicate container name '{name}'", f'containers[{i}].name')
            # Two containers on one path would share a local folder
            normalized = path.rstrip('/') or '/'
            if normalized in seen_paths:
                raise ConfigError(f"Duplicate container path '{path}'", f'containers[{i}].path')
            seen_names.add(name)
            seen_paths.add(normalized)

            containers.append(ContainerConfig(name=name, path=path))

        layout = cls._parse_layout(config_dict.get('layout'))

        batch_size = config_dict.get('batch_size', cls.DEFAULTS['batch_size'])
        try:
            batch_size = int(batch_size)
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid value for 'batch_size': {str(e)}", 'batch_size')
        if batch_size < 1:
            raise ConfigError(
                f"Field 'batch_size' must be at least 1, got {batch_size}",
                'batch_size'
            )

        return WorkspaceConfig(
            endpoint=endpoint.strip(),
            containers=containers,
            layout=layout,
            batch_size=batch_size,
        )

    @classmethod
    def _parse_layout(cls, layout_raw: Any) -> LayoutConfig:
        if layout_raw is None:
            return LayoutConfig()
        if not isinstance(layout_raw, dict):
            raise ConfigError("Field 'layout' must be a dictionary", 'layout')

        unknown = set(layout_raw) - set(cls.LAYOUT_FIELDS)
        if unknown:
            raise ConfigError(
                f"Unknown layout fields: {', '.join(sorted(unknown))}", 'layout'
            )

        values = {}
        for key in cls.LAYOUT_FIELDS:
            if key not in layout_raw:
                continue
            value = str(layout_raw[key] or '').strip().lstrip('.')
            if not value or '/' in value:
                raise ConfigError(
                    f"Field '{key}' must be a plain file extension", f'layout.{key}'
                )
            values[key] = value
        return LayoutConfig(**values)
