"""
Configuration loading for suite YAML files.

Provides a Config class extending DotDict that loads a YAML file, applies
environment variable overrides and resolves ``${dotted.key}`` substitutions.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from ..dot_dict import DotDict
from ..exceptions import ConfigError
from .constants import ENV_NESTING_SEPARATOR, ENV_PREFIX, MAX_CONFIG_SIZE_BYTES


def _check_file_size(fname_path: Path) -> None:
    """Check file size limit before parsing."""
    file_size = os.path.getsize(fname_path)
    if file_size > MAX_CONFIG_SIZE_BYTES:
        raise ConfigError(
            "configuration file too large",
            path=str(fname_path),
            size=file_size,
            limit=MAX_CONFIG_SIZE_BYTES,
        )


class Config(DotDict):
    """
    Configuration class that loads YAML files and resolves variable substitutions.

    Environment Variable Override Format:
        E2E_<KEY>=value
        E2E_<SECTION>__<KEY>=value

    Single underscores stay part of the key so that keys like ``api_endpoint``
    can be overridden; double underscores separate nesting levels.

    Examples:
        E2E_API_ENDPOINT=https://api.sys.example.com
        E2E_RETRY__ATTEMPTS=3
        E2E_LOGGING__LEVEL=debug

    Example:
        config = Config("etc/e2e.yaml")
        endpoint = config.get("api_endpoint")
        attempts = config.retry.attempts
    """

    def __init__(
        self,
        fname: str | Path | None = None,
        enable_env_overrides: bool = True,
        env_prefix: str = ENV_PREFIX,
        data: dict[str, Any] | None = None,
    ):
        """
        Initialize configuration from a YAML file or an in-memory mapping.

        Args:
            fname: Path to the YAML configuration file
            enable_env_overrides: Whether to apply environment variable overrides
            env_prefix: Prefix for environment variables (default: 'E2E_')
            data: Configuration mapping, used instead of a file when given
        """
        super().__init__()
        self._enable_env_overrides = enable_env_overrides
        self._env_prefix = env_prefix
        self._config_path: Path | None = None

        if fname is not None:
            data = self._read(fname)
        self._load(data or {})

    def _read(self, fname: str | Path) -> dict[str, Any]:
        """
        Read and parse the YAML file.

        Raises:
            ConfigError: If the file is missing, too large, or not a YAML mapping
        """
        fname_path = Path(fname).resolve()
        if not fname_path.is_file():
            raise ConfigError("configuration file not found", path=str(fname_path))
        _check_file_size(fname_path)
        self._config_path = fname_path

        with open(fname_path) as f:
            try:
                content = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(
                    "invalid YAML in configuration file", path=str(fname_path)
                ) from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                "configuration file must contain a mapping",
                path=str(fname_path),
                type=type(content).__name__,
            )
        return content

    def _load(self, config_data: dict[str, Any]) -> None:
        if self._enable_env_overrides:
            config_data = self._apply_env_overrides(config_data)

        self.set(**config_data)
        self.set(**self._resolve(self.to_dict()))

    @property
    def path(self) -> Path | None:
        """Resolved path of the loaded file, if loaded from a file."""
        return self._config_path

    def _resolve(self, content: Any) -> Any:
        """
        Recursively resolve ``${variable_name}`` substitutions.

        Variables reference other values of the configuration itself.
        """
        if isinstance(content, dict):
            for k in list(content.keys()):
                content[k] = self._resolve(content[k])
        elif isinstance(content, list):
            return [self._resolve(v) for v in content]
        elif isinstance(content, str):
            # Restricted to valid config keys to keep the pattern linear
            return re.sub(r"\$\{([a-zA-Z0-9_.]+)\}", self._substitute_var, content)
        return content

    def _substitute_var(self, match: re.Match) -> str:
        var_name = match.group(1)
        if not self.has(var_name):
            raise ConfigError("undefined configuration variable", variable=var_name)
        return str(self.get(var_name))

    def _apply_env_overrides(self, config_data: dict[str, Any]) -> dict[str, Any]:
        for env_key, env_value in self._collect_env_vars().items():
            self._set_nested_value(
                config_data, self._env_key_to_path(env_key), env_value
            )
        return config_data

    def _collect_env_vars(self) -> dict[str, str]:
        return {k: v for k, v in os.environ.items() if k.startswith(self._env_prefix)}

    def _env_key_to_path(self, env_key: str) -> list[str]:
        """
        Convert environment variable key to configuration path.

        Example:
            'E2E_RETRY__INITIAL_DELAY' -> ['retry', 'initial_delay']
        """
        return env_key[len(self._env_prefix) :].lower().split(ENV_NESTING_SEPARATOR)

    def _set_nested_value(self, data: dict, path: list[str], value: str) -> None:
        current = data
        for part in path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[path[-1]] = self._convert_env_value(value)

    def _convert_env_value(
        self, value: str
    ) -> bool | int | float | str | list[Any] | None:
        """Convert environment variable string to appropriate type."""
        if value.lower() in ("null", "none", ""):
            return None

        if value.lower() in ("true", "false"):
            return value.lower() == "true"

        if "," in value:
            return [self._convert_env_value(v.strip()) for v in value.split(",")]

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        return value

    def get_env_overrides(self) -> dict[str, Any]:
        """Get all environment variable overrides that would be applied."""
        if not self._enable_env_overrides:
            return {}

        return {
            ".".join(self._env_key_to_path(k)): self._convert_env_value(v)
            for k, v in self._collect_env_vars().items()
        }

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        for key in ("_enable_env_overrides", "_env_prefix", "_config_path"):
            data.pop(key, None)
        return data
