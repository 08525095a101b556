"""Configuration loader for tagDAG.

Parses configuration into kernel config models. Supports two config sources:

1. **kind: Config YAML**, loaded via explicit path or the
   ``TAGDAG_CONFIG_PATH`` env var.
2. **pyproject.toml [tool.tagdag]**, the auto-discovery fallback.

The kernel never touches config file formats directly.
"""

from __future__ import annotations

import os
import re
import tomllib  # Python 3.11+
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

import yaml

from tagdag.kernel.config.models import LoggingConfig, ResolverConfig, TagDAGConfig
from tagdag.kernel.exceptions import ConfigurationError
from tagdag.kernel.logging import get_logger

# Constants for boolean environment variable parsing
_TRUTHY_VALUES = frozenset({"true", "1", "yes", "on", "enabled"})
_FALSY_VALUES = frozenset({"false", "0", "no", "off", "disabled"})

# Boolean logging overrides: env var -> LoggingConfig field
_LOGGING_BOOL_ENV = {
    "TAGDAG_LOG_COLOR": "use_color",
    "TAGDAG_LOG_TIMESTAMP": "include_timestamp",
    "TAGDAG_LOG_RICH": "use_rich",
    "TAGDAG_LOG_DUAL_SINK": "dual_sink",
    "TAGDAG_LOG_STDLIB_BRIDGE": "enable_stdlib_bridge",
    "TAGDAG_LOG_BACKTRACE": "backtrace",
    "TAGDAG_LOG_DIAGNOSE": "diagnose",
}

logger = get_logger(__name__)


def _parse_bool_env(value: str) -> bool:
    """Parse boolean from environment variable value.

    Parameters
    ----------
    value : str
        Environment variable value

    Returns
    -------
    bool
        Parsed boolean value

    Raises
    ------
    ValueError
        If value is not a recognized boolean string
    """
    normalized = value.lower().strip()
    if normalized in _TRUTHY_VALUES:
        return True
    if normalized in _FALSY_VALUES:
        return False
    expected = _TRUTHY_VALUES | _FALSY_VALUES
    raise ValueError(f"Invalid boolean value: {value!r}. Expected one of: {expected}")


@lru_cache(maxsize=32)
def _load_and_parse_cached(path_str: str) -> TagDAGConfig:
    """Cached configuration loader."""
    loader = ConfigLoader()
    return loader._load_and_parse(Path(path_str))


class ConfigLoader:
    """Loads and processes tagDAG configuration files.

    Supports two config sources:

    1. ``kind: Config`` YAML manifests (explicit path or env var)
    2. ``pyproject.toml [tool.tagdag]`` (auto-discovery)
    """

    ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

    def load_config_file(self, path: str | Path | None = None) -> TagDAGConfig:
        """Load configuration from YAML or pyproject.toml.

        Parameters
        ----------
        path : str | Path | None
            Path to config file. If None, searches using discovery order.

        Returns
        -------
        TagDAGConfig
            Parsed configuration with environment variables substituted
        """
        config_path = self._find_config_file(path)
        return _load_and_parse_cached(str(config_path.absolute()))

    def _load_and_parse(self, config_path: Path) -> TagDAGConfig:
        """Load and parse configuration file (YAML or TOML)."""
        logger.info("Loading configuration from {path}", path=config_path)

        if config_path.suffix in (".yaml", ".yml"):
            return self._load_yaml_config(config_path)
        return self._load_toml_config(config_path)

    def _load_yaml_config(self, config_path: Path) -> TagDAGConfig:
        """Load and parse a kind: Config YAML file.

        Raises
        ------
        ConfigurationError
            If the YAML file is not a valid kind: Config manifest
        """
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ConfigurationError(
                config_path.name, f"expected a mapping, got {type(data).__name__}"
            )

        kind = data.get("kind")
        if kind != "Config":
            raise ConfigurationError(
                config_path.name,
                f"YAML config file must use 'kind: Config' manifest format, got 'kind: {kind}'",
            )

        spec = data.get("spec", {})
        if not isinstance(spec, dict):
            raise ConfigurationError(config_path.name, "'spec' field must be a mapping")

        spec = self._substitute_env_vars(spec)
        return self._parse_config(spec)

    def _load_toml_config(self, config_path: Path) -> TagDAGConfig:
        """Load and parse a TOML config file (pyproject.toml or flat)."""
        with config_path.open("rb") as f:
            data = tomllib.load(f)

        if config_path.name == "pyproject.toml":
            tagdag_data = data.get("tool", {}).get("tagdag", {})
            if not tagdag_data:
                logger.warning("No [tool.tagdag] section found in pyproject.toml, using defaults")
                return get_default_config()
        elif "tool" in data and "tagdag" in data.get("tool", {}):
            tagdag_data = data["tool"]["tagdag"]
        else:
            tagdag_data = data

        tagdag_data = self._substitute_env_vars(tagdag_data)
        return self._parse_config(tagdag_data)

    def _find_config_file(self, path: str | Path | None) -> Path:
        """Find configuration file.

        Discovery order:
        1. Explicit path argument
        2. ``TAGDAG_CONFIG_PATH`` env var
        3. ``pyproject.toml`` in CWD
        4. ``pyproject.toml`` in parent directories (with ``[tool.tagdag]``)

        Raises
        ------
        FileNotFoundError
            If no configuration file is found
        """
        if path:
            config_path = Path(path)
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return config_path

        if env_path := os.getenv("TAGDAG_CONFIG_PATH"):
            config_path = Path(env_path)
            if config_path.exists():
                logger.debug("Using config from TAGDAG_CONFIG_PATH: {}", config_path)
                return config_path
            logger.warning("TAGDAG_CONFIG_PATH set but file not found: {}", config_path)

        if Path("pyproject.toml").exists():
            return Path("pyproject.toml")

        current = Path.cwd()
        while current != current.parent:
            pyproject = current / "pyproject.toml"
            if pyproject.exists():
                with pyproject.open("rb") as f:
                    data = tomllib.load(f)
                    if "tool" in data and "tagdag" in data["tool"]:
                        return pyproject
            current = current.parent

        raise FileNotFoundError(
            "No configuration file found. Provide a kind: Config YAML path, "
            "set TAGDAG_CONFIG_PATH, or add [tool.tagdag] to pyproject.toml"
        )

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively replace ``${VAR}`` with environment values.

        Unknown variables keep their placeholder.
        """
        if isinstance(data, str):

            def replacer(match: re.Match[str]) -> str:
                var_name = match.group(1)
                value = os.environ.get(var_name)
                if value is None:
                    logger.debug(
                        "Environment variable ${{{var_name}}} not found, keeping placeholder",
                        var_name=var_name,
                    )
                    return match.group(0)
                return value

            return self.ENV_VAR_PATTERN.sub(replacer, data)

        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}

        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]

        return data

    def _parse_config(self, data: dict[str, Any]) -> TagDAGConfig:
        """Parse format-agnostic configuration data into TagDAGConfig."""
        config = TagDAGConfig()

        config.logging = self._parse_logging_config(data.get("logging", {}))
        config.resolver = self._parse_resolver_config(data.get("resolver", {}))

        if "settings" in data:
            config.settings = data["settings"]
            logger.debug("Loaded {count} settings", count=len(config.settings))

        return config

    def _parse_resolver_config(self, resolver_data: dict[str, Any]) -> ResolverConfig:
        """Parse resolver settings with environment variable overrides.

        Environment variables take precedence over config file values:
        - TAGDAG_REVERSE_TRACKING: Default for reverse tracking (true/false)
        - TAGDAG_NAME_CONFLICT_POLICY: Duplicate name policy (last, first, error)

        Raises
        ------
        ValidationError
            If a value is out of range
        """
        defaults = ResolverConfig()
        hub_variable_types = resolver_data.get("hub_variable_types", defaults.hub_variable_types)
        policy = resolver_data.get("name_conflict_policy", defaults.name_conflict_policy)
        reverse_tracking = resolver_data.get(
            "enable_reverse_tracking", defaults.enable_reverse_tracking
        )

        known_template_events = dict(defaults.known_template_events)
        known_template_events.update(resolver_data.get("known_template_events", {}))

        if env_policy := os.getenv("TAGDAG_NAME_CONFLICT_POLICY"):
            policy = env_policy.lower()
            logger.debug("Overriding name conflict policy from env: {}", policy)

        if env_reverse := os.getenv("TAGDAG_REVERSE_TRACKING"):
            try:
                reverse_tracking = _parse_bool_env(env_reverse)
                logger.debug("Overriding reverse tracking from env: {}", reverse_tracking)
            except ValueError as e:
                logger.warning("Invalid TAGDAG_REVERSE_TRACKING value: {}", e)

        return ResolverConfig(
            hub_variable_types=hub_variable_types,
            name_conflict_policy=policy,
            known_template_events=known_template_events,
            custom_template_prefix=resolver_data.get(
                "custom_template_prefix", defaults.custom_template_prefix
            ),
            template_id_sentinel=resolver_data.get(
                "template_id_sentinel", defaults.template_id_sentinel
            ),
            enable_reverse_tracking=bool(reverse_tracking),
        )

    def _parse_logging_config(self, logging_data: dict[str, Any]) -> LoggingConfig:
        """Parse logging configuration with environment variable overrides.

        Environment variables take precedence over config file values:
        - TAGDAG_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        - TAGDAG_LOG_FORMAT: Output format (console, json, structured, rich, dual)
        - TAGDAG_LOG_FILE: Optional file path for log output
        - TAGDAG_LOG_COLOR, TAGDAG_LOG_TIMESTAMP, TAGDAG_LOG_RICH,
          TAGDAG_LOG_DUAL_SINK, TAGDAG_LOG_STDLIB_BRIDGE,
          TAGDAG_LOG_BACKTRACE, TAGDAG_LOG_DIAGNOSE: booleans

        Parameters
        ----------
        logging_data : dict[str, Any]
            Logging section from config

        Returns
        -------
        LoggingConfig
            Parsed logging configuration with env overrides applied
        """
        defaults = LoggingConfig()
        level = logging_data.get("level", defaults.level)
        format_type = logging_data.get("format", defaults.format)
        output_file = logging_data.get("output_file", defaults.output_file)
        flags = {
            field_name: logging_data.get(field_name, getattr(defaults, field_name))
            for field_name in _LOGGING_BOOL_ENV.values()
        }

        if env_level := os.getenv("TAGDAG_LOG_LEVEL"):
            level = env_level.upper()
            logger.debug("Overriding log level from env: {}", level)

        if env_format := os.getenv("TAGDAG_LOG_FORMAT"):
            format_type = env_format.lower()
            logger.debug("Overriding log format from env: {}", format_type)

        if env_file := os.getenv("TAGDAG_LOG_FILE"):
            output_file = env_file
            logger.debug("Overriding log file from env: {}", output_file)

        for env_name, field_name in _LOGGING_BOOL_ENV.items():
            if env_value := os.getenv(env_name):
                try:
                    flags[field_name] = _parse_bool_env(env_value)
                    logger.debug("Overriding {} from env: {}", field_name, flags[field_name])
                except ValueError as e:
                    logger.warning("Invalid {} value: {}", env_name, e)

        return LoggingConfig(
            level=cast("Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']", level),
            format=cast("Literal['console', 'json', 'structured', 'dual', 'rich']", format_type),
            output_file=output_file,
            **flags,
        )


def load_config(path: str | Path | None = None) -> TagDAGConfig:
    """Load configuration from file or return defaults.

    Parameters
    ----------
    path : str | Path | None
        Path to configuration file or None to search

    Returns
    -------
    TagDAGConfig
        Loaded configuration or defaults if no file found
    """
    try:
        loader = ConfigLoader()
        return loader.load_config_file(path)
    except FileNotFoundError:
        logger.info("No configuration file found, using defaults")
        return get_default_config()


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when configuration files have been modified
    and you need to force a reload.
    """
    _load_and_parse_cached.cache_clear()


def get_default_config() -> TagDAGConfig:
    """Default configuration, with environment overrides applied."""
    loader = ConfigLoader()
    return TagDAGConfig(
        logging=loader._parse_logging_config({}),
        resolver=loader._parse_resolver_config({}),
    )
