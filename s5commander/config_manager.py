#!/usr/bin/env python3
"""
Configuration Manager for S5 Commander
Merges defaults, an optional YAML file, CLI flags and environment variables

Precedence (lowest to highest):
    1. Built-in defaults (DEFAULT_CONFIG)
    2. YAML config file (--config)
    3. Command-line flags
    4. Environment variables (FOLDER_PREFIX, S3_BUCKET_PATH, ...)

Missing destination or credentials are fatal: ConfigValidationError is
raised before the agent starts its loop.
"""

import copy
import logging
import os
import socket
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from s5commander.copy_invoker import (
    ENV_ACCESS_KEY_ID,
    ENV_DEFAULT_REGION,
    ENV_SECRET_ACCESS_KEY,
    Credentials,
    EnvCredentials,
    FileCredentials,
)
from s5commander.metrics import parse_address
from s5commander.utils import parse_bool, parse_duration

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    Covers a malformed config file, a missing destination, missing
    credentials, and invalid values.
    """

    pass


DEFAULT_CONFIG: Dict[str, Any] = {
    'source': {
        'folder_prefix': '/tmp/',
        'path_suffix': '/**/**/*.gz',
    },
    'schedule': {
        'process_interval': '1s',
        'reporting_window': '1m',
    },
    's5cmd': {
        'binary': 's5cmd',
        'work_dir': tempfile.gettempdir(),
    },
    's3': {
        'bucket_path': '',
        'credentials_file': '',
        'profile': 'default',
        'endpoint_url': '',
    },
    'monitoring': {
        'netdata_enabled': False,
        'netdata_address': '127.0.0.1:8125',
        'cloudwatch_enabled': False,
        'cloudwatch_region': '',
        'cloudwatch_namespace': 'S5Commander',
        'cloudwatch_endpoint_url': '',
        'agent_id': '',
    },
}

# Environment variable -> (config key, kind)
ENV_OVERRIDES = {
    'FOLDER_PREFIX': ('source.folder_prefix', 'str'),
    'PATH_SUFFIX': ('source.path_suffix', 'str'),
    'PROCESS_INTERVAL': ('schedule.process_interval', 'duration'),
    'REPORTING_WINDOW': ('schedule.reporting_window', 'duration'),
    'S5CMD_BINARY': ('s5cmd.binary', 'str'),
    'WORK_DIR': ('s5cmd.work_dir', 'str'),
    'S3_BUCKET_PATH': ('s3.bucket_path', 'str'),
    'AWS_CREDS_FILE': ('s3.credentials_file', 'str'),
    'AWS_PROFILE': ('s3.profile', 'str'),
    'AWS_ENDPOINT_URL': ('s3.endpoint_url', 'str'),
    'NETDATA_ENABLED': ('monitoring.netdata_enabled', 'bool'),
    'NETDATA_ADDRESS': ('monitoring.netdata_address', 'str'),
    'CLOUDWATCH_ENABLED': ('monitoring.cloudwatch_enabled', 'bool'),
    'CLOUDWATCH_REGION': ('monitoring.cloudwatch_region', 'str'),
    'AGENT_ID': ('monitoring.agent_id', 'str'),
}


def _set_dotted(config: Dict[str, Any], key: str, value: Any) -> None:
    section = config
    *parents, leaf = key.split('.')
    for name in parents:
        section = section.setdefault(name, {})
    section[leaf] = value


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base (in place)."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class ConfigManager:
    """
    Builds and validates the agent configuration.

    Features:
    - Optional YAML file with ${VAR} and ~ expansion
    - CLI flag and environment variable overrides
    - Credential channel selection (environment or credentials file)
    - Dot-notation access to nested values

    Example:
        >>> config = ConfigManager('/etc/s5-commander/config.yaml')
        >>> config.get('s3.bucket_path')
        's3://archive/gz/'
        >>> config.process_interval
        1.0

    Attributes:
        config_path (Path): Path to the YAML file, or None
        config (dict): Merged configuration dictionary
        credentials: FileCredentials or EnvCredentials
    """

    def __init__(self,
                 config_path: Optional[str] = None,
                 overrides: Optional[Mapping[str, Any]] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """
        Load, merge and validate configuration.

        Args:
            config_path: Optional path to a YAML config file
            overrides: Dotted keys set from command-line flags
                (None values are ignored)
            environ: Environment to read (defaults to os.environ)

        Raises:
            FileNotFoundError: If config_path is given but doesn't exist
            yaml.YAMLError: If YAML syntax is invalid
            ConfigValidationError: If validation fails
        """
        self.config_path = Path(config_path) if config_path else None
        self.environ = os.environ if environ is None else environ
        self.config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path is not None:
            _merge(self.config, self.load_config_file())

        for key, value in (overrides or {}).items():
            if value is not None:
                _set_dotted(self.config, key, value)

        self._apply_env_overrides()
        self.validate_config(self.config)

        self.credentials = self._resolve_credentials()

    def load_config_file(self) -> Dict[str, Any]:
        """Load the YAML config file and expand environment variables."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, "r") as f:
            loaded = yaml.safe_load(f)

        if loaded is None:
            raise ConfigValidationError("Config file is empty or contains only whitespace")

        if not isinstance(loaded, dict):
            raise ConfigValidationError("Config file must contain a mapping at the top level")

        logger.info(f"Loaded config from {self.config_path}")
        return self._expand_env_vars(loaded)

    def _expand_env_vars(self, config: Any) -> Any:
        """
        Recursively expand environment variables in configuration values.

        Supports ${VAR}, $VAR and ~ expansion in string values.

        Examples:
            "${HOME}/.aws/credentials" -> "/home/ABC/.aws/credentials"
            "~/.aws/credentials" -> "/home/ABC/.aws/credentials"
        """
        if isinstance(config, dict):
            return {key: self._expand_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._expand_env_vars(item) for item in config]
        elif isinstance(config, str):
            expanded = os.path.expanduser(config)
            expanded = os.path.expandvars(expanded)
            return expanded
        else:
            return config

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variables on top of file and flag values.

        Empty variables are ignored. Unparseable durations and booleans are
        ignored with a warning, leaving the lower layer in place.
        """
        for env_key, (key, kind) in ENV_OVERRIDES.items():
            raw = self.environ.get(env_key, '')
            if raw == '':
                continue

            if kind == 'duration':
                try:
                    parse_duration(raw)
                except ValueError:
                    logger.warning(f"Ignoring {env_key}={raw!r}: not a valid duration")
                    continue
                value = raw
            elif kind == 'bool':
                value = parse_bool(raw)
                if value is None:
                    logger.warning(f"Ignoring {env_key}={raw!r}: not a valid boolean")
                    continue
            else:
                value = raw

            _set_dotted(self.config, key, value)

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration schema and values."""
        self._validate_source_config(config.get('source', {}))
        self._validate_schedule_config(config.get('schedule', {}))
        self._validate_s5cmd_config(config.get('s5cmd', {}))
        self._validate_s3_config(config.get('s3', {}))
        self._validate_monitoring_config(config.get('monitoring', {}))

        logger.debug("Configuration validated successfully")
        return True

    def _validate_source_config(self, source_config: Dict[str, Any]) -> None:
        """Validate source section."""
        for key in ('folder_prefix', 'path_suffix'):
            if not isinstance(source_config.get(key), str):
                raise ConfigValidationError(f"source.{key} must be a string")

        if not source_config['folder_prefix'] and not source_config['path_suffix']:
            raise ConfigValidationError("source.folder_prefix and source.path_suffix cannot both be empty")

    def _validate_schedule_config(self, schedule_config: Dict[str, Any]) -> None:
        """Validate schedule section (durations must be positive)."""
        for key in ('process_interval', 'reporting_window'):
            try:
                seconds = parse_duration(schedule_config.get(key))
            except ValueError:
                raise ConfigValidationError(
                    f"schedule.{key} must be a duration like '1s' or '1m', "
                    f"got: {schedule_config.get(key)!r}"
                )

            if seconds < 1e-9:
                raise ConfigValidationError(f"schedule.{key} must be positive (at least 1ns)")

    def _validate_s5cmd_config(self, s5cmd_config: Dict[str, Any]) -> None:
        """Validate s5cmd section."""
        binary = s5cmd_config.get('binary')
        if not isinstance(binary, str) or not binary:
            raise ConfigValidationError("s5cmd.binary must be a non-empty string")

        work_dir = s5cmd_config.get('work_dir')
        if not isinstance(work_dir, str) or not work_dir:
            raise ConfigValidationError("s5cmd.work_dir must be a non-empty string")

    def _validate_s3_config(self, s3_config: Dict[str, Any]) -> None:
        """Validate S3 section: a destination is required."""
        bucket_path = s3_config.get('bucket_path')
        if not isinstance(bucket_path, str) or not bucket_path:
            raise ConfigValidationError(
                "s3-bucket-path (or S3_BUCKET_PATH env var) is required"
            )

        for key in ('credentials_file', 'profile', 'endpoint_url'):
            if not isinstance(s3_config.get(key, ''), str):
                raise ConfigValidationError(f"s3.{key} must be a string")

    def _validate_monitoring_config(self, monitoring_config: Dict[str, Any]) -> None:
        """Validate monitoring section."""
        for key in ('netdata_enabled', 'cloudwatch_enabled'):
            if not isinstance(monitoring_config.get(key, False), bool):
                raise ConfigValidationError(f"monitoring.{key} must be boolean")

        if monitoring_config.get('netdata_enabled', False):
            try:
                parse_address(str(monitoring_config.get('netdata_address', '')))
            except ValueError as e:
                raise ConfigValidationError(f"monitoring.netdata_address: {e}")

    def _resolve_credentials(self) -> Credentials:
        """
        Pick the credential channel.

        AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY and AWS_DEFAULT_REGION
        (all three) take precedence over a credentials file.

        Raises:
            ConfigValidationError: If neither channel is available
        """
        access_key_id = self.environ.get(ENV_ACCESS_KEY_ID, '')
        secret_access_key = self.environ.get(ENV_SECRET_ACCESS_KEY, '')
        region = self.environ.get(ENV_DEFAULT_REGION, '')

        if access_key_id and secret_access_key and region:
            if self.get('s3.credentials_file'):
                logger.warning("AWS environment credentials found; ignoring credentials file")
            return EnvCredentials(access_key_id, secret_access_key, region)

        credentials_file = self.get('s3.credentials_file')
        if credentials_file:
            return FileCredentials(credentials_file, self.get('s3.profile') or 'default')

        raise ConfigValidationError(
            "Either aws-creds-file (or AWS_CREDS_FILE env var) or AWS environment variables "
            "(AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_DEFAULT_REGION) are required"
        )

    @property
    def process_interval(self) -> float:
        return parse_duration(self.get('schedule.process_interval'))

    @property
    def reporting_window(self) -> float:
        return parse_duration(self.get('schedule.reporting_window'))

    @property
    def agent_id(self) -> str:
        return self.get('monitoring.agent_id') or socket.gethostname()

    @property
    def cloudwatch_region(self) -> str:
        return (
            self.get('monitoring.cloudwatch_region')
            or self.environ.get(ENV_DEFAULT_REGION, '')
            or 'us-east-1'
        )

    def get(self, key: str, default=None) -> Any:
        """
        Get configuration value by dot-separated key path.

        Examples:
            >>> config.get('s3.bucket_path')  # 's3://archive/gz/'
            >>> config.get('missing.key', 'default')  # 'default'
        """
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value
