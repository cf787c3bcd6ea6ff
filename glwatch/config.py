# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Runtime configuration for glwatch.

Values are layered, later sources winning:
    defaults <- ~/.glwatch/config.json <- environment (.env supported) <- explicit overrides
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from glwatch.constants import DEFAULT_GITLAB_API_URL, DEFAULT_POLL_INTERVAL_MS, DEFAULT_REQUEST_TIMEOUT
from glwatch.exceptions import ConfigurationError
from glwatch.utils.utils import mask_secret, parse_int

logger = logging.getLogger(__name__)

# Config paths
GLWATCH_DIR = Path.home() / '.glwatch'
CONFIG_FILE = GLWATCH_DIR / 'config.json'

# env var -> config key
ENV_VARS = {
    'GITLAB_ENDPOINT': 'endpoint',
    'GITLAB_TOKEN': 'token',
    'GLWATCH_POLL_INTERVAL_MS': 'poll_interval_ms',
    'GLWATCH_STRICT': 'strict',
}

CONFIG_KEYS = ('endpoint', 'token', 'poll_interval_ms', 'strict', 'request_timeout')


@dataclass
class WatchConfig:
    """Settings forwarded to the GitLab client and the polling loops."""

    endpoint: str = DEFAULT_GITLAB_API_URL
    token: str = ''
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    strict: bool = False
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    def validate(self) -> 'WatchConfig':
        """Raise ConfigurationError unless the config can start watchers."""
        if not self.endpoint:
            raise ConfigurationError('GitLab endpoint is not set (config key "endpoint" or GITLAB_ENDPOINT)')

        parsed = urlparse(self.endpoint)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigurationError(f'GitLab endpoint must be an http(s) URL, got {self.endpoint!r}')

        if not self.token:
            raise ConfigurationError('GitLab access token is not set (config key "token" or GITLAB_TOKEN)')

        if not isinstance(self.poll_interval_ms, int) or self.poll_interval_ms <= 0:
            raise ConfigurationError(f'poll_interval_ms must be a positive integer, got {self.poll_interval_ms!r}')

        if not isinstance(self.request_timeout, int) or self.request_timeout <= 0:
            raise ConfigurationError(f'request_timeout must be a positive integer, got {self.request_timeout!r}')

        return self

    def describe(self) -> Dict[str, Any]:
        """Loggable view of the config with the token masked."""
        return {
            'endpoint': self.endpoint,
            'token': mask_secret(self.token) if self.token else '(not set)',
            'poll_interval_ms': self.poll_interval_ms,
            'strict': self.strict,
            'request_timeout': self.request_timeout,
        }


def load_config_file(config_file: Optional[Path] = None) -> dict:
    """Load configuration from file."""
    config_file = config_file or CONFIG_FILE
    if not config_file.exists():
        return {}
    try:
        with open(config_file, 'r') as f:
            return json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        logger.warning(f'Ignoring unreadable config file {config_file}: {e}')
        return {}


def save_config_file(config: dict, config_file: Optional[Path] = None) -> None:
    """Save configuration to file."""
    config_file = config_file or CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, 'w') as f:
        json.dump(config, f, indent=2)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _coerce(key: str, value: Any) -> Any:
    if key in ('poll_interval_ms', 'request_timeout'):
        parsed = parse_int(value)
        if parsed is None:
            raise ConfigurationError(f'{key} must be an integer, got {value!r}')
        return parsed
    if key == 'strict':
        return _parse_bool(value)
    return value


def resolve_config(
    config_file: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> WatchConfig:
    """Build a WatchConfig from file, environment and explicit overrides.

    Args:
        config_file (Path): JSON config written by `glwatch config set`
        env (Optional[Dict[str, str]]): Environment mapping; os.environ (after load_dotenv) when None
        overrides (Optional[Dict[str, Any]]): Values from CLI options; None entries are ignored

    Returns:
        WatchConfig: Unvalidated config; call validate() before starting loops
    """
    if env is None:
        load_dotenv()
        env = os.environ

    values: Dict[str, Any] = {}
    for key, value in load_config_file(config_file).items():
        if key in CONFIG_KEYS:
            values[key] = value

    for env_var, key in ENV_VARS.items():
        if env.get(env_var):
            values[key] = env[env_var]

    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    return WatchConfig(**{key: _coerce(key, value) for key, value in values.items()})
