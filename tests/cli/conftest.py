# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Shared fixtures for CLI tests."""

import pytest
from click.testing import CliRunner

import glwatch.config as glwatch_config


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the CLI at a temp config file and a clean environment."""
    config_file = tmp_path / '.glwatch' / 'config.json'
    monkeypatch.setattr(glwatch_config, 'CONFIG_FILE', config_file)
    monkeypatch.setattr(glwatch_config, 'load_dotenv', lambda *args, **kwargs: False)
    for env_var in glwatch_config.ENV_VARS:
        monkeypatch.delenv(env_var, raising=False)
    return config_file
