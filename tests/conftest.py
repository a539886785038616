"""
Shared fixtures for noted tests.
"""
import random

import pytest

from noted.persist import PersistenceService
from noted.tinyid import IdentifierService


@pytest.fixture()
def ids():
    """Identifier service with a seeded source for reproducible ids."""
    return IdentifierService(random.Random(1234))


@pytest.fixture()
def persistence():
    return PersistenceService()


@pytest.fixture()
def noted_env(tmp_path, monkeypatch):
    """Point config and data directories at a temporary tree."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("NOTED_HOME", str(tmp_path / "home"))
    return tmp_path


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's own config.toml out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
