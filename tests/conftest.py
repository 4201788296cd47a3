"""
Shared fixtures: isolated repositories and an in-memory registry.
"""

import pytest

from prompthive.config import Config, LockConfig, RegistryConfig, StorageConfig
from prompthive.sync import InMemoryRegistry, SyncCoordinator
from prompthive.version_control import PromptRepository


def make_config(base_dir, author: str = "tester") -> Config:
    """Config rooted at ``base_dir`` with fast retries and lock timeouts."""
    return Config(
        storage=StorageConfig(base_dir=str(base_dir), author=author),
        registry=RegistryConfig(max_retries=3, backoff_seconds=0.0),
        lock=LockConfig(timeout=0.2),
    )


@pytest.fixture
def repo(tmp_path) -> PromptRepository:
    config = make_config(tmp_path / "local", author="alice")
    return PromptRepository(config=config)


@pytest.fixture
def other_repo(tmp_path) -> PromptRepository:
    """A second machine's repository."""
    config = make_config(tmp_path / "remote-machine", author="bob")
    return PromptRepository(config=config)


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture
def coordinator(repo, registry) -> SyncCoordinator:
    return SyncCoordinator(repo, registry)


@pytest.fixture
def other_coordinator(other_repo, registry) -> SyncCoordinator:
    return SyncCoordinator(other_repo, registry)
