import pytest

from docvault.vault import MemoryStorage, SecureStorage, VaultConfig


@pytest.fixture
def config():
    """Default vault configuration."""
    return VaultConfig()


@pytest.fixture
def storage():
    """Empty in-memory persistence adapter."""
    return MemoryStorage()


@pytest.fixture
def vaults(storage, config):
    """SecureStorage over the in-memory adapter."""
    return SecureStorage(storage, config)
