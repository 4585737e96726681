"""DocVault.

Client-resident encrypted vaults for document templates and signatures.
"""
from .version import __version__
from .vault import (
    SecureStorage,
    Session,
    VaultConfig,
    MemoryStorage,
    FileStorage,
)

__all__ = [
    "__version__",
    "SecureStorage",
    "Session",
    "VaultConfig",
    "MemoryStorage",
    "FileStorage",
]
