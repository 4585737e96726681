"""Secure Storage — Password-protected vaults for templates and signatures.

Security Note (Threat Model):
    A vault is decrypted into process memory while it is open. Code running
    in the same process can read the derived key and the decrypted body.
    This is an accepted limitation. Passwords are never stored; the AES-GCM
    tag is the only password check.
"""

from .config import VaultConfig
from .exceptions import (
    VaultError,
    AuthenticationFailed,
    WrongPassword,
    VaultNotFound,
    PayloadMissing,
    NotUnlocked,
    InvalidBundle,
    InvalidVaultName,
    StorageError,
    RegistryCorrupted,
)
from .models import (
    VaultDescriptor,
    VaultBody,
    TemplateRecord,
    TemplatesStore,
    SignatureRecord,
    TransferBundle,
)
from .storage import Storage, MemoryStorage, FileStorage
from .registry import VaultRegistry
from .session import Session
from .session_vault import SecureStorage
from .migration import migrate_if_needed
from .transfer import (
    ChunkAccumulator,
    decode_bundle,
    decode_transfer_text,
    encode_bundle,
    read_bundle_file,
    split_chunks,
    write_bundle_file,
)

__all__ = [
    "SecureStorage",
    "Session",
    "VaultConfig",
    "VaultRegistry",
    "migrate_if_needed",
    "Storage",
    "MemoryStorage",
    "FileStorage",
    "VaultDescriptor",
    "VaultBody",
    "TemplateRecord",
    "TemplatesStore",
    "SignatureRecord",
    "TransferBundle",
    "ChunkAccumulator",
    "decode_bundle",
    "decode_transfer_text",
    "encode_bundle",
    "read_bundle_file",
    "split_chunks",
    "write_bundle_file",
    "VaultError",
    "AuthenticationFailed",
    "WrongPassword",
    "VaultNotFound",
    "PayloadMissing",
    "NotUnlocked",
    "InvalidBundle",
    "InvalidVaultName",
    "StorageError",
    "RegistryCorrupted",
]
