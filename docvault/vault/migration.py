"""
Vault Migration — One-time upgrade of the legacy single-vault record into
the multi-vault registry.

The legacy record (salt metadata + ciphertext) is adopted byte-for-byte as
the registry's first vault. Nothing is re-encrypted, so the original
password keeps working. The operation is idempotent: once the registry is
non-empty it does nothing.

Security Note:
    No key material is involved; only public metadata and ciphertext move.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from .config import VaultConfig
from .crypto import deserialize_value
from .models import VaultDescriptor, new_id
from .registry import VaultRegistry
from .storage import Storage

logger = logging.getLogger("docvault.vault")


def _legacy_salt(raw: Optional[str]) -> Optional[str]:
    """Return the salt of a legacy metadata record, or None."""
    if not raw:
        return None
    try:
        meta = deserialize_value(raw)
    except ValueError:
        logger.warning("Legacy vault metadata is unreadable; skipping migration")
        return None
    if not isinstance(meta, dict) or not isinstance(meta.get("salt"), str):
        return None
    return meta["salt"] or None


def migrate_if_needed(
    storage: Storage,
    config: Optional[VaultConfig] = None,
) -> Optional[VaultDescriptor]:
    """Adopt the legacy single vault if the registry is empty.

    Args:
        storage: Persistence adapter.
        config: Vault configuration (persistence keys, default name).

    Returns:
        The descriptor of the migrated vault, or None if nothing was done.
    """
    config = config or VaultConfig()
    registry = VaultRegistry(storage, config)
    if len(registry) > 0:
        return None

    salt = _legacy_salt(storage.get(config.legacy_meta_key))
    blob = storage.get(config.legacy_vault_key)
    if not salt or not blob:
        return None

    try:
        descriptor = VaultDescriptor(
            id=new_id("vault"),
            name=config.default_vault_name,
            salt=salt,
        )
    except ValidationError as err:
        logger.warning("Legacy vault salt is invalid; skipping migration: %s", err)
        return None

    storage.set(config.payload_key(descriptor.id), blob)
    registry.add(descriptor)
    storage.remove(config.legacy_meta_key)
    storage.remove(config.legacy_vault_key)
    logger.info(
        "Migrated legacy vault into registry: id=%s name=%s",
        descriptor.id, descriptor.name,
    )
    return descriptor
