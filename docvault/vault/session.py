"""
Vault Session — The single in-memory record of which vault is open.

A ``Session`` holds the (vault id, derived key, decrypted body) triple of
the unlocked vault, or nothing when locked. It is an owned value passed
into ``SecureStorage``, so independent sessions can coexist (e.g. in
tests). The key and body are never persisted and are dropped in O(1) by
``clear()``.

Security Note:
    The derived key and decrypted body live in process memory while the
    session is unlocked. Code running in the same process can read them;
    this is an accepted limitation.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from .exceptions import NotUnlocked
from .models import VaultBody


class Session:
    """Unlocked-vault state: either all of id/key/body, or none of them."""

    def __init__(self, id: Optional[str] = None):
        self._id_ = id or uuid.uuid4().hex
        self._state: Optional[tuple[str, bytes, VaultBody]] = None
        self._unlocked_at: Optional[datetime] = None

    def __repr__(self) -> str:
        return (
            f'<Vault-Session [{self._id_}] '
            f'unlocked:{self.is_unlocked}, vault={self.active_vault_id!r}>'
        )

    # --- Properties ---

    @property
    def session_id(self) -> str:
        return self._id_

    @property
    def is_unlocked(self) -> bool:
        return self._state is not None

    @property
    def active_vault_id(self) -> Optional[str]:
        return self._state[0] if self._state else None

    @property
    def key(self) -> Optional[bytes]:
        return self._state[1] if self._state else None

    @property
    def body(self) -> Optional[VaultBody]:
        return self._state[2] if self._state else None

    @property
    def unlocked_at(self) -> Optional[datetime]:
        return self._unlocked_at

    # --- Transitions ---

    def open(self, vault_id: str, key: bytes, body: VaultBody) -> None:
        """Activate ``vault_id``, superseding any previous session."""
        self._state = (vault_id, key, body)
        self._unlocked_at = datetime.now(timezone.utc)

    def clear(self) -> None:
        """Drop key and body. Idempotent."""
        self._state = None
        self._unlocked_at = None

    def replace_body(self, vault_id: str, body: VaultBody) -> bool:
        """Swap in a new body if ``vault_id`` is still the open vault."""
        if self._state is None or self._state[0] != vault_id:
            return False
        self._state = (vault_id, self._state[1], body)
        return True

    def require(self) -> tuple[str, bytes, VaultBody]:
        """Return (vault_id, key, body) of the open vault.

        Raises:
            NotUnlocked: If no vault is open.
        """
        if self._state is None:
            raise NotUnlocked()
        return self._state
