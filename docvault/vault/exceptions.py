"""
Vault Exceptions — Typed conditions raised by the vault core.

Every failure in the vault core propagates one of these instead of a
sentinel value, so callers can tell "wrong password" apart from an
empty vault. All of them are recoverable by the caller.
"""


class VaultError(Exception):
    """Base class for all vault errors."""

    default_message = "Vault error."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class AuthenticationFailed(VaultError):
    """AEAD tag verification failed while decrypting a payload."""

    default_message = "Authentication failed."


class WrongPassword(VaultError):
    """The supplied password does not open the vault or bundle."""

    default_message = "Wrong password or corrupted vault."


class VaultNotFound(VaultError):
    """No descriptor with the requested id exists in the registry."""

    default_message = "Vault not found."


class PayloadMissing(VaultError):
    """A descriptor exists but its encrypted payload is absent."""

    default_message = "Vault data not found."


class NotUnlocked(VaultError):
    """A content operation was attempted without an unlocked vault."""

    default_message = "Vault is locked. Unlock first."


class InvalidBundle(VaultError):
    """Transfer data is malformed or structurally incomplete."""

    default_message = "Invalid vault file."


class InvalidVaultName(VaultError, ValueError):
    """A vault name is empty after trimming."""

    default_message = "Enter a new name."


class StorageError(VaultError):
    """The persistence adapter could not durably write a value."""

    default_message = "Storage write failed."


class RegistryCorrupted(VaultError):
    """The persisted registry cannot be read as a list of descriptors."""

    default_message = "Vault registry is unreadable."
