"""
Vault Configuration — Validated settings for key derivation, storage keys
and transfer encoding.

Reads optional overrides from environment variables:
    DOCVAULT_KDF_ITERATIONS = <int, >= 200000>
    DOCVAULT_SALT_LENGTH = <int, bytes>
    DOCVAULT_KEY_PREFIX = <persistence key prefix>
    DOCVAULT_CHUNK_SIZE = <int, base64 characters per visual-code chunk>
    DOCVAULT_CHUNK_MARKER = <chunk marker prefix>
    DOCVAULT_CONFIRM_REPLACE = <true|false>

Security Note:
    Never log passwords or key material. Only log vault ids and names.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("docvault.vault")

PBKDF2_MIN_ITERATIONS = 200_000

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to ``default``."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    kdf_iterations: int = Field(default=230_000, ge=PBKDF2_MIN_ITERATIONS)
    salt_length: int = Field(default=16, ge=16, le=64)
    key_prefix: str = Field(default="docvault", min_length=1)
    chunk_size: int = Field(default=700, ge=64, le=2900)
    chunk_marker: str = Field(default="DVLT:", min_length=1)
    default_vault_name: str = "Default"
    unnamed_vault_name: str = "Unnamed"
    imported_vault_name: str = "Imported"
    confirm_replace: bool = True

    model_config = {"frozen": True}

    @field_validator("chunk_marker")
    @classmethod
    def validate_marker(cls, v: str) -> str:
        """The marker must not collide with the ``index:total:`` header."""
        if ":" in v[:-1] or any(ch.isspace() for ch in v):
            raise ValueError(
                f"Chunk marker may only contain ':' as its last character: {v!r}"
            )
        return v

    # ------------------------------------------------------------------
    # Persistence keys
    # ------------------------------------------------------------------

    @property
    def registry_key(self) -> str:
        return f"{self.key_prefix}-vault-registry"

    def payload_key(self, vault_id: str) -> str:
        """Persistence key holding the encrypted payload of ``vault_id``."""
        return f"{self.key_prefix}-vault-{vault_id}"

    @property
    def legacy_meta_key(self) -> str:
        return f"{self.key_prefix}-vault-meta"

    @property
    def legacy_vault_key(self) -> str:
        return f"{self.key_prefix}-secure-vault"

    @property
    def legacy_templates_key(self) -> str:
        return f"{self.key_prefix}-email-templates"

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading overrides from environment.

        Returns:
            Populated VaultConfig instance.
        """
        defaults = cls()
        config = cls(
            kdf_iterations=_env_int(
                "DOCVAULT_KDF_ITERATIONS", defaults.kdf_iterations
            ),
            salt_length=_env_int("DOCVAULT_SALT_LENGTH", defaults.salt_length),
            key_prefix=os.environ.get("DOCVAULT_KEY_PREFIX", defaults.key_prefix),
            chunk_size=_env_int("DOCVAULT_CHUNK_SIZE", defaults.chunk_size),
            chunk_marker=os.environ.get(
                "DOCVAULT_CHUNK_MARKER", defaults.chunk_marker
            ),
            confirm_replace=_env_bool(
                "DOCVAULT_CONFIRM_REPLACE", defaults.confirm_replace
            ),
        )
        logger.debug(
            "Vault config loaded: prefix=%s iterations=%d chunk_size=%d",
            config.key_prefix, config.kdf_iterations, config.chunk_size,
        )
        return config
