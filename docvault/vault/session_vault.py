"""
SecureStorage — Password-protected vaults for templates and signatures.

Provides the public API of the vault system:
- ``create_vault`` / ``unlock`` / ``lock`` — session lifecycle
- ``verify_password`` / ``delete_vault`` / ``rename_vault`` — password-gated
  registry operations that do not need the vault to be open
- ``get_templates_store`` / ``save_templates_store`` / ``get_signatures`` /
  ``add_signature`` / ``remove_signature`` — content of the open vault
- ``export_vault`` / ``import_vault_as_new`` / ``replace_vault_with_import``
  — moving a vault between devices
- ``has_vault`` / ``is_unlocked`` / ``get_registry`` / ``get_active_vault_name``
  — read-only status for UI gating

Every content mutation re-encrypts the whole body under the session key
with a fresh nonce and replaces the single payload entry of the open vault.
Failing operations check everything before their first write, so persisted
state is unchanged on failure.

Security Note:
    Never log passwords, keys, plaintext or ciphertext. Only log vault ids,
    names and operations.
"""
import asyncio
import logging
from typing import Any, Optional, Union
from collections.abc import Mapping

from pydantic import ValidationError

from .config import VaultConfig
from .crypto import (
    b64encode,
    decrypt,
    derive_key,
    encrypt,
    generate_salt,
)
from .exceptions import (
    AuthenticationFailed,
    InvalidBundle,
    InvalidVaultName,
    NotUnlocked,
    PayloadMissing,
    WrongPassword,
)
from .migration import migrate_if_needed
from .models import (
    SignatureRecord,
    TemplatesStore,
    TransferBundle,
    VaultBody,
    VaultDescriptor,
    new_id,
)
from .registry import VaultRegistry
from .session import Session
from .storage import KeyLocks, Storage
from .templates import default_templates_store, load_legacy_templates
from .transfer import ChunkAccumulator, coerce_bundle, encode_bundle, split_chunks

logger = logging.getLogger("docvault.vault")

_WRONG_FILE_PASSWORD = "Wrong password for this vault file."


class SecureStorage:
    """Multi-vault encrypted storage driven by one ``Session``.

    Vault keys are derived with PBKDF2-HMAC-SHA256 from the vault password
    and a per-vault random salt; the vault body is sealed with AES-256-GCM.
    Only one vault is open at a time; opening another supersedes it.
    """

    def __init__(
        self,
        storage: Storage,
        config: Optional[VaultConfig] = None,
        session: Optional[Session] = None,
    ):
        self._storage = storage
        self._config = config or VaultConfig()
        self._session = session if session is not None else Session()
        self._registry = VaultRegistry(storage, self._config)
        self._locks = KeyLocks()
        self._session_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<SecureStorage vaults={len(self._registry)} session={self._session!r}>"

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def session(self) -> Session:
        return self._session

    @property
    def registry(self) -> VaultRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Crypto helpers
    # ------------------------------------------------------------------

    async def _derive(self, password: str, salt: bytes) -> bytes:
        """Run PBKDF2 in a worker thread so the event loop keeps running."""
        return await asyncio.to_thread(
            derive_key, password, salt, self._config.kdf_iterations,
        )

    @staticmethod
    def _open_body(blob: str, key: bytes, message: Optional[str] = None) -> VaultBody:
        """Decrypt and parse a payload.

        Raises:
            WrongPassword: If the tag does not verify or the plaintext is
                not a vault body.
        """
        try:
            return VaultBody.from_bytes(decrypt(blob, key))
        except (AuthenticationFailed, ValueError) as err:
            raise WrongPassword(message) from err

    def _seal(self, body: VaultBody, key: bytes) -> str:
        return encrypt(body.to_bytes(), key)

    def _load_payload(self, vault_id: str) -> str:
        blob = self._storage.get(self._config.payload_key(vault_id))
        if not blob:
            raise PayloadMissing()
        return blob

    async def _write(self, key: str, value: str) -> None:
        """Persist ``value`` from a worker thread; adapters may block on I/O."""
        await asyncio.to_thread(self._storage.set, key, value)

    async def _prove(
        self, vault_id: str, password: str
    ) -> tuple[VaultDescriptor, bytes, VaultBody]:
        """Derive the key for ``vault_id`` and open its payload.

        Raises:
            VaultNotFound: Unknown vault id.
            PayloadMissing: Descriptor without payload.
            WrongPassword: Password does not open the payload.
        """
        descriptor = self._registry.get(vault_id)
        blob = self._load_payload(vault_id)
        key = await self._derive(password, descriptor.salt_bytes)
        try:
            body = self._open_body(blob, key)
        except WrongPassword:
            logger.warning("Password rejected for vault=%s", vault_id)
            raise
        return descriptor, key, body

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def has_vault(self) -> bool:
        return len(self._registry) > 0

    def is_unlocked(self) -> bool:
        return self._session.is_unlocked

    def get_registry(self) -> list[VaultDescriptor]:
        return self._registry.list()

    def get_active_vault_id(self) -> Optional[str]:
        return self._session.active_vault_id

    def get_active_vault_name(self) -> str:
        vault_id = self._session.active_vault_id
        if vault_id is None:
            return ""
        for descriptor in self._registry.list():
            if descriptor.id == vault_id:
                return descriptor.name
        return ""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_vault(self, name: str, password: str) -> VaultDescriptor:
        """Create a new vault and open it.

        The very first vault on a device adopts the pre-vault plaintext
        templates record, if any, and removes it; every other vault starts
        with the built-in templates and no signatures.

        Args:
            name: Display name; blank names become ``unnamed_vault_name``.
            password: Vault password.

        Returns:
            Descriptor of the new vault.
        """
        async with self._session_lock:
            display_name = (name or "").strip() or self._config.unnamed_vault_name
            salt = generate_salt(self._config.salt_length)
            key = await self._derive(password, salt)

            async with self._locks(self._registry.key):
                legacy = None
                if len(self._registry) == 0:
                    legacy = load_legacy_templates(
                        self._storage.get(self._config.legacy_templates_key)
                    )
                body = VaultBody(
                    templates_store=legacy or default_templates_store()
                )
                descriptor = VaultDescriptor(
                    id=new_id("vault", self._registry.ids()),
                    name=display_name,
                    salt=b64encode(salt),
                )
                await self._write(
                    self._config.payload_key(descriptor.id),
                    self._seal(body, key),
                )
                await asyncio.to_thread(self._registry.add, descriptor)
                if legacy is not None:
                    self._storage.remove(self._config.legacy_templates_key)
                    logger.info("Legacy templates moved into vault=%s", descriptor.id)

            self._session.open(descriptor.id, key, body)
        logger.info("Vault created: id=%s name=%s", descriptor.id, descriptor.name)
        return descriptor

    async def unlock(self, vault_id: str, password: str) -> None:
        """Open ``vault_id``. On failure the current session is untouched.

        Raises:
            VaultNotFound: Unknown vault id.
            PayloadMissing: Descriptor without payload.
            WrongPassword: Password does not open the vault.
        """
        async with self._session_lock:
            _, key, body = await self._prove(vault_id, password)
            self._session.open(vault_id, key, body)
        logger.info("Vault unlocked: id=%s", vault_id)

    def lock(self) -> None:
        """Close the open vault, if any."""
        vault_id = self._session.active_vault_id
        self._session.clear()
        if vault_id is not None:
            logger.info("Vault locked: id=%s", vault_id)

    async def verify_password(self, vault_id: str, password: str) -> None:
        """Prove knowledge of a vault password without opening the vault.

        Raises:
            VaultNotFound: Unknown vault id.
            PayloadMissing: Descriptor without payload.
            WrongPassword: Password does not open the vault.
        """
        await self._prove(vault_id, password)

    async def delete_vault(self, vault_id: str, password: str) -> None:
        """Delete a vault and its payload after verifying its password.

        Locks the session if the deleted vault was open.
        """
        await self.verify_password(vault_id, password)
        async with self._locks(self._registry.key):
            await asyncio.to_thread(self._registry.remove, vault_id)
        self._locks.discard(self._config.payload_key(vault_id))
        if self._session.active_vault_id == vault_id:
            self._session.clear()
        logger.info("Vault deleted: id=%s", vault_id)

    async def rename_vault(
        self, vault_id: str, password: str, new_name: str
    ) -> VaultDescriptor:
        """Rename a vault after verifying its password.

        Only the display name changes; id, salt and payload are untouched.

        Raises:
            InvalidVaultName: ``new_name`` is blank.
        """
        display_name = (new_name or "").strip()
        if not display_name:
            raise InvalidVaultName()
        await self.verify_password(vault_id, password)
        async with self._locks(self._registry.key):
            descriptor = await asyncio.to_thread(
                self._registry.rename, vault_id, display_name,
            )
        logger.info("Vault renamed: id=%s name=%s", vault_id, display_name)
        return descriptor

    def migrate_if_needed(self) -> Optional[VaultDescriptor]:
        """Adopt the legacy single vault; call once at startup."""
        return migrate_if_needed(self._storage, self._config)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def _mutate(self, change, vault_id: Optional[str] = None) -> Any:
        """Apply ``change`` to a copy of the open body, persist, then swap.

        The copy is only installed once the new payload is written, so a
        failing write leaves both memory and storage as they were.

        Raises:
            NotUnlocked: No vault is open, or the open vault is no longer
                ``vault_id``.
        """
        active_id, key, _ = self._session.require()
        vault_id = vault_id or active_id
        async with self._locks(self._config.payload_key(vault_id)):
            if self._session.active_vault_id != vault_id:
                raise NotUnlocked("The vault was locked before changes were saved.")
            updated = self._session.body.model_copy(deep=True)
            result = change(updated)
            await self._write(
                self._config.payload_key(vault_id), self._seal(updated, key),
            )
            self._session.replace_body(vault_id, updated)
        logger.debug("Vault payload saved: id=%s", vault_id)
        return result

    def get_templates_store(self) -> TemplatesStore:
        """Copy of the open vault's templates store.

        Raises:
            NotUnlocked: No vault is open.
        """
        _, _, body = self._session.require()
        return body.templates_store.model_copy(deep=True)

    async def save_templates_store(
        self, store: Union[TemplatesStore, Mapping[str, Any]]
    ) -> TemplatesStore:
        """Replace the templates store of the open vault.

        Built-in templates missing from ``store`` are restored.

        Raises:
            NotUnlocked: No vault is open.
            ValueError: ``store`` is not a valid templates store.
        """
        self._session.require()
        data = store.to_dict() if isinstance(store, TemplatesStore) else dict(store)
        new_store = TemplatesStore.model_validate(data)

        def change(body: VaultBody) -> TemplatesStore:
            present = {t.id for t in new_store.templates}
            for tpl in body.templates_store.templates:
                if tpl.builtin and tpl.id not in present:
                    new_store.templates.append(tpl.model_copy())
            body.templates_store = TemplatesStore.model_validate(new_store.to_dict())
            return body.templates_store.model_copy(deep=True)

        return await self._mutate(change)

    def get_signatures(self) -> list[SignatureRecord]:
        """Copies of the open vault's signatures, in insertion order.

        Raises:
            NotUnlocked: No vault is open.
        """
        _, _, body = self._session.require()
        return [sig.model_copy() for sig in body.signatures]

    async def add_signature(
        self,
        name: str,
        image_data: str,
        kind: str = "draw",
    ) -> SignatureRecord:
        """Save a signature in the open vault.

        The id and creation time are assigned here.

        Raises:
            NotUnlocked: No vault is open.
            ValueError: ``kind`` is not draw/type/image.
        """
        self._session.require()
        try:
            draft = SignatureRecord(
                id="pending",
                name=(name or "").strip() or "Untitled",
                image_data=image_data,
                kind=kind or "draw",
            )
        except ValidationError as err:
            raise ValueError(f"Invalid signature: {err}") from err

        def change(body: VaultBody) -> SignatureRecord:
            record = draft.model_copy(update={
                "id": new_id("sig", (s.id for s in body.signatures)),
            })
            body.signatures.append(record)
            return record.model_copy()

        record = await self._mutate(change)
        logger.debug("Signature added: id=%s", record.id)
        return record

    async def remove_signature(self, signature_id: str) -> bool:
        """Remove a signature from the open vault.

        Returns:
            True if a signature was removed.

        Raises:
            NotUnlocked: No vault is open.
        """
        _, _, body = self._session.require()
        if not any(s.id == signature_id for s in body.signatures):
            return False

        def change(body: VaultBody) -> bool:
            body.signatures = [s for s in body.signatures if s.id != signature_id]
            return True

        return await self._mutate(change)

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    def export_vault(self) -> TransferBundle:
        """Bundle the open vault's descriptor and *persisted* payload.

        Raises:
            NotUnlocked: No vault is open.
            VaultNotFound: The open vault's descriptor is gone.
            PayloadMissing: The open vault's payload is gone.
        """
        vault_id, _, _ = self._session.require()
        descriptor = self._registry.get(vault_id)
        payload = self._load_payload(vault_id)
        return TransferBundle(
            name=descriptor.name,
            salt=descriptor.salt,
            payload=payload,
        )

    def export_text(self) -> str:
        """Open vault as compact bundle JSON (clipboard)."""
        return encode_bundle(self.export_vault())

    def export_chunks(self) -> list[str]:
        """Open vault as visual-code chunks."""
        return split_chunks(
            self.export_vault(),
            chunk_size=self._config.chunk_size,
            marker=self._config.chunk_marker,
        )

    def chunk_accumulator(self) -> ChunkAccumulator:
        """Accumulator for chunks produced by ``export_chunks``."""
        return ChunkAccumulator(self._config.chunk_marker)

    async def import_vault_as_new(
        self, bundle: Union[TransferBundle, Mapping[str, Any], str], password: str
    ) -> VaultDescriptor:
        """Add a transferred vault to the registry and open it.

        The bundle's salt and ciphertext are stored verbatim, so the same
        password opens it on both devices. A clashing name gets `` (n)``.

        Raises:
            InvalidBundle: Missing name, salt or payload.
            WrongPassword: ``password`` does not open the bundle.
        """
        bundle = coerce_bundle(bundle)
        if not bundle.name:
            raise InvalidBundle()
        async with self._session_lock:
            key = await self._derive(password, bundle.salt_bytes)
            body = self._open_body(bundle.payload, key, _WRONG_FILE_PASSWORD)
            async with self._locks(self._registry.key):
                name = self._registry.unique_name(
                    bundle.name.strip() or self._config.imported_vault_name
                )
                descriptor = VaultDescriptor(
                    id=new_id("vault", self._registry.ids()),
                    name=name,
                    salt=bundle.salt,
                )
                await self._write(
                    self._config.payload_key(descriptor.id), bundle.payload,
                )
                await asyncio.to_thread(self._registry.add, descriptor)
            self._session.open(descriptor.id, key, body)
        logger.info("Vault imported: id=%s name=%s", descriptor.id, descriptor.name)
        return descriptor

    async def replace_vault_with_import(
        self,
        bundle: Union[TransferBundle, Mapping[str, Any], str],
        file_password: str,
        current_password: Optional[str] = None,
    ) -> None:
        """Replace the open vault's contents with a bundle's contents.

        ``file_password`` only opens the bundle; the body is re-sealed under
        the open vault's own key, so the open vault keeps its password.
        With ``confirm_replace`` enabled the open vault's password must be
        given as ``current_password``.

        Raises:
            NotUnlocked: No vault is open.
            InvalidBundle: Missing salt or payload.
            WrongPassword: Either password is wrong or missing.
        """
        vault_id, key, _ = self._session.require()
        bundle = coerce_bundle(bundle)
        if self._config.confirm_replace:
            if not current_password:
                raise WrongPassword(
                    "Enter the current vault password to replace its contents."
                )
            await self.verify_password(vault_id, current_password)
        file_key = await self._derive(file_password, bundle.salt_bytes)
        body = self._open_body(bundle.payload, file_key, _WRONG_FILE_PASSWORD)

        def change(current: VaultBody) -> None:
            current.templates_store = body.templates_store
            current.signatures = body.signatures

        await self._mutate(change, vault_id)
        logger.info("Vault contents replaced from import: id=%s", vault_id)
