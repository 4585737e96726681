"""
Vault Registry — Public list of vault descriptors.

The registry is persisted as one serialized list under
``VaultConfig.registry_key``. Every mutation is a whole-registry
read-modify-write; there are no partial updates.

Entries this client cannot validate (e.g. written by another client with
a different field format) are kept as raw values and written back
unchanged, so a mutation never drops another vault's descriptor. A
registry that is not a readable list raises ``RegistryCorrupted`` instead
of being treated as empty.
"""
import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from .config import VaultConfig
from .crypto import serialize_value, deserialize_value
from .exceptions import RegistryCorrupted, VaultNotFound
from .models import VaultDescriptor
from .storage import Storage

logger = logging.getLogger("docvault.vault")

# A validated descriptor, or the raw JSON value of an unrecognized entry.
Entry = Union[VaultDescriptor, dict, list, str, int, float, bool, None]


def _raw_field(entry: Any, field: str) -> Optional[str]:
    if isinstance(entry, dict) and isinstance(entry.get(field), str):
        return entry[field]
    return None


class VaultRegistry:
    """Descriptor list stored through a persistence adapter."""

    def __init__(self, storage: Storage, config: Optional[VaultConfig] = None):
        self._storage = storage
        self._config = config or VaultConfig()

    @property
    def key(self) -> str:
        return self._config.registry_key

    def _load(self) -> list[Entry]:
        """Read all registry entries, unvalidated ones as raw values.

        Raises:
            RegistryCorrupted: The stored registry is not a JSON list.
        """
        raw = self._storage.get(self.key)
        if not raw:
            return []
        try:
            items = deserialize_value(raw)
        except ValueError as err:
            logger.error("Vault registry is unreadable: %s", err)
            raise RegistryCorrupted() from err
        if not isinstance(items, list):
            logger.error("Vault registry is not a list")
            raise RegistryCorrupted("Vault registry is not a list.")
        entries: list[Entry] = []
        for item in items:
            try:
                entries.append(VaultDescriptor.model_validate(item))
            except ValidationError as err:
                logger.warning(
                    "Keeping unrecognized registry entry id=%s as-is: %s",
                    _raw_field(item, "id"), err,
                )
                entries.append(item)
        return entries

    def _save(self, entries: list[Entry]) -> None:
        data = serialize_value([
            e.to_dict() if isinstance(e, VaultDescriptor) else e
            for e in entries
        ])
        self._storage.set(self.key, data.decode("utf-8"))

    @staticmethod
    def _entry_id(entry: Entry) -> Optional[str]:
        if isinstance(entry, VaultDescriptor):
            return entry.id
        return _raw_field(entry, "id")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list(self) -> list[VaultDescriptor]:
        """Return a copy of all valid descriptors, in creation order."""
        return [e for e in self._load() if isinstance(e, VaultDescriptor)]

    def get(self, vault_id: str) -> VaultDescriptor:
        """Return the descriptor for ``vault_id``.

        Raises:
            VaultNotFound: If no valid descriptor has that id.
        """
        for entry in self._load():
            if isinstance(entry, VaultDescriptor) and entry.id == vault_id:
                return entry
        raise VaultNotFound()

    def names(self) -> set[str]:
        """Names in use, including those of unrecognized entries."""
        names = set()
        for entry in self._load():
            if isinstance(entry, VaultDescriptor):
                name = entry.name
            else:
                name = _raw_field(entry, "name")
            if name is not None:
                names.add(name)
        return names

    def ids(self) -> set[str]:
        """Ids in use, including those of unrecognized entries."""
        return {i for i in map(self._entry_id, self._load()) if i is not None}

    def __len__(self) -> int:
        return len(self._load())

    def add(self, descriptor: VaultDescriptor) -> None:
        """Append a descriptor.

        Raises:
            ValueError: If an entry with the same id already exists.
        """
        entries = self._load()
        if any(self._entry_id(e) == descriptor.id for e in entries):
            raise ValueError(f"Vault id already registered: {descriptor.id}")
        entries.append(descriptor.model_copy())
        self._save(entries)
        logger.debug("Registry add: id=%s name=%s", descriptor.id, descriptor.name)

    def remove(self, vault_id: str) -> None:
        """Remove an entry and delete its payload.

        Raises:
            VaultNotFound: If no entry has that id.
        """
        entries = self._load()
        remaining = [e for e in entries if self._entry_id(e) != vault_id]
        if len(remaining) == len(entries):
            raise VaultNotFound()
        self._save(remaining)
        self._storage.remove(self._config.payload_key(vault_id))
        logger.debug("Registry remove: id=%s", vault_id)

    def rename(self, vault_id: str, new_name: str) -> VaultDescriptor:
        """Change a descriptor's display name. Salt and id are untouched.

        Raises:
            VaultNotFound: If no valid descriptor has that id.
        """
        entries = self._load()
        for idx, entry in enumerate(entries):
            if isinstance(entry, VaultDescriptor) and entry.id == vault_id:
                renamed = entry.model_copy(update={"name": new_name})
                entries[idx] = renamed
                self._save(entries)
                logger.debug("Registry rename: id=%s name=%s", vault_id, new_name)
                return renamed
        raise VaultNotFound()

    def unique_name(self, name: str) -> str:
        """Return ``name`` or ``name (n)`` with the smallest free ``n``."""
        taken = self.names()
        if name not in taken:
            return name
        n = 1
        while f"{name} ({n})" in taken:
            n += 1
        return f"{name} ({n})"
