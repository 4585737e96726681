"""
Tests for legacy single-vault migration and vault body versioning.

Tests cover:
- Adoption of the legacy record byte-for-byte
- Idempotence and no-op conditions
- Opening a migrated v1 body with the original password
"""
import os

import orjson
import pytest

from docvault.vault import SecureStorage, migrate_if_needed
from docvault.vault.crypto import b64encode, decrypt, derive_key, encrypt


PASSWORD = "legacy-pw"

LEGACY_BODY = {
    "version": 1,
    "templates": {
        "version": 1,
        "defaultId": "default",
        "templates": [
            {"id": "default", "name": "Default", "subject": "{{filename}}",
             "body": "Hi", "isDefault": True, "builtin": True},
            {"id": "tpl-old", "name": "Old", "subject": "S", "body": "B"},
        ],
    },
    "signatures": [
        {"id": "sig-old", "name": "Jane", "dataUrl": "data:image/png;base64,AAA=",
         "type": "type", "createdAt": "2024-01-02T03:04:05.000Z"},
        {"id": "sig-anon", "name": "", "dataUrl": "data:image/png;base64,BBB="},
    ],
}


@pytest.fixture(scope="module")
def legacy_record():
    """(salt_b64, blob) of a legacy single vault sealed with PASSWORD."""
    salt = os.urandom(16)
    key = derive_key(PASSWORD, salt)
    blob = encrypt(orjson.dumps(LEGACY_BODY), key)
    return b64encode(salt), blob


@pytest.fixture
def legacy_storage(storage, config, legacy_record):
    salt, blob = legacy_record
    storage.set(config.legacy_meta_key, orjson.dumps({"salt": salt}).decode())
    storage.set(config.legacy_vault_key, blob)
    return storage


class TestMigrateIfNeeded:
    """Tests for migrate_if_needed."""

    def test_adopts_legacy_vault(self, legacy_storage, config, legacy_record):
        salt, blob = legacy_record
        descriptor = migrate_if_needed(legacy_storage, config)
        assert descriptor is not None
        assert descriptor.name == "Default"
        assert descriptor.salt == salt
        assert legacy_storage.get(config.payload_key(descriptor.id)) == blob
        assert legacy_storage.get(config.legacy_meta_key) is None
        assert legacy_storage.get(config.legacy_vault_key) is None

    def test_idempotent(self, legacy_storage, config):
        migrate_if_needed(legacy_storage, config)
        registry_once = legacy_storage.get(config.registry_key)
        assert migrate_if_needed(legacy_storage, config) is None
        assert legacy_storage.get(config.registry_key) == registry_once

    def test_no_legacy_record(self, storage, config):
        assert migrate_if_needed(storage, config) is None
        assert storage.get(config.registry_key) is None

    def test_meta_without_blob(self, storage, config):
        storage.set(config.legacy_meta_key, '{"salt": "MDEy"}')
        assert migrate_if_needed(storage, config) is None
        assert storage.get(config.legacy_meta_key) is not None

    def test_unreadable_meta(self, storage, config):
        storage.set(config.legacy_meta_key, "{broken")
        storage.set(config.legacy_vault_key, "QUJD")
        assert migrate_if_needed(storage, config) is None

    @pytest.mark.asyncio
    async def test_skipped_when_registry_exists(self, legacy_storage, config):
        vaults = SecureStorage(legacy_storage, config)
        await vaults.create_vault("Work", "pw123")
        assert vaults.migrate_if_needed() is None
        assert [d.name for d in vaults.get_registry()] == ["Work"]
        assert legacy_storage.get(config.legacy_vault_key) is not None


class TestMigratedVault:
    """The migrated vault opens with the original password."""

    @pytest.mark.asyncio
    async def test_unlock_migrated_v1_body(self, legacy_storage, config):
        vaults = SecureStorage(legacy_storage, config)
        descriptor = vaults.migrate_if_needed()
        await vaults.unlock(descriptor.id, PASSWORD)

        signatures = vaults.get_signatures()
        assert [s.id for s in signatures] == ["sig-old", "sig-anon"]
        assert signatures[0].kind == "type"
        assert signatures[0].image_data == "data:image/png;base64,AAA="
        assert signatures[0].created_at.year == 2024
        assert signatures[1].name == "Untitled"
        assert signatures[1].kind == "draw"

        store = vaults.get_templates_store()
        assert store.get("tpl-old").name == "Old"
        assert store.default_template().id == "default"

    @pytest.mark.asyncio
    async def test_first_save_upgrades_body(self, legacy_storage, config):
        vaults = SecureStorage(legacy_storage, config)
        descriptor = vaults.migrate_if_needed()
        await vaults.unlock(descriptor.id, PASSWORD)
        await vaults.remove_signature("sig-anon")
        stored = orjson.loads(decrypt(
            legacy_storage.get(config.payload_key(descriptor.id)), vaults.session.key,
        ))
        assert stored["version"] == 2
        assert "templates" not in stored
        assert stored["templatesStore"]["defaultId"] == "default"
        assert stored["signatures"][0]["imageData"] == "data:image/png;base64,AAA="
        vaults.lock()
        await vaults.unlock(descriptor.id, PASSWORD)
        assert [s.id for s in vaults.get_signatures()] == ["sig-old"]
