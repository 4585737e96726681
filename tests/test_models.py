"""
Tests for vault configuration and body model validation.
"""
import orjson
import pytest
from pydantic import ValidationError

from docvault.vault import TransferBundle, VaultBody, VaultConfig
from docvault.vault.models import BODY_VERSION, VaultDescriptor


class TestVaultConfig:
    """Tests for VaultConfig."""

    def test_defaults(self, config):
        assert config.kdf_iterations == 230_000
        assert config.chunk_size == 700
        assert config.chunk_marker == "DVLT:"
        assert config.registry_key == "docvault-vault-registry"
        assert config.payload_key("vault-a") == "docvault-vault-vault-a"
        assert config.legacy_meta_key == "docvault-vault-meta"
        assert config.legacy_vault_key == "docvault-secure-vault"
        assert config.legacy_templates_key == "docvault-email-templates"

    def test_iteration_floor(self):
        with pytest.raises(ValidationError):
            VaultConfig(kdf_iterations=100_000)

    @pytest.mark.parametrize("marker", ["DV:LT:", "DV LT:", ""])
    def test_invalid_marker(self, marker):
        with pytest.raises(ValidationError):
            VaultConfig(chunk_marker=marker)

    def test_frozen(self, config):
        with pytest.raises(ValidationError):
            config.chunk_size = 100

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DOCVAULT_KDF_ITERATIONS", "300000")
        monkeypatch.setenv("DOCVAULT_KEY_PREFIX", "acme")
        monkeypatch.setenv("DOCVAULT_CHUNK_SIZE", "1200")
        monkeypatch.setenv("DOCVAULT_CONFIRM_REPLACE", "false")
        config = VaultConfig.from_env()
        assert config.kdf_iterations == 300_000
        assert config.registry_key == "acme-vault-registry"
        assert config.chunk_size == 1200
        assert config.confirm_replace is False

    def test_from_env_rejects_weak_iterations(self, monkeypatch):
        monkeypatch.setenv("DOCVAULT_KDF_ITERATIONS", "1000")
        with pytest.raises(ValidationError):
            VaultConfig.from_env()


class TestVaultBody:
    """Tests for VaultBody parsing and versioning."""

    def test_new_body(self):
        body = VaultBody()
        data = orjson.loads(body.to_bytes())
        assert data["version"] == BODY_VERSION
        assert data["signatures"] == []
        assert data["templatesStore"]["defaultId"] == "default"

    def test_newer_version_rejected(self):
        with pytest.raises(ValueError):
            VaultBody.from_bytes(orjson.dumps({"version": BODY_VERSION + 1}))

    @pytest.mark.parametrize("raw", [b"[]", b"not json", b'{"version": 0}'])
    def test_invalid_body(self, raw):
        with pytest.raises(ValueError):
            VaultBody.from_bytes(raw)

    def test_v1_without_templates(self):
        body = VaultBody.from_bytes(orjson.dumps({"version": 1, "signatures": []}))
        assert body.templates_store.default_template().builtin is True


class TestDescriptorAndBundle:
    """Validation of public records."""

    def test_descriptor_requires_salt(self):
        with pytest.raises(ValidationError):
            VaultDescriptor(id="vault-a", name="A", salt="")

    def test_descriptor_wire_names(self):
        data = VaultDescriptor(id="vault-a", name="A", salt="MDEy").to_dict()
        assert set(data) == {"id", "name", "salt", "createdAt"}

    def test_bundle_rejects_bad_base64(self):
        with pytest.raises(ValidationError):
            TransferBundle(name="A", salt="MDEy", payload="***")

    def test_bundle_ignores_unknown_fields(self):
        bundle = TransferBundle.model_validate({
            "version": 1, "name": "A", "salt": "MDEy", "payload": "QUJD",
            "exportedAt": "2024-05-01T00:00:00Z", "extra": True,
        })
        assert bundle.salt_bytes == b"012"
        assert "extra" not in bundle.to_dict()
