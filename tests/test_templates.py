"""
Tests for the templates store and template helpers.

Tests cover:
- Default store and the single-default invariant
- add / update / remove / set_default
- Placeholder filling
- JSON export / import and legacy record parsing
"""
import orjson
import pytest

from docvault.vault.models import BUILTIN_TEMPLATE_ID, TemplatesStore
from docvault.vault.templates import (
    PLACEHOLDERS,
    default_templates_store,
    export_templates_json,
    fill,
    import_templates_json,
    load_legacy_templates,
)


@pytest.fixture
def store():
    """Fresh default templates store."""
    return default_templates_store()


def _defaults(store: TemplatesStore) -> list[str]:
    return [t.id for t in store.templates if t.is_default]


class TestTemplatesStore:
    """Tests for TemplatesStore operations."""

    def test_default_store(self, store):
        assert store.default_id == BUILTIN_TEMPLATE_ID
        assert _defaults(store) == [BUILTIN_TEMPLATE_ID]
        tpl = store.default_template()
        assert tpl.builtin is True
        assert tpl.subject == "{{filename}}"
        assert "{{attachmentNote}}" in tpl.body

    def test_add(self, store):
        tpl = store.add(name="Invoice", subject="Inv", body="Body")
        assert tpl.id.startswith("tpl-")
        assert tpl.is_default is False
        assert store.get(tpl.id) is tpl
        assert _defaults(store) == [BUILTIN_TEMPLATE_ID]

    def test_add_blank_name(self, store):
        assert store.add().name == "Untitled"

    def test_update(self, store):
        tpl = store.add(name="A")
        updated = store.update(tpl.id, subject="New subject")
        assert updated.subject == "New subject"
        assert updated.name == "A"
        assert store.update("tpl-missing", name="x") is None

    def test_set_default(self, store):
        tpl = store.add(name="A")
        assert store.set_default(tpl.id) is True
        assert _defaults(store) == [tpl.id]
        assert store.set_default("tpl-missing") is False
        assert store.default_id == tpl.id

    def test_remove_builtin_refused(self, store):
        assert store.remove(BUILTIN_TEMPLATE_ID) is False
        assert store.get(BUILTIN_TEMPLATE_ID) is not None

    def test_remove_default_moves_default(self, store):
        tpl = store.add(name="A")
        store.set_default(tpl.id)
        assert store.remove(tpl.id) is True
        assert store.default_id == BUILTIN_TEMPLATE_ID
        assert _defaults(store) == [BUILTIN_TEMPLATE_ID]

    def test_remove_unknown(self, store):
        assert store.remove("tpl-missing") is False

    def test_validation_normalizes(self):
        store = TemplatesStore.model_validate({
            "defaultId": "tpl-missing",
            "templates": [
                {"id": "tpl-a", "name": "A", "isDefault": True},
                {"id": "tpl-a", "name": "A again"},
                {"id": "tpl-b", "name": "B", "isDefault": True},
            ],
        })
        assert [t.id for t in store.templates] == [BUILTIN_TEMPLATE_ID, "tpl-a", "tpl-b"]
        assert store.get("tpl-a").name == "A"
        assert _defaults(store) == [BUILTIN_TEMPLATE_ID]


class TestFill:
    """Tests for placeholder filling."""

    def test_all_placeholders_replaced(self, store):
        subject, body = fill(
            store.default_template(),
            filename="contract.pdf",
            page_count=3,
            signature_summary="Signed by Jane",
            document_hash="abc123",
        )
        assert subject == "contract.pdf"
        assert "- Pages: 3" in body
        assert "Signed by Jane" in body
        assert "Document hash (SHA-256): abc123" in body
        assert "(contract.pdf)" in body
        for placeholder in PLACEHOLDERS:
            assert placeholder not in body

    def test_defaults(self, store):
        tpl = store.add(
            name="T",
            subject="{{signerNames}}",
            body="{{signatureSummary}}|{{documentHash}}|{{date}}|{{attachmentNote}}",
        )
        subject, body = fill(tpl, date="2024-05-01", attachment_note="")
        assert subject == "—"
        assert body == "No signatures.|Document hash: N/A|2024-05-01|"


class TestImportExport:
    """Tests for templates JSON import/export."""

    def test_export_round_trip(self, store):
        tpl = store.add(name="A", subject="S", body="B")
        store.set_default(tpl.id)
        text = export_templates_json(store)
        assert "exportedAt" in orjson.loads(text)
        imported, count, errors = import_templates_json(default_templates_store(), text)
        assert errors == []
        assert count == 2
        assert imported.default_id == tpl.id
        assert imported.get(tpl.id).subject == "S"

    def test_merge_overwrites_duplicates(self, store):
        tpl = store.add(name="Old")
        text = orjson.dumps({"templates": [{"id": tpl.id, "name": "New"}]}).decode()
        merged, count, _ = import_templates_json(store, text)
        assert count == 1
        assert merged.get(tpl.id).name == "New"
        assert store.get(tpl.id).name == "Old"

    def test_replace(self, store):
        store.add(name="Dropped")
        text = orjson.dumps({"templates": [{"id": "tpl-new", "name": "New"}]}).decode()
        replaced, _, _ = import_templates_json(store, text, replace=True)
        assert [t.id for t in replaced.templates] == [BUILTIN_TEMPLATE_ID, "tpl-new"]

    def test_invalid_entries_skipped(self, store):
        text = orjson.dumps({"templates": [
            {"id": "tpl-ok", "name": "Ok"},
            {"id": 5, "name": "Bad id"},
            {"id": "tpl-noname"},
            "junk",
        ]}).decode()
        result, count, errors = import_templates_json(store, text)
        assert count == 1
        assert len(errors) == 3
        assert result.get("tpl-ok") is not None

    def test_builtin_entries_map_to_default(self, store):
        text = orjson.dumps({"templates": [
            {"id": "tpl-x", "name": "Custom default", "builtin": True},
        ]}).decode()
        result, _, _ = import_templates_json(store, text)
        assert result.get("tpl-x") is None
        assert result.get(BUILTIN_TEMPLATE_ID).name == "Custom default"

    def test_invalid_json(self, store):
        result, count, errors = import_templates_json(store, "{nope")
        assert count == 0
        assert errors and errors[0].startswith("Invalid JSON")
        assert result == store


class TestLegacyTemplates:
    """Tests for load_legacy_templates."""

    def test_valid_record(self):
        raw = orjson.dumps({"version": 1, "templates": [{"id": "tpl-a", "name": "A"}]})
        store = load_legacy_templates(raw.decode())
        assert store.get("tpl-a") is not None
        assert store.get(BUILTIN_TEMPLATE_ID) is not None

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "{broken",
        '{"templates": []}',
        '{"version": "1", "templates": []}',
        '{"version": 1, "templates": {}}',
        "[1, 2]",
    ])
    def test_invalid_record(self, raw):
        assert load_legacy_templates(raw) is None
