"""
Vault Templates — Placeholder filling and JSON import/export for the
templates store held inside an unlocked vault.

These helpers work on ``TemplatesStore`` values only; callers persist the
result through ``SecureStorage.save_templates_store``.
"""
import logging
from datetime import datetime
from typing import Any, Optional

import orjson
from pydantic import ValidationError

from .models import (
    BUILTIN_TEMPLATE_ID,
    TemplateRecord,
    TemplatesStore,
    builtin_default_template,
    utcnow,
)

logger = logging.getLogger("docvault.vault")

PLACEHOLDERS = (
    "{{filename}}",
    "{{date}}",
    "{{signatureSummary}}",
    "{{signerNames}}",
    "{{pageCount}}",
    "{{documentHash}}",
    "{{attachmentNote}}",
)


def default_templates_store() -> TemplatesStore:
    """Built-in template set seeded into every new vault."""
    return TemplatesStore(templates=[builtin_default_template()])


def fill(
    template: TemplateRecord,
    filename: str = "",
    date: Optional[str] = None,
    signature_summary: Optional[str] = None,
    signer_names: Optional[str] = None,
    page_count: int = 0,
    document_hash: Optional[str] = None,
    attachment_note: Optional[str] = None,
) -> tuple[str, str]:
    """Replace placeholders in a template's subject and body.

    Returns:
        Tuple of (subject, body).
    """
    if attachment_note is None:
        attachment_note = (
            "IMPORTANT: You must manually attach the PDF file "
            f"({filename or 'file'}) that was just downloaded to this email "
            "before sending. Do not attach a different version of the file."
        )
    values = {
        "{{filename}}": filename,
        "{{date}}": date if date is not None else datetime.now().strftime("%c"),
        "{{signatureSummary}}": (
            signature_summary if signature_summary is not None else "No signatures."
        ),
        "{{signerNames}}": signer_names if signer_names is not None else "—",
        "{{pageCount}}": str(page_count),
        "{{documentHash}}": (
            f"Document hash (SHA-256): {document_hash}"
            if document_hash else "Document hash: N/A"
        ),
        "{{attachmentNote}}": attachment_note,
    }
    subject = template.subject
    body = template.body
    for placeholder, value in values.items():
        subject = subject.replace(placeholder, value)
        body = body.replace(placeholder, value)
    return subject, body


def export_templates_json(store: TemplatesStore) -> str:
    """Serialize the templates store as indented JSON for file download."""
    data = store.to_dict()
    data["exportedAt"] = utcnow().isoformat()
    return orjson.dumps(data, option=orjson.OPT_INDENT_2).decode("utf-8")


def import_templates_json(
    store: TemplatesStore,
    text: str,
    replace: bool = False,
) -> tuple[TemplatesStore, int, list[str]]:
    """Merge templates from JSON text into a copy of ``store``.

    Duplicate ids overwrite existing templates. With ``replace=True`` the
    result starts from the built-in default set instead of ``store``.
    Entries with ``id == "default"`` or a builtin flag map onto the
    built-in template.

    Returns:
        Tuple of (new_store, imported_count, errors).
    """
    errors: list[str] = []
    imported = 0
    result = default_templates_store() if replace else store.model_copy(deep=True)
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError as err:
        return result, 0, [f"Invalid JSON: {err}"]
    if not isinstance(data, dict):
        return result, 0, ["Invalid JSON: expected an object"]

    incoming = data.get("templates")
    for entry in incoming if isinstance(incoming, list) else []:
        if (
            not isinstance(entry, dict)
            or not isinstance(entry.get("id"), str)
            or not entry.get("name")
        ):
            errors.append("Invalid template entry skipped.")
            continue
        is_builtin = entry["id"] == BUILTIN_TEMPLATE_ID or bool(entry.get("builtin"))
        try:
            tpl = TemplateRecord(
                id=BUILTIN_TEMPLATE_ID if is_builtin else entry["id"],
                name=str(entry["name"]),
                subject=str(entry.get("subject") or ""),
                body=str(entry.get("body") or ""),
                builtin=is_builtin,
            )
        except ValidationError as err:
            errors.append(f"Invalid template entry skipped: {err}")
            continue
        for idx, existing in enumerate(result.templates):
            if existing.id == tpl.id:
                result.templates[idx] = tpl
                break
        else:
            result.templates.append(tpl)
        imported += 1

    default_id = data.get("defaultId")
    if isinstance(default_id, str) and result.get(default_id) is not None:
        result.default_id = default_id
    result = TemplatesStore.model_validate(result.to_dict())
    logger.debug("Imported %d template(s), %d error(s)", imported, len(errors))
    return result, imported, errors


def load_legacy_templates(raw: Optional[str]) -> Optional[TemplatesStore]:
    """Parse a pre-vault plaintext templates record.

    Returns:
        The templates store, or None if ``raw`` is absent or not a valid
        templates record (numeric version and a list of templates).
    """
    if not raw:
        return None
    try:
        data: Any = orjson.loads(raw)
    except orjson.JSONDecodeError:
        logger.warning("Ignoring unreadable legacy templates record")
        return None
    if (
        not isinstance(data, dict)
        or isinstance(data.get("version"), bool)
        or not isinstance(data.get("version"), (int, float))
        or not isinstance(data.get("templates"), list)
    ):
        return None
    try:
        store = TemplatesStore.model_validate(data)
    except ValidationError:
        logger.warning("Ignoring invalid legacy templates record")
        return None
    return store
