"""
Vault Models — Descriptors, decrypted vault body and transfer bundle.

Wire format uses camelCase field names (``createdAt``, ``defaultId``,
``isDefault``, ``imageData``) so persisted records stay readable by every
client that shares the storage. Python code uses snake_case attributes.

The vault body is versioned. ``VaultBody.from_bytes`` upgrades older
bodies through ``_BODY_MIGRATIONS`` one version at a time before
validation; ``VaultBody.to_bytes`` always writes ``BODY_VERSION``.
"""
import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Callable, Optional
from collections.abc import Iterable

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .crypto import b64decode, serialize_value, deserialize_value

logger = logging.getLogger("docvault.vault")

BODY_VERSION = 2
BUNDLE_VERSION = 1
BUILTIN_TEMPLATE_ID = "default"

SignatureKind = Literal["draw", "type", "image"]

DEFAULT_TEMPLATE_BODY = """Please find attached {{filename}}.

This document may contain electronic signatures; where present, signer identity, date, and document association are recorded.

Document summary:
- Pages: {{pageCount}}
{{signatureSummary}}
{{documentHash}}

Please retain this message and the attached file for your records.

{{attachmentNote}}"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str, existing: Iterable[str] = ()) -> str:
    """Generate a random ``<prefix>-<hex>`` id not present in ``existing``."""
    taken = set(existing)
    while True:
        candidate = f"{prefix}-{uuid.uuid4().hex[:10]}"
        if candidate not in taken:
            return candidate


class VaultModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-compatible wire representation."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class VaultDescriptor(VaultModel):
    """Public metadata of one vault. Persisted unencrypted in the registry."""

    id: str = Field(min_length=1)
    name: str
    salt: str
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("salt")
    @classmethod
    def validate_salt(cls, v: str) -> str:
        if not b64decode(v):
            raise ValueError("salt must not be empty")
        return v

    @property
    def salt_bytes(self) -> bytes:
        return b64decode(self.salt)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class TemplateRecord(VaultModel):
    """A reusable document/message template."""

    id: str = Field(min_length=1)
    name: str = "Untitled"
    subject: str = ""
    body: str = ""
    is_default: bool = False
    builtin: bool = False


def builtin_default_template() -> TemplateRecord:
    return TemplateRecord(
        id=BUILTIN_TEMPLATE_ID,
        name="Default",
        subject="{{filename}}",
        body=DEFAULT_TEMPLATE_BODY,
        is_default=True,
        builtin=True,
    )


class TemplatesStore(VaultModel):
    """Ordered template records with exactly one default.

    The built-in default template is always present; built-in templates
    cannot be removed.
    """

    version: int = 1
    default_id: str = BUILTIN_TEMPLATE_ID
    templates: list[TemplateRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def normalize(self) -> "TemplatesStore":
        self._normalize()
        return self

    def _normalize(self) -> None:
        seen: set[str] = set()
        unique = []
        for tpl in self.templates:
            if tpl.id in seen:
                continue
            seen.add(tpl.id)
            if tpl.id == BUILTIN_TEMPLATE_ID:
                tpl.builtin = True
            unique.append(tpl)
        if BUILTIN_TEMPLATE_ID not in seen:
            unique.insert(0, builtin_default_template())
            seen.add(BUILTIN_TEMPLATE_ID)
        if self.default_id not in seen:
            self.default_id = BUILTIN_TEMPLATE_ID
        for tpl in unique:
            tpl.is_default = tpl.id == self.default_id
        self.templates = unique

    def get(self, template_id: str) -> Optional[TemplateRecord]:
        for tpl in self.templates:
            if tpl.id == template_id:
                return tpl
        return None

    def default_template(self) -> TemplateRecord:
        return self.get(self.default_id) or self.templates[0]

    def add(self, name: str = "", subject: str = "", body: str = "") -> TemplateRecord:
        """Append a new, non-default template with a fresh id."""
        tpl = TemplateRecord(
            id=new_id("tpl", (t.id for t in self.templates)),
            name=name or "Untitled",
            subject=subject or "",
            body=body or "",
        )
        self.templates.append(tpl)
        self._normalize()
        return tpl

    def update(
        self,
        template_id: str,
        name: Optional[str] = None,
        subject: Optional[str] = None,
        body: Optional[str] = None,
    ) -> Optional[TemplateRecord]:
        tpl = self.get(template_id)
        if tpl is None:
            return None
        if name is not None:
            tpl.name = name
        if subject is not None:
            tpl.subject = subject
        if body is not None:
            tpl.body = body
        return tpl

    def remove(self, template_id: str) -> bool:
        """Remove a template. Built-in and unknown ids are refused."""
        tpl = self.get(template_id)
        if tpl is None or tpl.builtin:
            return False
        self.templates = [t for t in self.templates if t.id != template_id]
        if self.default_id == template_id:
            self.default_id = self.templates[0].id
        self._normalize()
        return True

    def set_default(self, template_id: str) -> bool:
        if self.get(template_id) is None:
            return False
        self.default_id = template_id
        self._normalize()
        return True

    def builtin_ids(self) -> set[str]:
        return {t.id for t in self.templates if t.builtin}


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

class SignatureRecord(VaultModel):
    """A saved signature image."""

    id: str = Field(min_length=1)
    name: str = "Untitled"
    image_data: str
    kind: SignatureKind = "draw"
    created_at: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Vault body
# ---------------------------------------------------------------------------

def _migrate_v1(data: dict[str, Any]) -> dict[str, Any]:
    """v1 → v2: ``templates`` → ``templatesStore``; signature ``dataUrl``/``type``
    → ``imageData``/``kind``; unnamed signatures get a name."""
    templates = data.pop("templates", None)
    if "templatesStore" not in data and isinstance(templates, dict):
        data["templatesStore"] = templates
    signatures = []
    for sig in data.get("signatures") or []:
        if not isinstance(sig, dict):
            continue
        sig = dict(sig)
        if "dataUrl" in sig:
            sig.setdefault("imageData", sig.pop("dataUrl"))
        kind = sig.pop("type", None)
        sig.setdefault("kind", kind if kind in ("draw", "type", "image") else "draw")
        sig["name"] = sig.get("name") or "Untitled"
        signatures.append(sig)
    data["signatures"] = signatures
    data["version"] = 2
    return data


_BODY_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _migrate_v1,
}


class VaultBody(VaultModel):
    """Decrypted vault contents. Exists only in memory."""

    version: int = BODY_VERSION
    templates_store: TemplatesStore = Field(default_factory=TemplatesStore)
    signatures: list[SignatureRecord] = Field(default_factory=list)

    @classmethod
    def migrate(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Upgrade a raw body dict to ``BODY_VERSION``.

        Raises:
            ValueError: If the body version is unknown or newer than supported.
        """
        version = data.get("version", 1)
        if not isinstance(version, int) or version < 1:
            raise ValueError(f"Invalid vault body version: {version!r}")
        if version > BODY_VERSION:
            raise ValueError(
                f"Vault body version {version} is newer than supported "
                f"({BODY_VERSION})"
            )
        while version < BODY_VERSION:
            data = _BODY_MIGRATIONS[version](data)
            logger.debug("Vault body migrated v%d -> v%d", version, data["version"])
            version = data["version"]
        return data

    @classmethod
    def from_bytes(cls, data: bytes) -> "VaultBody":
        """Parse and migrate a decrypted body.

        Raises:
            ValueError: If ``data`` is not a valid vault body.
        """
        raw = deserialize_value(data)
        if not isinstance(raw, dict):
            raise ValueError("Vault body must be a JSON object")
        return cls.model_validate(cls.migrate(raw))

    def to_bytes(self) -> bytes:
        payload = self.to_dict()
        payload["version"] = BODY_VERSION
        return serialize_value(payload)


# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------

class TransferBundle(VaultModel):
    """Exported vault: descriptor metadata plus the persisted ciphertext.

    Reuses the vault's salt and payload verbatim; it is not a separate
    encryption layer and is useless without the vault password.
    """

    version: int = BUNDLE_VERSION
    name: str = ""
    salt: str = Field(min_length=1)
    payload: str = Field(min_length=1)
    exported_at: datetime = Field(default_factory=utcnow)

    @field_validator("salt", "payload")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        b64decode(v)
        return v

    @property
    def salt_bytes(self) -> bytes:
        return b64decode(self.salt)

    def to_json(self, pretty: bool = True) -> str:
        """JSON text of the bundle; indented for export files, compact otherwise."""
        option = orjson.OPT_INDENT_2 if pretty else None
        return orjson.dumps(self.to_dict(), option=option).decode("utf-8")
