"""
Vault Transfer — Encoding of transfer bundles for files, clipboard and
visual codes.

- File / clipboard: the bundle as JSON text, transferred whole.
- Visual code: base64(compact JSON) split into fixed-size chunks, each
  ``<marker><index>:<total>:<slice>``. Chunks may arrive out of order or
  repeatedly; ``ChunkAccumulator`` reassembles strictly by index once every
  index ``0..total-1`` has been seen.

Decoded bundles are never trusted on their own: receipt always ends in
``SecureStorage.import_vault_as_new`` or ``replace_vault_with_import``,
both of which require the bundle password.
"""
import re
import math
import base64
import logging
from datetime import date
from pathlib import Path
from typing import Any, Optional, Union
from collections.abc import Mapping

import orjson
from pydantic import ValidationError

from .crypto import b64encode
from .exceptions import InvalidBundle
from .models import TransferBundle

logger = logging.getLogger("docvault.vault")

DEFAULT_MARKER = "DVLT:"
DEFAULT_CHUNK_SIZE = 700

_FILENAME_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")
_CHUNK_NUMBER = re.compile(r"\d+", re.ASCII)


# ---------------------------------------------------------------------------
# Whole-bundle encoding
# ---------------------------------------------------------------------------

def coerce_bundle(data: Any) -> TransferBundle:
    """Build a ``TransferBundle`` from a bundle, mapping or JSON text.

    Raises:
        InvalidBundle: If ``data`` is not a structurally complete bundle.
    """
    if isinstance(data, TransferBundle):
        return data
    if isinstance(data, (str, bytes)):
        return decode_bundle(data)
    if not isinstance(data, Mapping):
        raise InvalidBundle()
    try:
        return TransferBundle.model_validate(dict(data))
    except ValidationError as err:
        raise InvalidBundle() from err


def encode_bundle(bundle: TransferBundle) -> str:
    """Compact JSON text of ``bundle`` (clipboard form)."""
    return bundle.to_json(pretty=False)


def decode_bundle(text: Union[str, bytes]) -> TransferBundle:
    """Parse bundle JSON text.

    Raises:
        InvalidBundle: If the text is not JSON or misses required fields.
    """
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError as err:
        raise InvalidBundle() from err
    if not isinstance(data, dict):
        raise InvalidBundle()
    return coerce_bundle(data)


def bundle_filename(bundle: TransferBundle, today: Optional[date] = None) -> str:
    """Export filename: ``docvault-vault-<name>-<YYYY-MM-DD>.json``."""
    name = _FILENAME_UNSAFE.sub("-", bundle.name or "vault")
    day = (today or date.today()).isoformat()
    return f"docvault-vault-{name}-{day}.json"


def write_bundle_file(
    bundle: TransferBundle,
    directory: Union[str, Path],
    today: Optional[date] = None,
) -> Path:
    """Write ``bundle`` as indented JSON into ``directory``.

    Returns:
        Path of the written file.
    """
    path = Path(directory) / bundle_filename(bundle, today)
    path.write_text(bundle.to_json(), encoding="utf-8")
    logger.info("Vault exported to %s", path)
    return path


def read_bundle_file(path: Union[str, Path]) -> TransferBundle:
    """Read a bundle written by ``write_bundle_file``.

    Raises:
        InvalidBundle: If the file content is not a valid bundle.
    """
    return decode_bundle(Path(path).read_bytes())


# ---------------------------------------------------------------------------
# Chunked encoding
# ---------------------------------------------------------------------------

def split_chunks(
    bundle: TransferBundle,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    marker: str = DEFAULT_MARKER,
) -> list[str]:
    """Split a bundle into ``<marker><index>:<total>:<slice>`` chunks."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    data = b64encode(encode_bundle(bundle).encode("utf-8"))
    total = math.ceil(len(data) / chunk_size)
    return [
        f"{marker}{idx}:{total}:{data[idx * chunk_size:(idx + 1) * chunk_size]}"
        for idx in range(total)
    ]


def parse_chunk(text: str, marker: str = DEFAULT_MARKER) -> tuple[int, int, str]:
    """Split one chunk into (index, total, data).

    Raises:
        InvalidBundle: If ``text`` is not a well-formed chunk.
    """
    text = text.strip()
    if not text.startswith(marker):
        raise InvalidBundle("Not a vault transfer code.")
    parts = text[len(marker):].split(":", 2)
    if (
        len(parts) != 3
        or not _CHUNK_NUMBER.fullmatch(parts[0])
        or not _CHUNK_NUMBER.fullmatch(parts[1])
    ):
        raise InvalidBundle("Malformed vault transfer code.")
    index, total, data = int(parts[0]), int(parts[1]), parts[2]
    if total < 1 or index >= total or not data:
        raise InvalidBundle("Malformed vault transfer code.")
    return index, total, data


class ChunkAccumulator:
    """Collects chunks of one transfer, keyed by index.

    Feeding is decoupled from whatever loop scans the codes: call ``add``
    for every decoded code and check ``is_complete``.
    """

    def __init__(self, marker: str = DEFAULT_MARKER):
        self.marker = marker
        self._total: Optional[int] = None
        self._chunks: dict[int, str] = {}

    def __repr__(self) -> str:
        received, total = self.progress
        return f"<ChunkAccumulator {received}/{total}>"

    @property
    def total(self) -> Optional[int]:
        return self._total

    @property
    def progress(self) -> tuple[int, int]:
        """(received, total); total is 0 before the first chunk."""
        return len(self._chunks), self._total or 0

    def reset(self) -> None:
        self._total = None
        self._chunks = {}

    def add(self, text: str) -> bool:
        """Record a chunk.

        A chunk announcing a different total, or different data for an
        index already seen, belongs to another transfer and restarts
        collection.

        Returns:
            True if the chunk added a new index, False for a repeat.

        Raises:
            InvalidBundle: If ``text`` is not a well-formed chunk.
        """
        index, total, data = parse_chunk(text, self.marker)
        if self._total is not None and (
            total != self._total
            or self._chunks.get(index, data) != data
        ):
            logger.warning(
                "Transfer chunk %d/%d does not match current transfer; restarting",
                index, total,
            )
            self.reset()
        self._total = total
        if index in self._chunks:
            return False
        self._chunks[index] = data
        return True

    def missing(self) -> list[int]:
        if self._total is None:
            return []
        return [i for i in range(self._total) if i not in self._chunks]

    def is_complete(self) -> bool:
        return self._total is not None and len(self._chunks) == self._total

    def assemble(self) -> TransferBundle:
        """Concatenate chunks by index and decode the bundle.

        Raises:
            InvalidBundle: If chunks are missing or the result is not a bundle.
        """
        if not self.is_complete():
            raise InvalidBundle(
                f"Transfer incomplete: missing chunks {self.missing()}"
            )
        joined = "".join(self._chunks[i] for i in range(self._total))
        try:
            text = base64.b64decode(joined.encode("ascii"), validate=True)
        except (ValueError, UnicodeEncodeError) as err:
            raise InvalidBundle() from err
        return decode_bundle(text)


def decode_transfer_text(text: str, marker: str = DEFAULT_MARKER) -> TransferBundle:
    """Decode clipboard text: bundle JSON or a single ``0:1`` chunk.

    Raises:
        InvalidBundle: If the text is neither.
    """
    text = text.strip()
    if text.startswith(marker):
        accumulator = ChunkAccumulator(marker)
        accumulator.add(text)
        if not accumulator.is_complete():
            raise InvalidBundle(
                "This code is one part of a multi-part transfer."
            )
        return accumulator.assemble()
    return decode_bundle(text)
