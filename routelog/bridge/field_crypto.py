"""Field encryptor — authenticated encryption of designated log-entry fields.

Bridge boundary
---------------
All cryptography goes through PyNaCl (libsodium).  Each targeted field in an
entry's ``data`` is encrypted independently with ChaCha20-Poly1305 (IETF
variant: 256-bit key, 96-bit random nonce, 128-bit tag) and replaced by an
``EncryptedSegment`` mapping ``{placeholder, payload, iv, tag, algorithm}``.
The field name is bound as associated data, so a segment cannot be moved to
another field and still authenticate.

Key handling
------------
The key is a base64-encoded 32-byte value (``LOG_ENCRYPTION_KEY``), decoded
once and cached.

* Writing: a missing or malformed key does **not** fail the write.  The entry
  is persisted unencrypted and the omission is recorded.  Durability of the
  record takes priority over confidentiality enforcement at write time;
  callers that need encryption guaranteed must validate the key at startup
  (``FieldEncryptor.require_key``).
* Reading: a missing or malformed key raises ``EncryptionKeyError``.  A field
  that fails authentication is skipped and recorded; the rest of the entry
  still decrypts.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Iterable, Mapping
from typing import Any

import nacl.bindings
import nacl.exceptions
import nacl.utils

from routelog.core.context import PipelineContext
from routelog.core.errors import EncryptionKeyError
from routelog.core.sanitize import SAFE_PLACEHOLDER_KEY_PATTERN
from routelog.models.events import EncryptedSegment, LogEvent
from routelog.models.routes import LogRoute

logger = logging.getLogger(__name__)

ENCRYPTION_ALGORITHM = "chacha20-poly1305-ietf"
KEY_BYTES = nacl.bindings.crypto_aead_chacha20poly1305_ietf_KEYBYTES
NONCE_BYTES = nacl.bindings.crypto_aead_chacha20poly1305_ietf_NPUBBYTES
TAG_BYTES = nacl.bindings.crypto_aead_chacha20poly1305_ietf_ABYTES

_UNSET = object()


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def generate_key() -> str:
    """Return a fresh base64-encoded key suitable for ``LOG_ENCRYPTION_KEY``."""
    return _b64(nacl.utils.random(KEY_BYTES))


def normalize_encryption_fields(targets: Any) -> list[str]:
    """Trim, filter to safe identifiers, and de-duplicate (order preserved)."""
    if not targets:
        return []
    candidates = targets if isinstance(targets, (list, tuple, set, frozenset)) else [targets]
    normalized: list[str] = []
    for candidate in candidates:
        if not isinstance(candidate, str):
            continue
        trimmed = candidate.strip()
        if trimmed and SAFE_PLACEHOLDER_KEY_PATTERN.match(trimmed):
            normalized.append(trimmed)
    return list(dict.fromkeys(normalized))


def collect_encryption_targets(
    route: LogRoute, encrypt_fields: bool | Iterable[str], data: Mapping[str, Any]
) -> list[str]:
    """Union of route-level and call-level targets.

    ``encrypt_fields=True`` on the call selects every key currently in *data*.
    """
    if encrypt_fields is True:
        return normalize_encryption_fields(list(data.keys()))
    call_targets = [] if encrypt_fields is False else list(encrypt_fields)
    combined = normalize_encryption_fields(list(route.encrypt_fields)) + (
        normalize_encryption_fields(call_targets)
    )
    return list(dict.fromkeys(combined))


def is_encrypted_segment(value: Any) -> bool:
    """Structural check: ``{iv, tag, payload|encrypted}``."""
    return (
        isinstance(value, Mapping)
        and bool(value.get("iv"))
        and bool(value.get("tag"))
        and ("payload" in value or "encrypted" in value)
    )


class FieldEncryptor:
    """Encrypts and decrypts designated fields of log entries.

    Parameters
    ----------
    raw_key:
        Base64 key from configuration; empty means "no key configured".
    context:
        Supplies the error recorder.
    """

    def __init__(self, raw_key: str, context: PipelineContext) -> None:
        self._raw_key = raw_key or ""
        self._context = context
        self._key: Any = _UNSET

    # ------------------------------------------------------------------
    # Key handling
    # ------------------------------------------------------------------

    def _key_bytes(self) -> bytes | None:
        """Decode and cache the key; ``None`` when none is configured."""
        if self._key is not _UNSET:
            if isinstance(self._key, EncryptionKeyError):
                raise self._key
            return self._key
        if not self._raw_key:
            self._key = None
            return None
        try:
            candidate = base64.b64decode(self._raw_key, validate=True)
        except (binascii.Error, ValueError) as exc:
            self._key = EncryptionKeyError(f"encryption key is invalid: {exc}")
            raise self._key from exc
        if len(candidate) != KEY_BYTES:
            self._key = EncryptionKeyError(
                f"encryption key is invalid: decoded key must be {KEY_BYTES} bytes"
            )
            raise self._key
        self._key = candidate
        return candidate

    def require_key(self) -> bytes:
        """Return the key, raising ``EncryptionKeyError`` when absent or invalid."""
        key = self._key_bytes()
        if key is None:
            raise EncryptionKeyError("LOG_ENCRYPTION_KEY is not configured")
        return key

    @property
    def has_key(self) -> bool:
        try:
            return self._key_bytes() is not None
        except EncryptionKeyError:
            return False

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    @staticmethod
    def encrypt_value(value: Any, key: bytes, field: str) -> EncryptedSegment:
        nonce = nacl.utils.random(NONCE_BYTES)
        sealed = nacl.bindings.crypto_aead_chacha20poly1305_ietf_encrypt(
            str(value).encode("utf-8"), field.encode("utf-8"), nonce, key
        )
        return EncryptedSegment(
            placeholder=field,
            payload=_b64(sealed[:-TAG_BYTES]),
            iv=_b64(nonce),
            tag=_b64(sealed[-TAG_BYTES:]),
            algorithm=ENCRYPTION_ALGORITHM,
        )

    @staticmethod
    def decrypt_value(segment: Mapping[str, Any], key: bytes, field: str) -> str:
        algorithm = segment.get("algorithm") or ENCRYPTION_ALGORITHM
        if algorithm != ENCRYPTION_ALGORITHM:
            raise ValueError(f"unsupported algorithm {algorithm!r}")
        ciphertext = segment.get("payload")
        if not isinstance(ciphertext, str):
            ciphertext = segment.get("encrypted") or ""
        nonce = base64.b64decode(segment["iv"], validate=True)
        tag = base64.b64decode(segment["tag"], validate=True)
        body = base64.b64decode(ciphertext, validate=True)
        aad = field.encode("utf-8")
        plain = nacl.bindings.crypto_aead_chacha20poly1305_ietf_decrypt(
            body + tag, aad, nonce, key
        )
        return plain.decode("utf-8")

    # ------------------------------------------------------------------
    # Entry-level API
    # ------------------------------------------------------------------

    def encrypt(self, event: LogEvent, targets: Iterable[str]) -> LogEvent:
        """Return a copy of *event* with each target field encrypted.

        Never raises: key problems and per-field failures are recorded and
        the affected fields are left in plaintext.
        """
        fields = normalize_encryption_fields(list(targets))
        if not fields:
            return event
        try:
            key = self._key_bytes()
        except EncryptionKeyError as exc:
            self._context.errors.record(
                "encryption key validation failed", code="encryption_key", error=str(exc)
            )
            return event
        if key is None:
            self._context.errors.record(
                "encryption requested but key unavailable",
                code="encryption_key",
                flag=event.flag,
                targets=fields,
            )
            return event

        data = dict(event.data)
        for field in fields:
            if field not in data:
                continue
            try:
                data[field] = self.encrypt_value(data[field], key, field).model_dump()
            except (nacl.exceptions.CryptoError, TypeError, ValueError) as exc:
                self._context.errors.record(
                    "encryption failed for field",
                    code="encryption_field",
                    field=field,
                    flag=event.flag,
                    error=str(exc),
                )
        return event.model_copy(update={"data": data})

    def decrypt(self, entry: Mapping[str, Any]) -> dict[str, str] | None:
        """Decrypt every encrypted segment in ``entry["data"]``.

        Returns the decrypted fields, or ``None`` when nothing was decrypted.

        Raises
        ------
        EncryptionKeyError
            When the key is absent or malformed.
        """
        data = entry.get("data") if isinstance(entry, Mapping) else None
        if not isinstance(data, Mapping):
            return None
        key = self.require_key()
        result: dict[str, str] = {}
        for field, value in data.items():
            if not is_encrypted_segment(value):
                continue
            try:
                result[field] = self.decrypt_value(value, key, field)
            except (
                nacl.exceptions.CryptoError,
                binascii.Error,
                UnicodeDecodeError,
                KeyError,
                ValueError,
            ) as exc:
                self._context.errors.record(
                    "failed to decrypt field",
                    code="decryption_field",
                    field=field,
                    error=str(exc),
                )
        return result or None
