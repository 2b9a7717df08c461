"""Log request and log event models.

A ``LogRequest`` is what a caller submits; a ``LogEvent`` is the entry the
pipeline builds from it after route resolution.  The serialized form of a
``LogEvent`` uses camelCase keys (``schemaVersion``, ``isPciRelevant``).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = "1.0"


class LogRequest(BaseModel):
    """A caller's request to write one log event.

    ``encrypt_fields`` is either a list of field names or ``True`` to encrypt
    every key present in ``data``.  ``critical`` overrides the route's
    criticality only when given explicitly.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    flag: str
    data: dict[str, Any] = {}
    action: str | None = None
    critical: bool | None = None
    message: str = ""
    level: str = "info"
    encrypt_fields: bool | list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("encryptFields", "encrypt_fields"),
    )

    @field_validator("flag", mode="before")
    @classmethod
    def _flag_not_blank(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("invalid flag")
        return value

    @field_validator("data", mode="before")
    @classmethod
    def _data_is_mapping(cls, value: Any) -> dict[str, Any]:
        if not isinstance(value, Mapping):
            raise ValueError("data must be an object")
        return dict(value)

    @field_validator("message", "level", mode="before")
    @classmethod
    def _none_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return "info" if info.field_name == "level" else ""
        return value

    @field_validator("encrypt_fields", mode="before")
    @classmethod
    def _coerce_targets(cls, value: Any) -> Any:
        if value is None or value is False:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, tuple):
            return list(value)
        if isinstance(value, list):
            return [v for v in value if isinstance(v, str)]
        return value


class EncryptedSegment(BaseModel):
    """Ciphertext that replaces a plaintext field value inside ``data``."""

    model_config = ConfigDict(frozen=True)

    placeholder: str
    payload: str
    iv: str
    tag: str
    algorithm: str


class LogEvent(BaseModel):
    """The entry persisted for one log call."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    schema_version: str = SCHEMA_VERSION
    timestamp: str
    file_timestamp: str = Field(exclude=True)
    level: str = "info"
    flag: str
    action: str | None = None
    message: str = ""
    critical: bool = False
    data: dict[str, Any] = {}
    retention: str | int | None = None
    category: str | None = None
    is_pci_relevant: bool = False
    description: str | None = None
    env: str = ""

    def to_payload(self) -> dict[str, Any]:
        """Return the serializable camelCase mapping for this event."""
        return self.model_dump(by_alias=True)


class WriteFailureRecord(BaseModel):
    """Entry written to a fallback root when a primary write fails."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    timestamp: str
    error: str
    attempted_path: str
    env: str = ""
    error_code: str
    entry_count: int | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
