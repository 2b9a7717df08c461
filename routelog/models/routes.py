"""Route models — the resolved destination descriptor for a flag."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class LogRoute(BaseModel):
    """Destination template plus metadata for one log flag.

    Built from a routing-table entry merged over its category's metadata.
    Immutable once resolved; cached by lower-cased flag.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    flag: str
    path_template: str = Field(validation_alias=AliasChoices("path", "path_template", "pathTemplate"))
    retention: str | int | None = None
    category: str | None = None
    description: str | None = None
    is_pci_relevant: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "isPciRelevant", "PciCompliance", "pciCompliance", "is_pci_relevant"
        ),
    )
    critical: bool = False
    encrypt_fields: tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices(
            "encryptFields", "sensitivePlaceholders", "encrypt_fields"
        ),
    )

    @field_validator("path_template")
    @classmethod
    def _path_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("route path must not be blank")
        return value

    @field_validator("encrypt_fields", mode="before")
    @classmethod
    def _coerce_fields(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        if isinstance(value, (list, tuple)):
            return tuple(v for v in value if isinstance(v, str))
        return value

    @field_validator("critical", mode="before")
    @classmethod
    def _coerce_critical(cls, value: Any) -> Any:
        return False if value is None else value

    @classmethod
    def from_table_entry(
        cls, category_meta: Mapping[str, Any], entry: Mapping[str, Any]
    ) -> LogRoute:
        """Merge a routing-table entry over its category metadata."""
        merged = {**category_meta, **entry}
        return cls.model_validate(merged)
