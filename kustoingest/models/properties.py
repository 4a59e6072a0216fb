"""
Ingestion properties: the configuration record built for one ingestion call.

The record is immutable. Options produce new records instead of mutating one,
and the staging collaborator receives the record as-is.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field

from kustoingest.models.formats import DataFormat


class ValidationOption(IntEnum):
    """Which records a validation policy flags."""

    UNKNOWN = 0
    SAME_NUMBER_OF_FIELDS = 1
    IGNORE_NON_DOUBLE_QUOTED_FIELDS = 2


class ValidationImplication(IntEnum):
    """What happens when a flagged record violates the policy."""

    FAIL_INGESTION = 0
    IGNORE_FAILURES = 1


class ValPolicy(BaseModel):
    """
    Data validation policy sent with queued ingestion.

    Serialized with the service's field names:
        {"ValidationOptions": 1, "ValidationImplications": 0}
    """

    options: ValidationOption = Field(default=ValidationOption.UNKNOWN, alias="ValidationOptions")
    implications: ValidationImplication = Field(
        default=ValidationImplication.FAIL_INGESTION, alias="ValidationImplications"
    )

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class IngestionProperties(BaseModel):
    """
    Typed configuration for a single ingestion call.

    Mapping and validation policy are kept as JSON strings: they are control
    metadata forwarded to the service, not data this package interprets.
    """

    database: str
    table: str
    auth_context: str = ""

    format: DataFormat = DataFormat.UNKNOWN
    ingestion_mapping: str = ""
    ingestion_mapping_ref: str = ""
    ingestion_mapping_type: DataFormat = DataFormat.UNKNOWN

    flush_immediately: bool = False
    ignore_size_limit: bool = False
    delete_local_source: bool = False
    retain_blob_on_success: bool = True

    tags: Tuple[str, ...] = ()
    ingest_if_not_exists: str = ""
    validation_policy: str = ""

    model_config = ConfigDict(frozen=True)

    def with_changes(self, **changes: Any) -> "IngestionProperties":
        """Return a validated copy with `changes` applied."""
        return self.model_validate({**self.model_dump(), **changes})

    def to_message(self) -> Dict[str, Any]:
        """
        Render the record in the queued-ingestion message layout.

        Empty optional values are omitted.
        """
        additional: Dict[str, Any] = {
            "authorizationContext": self.auth_context,
            "format": self.format.value,
            "ingestionMapping": self.ingestion_mapping,
            "ingestionMappingReference": self.ingestion_mapping_ref,
            "ingestionMappingType": (
                self.ingestion_mapping_type.camel_name if self.ingestion_mapping_type else ""
            ),
            "ingestIfNotExists": self.ingest_if_not_exists,
            "ValidationPolicy": self.validation_policy,
            "tags": list(self.tags),
        }
        message: Dict[str, Any] = {
            "DatabaseName": self.database,
            "TableName": self.table,
            "RetainBlobOnSuccess": self.retain_blob_on_success,
            "FlushImmediately": self.flush_immediately,
            "IgnoreSizeLimit": self.ignore_size_limit,
            "AdditionalProperties": {k: v for k, v in additional.items() if v},
        }
        return message
