"""
Composable ingestion options.

Each option is a FileOption: a tag from a closed set plus a pure function from
one IngestionProperties record to the next. `build_properties` folds options
left-to-right over a base record and then checks cross-option consistency once.

    props = build_properties(
        base,
        [file_format(DataFormat.CSV), ingestion_mapping_ref("csv_map", DataFormat.CSV)],
    )
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List

from pydantic import BaseModel, ValidationError

from kustoingest.errors import Op, client_args, internal
from kustoingest.models.formats import DataFormat
from kustoingest.models.properties import IngestionProperties, ValPolicy


class OptionKind(str, Enum):
    FLUSH_IMMEDIATELY = "flush_immediately"
    INGESTION_MAPPING = "ingestion_mapping"
    INGESTION_MAPPING_REF = "ingestion_mapping_ref"
    DELETE_SOURCE = "delete_source"
    IGNORE_SIZE_LIMIT = "ignore_size_limit"
    TAGS = "tags"
    IF_NOT_EXISTS = "if_not_exists"
    VALIDATION_POLICY = "validation_policy"
    FILE_FORMAT = "file_format"


Apply = Callable[[IngestionProperties], IngestionProperties]


@dataclass(frozen=True)
class FileOption:
    """One option for `from_file()` / `from_reader()`."""

    kind: OptionKind
    apply: Apply


def flush_immediately() -> FileOption:
    """Ask the service to flush on write instead of batching."""
    return FileOption(
        OptionKind.FLUSH_IMMEDIATELY,
        lambda p: p.with_changes(flush_immediately=True),
    )


def ingestion_mapping(mapping: Any, mapping_kind: DataFormat) -> FileOption:
    """
    Provide an inline mapping of source fields to table columns.

    Args:
        mapping: A str or bytes holding JSON, or any object that JSON-encodes
            (pydantic models included).
        mapping_kind: One of CSV, JSON, AVRO, Parquet or ORC.
    """

    def _apply(p: IngestionProperties) -> IngestionProperties:
        _check_mapping_kind("ingestion_mapping", mapping_kind)

        if isinstance(mapping, str):
            encoded = mapping
        elif isinstance(mapping, (bytes, bytearray)):
            encoded = bytes(mapping).decode("utf-8")
        elif isinstance(mapping, BaseModel):
            encoded = mapping.model_dump_json(by_alias=True)
        else:
            try:
                encoded = json.dumps(mapping)
            except (TypeError, ValueError) as exc:
                raise client_args(
                    Op.UNKNOWN,
                    "ingestion_mapping() requires a str, bytes or JSON-encodable "
                    f"value: {exc}",
                ) from exc

        return p.with_changes(
            ingestion_mapping=encoded,
            ingestion_mapping_type=mapping_kind,
        )

    return FileOption(OptionKind.INGESTION_MAPPING, _apply)


def ingestion_mapping_ref(ref_name: str, mapping_kind: DataFormat) -> FileOption:
    """Reference a mapping pre-created on the table by name."""

    def _apply(p: IngestionProperties) -> IngestionProperties:
        _check_mapping_kind("ingestion_mapping_ref", mapping_kind)
        return p.with_changes(
            ingestion_mapping_ref=ref_name,
            ingestion_mapping_type=mapping_kind,
        )

    return FileOption(OptionKind.INGESTION_MAPPING_REF, _apply)


def delete_source() -> FileOption:
    """Delete the local source file once it has been uploaded."""
    return FileOption(
        OptionKind.DELETE_SOURCE,
        lambda p: p.with_changes(delete_local_source=True),
    )


def ignore_size_limit() -> FileOption:
    return FileOption(
        OptionKind.IGNORE_SIZE_LIMIT,
        lambda p: p.with_changes(ignore_size_limit=True),
    )


def tags(values: Iterable[str]) -> FileOption:
    """Tags to associate with the ingested data."""
    frozen = tuple(values)
    return FileOption(OptionKind.TAGS, lambda p: p.with_changes(tags=frozen))


def if_not_exists(ingest_by_tag: str) -> FileOption:
    """
    Skip ingestion if the table already has data tagged ingest-by:<tag>.

    Makes repeated ingestion of the same batch idempotent.
    """
    return FileOption(
        OptionKind.IF_NOT_EXISTS,
        lambda p: p.with_changes(ingest_if_not_exists=ingest_by_tag),
    )


def validation_policy(policy: ValPolicy) -> FileOption:
    """Validate records as they are ingested. No policy is sent by default."""

    def _apply(p: IngestionProperties) -> IngestionProperties:
        try:
            encoded = policy.to_json()
        except (AttributeError, TypeError, ValueError, ValidationError) as exc:
            raise internal(Op.UNKNOWN, "the ValPolicy provided would not JSON encode") from exc
        return p.with_changes(validation_policy=encoded)

    return FileOption(OptionKind.VALIDATION_POLICY, _apply)


def file_format(fmt: DataFormat) -> FileOption:
    """
    Declare the source encoding.

    Only needed when it cannot be read from the file extension ("input"
    rather than "input.json" or "input.json.gz"). Required for readers.
    """
    return FileOption(OptionKind.FILE_FORMAT, lambda p: p.with_changes(format=fmt))


def _check_mapping_kind(option_name: str, mapping_kind: DataFormat) -> None:
    try:
        valid = DataFormat(mapping_kind).is_valid_mapping_kind()
    except ValueError:
        valid = False
    if not valid:
        raise client_args(
            Op.UNKNOWN,
            f"{option_name}() option does not support mapping kind {mapping_kind!r}",
        )


def build_properties(
    base: IngestionProperties,
    options: Iterable[FileOption],
) -> IngestionProperties:
    """
    Fold options over `base` in order and validate the result.

    The first failing option aborts the fold; nothing it or later options
    would have set is kept.

    Raises:
        IngestError: an option or the final consistency check failed.
    """
    props = base
    for option in options:
        if not isinstance(option, FileOption):
            raise client_args(Op.UNKNOWN, f"not an ingestion option: {option!r}")
        try:
            props = option.apply(props)
        except ValidationError as exc:
            raise client_args(
                Op.UNKNOWN,
                f"{option.kind.value}() option was given an invalid value: {exc}",
            ) from exc

    check_consistency(props)
    return props


def check_consistency(props: IngestionProperties) -> None:
    """Validate combinations that only make sense once all options are applied."""
    problems: List[str] = []

    if props.ingestion_mapping and props.ingestion_mapping_ref:
        problems.append("ingestion_mapping() and ingestion_mapping_ref() cannot be combined")

    kind = props.ingestion_mapping_type
    if kind and props.format and props.format.mapping_kind() != kind:
        problems.append(
            f"format {props.format.value!r} cannot be ingested with a "
            f"{kind.camel_name} mapping"
        )

    if problems:
        raise client_args(Op.UNKNOWN, "; ".join(problems))
