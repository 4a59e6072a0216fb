"""
Data format tags understood by the ingestion service.

Formats are opaque to this package beyond membership checks: no parsing of
CSV/JSON/Avro/Parquet payloads happens here.
"""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse


class DataFormat(str, Enum):
    UNKNOWN = ""
    AVRO = "avro"
    APACHE_AVRO = "apacheavro"
    CSV = "csv"
    JSON = "json"
    MULTI_JSON = "multijson"
    ORC = "orc"
    PARQUET = "parquet"
    PSV = "psv"
    RAW = "raw"
    SCSV = "scsv"
    SOHSV = "sohsv"
    SSTREAM = "sstream"
    TSV = "tsv"
    TSVE = "tsve"
    TXT = "txt"
    W3C_LOG_FILE = "w3clogfile"

    def is_valid_mapping_kind(self) -> bool:
        """Only CSV, JSON, AVRO, Parquet and ORC may carry a mapping."""
        return self in _MAPPING_KINDS

    def mapping_kind(self) -> Optional["DataFormat"]:
        """Mapping kind this format is ingested with, or None if it takes none."""
        return _MAPPING_KIND_OF.get(self)

    def is_streamable(self) -> bool:
        return self in _STREAMABLE

    @property
    def camel_name(self) -> str:
        """Name used for the mapping type on the wire (e.g. "Csv", "Json")."""
        return _CAMEL_NAMES.get(self, self.value)

    @classmethod
    def from_path(cls, path: str) -> "DataFormat":
        """
        Infer the format from a file extension.

        A trailing compression extension (".gz", ".zip") is skipped, so
        "input.json.gz" is JSON. Unrecognised extensions yield UNKNOWN.
        """
        name = PurePosixPath(urlparse(path).path if "://" in path else path.replace("\\", "/")).name
        parts = name.lower().split(".")
        if len(parts) > 1 and parts[-1] in _COMPRESSION_EXTENSIONS:
            parts = parts[:-1]
        if len(parts) < 2:
            return cls.UNKNOWN
        try:
            return cls(parts[-1])
        except ValueError:
            return cls.UNKNOWN


_COMPRESSION_EXTENSIONS = frozenset({"gz", "zip"})

_MAPPING_KINDS = frozenset(
    {DataFormat.CSV, DataFormat.JSON, DataFormat.AVRO, DataFormat.PARQUET, DataFormat.ORC}
)

_MAPPING_KIND_OF = {
    DataFormat.CSV: DataFormat.CSV,
    DataFormat.PSV: DataFormat.CSV,
    DataFormat.RAW: DataFormat.CSV,
    DataFormat.SCSV: DataFormat.CSV,
    DataFormat.SOHSV: DataFormat.CSV,
    DataFormat.TSV: DataFormat.CSV,
    DataFormat.TSVE: DataFormat.CSV,
    DataFormat.TXT: DataFormat.CSV,
    DataFormat.JSON: DataFormat.JSON,
    DataFormat.MULTI_JSON: DataFormat.JSON,
    DataFormat.AVRO: DataFormat.AVRO,
    DataFormat.APACHE_AVRO: DataFormat.AVRO,
    DataFormat.PARQUET: DataFormat.PARQUET,
    DataFormat.ORC: DataFormat.ORC,
}

_STREAMABLE = frozenset(
    {
        DataFormat.CSV,
        DataFormat.TSV,
        DataFormat.SCSV,
        DataFormat.SOHSV,
        DataFormat.PSV,
        DataFormat.JSON,
        DataFormat.MULTI_JSON,
        DataFormat.AVRO,
    }
)

_CAMEL_NAMES = {
    DataFormat.CSV: "Csv",
    DataFormat.JSON: "Json",
    DataFormat.AVRO: "Avro",
    DataFormat.PARQUET: "Parquet",
    DataFormat.ORC: "Orc",
}
