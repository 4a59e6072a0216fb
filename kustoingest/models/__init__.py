from kustoingest.models.formats import DataFormat
from kustoingest.models.properties import (
    IngestionProperties,
    ValidationImplication,
    ValidationOption,
    ValPolicy,
)

__all__ = [
    "DataFormat",
    "IngestionProperties",
    "ValidationImplication",
    "ValidationOption",
    "ValPolicy",
]
