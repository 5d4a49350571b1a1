"""
Source adapters returning raw, canonicalized facility records.
"""

from .api_source import ApiSource
from .base import (
    FIELD_ALIASES,
    FetchResult,
    PageResult,
    ResponseShape,
    SourceAdapter,
    canonicalize_record,
    resolve_shape,
)
from .file_source import CsvFileSource, JsonFileSource

__all__ = [
    "ApiSource",
    "CsvFileSource",
    "JsonFileSource",
    "FIELD_ALIASES",
    "FetchResult",
    "PageResult",
    "ResponseShape",
    "SourceAdapter",
    "canonicalize_record",
    "resolve_shape",
]
