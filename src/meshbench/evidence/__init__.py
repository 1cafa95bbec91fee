"""Evidence extraction from captured artifacts."""

from .bundle import RunEvidence, record_status
from .extract import (
    ArrayShape,
    JsonShape,
    WrappedShape,
    extract_boolean,
    extract_count,
    extract_json_field,
    extract_line_count,
    extract_list,
    normalize_records,
    parse_key_values,
)
from .friction import FrictionCounts, analyze_logs, count_tool_errors, estimate_retries, friction_tier

__all__ = [
    "ArrayShape",
    "FrictionCounts",
    "JsonShape",
    "RunEvidence",
    "WrappedShape",
    "analyze_logs",
    "count_tool_errors",
    "estimate_retries",
    "extract_boolean",
    "extract_count",
    "extract_json_field",
    "extract_line_count",
    "extract_list",
    "friction_tier",
    "normalize_records",
    "parse_key_values",
    "record_status",
]
