"""Per-contract and aggregate audit report rendering."""

from .aggregate import AggregateReport, AggregateReportComposer, compose
from .markdown import (
    AGGREGATE_REPORT_FILENAME,
    TARGET_REPORT_FILENAME,
    format_aggregate_report,
    format_target_report,
)

__all__ = [
    "AGGREGATE_REPORT_FILENAME",
    "AggregateReport",
    "AggregateReportComposer",
    "TARGET_REPORT_FILENAME",
    "compose",
    "format_aggregate_report",
    "format_target_report",
]
