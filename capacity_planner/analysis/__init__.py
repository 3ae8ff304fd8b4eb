from .host import (
    AnalysisRecord,
    HostAnalysis,
    HostAnalyzer,
    format_result_row,
    parse_result_row,
)
from .fleet import (
    FleetAnalyzer,
    FleetReport,
    FleetSummary,
    SkippedHost,
    StaleHost,
    StorageFinding,
    summarize,
)
__all__ = [
    "AnalysisRecord", "HostAnalysis", "HostAnalyzer",
    "format_result_row", "parse_result_row",
    "FleetAnalyzer", "FleetReport", "FleetSummary", "SkippedHost",
    "StaleHost", "StorageFinding", "summarize",
]
