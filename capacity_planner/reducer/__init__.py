from .sar import (
    SarReducer,
    DayOutcome,
    WindowStatus,
    MemoryMode,
    DailyMetric,
    ResourceWindow,
    HostMetricWindow,
)
__all__ = [
    "SarReducer", "DayOutcome", "WindowStatus", "MemoryMode",
    "DailyMetric", "ResourceWindow", "HostMetricWindow",
]
