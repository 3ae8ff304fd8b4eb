from .ledger import (
    HistoricalLedger,
    TrendTracker,
    TrendReport,
    SustainedStatus,
    SustainedKind,
    LEDGER_COLUMNS,
)
__all__ = [
    "HistoricalLedger", "TrendTracker", "TrendReport",
    "SustainedStatus", "SustainedKind", "LEDGER_COLUMNS",
]
