"""
Historical Trend Tracking

Every run appends one row per classified host to an append-only CSV ledger.
Trend analysis reads the whole ledger once and answers:
- Which zone was each host in ~30 days ago (latest row on or before the cutoff)?
- What was the fleet efficiency (share of optimal hosts) then and now?
- Which hosts have stayed hot, or stayed cold, across that period?

The ledger assumes a single writer; callers serialize runs.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Union
import logging

import pandas as pd

from capacity_planner.classifier.zones import Zone

if TYPE_CHECKING:
    from capacity_planner.analysis.host import AnalysisRecord

logger = logging.getLogger(__name__)

LEDGER_COLUMNS = [
    "AnalysisDate", "Hostname", "AvgCPU", "PeakCPU", "AvgMem", "PeakMem",
    "Zone", "Recommendation", "InstanceType", "Platform", "CoreCount", "MemoryGB",
]

LOOKBACK_DAYS = 30


class SustainedKind(Enum):
    SUSTAINED_HOT = "SUSTAINED_HOT"
    SUSTAINED_COLD = "SUSTAINED_COLD"


@dataclass
class SustainedStatus:
    """A host whose hot or cold zone persisted across the lookback period."""
    kind: SustainedKind
    hostname: str
    instance_type: str
    vcpu_count: Optional[int]
    memory_gb: Optional[float]
    avg_cpu: Optional[float]
    avg_mem: Optional[float]
    monthly_savings: float


@dataclass
class TrendReport:
    """Fleet efficiency trend and sustained-status findings."""
    as_of: date
    reference_date: date
    current_efficiency: float
    thirty_day_efficiency: float
    reference_hosts: int
    sustained: List[SustainedStatus] = field(default_factory=list)

    @property
    def direction(self) -> str:
        if self.current_efficiency > self.thirty_day_efficiency:
            return "up"
        if self.current_efficiency < self.thirty_day_efficiency:
            return "down"
        return "flat"

    @property
    def sustained_hot(self) -> List[SustainedStatus]:
        return [s for s in self.sustained if s.kind == SustainedKind.SUSTAINED_HOT]

    @property
    def sustained_cold(self) -> List[SustainedStatus]:
        return [s for s in self.sustained if s.kind == SustainedKind.SUSTAINED_COLD]


def _sanitize(text: str) -> str:
    """Keep free text from breaking the comma-delimited ledger."""
    return str(text).replace(",", ";")


def _ledger_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


class HistoricalLedger:
    """Append-only CSV of dated per-host classification snapshots."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def ensure_header(self):
        """Create the ledger with its header row if it does not exist yet."""
        if self.path.exists():
            return
        logger.info(f"Creating new historical trends file: {self.path}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as handle:
            handle.write(",".join(LEDGER_COLUMNS) + "\n")

    def row_for(self, record: "AnalysisRecord", run_date: date) -> List[str]:
        return [
            run_date.isoformat(),
            _sanitize(record.hostname),
            _ledger_value(record.avg_cpu),
            _ledger_value(record.peak_cpu),
            _ledger_value(record.avg_mem),
            _ledger_value(record.peak_mem),
            record.zone.value,
            _sanitize(record.recommendation.value),
            _sanitize(record.instance_type),
            _sanitize(record.platform),
            _ledger_value(record.vcpu_count) or "?",
            _ledger_value(record.memory_gb) or "?",
        ]

    def append(self, record: "AnalysisRecord", run_date: date) -> bool:
        """
        Append one snapshot row. Hosts without a known zone are not recorded.

        Returns:
            True if a row was written
        """
        if not record.has_known_zone:
            return False
        self.ensure_header()
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(",".join(self.row_for(record, run_date)) + "\n")
        return True

    def append_many(self, records: Iterable["AnalysisRecord"], run_date: date) -> int:
        return sum(1 for record in records if self.append(record, run_date))

    def _skip_bad_line(self, fields: List[str]) -> None:
        logger.warning(f"Ignoring malformed ledger row in {self.path}: {','.join(fields)}")
        return None

    def read(self) -> pd.DataFrame:
        """Materialize the whole ledger; an absent ledger reads as empty."""
        if not self.path.is_file():
            return pd.DataFrame(columns=LEDGER_COLUMNS)
        try:
            df = pd.read_csv(
                self.path, dtype=str, keep_default_na=False,
                engine="python", on_bad_lines=self._skip_bad_line,
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame(columns=LEDGER_COLUMNS)
        except pd.errors.ParserError as e:
            raise ValueError(f"Ledger {self.path} could not be parsed: {e}")

        missing = [c for c in ("AnalysisDate", "Hostname", "Zone") if c not in df.columns]
        if missing:
            raise ValueError(f"Ledger {self.path} is missing columns: {', '.join(missing)}")
        return df


class TrendTracker:
    """Compares the current run against the ledger's state ~30 days ago."""

    def __init__(self, ledger: HistoricalLedger, lookback_days: int = LOOKBACK_DAYS):
        self.ledger = ledger
        self.lookback_days = lookback_days

    def cutoff(self, today: date) -> date:
        return today - timedelta(days=self.lookback_days)

    def reference_zones(self, today: date, history: Optional[pd.DataFrame] = None) -> Dict[str, str]:
        """
        Zone of each host as of the cutoff date.

        For every host the latest row dated on or before the cutoff wins
        (not the row nearest the cutoff). Rows from the same date resolve to
        the one appended last.
        """
        df = self.ledger.read() if history is None else history
        if df.empty:
            return {}

        dates = pd.to_datetime(df["AnalysisDate"], format="%Y-%m-%d", errors="coerce")
        unparseable = int(dates.isna().sum())
        if unparseable:
            logger.warning(f"Ignoring {unparseable} ledger rows with unreadable dates")

        eligible = df.assign(_date=dates, _order=range(len(df)))
        eligible = eligible[eligible["_date"] <= pd.Timestamp(self.cutoff(today))]
        if eligible.empty:
            return {}

        latest = eligible.sort_values(["_date", "_order"]).groupby("Hostname", sort=False).tail(1)
        return dict(zip(latest["Hostname"], latest["Zone"]))

    @staticmethod
    def efficiency(zones: Iterable[str]) -> float:
        """Share of optimal hosts among hosts with a known zone, in percent."""
        known = [z for z in zones if z and z != Zone.UNKNOWN.value]
        if not known:
            return 0.0
        optimal = sum(1 for z in known if z == Zone.OPTIMAL.value)
        return round(optimal / len(known) * 100, 1)

    def analyze(self, records: List["AnalysisRecord"], today: Optional[date] = None) -> TrendReport:
        """
        Build the trend report for the current run.

        Hosts absent from the ledger at the cutoff contribute to the current
        efficiency but produce no sustained-status finding.
        """
        today = today or date.today()
        logger.info("Analyzing historical trends for sustained status and Monthly KPI...")

        reference = self.reference_zones(today)

        sustained = []
        for record in records:
            previous = reference.get(_sanitize(record.hostname))
            if previous is None:
                continue
            kind = None
            if record.zone == Zone.HOT and previous == Zone.HOT.value:
                kind = SustainedKind.SUSTAINED_HOT
            elif record.zone == Zone.COLD and previous == Zone.COLD.value:
                kind = SustainedKind.SUSTAINED_COLD
            if kind is None:
                continue
            sustained.append(SustainedStatus(
                kind=kind,
                hostname=record.hostname,
                instance_type=record.instance_type,
                vcpu_count=record.vcpu_count,
                memory_gb=record.memory_gb,
                avg_cpu=record.avg_cpu,
                avg_mem=record.avg_mem,
                monthly_savings=record.monthly_savings,
            ))

        report = TrendReport(
            as_of=today,
            reference_date=self.cutoff(today),
            current_efficiency=self.efficiency(r.zone.value for r in records),
            thirty_day_efficiency=self.efficiency(reference.values()),
            reference_hosts=len(reference),
            sustained=sustained,
        )
        logger.info(
            f"Historical trend analysis complete. Efficiency {report.thirty_day_efficiency}% -> "
            f"{report.current_efficiency}%, {len(report.sustained_hot)} sustained hot, "
            f"{len(report.sustained_cold)} sustained cold."
        )
        return report
