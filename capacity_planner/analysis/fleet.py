"""
Fleet analysis run.

Walks the host directories on the backup share one at a time, analyses the
latest backup of each non-stale host, appends the results to the historical
ledger and summarizes the fleet. A failure on one host is recorded and the
run moves on.
"""

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import List, Optional
import logging

import pandas as pd

from capacity_planner.analysis.host import AnalysisRecord, HostAnalyzer
from capacity_planner.classifier.zones import Zone
from capacity_planner.inventory.hosts import (
    KNOWN_NON_HOST_DIRS,
    STALE_THRESHOLD_DAYS,
    HostSkipped,
    discover_host_dirs,
    latest_backup,
    resolve_host_dir,
)
from capacity_planner.inventory.storage import StorageMount, storage_status
from capacity_planner.trends.ledger import HistoricalLedger, TrendReport, TrendTracker

logger = logging.getLogger(__name__)


@dataclass
class SkippedHost:
    hostname: str
    reason: str


@dataclass
class StaleHost:
    hostname: str
    last_backup: date
    age_days: int


@dataclass
class StorageFinding:
    """A data volume that needs capacity attention."""
    hostname: str
    mount_point: str
    provisioned_gb: float
    used_gb: float
    used_percent: float
    status: str


@dataclass
class FleetSummary:
    """Counts and KPIs for one run."""
    total_hosts: int = 0
    analyzed: int = 0
    hot: int = 0
    optimize: int = 0
    cold: int = 0
    optimal: int = 0
    no_data: int = 0
    stale: int = 0
    skipped: int = 0
    efficiency: float = 0.0
    potential_monthly_savings: float = 0.0
    underutilized_storage: int = 0

    @property
    def action_required(self) -> int:
        return self.hot + self.optimize + self.cold


@dataclass
class FleetReport:
    run_date: date
    records: List[AnalysisRecord] = field(default_factory=list)
    skipped: List[SkippedHost] = field(default_factory=list)
    stale: List[StaleHost] = field(default_factory=list)
    storage: List[StorageFinding] = field(default_factory=list)
    summary: FleetSummary = field(default_factory=FleetSummary)
    trends: Optional[TrendReport] = None

    def result_rows(self) -> List[str]:
        return [r.to_row() for r in self.records]


def summarize(
    records: List[AnalysisRecord],
    stale: List[StaleHost],
    skipped: List[SkippedHost],
    storage: List[StorageFinding],
) -> FleetSummary:
    """Aggregate zone counts, efficiency and potential savings."""
    summary = FleetSummary(
        stale=len(stale),
        skipped=len(skipped),
        underutilized_storage=sum(1 for s in storage if s.status == "Underutilized"),
    )
    if not records:
        return summary

    df = pd.DataFrame({
        "zone": [r.zone.value for r in records],
        "savings": [r.monthly_savings for r in records],
    })
    counts = df["zone"].value_counts()

    summary.total_hosts = len(df)
    summary.hot = int(counts.get(Zone.HOT.value, 0))
    summary.optimize = int(counts.get(Zone.OPTIMIZE.value, 0))
    summary.cold = int(counts.get(Zone.COLD.value, 0))
    summary.optimal = int(counts.get(Zone.OPTIMAL.value, 0))
    summary.no_data = int(counts.get(Zone.UNKNOWN.value, 0))
    summary.analyzed = summary.total_hosts - summary.no_data
    if summary.analyzed:
        summary.efficiency = round(summary.optimal / summary.analyzed * 100, 1)
    summary.potential_monthly_savings = round(float(df.loc[df["savings"] > 0, "savings"].sum()), 2)
    return summary


class FleetAnalyzer:
    """Sequential, deterministic analysis of every host under the data root."""

    def __init__(
        self,
        data_root: Path,
        host_analyzer: Optional[HostAnalyzer] = None,
        ledger: Optional[HistoricalLedger] = None,
        stale_threshold_days: int = STALE_THRESHOLD_DAYS,
    ):
        self.data_root = Path(data_root)
        self.host_analyzer = host_analyzer or HostAnalyzer()
        self.ledger = ledger
        self.stale_threshold_days = stale_threshold_days

    def run(self, host: Optional[str] = None, today: Optional[date] = None) -> FleetReport:
        """
        Analyse all hosts, or a single host when ``host`` is given.

        Raises:
            FileNotFoundError: the data root, or the requested host directory, is missing
        """
        today = today or date.today()
        report = FleetReport(run_date=today)

        if host is not None:
            host_dir = resolve_host_dir(self.data_root, host)
            logger.info(f"Starting analysis for single host: {host}")
            host_dirs = [host_dir]
        else:
            if not self.data_root.is_dir():
                raise FileNotFoundError(f"Data root not found: {self.data_root}")
            logger.info(f"Starting analysis for all directories under {self.data_root}")
            host_dirs = discover_host_dirs(self.data_root)

        if self.ledger is not None:
            self.ledger.ensure_header()

        for host_dir in host_dirs:
            hostname = host_dir.name
            if host is None and hostname in KNOWN_NON_HOST_DIRS:
                report.skipped.append(SkippedHost(hostname, "Known directory, intentionally skipped"))
                continue
            self._process_host(hostname, host_dir, today, report)

        if self.ledger is not None:
            report.trends = TrendTracker(self.ledger).analyze(report.records, today)

        report.summary = summarize(report.records, report.stale, report.skipped, report.storage)
        self._log_summary(report.summary)
        return report

    def _process_host(self, hostname: str, host_dir: Path, today: date, report: FleetReport):
        logger.info(f"Processing host directory: {host_dir}")
        try:
            backup = latest_backup(host_dir)
            if backup.is_stale(today, self.stale_threshold_days):
                age = backup.age_days(today)
                logger.warning(
                    f"Host {hostname} is STALE. Last backup is {age} days old (from {backup.backup_date})."
                )
                report.stale.append(StaleHost(hostname, backup.backup_date, age))
                return

            analysis = self.host_analyzer.analyze(hostname, backup.path)
        except HostSkipped as e:
            logger.warning(f"Skipping {e.hostname}: {e.reason}")
            report.skipped.append(SkippedHost(e.hostname, e.reason))
            return
        except Exception as e:
            logger.exception(f"Analysis failed for {hostname}: {e}")
            report.skipped.append(SkippedHost(hostname, f"Analysis failed: {e}"))
            return

        report.records.append(analysis.record)
        report.storage.extend(self._storage_findings(hostname, analysis.storage))
        if self.ledger is not None:
            self.ledger.append(analysis.record, today)

    @staticmethod
    def _storage_findings(hostname: str, mounts: List[StorageMount]) -> List[StorageFinding]:
        findings = []
        for mount in mounts:
            status = storage_status(mount)
            if status is None:
                continue
            findings.append(StorageFinding(
                hostname=hostname,
                mount_point=mount.mount_point,
                provisioned_gb=mount.provisioned_gb,
                used_gb=mount.used_gb,
                used_percent=mount.used_percent,
                status=status,
            ))
        return findings

    @staticmethod
    def _log_summary(summary: FleetSummary):
        logger.info("=== ANALYSIS SUMMARY ===")
        logger.info(f"Total systems analyzed: {summary.analyzed}")
        logger.info(f"Hot systems (overutilized): {summary.hot}")
        logger.info(f"Optimize systems (imbalanced): {summary.optimize}")
        logger.info(f"Cold systems (underutilized): {summary.cold}")
        logger.info(f"Optimal systems (right-sized): {summary.optimal}")
        logger.info(f"Stale systems (inactive): {summary.stale}")
        logger.info(f"Systems with no data: {summary.no_data}")
