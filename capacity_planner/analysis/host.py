"""
Per-host analysis pipeline.

backup dir -> SAR reduction -> (volatility, zone classification) -> cost delta
-> AnalysisRecord. Records serialize to the pipe-delimited result row and
parse back from it without loss beyond the 2-decimal rounding applied at
reduction time.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import logging

from capacity_planner.classifier.volatility import coefficient_of_variation
from capacity_planner.classifier.zones import (
    Recommendation,
    ResourceState,
    Zone,
    ZoneClassifier,
    ZoneVerdict,
    data_error_verdict,
    unknown_verdict,
)
from capacity_planner.inventory.cloud import (
    UNKNOWN_QUANTITY,
    CloudProfile,
    apply_oci_ocpu_adjustment,
    parse_cloud_profile,
)
from capacity_planner.inventory.hosts import HostSkipped, check_sysstat, detect_memory_mode
from capacity_planner.inventory.storage import StorageMount, parse_storage_snapshot
from capacity_planner.optimizer.cost_model import CostModeler
from capacity_planner.reducer.sar import HostMetricWindow, SarReducer

logger = logging.getLogger(__name__)

ROW_SEPARATOR = "|"
ROW_FIELD_COUNT = 18
NOT_AVAILABLE = "N/A"


@dataclass
class AnalysisRecord:
    """Final per-host result of one run."""
    hostname: str
    avg_cpu: Optional[float]
    peak_cpu: Optional[float]
    avg_mem: Optional[float]
    peak_mem: Optional[float]
    zone: Zone
    recommendation: Recommendation
    vcpu_count: Optional[int]
    memory_gb: Optional[float]
    platform: str
    instance_type: str
    cpu_state: ResourceState
    mem_state: ResourceState
    cpu_cv: int = 0
    mem_cv: int = 0
    daily_cpu: List[float] = field(default_factory=list)
    daily_mem: List[float] = field(default_factory=list)
    monthly_savings: float = 0.0

    @property
    def has_known_zone(self) -> bool:
        return self.zone != Zone.UNKNOWN

    def to_row(self) -> str:
        return format_result_row(self)


@dataclass
class HostAnalysis:
    """Everything gathered for one host: the record plus its inputs."""
    record: AnalysisRecord
    window: HostMetricWindow
    profile: CloudProfile
    storage: List[StorageMount] = field(default_factory=list)


def _fmt_float(value: Optional[float]) -> str:
    return NOT_AVAILABLE if value is None else f"{value:.2f}"


def _fmt_quantity(value) -> str:
    if value is None:
        return UNKNOWN_QUANTITY
    if isinstance(value, int):
        return str(value)
    return f"{value:.2f}"


def _fmt_series(values: List[float]) -> str:
    return " ".join(f"{v:.2f}" for v in values)


def _row_text(text: str) -> str:
    """Keep free text from breaking the pipe-delimited row."""
    return str(text).replace(ROW_SEPARATOR, "/")


def _parse_float(text: str) -> Optional[float]:
    return None if text == NOT_AVAILABLE else float(text)


def _parse_series(text: str) -> List[float]:
    return [float(v) for v in text.split()]


def format_result_row(record: AnalysisRecord) -> str:
    """Serialize a record into the pipe-delimited result row."""
    fields = [
        _row_text(record.hostname),
        _fmt_float(record.avg_cpu),
        _fmt_float(record.peak_cpu),
        _fmt_float(record.avg_mem),
        _fmt_float(record.peak_mem),
        record.zone.value,
        record.recommendation.value,
        _fmt_quantity(record.vcpu_count),
        _fmt_quantity(record.memory_gb),
        _row_text(record.platform),
        _row_text(record.instance_type),
        record.cpu_state.value,
        record.mem_state.value,
        str(record.cpu_cv),
        str(record.mem_cv),
        _fmt_series(record.daily_cpu),
        _fmt_series(record.daily_mem),
        f"{record.monthly_savings:.2f}",
    ]
    return ROW_SEPARATOR.join(fields)


def parse_result_row(row: str) -> AnalysisRecord:
    """
    Rebuild an AnalysisRecord from a result row.

    Raises:
        ValueError: wrong field count or an unparseable field
    """
    fields = row.rstrip("\r\n").split(ROW_SEPARATOR)
    if len(fields) != ROW_FIELD_COUNT:
        raise ValueError(f"Expected {ROW_FIELD_COUNT} fields, got {len(fields)}: {row!r}")

    (hostname, avg_cpu, peak_cpu, avg_mem, peak_mem, zone, recommendation,
     vcpu, memory_gb, platform, instance_type, cpu_state, mem_state,
     cpu_cv, mem_cv, daily_cpu, daily_mem, savings) = fields

    return AnalysisRecord(
        hostname=hostname,
        avg_cpu=_parse_float(avg_cpu),
        peak_cpu=_parse_float(peak_cpu),
        avg_mem=_parse_float(avg_mem),
        peak_mem=_parse_float(peak_mem),
        zone=Zone(zone),
        recommendation=Recommendation(recommendation),
        vcpu_count=None if vcpu == UNKNOWN_QUANTITY else int(vcpu),
        memory_gb=None if memory_gb == UNKNOWN_QUANTITY else float(memory_gb),
        platform=platform,
        instance_type=instance_type,
        cpu_state=ResourceState(cpu_state),
        mem_state=ResourceState(mem_state),
        cpu_cv=int(cpu_cv),
        mem_cv=int(mem_cv),
        daily_cpu=_parse_series(daily_cpu),
        daily_mem=_parse_series(daily_mem),
        monthly_savings=float(savings),
    )


class HostAnalyzer:
    """Runs the full per-host pipeline against one backup directory."""

    def __init__(
        self,
        cost_modeler: Optional[CostModeler] = None,
        classifier: Optional[ZoneClassifier] = None,
        days: int = SarReducer.DEFAULT_DAYS,
    ):
        self.cost_modeler = cost_modeler or CostModeler()
        self.classifier = classifier or ZoneClassifier()
        self.reducer = SarReducer(days=days)

    @property
    def days(self) -> int:
        return self.reducer.days

    def analyze(self, hostname: str, backup_dir: Path) -> HostAnalysis:
        """
        Analyse one host.

        Raises:
            HostSkipped: backup directory missing or sysstat not installed
        """
        backup_dir = Path(backup_dir)
        logger.debug(f"Analyzing host: {hostname} from backup: {backup_dir}")
        if not backup_dir.is_dir():
            raise HostSkipped(hostname, "Backup directory not found")
        check_sysstat(hostname, backup_dir)

        memory_mode = detect_memory_mode(backup_dir)
        logger.debug(f"OS detection for {hostname}: type='{memory_mode.value}'")

        window = self.reducer.reduce_host(backup_dir, memory_mode)
        profile = apply_oci_ocpu_adjustment(parse_cloud_profile(backup_dir))
        storage = parse_storage_snapshot(backup_dir)

        record = self.build_record(hostname, window, profile)
        logger.info(
            f"Analysis complete for {hostname}. Zone: {record.zone.value}, "
            f"Recommendation: {record.recommendation.value}"
        )
        return HostAnalysis(record=record, window=window, profile=profile, storage=storage)

    def build_record(self, hostname: str, window: HostMetricWindow, profile: CloudProfile) -> AnalysisRecord:
        """Classify reduced metrics and price the recommendation."""
        logger.debug(
            f"Host: {hostname} | CPU Avg/Peak: {window.avg_cpu}%/{window.peak_cpu}% | "
            f"Mem Avg/Peak: {window.avg_mem}%/{window.peak_mem}% | "
            f"Cloud: {profile.platform}/{profile.instance_type} "
            f"({profile.vcpu_count} Cores, {profile.memory_gb}GB)"
        )

        common = dict(
            hostname=_row_text(hostname),
            vcpu_count=profile.vcpu_count,
            memory_gb=profile.memory_gb,
            platform=profile.platform,
            instance_type=profile.instance_type,
            daily_cpu=list(window.daily_cpu),
            daily_mem=list(window.daily_mem),
        )

        if window.has_error:
            logger.error(f"Host {hostname} has a data error. Assigning to Optimal for manual review.")
            return self._record(
                data_error_verdict(),
                avg_cpu=None if window.cpu.is_error else window.avg_cpu,
                peak_cpu=None,
                avg_mem=None if window.memory.is_error else window.avg_mem,
                peak_mem=None,
                **common,
            )

        if window.is_empty:
            logger.warning(f"Host {hostname} has no utilization data. Marking for observation.")
            return self._record(
                unknown_verdict(),
                avg_cpu=0.0, peak_cpu=0.0, avg_mem=0.0, peak_mem=0.0,
                **common,
            )

        verdict = self.classifier.classify(
            window.avg_cpu, window.avg_mem,
            profile.vcpu_count, profile.memory_gb,
            window.peak_cpu, window.peak_mem,
        )
        return self._record(
            verdict,
            avg_cpu=window.avg_cpu,
            peak_cpu=window.peak_cpu,
            avg_mem=window.avg_mem,
            peak_mem=window.peak_mem,
            cpu_cv=coefficient_of_variation(window.daily_cpu),
            mem_cv=coefficient_of_variation(window.daily_mem),
            monthly_savings=self.cost_modeler.monthly_delta(profile.instance_type, verdict.recommendation),
            **common,
        )

    @staticmethod
    def _record(verdict: ZoneVerdict, **values) -> AnalysisRecord:
        return AnalysisRecord(
            zone=verdict.zone,
            recommendation=verdict.recommendation,
            cpu_state=verdict.cpu_state,
            mem_state=verdict.mem_state,
            **values,
        )
