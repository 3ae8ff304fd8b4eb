"""
SAR Daily Metric Reducer

Reduces per-day SAR exports into per-resource windows:
- CPU: average busy (100 - %idle), peak workload (%user + %system)
- Memory (modern): %memused column
- Memory (legacy): derived from kbmemfree / kbmemused / kbavail

Every window holds exactly N daily values. Days that are missing, empty or
unreadable contribute 0 to the daily sequence and are excluded from the
average.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import re

import numpy as np

logger = logging.getLogger(__name__)

TIMESTAMP_PATTERN = re.compile(r"^\d{2}:\d{2}:\d{2}")
RESTART_MARKER = "RESTART"


class DayOutcome(Enum):
    """Result of reducing a single day file."""
    VALID = "valid"
    MISSING = "missing"
    EMPTY = "empty"
    MISSING_COLUMNS = "missing_columns"
    MALFORMED = "malformed"
    NO_ROWS = "no_rows"
    INVALID = "invalid"


class WindowStatus(Enum):
    OK = "ok"
    NO_DATA = "no_data"
    ERROR = "error"


class MemoryMode(Enum):
    """SAR memory report vintage."""
    MODERN = "modern"  # pre-computed %memused
    LEGACY = "legacy"  # derive from kbmemfree/kbmemused/kbavail


@dataclass
class DailyMetric:
    """Average and peak for one resource on one day."""
    average: float
    peak: float


@dataclass
class ResourceWindow:
    """Reduced view of one resource over the analysis window."""
    status: WindowStatus
    average: float
    peak: float
    daily: List[float]
    days_processed: int = 0
    outcomes: List[DayOutcome] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.status == WindowStatus.ERROR

    @property
    def has_data(self) -> bool:
        return self.status == WindowStatus.OK


@dataclass
class HostMetricWindow:
    """CPU and memory windows for one host."""
    cpu: ResourceWindow
    memory: ResourceWindow

    @property
    def avg_cpu(self) -> float:
        return self.cpu.average

    @property
    def peak_cpu(self) -> float:
        return self.cpu.peak

    @property
    def daily_cpu(self) -> List[float]:
        return self.cpu.daily

    @property
    def avg_mem(self) -> float:
        return self.memory.average

    @property
    def peak_mem(self) -> float:
        return self.memory.peak

    @property
    def daily_mem(self) -> List[float]:
        return self.memory.daily

    @property
    def has_error(self) -> bool:
        return self.cpu.is_error or self.memory.is_error

    @property
    def is_empty(self) -> bool:
        """True when every reduced value is zero (no usable utilization data)."""
        return (
            self.avg_cpu == 0 and self.avg_mem == 0
            and self.peak_cpu == 0 and self.peak_mem == 0
        )


class MalformedRowError(ValueError):
    """A timestamped data row carried a non-numeric required field."""


def _column_index(header: Sequence[str], names: Sequence[str]) -> Optional[Dict[str, int]]:
    """Map required column names to their positions, or None if any is absent."""
    positions = {}
    for name in names:
        if name not in header:
            return None
        positions[name] = header.index(name)
    return positions


def _read_rows(
    lines: Sequence[str], anchor: str, columns: Sequence[str]
) -> Tuple[Optional[Dict[str, int]], List[List[float]]]:
    """
    Locate the header row and collect numeric values for the required columns.

    The first line containing ``anchor`` that also carries every required
    column locks the header. Later header repeats (SAR prints one after each
    restart) are ignored, as are ``LINUX RESTART`` marker rows and rows too
    short for the required columns.

    Returns:
        (column map or None when no usable header was found, list of rows)

    Raises:
        MalformedRowError: a timestamped row has a non-numeric required field
    """
    positions = None
    rows = []
    for line in lines:
        fields = line.split()
        if positions is None:
            if anchor in line:
                positions = _column_index(fields, columns)
            continue
        if anchor in line or not TIMESTAMP_PATTERN.match(line):
            continue
        if RESTART_MARKER in fields:
            continue
        if len(fields) <= max(positions.values()):
            continue
        try:
            rows.append([float(fields[positions[name]]) for name in columns])
        except ValueError:
            raise MalformedRowError(line.strip())
    return positions, rows


class SarReducer:
    """
    Reduces SAR day files found under ``<backup_dir>/sar_data``.

    File naming follows the collector: ``cpu_day<k>.txt`` and
    ``mem_day<k>.txt`` for k = 1..days.
    """

    DEFAULT_DAYS = 7
    SAR_SUBDIR = "sar_data"

    CPU_ANCHOR = "%user"
    CPU_COLUMNS = ("%user", "%system", "%idle")
    MODERN_MEM_ANCHOR = "%memused"
    MODERN_MEM_COLUMNS = ("%memused",)
    LEGACY_MEM_ANCHOR = "kbmemfree"
    LEGACY_MEM_COLUMNS = ("kbmemfree", "kbmemused", "kbavail")

    def __init__(self, days: int = DEFAULT_DAYS):
        if days < 1:
            raise ValueError(f"Analysis window must be at least 1 day, got {days}")
        self.days = days

    def reduce_host(self, backup_dir: Path, memory_mode: MemoryMode = MemoryMode.LEGACY) -> HostMetricWindow:
        """Reduce both resources for one host backup directory."""
        return HostMetricWindow(
            cpu=self.reduce_cpu(backup_dir),
            memory=self.reduce_memory(backup_dir, memory_mode),
        )

    def reduce_cpu(self, backup_dir: Path) -> ResourceWindow:
        """
        Reduce CPU day files.

        The day average is tracked on busy time (100 - %idle) while the peak
        is the highest %user + %system sample. If the final average falls
        outside 0-100 the window is flagged as a data error.
        """
        window = self._reduce(Path(backup_dir), "cpu", self._cpu_day)
        if window.status == WindowStatus.OK and not 0 <= window.average <= 100:
            logger.error(
                f"Corrupted CPU data detected under {backup_dir}. "
                f"Final average ({window.average}) is outside valid 0-100 range."
            )
            window.status = WindowStatus.ERROR
        return window

    def reduce_memory(self, backup_dir: Path, mode: MemoryMode = MemoryMode.LEGACY) -> ResourceWindow:
        """Reduce memory day files using the column set for ``mode``."""
        return self._reduce(Path(backup_dir), "mem", lambda lines: self._memory_day(lines, mode))

    def _reduce(self, backup_dir: Path, prefix: str, reduce_day) -> ResourceWindow:
        sar_dir = backup_dir / self.SAR_SUBDIR
        if not sar_dir.is_dir():
            logger.warning(f"SAR data directory not found: {sar_dir}")
            return ResourceWindow(
                status=WindowStatus.NO_DATA,
                average=0.0,
                peak=0.0,
                daily=[0.0] * self.days,
                outcomes=[DayOutcome.MISSING] * self.days,
            )

        daily = []
        outcomes = []
        valid = []
        for day in range(1, self.days + 1):
            path = sar_dir / f"{prefix}_day{day}.txt"
            outcome, metric = self._reduce_file(path, reduce_day)
            outcomes.append(outcome)
            if metric is None:
                daily.append(0.0)
                continue
            daily.append(metric.average)
            valid.append(metric)

        if not valid:
            logger.warning(f"No valid {prefix} data processed for {backup_dir} over {self.days} days")
            return ResourceWindow(
                status=WindowStatus.NO_DATA,
                average=0.0,
                peak=0.0,
                daily=daily,
                outcomes=outcomes,
            )

        return ResourceWindow(
            status=WindowStatus.OK,
            average=round(sum(m.average for m in valid) / len(valid), 2),
            peak=max(m.peak for m in valid),
            daily=daily,
            days_processed=len(valid),
            outcomes=outcomes,
        )

    def _reduce_file(self, path: Path, reduce_day) -> Tuple[DayOutcome, Optional[DailyMetric]]:
        if not path.is_file():
            logger.debug(f"SAR file not found: {path}")
            return DayOutcome.MISSING, None
        if path.stat().st_size == 0:
            logger.warning(f"SAR file exists but is empty, skipping for this day: {path}")
            return DayOutcome.EMPTY, None

        with path.open(encoding="utf-8", errors="replace") as handle:
            lines = handle.read().splitlines()

        try:
            outcome, metric = reduce_day(lines)
        except MalformedRowError as e:
            logger.warning(f"Non-numeric sample in {path}, skipping day: {e}")
            return DayOutcome.MALFORMED, None

        if outcome == DayOutcome.MISSING_COLUMNS:
            logger.warning(f"Could not find required columns in {path}. Skipping.")
        elif outcome == DayOutcome.NO_ROWS:
            logger.warning(f"No timestamped samples in {path}. Skipping.")
        elif outcome == DayOutcome.VALID and (metric.average < 0 or metric.peak < 0):
            logger.warning(
                f"Invalid avg/peak data calculated for {path}. "
                f"Avg: '{metric.average}', Peak: '{metric.peak}'. Skipping."
            )
            return DayOutcome.INVALID, None
        return outcome, metric if outcome == DayOutcome.VALID else None

    def _cpu_day(self, lines: Sequence[str]) -> Tuple[DayOutcome, Optional[DailyMetric]]:
        positions, rows = _read_rows(lines, self.CPU_ANCHOR, self.CPU_COLUMNS)
        if positions is None:
            return DayOutcome.MISSING_COLUMNS, None
        if not rows:
            return DayOutcome.NO_ROWS, None

        samples = np.array(rows)
        busy = 100 - samples[:, 2].mean()
        workload = samples[:, 0] + samples[:, 1]
        return DayOutcome.VALID, DailyMetric(
            average=round(float(busy), 2),
            peak=round(float(max(workload.max(), 0.0)), 2),
        )

    def _memory_day(self, lines: Sequence[str], mode: MemoryMode) -> Tuple[DayOutcome, Optional[DailyMetric]]:
        if mode == MemoryMode.MODERN:
            positions, rows = _read_rows(lines, self.MODERN_MEM_ANCHOR, self.MODERN_MEM_COLUMNS)
        else:
            positions, rows = _read_rows(lines, self.LEGACY_MEM_ANCHOR, self.LEGACY_MEM_COLUMNS)
        if positions is None:
            return DayOutcome.MISSING_COLUMNS, None
        if not rows:
            return DayOutcome.NO_ROWS, None

        samples = np.array(rows)
        if mode == MemoryMode.MODERN:
            used_percent = samples[:, 0]
        else:
            total = samples[:, 0] + samples[:, 1]
            true_used = total - samples[:, 2]
            safe_total = np.where(total > 0, total, 1)
            used_percent = np.where(total > 0, true_used / safe_total * 100, 0.0)

        return DayOutcome.VALID, DailyMetric(
            average=round(float(used_percent.mean()), 2),
            peak=round(float(max(used_percent.max(), 0.0)), 2),
        )
