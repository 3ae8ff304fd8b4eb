"""
Utilization Zone Classifier

Classifies a host into a utilization zone from its average and peak
CPU / memory utilization plus its shape (vCPU count, memory GB).

Zones:
- cold: both CPU and memory underutilized -> downsize
- hot: CPU or memory overutilized -> upsize
- optimize: exactly one resource underutilized -> targeted rightsizing
- optimal: right-sized, or protected by an exemption -> maintain
- unknown: no utilization data at all -> monitor
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class Zone(Enum):
    COLD = "cold"
    OPTIMAL = "optimal"
    HOT = "hot"
    OPTIMIZE = "optimize"
    UNKNOWN = "unknown"


class ResourceState(Enum):
    """Per-resource utilization state."""
    COLD = "cold"
    NORMAL = "normal"
    HOT = "hot"
    # Only carried on records that bypassed classification
    ERROR = "error"
    UNAVAILABLE = "n/a"


class Recommendation(Enum):
    UPSIZE = "upsize"
    DOWNSIZE = "downsize"
    MAINTAIN = "maintain"
    OPTIMIZE_CPU = "Optimize (CPU)"
    OPTIMIZE_MEMORY = "Optimize (Memory)"
    MAINTAIN_HIGH_PEAK = "Maintain (High Peak)"
    MAINTAIN_EXEMPT = "Maintain (Exempt)"
    REVIEW_DATA_ERROR = "Review (Data Error)"
    MONITOR = "monitor"


@dataclass(frozen=True)
class ZoneVerdict:
    """Classification outcome for one host."""
    zone: Zone
    recommendation: Recommendation
    cpu_state: ResourceState
    mem_state: ResourceState


def unknown_verdict() -> ZoneVerdict:
    """Verdict for a host with no utilization data over the whole window."""
    return ZoneVerdict(
        zone=Zone.UNKNOWN,
        recommendation=Recommendation.MONITOR,
        cpu_state=ResourceState.UNAVAILABLE,
        mem_state=ResourceState.UNAVAILABLE,
    )


def data_error_verdict() -> ZoneVerdict:
    """Verdict for a host whose reduced data is corrupt; kept for manual review."""
    return ZoneVerdict(
        zone=Zone.OPTIMAL,
        recommendation=Recommendation.REVIEW_DATA_ERROR,
        cpu_state=ResourceState.ERROR,
        mem_state=ResourceState.ERROR,
    )


class ZoneClassifier:
    """
    Rule-based zone classifier.

    Thresholds are class attributes and can be overridden per instance
    through the ``config`` dict (keys are the lower-cased attribute names).
    """

    # Cold: CPU < 30% AND Memory < 40%
    COLD_CPU_MAX = 30.0
    COLD_MEM_MAX = 40.0

    # Hot: CPU > 70% OR Memory > 80%
    HOT_CPU_MIN = 70.0
    HOT_MEM_MIN = 80.0

    # Exemptions
    HIGH_PEAK_THRESHOLD = 75.0
    SMALL_SYSTEM_MAX_VCPU = 2
    SMALL_SYSTEM_MAX_MEMORY_GB = 8.0

    _OVERRIDABLE = (
        "COLD_CPU_MAX", "COLD_MEM_MAX", "HOT_CPU_MIN", "HOT_MEM_MIN",
        "HIGH_PEAK_THRESHOLD", "SMALL_SYSTEM_MAX_VCPU", "SMALL_SYSTEM_MAX_MEMORY_GB",
    )

    def __init__(self, config: Optional[Dict] = None):
        """Initialize classifier with optional threshold overrides."""
        self.config = config or {}
        self._apply_config_overrides()

    def _apply_config_overrides(self):
        for name in self._OVERRIDABLE:
            key = name.lower()
            if key in self.config:
                setattr(self, name, self.config[key])

    def resource_state(self, value: float, cold_max: float, hot_min: float) -> ResourceState:
        if value > hot_min:
            return ResourceState.HOT
        if value < cold_max:
            return ResourceState.COLD
        return ResourceState.NORMAL

    def classify(
        self,
        avg_cpu: float,
        avg_mem: float,
        vcpu: Optional[int],
        memory_gb: Optional[float],
        peak_cpu: float,
        peak_mem: float,
    ) -> ZoneVerdict:
        """
        Classify a host.

        Args:
            avg_cpu: average CPU busy percent over valid days
            avg_mem: average memory used percent over valid days
            vcpu: billable core count, None when unknown (compares as 0)
            memory_gb: memory size, None when unknown (compares as 0)
            peak_cpu: highest CPU workload percent in the window
            peak_mem: highest memory used percent in the window

        Returns:
            ZoneVerdict with the zone, recommendation and per-resource states
        """
        cpu_state = self.resource_state(avg_cpu, self.COLD_CPU_MAX, self.HOT_CPU_MIN)
        mem_state = self.resource_state(avg_mem, self.COLD_MEM_MAX, self.HOT_MEM_MIN)

        zone, recommendation = self._natural_zone(cpu_state, mem_state)

        if zone != Zone.HOT:
            zone, recommendation = self._apply_exemptions(
                zone, recommendation, mem_state,
                vcpu or 0, memory_gb or 0.0, peak_cpu, peak_mem,
            )

        return ZoneVerdict(
            zone=zone,
            recommendation=recommendation,
            cpu_state=cpu_state,
            mem_state=mem_state,
        )

    def _natural_zone(self, cpu_state: ResourceState, mem_state: ResourceState):
        if ResourceState.HOT in (cpu_state, mem_state):
            return Zone.HOT, Recommendation.UPSIZE
        if cpu_state == ResourceState.COLD and mem_state == ResourceState.COLD:
            return Zone.COLD, Recommendation.DOWNSIZE
        if cpu_state == ResourceState.NORMAL and mem_state == ResourceState.COLD:
            return Zone.OPTIMIZE, Recommendation.OPTIMIZE_MEMORY
        if cpu_state == ResourceState.COLD and mem_state == ResourceState.NORMAL:
            return Zone.OPTIMIZE, Recommendation.OPTIMIZE_CPU
        return Zone.OPTIMAL, Recommendation.MAINTAIN

    def _apply_exemptions(
        self,
        zone: Zone,
        recommendation: Recommendation,
        mem_state: ResourceState,
        vcpu: int,
        memory_gb: float,
        peak_cpu: float,
        peak_mem: float,
    ):
        """First matching exemption wins; no exemption is evaluated twice."""
        if peak_cpu > self.HIGH_PEAK_THRESHOLD or peak_mem > self.HIGH_PEAK_THRESHOLD:
            logger.debug(
                f"Applying High Peak exemption. Peak CPU: {peak_cpu}, Peak Mem: {peak_mem}. "
                f"Overriding zone from {zone.value} to optimal."
            )
            return Zone.OPTIMAL, Recommendation.MAINTAIN_HIGH_PEAK

        if vcpu <= self.SMALL_SYSTEM_MAX_VCPU:
            if memory_gb <= self.SMALL_SYSTEM_MAX_MEMORY_GB:
                logger.debug(f"Applying Small System exemption. Overriding zone from {zone.value} to optimal.")
                return Zone.OPTIMAL, Recommendation.MAINTAIN_EXEMPT
            if mem_state == ResourceState.COLD:
                # Small core count, large idle memory: rightsize memory alone
                logger.debug("Applying Small CPU / Large Mem exemption. Recommending memory optimization.")
                return Zone.OPTIMIZE, Recommendation.OPTIMIZE_MEMORY
            logger.debug(f"Applying Small CPU exemption. Overriding zone from {zone.value} to optimal.")
            return Zone.OPTIMAL, Recommendation.MAINTAIN_EXEMPT

        return zone, recommendation


def classify_zone(
    avg_cpu: float,
    avg_mem: float,
    vcpu: Optional[int],
    memory_gb: Optional[float],
    peak_cpu: float,
    peak_mem: float,
) -> ZoneVerdict:
    """Classify with the default thresholds."""
    return ZoneClassifier().classify(avg_cpu, avg_mem, vcpu, memory_gb, peak_cpu, peak_mem)


__all__ = [
    "Zone", "ResourceState", "Recommendation", "ZoneVerdict", "ZoneClassifier",
    "classify_zone", "unknown_verdict", "data_error_verdict",
]


if __name__ == "__main__":
    print("=" * 60)
    print("Testing Zone Classifier")
    print("=" * 60)

    samples = [
        ("idle 4 vCPU", (25, 35, 4, 16, 40, 40)),
        ("busy CPU", (75, 50, 4, 16, 80, 55)),
        ("small idle", (20, 20, 1, 4, 30, 30)),
        ("bursty idle", (20, 20, 4, 16, 80, 30)),
    ]
    classifier = ZoneClassifier()
    for label, args in samples:
        verdict = classifier.classify(*args)
        print(f"{label:<14} -> {verdict.zone.value:<9} {verdict.recommendation.value}")
