"""
Cost Model for Rightsizing Recommendations

Turns a zone recommendation into a monthly cost delta:
- Pricing catalog: instance type -> hourly on-demand cost
- Family catalog: instance type -> next size up / next size down
- Monthly delta: (current hourly - target hourly) * 24 * 30

Positive deltas are savings, negative deltas are added cost. Missing
reference data never fails a run; the delta is simply 0.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union
import logging

import pandas as pd

from capacity_planner.classifier.zones import Recommendation

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24
DAYS_PER_MONTH = 30

PRICING_COLUMNS = ["instance_type", "cost_per_hour"]
FAMILY_COLUMNS = ["instance_type", "family", "size", "next_up", "next_down"]


@dataclass(frozen=True)
class PricingCatalog:
    """Read-only hourly cost per instance type."""
    costs: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))

    def hourly_cost(self, instance_type: str) -> Optional[float]:
        return self.costs.get(instance_type)

    def __len__(self):
        return len(self.costs)


@dataclass(frozen=True)
class FamilyCatalog:
    """Read-only size adjacency within an instance family."""
    next_up: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    next_down: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def target_for(self, instance_type: str, recommendation: Recommendation) -> Optional[str]:
        if recommendation == Recommendation.DOWNSIZE:
            return self.next_down.get(instance_type)
        if recommendation == Recommendation.UPSIZE:
            return self.next_up.get(instance_type)
        return None


def _read_reference_csv(path: Path, columns) -> Optional[pd.DataFrame]:
    if not path.is_file():
        return None
    try:
        df = pd.read_csv(
            path,
            header=None,
            names=columns,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            usecols=range(len(columns)),
        )
    except pd.errors.EmptyDataError:
        return pd.DataFrame(columns=columns)
    df = df.fillna("").apply(lambda col: col.str.strip())
    # Header row is optional in the reference files
    return df[df["instance_type"] != "instance_type"].reset_index(drop=True)


def load_pricing_catalog(path: Union[str, Path]) -> PricingCatalog:
    """
    Load ``instance_type,cost_per_hour`` rows.

    A missing file disables cost calculations (empty catalog) instead of
    failing the run.
    """
    path = Path(path)
    df = _read_reference_csv(path, PRICING_COLUMNS)
    if df is None:
        logger.error(f"Pricing file not found: {path}. Cost calculations will be disabled.")
        return PricingCatalog()

    df["cost_per_hour"] = pd.to_numeric(df["cost_per_hour"], errors="coerce")
    invalid = df[df["cost_per_hour"].isna()]
    if not invalid.empty:
        logger.warning(
            f"Ignoring {len(invalid)} pricing rows without a numeric cost: "
            f"{', '.join(invalid['instance_type'].head(5))}"
        )
    df = df.dropna(subset=["cost_per_hour"])

    costs = dict(zip(df["instance_type"], df["cost_per_hour"].astype(float)))
    logger.info(f"Loaded pricing for {len(costs)} instance types.")
    return PricingCatalog(costs=MappingProxyType(costs))


def load_family_catalog(path: Union[str, Path]) -> FamilyCatalog:
    """Load ``instance_type,family,size,next_up,next_down`` rows."""
    path = Path(path)
    df = _read_reference_csv(path, FAMILY_COLUMNS)
    if df is None:
        logger.error(f"Instance family file not found: {path}. Sizing recommendations will be limited.")
        return FamilyCatalog()

    ups = df[df["next_up"] != ""]
    downs = df[df["next_down"] != ""]
    next_up = dict(zip(ups["instance_type"], ups["next_up"]))
    next_down = dict(zip(downs["instance_type"], downs["next_down"]))
    logger.info(
        f"Loaded family data for {len(next_up)} 'next_up' and {len(next_down)} 'next_down' configurations."
    )
    return FamilyCatalog(next_up=MappingProxyType(next_up), next_down=MappingProxyType(next_down))


class CostModeler:
    """Calculate the monthly cost implication of a resize recommendation."""

    def __init__(self, pricing: Optional[PricingCatalog] = None, families: Optional[FamilyCatalog] = None):
        self.pricing = pricing or PricingCatalog()
        self.families = families or FamilyCatalog()

    def monthly_delta(self, instance_type: str, recommendation: Recommendation) -> float:
        """
        Monthly savings (positive) or added cost (negative) of the move.

        Only upsize / downsize recommendations move to another size; every
        other recommendation, and any lookup miss, yields 0.0.
        """
        if recommendation not in (Recommendation.DOWNSIZE, Recommendation.UPSIZE):
            return 0.0

        target = self.families.target_for(instance_type, recommendation)
        if not target:
            logger.debug(
                f"No target instance type found for {instance_type} with recommendation {recommendation.value}."
            )
            return 0.0

        current_cost = self.pricing.hourly_cost(instance_type)
        target_cost = self.pricing.hourly_cost(target)
        if current_cost is None or target_cost is None:
            logger.warning(
                f"Missing pricing data for cost calculation. Current: '{instance_type}' ({current_cost}), "
                f"Target: '{target}' ({target_cost})."
            )
            return 0.0

        return round((current_cost - target_cost) * HOURS_PER_DAY * DAYS_PER_MONTH, 2)


__all__ = [
    "CostModeler", "PricingCatalog", "FamilyCatalog",
    "load_pricing_catalog", "load_family_catalog",
]
