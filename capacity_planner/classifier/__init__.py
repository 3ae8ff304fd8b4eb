from .zones import (
    ZoneClassifier,
    ZoneVerdict,
    Zone,
    ResourceState,
    Recommendation,
    classify_zone,
    unknown_verdict,
    data_error_verdict,
)
from .volatility import coefficient_of_variation
__all__ = [
    "ZoneClassifier", "ZoneVerdict", "Zone", "ResourceState",
    "Recommendation", "classify_zone", "unknown_verdict",
    "data_error_verdict", "coefficient_of_variation",
]
