from .cost_model import (
    CostModeler,
    PricingCatalog,
    FamilyCatalog,
    load_pricing_catalog,
    load_family_catalog,
)
__all__ = [
    "CostModeler", "PricingCatalog", "FamilyCatalog",
    "load_pricing_catalog", "load_family_catalog",
]
