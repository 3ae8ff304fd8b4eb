"""Capacity planning sidecar: SAR reduction, zone classification, cost deltas and trends."""

__version__ = "1.0.0"
