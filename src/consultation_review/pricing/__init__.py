"""Price resolution and financial aggregation."""

from .aggregator import aggregate
from .resolver import resolve_price, resolve_prices

__all__ = ["resolve_price", "resolve_prices", "aggregate"]
