"""Domain types and calculations for the portfolio proxy.

This package values balances and nets futures positions in memory. It knows
nothing about HTTP or provider payload shapes; clients normalize provider
rows into these types before any aggregation happens.
"""

__all__ = [
    "aggregation",
    "positions",
]
