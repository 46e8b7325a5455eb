from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class PriceQuote:
    """Rate accepted from one source; produced per request, never stored."""

    rate: Decimal
    source: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"rate": float(self.rate), "source": self.source, "t": self.timestamp}


__all__ = ["PriceQuote"]
