"""
Norma MINSAL value objects.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class NormEntry:
    """Regulatory parameters for one GRD code."""

    code: str
    weight: Decimal
    lower_cut: int  # punto corte inferior (days)
    upper_cut: int  # punto corte superior (days)
    base_tariff: Decimal = Decimal("0")
    description: Optional[str] = None

    # Percentile markers, each independently optional
    p25: Optional[Decimal] = None
    p50: Optional[Decimal] = None
    p75: Optional[Decimal] = None

    @classmethod
    def from_row(cls, norm) -> Optional["NormEntry"]:
        """Build an entry from a persisted GrdNorm row; None if the row lacks cut-offs."""
        if norm is None or norm.lower_cut is None or norm.upper_cut is None:
            return None
        return cls(
            code=norm.code,
            weight=Decimal(norm.weight or 0),
            lower_cut=int(norm.lower_cut),
            upper_cut=int(norm.upper_cut),
            base_tariff=Decimal(norm.base_tariff or 0),
            description=norm.description,
            p25=Decimal(norm.p25) if norm.p25 is not None else None,
            p50=Decimal(norm.p50) if norm.p50 is not None else None,
            p75=Decimal(norm.p75) if norm.p75 is not None else None,
        )
