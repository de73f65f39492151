"""
Agreement (convenio) price tiers.

Tiered agreements are priced by the episode's GRD weight:

    T1: 0 <= weight <= 1.5
    T2: 1.5 < weight <= 2.5
    T3: weight > 2.5

Agreements with a single price store it without a tier.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional

TIER_1, TIER_2, TIER_3 = "T1", "T2", "T3"
TIER_BOUNDS = ((Decimal("1.5"), TIER_1), (Decimal("2.5"), TIER_2))


def normalize_agreement(agreement: Optional[str]) -> Optional[str]:
    if agreement is None:
        return None
    s = str(agreement).strip().upper()
    return s or None

def weight_tier(weight) -> Optional[str]:
    """Tier for a GRD weight; None when the weight is missing or negative."""
    if weight is None:
        return None
    weight = Decimal(str(weight))
    if weight < 0:
        return None
    for upper, tier in TIER_BOUNDS:
        if weight <= upper:
            return tier
    return TIER_3
