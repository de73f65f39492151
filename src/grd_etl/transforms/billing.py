"""
GRD billing aggregation.

Base tariff = finance override, else the agreement price for the episode's weight
              tier, else the norm base tariff (never negative)

Final amount = base tariff + technology adjustment (AT) + newborn (RN)
             + outlier-superior premium + rescue-delay (demora rescate) premium

Outlier-superior premium, when the norm carries a 50th percentile marker:

    grace period    = upper cut-off + p50
    days post grace = max(0, length of stay - grace period)
    premium         = days post grace * base tariff / p75

Rescue-delay premium, when the norm carries a 75th percentile marker:

    premium = delay days * base tariff / p75

Without the marker each premium keeps the amount entered by finance (0 if none).
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from grd_etl.models.norm import NormEntry
from grd_etl.transforms.classify import OUTLIER_HIGH

CENT = Decimal("0.01")
ZERO = Decimal("0")


def money(x) -> Decimal:
    """Quantize to two decimals; None counts as zero."""
    if x is None:
        return ZERO.quantize(CENT)
    return Decimal(x).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BillingInput:
    stay_tag: Optional[str] = None
    length_of_stay: Optional[int] = None
    technology_flag: bool = False
    technology_detail: Optional[str] = None
    technology_amount: Optional[Decimal] = None
    newborn_amount: Optional[Decimal] = None
    rescue_delay_days: Optional[int] = None
    delay_payment: Optional[Decimal] = None  # manual entry
    outlier_payment: Optional[Decimal] = None  # manual entry
    tariff_override: Optional[Decimal] = None  # set by finance
    agreement_tariff: Optional[Decimal] = None  # agreement price for the weight tier

    @classmethod
    def from_candidate(cls, candidate, classification, agreement_tariff=None) -> "BillingInput":
        return cls(
            stay_tag=classification.tag,
            length_of_stay=classification.length_of_stay,
            technology_flag=candidate.technology_flag,
            technology_detail=candidate.technology_detail,
            technology_amount=candidate.technology_amount,
            newborn_amount=candidate.newborn_amount,
            rescue_delay_days=candidate.rescue_delay_days,
            delay_payment=candidate.delay_payment,
            outlier_payment=candidate.outlier_payment,
            agreement_tariff=agreement_tariff,
        )

    @classmethod
    def from_episode(cls, episode) -> "BillingInput":
        return cls(
            stay_tag=episode.stay_tag,
            length_of_stay=episode.length_of_stay,
            technology_flag=bool(episode.technology_flag),
            technology_detail=episode.technology_detail,
            technology_amount=episode.technology_amount,
            newborn_amount=episode.newborn_amount,
            rescue_delay_days=episode.rescue_delay_days,
            delay_payment=episode.delay_payment,
            outlier_payment=episode.outlier_payment,
            tariff_override=episode.tariff_override,
            agreement_tariff=episode.agreement_tariff,
        )


@dataclass(frozen=True)
class BillingResult:
    base_tariff: Decimal
    technology_flag: bool
    technology_detail: Optional[str]
    technology_amount: Decimal
    newborn_amount: Decimal
    outlier_premium: Decimal
    delay_premium: Decimal
    final_amount: Decimal


def outlier_premium(inp: BillingInput, norm: Optional[NormEntry], tariff: Decimal) -> Decimal:
    if inp.stay_tag != OUTLIER_HIGH or norm is None or norm.p50 is None or inp.length_of_stay is None:
        # a negative manual premium is never billed
        return max(money(inp.outlier_payment), money(None))

    grace = Decimal(norm.upper_cut) + norm.p50
    days_post_grace = max(ZERO, Decimal(inp.length_of_stay) - grace)
    if norm.p75 and norm.p75 > 0:
        divisor = norm.p75
    elif norm.upper_cut > 0:
        divisor = Decimal(norm.upper_cut)
    else:
        divisor = Decimal(1)
    return money(days_post_grace * tariff / divisor)

def delay_premium(inp: BillingInput, norm: Optional[NormEntry], tariff: Decimal) -> Decimal:
    days = inp.rescue_delay_days
    if days is None or days < 0 or norm is None or not norm.p75:
        return max(money(inp.delay_payment), money(None))
    return money(Decimal(days) * tariff / norm.p75)

def base_tariff(inp: BillingInput, norm: Optional[NormEntry]) -> Decimal:
    """Finance override, else the agreement price, else the norm tariff; never below zero."""
    if inp.tariff_override is not None:
        tariff = inp.tariff_override
    elif inp.agreement_tariff is not None:
        tariff = inp.agreement_tariff
    else:
        tariff = norm.base_tariff if norm else None
    return max(money(tariff), money(None))

def compute_billing(inp: BillingInput, norm: Optional[NormEntry]) -> BillingResult:
    tariff = base_tariff(inp, norm)

    # AT = N wipes any detail/amount that came with it
    if inp.technology_flag:
        tech_detail = inp.technology_detail or None
        tech_amount = money(inp.technology_amount)
    else:
        tech_detail = None
        tech_amount = money(None)

    newborn = money(inp.newborn_amount)
    outlier = outlier_premium(inp, norm, tariff)
    delay = delay_premium(inp, norm, tariff)

    return BillingResult(
        base_tariff=tariff,
        technology_flag=inp.technology_flag,
        technology_detail=tech_detail,
        technology_amount=tech_amount,
        newborn_amount=newborn,
        outlier_premium=outlier,
        delay_premium=delay,
        final_amount=tariff + tech_amount + newborn + outlier + delay,
    )
