"""
Length-of-stay classification against the GRD cut-offs (inlier / outlier).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from grd_etl.models.candidate import EpisodeCandidate
from grd_etl.models.norm import NormEntry

INLIER = "Inlier"
OUTLIER_LOW = "Outlier Inferior"
OUTLIER_HIGH = "Outlier Superior"
OUTLIER_TAGS = {OUTLIER_LOW, OUTLIER_HIGH}

SECONDS_PER_DAY = 86400


@dataclass
class Classification:
    length_of_stay: Optional[int] = None
    tag: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def is_outlier(self) -> bool:
        return self.tag in OUTLIER_TAGS


def length_of_stay(admission: Optional[datetime], discharge: Optional[datetime],
                   declared: Optional[int] = None) -> Optional[int]:
    if declared is not None and declared >= 0:
        return declared
    if admission is None or discharge is None:
        return None
    days = Decimal((discharge - admission).total_seconds()) / SECONDS_PER_DAY
    return max(0, int(days.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))

def stay_tag(los: int, entry: NormEntry) -> str:
    if los > entry.upper_cut:
        return OUTLIER_HIGH
    if los < entry.lower_cut:
        return OUTLIER_LOW
    return INLIER

def classify(candidate: EpisodeCandidate, norm_table) -> Classification:
    """
    ``norm_table`` is anything with ``lookup(code) -> NormEntry | None``.
    Unknown codes and a missing outlier payment are warnings, never rejections.
    """
    result = Classification(
        length_of_stay=length_of_stay(candidate.admission, candidate.discharge, candidate.declared_stay)
    )
    if result.length_of_stay is None:
        return result  # open episode, nothing to classify

    entry = norm_table.lookup(candidate.grd_code)
    if entry is None:
        result.warnings.append(f"code not found in norm: {candidate.grd_code}")
        return result

    result.tag = stay_tag(result.length_of_stay, entry)
    if result.tag == OUTLIER_HIGH and candidate.outlier_payment is None:
        result.warnings.append(
            f"Outlier Superior ({result.length_of_stay} days > {entry.upper_cut}) "
            "without 'Pago por Outlier Superior'"
        )
    return result
