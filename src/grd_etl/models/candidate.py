"""
Normalized, not yet validated, episode row.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional


@dataclass
class EpisodeCandidate:
    episode_id: Optional[str] = None
    facility: Optional[str] = None
    folio: Optional[str] = None
    episode_type: Optional[str] = None
    discharge_service: Optional[str] = None
    agreement: Optional[str] = None

    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    age: Optional[int] = None
    sex: Optional[str] = None

    admission: Optional[datetime] = None
    discharge: Optional[datetime] = None
    declared_stay: Optional[int] = None

    grd_code: Optional[str] = None
    grd_description: Optional[str] = None
    grd_weight: Optional[Decimal] = None

    technology_flag: bool = False
    technology_detail: Optional[str] = None
    technology_amount: Optional[Decimal] = None
    newborn_amount: Optional[Decimal] = None
    rescue_delay_days: Optional[int] = None
    delay_payment: Optional[Decimal] = None
    outlier_payment: Optional[Decimal] = None

    # typed fields whose raw text could not be coerced: field name -> raw text
    unparsed: Dict[str, str] = field(default_factory=dict)
