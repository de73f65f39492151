"""
Row validation: required fields, duplicates, dates, ranges.

``validate`` never raises; it returns Accepted or RowRejected and the caller
records the reason in the batch report.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Container, Tuple, Union
from grd_etl.models.candidate import EpisodeCandidate
from grd_etl.transforms.normalize import FIELD_HEADERS

REQUIRED_FIELDS = ("episode_id", "facility", "patient_id", "grd_code")

AGE_MIN, AGE_MAX = 0, 120
WEIGHT_MIN, WEIGHT_MAX = Decimal("0.3"), Decimal("300")


@dataclass(frozen=True)
class Accepted:
    candidate: EpisodeCandidate
    ok = True


@dataclass(frozen=True)
class RowRejected:
    reason: str
    duplicate: bool = False
    missing: Tuple[str, ...] = ()
    ok = False


ValidationResult = Union[Accepted, RowRejected]


def _check_required(c: EpisodeCandidate) -> RowRejected | None:
    missing = tuple(FIELD_HEADERS[f] for f in REQUIRED_FIELDS if not getattr(c, f))
    if missing:
        return RowRejected(f"Missing required fields: {', '.join(missing)}", missing=missing)
    return None

def _check_duplicate(c: EpisodeCandidate, prior_episodes: Container[str]) -> RowRejected | None:
    if c.episode_id in prior_episodes:
        return RowRejected(f"Duplicate episode: Episodio CMBD {c.episode_id}", duplicate=True)
    return None

def _check_dates(c: EpisodeCandidate) -> RowRejected | None:
    bad = [FIELD_HEADERS[f] for f in ("admission", "discharge") if f in c.unparsed]
    if bad:
        return RowRejected(f"Invalid date in {', '.join(bad)}")
    if c.admission and c.discharge and c.discharge < c.admission:
        return RowRejected("Discharge date precedes admission date")
    return None

def _check_ranges(c: EpisodeCandidate) -> RowRejected | None:
    problems = []
    if "age" in c.unparsed:
        problems.append(f"age is not a number ({c.unparsed['age']!r})")
    elif c.age is not None and not (AGE_MIN <= c.age <= AGE_MAX):
        problems.append(f"age out of range [{AGE_MIN},{AGE_MAX}]: {c.age}")
    for fld in ("declared_stay", "rescue_delay_days"):
        if fld in c.unparsed:
            problems.append(f"{FIELD_HEADERS[fld]} is not a non-negative whole number ({c.unparsed[fld]!r})")
    if c.grd_weight is not None and not (WEIGHT_MIN <= c.grd_weight <= WEIGHT_MAX):
        problems.append(f"GRD weight out of range [{WEIGHT_MIN},{WEIGHT_MAX}]: {c.grd_weight}")
    if problems:
        return RowRejected("; ".join(problems))
    return None

def validate(candidate: EpisodeCandidate, prior_episodes: Container[str]) -> ValidationResult:
    """
    Run checks in order; the first failing check decides the rejection.

    ``prior_episodes`` is any container answering ``episode_id in prior_episodes``
    for episodes already persisted (or accepted earlier in the same batch).
    """
    rejected = (
        _check_required(candidate)
        or _check_duplicate(candidate, prior_episodes)
        or _check_dates(candidate)
        or _check_ranges(candidate)
    )
    return rejected or Accepted(candidate)
