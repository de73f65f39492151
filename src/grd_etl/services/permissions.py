"""
Field-level write permissions for episodes.

Editable episode fields are split into disjoint partitions:

- finance: billing status and monetary fields, writable only by ``finance``
- management: the review flag and its metadata, writable only by ``management``
- unrestricted: writable by any known role (none defined yet)

``admin`` may write anything. A request is judged as a whole: if any field is
off-limits nothing is applied.
"""

from __future__ import annotations
import logging
import unicodedata
from dataclasses import dataclass
from typing import Iterable, Optional
from grd_etl.core.errors import Forbidden

log = logging.getLogger(__name__)

FINANCE_FIELDS = frozenset({
    "estadoRN", "montoRN", "at", "atDetalle", "montoAT",
    "diasDemoraRescate", "pagoDemora", "pagoOutlierSup",
    "precioBaseTramo", "montoFinal", "documentacion",
})
MANAGEMENT_FIELDS = frozenset({
    "validado", "comentariosGestion", "fechaRevision", "revisadoPor",
})
UNRESTRICTED_FIELDS: frozenset[str] = frozenset()
# identity, dates and classification come from the export and are never edited
READ_ONLY_FIELDS = frozenset({
    "episodio", "rut", "nombre", "centro", "convenio", "fechaIngreso", "fechaAlta",
    "servicioAlta", "grdCodigo", "pesoGrd", "diasEstada", "inlierOutlier",
})

EDITABLE_FIELDS = FINANCE_FIELDS | MANAGEMENT_FIELDS | UNRESTRICTED_FIELDS

ADMIN = "admin"
FINANCE = "finance"
MANAGEMENT = "management"

ROLE_ALIASES = {
    "administrador": ADMIN,
    "finanzas": FINANCE,
    "gestion": MANAGEMENT,
}


@dataclass(frozen=True)
class AccessDecision:
    permitted: bool
    reason: Optional[str] = None
    partition: Optional[str] = None

    def __bool__(self) -> bool:
        return self.permitted


PERMITTED = AccessDecision(True)


def normalize_role(role: Optional[str]) -> str:
    """Lower-case, collapse whitespace and strip diacritics ("Gestión " -> "gestion")."""
    if not role:
        return ""
    s = unicodedata.normalize("NFKD", " ".join(str(role).split()))
    s = "".join(ch for ch in s if not unicodedata.combining(ch)).lower()
    return ROLE_ALIASES.get(s, s)

def authorize(role: Optional[str], fields: Iterable[str]) -> AccessDecision:
    role = normalize_role(role)
    fields = set(fields)

    if role == ADMIN:
        return PERMITTED

    touches_finance = bool(fields & FINANCE_FIELDS)
    touches_management = bool(fields & MANAGEMENT_FIELDS)

    if touches_finance and touches_management:
        blocked = "management" if role == FINANCE else "finance"
        return AccessDecision(
            False,
            f"Request mixes finance and management fields; the {blocked} partition "
            f"is not writable by role '{role}'. Nothing was applied.",
            blocked,
        )
    if touches_finance and role != FINANCE:
        return AccessDecision(False, "Editing fields in the finance partition requires role 'finance'.", "finance")
    if touches_management and role != MANAGEMENT:
        return AccessDecision(
            False, "Editing fields in the management partition requires role 'management'.", "management"
        )
    if role not in (FINANCE, MANAGEMENT):
        return AccessDecision(False, "Role is not allowed to update episodes.")
    return PERMITTED

def require_access(role: Optional[str], fields: Iterable[str]) -> None:
    """Raise Forbidden unless ``role`` may write every field in ``fields``."""
    fields = list(fields)
    decision = authorize(role, fields)
    if not decision:
        log.warning("Denied episode update: role=%r fields=%s: %s", role, sorted(fields), decision.reason)
        raise Forbidden(decision.reason, decision.partition)
