"""
Tests for field-level update permissions
"""
import pytest
from grd_etl.core.errors import Forbidden
from grd_etl.models.schemas import EpisodeOut
from grd_etl.services.permissions import (
    FINANCE_FIELDS, MANAGEMENT_FIELDS, READ_ONLY_FIELDS, UNRESTRICTED_FIELDS,
    authorize, normalize_role, require_access,
)


def test_finance_cannot_write_management_fields():
    decision = authorize("finance", {"validado"})
    assert not decision
    assert decision.partition == "management"
    assert "management" in decision.reason

def test_admin_may_write_anything():
    assert authorize("admin", {"validado"})
    assert authorize("admin", {"estadoRN", "validado"})

def test_mixed_partitions_are_refused_in_full():
    decision = authorize("finance", {"estadoRN", "validado"})
    assert not decision
    assert decision.partition == "management"
    decision = authorize("management", {"estadoRN", "validado"})
    assert not decision
    assert decision.partition == "finance"

def test_each_role_writes_its_own_partition():
    assert authorize("finance", {"estadoRN", "montoAT", "at"})
    assert authorize("management", {"validado", "comentariosGestion"})
    assert authorize("management", {"montoAT"}).partition == "finance"

def test_unknown_role_is_refused():
    assert authorize("viewer", {"estadoRN"}).partition == "finance"
    decision = authorize("viewer", set())
    assert not decision
    assert decision.partition is None
    assert not authorize(None, {"validado"})

@pytest.mark.parametrize("raw, expected", [
    ("  Finanzas ", "finance"),
    ("FINANCE", "finance"),
    ("Gestión", "management"),
    ("Management", "management"),
    ("Administrador", "admin"),
    ("ADMIN", "admin"),
    ("", ""),
])
def test_role_normalization(raw, expected):
    assert normalize_role(raw) == expected

def test_role_names_are_compared_loosely():
    assert authorize("GESTIÓN", {"validado"})
    assert authorize(" finanzas", {"estadoRN"})

def test_require_access_raises_forbidden():
    with pytest.raises(Forbidden) as exc:
        require_access("finance", ["validado"])
    assert exc.value.partition == "management"
    require_access("admin", ["validado"])

def test_every_episode_field_is_in_exactly_one_partition():
    groups = [FINANCE_FIELDS, MANAGEMENT_FIELDS, UNRESTRICTED_FIELDS, READ_ONLY_FIELDS]
    for field in EpisodeOut.model_fields.values():
        assert sum(field.alias in g for g in groups) == 1, field.alias
    assert set().union(*groups) == {f.alias for f in EpisodeOut.model_fields.values()}
