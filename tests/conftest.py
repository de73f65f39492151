"""
Shared fixtures: an in-memory SQLite database and a preloaded norm table.
"""
from decimal import Decimal
import pytest
from sqlalchemy import create_engine
from grd_etl.core.db import create_tables, get_session_factory
from grd_etl.models import NormEntry
from grd_etl.services.norm_table import NormTable


G1 = NormEntry(
    code="G1",
    weight=Decimal("1.2"),
    lower_cut=2,
    upper_cut=8,
    base_tariff=Decimal("1000000"),
    description="Procedimientos G1",
    p50=Decimal("3"),
    p75=Decimal("4"),
)
G2 = NormEntry(code="G2", weight=Decimal("0.8"), lower_cut=1, upper_cut=5, base_tariff=Decimal("500000"))


def make_row(**overrides):
    """A complete export row keyed by exact headers. Override with make_row(**{header: value})."""
    row = {
        "Episodio CMBD": "E1",
        "Hospital (Descripción)": "Hospital Regional",
        "RUT": "12345678-9",
        "Nombre": "Ana Perez",
        "Edad en años": "45",
        "Sexo  (Desc)": "Mujer",
        "IR GRD (Código)": "G1",
        "IR GRD": "Procedimientos G1",
        "Peso GRD Medio (Todos)": "1,2",
        "Fecha Ingreso completa": "2024-01-01",
        "Fecha Completa": "2024-01-10",
        "AT (S/N)": "N",
        "Tipo Actividad": "Hospitalizado",
        "Servicio Egreso (Descripción)": "Medicina",
    }
    row.update(overrides)
    return row


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", future=True)
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with get_session_factory(engine)() as s:
        yield s


@pytest.fixture
def norm_table():
    return NormTable.from_entries({"G1": G1, "G2": G2})
