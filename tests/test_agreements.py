"""
Tests for agreement (convenio) base prices
"""
from decimal import Decimal
import pytest
from sqlalchemy import select
from grd_etl.extract.extract_prices import read_prices
from grd_etl.load.load_to_db import find_agreement_price, upsert_agreement_prices
from grd_etl.models import AgreementPrice, Episode
from grd_etl.services.episodes import reprice_agreements, update_episode
from grd_etl.services.etl import ingest
from grd_etl.transforms.agreements import TIER_1, TIER_2, TIER_3, weight_tier
from conftest import make_row

PRICES = [
    {"agreement": "FNS012", "tier": "T1", "price": Decimal("800000")},
    {"agreement": "FNS012", "tier": "T2", "price": Decimal("1200000")},
    {"agreement": "FNS012", "tier": "T3", "price": Decimal("1600000")},
    {"agreement": "FNS019", "tier": None, "price": Decimal("950000")},
]


@pytest.mark.parametrize("weight, tier", [
    (Decimal("0"), TIER_1),
    (Decimal("1.5"), TIER_1),
    (Decimal("1.51"), TIER_2),
    (Decimal("2.5"), TIER_2),
    (Decimal("2.6"), TIER_3),
    (Decimal("-1"), None),
    (None, None),
])
def test_weight_tiers(weight, tier):
    assert weight_tier(weight) == tier

def test_tiered_and_single_price_agreements(session):
    upsert_agreement_prices(session, PRICES)
    assert find_agreement_price(session, "fns012 ", Decimal("1.2")) == Decimal("800000")
    assert find_agreement_price(session, "FNS012", Decimal("2.0")) == Decimal("1200000")
    assert find_agreement_price(session, "FNS019", Decimal("3.1")) == Decimal("950000")
    assert find_agreement_price(session, "CH0041", Decimal("1")) is None
    assert find_agreement_price(session, None, Decimal("1")) is None

def test_tiered_agreement_without_weight_has_no_price(session):
    upsert_agreement_prices(session, PRICES)
    assert find_agreement_price(session, "FNS012", None) is None

def test_prices_are_replaced_per_agreement_and_tier(session):
    upsert_agreement_prices(session, PRICES)
    upsert_agreement_prices(session, [{"agreement": "FNS012", "tier": "T1", "price": Decimal("810000")}])
    rows = session.scalars(select(AgreementPrice).where(AgreementPrice.agreement == "FNS012")).all()
    assert len(rows) == 3
    assert find_agreement_price(session, "FNS012", Decimal("1")) == Decimal("810000")

def test_ingest_prices_episode_by_agreement(session, norm_table):
    upsert_agreement_prices(session, PRICES)
    rows = [
        make_row(Convenio="FNS012"),
        make_row(**{"Episodio CMBD": "E2", "Convenio": "FNS019"}),
        make_row(**{"Episodio CMBD": "E3", "Convenio": "OTRO"}),
    ]
    ingest(rows, session, norm_table)
    by_id = {e.episode_cmbd: e for e in session.scalars(select(Episode))}
    assert by_id["E1"].base_tariff == Decimal("800000")
    assert by_id["E1"].final_amount == Decimal("800000")
    assert by_id["E2"].final_amount == Decimal("950000")
    assert by_id["E3"].agreement_tariff is None
    assert by_id["E3"].final_amount == Decimal("1000000")

def test_finance_override_beats_agreement_price(session, norm_table):
    upsert_agreement_prices(session, PRICES)
    ingest([make_row(Convenio="FNS012")], session, norm_table)
    ep = update_episode(session, "E1", "finance", {"precioBaseTramo": "900000"})
    assert ep.base_tariff == Decimal("900000")
    ep = update_episode(session, "E1", "finance", {"precioBaseTramo": None})
    assert ep.base_tariff == Decimal("800000")

def test_reprice_after_price_list_change(session, norm_table):
    ingest([make_row(Convenio="FNS012")], session, norm_table)
    ep = session.scalars(select(Episode)).one()
    assert ep.final_amount == Decimal("1000000")

    upsert_agreement_prices(session, [{"agreement": "FNS012", "tier": "T1", "price": Decimal("700000")}])
    assert reprice_agreements(session) == 1
    assert ep.agreement_tariff == Decimal("700000")
    assert ep.final_amount == Decimal("700000")
    assert reprice_agreements(session) == 0

def test_read_prices_from_csv(tmp_path):
    path = tmp_path / "precios.csv"
    path.write_text(
        "Convenio,Tramo,Precio,Descripción\n"
        "fns012,t1,800000,Tramo 1\n"
        "FNS019,,\"950.000\",\n"
        "FNS026,T1,-5,\n"
        ",T1,100,\n",
        encoding="utf-8",
    )
    prices = read_prices(path)
    assert prices == [
        {"agreement": "FNS012", "tier": "T1", "price": Decimal("800000"), "description": "Tramo 1"},
        {"agreement": "FNS019", "tier": None, "price": Decimal("950000"), "description": None},
    ]
