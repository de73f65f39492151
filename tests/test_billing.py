"""
Tests for billing aggregation
"""
from decimal import Decimal
from grd_etl.transforms.billing import BillingInput, compute_billing, money
from grd_etl.transforms.classify import INLIER, OUTLIER_HIGH
from conftest import G1, G2


def _components(r):
    return r.base_tariff + r.technology_amount + r.newborn_amount + r.outlier_premium + r.delay_premium


def test_money_rounds_half_up():
    assert money(Decimal("10.005")) == Decimal("10.01")
    assert money(None) == Decimal("0.00")

def test_inlier_is_billed_at_base_tariff():
    r = compute_billing(BillingInput(stay_tag=INLIER, length_of_stay=5), G1)
    assert r.base_tariff == Decimal("1000000.00")
    assert r.final_amount == Decimal("1000000.00")

def test_technology_off_forces_zero_and_no_detail():
    inp = BillingInput(technology_flag=False, technology_detail="Stent", technology_amount=Decimal("500000"))
    r = compute_billing(inp, G1)
    assert r.technology_detail is None
    assert r.technology_amount == Decimal("0.00")

def test_final_amount_is_the_sum_of_components():
    inp = BillingInput(
        stay_tag=INLIER, length_of_stay=4, technology_flag=True, technology_detail="Stent",
        technology_amount=Decimal("150000"), newborn_amount=Decimal("75000.50"),
    )
    r = compute_billing(inp, G1)
    assert r.final_amount == _components(r)
    assert r.final_amount == Decimal("1225000.50")

def test_changing_one_component_moves_final_by_the_same_delta():
    base = BillingInput(technology_flag=True, technology_amount=Decimal("100000"))
    bumped = BillingInput(technology_flag=True, technology_amount=Decimal("101000"))
    assert compute_billing(bumped, G1).final_amount - compute_billing(base, G1).final_amount == Decimal("1000")

def test_outlier_premium_after_grace_period():
    # grace = 8 + 3 = 11 days; 15 - 11 = 4 days * 1,000,000 / 4
    r = compute_billing(BillingInput(stay_tag=OUTLIER_HIGH, length_of_stay=15), G1)
    assert r.outlier_premium == Decimal("1000000.00")
    assert r.final_amount == Decimal("2000000.00")

def test_outlier_premium_within_grace_period_is_zero():
    r = compute_billing(BillingInput(stay_tag=OUTLIER_HIGH, length_of_stay=9), G1)
    assert r.outlier_premium == Decimal("0.00")

def test_outlier_premium_falls_back_to_manual_amount():
    inp = BillingInput(stay_tag=OUTLIER_HIGH, length_of_stay=9, outlier_payment=Decimal("250000"))
    assert compute_billing(inp, G2).outlier_premium == Decimal("250000.00")

def test_negative_manual_outlier_premium_is_not_billed():
    inp = BillingInput(stay_tag=OUTLIER_HIGH, length_of_stay=9, outlier_payment=Decimal("-10"))
    assert compute_billing(inp, G2).outlier_premium == Decimal("0.00")

def test_delay_premium_from_percentile():
    r = compute_billing(BillingInput(rescue_delay_days=2), G1)
    assert r.delay_premium == Decimal("500000.00")

def test_delay_premium_falls_back_to_manual_amount():
    r = compute_billing(BillingInput(rescue_delay_days=2, delay_payment=Decimal("30000")), G2)
    assert r.delay_premium == Decimal("30000.00")

def test_tariff_override_replaces_norm_tariff():
    r = compute_billing(BillingInput(tariff_override=Decimal("900000")), G1)
    assert r.base_tariff == Decimal("900000.00")
    assert r.final_amount == Decimal("900000.00")

def test_without_norm_the_tariff_is_zero():
    r = compute_billing(BillingInput(newborn_amount=Decimal("1000")), None)
    assert r.base_tariff == Decimal("0.00")
    assert r.final_amount == Decimal("1000.00")

def test_recomputation_is_idempotent():
    inp = BillingInput(stay_tag=OUTLIER_HIGH, length_of_stay=15, technology_flag=True,
                       technology_amount=Decimal("10"), rescue_delay_days=1)
    first = compute_billing(inp, G1)
    again = compute_billing(BillingInput(
        stay_tag=inp.stay_tag, length_of_stay=inp.length_of_stay, technology_flag=True,
        technology_amount=first.technology_amount, rescue_delay_days=1,
        outlier_payment=first.outlier_premium, delay_payment=first.delay_premium,
    ), G1)
    assert again == first

def test_negative_tariff_is_never_billed():
    inp = BillingInput(stay_tag=OUTLIER_HIGH, length_of_stay=15, tariff_override=Decimal("-1000000"))
    r = compute_billing(inp, G1)
    assert r.base_tariff == Decimal("0.00")
    assert r.outlier_premium == Decimal("0.00")
    assert r.final_amount == Decimal("0.00")

def test_negative_manual_delay_premium_is_not_billed():
    r = compute_billing(BillingInput(rescue_delay_days=2, delay_payment=Decimal("-30000")), G2)
    assert r.delay_premium == Decimal("0.00")

def test_agreement_price_replaces_norm_tariff():
    r = compute_billing(BillingInput(agreement_tariff=Decimal("800000")), G1)
    assert r.base_tariff == Decimal("800000.00")

def test_finance_override_wins_over_agreement_price():
    inp = BillingInput(agreement_tariff=Decimal("800000"), tariff_override=Decimal("900000"))
    assert compute_billing(inp, G1).base_tariff == Decimal("900000.00")
