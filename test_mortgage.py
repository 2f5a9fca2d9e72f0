import pytest

from offplan.mortgage import STRESS_RATE_BUMPS, _stress_status, amortization_schedule, analyze_mortgage, monthly_payment
from offplan.schema import MortgageInputs


def test_zero_rate_is_straight_line():
    assert monthly_payment(120_000, 0, 10) == pytest.approx(1000)


def test_monthly_payment_matches_annuity_formula():
    r = 0.045 / 12
    n = 300
    expected = 600_000 * r / (1 - (1 + r) ** -n)
    assert monthly_payment(600_000, 4.5, 25) == pytest.approx(expected)


def test_zero_term_pays_nothing():
    assert monthly_payment(600_000, 4.5, 0) == 0
    assert amortization_schedule(600_000, 4.5, 0) == []


def test_amortization_schedule_runs_down_to_zero():
    schedule = amortization_schedule(600_000, 4.5, 25)
    assert len(schedule) == 25
    assert schedule[0].year == 1
    assert schedule[-1].balance == pytest.approx(0, abs=1e-6)
    assert schedule[-1].principal_paid == pytest.approx(600_000)
    balances = [p.balance for p in schedule]
    assert all(b < a for a, b in zip(balances, balances[1:]))


def test_zero_rate_schedule():
    schedule = amortization_schedule(600_000, 0, 25)
    assert schedule[4].principal_paid == pytest.approx(120_000)
    assert schedule[4].interest_paid == 0


def test_equity_gap():
    analysis = analyze_mortgage(MortgageInputs(enabled=True, financing_percent=60), 1_000_000, 30)
    assert analysis.equity_required_percent == 40
    assert analysis.has_gap
    assert analysis.gap_percent == pytest.approx(10)
    assert analysis.gap_amount == pytest.approx(100_000)
    assert analysis.loan_amount == pytest.approx(600_000)

    covered = analyze_mortgage(MortgageInputs(enabled=True, financing_percent=60), 1_000_000, 50)
    assert not covered.has_gap
    assert covered.gap_amount == 0


def test_fees_and_totals():
    mortgage = MortgageInputs(enabled=True)
    analysis = analyze_mortgage(mortgage, 1_000_000, 40)
    assert analysis.processing_fee == pytest.approx(6000)
    assert analysis.mortgage_registration == pytest.approx(1500)
    assert analysis.total_upfront_fees == pytest.approx(6000 + 3000 + 1500)
    assert analysis.annual_life_insurance == pytest.approx(2400)
    assert analysis.total_annual_insurance == pytest.approx(3900)
    assert analysis.total_insurance_over_term == pytest.approx(3900 * 25)
    assert analysis.total_interest == pytest.approx(analysis.monthly_payment * 300 - 600_000)
    assert analysis.principal_paid_year5 == analysis.amortization_schedule[4].principal_paid
    assert analysis.principal_paid_year10 == analysis.amortization_schedule[9].principal_paid


def test_stress_scenarios():
    analysis = analyze_mortgage(MortgageInputs(enabled=True), 1_000_000, 40, monthly_rent=10_000)
    assert [s.rate for s in analysis.stress_scenarios] == [4.5 + b for b in STRESS_RATE_BUMPS]
    payments = [s.monthly_payment for s in analysis.stress_scenarios]
    assert payments == sorted(payments)
    assert all(s.status == "positive" for s in analysis.stress_scenarios)

    no_rent = analyze_mortgage(MortgageInputs(enabled=True), 1_000_000, 40)
    assert all(s.status == "negative" for s in no_rent.stress_scenarios)


@pytest.mark.parametrize("cashflow, status", [(0, "positive"), (250, "positive"), (-50, "tight"), (-100, "tight"), (-101, "negative")])
def test_stress_status(cashflow, status):
    assert _stress_status(cashflow, 1000) == status
