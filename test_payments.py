import pandas as pd
import pytest

from offplan.payments import (
    build_payment_timeline,
    equity_deployed_at,
    equity_percent_at,
    month_when_threshold_met,
    pre_handover_percent,
    resolve_milestone,
    total_months_to_handover,
    validation_warnings,
)
from offplan.schema import OIInputs, PaymentMilestone


def _inputs(**overrides):
    values = dict(
        base_price=1_000_000, booking_month=1, booking_year=2025, handover_month=1, handover_year=2027,
        downpayment_percent=20,
    )
    values.update(overrides)
    return OIInputs(**values)


def _time(i, month, percent, **kw):
    return PaymentMilestone(id=f"p{i}", type="time", trigger_value=month, payment_percent=percent, **kw)


def test_total_months_from_quarter():
    inputs = _inputs(handover_month=None, handover_quarter=4, handover_year=2027, booking_month=3)
    assert total_months_to_handover(inputs) == 31


def test_total_months_never_below_one(caplog):
    with caplog.at_level("WARNING", logger="offplan.payments"):
        assert total_months_to_handover(_inputs(handover_year=2024)) == 1
    assert "clamped to 1" in caplog.text


def test_fractional_time_trigger_uses_whole_months():
    timeline = build_payment_timeline(_inputs(additional_payments=[_time(0, 6.4, 10), _time(1, 8.6, 10)]))
    assert list(timeline["MonthOffset"]) == [0, 6, 9, 24]
    assert list(timeline["Date"].iloc[1:3]) == [pd.Timestamp("2025-07-01"), pd.Timestamp("2025-10-01")]
    # paid on its date, so it counts at month 6
    assert equity_percent_at(timeline, 6) == 30


def test_timeline_with_explicit_handover_months():
    inputs = _inputs(additional_payments=[
        PaymentMilestone(id="c", type="construction", trigger_value=50, payment_percent=10),
    ])
    timeline = build_payment_timeline(inputs, total_months=36)
    assert list(timeline["MonthOffset"]) == [0, 18, 36]
    assert timeline["Date"].iloc[-1] == pd.Timestamp("2028-01-01")
    assert equity_percent_at(timeline, 30) == 30


def test_simple_plan_closes_at_handover():
    timeline = build_payment_timeline(_inputs())
    assert list(timeline["Kind"]) == ["downpayment", "completion"]
    assert list(timeline["Percent"]) == [20, 80]
    assert timeline["CumulativePercent"].iloc[-1] == pytest.approx(100)
    assert timeline["Date"].iloc[-1] == pd.Timestamp("2027-01-01")
    assert timeline["Label"].iloc[-1] == "Completion Payment"
    assert list(timeline["Amount"]) == [200_000, 800_000]


def test_installments_sorted_and_labelled():
    inputs = _inputs(additional_payments=[_time(0, 12, 10), _time(1, 6, 10, label="Six months"), _time(2, 9, 0)])
    timeline = build_payment_timeline(inputs)
    assert list(timeline["Label"]) == ["Downpayment", "Six months", "Installment 1", "Completion Payment"]
    assert list(timeline["MonthOffset"]) == [0, 6, 12, 24]
    assert timeline["CumulativePercent"].is_monotonic_increasing


def test_eligibility_markers_fire_once():
    inputs = _inputs(additional_payments=[_time(0, 6, 10), _time(1, 18, 30)])
    timeline = build_payment_timeline(inputs)
    assert list(timeline["CumulativePercent"]) == [20, 30, 60, 100]
    assert list(timeline["ResaleEligible"]) == [False, True, False, False]
    assert list(timeline["MortgageEligible"]) == [False, False, True, False]


def test_downpayment_can_carry_resale_marker():
    timeline = build_payment_timeline(_inputs(downpayment_percent=40))
    assert list(timeline["ResaleEligible"]) == [True, False]


def test_construction_milestone_interpolates_between_booking_and_handover():
    milestone = PaymentMilestone(id="c", type="construction", trigger_value=50, payment_percent=10)
    when, offset = resolve_milestone(milestone, _inputs())
    assert when == pd.Timestamp("2026-01-01")
    assert offset == pytest.approx(12)


def test_construction_percent_is_clamped():
    milestone = PaymentMilestone(id="c", type="construction", trigger_value=150, payment_percent=10)
    when, offset = resolve_milestone(milestone, _inputs())
    assert when == pd.Timestamp("2027-01-01")
    assert offset == pytest.approx(24)


def test_tiny_completion_is_dropped():
    timeline = build_payment_timeline(_inputs(additional_payments=[_time(0, 6, 79.6)]))
    assert list(timeline["Kind"]) == ["downpayment", "installment"]


def test_post_handover_plan():
    inputs = _inputs(
        additional_payments=[_time(0, 12, 20)],
        has_post_handover_plan=True,
        on_handover_percent=20,
        post_handover_percent=40,
        post_handover_payments=[
            PaymentMilestone(id="ph2", type="post-handover", trigger_value=12, payment_percent=20),
            PaymentMilestone(id="ph1", type="time", trigger_value=6, payment_percent=20),
        ],
    )
    timeline = build_payment_timeline(inputs)
    assert list(timeline["Kind"]) == ["downpayment", "installment", "completion", "post-handover", "post-handover"]
    assert list(timeline["MonthOffset"]) == [0, 12, 24, 30, 36]
    assert list(timeline["MilestoneId"].iloc[-2:]) == ["ph1", "ph2"]
    assert timeline["Date"].iloc[-1] == pd.Timestamp("2028-01-01")
    assert timeline["CumulativePercent"].iloc[-1] == pytest.approx(100)
    assert pre_handover_percent(timeline) == pytest.approx(40)
    assert validation_warnings(inputs) == []


def test_equity_percent_at_counts_due_payments():
    timeline = build_payment_timeline(_inputs(additional_payments=[_time(0, 6, 10)]))
    assert equity_percent_at(timeline, 0) == 20
    assert equity_percent_at(timeline, 5.9) == 20
    assert equity_percent_at(timeline, 6) == 30
    assert equity_percent_at(timeline, 24) == 100


@pytest.mark.parametrize("threshold, amounts", [(30, [100_000, 100_000]), (25, [100_000, 50_000])])
def test_advance_to_reach_threshold(threshold, amounts):
    inputs = _inputs(
        downpayment_percent=10,
        minimum_exit_threshold=threshold,
        additional_payments=[_time(0, 6, 10), _time(1, 12, 10)],
    )
    equity = equity_deployed_at(3, inputs)
    assert equity.plan_equity == pytest.approx(100_000)
    assert not equity.is_threshold_met
    assert equity.advance_required == pytest.approx(sum(amounts))
    assert [a.amount_advanced for a in equity.advanced_payments] == pytest.approx(amounts)
    assert [a.month_triggered for a in equity.advanced_payments] == [6, 12]


def test_threshold_met_needs_no_advance():
    equity = equity_deployed_at(24, _inputs(minimum_exit_threshold=100))
    assert equity.is_threshold_met
    assert equity.advance_required == 0
    assert equity.advanced_payments == []


def test_month_when_threshold_met():
    inputs = _inputs(downpayment_percent=10, minimum_exit_threshold=30,
                     additional_payments=[_time(0, 6, 10), _time(1, 12, 10)])
    assert month_when_threshold_met(inputs) == 12


def test_validation_warnings(caplog):
    inputs = _inputs(handover_year=2025, additional_payments=[_time(0, 6, 90)], minimum_exit_threshold=120)
    with caplog.at_level("WARNING", logger="offplan.payments"):
        warnings = validation_warnings(inputs)
    assert len(warnings) == 3
    assert "not after booking" in warnings[0]
    assert "above 100%" in warnings[1]
    assert "threshold" in warnings[2]
    assert len(caplog.records) == 3
