import pytest
from pydantic import ValidationError

from offplan.schema import CURRENT_SCHEMA_VERSION, ExitScenarioResult, OIInputs, PaymentMilestone


def _payload(**overrides):
    data = {
        "basePrice": 1_000_000,
        "bookingMonth": 1,
        "bookingYear": 2025,
        "handoverMonth": 1,
        "handoverYear": 2027,
        "downpaymentPercent": 20,
    }
    data.update(overrides)
    return data


def test_camel_case_payload_validates():
    inputs = OIInputs.model_validate(_payload(additionalPayments=[
        {"id": "p1", "type": "time", "triggerValue": 6, "paymentPercent": 10},
    ]))
    assert inputs.base_price == 1_000_000
    assert inputs.resolved_handover_month == 1
    assert inputs.additional_payments[0] == PaymentMilestone(id="p1", type="time", trigger_value=6, payment_percent=10)


def test_field_names_are_accepted_too():
    inputs = OIInputs(base_price=500_000, booking_month=3, booking_year=2025, handover_quarter=2, handover_year=2026)
    assert inputs.resolved_handover_month == 4


def test_missing_handover_is_rejected():
    data = _payload()
    del data["handoverMonth"]
    with pytest.raises(ValidationError):
        OIInputs.model_validate(data)


@pytest.mark.parametrize("raw", [None, -250_000])
def test_missing_or_negative_price_is_zero(raw):
    inputs = OIInputs.model_validate(_payload(basePrice=raw, unitSizeSqf=raw))
    assert inputs.base_price == 0
    assert inputs.unit_size_sqf == 0


def test_inputs_are_frozen():
    inputs = OIInputs.model_validate(_payload())
    with pytest.raises(ValidationError):
        inputs.base_price = 1


def test_from_saved_migrates_old_payload(caplog):
    saved = {
        "basePrice": 900_000,
        "bookingMonth": 5,
        "bookingYear": 2025,
        "handoverYear": 2028,
        "additionalPayments": [
            {"type": "construction", "triggerValue": 50, "paymentPercent": 10},
            {"id": "keep-me", "triggerValue": 12, "paymentPercent": 5},
        ],
        "postHandoverPayments": None,
        "valueDifferentiators": None,
    }
    with caplog.at_level("INFO", logger="offplan.schema"):
        inputs = OIInputs.from_saved(saved)

    assert inputs.schema_version == CURRENT_SCHEMA_VERSION
    assert "Migrated saved inputs" in caplog.text
    # defaults fill what the old payload lacked
    assert inputs.handover_quarter == 4
    assert inputs.exit_noc_fee == 5000
    assert inputs.post_handover_payments == []
    assert inputs.value_differentiators == []

    first, second = inputs.additional_payments
    assert first.id == "payment-0"
    assert first.type == "construction"
    assert second.id == "keep-me"
    assert second.type == "time"


def test_from_saved_forces_post_handover_type():
    inputs = OIInputs.from_saved({
        "schemaVersion": 2,
        "hasPostHandoverPlan": True,
        "postHandoverPayments": [{"type": "time", "triggerValue": 6, "paymentPercent": 20}],
    })
    (p,) = inputs.post_handover_payments
    assert p.type == "post-handover"
    assert p.id == "post-payment-0"


def test_from_saved_empty_gives_defaults():
    inputs = OIInputs.from_saved(None)
    assert inputs.base_price == 800_000
    assert inputs.schema_version == CURRENT_SCHEMA_VERSION


def _result(**overrides):
    values = dict(
        months_from_booking=24, exit_price=1_254_400, base_price=1_000_000, appreciation=254_400,
        appreciation_percent=25.44, equity_deployed=1_000_000, equity_percent=100, plan_equity_percent=100,
        entry_costs=0, exit_costs=0, agent_commission=0, noc_fee=0, total_capital=1_000_000,
        true_profit=254_400, true_roe=25.44, annualized_roe=12.0,
        net_profit=254_400, net_roe=25.44, net_annualized_roe=12.0,
        is_threshold_met=True, advance_required=0,
    )
    values.update(overrides)
    return ExitScenarioResult(**values)


def test_display_uses_true_figures_without_exit_costs():
    assert _result().display() == {"basis": "true", "profit": 254_400, "roe": 25.44, "annualized_roe": 12.0}


def test_display_uses_net_figures_with_exit_costs():
    shown = _result(exit_costs=5000, noc_fee=5000, net_profit=249_400, net_roe=24.94, net_annualized_roe=11.7).display()
    assert shown["basis"] == "net"
    assert shown["profit"] == 249_400
    assert shown["roe"] == 24.94
    assert shown["annualized_roe"] == 11.7
