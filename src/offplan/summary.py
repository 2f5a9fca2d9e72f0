from typing import Any, Dict, Iterable, Optional

from offplan.appreciation import get_maturity_label, resolve_phase_rates
from offplan.engine import calculate_exit_scenario, compute_entry_costs, default_exit_months, get_exit_label
from offplan.metrics import annual_service_charge, rental_summary
from offplan.mortgage import analyze_mortgage
from offplan.payments import (
    booking_date,
    build_payment_timeline,
    handover_date,
    month_when_threshold_met,
    pre_handover_percent,
    total_months_to_handover,
)
from offplan.schema import DEFAULTS, ModelDefaults, MortgageInputs, OIInputs


def _timing(row) -> str:
    if row.Kind == "downpayment":
        return "On booking"
    if row.Kind == "completion":
        return "On handover"
    milestone = row.Milestone
    if milestone.type == "construction":
        return f"{milestone.trigger_value:g}% construction"
    if milestone.type == "post-handover":
        return f"{milestone.trigger_value:g} months after handover"
    return f"Month {milestone.trigger_value:g}"


def build_cashflow_summary(
    inputs: OIInputs,
    exit_months: Optional[Iterable[float]] = None,
    mortgage: Optional[MortgageInputs] = None,
    client_info: Optional[Dict[str, Any]] = None,
    defaults: ModelDefaults = DEFAULTS,
) -> Dict[str, Any]:
    """Plain-data summary of a quote, ready for templating or a narrative report.

    Amounts are in the base currency and unformatted.
    """
    client_info = client_info or {}
    price = inputs.base_price
    total_months = total_months_to_handover(inputs)
    timeline = build_payment_timeline(inputs, defaults)

    installments = [
        {"kind": row.Kind, "label": row.Label, "percent": row.Percent, "amount": row.Amount,
         "date": row.Date.strftime("%b %Y"), "timing": _timing(row),
         "resale_eligible": bool(row.ResaleEligible), "mortgage_eligible": bool(row.MortgageEligible)}
        for row in timeline.itertuples(index=False)
    ]
    construction = [i for i in installments if i["kind"] == "installment"]
    completion = timeline[timeline["Kind"] == "completion"]
    pre_pct = pre_handover_percent(timeline)

    downpayment = price * inputs.downpayment_percent / 100
    dld_fee = price * defaults.dld_fee_rate
    size = inputs.unit_size_sqf
    rates = resolve_phase_rates(inputs, defaults)

    summary: Dict[str, Any] = {
        "property": {
            "project_name": client_info.get("project_name", ""),
            "developer": client_info.get("developer", ""),
            "unit": client_info.get("unit", ""),
            "unit_type": client_info.get("unit_type", ""),
            "size_sqft": size,
            "price": price,
            "price_per_sqft": price / size if size > 0 else 0.0,
        },
        "payment_structure": {
            "pre_handover_percent": pre_pct,
            "handover_percent": float(completion["Percent"].sum()),
            "pre_handover_amount": price * pre_pct / 100,
            "handover_amount": float(completion["Amount"].sum()),
            "installments": installments,
        },
        "timeline": {
            "booking_date": booking_date(inputs).strftime("%B %Y"),
            "handover_date": handover_date(inputs).strftime("%B %Y"),
            "construction_months": total_months,
            "resale_threshold_month": month_when_threshold_met(inputs, timeline),
        },
        "todays_commitment": {
            "downpayment": downpayment,
            "downpayment_percent": inputs.downpayment_percent,
            "dld_fee": dld_fee,
            "oqood_fee": inputs.oqood_fee,
            "total": downpayment + dld_fee + inputs.oqood_fee,
        },
        "construction": {
            "payments_count": len(construction),
            "total_amount": sum(p["amount"] for p in construction),
            "payments": construction,
        },
        "handover": {
            "percent": float(completion["Percent"].sum()),
            "amount": float(completion["Amount"].sum()),
        },
        "appreciation": {
            "zone_label": get_maturity_label(inputs.zone_maturity_level) if inputs.zone_maturity_level is not None else None,
            **rates.model_dump(),
        },
        "rental": rental_summary(inputs),
    }

    months = list(exit_months) if exit_months is not None else default_exit_months(total_months)
    entry_costs = compute_entry_costs(inputs, defaults)
    exits = []
    for m in months:
        sc = calculate_exit_scenario(m, price, total_months, inputs, entry_costs, defaults)
        shown = sc.display()
        exits.append({
            "month": m,
            "label": get_exit_label(m, total_months),
            "value": sc.exit_price,
            "profit": shown["profit"],
            "roe": shown["roe"],
            "basis": shown["basis"],
        })
    summary["exit_scenarios"] = exits

    if mortgage is not None and mortgage.enabled:
        monthly_rent = summary["rental"]["gross_monthly"]
        analysis = analyze_mortgage(mortgage, price, pre_pct, monthly_rent, annual_service_charge(inputs) / 12)
        summary["mortgage"] = {
            "financing_percent": mortgage.financing_percent,
            "loan_amount": analysis.loan_amount,
            "monthly_payment": analysis.monthly_payment,
            "monthly_rent": monthly_rent,
            "gap": analysis.gap_amount,
            "is_positive": monthly_rent >= analysis.monthly_payment,
        }

    return summary
