import logging
from typing import Iterable, List, Optional

import pandas as pd

from offplan.appreciation import resolve_phase_rates, value_at
from offplan.metrics import annualize_roe, roe
from offplan.payments import build_payment_timeline, equity_deployed_at, total_months_to_handover
from offplan.schema import DEFAULTS, ExitScenarioResult, ModelDefaults, OIInputs

logger = logging.getLogger(__name__)


def compute_entry_costs(inputs: OIInputs, defaults: ModelDefaults = DEFAULTS) -> float:
    # EOI already sits inside the downpayment percent
    return inputs.base_price * defaults.dld_fee_rate + inputs.oqood_fee


def calculate_exit_scenario(
    months_from_booking: float,
    base_price: float,
    total_months: float,
    inputs: OIInputs,
    entry_costs: float = 0.0,
    defaults: ModelDefaults = DEFAULTS,
) -> ExitScenarioResult:
    """Financial snapshot of selling the unit `months_from_booking` after booking.

    Equity follows the payment plan as scheduled; when it is below the
    developer's resale threshold the result also carries the payments that
    would have to be advanced. Annualized figures are 0 for an exit at month 0.
    """
    months = max(float(months_from_booking), 0.0)
    base_price = max(float(base_price or 0.0), 0.0)
    total_months = max(float(total_months), 1.0)

    # Exit price
    rates = resolve_phase_rates(inputs, defaults)
    exit_price = value_at(months, base_price, total_months, rates)
    appreciation = exit_price - base_price
    appreciation_percent = appreciation / base_price * 100 if base_price > 0 else 0.0

    # Equity
    timeline = build_payment_timeline(inputs, defaults, total_months=total_months)
    equity = equity_deployed_at(months, inputs, base_price=base_price, timeline=timeline, defaults=defaults)
    equity_deployed = equity.plan_equity
    equity_percent = equity.plan_equity_percent

    # Profit on entry-side costs
    total_capital = equity_deployed + entry_costs
    true_profit = appreciation - entry_costs
    true_roe = roe(true_profit, total_capital)
    annualized = annualize_roe(true_roe, months)

    # Exit costs
    agent_commission = exit_price * defaults.agent_commission_rate if inputs.exit_agent_commission_enabled else 0.0
    noc_fee = float(inputs.exit_noc_fee or 0.0)
    exit_costs = agent_commission + noc_fee

    net_profit = true_profit - exit_costs
    net_roe = roe(net_profit, total_capital)
    net_annualized = annualize_roe(net_roe, months)

    return ExitScenarioResult(
        months_from_booking=months,
        exit_price=exit_price,
        base_price=base_price,
        appreciation=appreciation,
        appreciation_percent=appreciation_percent,
        equity_deployed=equity_deployed,
        equity_percent=equity_percent,
        plan_equity_percent=equity.plan_equity_percent,
        entry_costs=entry_costs,
        exit_costs=exit_costs,
        agent_commission=agent_commission,
        noc_fee=noc_fee,
        total_capital=total_capital,
        true_profit=true_profit,
        true_roe=true_roe,
        annualized_roe=annualized,
        net_profit=net_profit,
        net_roe=net_roe,
        net_annualized_roe=net_annualized,
        is_threshold_met=equity.is_threshold_met,
        advance_required=equity.advance_required,
        advanced_payments=equity.advanced_payments,
    )


# -----------------------------
# Exit labels
# -----------------------------

def is_handover_exit(months: float, total_months: float) -> bool:
    """Within one month of handover. Used for grouping, not for the label text."""
    return abs(months - total_months) <= 1


def get_exit_label(months: float, total_months: float) -> str:
    if months == total_months - 1:
        return "Pre-Handover"
    if months == total_months:
        return "Handover"
    if months < total_months:
        return f"{months:g} mo"
    years_after = round((months - total_months) / 12)
    if years_after > 0:
        return f"Yr {years_after} Hold"
    return f"+{months - total_months:g}m"


# -----------------------------
# Exit table
# -----------------------------

def default_exit_months(total_months: int) -> List[int]:
    months = [total_months - 1, total_months, total_months + 12, total_months + 36, total_months + 60]
    return sorted({m for m in months if m > 0})


def run_exit_scenarios(
    inputs: OIInputs,
    months: Optional[Iterable[float]] = None,
    defaults: ModelDefaults = DEFAULTS,
) -> pd.DataFrame:
    total_months = total_months_to_handover(inputs)
    months = list(months) if months is not None else default_exit_months(total_months)
    entry_costs = compute_entry_costs(inputs, defaults)

    rows = []
    for m in months:
        sc = calculate_exit_scenario(m, inputs.base_price, total_months, inputs, entry_costs, defaults)
        shown = sc.display()
        rows.append({
            "Months": m,
            "Label": get_exit_label(m, total_months),
            "IsHandover": is_handover_exit(m, total_months),
            "ExitPrice": sc.exit_price,
            "EquityDeployed": sc.equity_deployed,
            "EquityPercent": sc.equity_percent,
            "TotalCapital": sc.total_capital,
            "ExitCosts": sc.exit_costs,
            "Basis": shown["basis"],
            "Profit": shown["profit"],
            "ROE": shown["roe"],
            "AnnualizedROE": shown["annualized_roe"],
            "ThresholdMet": sc.is_threshold_met,
            "AdvanceRequired": sc.advance_required,
        })

    logger.debug("Evaluated %d exit scenarios over a %d month build", len(rows), total_months)
    return pd.DataFrame(rows)
