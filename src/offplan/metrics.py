import logging
from typing import Dict, Optional

import numpy as np
import numpy_financial as npf
import pandas as pd
import scipy.optimize as opt
from dateutil.relativedelta import relativedelta
from xirr.math import xirr

from offplan.schema import ExitScenarioResult, OIInputs

logger = logging.getLogger(__name__)


# -----------------------------
# Return on equity
# -----------------------------

def roe(profit: float, capital: float) -> float:
    return profit / capital * 100 if capital > 0 else 0.0


def annualize_roe(roe_pct: float, months: float) -> float:
    """Compound a holding-period ROE (%) to an annual rate (%).

    An exit at month 0 has no holding period and is reported as 0.
    A total loss or worse annualizes to -100.
    """
    if months <= 0:
        return 0.0
    growth = 1 + roe_pct / 100
    if growth <= 0:
        return -100.0
    return (growth ** (12 / months) - 1) * 100


# -----------------------------
# Rental income
# -----------------------------

def gross_annual_rent(inputs: OIInputs) -> float:
    return inputs.base_price * inputs.rental_yield_percent / 100


def annual_service_charge(inputs: OIInputs) -> float:
    return inputs.unit_size_sqf * inputs.service_charge_per_sqft


def net_annual_income(inputs: OIInputs) -> float:
    return gross_annual_rent(inputs) - annual_service_charge(inputs)


def net_yield(inputs: OIInputs) -> float:
    return net_annual_income(inputs) / inputs.base_price * 100 if inputs.base_price > 0 else 0.0


def years_to_pay_off(inputs: OIInputs) -> float:
    income = net_annual_income(inputs)
    return inputs.base_price / income if income > 0 else 0.0


def rental_summary(inputs: OIInputs) -> Dict[str, float]:
    gross = gross_annual_rent(inputs)
    service = annual_service_charge(inputs)
    return {
        "yield_percent": inputs.rental_yield_percent,
        "gross_annual": gross,
        "gross_monthly": gross / 12,
        "service_charge_annual": service,
        "net_annual": gross - service,
        "net_monthly": (gross - service) / 12,
        "net_yield_percent": net_yield(inputs),
        "years_to_pay_off": years_to_pay_off(inputs),
    }


# -----------------------------
# Dated cash flows for an exit
# -----------------------------

def exit_cashflows(result: ExitScenarioResult, timeline: pd.DataFrame) -> pd.DataFrame:
    """Investor cash flows from booking to the exit date.

    Plan payments due by the exit go out on their dates, entry costs go out at
    booking, and the sale settles the unpaid balance and exit costs.
    NetCashFlow sums to the scenario's net profit.
    """
    book = timeline["Date"].iloc[0]
    exit_date = book + relativedelta(months=int(round(result.months_from_booking)))

    paid = timeline[timeline["MonthOffset"] <= result.months_from_booking + 1e-9]
    dates = sorted(set(paid["Date"]) | {book, exit_date})
    eq = pd.DataFrame(0.0, index=pd.DatetimeIndex(dates, name="Date"),
                      columns=["Payments", "EntryCosts", "SaleProceeds", "BalanceSettled", "ExitCosts"])

    payments = (result.base_price * paid["Percent"] / 100).groupby(paid["Date"]).sum()
    eq.loc[payments.index, "Payments"] = -payments.values
    eq.at[book, "EntryCosts"] = -result.entry_costs

    eq.at[exit_date, "SaleProceeds"] = result.exit_price
    eq.at[exit_date, "BalanceSettled"] = -(result.base_price - result.equity_deployed)
    eq.at[exit_date, "ExitCosts"] = -result.exit_costs

    eq["NetCashFlow"] = eq.sum(axis=1)
    return eq


def _xirr_fallback(cashflows: dict) -> Optional[float]:
    if not cashflows or len(cashflows) < 2:
        return None
    items = sorted(cashflows.items(), key=lambda kv: kv[0])
    t0 = items[0][0]

    ts = np.array([(d - t0).days / 365.0 for d, _ in items], dtype=float)
    cfs = np.array([float(v) for _, v in items], dtype=float)

    if not (np.any(cfs > 0) and np.any(cfs < 0)):
        return None

    def npv(r):
        return np.sum(cfs / np.power(1.0 + r, ts))

    # Scan for a bracket with sign change
    grid = [-0.95, -0.75, -0.5, -0.3, -0.2, -0.1, -0.05, -0.01,
            0.0, 0.01, 0.03, 0.05, 0.08, 0.10, 0.15, 0.2, 0.3, 0.5,
            1.0, 2.0, 3.0, 5.0, 10.0]
    vals = [npv(r) for r in grid]
    for i in range(len(grid) - 1):
        fa, fb = vals[i], vals[i + 1]
        if not np.isfinite(fa) or not np.isfinite(fb):
            continue
        if fa == 0:
            return grid[i]
        if fa * fb < 0:
            return float(opt.brentq(npv, grid[i], grid[i + 1], maxiter=200, xtol=1e-10))
    return None


def exit_irr(eq: pd.DataFrame) -> Optional[float]:
    """Annual IRR of an exit's NetCashFlow, or None when it has no sign change."""
    series = eq["NetCashFlow"]
    flows = {ts.date(): float(v) for ts, v in series.items() if np.isfinite(v) and v != 0}

    if not (any(v > 0 for v in flows.values()) and any(v < 0 for v in flows.values())):
        return None

    # Primary: true XIRR
    try:
        res = xirr(flows)
        if res is not None and np.isfinite(res):
            return float(res)
    except Exception as exc:
        logger.debug("xirr failed (%s); trying bracketed root search", exc)

    # Fallback 1: root-finding over dated cashflows
    fb = _xirr_fallback(flows)
    if fb is not None:
        return fb

    # Fallback 2: monthly IRR on a regular grid, annualized
    monthly = series.resample("MS").sum().astype(float).values
    irr_m = npf.irr(monthly)
    if irr_m is None or not np.isfinite(irr_m):
        return None
    return (1.0 + irr_m) ** 12 - 1.0
