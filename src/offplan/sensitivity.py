from typing import Optional

import numpy as np
import pandas as pd

from offplan.appreciation import get_zone_appreciation_profile
from offplan.engine import calculate_exit_scenario, compute_entry_costs
from offplan.metrics import exit_cashflows, exit_irr
from offplan.payments import build_payment_timeline, total_months_to_handover
from offplan.schema import OIInputs


# -----------------------------
# Global delta definitions
# -----------------------------

REL_DELTAS = np.arange(0.8, 1.25, 0.05)     # 80% → 120% in steps of 5%
ABS_DELTAS = [-2.0, -1.0, 1.0, 2.0]         # percentage-point bumps

# -----------------------------
# Assumption groups
# -----------------------------

ASSUMPTIONS_REL = [
    "base_price",
    "oqood_fee",
    "exit_noc_fee",
]

ASSUMPTIONS_ABS = [
    "construction_appreciation",
    "growth_appreciation",
    "mature_appreciation",
    "downpayment_percent",
]


# -----------------------------
# Helpers
# -----------------------------

def pin_phase_rates(inputs: OIInputs) -> OIInputs:
    """Copy of inputs with zone-derived rates written out explicitly, so they can be bumped."""
    if not (inputs.use_zone_defaults and inputs.zone_maturity_level is not None):
        return inputs
    profile = get_zone_appreciation_profile(inputs.zone_maturity_level)
    return inputs.model_copy(update={
        "use_zone_defaults": False,
        "construction_appreciation": profile.construction_appreciation,
        "growth_appreciation": profile.growth_appreciation,
        "mature_appreciation": profile.mature_appreciation,
        "growth_period_years": profile.growth_period_years,
    })


def clone_with(inputs: OIInputs, field: str, new_val) -> OIInputs:
    """Return a copy of inputs with one field changed."""
    return inputs.model_copy(update={field: new_val})


def eval_metrics(inputs: OIInputs, exit_month: float) -> dict:
    """Exit scenario + IRR for one set of inputs."""
    total_months = total_months_to_handover(inputs)
    sc = calculate_exit_scenario(exit_month, inputs.base_price, total_months, inputs, compute_entry_costs(inputs))
    eq = exit_cashflows(sc, build_payment_timeline(inputs))

    return {
        "true_roe": sc.true_roe,
        "net_roe": sc.net_roe,
        "annualized_roe": sc.annualized_roe,
        "net_annualized_roe": sc.net_annualized_roe,
        "irr": exit_irr(eq),
    }


def _rows(field: str, delta: str, res: dict) -> list:
    return [
        {
            "Assumption": field,
            "Delta": delta,
            "Type": "True",
            "ROE": res["true_roe"],
            "AnnualizedROE": res["annualized_roe"],
            "IRR": np.nan,
        },
        {
            "Assumption": field,
            "Delta": delta,
            "Type": "Net",
            "ROE": res["net_roe"],
            "AnnualizedROE": res["net_annualized_roe"],
            "IRR": np.nan if res["irr"] is None else res["irr"],
        },
    ]


# -----------------------------
# Main sensitivity function
# -----------------------------

def run_sensitivity_grid(inputs: OIInputs, exit_month: Optional[float] = None) -> pd.DataFrame:
    a = pin_phase_rates(inputs)
    if exit_month is None:
        exit_month = total_months_to_handover(a)
    rows = []

    # Relative multipliers
    for field in ASSUMPTIONS_REL:
        for mult in REL_DELTAS:
            new_val = getattr(a, field) * mult
            rows += _rows(field, f"{mult:.2f}x", eval_metrics(clone_with(a, field, new_val), exit_month))

    # Absolute bumps
    for field in ASSUMPTIONS_ABS:
        base_val = getattr(a, field)
        for bump in ABS_DELTAS:
            new_val = max(0.0, base_val + bump)
            rows += _rows(field, f"{bump:+.1f}pp", eval_metrics(clone_with(a, field, new_val), exit_month))

    return pd.DataFrame(rows)


def summarize_sensitivity(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rank assumptions from most to least sensitive, separately
    for true (entry costs only) and net (after exit costs) returns.
    """
    rows = []
    metrics = ["ROE", "AnnualizedROE", "IRR"]

    for t in ["True", "Net"]:
        df_t = df[df["Type"] == t]
        for field in df_t["Assumption"].unique():
            df_f = df_t[df_t["Assumption"] == field]
            row = {"Assumption": field, "Type": t}
            for m in metrics:
                row[f"{m}_Range"] = df_f[m].max() - df_f[m].min()
            ranges = [row[f"{m}_Range"] for m in metrics if pd.notna(row[f"{m}_Range"])]
            row["CompositeRange"] = float(np.mean(ranges)) if ranges else np.nan
            rows.append(row)

    summary = pd.DataFrame(rows)

    ranked = summary.sort_values(["Type", "CompositeRange"], ascending=[True, False])
    return ranked.reset_index(drop=True)
