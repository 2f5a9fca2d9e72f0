import logging
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from dateutil.relativedelta import relativedelta

from offplan.schema import DEFAULTS, AdvancedPayment, EquityAtExit, ModelDefaults, OIInputs, PaymentMilestone

logger = logging.getLogger(__name__)

# float noise from summing percents such as 0.1
_TOL = 1e-9

TIMELINE_COLUMNS = [
    "MilestoneId",
    "Label",
    "Kind",
    "Date",
    "MonthOffset",
    "Percent",
    "Amount",
    "CumulativePercent",
    "ResaleEligible",
    "MortgageEligible",
    "Milestone",
]


# -----------------------------
# Calendar
# -----------------------------

def booking_date(inputs: OIInputs) -> pd.Timestamp:
    return pd.Timestamp(year=inputs.booking_year, month=inputs.booking_month, day=1)


def handover_date(inputs: OIInputs) -> pd.Timestamp:
    return pd.Timestamp(year=inputs.handover_year, month=inputs.resolved_handover_month, day=1)


def total_months_to_handover(inputs: OIInputs) -> int:
    """Calendar months from booking to handover, never less than 1."""
    months = (inputs.handover_year - inputs.booking_year) * 12 + (inputs.resolved_handover_month - inputs.booking_month)
    if months < 1:
        logger.warning("Construction period of %d months clamped to 1", months)
        return 1
    return months


def _add_months(ts: pd.Timestamp, months: float) -> pd.Timestamp:
    return ts + relativedelta(months=int(round(months)))


def resolve_milestone(
    milestone: PaymentMilestone,
    inputs: OIInputs,
    total_months: Optional[float] = None,
) -> Tuple[pd.Timestamp, float]:
    """Calendar date and month offset (from booking) at which a milestone falls due."""
    if total_months is None:
        total_months = total_months_to_handover(inputs)
    book = booking_date(inputs)
    handover = _add_months(book, total_months)
    trigger = float(milestone.trigger_value)

    if milestone.type == "time":
        # whole months only
        n = int(round(trigger))
        return _add_months(book, n), float(n)

    if milestone.type == "construction":
        # construction % taken as a linear proxy for elapsed build time
        frac = float(np.clip(trigger / 100, 0.0, 1.0))
        when = (book + (handover - book) * frac).normalize()
        return when, frac * total_months

    n = int(round(trigger))
    return _add_months(handover, n), total_months + n


# -----------------------------
# Timeline
# -----------------------------

def _first_crossing(cumulative: np.ndarray, threshold: float) -> np.ndarray:
    flags = np.zeros(len(cumulative), dtype=bool)
    hits = np.flatnonzero(cumulative >= threshold - _TOL)
    if hits.size:
        flags[hits[0]] = True
    return flags


def _completion_percent(inputs: OIInputs, defaults: ModelDefaults) -> float:
    allocated = inputs.downpayment_percent + sum(
        m.payment_percent for m in inputs.additional_payments if m.payment_percent > 0
    )
    if inputs.has_post_handover_plan and inputs.on_handover_percent is not None:
        if abs(allocated - 100) < defaults.completion_epsilon:
            return 0.0
        return inputs.on_handover_percent

    post = 0.0
    if inputs.has_post_handover_plan:
        post = sum(m.payment_percent for m in inputs.post_handover_payments if m.payment_percent > 0)
    return 100 - allocated - post


def build_payment_timeline(
    inputs: OIInputs,
    defaults: ModelDefaults = DEFAULTS,
    total_months: Optional[float] = None,
) -> pd.DataFrame:
    """Ordered payment events with dates, amounts and cumulative percent paid.

    Handover falls `total_months` after booking (the calendar difference by default).
    """
    if total_months is None:
        total_months = total_months_to_handover(inputs)
    book = booking_date(inputs)
    events: List[dict] = []

    def _event(milestone: PaymentMilestone, label: str, kind: str, when: pd.Timestamp, offset: float) -> dict:
        return {
            "MilestoneId": milestone.id,
            "Label": label,
            "Kind": kind,
            "Date": when,
            "MonthOffset": float(offset),
            "Percent": float(milestone.payment_percent),
            "Milestone": milestone,
        }

    # 1. Downpayment on booking
    down = PaymentMilestone(id="downpayment", type="time", trigger_value=0, payment_percent=inputs.downpayment_percent, label="Downpayment")
    events.append(_event(down, "Downpayment", "downpayment", book, 0.0))

    # 2. Pre-handover installments in date order
    installments = []
    for i, m in enumerate(inputs.additional_payments):
        if m.payment_percent <= 0:
            continue
        when, offset = resolve_milestone(m, inputs, total_months)
        installments.append(_event(m, m.label or f"Installment {i + 1}", "installment", when, offset))
    installments.sort(key=lambda e: (e["Date"], e["MonthOffset"]))
    events.extend(installments)

    # 3. Completion remainder on handover
    completion = _completion_percent(inputs, defaults)
    if completion > defaults.completion_epsilon:
        handover = PaymentMilestone(
            id="handover", type="time", trigger_value=total_months, payment_percent=completion, label="Handover"
        )
        events.append(_event(handover, "Completion Payment", "completion", _add_months(book, total_months), total_months))

    # 4. Post-handover installments
    if inputs.has_post_handover_plan:
        post = []
        for i, m in enumerate(inputs.post_handover_payments):
            if m.payment_percent <= 0:
                continue
            m = m if m.type == "post-handover" else m.model_copy(update={"type": "post-handover"})
            when, offset = resolve_milestone(m, inputs, total_months)
            post.append(_event(m, m.label or f"Post-Handover {i + 1}", "post-handover", when, offset))
        post.sort(key=lambda e: e["MonthOffset"])
        events.extend(post)

    df = pd.DataFrame(events, index=pd.RangeIndex(len(events), name="Event"))
    df["Amount"] = inputs.base_price * df["Percent"] / 100
    df["CumulativePercent"] = df["Percent"].cumsum()
    cumulative = df["CumulativePercent"].to_numpy()
    df["ResaleEligible"] = _first_crossing(cumulative, inputs.resell_eligible_percent)
    df["MortgageEligible"] = _first_crossing(cumulative, inputs.mortgage_eligible_percent)
    return df[TIMELINE_COLUMNS]


def pre_handover_percent(timeline: pd.DataFrame) -> float:
    mask = timeline["Kind"].isin(["downpayment", "installment"])
    return float(timeline.loc[mask, "Percent"].sum())


# -----------------------------
# Equity at a given month
# -----------------------------

def equity_percent_at(timeline: pd.DataFrame, months: float) -> float:
    """Cumulative percent paid at or before `months` after booking."""
    return float(timeline.loc[timeline["MonthOffset"] <= months + _TOL, "Percent"].sum())


def equity_deployed_at(
    months: float,
    inputs: OIInputs,
    base_price: Optional[float] = None,
    timeline: Optional[pd.DataFrame] = None,
    defaults: ModelDefaults = DEFAULTS,
) -> EquityAtExit:
    """Plan equity at an exit month, plus what must be paid early to clear the resale threshold."""
    if timeline is None:
        timeline = build_payment_timeline(inputs, defaults)
    price = inputs.base_price if base_price is None else max(float(base_price or 0.0), 0.0)

    plan_pct = equity_percent_at(timeline, months)
    threshold_pct = float(inputs.minimum_exit_threshold)
    is_met = plan_pct >= threshold_pct - _TOL

    advanced: List[AdvancedPayment] = []
    if not is_met:
        remaining = threshold_pct - plan_pct
        future = timeline[timeline["MonthOffset"] > months + _TOL]
        for row in future.itertuples(index=False):
            if remaining <= _TOL:
                break
            take = min(row.Percent, remaining)
            advanced.append(AdvancedPayment(
                milestone=row.Milestone,
                month_triggered=row.MonthOffset,
                amount_advanced=price * take / 100,
            ))
            remaining -= row.Percent

    return EquityAtExit(
        plan_equity=price * plan_pct / 100,
        plan_equity_percent=plan_pct,
        threshold_percent=threshold_pct,
        threshold_equity=price * threshold_pct / 100,
        is_threshold_met=is_met,
        advance_required=0.0 if is_met else price * (threshold_pct - plan_pct) / 100,
        advanced_payments=advanced,
    )


def month_when_threshold_met(inputs: OIInputs, timeline: Optional[pd.DataFrame] = None) -> float:
    """First month the plan itself reaches the resale threshold (handover if never)."""
    if timeline is None:
        timeline = build_payment_timeline(inputs)
    hits = timeline[timeline["CumulativePercent"] >= inputs.minimum_exit_threshold - _TOL]
    if hits.empty:
        return float(total_months_to_handover(inputs))
    return float(hits["MonthOffset"].iloc[0])


# -----------------------------
# Input checks
# -----------------------------

def validation_warnings(inputs: OIInputs, defaults: ModelDefaults = DEFAULTS) -> List[str]:
    """Problems the configurator should flag. Nothing here stops a calculation."""
    warnings: List[str] = []

    if handover_date(inputs) <= booking_date(inputs):
        warnings.append(
            f"Handover ({inputs.resolved_handover_month}/{inputs.handover_year}) is not after "
            f"booking ({inputs.booking_month}/{inputs.booking_year})"
        )

    allocated = inputs.downpayment_percent + sum(m.payment_percent for m in inputs.additional_payments)
    if inputs.has_post_handover_plan:
        total = allocated + (inputs.on_handover_percent or 0) + sum(
            m.payment_percent for m in inputs.post_handover_payments
        )
        if inputs.on_handover_percent is not None and abs(total - 100) > defaults.completion_epsilon:
            warnings.append(f"Payment plan totals {total:.1f}% instead of 100%")
    if allocated > 100 + defaults.completion_epsilon:
        warnings.append(f"Pre-handover payments total {allocated:.1f}%, above 100%")

    if inputs.minimum_exit_threshold > 100:
        warnings.append(f"Minimum exit threshold {inputs.minimum_exit_threshold:.1f}% is above 100%")

    for w in warnings:
        logger.warning(w)
    return warnings
