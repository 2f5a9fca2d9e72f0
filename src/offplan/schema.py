from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel, to_snake

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2

MilestoneType = Literal["time", "construction", "post-handover"]


class _Model(BaseModel):
    # UI payloads are camelCase; python callers use field names
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ModelDefaults(_Model):
    """Constants and fallbacks shared by every calculation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    # Fees
    dld_fee_rate: float = Field(0.04, ge = 0, le = 1, description="DLD registration fee (fraction of price)")
    agent_commission_rate: float = Field(0.02, ge = 0, le = 1, description="Exit agent commission (fraction of exit price)")

    # Payment plan
    completion_epsilon: float = Field(0.5, ge = 0, description="Completion rows at or below this percent are dropped (%)")
    resell_eligible_percent: float = Field(30.0, ge = 0, le = 100, description="Cumulative percent that unlocks resale (%)")
    mortgage_eligible_percent: float = Field(50.0, ge = 0, le = 100, description="Cumulative percent that unlocks mortgage (%)")
    minimum_exit_threshold: float = Field(30.0, ge = 0, le = 100, description="Developer minimum paid before resale (%)")

    # Rental
    service_charge_per_sqft: float = Field(18.0, ge = 0, description="Service charge (AED/sqft/yr)")

    # Appreciation
    construction_appreciation: float = Field(12.0, description="Construction phase appreciation (%/yr)")
    growth_appreciation: float = Field(8.0, description="Growth phase appreciation (%/yr)")
    mature_appreciation: float = Field(4.0, description="Mature phase appreciation (%/yr)")
    growth_period_years: float = Field(5.0, ge = 0, description="Growth phase length after handover (years)")
    appreciation_bonus_cap: float = Field(2.0, ge = 0, description="Cap on differentiator bonus (percentage points)")


DEFAULTS = ModelDefaults()


class PaymentMilestone(_Model):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., description="Milestone id")
    type: MilestoneType = Field("time", description="Trigger kind")
    trigger_value: float = Field(0.0, ge = 0, description="Months from booking, construction %, or months after handover")
    payment_percent: float = Field(0.0, description="Percent of price paid at this milestone (%)")
    label: Optional[str] = Field(None, description="Display label")


class OIInputs(_Model):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    # Purchase
    base_price: float = Field(0.0, description="Purchase price (AED)")
    booking_month: int = Field(..., ge = 1, le = 12, description="Booking month (1-12)")
    booking_year: int = Field(..., description="Booking year")
    handover_month: Optional[int] = Field(None, ge = 1, le = 12, description="Handover month (1-12)")
    handover_quarter: Optional[int] = Field(None, ge = 1, le = 4, description="Handover quarter (1-4)")
    handover_year: int = Field(..., description="Handover year")

    # Payment plan
    downpayment_percent: float = Field(20.0, ge = 0, description="Paid at booking, EOI included (%)")
    additional_payments: List[PaymentMilestone] = Field(default_factory=list, description="Pre-handover installments")
    has_post_handover_plan: bool = Field(False, description="Extended plan past handover")
    on_handover_percent: Optional[float] = Field(None, ge = 0, description="Paid on handover when a post-handover plan exists (%)")
    post_handover_percent: float = Field(0.0, ge = 0, description="Total paid after handover (%)")
    post_handover_payments: List[PaymentMilestone] = Field(default_factory=list, description="Post-handover installments")

    # Eligibility thresholds
    minimum_exit_threshold: float = Field(DEFAULTS.minimum_exit_threshold, ge = 0, description="Developer minimum before resale (%)")
    resell_eligible_percent: float = Field(DEFAULTS.resell_eligible_percent, ge = 0, description="Resale marker threshold (%)")
    mortgage_eligible_percent: float = Field(DEFAULTS.mortgage_eligible_percent, ge = 0, description="Mortgage marker threshold (%)")

    # Entry / exit costs
    eoi_fee: float = Field(50000.0, ge = 0, description="Expression of interest fee, inside the downpayment (AED)")
    oqood_fee: float = Field(5000.0, ge = 0, description="Oqood registration fee (AED)")
    exit_agent_commission_enabled: bool = Field(False, description="Charge agent commission on exit")
    exit_noc_fee: float = Field(5000.0, ge = 0, description="Developer NOC fee on resale (AED)")

    # Appreciation
    zone_maturity_level: Optional[float] = Field(60.0, ge = 0, le = 100, description="Zone maturity score (0-100)")
    use_zone_defaults: bool = Field(True, description="Derive phase rates from zone maturity")
    construction_appreciation: float = Field(DEFAULTS.construction_appreciation, description="Construction phase (%/yr)")
    growth_appreciation: float = Field(DEFAULTS.growth_appreciation, description="Growth phase (%/yr)")
    mature_appreciation: float = Field(DEFAULTS.mature_appreciation, description="Mature phase (%/yr)")
    growth_period_years: float = Field(DEFAULTS.growth_period_years, ge = 0, description="Growth phase length (years)")
    value_differentiators: List[str] = Field(default_factory=list, description="Selected differentiator ids")

    # Rental
    rental_yield_percent: float = Field(8.5, ge = 0, description="Gross rental yield on price (%)")
    rent_growth_rate: float = Field(4.0, description="Annual rent growth (%)")
    service_charge_per_sqft: float = Field(DEFAULTS.service_charge_per_sqft, ge = 0, description="Service charge (AED/sqft/yr)")
    unit_size_sqf: float = Field(0.0, description="Unit size (sqft)")

    schema_version: int = Field(CURRENT_SCHEMA_VERSION, description="Saved payload version")

    @field_validator("base_price", "unit_size_sqf", mode="before")
    @classmethod
    def _missing_or_negative_is_zero(cls, v):
        if v is None:
            return 0.0
        try:
            value = float(v)
        except (TypeError, ValueError):
            return v
        return max(value, 0.0)

    @model_validator(mode="after")
    def _handover_is_given(self) -> "OIInputs":
        if self.handover_month is None and self.handover_quarter is None:
            raise ValueError("Either handover_month or handover_quarter is required")
        return self

    @property
    def resolved_handover_month(self) -> int:
        if self.handover_month is not None:
            return self.handover_month
        # first month of the quarter
        return (self.handover_quarter - 1) * 3 + 1

    @classmethod
    def from_saved(cls, saved: Optional[Dict[str, Any]]) -> "OIInputs":
        """Load a saved quote payload, filling anything older versions lacked."""
        if not saved:
            return cls.model_validate({**DEFAULT_INPUT_VALUES, "schema_version": CURRENT_SCHEMA_VERSION})

        payload = {to_snake(k): v for k, v in saved.items()}
        version = int(payload.get("schema_version") or 1)

        merged = deep_merge(DEFAULT_INPUT_VALUES, payload)
        if version < CURRENT_SCHEMA_VERSION:
            logger.info("Migrated saved inputs from v%d to v%d", version, CURRENT_SCHEMA_VERSION)

        # explicit nulls in old payloads
        for key in ("additional_payments", "post_handover_payments", "value_differentiators"):
            if not isinstance(merged.get(key), list):
                merged[key] = []

        merged["additional_payments"] = [
            _normalise_milestone(p, f"payment-{i}", None) for i, p in enumerate(merged["additional_payments"])
        ]
        merged["post_handover_payments"] = [
            _normalise_milestone(p, f"post-payment-{i}", "post-handover")
            for i, p in enumerate(merged["post_handover_payments"])
        ]
        merged["schema_version"] = CURRENT_SCHEMA_VERSION
        return cls.model_validate(merged)


DEFAULT_INPUT_VALUES: Dict[str, Any] = {
    "base_price": 800000,
    "rental_yield_percent": 8.5,
    "booking_month": 1,
    "booking_year": 2025,
    "handover_quarter": 4,
    "handover_year": 2027,
    "downpayment_percent": 20,
    "additional_payments": [],
    "has_post_handover_plan": False,
    "post_handover_percent": 0,
    "post_handover_payments": [],
    "eoi_fee": 50000,
    "oqood_fee": 5000,
    "minimum_exit_threshold": 30,
    "exit_agent_commission_enabled": False,
    "exit_noc_fee": 5000,
    "zone_maturity_level": 60,
    "use_zone_defaults": True,
    "construction_appreciation": 12,
    "growth_appreciation": 8,
    "mature_appreciation": 4,
    "growth_period_years": 5,
    "rent_growth_rate": 4,
    "service_charge_per_sqft": 18,
    "value_differentiators": [],
}


def deep_merge(a: dict, b: dict) -> dict:
    out = copy.deepcopy(a)
    for k, v in (b or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        elif v is None and k in out:
            continue
        else:
            out[k] = copy.deepcopy(v)
    return out


def _normalise_milestone(raw: Any, fallback_id: str, forced_type: Optional[str]) -> Dict[str, Any]:
    if isinstance(raw, PaymentMilestone):
        raw = raw.model_dump()
    raw = {to_snake(k): v for k, v in (raw or {}).items()}
    return {
        "id": raw.get("id") or fallback_id,
        "type": forced_type or raw.get("type") or "time",
        "trigger_value": raw.get("trigger_value") or 0,
        "payment_percent": raw.get("payment_percent") or 0,
        "label": raw.get("label") or "",
    }


# -----------------------------
# Calculation outputs
# -----------------------------

class PhaseRates(_Model):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    construction_appreciation: float = Field(..., description="Construction phase (%/yr)")
    growth_appreciation: float = Field(..., description="Growth phase (%/yr)")
    mature_appreciation: float = Field(..., description="Mature phase (%/yr)")
    growth_period_years: float = Field(..., ge = 0, description="Growth phase length (years)")


RiskLevel = Literal["high", "medium-high", "medium", "low-medium", "low"]


class ZoneAppreciationProfile(PhaseRates):
    risk_level: RiskLevel
    label: str
    description: str


class AdvancedPayment(_Model):
    milestone: PaymentMilestone
    month_triggered: float = Field(..., description="Month the plan would normally collect it")
    amount_advanced: float = Field(..., description="Amount paid early (AED)")


class EquityAtExit(_Model):
    plan_equity: float
    plan_equity_percent: float
    threshold_percent: float
    threshold_equity: float
    is_threshold_met: bool
    advance_required: float
    advanced_payments: List[AdvancedPayment] = Field(default_factory=list)


class ExitScenarioResult(_Model):
    months_from_booking: float
    exit_price: float
    base_price: float
    appreciation: float
    appreciation_percent: float
    equity_deployed: float
    equity_percent: float
    plan_equity_percent: float
    entry_costs: float
    exit_costs: float
    agent_commission: float
    noc_fee: float
    total_capital: float
    true_profit: float
    true_roe: float
    annualized_roe: float
    net_profit: float
    net_roe: float
    net_annualized_roe: float
    is_threshold_met: bool
    advance_required: float
    advanced_payments: List[AdvancedPayment] = Field(default_factory=list)

    def display(self) -> Dict[str, Any]:
        """Profit/ROE pair every consumer must show for this exit."""
        if self.exit_costs > 0:
            return {
                "basis": "net",
                "profit": self.net_profit,
                "roe": self.net_roe,
                "annualized_roe": self.net_annualized_roe,
            }
        return {
            "basis": "true",
            "profit": self.true_profit,
            "roe": self.true_roe,
            "annualized_roe": self.annualized_roe,
        }


# -----------------------------
# Financing
# -----------------------------

class MortgageInputs(_Model):
    enabled: bool = Field(False, description="Finance the handover balance")
    financing_percent: float = Field(60.0, ge = 0, le = 100, description="Loan to value (%)")
    loan_term_years: int = Field(25, ge = 0, description="Amortization period (years)")
    interest_rate: float = Field(4.5, ge = 0, description="Annual interest rate (%)")
    processing_fee_percent: float = Field(1.0, ge = 0, description="Bank processing fee (% of loan)")
    valuation_fee: float = Field(3000.0, ge = 0, description="Valuation fee (AED)")
    mortgage_registration_percent: float = Field(0.25, ge = 0, description="Mortgage registration (% of loan)")
    life_insurance_percent: float = Field(0.4, ge = 0, description="Life insurance (% of loan per year)")
    property_insurance: float = Field(1500.0, ge = 0, description="Property insurance (AED/yr)")


class AmortizationPoint(_Model):
    year: int
    balance: float
    principal_paid: float
    interest_paid: float


class StressScenario(_Model):
    rate: float
    monthly_payment: float
    net_cashflow: float
    status: Literal["positive", "tight", "negative"]


class MortgageAnalysis(_Model):
    equity_required_percent: float
    pre_handover_payments: float
    gap_percent: float
    gap_amount: float
    has_gap: bool

    loan_amount: float
    monthly_payment: float
    total_interest: float
    total_loan_payments: float

    processing_fee: float
    valuation_fee: float
    mortgage_registration: float
    total_upfront_fees: float

    annual_life_insurance: float
    annual_property_insurance: float
    total_annual_insurance: float
    total_insurance_over_term: float

    total_cost_with_mortgage: float
    total_interest_and_fees: float

    amortization_schedule: List[AmortizationPoint] = Field(default_factory=list)
    principal_paid_year5: float = 0.0
    principal_paid_year10: float = 0.0
    stress_scenarios: List[StressScenario] = Field(default_factory=list)
