import logging
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from offplan.payments import total_months_to_handover
from offplan.schema import DEFAULTS, ModelDefaults, OIInputs, PhaseRates, ZoneAppreciationProfile

logger = logging.getLogger(__name__)

APPRECIATION_BONUS_CAP = DEFAULTS.appreciation_bonus_cap


# -----------------------------
# Value differentiators
# -----------------------------

class ValueDifferentiator(NamedTuple):
    id: str
    name: str
    category: str
    impacts_appreciation: bool
    appreciation_bonus: float  # percentage points


VALUE_DIFFERENTIATORS: List[ValueDifferentiator] = [
    # Location
    ValueDifferentiator("waterfront", "Waterfront", "location", True, 0.5),
    ValueDifferentiator("ocean-view", "Ocean View", "location", True, 0.3),
    ValueDifferentiator("master-community", "Master Community", "location", True, 0.3),
    ValueDifferentiator("emerging-zone", "Emerging Zone", "location", True, 0.3),
    ValueDifferentiator("beach-access", "Beach Access", "location", False, 0.0),
    ValueDifferentiator("golf-view", "Golf View", "location", False, 0.0),
    # Unit
    ValueDifferentiator("corner-unit", "Corner Unit", "unit", True, 0.2),
    ValueDifferentiator("top-floor", "Top Floor", "unit", True, 0.3),
    ValueDifferentiator("skyline-view", "Skyline View", "unit", True, 0.2),
    ValueDifferentiator("furnished", "Furnished", "unit", False, 0.0),
    ValueDifferentiator("private-pool", "Private Pool", "unit", False, 0.0),
    # Developer
    ValueDifferentiator("premium-developer", "Premium Developer", "developer", True, 0.4),
    ValueDifferentiator("branded-residence", "Branded Residence", "developer", False, 0.0),
    ValueDifferentiator("hotel-managed", "Hotel Managed", "developer", False, 0.0),
    # Transport
    ValueDifferentiator("metro-adjacent", "Metro Adjacent", "transport", True, 0.3),
    # Financial
    ValueDifferentiator("low-entry", "Low Entry Point", "financial", False, 0.0),
    ValueDifferentiator("accessible-payment", "Accessible Payment Plan", "financial", False, 0.0),
    # Amenities
    ValueDifferentiator("premium-amenities", "Premium Amenities", "amenities", False, 0.0),
    ValueDifferentiator("smart-home", "Smart Home", "amenities", False, 0.0),
]


def calculate_appreciation_bonus(
    selected_ids: Iterable[str],
    catalog: Sequence[ValueDifferentiator] = VALUE_DIFFERENTIATORS,
    cap: float = APPRECIATION_BONUS_CAP,
) -> float:
    """Sum of appreciation bonuses for the selected differentiators, capped."""
    selected = set(selected_ids or [])
    total = sum(d.appreciation_bonus for d in catalog if d.id in selected and d.impacts_appreciation)
    return min(total, cap)


def get_selected_differentiators(
    selected_ids: Iterable[str],
    catalog: Sequence[ValueDifferentiator] = VALUE_DIFFERENTIATORS,
) -> Tuple[List[ValueDifferentiator], List[ValueDifferentiator]]:
    """Split a selection into (value drivers, display-only features)."""
    selected = set(selected_ids or [])
    chosen = [d for d in catalog if d.id in selected]
    return [d for d in chosen if d.impacts_appreciation], [d for d in chosen if not d.impacts_appreciation]


# -----------------------------
# Zone maturity profiles
# -----------------------------

# (upper maturity bound, label, risk, construction, growth, mature, growth years, description)
ZONE_PROFILE_TABLE: List[Tuple[float, str, str, float, float, float, float, str]] = [
    (25, "Emerging", "high", 15.0, 11.0, 4.0, 5, "Early-stage area with limited infrastructure; highest upside and volatility."),
    (50, "Developing", "medium-high", 13.0, 9.0, 4.0, 4, "Infrastructure under way; strong catch-up growth expected."),
    (75, "Growing", "medium", 11.0, 7.0, 4.0, 3, "Established demand with remaining supply pipeline."),
    (90, "Mature", "low-medium", 9.0, 6.0, 3.5, 2, "Built-out community; steady appreciation."),
    (100, "Established", "low", 7.0, 5.0, 3.0, 1, "Prime, fully developed location; capital preservation."),
]


def _zone_row(maturity_level: float, table):
    level = float(np.clip(maturity_level, 0, 100))
    for row in table:
        if level <= row[0]:
            return row
    return table[-1]


def get_maturity_label(maturity_level: float, table=ZONE_PROFILE_TABLE) -> str:
    return _zone_row(maturity_level, table)[1]


def get_zone_appreciation_profile(maturity_level: float, table=ZONE_PROFILE_TABLE) -> ZoneAppreciationProfile:
    _, label, risk, construction, growth, mature, years, description = _zone_row(maturity_level, table)
    return ZoneAppreciationProfile(
        construction_appreciation=construction,
        growth_appreciation=growth,
        mature_appreciation=mature,
        growth_period_years=years,
        risk_level=risk,
        label=label,
        description=description,
    )


def resolve_phase_rates(inputs: OIInputs, defaults: ModelDefaults = DEFAULTS) -> PhaseRates:
    """Phase rates actually used for projections, differentiator bonus included."""
    if inputs.use_zone_defaults and inputs.zone_maturity_level is not None:
        base: PhaseRates = get_zone_appreciation_profile(inputs.zone_maturity_level)
    else:
        base = PhaseRates(
            construction_appreciation=inputs.construction_appreciation,
            growth_appreciation=inputs.growth_appreciation,
            mature_appreciation=inputs.mature_appreciation,
            growth_period_years=inputs.growth_period_years,
        )

    bonus = calculate_appreciation_bonus(inputs.value_differentiators, cap=defaults.appreciation_bonus_cap)
    return PhaseRates(
        construction_appreciation=base.construction_appreciation + bonus,
        growth_appreciation=base.growth_appreciation + bonus,
        mature_appreciation=base.mature_appreciation + bonus,
        growth_period_years=base.growth_period_years,
    )


# -----------------------------
# Value over time
# -----------------------------

def value_at(months: float, base_price: float, total_months: float, rates: PhaseRates) -> float:
    """Projected price `months` after booking, fractional-year compounding per phase."""
    t = max(float(months), 0.0) / 12
    t_handover = max(float(total_months), 1.0) / 12
    growth_years = rates.growth_period_years

    construction_t = min(t, t_handover)
    growth_t = min(max(t - t_handover, 0.0), growth_years)
    mature_t = max(t - t_handover - growth_years, 0.0)

    return (
        base_price
        * (1 + rates.construction_appreciation / 100) ** construction_t
        * (1 + rates.growth_appreciation / 100) ** growth_t
        * (1 + rates.mature_appreciation / 100) ** mature_t
    )


def phase_at(years: float, total_months: float, rates: PhaseRates) -> str:
    t_handover = max(float(total_months), 1.0) / 12
    if years < t_handover:
        return "construction"
    if years < t_handover + rates.growth_period_years:
        return "growth"
    return "mature"


def _phase_rate(phase: str, rates: PhaseRates) -> float:
    return {
        "construction": rates.construction_appreciation,
        "growth": rates.growth_appreciation,
        "mature": rates.mature_appreciation,
    }[phase]


def value_path_by_year(years: int, base_price: float, total_months: float, rates: PhaseRates) -> np.ndarray:
    """Year-end values for years 1..N; each year uses the phase active at its start."""
    values = np.empty(max(int(years), 0), dtype=float)
    value = float(base_price)
    for i in range(len(values)):
        value *= 1 + _phase_rate(phase_at(i, total_months, rates), rates) / 100
        values[i] = value
    return values


def build_yearly_projections(
    inputs: OIInputs,
    years: int = 10,
    total_months: Optional[int] = None,
    defaults: ModelDefaults = DEFAULTS,
) -> pd.DataFrame:
    if total_months is None:
        total_months = total_months_to_handover(inputs)
    rates = resolve_phase_rates(inputs, defaults)

    year = np.arange(1, int(years) + 1)
    df = pd.DataFrame(index=pd.Index(year, name="Year"))
    df["CalendarYear"] = inputs.booking_year + year - 1
    df["PropertyValue"] = value_path_by_year(years, inputs.base_price, total_months, rates)
    df["Phase"] = [phase_at(y - 1, total_months, rates) for y in year]

    handover_year_index = int(np.ceil(total_months / 12))
    df["IsConstruction"] = year < handover_year_index
    df["IsHandover"] = year == handover_year_index

    gross_rent_base = inputs.base_price * inputs.rental_yield_percent / 100
    rent_years = np.maximum(year - handover_year_index, 0)
    gross_rent = gross_rent_base * (1 + inputs.rent_growth_rate / 100) ** rent_years
    service_charge = inputs.unit_size_sqf * inputs.service_charge_per_sqft

    df["GrossAnnualRent"] = np.where(df["IsConstruction"], np.nan, gross_rent)
    df["ServiceCharge"] = np.where(df["IsConstruction"], np.nan, service_charge)
    df["NetAnnualRent"] = df["GrossAnnualRent"] - df["ServiceCharge"]

    logger.debug("Built %d yearly projections (handover year %d)", years, handover_year_index)
    return df