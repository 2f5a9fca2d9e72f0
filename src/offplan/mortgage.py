import logging
from typing import List

import numpy as np
import numpy_financial as npf

from offplan.schema import AmortizationPoint, MortgageAnalysis, MortgageInputs, StressScenario

logger = logging.getLogger(__name__)

STRESS_RATE_BUMPS = [0.0, 1.0, 2.0]   # percentage points over the quoted rate


def monthly_payment(principal: float, annual_rate: float, term_years: int) -> float:
    """Level monthly payment; straight-line when the rate is 0."""
    nper = int(term_years * 12)
    if nper <= 0:
        return 0.0
    rate = annual_rate / 100 / 12
    if rate > 0:
        # npf.pmt is negative for a positive present value
        return float(-npf.pmt(rate, nper, principal))
    return principal / nper


def amortization_schedule(principal: float, annual_rate: float, term_years: int) -> List[AmortizationPoint]:
    """Year-end balance and cumulative principal / interest paid."""
    nper = int(term_years * 12)
    if nper <= 0 or principal <= 0:
        return []
    rate = annual_rate / 100 / 12
    per = np.arange(1, nper + 1)

    if rate > 0:
        ip = -npf.ipmt(rate, per, nper, principal)
        pp = -npf.ppmt(rate, per, nper, principal)
    else:
        ip = np.zeros(nper)
        pp = np.full(nper, principal / nper)

    cum_principal = np.cumsum(pp)
    cum_interest = np.cumsum(ip)

    points = []
    for year in range(1, int(term_years) + 1):
        i = year * 12 - 1
        points.append(AmortizationPoint(
            year=year,
            balance=max(principal - float(cum_principal[i]), 0.0),
            principal_paid=float(cum_principal[i]),
            interest_paid=float(cum_interest[i]),
        ))
    return points


def _stress_status(cashflow: float, debt_service: float) -> str:
    if cashflow >= 0:
        return "positive"
    if cashflow >= -debt_service * 0.1:
        return "tight"
    return "negative"


def analyze_mortgage(
    mortgage: MortgageInputs,
    base_price: float,
    pre_handover_percent: float,
    monthly_rent: float = 0.0,
    monthly_service_charges: float = 0.0,
) -> MortgageAnalysis:
    # Equity gap between what the bank wants and what the plan collects before handover
    equity_required_percent = 100 - mortgage.financing_percent
    gap_percent = max(0.0, equity_required_percent - pre_handover_percent)
    gap_amount = base_price * gap_percent / 100

    loan_amount = base_price * mortgage.financing_percent / 100
    payment = monthly_payment(loan_amount, mortgage.interest_rate, mortgage.loan_term_years)
    n_payments = mortgage.loan_term_years * 12
    total_loan_payments = payment * n_payments
    total_interest = total_loan_payments - loan_amount

    processing_fee = loan_amount * mortgage.processing_fee_percent / 100
    mortgage_registration = loan_amount * mortgage.mortgage_registration_percent / 100
    total_upfront_fees = processing_fee + mortgage.valuation_fee + mortgage_registration

    annual_life_insurance = loan_amount * mortgage.life_insurance_percent / 100
    total_annual_insurance = annual_life_insurance + mortgage.property_insurance
    total_insurance_over_term = total_annual_insurance * mortgage.loan_term_years

    equity_paid = base_price * equity_required_percent / 100
    schedule = amortization_schedule(loan_amount, mortgage.interest_rate, mortgage.loan_term_years)

    net_monthly_rent = monthly_rent - monthly_service_charges
    monthly_insurance = total_annual_insurance / 12
    stress = []
    for bump in STRESS_RATE_BUMPS:
        rate = mortgage.interest_rate + bump
        p = monthly_payment(loan_amount, rate, mortgage.loan_term_years)
        debt_service = p + monthly_insurance
        cashflow = net_monthly_rent - debt_service
        stress.append(StressScenario(
            rate=rate,
            monthly_payment=p,
            net_cashflow=cashflow,
            status=_stress_status(cashflow, debt_service),
        ))

    logger.debug("Mortgage %.0f over %d years at %.2f%%", loan_amount, mortgage.loan_term_years, mortgage.interest_rate)

    return MortgageAnalysis(
        equity_required_percent=equity_required_percent,
        pre_handover_payments=pre_handover_percent,
        gap_percent=gap_percent,
        gap_amount=gap_amount,
        has_gap=gap_percent > 0,
        loan_amount=loan_amount,
        monthly_payment=payment,
        total_interest=total_interest,
        total_loan_payments=total_loan_payments,
        processing_fee=processing_fee,
        valuation_fee=mortgage.valuation_fee,
        mortgage_registration=mortgage_registration,
        total_upfront_fees=total_upfront_fees,
        annual_life_insurance=annual_life_insurance,
        annual_property_insurance=mortgage.property_insurance,
        total_annual_insurance=total_annual_insurance,
        total_insurance_over_term=total_insurance_over_term,
        total_cost_with_mortgage=equity_paid + total_loan_payments + total_upfront_fees + total_insurance_over_term,
        total_interest_and_fees=total_interest + total_upfront_fees + total_insurance_over_term,
        amortization_schedule=schedule,
        principal_paid_year5=schedule[4].principal_paid if len(schedule) >= 5 else 0.0,
        principal_paid_year10=schedule[9].principal_paid if len(schedule) >= 10 else 0.0,
        stress_scenarios=stress,
    )
