"""
Tax calculator for Canadian federal and Ontario income tax, CPP and EI.
"""
import logging
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple

from .loader import get_tax_tables
from .models import (
    FixedAmountBonus, IncomeBreakdown, IncomeDescription, PercentOfSalaryBonus,
    TaxBracket, TaxTableSet
)
from .utils import clamp, non_negative, round_to_cents

logger = logging.getLogger(__name__)


class TaxCalculator:
    """Calculator for net income after income tax and payroll deductions."""

    def __init__(self, tax_tables: TaxTableSet):
        self.tax_tables = tax_tables
        self.year = tax_tables.year

    def calculate_income_breakdown(self, income: IncomeDescription) -> IncomeBreakdown:
        """
        Calculate the net income breakdown for a salary and bonus.

        Args:
            income: Yearly salary and bonus description

        Returns:
            IncomeBreakdown with the salary and bonus split reported
        """
        annual_salary = non_negative(income.yearly_salary)
        annual_bonus = self.calculate_annual_bonus(income)
        # Sums past the float range clamp to 0 like any other non-finite input
        annual_gross_income = non_negative(annual_salary + annual_bonus)

        breakdown = self.calculate_from_gross(annual_gross_income)
        return breakdown.model_copy(update={
            "annual_salary": round_to_cents(annual_salary),
            "annual_bonus": round_to_cents(annual_bonus),
            "annual_gross_income": round_to_cents(annual_gross_income),
        })

    def calculate_from_gross(self, gross_annual_income: float) -> IncomeBreakdown:
        """
        Calculate the net income breakdown for a known gross yearly income.

        The gross amount is reported as salary, with no bonus.

        Args:
            gross_annual_income: Total gross yearly income

        Returns:
            IncomeBreakdown with every amount rounded to cents
        """
        taxable_income = non_negative(gross_annual_income)
        if taxable_income != gross_annual_income:
            logger.debug(f"Clamped gross income {gross_annual_income!r} to {taxable_income}")

        # Payroll deductions come first; they feed the non-refundable credits
        cpp_base_and_first, cpp_second = self.calculate_cpp_contributions(taxable_income)
        cpp_contribution = cpp_base_and_first + cpp_second
        ei_premium = self.calculate_ei_premium(taxable_income)

        federal_tax = self.calculate_federal_tax(taxable_income, cpp_base_and_first, ei_premium)
        provincial_tax = self.calculate_provincial_tax(taxable_income, cpp_base_and_first, ei_premium)

        total_deductions = federal_tax + provincial_tax + cpp_contribution + ei_premium
        annual_net_income = max(0.0, taxable_income - total_deductions)

        return IncomeBreakdown(
            annual_salary=round_to_cents(taxable_income),
            annual_bonus=0.0,
            annual_gross_income=round_to_cents(taxable_income),
            taxable_income=round_to_cents(taxable_income),
            federal_tax=round_to_cents(federal_tax),
            provincial_tax=round_to_cents(provincial_tax),
            cpp_contribution=round_to_cents(cpp_contribution),
            ei_premium=round_to_cents(ei_premium),
            total_deductions=round_to_cents(total_deductions),
            annual_net_income=round_to_cents(annual_net_income),
            monthly_net_income=round_to_cents(annual_net_income / 12),
        )

    def calculate_annual_bonus(self, income: IncomeDescription) -> float:
        bonus = income.bonus
        if isinstance(bonus, FixedAmountBonus):
            return non_negative(bonus.amount)
        if isinstance(bonus, PercentOfSalaryBonus):
            return non_negative(non_negative(income.yearly_salary) * non_negative(bonus.percent) / 100)
        return 0.0

    def calculate_cpp_contributions(self, income: float) -> Tuple[float, float]:
        """
        Calculate CPP contributions for the year.

        Returns:
            Tuple of (base and first additional contribution, second additional contribution)
        """
        cpp_data = self.tax_tables.cpp_ei

        # Pensionable earnings between the basic exemption and the YMPE
        first_tier_earnings = clamp(
            income - cpp_data.cpp_basic_exemption,
            0,
            cpp_data.cpp_ympe - cpp_data.cpp_basic_exemption
        )
        # Additional pensionable earnings between the YMPE and the YAMPE
        second_tier_earnings = clamp(
            income - cpp_data.cpp_ympe,
            0,
            cpp_data.cpp_yampe - cpp_data.cpp_ympe
        )

        return (
            first_tier_earnings * cpp_data.cpp_rate,
            second_tier_earnings * cpp_data.cpp_second_rate,
        )

    def calculate_ei_premium(self, income: float) -> float:
        """Calculate the EI premium for the year."""
        ei_data = self.tax_tables.cpp_ei
        return clamp(income, 0, ei_data.ei_mie) * ei_data.ei_rate

    def calculate_federal_tax(self, income: float, cpp_base_and_first: float, ei_premium: float) -> float:
        """Federal tax after the basic personal credit and payroll credits."""
        federal = self.tax_tables.federal
        tax_before_credits = self.calculate_progressive_tax(income, federal.brackets)
        credits = federal.lowest_rate * (
            self.federal_basic_personal_amount(income) + cpp_base_and_first + ei_premium
        )
        return max(0.0, tax_before_credits - credits)

    def calculate_provincial_tax(self, income: float, cpp_base_and_first: float, ei_premium: float) -> float:
        """Provincial tax including surtax and health premium, after the tax reduction."""
        provincial = self.tax_tables.provincial
        tax_before_credits = self.calculate_progressive_tax(income, provincial.brackets)
        credits = provincial.lowest_rate * (
            provincial.basic_personal_amount + cpp_base_and_first + ei_premium
        )
        basic_tax = max(0.0, tax_before_credits - credits)

        tax_before_reduction = (
            basic_tax
            + self.calculate_surtax(basic_tax)
            + self.calculate_health_premium(income)
        )
        reduction = self.calculate_tax_reduction(tax_before_reduction)
        return max(0.0, tax_before_reduction - reduction)

    def calculate_progressive_tax(self, income: float, brackets: Sequence[TaxBracket]) -> float:
        """Tax on income using marginal brackets, before any credit."""
        remaining = max(0.0, income)
        previous_bound = 0.0
        tax = 0.0

        for bracket in brackets:
            if remaining <= 0:
                break

            taxable_at_rate = min(remaining, bracket.upper_bound - previous_bound)
            tax += taxable_at_rate * bracket.rate
            remaining -= taxable_at_rate
            previous_bound = bracket.upper_bound

        return tax

    def federal_basic_personal_amount(self, income: float) -> float:
        """Federal basic personal amount, reduced linearly across the phase-out range."""
        federal = self.tax_tables.federal
        maximum = federal.basic_personal_amount
        minimum = federal.basic_personal_amount_min

        if income <= federal.bpa_phaseout_start:
            return maximum
        if income >= federal.bpa_phaseout_end:
            return minimum

        phaseout_ratio = (
            (income - federal.bpa_phaseout_start)
            / (federal.bpa_phaseout_end - federal.bpa_phaseout_start)
        )
        return maximum - phaseout_ratio * (maximum - minimum)

    def calculate_surtax(self, basic_tax: float) -> float:
        return sum(
            max(0.0, (basic_tax - tier.threshold) * tier.rate)
            for tier in self.tax_tables.provincial.surtax_tiers
        )

    def calculate_health_premium(self, income: float) -> float:
        """Health premium from the band table; flat within a band after its ramp."""
        lower_bound = 0.0
        for band in self.tax_tables.provincial.health_premium_bands:
            if income <= band.upper_bound:
                ramp = max(0.0, income - lower_bound) * band.rate
                return band.base_amount + min(band.max_increase, ramp)
            lower_bound = band.upper_bound
        return 0.0

    def calculate_tax_reduction(self, tax_before_reduction: float) -> float:
        """Reduction that shrinks to zero once tax reaches twice the base amount."""
        reduction = 2 * self.tax_tables.provincial.tax_reduction_base
        return min(tax_before_reduction, max(0.0, reduction - tax_before_reduction))

    def get_bracket_breakdown(self, income: float, brackets: Sequence[TaxBracket]) -> List[Dict[str, Optional[float]]]:
        """Get detailed breakdown of pre-credit tax by bracket."""
        remaining = non_negative(income)
        previous_bound = 0.0
        breakdown = []

        for bracket in brackets:
            if remaining <= 0:
                break

            income_in_bracket = min(remaining, bracket.upper_bound - previous_bound)
            breakdown.append({
                "bracket_min": previous_bound,
                "bracket_max": None if bracket.upper_bound == float('inf') else bracket.upper_bound,
                "income_in_bracket": income_in_bracket,
                "marginal_rate": bracket.rate,
                "tax_in_bracket": income_in_bracket * bracket.rate
            })
            remaining -= income_in_bracket
            previous_bound = bracket.upper_bound

        return breakdown


@lru_cache(maxsize=None)
def get_default_calculator() -> TaxCalculator:
    """Calculator for the configured default tax year, built once per process."""
    return TaxCalculator(get_tax_tables())


def compute_income_breakdown(
    income: IncomeDescription, tax_tables: Optional[TaxTableSet] = None
) -> IncomeBreakdown:
    calculator = TaxCalculator(tax_tables) if tax_tables is not None else get_default_calculator()
    return calculator.calculate_income_breakdown(income)


def compute_income_breakdown_from_gross_amount(
    gross_annual_income: float, tax_tables: Optional[TaxTableSet] = None
) -> IncomeBreakdown:
    calculator = TaxCalculator(tax_tables) if tax_tables is not None else get_default_calculator()
    return calculator.calculate_from_gross(gross_annual_income)
