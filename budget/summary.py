"""
Monthly budget summary: net income against recurring expenses and contributions.
"""
import logging
from typing import Iterable, Optional, Union

from tax.calculator import TaxCalculator, get_default_calculator
from tax.utils import non_negative, round_to_cents

from .limits import (
    BIWEEKLY_PERIODS_PER_YEAR, FHSA_LIMIT_2026, MONTHS_PER_YEAR, RRSP_CAP_2026,
    RRSP_EARNED_INCOME_RATE, TFSA_LIMIT_2026
)
from .models import (
    BudgetFrequency, BudgetState, BudgetSummary, ExpenseItem, InvestmentBucket,
    InvestmentLimitEntry, InvestmentLimitGuide, MonthlyTotals
)

logger = logging.getLogger(__name__)

RecurringAmount = Union[ExpenseItem, InvestmentBucket]


def to_monthly_amount(amount: float, frequency: BudgetFrequency) -> float:
    """Monthly equivalent of a recurring amount (26 bi-weekly periods over 12 months)."""
    if frequency == BudgetFrequency.BIWEEKLY:
        return amount * BIWEEKLY_PERIODS_PER_YEAR / MONTHS_PER_YEAR
    return amount


def to_yearly_amount(amount: float, frequency: BudgetFrequency) -> float:
    if frequency == BudgetFrequency.BIWEEKLY:
        return amount * BIWEEKLY_PERIODS_PER_YEAR
    return amount * MONTHS_PER_YEAR


def calculate_monthly_totals(
    monthly_net_income: float,
    expenses: Iterable[RecurringAmount],
    investments: Iterable[RecurringAmount]
) -> MonthlyTotals:
    """
    Sum recurring expenses and contributions on a monthly cadence.

    Args:
        monthly_net_income: Net income per month after tax and payroll deductions
        expenses: Recurring expenses with amount and frequency
        investments: Recurring investment contributions with amount and frequency

    Returns:
        MonthlyTotals with the leftover, which is not clamped at zero
    """
    total_expenses = sum(to_monthly_amount(e.amount, e.frequency) for e in expenses)
    total_investments = sum(to_monthly_amount(i.amount, i.frequency) for i in investments)
    leftover = monthly_net_income - total_expenses - total_investments

    return MonthlyTotals(
        monthly_net_income=round_to_cents(monthly_net_income),
        total_expenses=round_to_cents(total_expenses),
        total_investments=round_to_cents(total_investments),
        leftover=round_to_cents(leftover)
    )


def build_investment_limit_guide(state: BudgetState) -> InvestmentLimitGuide:
    """Compare yearly registered account contributions with their 2026 limits."""
    rrsp_based_on_income = non_negative(state.rrsp_income_prior_year) * RRSP_EARNED_INCOME_RATE
    rrsp_limit = min(RRSP_CAP_2026, rrsp_based_on_income)

    entries = []
    for entry_id, label, bucket, yearly_limit in [
        ("tfsa", "TFSA", state.investments.tfsa, TFSA_LIMIT_2026),
        ("fhsa", "FHSA", state.investments.fhsa, FHSA_LIMIT_2026),
        ("rrsp", "RRSP", state.investments.rrsp, rrsp_limit),
    ]:
        yearly_contribution = to_yearly_amount(bucket.amount, bucket.frequency)
        usage_percent = (yearly_contribution / yearly_limit * 100) if yearly_limit > 0 else 0
        if usage_percent > 100:
            logger.debug(f"{label} contributions of {yearly_contribution:.2f} exceed the {yearly_limit:.2f} limit")

        entries.append(InvestmentLimitEntry(
            id=entry_id,
            label=label,
            frequency=bucket.frequency,
            yearly_contribution=yearly_contribution,
            yearly_limit=yearly_limit,
            usage_percent=usage_percent
        ))

    return InvestmentLimitGuide(
        rrsp_based_on_income=rrsp_based_on_income,
        rrsp_limit=rrsp_limit,
        entries=entries
    )


class BudgetSummarizer:
    """Builds the monthly summary shown for a plan."""

    def __init__(self, calculator: Optional[TaxCalculator] = None):
        self.calculator = calculator or get_default_calculator()

    def summarize(self, state: BudgetState) -> BudgetSummary:
        """
        Summarize a plan's cash flow.

        Args:
            state: Sanitized plan state

        Returns:
            BudgetSummary with the income breakdown, monthly totals and limits
        """
        income = self.calculator.calculate_income_breakdown(state.to_income_description())
        totals = calculate_monthly_totals(
            income.monthly_net_income,
            state.expenses,
            state.investments.buckets()
        )

        return BudgetSummary(
            income=income,
            totals=totals,
            investment_limits=build_investment_limit_guide(state),
            metadata={"tax_year": self.calculator.year}
        )
