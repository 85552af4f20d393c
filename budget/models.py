"""
Budget models for plan state, monthly totals and contribution limits.
"""
from enum import Enum
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, Field

from tax.models import BonusKind, IncomeBreakdown, IncomeDescription
from tax.utils import clamp, round_to_cents, to_number

from .limits import (
    MAX_BONUS_AMOUNT, MAX_BONUS_PERCENT, MAX_EXPENSE, MAX_EXPENSE_NAME_LENGTH,
    MAX_INVESTMENT, MAX_YEARLY_SALARY
)


class BudgetFrequency(str, Enum):
    """Cadence of a recurring expense or contribution."""
    MONTHLY = "monthly"
    BIWEEKLY = "bi-weekly"


class ExpenseItem(BaseModel):
    """A recurring expense."""
    name: str = Field("", max_length=MAX_EXPENSE_NAME_LENGTH)
    amount: float = Field(0.0, ge=0, le=MAX_EXPENSE)
    frequency: BudgetFrequency = BudgetFrequency.MONTHLY


class InvestmentBucket(BaseModel):
    """A recurring contribution to one investment account."""
    amount: float = Field(0.0, ge=0, le=MAX_INVESTMENT)
    frequency: BudgetFrequency = BudgetFrequency.MONTHLY


class InvestmentState(BaseModel):
    """Recurring contributions to registered accounts and the emergency fund."""
    tfsa: InvestmentBucket = Field(default_factory=InvestmentBucket)
    fhsa: InvestmentBucket = Field(default_factory=InvestmentBucket)
    rrsp: InvestmentBucket = Field(default_factory=InvestmentBucket)
    emergency_fund: InvestmentBucket = Field(default_factory=InvestmentBucket)

    def buckets(self) -> List[InvestmentBucket]:
        return [self.tfsa, self.fhsa, self.rrsp, self.emergency_fund]


def _default_expenses(frequency: BudgetFrequency = BudgetFrequency.MONTHLY) -> List[ExpenseItem]:
    return [ExpenseItem(name="Expense", frequency=frequency)]


class BudgetState(BaseModel):
    """Everything one budget plan stores."""
    yearly_salary: float = Field(0.0, ge=0, le=MAX_YEARLY_SALARY)
    bonus_type: BonusKind = BonusKind.NONE
    bonus_value: float = Field(0.0, ge=0)
    rrsp_income_prior_year: float = Field(0.0, ge=0, le=MAX_YEARLY_SALARY)
    expenses: List[ExpenseItem] = Field(default_factory=_default_expenses)
    investments: InvestmentState = Field(default_factory=InvestmentState)

    def to_income_description(self) -> IncomeDescription:
        return IncomeDescription.from_plan_fields(self.yearly_salary, self.bonus_type, self.bonus_value)

    @classmethod
    def sanitize(cls, raw: Any) -> "BudgetState":
        """
        Build a valid state from untrusted input without raising.

        Amounts are clamped to their ceilings and rounded to cents, unknown
        frequencies fall back to monthly and unknown bonus types to none.
        Malformed expense rows are dropped; an empty list keeps one blank row.
        Plans that keep cadences in a separate `frequencies` mapping are read
        too: `frequencies.expenses` is the default for expense rows, and
        `frequencies.investments` is either one cadence for every account or
        a cadence per account. A frequency stored on the row itself wins.

        Args:
            raw: Mapping as persisted by the application layer

        Returns:
            Sanitized BudgetState
        """
        if not isinstance(raw, Mapping):
            return cls()

        bonus_type = _normalize_bonus_type(raw.get("bonus_type"))
        if bonus_type == BonusKind.AMOUNT:
            bonus_value = _normalize_amount(raw.get("bonus_value"), MAX_BONUS_AMOUNT)
        elif bonus_type == BonusKind.PERCENTAGE:
            bonus_value = _normalize_amount(raw.get("bonus_value"), MAX_BONUS_PERCENT)
        else:
            bonus_value = 0.0

        frequencies_raw = raw.get("frequencies")
        if not isinstance(frequencies_raw, Mapping):
            frequencies_raw = {}
        expense_frequency = _normalize_frequency(frequencies_raw.get("expenses"))

        expenses_raw = raw.get("expenses")
        expenses = [
            _normalize_expense(expense, expense_frequency)
            for expense in (expenses_raw if isinstance(expenses_raw, list) else [])
            if isinstance(expense, Mapping)
        ]
        if not expenses:
            expenses = _default_expenses(expense_frequency)

        investments_raw = raw.get("investments")
        if not isinstance(investments_raw, Mapping):
            investments_raw = {}

        return cls(
            yearly_salary=_normalize_amount(raw.get("yearly_salary"), MAX_YEARLY_SALARY),
            bonus_type=bonus_type,
            bonus_value=bonus_value,
            rrsp_income_prior_year=_normalize_amount(raw.get("rrsp_income_prior_year"), MAX_YEARLY_SALARY),
            expenses=expenses,
            investments=InvestmentState(**{
                field: _normalize_bucket(
                    investments_raw.get(field),
                    _investment_frequency(frequencies_raw.get("investments"), field)
                )
                for field in ("tfsa", "fhsa", "rrsp", "emergency_fund")
            })
        )


def _normalize_amount(value: Any, maximum: float) -> float:
    return round_to_cents(clamp(to_number(value), 0, maximum))


def _normalize_frequency(value: Any, default: BudgetFrequency = BudgetFrequency.MONTHLY) -> BudgetFrequency:
    if value in (BudgetFrequency.MONTHLY.value, BudgetFrequency.BIWEEKLY.value):
        return BudgetFrequency(value)
    return default


def _investment_frequency(value: Any, field: str) -> BudgetFrequency:
    if isinstance(value, Mapping):
        # Stored plans spell the emergency fund in camel case
        if field == "emergency_fund" and field not in value:
            return _normalize_frequency(value.get("emergencyFund"))
        return _normalize_frequency(value.get(field))
    return _normalize_frequency(value)


def _normalize_bonus_type(value: Any) -> BonusKind:
    if value in (BonusKind.AMOUNT.value, BonusKind.PERCENTAGE.value):
        return BonusKind(value)
    return BonusKind.NONE


def _normalize_expense(value: Mapping, default_frequency: BudgetFrequency) -> ExpenseItem:
    name = value.get("name")
    name = name[:MAX_EXPENSE_NAME_LENGTH].strip() if isinstance(name, str) else ""
    return ExpenseItem(
        name=name,
        amount=_normalize_amount(value.get("amount"), MAX_EXPENSE),
        frequency=_normalize_frequency(value.get("frequency"), default_frequency)
    )


def _normalize_bucket(value: Any, default_frequency: BudgetFrequency) -> InvestmentBucket:
    # Older plans stored a bare amount per account and kept its cadence under frequencies
    if not isinstance(value, Mapping):
        return InvestmentBucket(amount=_normalize_amount(value, MAX_INVESTMENT), frequency=default_frequency)
    return InvestmentBucket(
        amount=_normalize_amount(value.get("amount"), MAX_INVESTMENT),
        frequency=_normalize_frequency(value.get("frequency"), default_frequency)
    )


class MonthlyTotals(BaseModel):
    """Monthly cash flow of a plan, rounded to cents."""
    monthly_net_income: float
    total_expenses: float
    total_investments: float
    leftover: float = Field(..., description="May be negative when the plan overspends")


class InvestmentLimitEntry(BaseModel):
    """Yearly contribution to one registered account against its limit."""
    id: str
    label: str
    frequency: BudgetFrequency
    yearly_contribution: float
    yearly_limit: float
    usage_percent: float


class InvestmentLimitGuide(BaseModel):
    """Registered account usage for the year."""
    rrsp_based_on_income: float
    rrsp_limit: float
    entries: List[InvestmentLimitEntry] = Field(default_factory=list)

    def get_entry(self, entry_id: str) -> InvestmentLimitEntry:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        raise KeyError(entry_id)


class BudgetSummary(BaseModel):
    """Net income, monthly totals and contribution limits for one plan."""
    income: IncomeBreakdown
    totals: MonthlyTotals
    investment_limits: InvestmentLimitGuide
    metadata: Dict[str, Any] = Field(default_factory=dict)
