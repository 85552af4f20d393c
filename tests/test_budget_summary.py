"""
Tests for budget state sanitization and the monthly summary.
"""
from tax.calculator import TaxCalculator
from tax.loader import TaxTableLoader
from tax.models import BonusKind, FixedAmountBonus, NoBonus, PercentOfSalaryBonus
from budget.models import (
    BudgetFrequency, BudgetState, ExpenseItem, InvestmentBucket, InvestmentState
)
from budget.summary import (
    BudgetSummarizer, build_investment_limit_guide, calculate_monthly_totals,
    to_monthly_amount, to_yearly_amount
)

calculator = TaxCalculator(TaxTableLoader().load_year(2026))


def test_frequency_conversion():
    """Bi-weekly amounts use 26 periods over 12 months."""
    assert to_monthly_amount(100, BudgetFrequency.MONTHLY) == 100
    assert abs(to_monthly_amount(100, BudgetFrequency.BIWEEKLY) - 216.6666666) < 1e-6
    assert to_yearly_amount(100, BudgetFrequency.MONTHLY) == 1200
    assert to_yearly_amount(100, BudgetFrequency.BIWEEKLY) == 2600


def test_monthly_totals():
    expenses = [
        ExpenseItem(name="Rent", amount=2000, frequency=BudgetFrequency.MONTHLY),
        ExpenseItem(name="Groceries", amount=100, frequency=BudgetFrequency.BIWEEKLY),
    ]
    investments = [
        InvestmentBucket(amount=500, frequency=BudgetFrequency.MONTHLY),
        InvestmentBucket(amount=150, frequency=BudgetFrequency.BIWEEKLY),
    ]

    totals = calculate_monthly_totals(4992.66, expenses, investments)

    # 100 bi-weekly is 216.67 a month, not 217 or 216.7
    assert totals.total_expenses == 2216.67
    assert totals.total_investments == 825.0
    assert totals.monthly_net_income == 4992.66
    assert totals.leftover == 1950.99


def test_monthly_totals_single_biweekly_expense():
    totals = calculate_monthly_totals(
        0, [ExpenseItem(amount=100, frequency=BudgetFrequency.BIWEEKLY)], []
    )
    assert totals.total_expenses == 216.67
    assert totals.total_investments == 0
    # Leftover is allowed to go negative
    assert totals.leftover == -216.67


def test_sanitize_clamps_and_defaults():
    """Untrusted plan input is clamped rather than rejected."""
    state = BudgetState.sanitize({
        "yearly_salary": "750000",
        "bonus_type": "percentage",
        "bonus_value": 150,
        "rrsp_income_prior_year": -10,
        "expenses": [
            {"name": "  Rent  ", "amount": 2000.456, "frequency": "monthly"},
            {"name": "x" * 100, "amount": 20000, "frequency": "weekly"},
            "not an expense",
            {"name": 42, "amount": "abc", "frequency": "bi-weekly"},
        ],
        "investments": {
            "tfsa": {"amount": 250, "frequency": "bi-weekly"},
            "rrsp": 300,
            "fhsa": {"amount": float("nan")},
        },
    })

    assert state.yearly_salary == 500000
    assert state.bonus_type == BonusKind.PERCENTAGE
    assert state.bonus_value == 100
    assert state.rrsp_income_prior_year == 0

    assert len(state.expenses) == 3
    assert state.expenses[0].name == "Rent"
    assert state.expenses[0].amount == 2000.46
    assert len(state.expenses[1].name) == 64
    assert state.expenses[1].amount == 10000
    assert state.expenses[1].frequency == BudgetFrequency.MONTHLY
    assert state.expenses[2].name == ""
    assert state.expenses[2].amount == 0
    assert state.expenses[2].frequency == BudgetFrequency.BIWEEKLY

    assert state.investments.tfsa.amount == 250
    assert state.investments.tfsa.frequency == BudgetFrequency.BIWEEKLY
    assert state.investments.rrsp.amount == 300
    assert state.investments.rrsp.frequency == BudgetFrequency.MONTHLY
    assert state.investments.fhsa.amount == 0
    assert state.investments.emergency_fund.amount == 0


def test_sanitize_bonus_types():
    amount_state = BudgetState.sanitize({"bonus_type": "amount", "bonus_value": 250000})
    assert amount_state.bonus_value == 100000
    assert isinstance(amount_state.to_income_description().bonus, FixedAmountBonus)

    unknown_state = BudgetState.sanitize({"bonus_type": "stock", "bonus_value": 5000})
    assert unknown_state.bonus_type == BonusKind.NONE
    assert unknown_state.bonus_value == 0
    assert isinstance(unknown_state.to_income_description().bonus, NoBonus)

    percent_state = BudgetState.sanitize({"yearly_salary": 80000, "bonus_type": "percentage", "bonus_value": 10})
    income = percent_state.to_income_description()
    assert isinstance(income.bonus, PercentOfSalaryBonus)
    assert income.bonus.percent == 10


def test_sanitize_reads_separate_frequencies():
    """Cadences stored beside the amounts fill in rows that carry none."""
    state = BudgetState.sanitize({
        "expenses": [
            {"name": "Rent", "amount": 2000},
            {"name": "Gym", "amount": 50, "frequency": "monthly"},
        ],
        "investments": {"tfsa": 250, "fhsa": 100, "rrsp": {"amount": 300, "frequency": "monthly"}, "emergency_fund": 40},
        "frequencies": {
            "expenses": "bi-weekly",
            "investments": {"tfsa": "bi-weekly", "rrsp": "bi-weekly", "emergencyFund": "bi-weekly"},
        },
    })

    assert state.expenses[0].frequency == BudgetFrequency.BIWEEKLY
    assert state.expenses[1].frequency == BudgetFrequency.MONTHLY
    assert state.investments.tfsa.amount == 250
    assert state.investments.tfsa.frequency == BudgetFrequency.BIWEEKLY
    assert state.investments.fhsa.frequency == BudgetFrequency.MONTHLY
    assert state.investments.rrsp.frequency == BudgetFrequency.MONTHLY
    assert state.investments.emergency_fund.frequency == BudgetFrequency.BIWEEKLY

    shared = BudgetState.sanitize({"investments": {"tfsa": 100}, "frequencies": {"investments": "bi-weekly", "expenses": "yearly"}})
    assert all(bucket.frequency == BudgetFrequency.BIWEEKLY for bucket in shared.investments.buckets())
    assert shared.expenses[0].name == "Expense"
    assert shared.expenses[0].frequency == BudgetFrequency.MONTHLY


def test_sanitize_garbage_input():
    for raw in [None, "state", 42, [], {"expenses": "none"}]:
        state = BudgetState.sanitize(raw)
        assert state.yearly_salary == 0
        assert len(state.expenses) == 1
        assert state.expenses[0].name == "Expense"
        assert state.expenses[0].amount == 0


def test_investment_limit_guide():
    state = BudgetState(
        rrsp_income_prior_year=100000,
        investments=InvestmentState(
            tfsa=InvestmentBucket(amount=500, frequency=BudgetFrequency.MONTHLY),
            fhsa=InvestmentBucket(amount=400, frequency=BudgetFrequency.BIWEEKLY),
            rrsp=InvestmentBucket(amount=1000, frequency=BudgetFrequency.MONTHLY),
            emergency_fund=InvestmentBucket(amount=200),
        )
    )

    guide = build_investment_limit_guide(state)

    assert abs(guide.rrsp_based_on_income - 18000) < 1e-6
    assert abs(guide.rrsp_limit - 18000) < 1e-6
    assert [e.id for e in guide.entries] == ["tfsa", "fhsa", "rrsp"]

    tfsa = guide.get_entry("tfsa")
    assert tfsa.yearly_contribution == 6000
    assert tfsa.yearly_limit == 7000
    assert abs(tfsa.usage_percent - 85.714285) < 1e-4

    fhsa = guide.get_entry("fhsa")
    assert fhsa.yearly_contribution == 10400
    assert abs(fhsa.usage_percent - 130) < 1e-6

    rrsp = guide.get_entry("rrsp")
    assert rrsp.yearly_contribution == 12000
    assert abs(rrsp.usage_percent - 66.666666) < 1e-4


def test_rrsp_limit_capped_and_zero():
    high = build_investment_limit_guide(BudgetState(rrsp_income_prior_year=500000))
    assert high.rrsp_limit == 33810

    none = build_investment_limit_guide(BudgetState())
    assert none.rrsp_limit == 0
    assert none.get_entry("rrsp").usage_percent == 0


def test_budget_summary():
    """Net income from the tax model feeds the monthly totals."""
    state = BudgetState.sanitize({
        "yearly_salary": 80000,
        "bonus_type": "none",
        "expenses": [
            {"name": "Rent", "amount": 2000, "frequency": "monthly"},
            {"name": "Groceries", "amount": 100, "frequency": "bi-weekly"},
        ],
        "investments": {
            "tfsa": {"amount": 500, "frequency": "monthly"},
        },
    })

    summary = BudgetSummarizer(calculator).summarize(state)

    assert summary.metadata["tax_year"] == 2026
    assert summary.income.monthly_net_income == 4992.66
    assert summary.totals.monthly_net_income == 4992.66
    assert summary.totals.total_expenses == 2216.67
    assert summary.totals.total_investments == 500
    assert summary.totals.leftover == 2275.99
    assert summary.investment_limits.get_entry("tfsa").yearly_contribution == 6000
