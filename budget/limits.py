"""
Product ceilings for plan inputs and 2026 registered-account contribution limits.
"""

MAX_YEARLY_SALARY = 500_000
MAX_BONUS_AMOUNT = 100_000
MAX_BONUS_PERCENT = 100
MAX_EXPENSE = 10_000
MAX_INVESTMENT = 10_000
MAX_EXPENSE_NAME_LENGTH = 64

TFSA_LIMIT_2026 = 7_000
FHSA_LIMIT_2026 = 8_000
RRSP_CAP_2026 = 33_810
RRSP_EARNED_INCOME_RATE = 0.18  # of the previous year's earned income

BIWEEKLY_PERIODS_PER_YEAR = 26
MONTHS_PER_YEAR = 12
