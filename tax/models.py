"""
Tax data models for Canadian federal and Ontario income tax calculations.
"""
import math
from enum import Enum
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .utils import non_negative


class BonusKind(str, Enum):
    """How a plan describes its yearly bonus."""
    NONE = "none"
    AMOUNT = "amount"  # Fixed dollar amount
    PERCENTAGE = "percentage"  # Percent of yearly salary


class TaxBracket(BaseModel):
    """A single tax bracket: income up to upper_bound is taxed at rate."""
    upper_bound: float = Field(..., description="Inclusive upper bound; inf for the top bracket")
    rate: float = Field(..., ge=0, le=1, description="Marginal tax rate (0.0 to 1.0)")

    model_config = ConfigDict(frozen=True)

    @field_validator('upper_bound', mode='before')
    @classmethod
    def open_ended_bound(cls, v):
        if v is None:
            return math.inf
        return v

    @field_validator('upper_bound')
    @classmethod
    def upper_bound_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError('Upper bound must be positive')
        return v


def _check_open_ended(bounds: List[float], what: str) -> None:
    if not bounds:
        raise ValueError(f'At least one {what} is required')
    if any(later <= earlier for earlier, later in zip(bounds, bounds[1:])):
        raise ValueError(f'{what.capitalize()} upper bounds must be strictly increasing')
    if not math.isinf(bounds[-1]):
        raise ValueError(f'The last {what} must be open-ended')


class SurtaxTier(BaseModel):
    """Surtax charged as a percentage of basic tax above a threshold."""
    threshold: float = Field(..., ge=0)
    rate: float = Field(..., ge=0, le=1)

    model_config = ConfigDict(frozen=True)


class HealthPremiumBand(BaseModel):
    """
    One band of the health premium step function.

    For income above the previous band's upper bound and up to this band's
    upper bound, the premium is base_amount plus a ramp of rate per dollar
    over the lower bound, capped at max_increase.
    """
    upper_bound: float
    base_amount: float = Field(..., ge=0)
    rate: float = Field(0.0, ge=0, le=1)
    max_increase: float = Field(0.0, ge=0)

    model_config = ConfigDict(frozen=True)

    @field_validator('upper_bound', mode='before')
    @classmethod
    def open_ended_bound(cls, v):
        if v is None:
            return math.inf
        return v


class CPPEIData(BaseModel):
    """CPP and EI contribution data for a specific year."""
    year: int
    cpp_basic_exemption: float = Field(..., ge=0, description="Basic exemption amount")
    cpp_ympe: float = Field(..., description="Year's Maximum Pensionable Earnings (first ceiling)")
    cpp_yampe: float = Field(..., description="Year's Additional Maximum Pensionable Earnings (second ceiling)")
    cpp_rate: float = Field(..., ge=0, le=1, description="Base and first additional CPP rate")
    cpp_second_rate: float = Field(..., ge=0, le=1, description="Second additional CPP rate")

    ei_rate: float = Field(..., ge=0, le=1, description="EI premium rate")
    ei_mie: float = Field(..., ge=0, description="Maximum Insurable Earnings")

    model_config = ConfigDict(frozen=True)

    @field_validator('cpp_ympe')
    @classmethod
    def ympe_above_exemption(cls, v, info: ValidationInfo):
        values = info.data
        if 'cpp_basic_exemption' in values and v < values['cpp_basic_exemption']:
            raise ValueError('YMPE must not be below the basic exemption')
        return v

    @field_validator('cpp_yampe')
    @classmethod
    def yampe_above_ympe(cls, v, info: ValidationInfo):
        values = info.data
        if 'cpp_ympe' in values and v < values['cpp_ympe']:
            raise ValueError('YAMPE must not be below the YMPE')
        return v


class JurisdictionTaxData(BaseModel):
    """Tax data shared by the federal and provincial tables of one year."""
    year: int
    jurisdiction: str = Field(..., description="'federal' or a province code like 'ON'")
    brackets: List[TaxBracket] = Field(..., description="Tax brackets sorted by upper bound")
    basic_personal_amount: float = Field(..., ge=0, description="Basic personal amount")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Source, citation, notes")

    model_config = ConfigDict(frozen=True)

    @field_validator('brackets')
    @classmethod
    def brackets_must_be_sorted(cls, v):
        _check_open_ended([b.upper_bound for b in v], 'bracket')
        return v

    @property
    def lowest_rate(self) -> float:
        return self.brackets[0].rate


class FederalTaxData(JurisdictionTaxData):
    """Federal table; basic_personal_amount is the maximum, phased out at high incomes."""
    jurisdiction: str = "federal"
    basic_personal_amount_min: float = Field(..., ge=0)
    bpa_phaseout_start: float = Field(..., ge=0)
    bpa_phaseout_end: float = Field(..., ge=0)

    @field_validator('basic_personal_amount_min')
    @classmethod
    def minimum_not_above_maximum(cls, v, info: ValidationInfo):
        values = info.data
        if 'basic_personal_amount' in values and v > values['basic_personal_amount']:
            raise ValueError('Minimum basic personal amount exceeds the maximum')
        return v

    @field_validator('bpa_phaseout_end')
    @classmethod
    def phaseout_must_be_ordered(cls, v, info: ValidationInfo):
        values = info.data
        if 'bpa_phaseout_start' in values and v <= values['bpa_phaseout_start']:
            raise ValueError('Phase-out end must be above phase-out start')
        return v


class ProvincialTaxData(JurisdictionTaxData):
    """Provincial table with surtax, health premium and tax reduction."""
    surtax_tiers: List[SurtaxTier] = Field(default_factory=list)
    health_premium_bands: List[HealthPremiumBand] = Field(
        default_factory=lambda: [HealthPremiumBand(upper_bound=math.inf, base_amount=0)]
    )
    tax_reduction_base: float = Field(0.0, ge=0, description="Basic reduction; the benefit is twice this")

    @field_validator('surtax_tiers')
    @classmethod
    def tiers_must_be_sorted(cls, v):
        thresholds = [t.threshold for t in v]
        if thresholds != sorted(thresholds):
            raise ValueError('Surtax tiers must be sorted by threshold')
        return v

    @field_validator('health_premium_bands')
    @classmethod
    def bands_must_be_sorted(cls, v):
        _check_open_ended([b.upper_bound for b in v], 'health premium band')
        return v


class TaxTableSet(BaseModel):
    """Complete set of tax tables for a specific year."""
    year: int
    federal: FederalTaxData
    provincial: ProvincialTaxData
    cpp_ei: CPPEIData
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class NoBonus(BaseModel):
    kind: Literal["none"] = "none"

    model_config = ConfigDict(frozen=True)


class FixedAmountBonus(BaseModel):
    kind: Literal["amount"] = "amount"
    amount: float = 0.0

    model_config = ConfigDict(frozen=True)

    @field_validator('amount', mode='before')
    @classmethod
    def clamp_amount(cls, v):
        return non_negative(v)


class PercentOfSalaryBonus(BaseModel):
    kind: Literal["percentage"] = "percentage"
    percent: float = Field(0.0, description="Percentage points of yearly salary")

    model_config = ConfigDict(frozen=True)

    @field_validator('percent', mode='before')
    @classmethod
    def clamp_percent(cls, v):
        return non_negative(v)


Bonus = Union[NoBonus, FixedAmountBonus, PercentOfSalaryBonus]


class IncomeDescription(BaseModel):
    """Gross yearly income of one plan: salary plus an optional bonus."""
    yearly_salary: float = 0.0
    bonus: Bonus = Field(default_factory=NoBonus, discriminator='kind')

    model_config = ConfigDict(frozen=True)

    @field_validator('yearly_salary', mode='before')
    @classmethod
    def clamp_salary(cls, v):
        return non_negative(v)

    @classmethod
    def from_plan_fields(cls, yearly_salary: float, bonus_type: Any, bonus_value: float) -> "IncomeDescription":
        """Build a description from the three persisted plan fields."""
        try:
            kind = BonusKind(bonus_type)
        except ValueError:
            kind = BonusKind.NONE

        if kind == BonusKind.AMOUNT:
            bonus: Bonus = FixedAmountBonus(amount=bonus_value)
        elif kind == BonusKind.PERCENTAGE:
            bonus = PercentOfSalaryBonus(percent=bonus_value)
        else:
            bonus = NoBonus()
        return cls(yearly_salary=yearly_salary, bonus=bonus)


class IncomeBreakdown(BaseModel):
    """Result of a net income calculation. Every amount is rounded to cents."""
    annual_salary: float
    annual_bonus: float
    annual_gross_income: float
    taxable_income: float
    federal_tax: float
    provincial_tax: float
    cpp_contribution: float
    ei_premium: float
    total_deductions: float
    annual_net_income: float
    monthly_net_income: float

    model_config = ConfigDict(frozen=True)
