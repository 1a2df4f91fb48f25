"""
CPF contribution and payroll calculation.

Rates and ceilings follow the CPF Board 2026 schedule. Everything here is
pure and works in Decimal; callers may pass int, float, str or Decimal.

Rounding rules:
- total contribution: combined rate applied once, rounded half-up to the dollar
- employee share: rounded down to the dollar
- employer share: total minus employee share (absorbs the remainder)
"""
from dataclasses import dataclass, asdict
from datetime import date
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, Dict, Optional

from hrcore.core.config import settings
from hrcore.core.exceptions import ValidationError
from hrcore.services.proration import Number, to_decimal

# Monthly Ordinary Wage ceiling
OW_CEILING = Decimal("8000")

# Annual wage ceiling for 2026
ANNUAL_CEILING = Decimal("102000")

ZERO = Decimal("0")
WHOLE_DOLLAR = Decimal("1")

# (inclusive upper age bound, employee %, employer %)
_AGE_BANDS = (
    (55, Decimal("20"), Decimal("17")),
    (60, Decimal("18"), Decimal("16")),
    (65, Decimal("12.5"), Decimal("12.5")),
    (70, Decimal("7.5"), Decimal("9")),
)
_ABOVE_70 = (Decimal("5"), Decimal("7.5"))


@dataclass(frozen=True)
class CPFRates:
    employee: Decimal
    employer: Decimal

    @property
    def total(self) -> Decimal:
        return self.employee + self.employer


@dataclass(frozen=True)
class CPFResult:
    employee_contribution: Decimal
    employer_contribution: Decimal
    total_contribution: Decimal
    cpf_wage: Decimal


@dataclass(frozen=True)
class PayrollBreakdown:
    basic_salary: Decimal
    allowances: Decimal
    overtime: Decimal
    bonus: Decimal
    gross_salary: Decimal
    cpf_employee: Decimal
    cpf_employer: Decimal
    income_tax: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    age: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_cpf_rates(age: int) -> CPFRates:
    for upper_bound, employee, employer in _AGE_BANDS:
        if age <= upper_bound:
            return CPFRates(employee=employee, employer=employer)
    return CPFRates(employee=_ABOVE_70[0], employer=_ABOVE_70[1])


def calculate_age(date_of_birth: date, today: Optional[date] = None) -> int:
    """Completed years: minus one if this year's birthday has not happened yet."""
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def calculate_cpf(
    ordinary_wage: Number,
    additional_wage: Number = 0,
    age: int = 0,
    ytd_ordinary_wage: Number = 0,
    rates: Optional[CPFRates] = None,
) -> CPFResult:
    """
    CPF contributions for one month.

    ytd_ordinary_wage is the ordinary wage already contributed this year;
    payroll generation passes 0, so the annual additional-wage ceiling is
    only enforced against the current month.
    """
    rates = rates or get_cpf_rates(age)

    capped_ow = min(to_decimal(ordinary_wage), OW_CEILING)
    aw_ceiling = max(ANNUAL_CEILING - to_decimal(ytd_ordinary_wage) - capped_ow, ZERO)
    capped_aw = min(to_decimal(additional_wage), aw_ceiling)
    cpf_wage = capped_ow + capped_aw

    total = (cpf_wage * rates.total / 100).quantize(WHOLE_DOLLAR, rounding=ROUND_HALF_UP)
    employee = (cpf_wage * rates.employee / 100).quantize(WHOLE_DOLLAR, rounding=ROUND_DOWN)
    employer = total - employee

    return CPFResult(
        employee_contribution=employee,
        employer_contribution=employer,
        total_contribution=total,
        cpf_wage=cpf_wage,
    )


def _non_negative(name: str, value: Number) -> Decimal:
    amount = to_decimal(value)
    if amount < 0:
        raise ValidationError(f"{name} cannot be negative", details={name: str(amount)})
    return amount


def calculate_payroll(
    basic_salary: Number,
    allowances: Number,
    date_of_birth: date,
    overtime: Number = 0,
    bonus: Number = 0,
    other_deductions: Number = 0,
    income_tax_rate: Optional[Number] = None,
    *,
    today: Optional[date] = None,
    cpf_applicable: bool = True,
    cpf_employee_rate: Optional[Number] = None,
    cpf_employer_rate: Optional[Number] = None,
) -> PayrollBreakdown:
    """
    Full payroll breakdown for one employee and one pay period.

    Ceilings only cap the wage used for CPF; gross salary is always the
    uncapped sum. Income tax is a flat-rate approximation rounded half-up
    to the dollar. Rate overrides (percent) replace the age band when both
    are set; cpf_applicable=False zeroes CPF entirely.
    """
    basic = _non_negative("basic_salary", basic_salary)
    allowance = _non_negative("allowances", allowances)
    ot = _non_negative("overtime", overtime)
    bonus_amount = _non_negative("bonus", bonus)
    other = _non_negative("other_deductions", other_deductions)
    tax_rate = to_decimal(settings.payroll.income_tax_rate if income_tax_rate is None else income_tax_rate)
    if tax_rate < 0 or tax_rate > 1:
        raise ValidationError("income_tax_rate must be between 0 and 1")

    age = calculate_age(date_of_birth, today)
    ordinary_wage = basic + allowance
    additional_wage = ot + bonus_amount
    gross = ordinary_wage + additional_wage

    if cpf_applicable:
        rates = None
        if cpf_employee_rate is not None and cpf_employer_rate is not None:
            rates = CPFRates(employee=to_decimal(cpf_employee_rate), employer=to_decimal(cpf_employer_rate))
        cpf = calculate_cpf(ordinary_wage, additional_wage, age, rates=rates)
        cpf_employee, cpf_employer = cpf.employee_contribution, cpf.employer_contribution
    else:
        cpf_employee = cpf_employer = ZERO

    income_tax = (gross * tax_rate).quantize(WHOLE_DOLLAR, rounding=ROUND_HALF_UP)
    total_deductions = cpf_employee + income_tax + other

    return PayrollBreakdown(
        basic_salary=basic,
        allowances=allowance,
        overtime=ot,
        bonus=bonus_amount,
        gross_salary=gross,
        cpf_employee=cpf_employee,
        cpf_employer=cpf_employer,
        income_tax=income_tax,
        other_deductions=other,
        total_deductions=total_deductions,
        net_salary=gross - total_deductions,
        age=age,
    )
