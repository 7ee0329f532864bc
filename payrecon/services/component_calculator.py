"""
Payrecon - Component Calculator

Two-phase salary computation. The phases stay separate because
deductions reference the gross produced by the earnings phase.

Earnings phase:
    ratio  = payable_days / total_working_days   (only when loss_of_pay_days > 0)
    basic' = basic * ratio
    fixed earning      -> value * ratio, unless statutory
    percentage earning -> value% of the running earnings total

Deductions phase:
    fixed deduction      -> value, never prorated
    percentage deduction -> value% of gross

Every line is rounded to 2 dp (half-up) when produced; totals are sums of
rounded lines.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional

from payrecon.models.salary import CalculationType, ComponentType, SalaryStructure
from payrecon.services.attendance_aggregator import AttendanceSummary
from payrecon.utils.error_handling import ValidationException
from payrecon.utils.money import ZERO, round_money

HUNDRED = Decimal("100")
ONE = Decimal("1")


@dataclass(frozen=True)
class ComponentLine:
    """A structure line flattened with its component definition."""
    code: str
    name: str
    component_type: ComponentType
    calculation_type: CalculationType
    value: Decimal
    is_statutory: bool = False
    display_order: int = 0
    component_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class CalculatedLine:
    """A computed, rounded amount for one component or adjustment."""
    code: str
    name: str
    amount: Decimal
    component_id: Optional[uuid.UUID] = None
    adjustment_id: Optional[uuid.UUID] = None


@dataclass
class EarningsResult:
    basic_salary: Decimal
    payable_ratio: Decimal
    lines: List[CalculatedLine] = field(default_factory=list)
    
    @property
    def gross(self) -> Decimal:
        return self.basic_salary + sum((line.amount for line in self.lines), ZERO)


@dataclass
class DeductionsResult:
    lines: List[CalculatedLine] = field(default_factory=list)
    
    @property
    def total(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)


def lines_from_structure(structure: SalaryStructure) -> List[ComponentLine]:
    """Flatten a structure's lines (component relationship must be loaded)."""
    return [
        ComponentLine(
            code=line.component.code,
            name=line.component.name,
            component_type=line.component.component_type,
            calculation_type=line.component.calculation_type,
            value=Decimal(str(line.value)),
            is_statutory=line.component.is_statutory,
            display_order=line.component.display_order,
            component_id=line.component_id,
        )
        for line in structure.components
    ]


def ordered(lines: Iterable[ComponentLine], component_type: ComponentType) -> List[ComponentLine]:
    """Lines of one type in calculation order: display_order, then code."""
    return sorted(
        (line for line in lines if line.component_type == component_type),
        key=lambda line: (line.display_order, line.code),
    )


def payable_ratio(attendance: AttendanceSummary) -> Decimal:
    """Fraction of the period that is paid; 1 when there is no loss of pay."""
    if attendance.loss_of_pay_days <= 0:
        return ONE
    if attendance.total_working_days <= 0:
        raise ValidationException(
            "Loss-of-pay days recorded but the period has no working days",
            field="total_working_days",
            details={"loss_of_pay_days": str(attendance.loss_of_pay_days)},
        )
    ratio = attendance.payable_days / Decimal(attendance.total_working_days)
    return min(ratio, ONE)


def calculate_earnings(
    basic_salary: Decimal,
    lines: Iterable[ComponentLine],
    attendance: AttendanceSummary,
) -> EarningsResult:
    """Earnings phase: prorated basic plus earning components."""
    ratio = payable_ratio(attendance)
    basic = Decimal(str(basic_salary))
    if ratio != ONE:
        basic = basic * ratio
    result = EarningsResult(basic_salary=round_money(basic), payable_ratio=ratio)
    
    running_total = result.basic_salary
    for line in ordered(lines, ComponentType.EARNING):
        if line.calculation_type == CalculationType.PERCENTAGE:
            amount = running_total * line.value / HUNDRED
        elif line.is_statutory or ratio == ONE:
            amount = line.value
        else:
            amount = line.value * ratio
        
        calculated = CalculatedLine(
            code=line.code,
            name=line.name,
            amount=round_money(amount),
            component_id=line.component_id,
        )
        result.lines.append(calculated)
        running_total += calculated.amount
    
    return result


def calculate_deductions(
    gross: Decimal,
    lines: Iterable[ComponentLine],
) -> DeductionsResult:
    """Deductions phase: fixed values as-is, percentages of gross."""
    result = DeductionsResult()
    for line in ordered(lines, ComponentType.DEDUCTION):
        if line.calculation_type == CalculationType.PERCENTAGE:
            amount = gross * line.value / HUNDRED
        else:
            amount = line.value
        result.lines.append(
            CalculatedLine(
                code=line.code,
                name=line.name,
                amount=round_money(amount),
                component_id=line.component_id,
            )
        )
    return result
