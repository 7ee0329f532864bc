"""
Payrecon - Payroll Schemas

Pydantic schemas for payroll requests and responses exchanged with the
enclosing service.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from payrecon.models.payroll import (
    AdjustmentType, LineSource, LineType, PaymentMethod, PayrollStatus,
)
from payrecon.models.salary import CalculationType, ComponentType


# ===========================================
# SALARY COMPONENT SCHEMAS
# ===========================================

class SalaryComponentCreate(BaseModel):
    """Create salary component request."""
    code: str = Field(..., min_length=1, max_length=30)
    name: str = Field(..., min_length=1, max_length=100)
    component_type: ComponentType
    calculation_type: CalculationType = CalculationType.FIXED
    is_statutory: bool = False
    display_order: int = 0
    is_active: bool = True
    
    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class SalaryComponentResponse(BaseModel):
    """Salary component response."""
    id: UUID
    company_id: UUID
    code: str
    name: str
    component_type: ComponentType
    calculation_type: CalculationType
    is_statutory: bool
    display_order: int
    is_active: bool
    
    class Config:
        from_attributes = True


# ===========================================
# SALARY STRUCTURE SCHEMAS
# ===========================================

class StructureComponentInput(BaseModel):
    """One component value inside a structure version."""
    component_id: UUID
    value: Decimal = Field(..., gt=0, decimal_places=2)


class SalaryStructureCreate(BaseModel):
    """Create salary structure version request."""
    employee_id: UUID
    effective_from: date
    basic_salary: Decimal = Field(..., gt=0, decimal_places=2)
    components: List[StructureComponentInput] = []
    notes: Optional[str] = Field(None, max_length=255)


class StructureComponentResponse(BaseModel):
    component_id: UUID
    value: Decimal
    
    class Config:
        from_attributes = True


class SalaryStructureResponse(BaseModel):
    """Salary structure version response."""
    id: UUID
    employee_id: UUID
    effective_from: date
    basic_salary: Decimal
    notes: Optional[str] = None
    components: List[StructureComponentResponse] = []
    
    class Config:
        from_attributes = True


# ===========================================
# ADJUSTMENT SCHEMAS
# ===========================================

class AdjustmentCreate(BaseModel):
    """Create payroll adjustment request."""
    employee_id: UUID
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900)
    adjustment_type: AdjustmentType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reason: Optional[str] = None


class AdjustmentResponse(BaseModel):
    """Payroll adjustment response."""
    id: UUID
    employee_id: UUID
    month: int
    year: int
    adjustment_type: AdjustmentType
    amount: Decimal
    reason: Optional[str] = None
    applied: bool
    payroll_record_id: Optional[UUID] = None
    
    class Config:
        from_attributes = True


# ===========================================
# PAYROLL RECORD SCHEMAS
# ===========================================

class PayrollLineItemResponse(BaseModel):
    """Earning or deduction line."""
    line_type: LineType
    source: LineSource
    code: str
    name: str
    amount: Decimal
    component_id: Optional[UUID] = None
    adjustment_id: Optional[UUID] = None
    
    class Config:
        from_attributes = True


class PayrollRecordResponse(BaseModel):
    """Payroll record response."""
    id: UUID
    company_id: UUID
    employee_id: UUID
    structure_id: Optional[UUID] = None
    month: int
    year: int
    
    working_days: int
    present_days: int
    absent_days: int
    paid_leave_days: Decimal
    unpaid_leave_days: Decimal
    payable_days: Decimal
    loss_of_pay_days: Decimal
    
    basic_salary: Decimal
    gross_salary: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    status: PayrollStatus
    
    processed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approver_remarks: Optional[str] = None
    paid_at: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    transaction_reference: Optional[str] = None
    utr_number: Optional[str] = None
    reversed_at: Optional[datetime] = None
    reversal_reason: Optional[str] = None
    
    earnings: List[PayrollLineItemResponse] = []
    deductions: List[PayrollLineItemResponse] = []
    
    class Config:
        from_attributes = True


class MarkPaidRequest(BaseModel):
    """Mark payroll as paid request."""
    payment_date: date
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    transaction_reference: Optional[str] = Field(None, max_length=100)
    utr_number: Optional[str] = Field(None, max_length=100)


# ===========================================
# BATCH RESULTS
# ===========================================

class GeneratedPayroll(BaseModel):
    """Successful generation entry."""
    employee_id: UUID
    payroll_id: UUID
    gross_salary: Decimal
    total_deductions: Decimal
    net_salary: Decimal


class PayrollFailure(BaseModel):
    """Failed generation entry."""
    employee_id: UUID
    code: str
    error: str


class PayrollGenerationResult(BaseModel):
    """Outcome of a batch payroll generation."""
    month: int
    year: int
    successful: List[GeneratedPayroll] = []
    failed: List[PayrollFailure] = []
    
    @property
    def total_net(self) -> Decimal:
        return sum((entry.net_salary for entry in self.successful), Decimal("0.00"))


class BulkOperationFailure(BaseModel):
    payroll_id: UUID
    code: str
    error: str


class BulkOperationResult(BaseModel):
    """Outcome of a bulk approve / mark-paid call."""
    successful: List[UUID] = []
    failed: List[BulkOperationFailure] = []


# ===========================================
# REPORT SCHEMAS
# ===========================================

ReportGroupBy = Literal["department", "employee"]


class PayrollReportGroup(BaseModel):
    key: str
    employee_count: int = 0
    total_gross_salary: Decimal = Decimal("0.00")
    total_deductions: Decimal = Decimal("0.00")
    total_net_salary: Decimal = Decimal("0.00")
    payroll_ids: List[UUID] = []


class PayrollReport(BaseModel):
    """Period payroll totals, grouped."""
    month: int
    year: int
    group_by: ReportGroupBy
    employee_count: int
    total_gross_salary: Decimal
    total_deductions: Decimal
    total_net_salary: Decimal
    groups: Dict[str, PayrollReportGroup] = {}
