"""
Payrecon - Payroll Models

Period payroll records, their earning/deduction line items, one-off
adjustments and the internal payment rows created when a record is paid.

Lifecycle:
    draft -> processed -> approved -> paid -> reversed

Invariant kept by the record builder:
    net_salary == round(gross_salary - total_deductions, 2)
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrecon.models.base import BaseModel, AuditMixin

if TYPE_CHECKING:
    from payrecon.models.employee import Employee


# ===========================================
# ENUMS
# ===========================================

class PayrollStatus(str, Enum):
    """Payroll record status."""
    DRAFT = "draft"
    PROCESSED = "processed"
    APPROVED = "approved"
    PAID = "paid"
    REVERSED = "reversed"


class AdjustmentType(str, Enum):
    """One-off adjustment kind."""
    BONUS = "bonus"
    ARREAR = "arrear"
    REIMBURSEMENT = "reimbursement"
    DEDUCTION = "deduction"
    ADVANCE = "advance"


# Adjustment kinds that add to gross; the rest add to deductions
EARNING_ADJUSTMENT_TYPES = frozenset({
    AdjustmentType.BONUS,
    AdjustmentType.ARREAR,
    AdjustmentType.REIMBURSEMENT,
})


class LineType(str, Enum):
    """Payroll line item side."""
    EARNING = "earning"
    DEDUCTION = "deduction"


class LineSource(str, Enum):
    """Where a payroll line came from."""
    COMPONENT = "component"
    ADJUSTMENT = "adjustment"


class PaymentMethod(str, Enum):
    """Salary payment method."""
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    CASH = "cash"


class PaymentStatus(str, Enum):
    """Internal payment status."""
    COMPLETED = "completed"
    REVERSED = "reversed"


# ===========================================
# PAYROLL ADJUSTMENT
# ===========================================

class PayrollAdjustment(BaseModel, AuditMixin):
    """
    One-off adjustment for an employee and period.
    
    Applied at most once: `applied` and `payroll_record_id` are set in the
    same transaction that creates the payroll record.
    """
    
    __tablename__ = "payroll_adjustments"
    
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    adjustment_type: Mapped[AdjustmentType] = mapped_column(
        SQLEnum(AdjustmentType), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payroll_record_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_records.id", ondelete="SET NULL"),
        nullable=True,
    )
    
    __table_args__ = (
        CheckConstraint('month >= 1 AND month <= 12', name='ck_adjustment_month'),
        CheckConstraint('amount > 0', name='ck_adjustment_amount_positive'),
    )
    
    @property
    def is_earning(self) -> bool:
        return self.adjustment_type in EARNING_ADJUSTMENT_TYPES


# ===========================================
# PAYROLL RECORD
# ===========================================

class PayrollRecord(BaseModel):
    """Payroll for one employee and one month."""
    
    __tablename__ = "payroll_records"
    
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    structure_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("salary_structures.id", ondelete="SET NULL"),
        nullable=True,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    
    # Attendance Summary
    working_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    present_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    absent_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    paid_leave_days: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), default=Decimal("0"), nullable=False,
    )
    unpaid_leave_days: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), default=Decimal("0"), nullable=False,
    )
    payable_days: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), default=Decimal("0"), nullable=False,
    )
    loss_of_pay_days: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), default=Decimal("0"), nullable=False,
    )
    
    # Amounts
    basic_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
        comment="Basic salary after loss-of-pay proration",
    )
    gross_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    net_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    
    status: Mapped[PayrollStatus] = mapped_column(
        SQLEnum(PayrollStatus), default=PayrollStatus.DRAFT, nullable=False,
    )
    
    # Processing metadata
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True,
    )
    approver_remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SQLEnum(PaymentMethod), nullable=True,
    )
    transaction_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    utr_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    reversal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    employee: Mapped["Employee"] = relationship("Employee", lazy="selectin")
    line_items: Mapped[List["PayrollLineItem"]] = relationship(
        "PayrollLineItem",
        back_populates="payroll_record",
        cascade="all, delete-orphan",
        order_by="PayrollLineItem.sort_order",
        lazy="selectin",
    )
    payments: Mapped[List["PayrollPayment"]] = relationship(
        "PayrollPayment",
        back_populates="payroll_record",
        lazy="selectin",
    )
    
    __table_args__ = (
        UniqueConstraint('employee_id', 'month', 'year', name='uq_payroll_record_employee_period'),
        CheckConstraint('month >= 1 AND month <= 12', name='ck_payroll_record_month'),
    )
    
    @property
    def earnings(self) -> List["PayrollLineItem"]:
        return [line for line in self.line_items if line.line_type == LineType.EARNING]
    
    @property
    def deductions(self) -> List["PayrollLineItem"]:
        return [line for line in self.line_items if line.line_type == LineType.DEDUCTION]


class PayrollLineItem(BaseModel):
    """One earning or deduction line of a payroll record."""
    
    __tablename__ = "payroll_line_items"
    
    payroll_record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_type: Mapped[LineType] = mapped_column(SQLEnum(LineType), nullable=False)
    source: Mapped[LineSource] = mapped_column(SQLEnum(LineSource), nullable=False)
    component_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("salary_components.id"),
        nullable=True,
    )
    adjustment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_adjustments.id", ondelete="SET NULL"),
        nullable=True,
    )
    code: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    
    payroll_record: Mapped["PayrollRecord"] = relationship(
        "PayrollRecord", back_populates="line_items",
    )


# ===========================================
# PAYROLL PAYMENT
# ===========================================

class PayrollPayment(BaseModel):
    """Internal payment row created when a payroll record is marked paid."""
    
    __tablename__ = "payroll_payments"
    
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payroll_record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod), default=PaymentMethod.BANK_TRANSFER, nullable=False,
    )
    transaction_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    utr_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus), default=PaymentStatus.COMPLETED, nullable=False,
    )
    
    payroll_record: Mapped["PayrollRecord"] = relationship(
        "PayrollRecord", back_populates="payments",
    )
    
    @property
    def reference(self) -> Optional[str]:
        """Reference used for settlement matching (UTR first)."""
        return self.utr_number or self.transaction_reference
