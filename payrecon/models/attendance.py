"""
Payrecon - Attendance and Leave Models

Daily attendance rows and approved leave requests feed the
payable / loss-of-pay day counts of a payroll period.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, Date, ForeignKey, Numeric, String, Text, Uuid,
    Enum as SQLEnum, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrecon.models.base import BaseModel


class AttendanceStatus(str, Enum):
    """Daily attendance status."""
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    HALF_DAY = "half_day"
    ON_LEAVE = "on_leave"


class LeaveStatus(str, Enum):
    """Leave request status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class Attendance(BaseModel):
    """One attendance row per employee per working day."""
    
    __tablename__ = "attendance"
    
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[AttendanceStatus] = mapped_column(
        SQLEnum(AttendanceStatus), nullable=False,
    )
    
    __table_args__ = (
        UniqueConstraint('employee_id', 'attendance_date', name='uq_attendance_employee_date'),
    )


class LeaveType(BaseModel):
    """Leave category; the paid flag decides payable vs loss-of-pay days."""
    
    __tablename__ = "leave_types"
    
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True,
    )
    code: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    __table_args__ = (
        UniqueConstraint('company_id', 'code', name='uq_leave_type_company_code'),
    )


class LeaveRequest(BaseModel):
    """Leave request for a date range."""
    
    __tablename__ = "leave_requests"
    
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("leave_types.id"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    number_of_days: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), nullable=False,
    )
    status: Mapped[LeaveStatus] = mapped_column(
        SQLEnum(LeaveStatus), default=LeaveStatus.PENDING, nullable=False,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    leave_type: Mapped["LeaveType"] = relationship("LeaveType", lazy="selectin")
