"""
Payrecon - Attendance Aggregator

Turns a period's attendance rows and approved leave into the day counts
payroll needs.

    total_working_days = attendance rows in the period
    present_days       = present + late
    absent_days        = absent
    payable_days       = present_days + paid_leave_days
    loss_of_pay_days   = absent_days + unpaid_leave_days

Half-day and on-leave rows count toward working days only; the leave
itself is taken from approved leave requests.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from payrecon.models.attendance import (
    Attendance, AttendanceStatus, LeaveRequest, LeaveStatus, LeaveType,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttendanceSummary:
    """Day counts for one employee and period."""
    total_working_days: int
    present_days: int
    absent_days: int
    paid_leave_days: Decimal
    unpaid_leave_days: Decimal
    
    @property
    def payable_days(self) -> Decimal:
        return Decimal(self.present_days) + self.paid_leave_days
    
    @property
    def loss_of_pay_days(self) -> Decimal:
        return Decimal(self.absent_days) + self.unpaid_leave_days


class AttendanceAggregator:
    """Reads attendance and leave for a date range."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def aggregate(
        self,
        employee_id: uuid.UUID,
        period_start: date,
        period_end: date,
    ) -> AttendanceSummary:
        status_counts = await self.db.execute(
            select(Attendance.status, func.count(Attendance.id))
            .where(
                and_(
                    Attendance.employee_id == employee_id,
                    Attendance.attendance_date >= period_start,
                    Attendance.attendance_date <= period_end,
                )
            )
            .group_by(Attendance.status)
        )
        counts = {status: count for status, count in status_counts.all()}
        
        total_working_days = sum(counts.values())
        present_days = counts.get(AttendanceStatus.PRESENT, 0) + counts.get(AttendanceStatus.LATE, 0)
        absent_days = counts.get(AttendanceStatus.ABSENT, 0)
        
        # Approved leave overlapping the period, counted in full
        leave_rows = await self.db.execute(
            select(LeaveType.is_paid, LeaveRequest.number_of_days)
            .join(LeaveType, LeaveRequest.leave_type_id == LeaveType.id)
            .where(
                and_(
                    LeaveRequest.employee_id == employee_id,
                    LeaveRequest.status == LeaveStatus.APPROVED,
                    LeaveRequest.start_date <= period_end,
                    LeaveRequest.end_date >= period_start,
                )
            )
        )
        paid_leave_days = Decimal("0")
        unpaid_leave_days = Decimal("0")
        for is_paid, days in leave_rows.all():
            if is_paid:
                paid_leave_days += Decimal(str(days))
            else:
                unpaid_leave_days += Decimal(str(days))
        
        summary = AttendanceSummary(
            total_working_days=total_working_days,
            present_days=present_days,
            absent_days=absent_days,
            paid_leave_days=paid_leave_days,
            unpaid_leave_days=unpaid_leave_days,
        )
        logger.debug(
            f"Attendance for {employee_id} {period_start}..{period_end}: "
            f"{total_working_days} working, payable {summary.payable_days}, LOP {summary.loss_of_pay_days}"
        )
        return summary
