"""
Payrecon - Payroll Service

Payroll record assembly, the record state machine and payroll reporting.

State machine:
    draft --process--> processed --approve--> approved --mark_paid--> paid --reverse--> reversed

Every transition checks the current status first and raises
InvalidStateException without touching the record when it does not match.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from payrecon.models.employee import Employee
from payrecon.models.payroll import (
    LineSource, LineType, PaymentMethod, PaymentStatus, PayrollLineItem,
    PayrollPayment, PayrollRecord, PayrollStatus,
)
from payrecon.schemas.payroll import (
    BulkOperationFailure, BulkOperationResult, PayrollReport, PayrollReportGroup,
)
from payrecon.services.adjustment_service import AdjustmentEffect
from payrecon.services.attendance_aggregator import AttendanceSummary
from payrecon.services.component_calculator import (
    CalculatedLine, DeductionsResult, EarningsResult,
)
from payrecon.utils.error_handling import (
    AppException,
    InvalidStateException,
    PayrollNotFoundException,
    ValidationException,
    validate_period,
)
from payrecon.utils.money import ZERO, round_money

logger = logging.getLogger(__name__)


# ===========================================
# STATE MACHINE
# ===========================================

# action -> (allowed current statuses, resulting status)
TRANSITIONS: Dict[str, tuple] = {
    "process": ({PayrollStatus.DRAFT}, PayrollStatus.PROCESSED),
    "approve": ({PayrollStatus.PROCESSED}, PayrollStatus.APPROVED),
    "mark_paid": ({PayrollStatus.APPROVED}, PayrollStatus.PAID),
    "reverse": ({PayrollStatus.PAID}, PayrollStatus.REVERSED),
}

PAYSLIP_STATUSES = (PayrollStatus.APPROVED, PayrollStatus.PAID)

UNASSIGNED_GROUP = "unassigned"


def check_transition(record: PayrollRecord, action: str) -> PayrollStatus:
    """Return the target status for action, or raise if not allowed."""
    allowed, target = TRANSITIONS[action]
    if record.status not in allowed:
        raise InvalidStateException(
            "PayrollRecord",
            record.status.value,
            action.replace("_", " "),
            allowed_states=sorted(status.value for status in allowed),
        )
    return target


# ===========================================
# RECORD BUILDER
# ===========================================

class PayrollRecordBuilder:
    """Assembles a draft PayrollRecord from calculation results."""
    
    @staticmethod
    def _line(
        calculated: CalculatedLine,
        line_type: LineType,
        sort_order: int,
    ) -> PayrollLineItem:
        return PayrollLineItem(
            line_type=line_type,
            source=LineSource.ADJUSTMENT if calculated.adjustment_id else LineSource.COMPONENT,
            component_id=calculated.component_id,
            adjustment_id=calculated.adjustment_id,
            code=calculated.code,
            name=calculated.name,
            amount=round_money(calculated.amount),
            sort_order=sort_order,
        )
    
    @classmethod
    def build(
        cls,
        company_id: uuid.UUID,
        employee_id: uuid.UUID,
        structure_id: Optional[uuid.UUID],
        month: int,
        year: int,
        attendance: AttendanceSummary,
        earnings: EarningsResult,
        deductions: DeductionsResult,
        effect: AdjustmentEffect,
    ) -> PayrollRecord:
        """
        Build a draft record with its line items (not yet added to a session).
        
        Raises ValidationException when deductions exceed gross.
        """
        gross = round_money(effect.gross)
        total_deductions = round_money(effect.total_deductions)
        net = round_money(gross - total_deductions)
        if net < ZERO:
            raise ValidationException(
                f"Deductions ({total_deductions}) exceed gross salary ({gross})",
                field="net_salary",
                details={"gross_salary": str(gross), "total_deductions": str(total_deductions)},
            )
        
        ordered_lines = (
            [(line, LineType.EARNING) for line in earnings.lines]
            + [(line, LineType.EARNING) for line in effect.earning_lines]
            + [(line, LineType.DEDUCTION) for line in deductions.lines]
            + [(line, LineType.DEDUCTION) for line in effect.deduction_lines]
        )
        line_items = [
            cls._line(line, line_type, sort_order)
            for sort_order, (line, line_type) in enumerate(ordered_lines)
        ]
        
        return PayrollRecord(
            id=uuid.uuid4(),
            company_id=company_id,
            employee_id=employee_id,
            structure_id=structure_id,
            month=month,
            year=year,
            working_days=attendance.total_working_days,
            present_days=attendance.present_days,
            absent_days=attendance.absent_days,
            paid_leave_days=attendance.paid_leave_days,
            unpaid_leave_days=attendance.unpaid_leave_days,
            payable_days=attendance.payable_days,
            loss_of_pay_days=attendance.loss_of_pay_days,
            basic_salary=round_money(earnings.basic_salary),
            gross_salary=gross,
            total_deductions=total_deductions,
            net_salary=net,
            status=PayrollStatus.DRAFT,
            line_items=line_items,
        )


# ===========================================
# PAYROLL SERVICE
# ===========================================

class PayrollService:
    """
    Payroll record lookups, status transitions and reports.
    """
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def get_payroll_record(
        self,
        payroll_id: uuid.UUID,
        company_id: Optional[uuid.UUID] = None,
    ) -> Optional[PayrollRecord]:
        """Get payroll record by ID."""
        query = select(PayrollRecord).where(PayrollRecord.id == payroll_id)
        if company_id:
            query = query.where(PayrollRecord.company_id == company_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()
    
    async def _get_or_raise(self, payroll_id: uuid.UUID) -> PayrollRecord:
        record = await self.get_payroll_record(payroll_id)
        if not record:
            raise PayrollNotFoundException(payroll_id)
        return record
    
    async def list_payroll_records(
        self,
        company_id: uuid.UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
        status: Optional[PayrollStatus] = None,
        employee_id: Optional[uuid.UUID] = None,
        department: Optional[str] = None,
    ) -> List[PayrollRecord]:
        """List payroll records with filters."""
        query = select(PayrollRecord).where(PayrollRecord.company_id == company_id)
        
        if month:
            query = query.where(PayrollRecord.month == month)
        if year:
            query = query.where(PayrollRecord.year == year)
        if status:
            query = query.where(PayrollRecord.status == status)
        if employee_id:
            query = query.where(PayrollRecord.employee_id == employee_id)
        if department:
            query = query.join(Employee, PayrollRecord.employee_id == Employee.id).where(
                Employee.department == department
            )
        
        query = query.order_by(
            PayrollRecord.year.desc(),
            PayrollRecord.month.desc(),
            PayrollRecord.employee_id,
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
    
    async def list_payslips(
        self,
        company_id: uuid.UUID,
        employee_id: Optional[uuid.UUID] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> List[PayrollRecord]:
        """Payslips are approved or paid payroll records only."""
        query = select(PayrollRecord).where(
            and_(
                PayrollRecord.company_id == company_id,
                PayrollRecord.status.in_(PAYSLIP_STATUSES),
            )
        )
        if employee_id:
            query = query.where(PayrollRecord.employee_id == employee_id)
        if month:
            query = query.where(PayrollRecord.month == month)
        if year:
            query = query.where(PayrollRecord.year == year)
        
        query = query.order_by(PayrollRecord.year.desc(), PayrollRecord.month.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())
    
    # ===========================================
    # TRANSITIONS
    # ===========================================
    
    async def process(self, payroll_id: uuid.UUID) -> PayrollRecord:
        """Move a draft record to processed."""
        record = await self._get_or_raise(payroll_id)
        record.status = check_transition(record, "process")
        record.processed_at = datetime.now(timezone.utc)
        
        await self.db.commit()
        await self.db.refresh(record)
        
        logger.info(f"Payroll {payroll_id} processed")
        return record
    
    async def approve(
        self,
        payroll_id: uuid.UUID,
        approved_by_id: Optional[uuid.UUID] = None,
        remarks: Optional[str] = None,
    ) -> PayrollRecord:
        """Approve a processed record."""
        record = await self._get_or_raise(payroll_id)
        record.status = check_transition(record, "approve")
        record.approved_at = datetime.now(timezone.utc)
        record.approved_by_id = approved_by_id
        record.approver_remarks = remarks
        
        await self.db.commit()
        await self.db.refresh(record)
        
        logger.info(f"Payroll {payroll_id} approved by {approved_by_id}")
        return record
    
    async def mark_paid(
        self,
        payroll_id: uuid.UUID,
        payment_date: date,
        payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        transaction_reference: Optional[str] = None,
        utr_number: Optional[str] = None,
    ) -> PayrollRecord:
        """
        Mark an approved record as paid.
        
        Creates the internal PayrollPayment row (amount = net salary) that
        reconciliation later matches against the settlement feed.
        """
        record = await self._get_or_raise(payroll_id)
        target = check_transition(record, "mark_paid")
        
        payment = PayrollPayment(
            company_id=record.company_id,
            employee_id=record.employee_id,
            payroll_record_id=record.id,
            month=record.month,
            year=record.year,
            amount=record.net_salary,
            payment_date=payment_date,
            payment_method=payment_method,
            transaction_reference=transaction_reference,
            utr_number=utr_number,
            status=PaymentStatus.COMPLETED,
        )
        self.db.add(payment)
        
        record.status = target
        record.paid_at = datetime.combine(payment_date, datetime.min.time(), tzinfo=timezone.utc)
        record.payment_method = payment_method
        record.transaction_reference = transaction_reference
        record.utr_number = utr_number
        
        await self.db.commit()
        await self.db.refresh(record)
        
        logger.info(f"Payroll {payroll_id} marked paid ({record.net_salary}, UTR {utr_number})")
        return record
    
    async def reverse(self, payroll_id: uuid.UUID, reason: str) -> PayrollRecord:
        """Reverse a paid record and its payment."""
        if not reason or not reason.strip():
            raise ValidationException("Reversal reason is required", field="reason")
        
        record = await self._get_or_raise(payroll_id)
        record.status = check_transition(record, "reverse")
        record.reversed_at = datetime.now(timezone.utc)
        record.reversal_reason = reason.strip()
        
        for payment in record.payments:
            if payment.status == PaymentStatus.COMPLETED:
                payment.status = PaymentStatus.REVERSED
        
        await self.db.commit()
        await self.db.refresh(record)
        
        logger.warning(f"Payroll {payroll_id} reversed: {record.reversal_reason}")
        return record
    
    # ===========================================
    # BULK OPERATIONS
    # ===========================================
    
    async def _bulk(self, payroll_ids: Sequence[uuid.UUID], action) -> BulkOperationResult:
        result = BulkOperationResult()
        for payroll_id in payroll_ids:
            try:
                await action(payroll_id)
                result.successful.append(payroll_id)
            except AppException as e:
                await self.db.rollback()
                result.failed.append(
                    BulkOperationFailure(payroll_id=payroll_id, code=e.code.value, error=e.message)
                )
        return result
    
    async def bulk_approve(
        self,
        payroll_ids: Sequence[uuid.UUID],
        approved_by_id: Optional[uuid.UUID] = None,
        remarks: Optional[str] = None,
    ) -> BulkOperationResult:
        """Approve several records; a failure does not stop the rest."""
        result = await self._bulk(
            payroll_ids,
            lambda payroll_id: self.approve(payroll_id, approved_by_id, remarks),
        )
        logger.info(f"Bulk approve: {len(result.successful)} ok, {len(result.failed)} failed")
        return result
    
    async def bulk_mark_paid(
        self,
        payroll_ids: Sequence[uuid.UUID],
        payment_date: date,
        payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        references: Optional[Dict[uuid.UUID, str]] = None,
    ) -> BulkOperationResult:
        """
        Mark several records paid.
        
        references maps payroll id to its UTR; records without one are paid
        without a reference.
        """
        references = references or {}
        result = await self._bulk(
            payroll_ids,
            lambda payroll_id: self.mark_paid(
                payroll_id,
                payment_date,
                payment_method=payment_method,
                utr_number=references.get(payroll_id),
            ),
        )
        logger.info(f"Bulk mark paid: {len(result.successful)} ok, {len(result.failed)} failed")
        return result
    
    # ===========================================
    # REPORTS
    # ===========================================
    
    async def get_payroll_report(
        self,
        company_id: uuid.UUID,
        month: int,
        year: int,
        group_by: str = "department",
    ) -> PayrollReport:
        """Totals for a period grouped by department or employee."""
        validate_period(month, year)
        if group_by not in ("department", "employee"):
            raise ValidationException(
                f"Unsupported group_by '{group_by}'", field="group_by",
            )
        
        records = await self.list_payroll_records(company_id, month=month, year=year)
        
        groups: Dict[str, PayrollReportGroup] = {}
        for record in records:
            if group_by == "employee":
                key = str(record.employee_id)
            else:
                key = record.employee.department or UNASSIGNED_GROUP
            
            group = groups.setdefault(key, PayrollReportGroup(key=key))
            group.employee_count += 1
            group.total_gross_salary += record.gross_salary
            group.total_deductions += record.total_deductions
            group.total_net_salary += record.net_salary
            group.payroll_ids.append(record.id)
        
        return PayrollReport(
            month=month,
            year=year,
            group_by=group_by,
            employee_count=len(records),
            total_gross_salary=round_money(sum((r.gross_salary for r in records), ZERO)),
            total_deductions=round_money(sum((r.total_deductions for r in records), ZERO)),
            total_net_salary=round_money(sum((r.net_salary for r in records), ZERO)),
            groups=groups,
        )
