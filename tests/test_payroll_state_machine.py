"""
Payrecon - Payroll State Machine Tests

draft -> processed -> approved -> paid -> reversed
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from payrecon.models.payroll import PaymentMethod, PaymentStatus, PayrollStatus
from payrecon.schemas.payroll import MarkPaidRequest, PayrollRecordResponse
from payrecon.services.payroll_generation_service import PayrollGenerationService
from payrecon.services.payroll_service import PayrollService
from payrecon.utils.error_handling import (
    ErrorCode,
    InvalidStateException,
    PayrollNotFoundException,
    ValidationException,
)


@pytest_asyncio.fixture
async def drafts(seed, month_statuses, session_factory, test_settings):
    """Two draft records: EMP001 (Engineering, 40000) and EMP002 (Sales, 30000)."""
    for code, department, basic in (("EMP001", "Engineering", "40000"), ("EMP002", "Sales", "30000")):
        employee = await seed.employee(code, department=department)
        await seed.structure(employee, basic)
        await seed.attendance(employee, month_statuses(22))
    
    result = await PayrollGenerationService(session_factory, test_settings).generate_payroll(
        seed.company_id, 5, 2024,
    )
    return [entry.payroll_id for entry in result.successful]


async def advance_to_approved(service: PayrollService, payroll_id):
    await service.process(payroll_id)
    return await service.approve(payroll_id, approved_by_id=uuid4(), remarks="Looks right")


class TestTransitions:
    """Test the payroll record lifecycle."""
    
    async def test_full_lifecycle(self, db_session, drafts):
        service = PayrollService(db_session)
        payroll_id = drafts[0]
        
        processed = await service.process(payroll_id)
        assert processed.status == PayrollStatus.PROCESSED
        assert processed.processed_at is not None
        
        approved = await service.approve(payroll_id, approved_by_id=uuid4(), remarks="OK")
        assert approved.status == PayrollStatus.APPROVED
        assert approved.approver_remarks == "OK"
        
        request = MarkPaidRequest(payment_date=date(2024, 5, 31), utr_number="UTR0001")
        paid = await service.mark_paid(payroll_id, **request.model_dump())
        assert paid.status == PayrollStatus.PAID
        assert paid.utr_number == "UTR0001"
        assert paid.payment_method == PaymentMethod.BANK_TRANSFER
        assert len(paid.payments) == 1
        payment = paid.payments[0]
        assert payment.amount == paid.net_salary
        assert payment.payment_date == date(2024, 5, 31)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.reference == "UTR0001"
        
        reversed_record = await service.reverse(payroll_id, "Paid to wrong account")
        assert reversed_record.status == PayrollStatus.REVERSED
        assert reversed_record.reversal_reason == "Paid to wrong account"
        assert reversed_record.payments[0].status == PaymentStatus.REVERSED
    
    async def test_response_schema(self, db_session, drafts):
        record = await PayrollService(db_session).get_payroll_record(drafts[0])
        
        response = PayrollRecordResponse.model_validate(record)
        
        assert response.status == PayrollStatus.DRAFT
        assert response.net_salary == Decimal("40000.00")
        assert response.earnings == []
    
    async def test_approve_draft_rejected_without_change(self, db_session, drafts):
        service = PayrollService(db_session)
        
        with pytest.raises(InvalidStateException) as exc_info:
            await service.approve(drafts[0], approved_by_id=uuid4())
        
        assert exc_info.value.code == ErrorCode.INVALID_STATE
        record = await service.get_payroll_record(drafts[0])
        assert record.status == PayrollStatus.DRAFT
        assert record.approved_at is None
    
    async def test_mark_paid_requires_approved(self, db_session, drafts):
        service = PayrollService(db_session)
        await service.process(drafts[0])
        
        with pytest.raises(InvalidStateException):
            await service.mark_paid(drafts[0], payment_date=date(2024, 5, 31))
        
        record = await service.get_payroll_record(drafts[0])
        assert record.payments == []
    
    async def test_cannot_process_twice(self, db_session, drafts):
        service = PayrollService(db_session)
        await service.process(drafts[0])
        
        with pytest.raises(InvalidStateException):
            await service.process(drafts[0])
    
    async def test_reverse_requires_paid_and_reason(self, db_session, drafts):
        service = PayrollService(db_session)
        await advance_to_approved(service, drafts[0])
        
        with pytest.raises(InvalidStateException):
            await service.reverse(drafts[0], "Not paid yet")
        with pytest.raises(ValidationException):
            await service.reverse(drafts[0], "  ")
    
    async def test_unknown_record(self, db_session):
        with pytest.raises(PayrollNotFoundException):
            await PayrollService(db_session).process(uuid4())


class TestBulkOperations:
    """Bulk operations report per-record results."""
    
    async def test_bulk_approve_mixed(self, db_session, drafts):
        service = PayrollService(db_session)
        await service.process(drafts[0])
        
        result = await service.bulk_approve(drafts, approved_by_id=uuid4())
        
        assert result.successful == [drafts[0]]
        assert result.failed[0].payroll_id == drafts[1]
        assert result.failed[0].code == ErrorCode.INVALID_STATE.value
    
    async def test_bulk_mark_paid(self, db_session, drafts):
        service = PayrollService(db_session)
        for payroll_id in drafts:
            await advance_to_approved(service, payroll_id)
        
        result = await service.bulk_mark_paid(
            drafts + [uuid4()],
            payment_date=date(2024, 5, 31),
            references={drafts[0]: "UTR-A", drafts[1]: "UTR-B"},
        )
        
        assert result.successful == drafts
        assert result.failed[0].code == ErrorCode.PAYROLL_NOT_FOUND.value
        record = await service.get_payroll_record(drafts[1])
        assert record.utr_number == "UTR-B"


class TestQueriesAndReports:
    """Payslips and grouped reports."""
    
    async def test_payslips_only_approved_or_paid(self, db_session, seed, drafts):
        service = PayrollService(db_session)
        await advance_to_approved(service, drafts[0])
        
        payslips = await service.list_payslips(seed.company_id, month=5, year=2024)
        
        assert [record.id for record in payslips] == [drafts[0]]
    
    async def test_report_grouped_by_department(self, db_session, seed, drafts):
        report = await PayrollService(db_session).get_payroll_report(seed.company_id, 5, 2024)
        
        assert report.employee_count == 2
        assert report.total_net_salary == Decimal("70000.00")
        assert set(report.groups) == {"Engineering", "Sales"}
        assert report.groups["Sales"].total_gross_salary == Decimal("30000.00")
    
    async def test_report_grouped_by_employee(self, db_session, seed, drafts):
        report = await PayrollService(db_session).get_payroll_report(
            seed.company_id, 5, 2024, group_by="employee",
        )
        
        assert len(report.groups) == 2
        assert all(group.employee_count == 1 for group in report.groups.values())
    
    async def test_report_rejects_unknown_grouping(self, db_session, seed, drafts):
        with pytest.raises(ValidationException):
            await PayrollService(db_session).get_payroll_report(seed.company_id, 5, 2024, group_by="designation")
    
    async def test_list_filtered_by_department(self, db_session, seed, drafts):
        records = await PayrollService(db_session).list_payroll_records(seed.company_id, department="Sales")
        
        assert len(records) == 1
        assert records[0].net_salary == Decimal("30000.00")
