"""
Payrecon - Payroll Generation Tests

Integration tests for batch generation: calculation, adjustments,
per-employee failure isolation and timeouts.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from payrecon.config import Settings
from payrecon.models.payroll import AdjustmentType, LineSource, LineType, PayrollStatus
from payrecon.services.attendance_aggregator import AttendanceAggregator
from payrecon.services.payroll_generation_service import PayrollGenerationService, is_duplicate_period
from payrecon.services.payroll_service import PayrollService
from payrecon.utils.error_handling import ErrorCode, NotFoundException
from payrecon.utils.money import round_money


@pytest_asyncio.fixture
async def components(seed):
    return await seed.standard_components()


@pytest_asyncio.fixture
async def standard_employee(seed, components, month_statuses):
    """30000 basic with HRA 40%, conveyance 2000, medical 1250, PF 12%, PT 200; full attendance."""
    employee = await seed.employee("EMP001")
    await seed.structure(
        employee,
        "30000",
        {
            components["HRA"]: "40",
            components["CONV"]: "2000",
            components["MED"]: "1250",
            components["PF"]: "12",
            components["PT"]: "200",
        },
    )
    await seed.attendance(employee, month_statuses(22))
    return employee


@pytest.fixture
def generator(session_factory, test_settings):
    return PayrollGenerationService(session_factory, test_settings)


class TestPayrollGeneration:
    """Test batch payroll generation."""
    
    async def test_generates_draft_record(self, db_session, seed, standard_employee, generator):
        result = await generator.generate_payroll(seed.company_id, 5, 2024)
        
        assert result.failed == []
        assert len(result.successful) == 1
        
        record = await PayrollService(db_session).get_payroll_record(result.successful[0].payroll_id)
        assert record.status == PayrollStatus.DRAFT
        assert record.basic_salary == Decimal("30000.00")
        assert record.gross_salary == Decimal("45250.00")
        assert record.total_deductions == Decimal("5630.00")
        assert record.net_salary == Decimal("39620.00")
        assert record.working_days == 22
        assert record.loss_of_pay_days == Decimal("0")
        assert [line.code for line in record.earnings] == ["HRA", "CONV", "MED"]
        assert [line.code for line in record.deductions] == ["PF", "PT"]
    
    async def test_net_invariant_holds(self, db_session, seed, components, month_statuses, generator):
        for index, basic in enumerate(["33333.33", "41111.11", "27500.55"]):
            employee = await seed.employee(f"EMP00{index}")
            await seed.structure(
                employee, basic,
                {components["HRA"]: "37.5", components["CONV"]: "1999.99", components["PF"]: "12"},
            )
            await seed.attendance(employee, month_statuses(19, absent=3))
        
        result = await generator.generate_payroll(seed.company_id, 5, 2024)
        records = await PayrollService(db_session).list_payroll_records(seed.company_id, month=5, year=2024)
        
        assert len(result.successful) == 3
        for record in records:
            assert record.net_salary == round_money(record.gross_salary - record.total_deductions)
    
    async def test_no_loss_of_pay_keeps_exact_basic(self, db_session, seed, month_statuses, generator):
        employee = await seed.employee("EMP001")
        await seed.structure(employee, "41234.57")
        await seed.attendance(employee, month_statuses(21))
        
        result = await generator.generate_payroll(seed.company_id, 5, 2024)
        
        record = await PayrollService(db_session).get_payroll_record(result.successful[0].payroll_id)
        assert record.basic_salary == Decimal("41234.57")
    
    async def test_unpaid_leave_prorates_basic(self, db_session, seed, month_statuses, generator):
        """22 working days, 20 present, 2 unpaid leave days."""
        employee = await seed.employee("EMP001")
        await seed.structure(employee, "50000")
        await seed.attendance(employee, month_statuses(20, on_leave=2))
        await seed.leave(employee, date(2024, 5, 21), date(2024, 5, 22), "2", is_paid=False)
        
        result = await generator.generate_payroll(seed.company_id, 5, 2024)
        
        record = await PayrollService(db_session).get_payroll_record(result.successful[0].payroll_id)
        assert record.payable_days == Decimal("20")
        assert record.loss_of_pay_days == Decimal("2")
        assert record.basic_salary == Decimal("45454.55")
    
    async def test_adjustments_applied_once(self, db_session, seed, standard_employee, generator):
        bonus = await seed.adjustment(standard_employee, AdjustmentType.BONUS, "5000")
        advance = await seed.adjustment(standard_employee, AdjustmentType.ADVANCE, "1000")
        other_month = await seed.adjustment(standard_employee, AdjustmentType.BONUS, "700", month=6)
        
        result = await generator.generate_payroll(seed.company_id, 5, 2024)
        
        payroll_id = result.successful[0].payroll_id
        record = await PayrollService(db_session).get_payroll_record(payroll_id)
        assert record.gross_salary == Decimal("50250.00")
        assert record.total_deductions == Decimal("6630.00")
        assert record.net_salary == Decimal("43620.00")
        
        adjustment_lines = [line for line in record.line_items if line.source == LineSource.ADJUSTMENT]
        assert {(line.line_type, line.adjustment_id) for line in adjustment_lines} == {
            (LineType.EARNING, bonus.id),
            (LineType.DEDUCTION, advance.id),
        }
        
        for adjustment in (bonus, advance, other_month):
            await db_session.refresh(adjustment)
        assert bonus.applied and bonus.payroll_record_id == payroll_id
        assert advance.applied and advance.payroll_record_id == payroll_id
        assert not other_month.applied
    
    async def test_percentage_deduction_ignores_adjustments(self, db_session, seed, standard_employee, generator):
        """PF stays 12% of the component gross even with a bonus."""
        await seed.adjustment(standard_employee, AdjustmentType.BONUS, "5000")
        
        result = await generator.generate_payroll(seed.company_id, 5, 2024)
        
        record = await PayrollService(db_session).get_payroll_record(result.successful[0].payroll_id)
        pf = next(line for line in record.deductions if line.code == "PF")
        assert pf.amount == Decimal("5430.00")
    
    async def test_regeneration_conflicts_without_applying_adjustments(
        self, db_session, seed, standard_employee, generator,
    ):
        await generator.generate_payroll(seed.company_id, 5, 2024)
        late_bonus = await seed.adjustment(standard_employee, AdjustmentType.BONUS, "900")
        
        result = await generator.generate_payroll(seed.company_id, 5, 2024)
        
        assert result.successful == []
        assert result.failed[0].code == ErrorCode.PAYROLL_EXISTS.value
        await db_session.refresh(late_bonus)
        assert late_bonus.applied is False
        assert late_bonus.payroll_record_id is None
    
    async def test_missing_structure_does_not_abort_batch(self, db_session, seed, standard_employee, generator):
        newcomer = await seed.employee("EMP002")
        
        result = await generator.generate_payroll(seed.company_id, 5, 2024)
        
        assert [entry.employee_id for entry in result.successful] == [standard_employee.id]
        assert len(result.failed) == 1
        assert result.failed[0].employee_id == newcomer.id
        assert result.failed[0].code == ErrorCode.SALARY_STRUCTURE_NOT_FOUND.value
    
    async def test_unknown_employee_reported(self, seed, standard_employee, generator):
        stranger = uuid4()
        
        result = await generator.generate_payroll(
            seed.company_id, 5, 2024, employee_ids=[standard_employee.id, stranger],
        )
        
        assert len(result.successful) == 1
        assert result.failed[0].employee_id == stranger
        assert result.failed[0].code == ErrorCode.EMPLOYEE_NOT_FOUND.value
    
    async def test_negative_net_is_a_failure(self, db_session, seed, month_statuses, generator):
        employee = await seed.employee("EMP001")
        await seed.structure(employee, "1000")
        await seed.attendance(employee, month_statuses(22))
        advance = await seed.adjustment(employee, AdjustmentType.ADVANCE, "5000")
        
        result = await generator.generate_payroll(seed.company_id, 5, 2024)
        
        assert result.failed[0].code == ErrorCode.VALIDATION_ERROR.value
        await db_session.refresh(advance)
        assert advance.applied is False
    
    async def test_inactive_and_other_department_excluded(self, seed, standard_employee, generator):
        await seed.employee("EMP002", is_active=False)
        await seed.employee("EMP003", department="Sales")
        
        result = await generator.generate_payroll(seed.company_id, 5, 2024, department="Engineering")
        
        assert [entry.employee_id for entry in result.successful] == [standard_employee.id]
        assert result.failed == []
    
    async def test_no_employees_raises(self, company_id, generator):
        with pytest.raises(NotFoundException):
            await generator.generate_payroll(company_id, 5, 2024)
    
    async def test_bounded_concurrency_generates_all(self, seed, components, month_statuses, session_factory):
        for index in range(6):
            employee = await seed.employee(f"EMP10{index}")
            await seed.structure(employee, "25000", {components["HRA"]: "40"})
            await seed.attendance(employee, month_statuses(22))
        
        config = Settings(_env_file=None, payroll_max_workers=2)
        result = await PayrollGenerationService(session_factory, config).generate_payroll(seed.company_id, 5, 2024)
        
        assert len(result.successful) == 6
        assert result.total_net == Decimal("210000.00")


class SlowAttendanceAggregator(AttendanceAggregator):
    async def aggregate(self, employee_id, period_start, period_end):
        await asyncio.sleep(1)
        return await super().aggregate(employee_id, period_start, period_end)


class TestExternalReadTimeout:
    """Test attendance read timeouts."""
    
    async def test_slow_attendance_read_fails_unit(self, db_session, seed, standard_employee, session_factory):
        bonus = await seed.adjustment(standard_employee, AdjustmentType.BONUS, "5000")
        config = Settings(_env_file=None, external_read_timeout_seconds=0.05)
        service = PayrollGenerationService(session_factory, config, aggregator_cls=SlowAttendanceAggregator)
        
        result = await service.generate_payroll(seed.company_id, 5, 2024)
        
        assert result.successful == []
        assert result.failed[0].code == ErrorCode.EXTERNAL_READ_TIMEOUT.value
        records = await PayrollService(db_session).list_payroll_records(seed.company_id)
        assert records == []
        await db_session.refresh(bonus)
        assert bonus.applied is False


SQLITE_DUPLICATE = (
    "UNIQUE constraint failed: "
    "payroll_records.employee_id, payroll_records.month, payroll_records.year"
)
POSTGRES_DUPLICATE = (
    'duplicate key value violates unique constraint "uq_payroll_record_employee_period"'
)


def integrity_error(message):
    return IntegrityError("INSERT INTO payroll_records ...", {}, Exception(message))


class TestConstraintViolations:
    """Only the employee+period unique violation is reported as an existing payroll."""
    
    @pytest.mark.parametrize("message", [SQLITE_DUPLICATE, POSTGRES_DUPLICATE])
    def test_period_violation_recognised(self, message):
        assert is_duplicate_period(integrity_error(message))
    
    @pytest.mark.parametrize("message", [
        "FOREIGN KEY constraint failed",
        "CHECK constraint failed: ck_payroll_records_net_salary_non_negative",
        "UNIQUE constraint failed: payroll_line_items.id",
    ])
    def test_other_violations_not_recognised(self, message):
        assert not is_duplicate_period(integrity_error(message))
    
    @pytest.mark.parametrize("message, expected_code", [
        (SQLITE_DUPLICATE, ErrorCode.PAYROLL_EXISTS.value),
        ("FOREIGN KEY constraint failed", ErrorCode.INTERNAL_ERROR.value),
    ])
    async def test_batch_failure_code(self, seed, standard_employee, session_factory, test_settings,
                                      message, expected_code):
        class ViolatingAggregator(AttendanceAggregator):
            async def aggregate(self, employee_id, period_start, period_end):
                raise integrity_error(message)
        
        service = PayrollGenerationService(session_factory, test_settings, aggregator_cls=ViolatingAggregator)
        
        result = await service.generate_payroll(seed.company_id, 5, 2024)
        
        assert result.successful == []
        assert result.failed[0].employee_id == standard_employee.id
        assert result.failed[0].code == expected_code
