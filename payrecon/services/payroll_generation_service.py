"""
Payrecon - Payroll Generation Service

Batch payroll generation for a company and period.

Each employee is an independent unit of work run on its own AsyncSession:

    resolve structure -> aggregate attendance -> calculate -> merge adjustments
    -> build record -> insert record + lines, flag adjustments -> commit

A unit either commits everything or nothing. Failures are collected into
the result and never abort sibling units. Concurrency is bounded by
`payroll_max_workers`.
"""

import asyncio
import contextlib
import logging
import uuid
from typing import List, Optional, Sequence, Tuple, Type, Union

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payrecon.config import Settings, get_settings
from payrecon.models.employee import Employee, EmploymentStatus
from payrecon.models.payroll import PayrollRecord
from payrecon.schemas.payroll import (
    GeneratedPayroll, PayrollFailure, PayrollGenerationResult,
)
from payrecon.services.adjustment_service import AdjustmentApplier
from payrecon.services.attendance_aggregator import AttendanceAggregator
from payrecon.services.component_calculator import (
    calculate_deductions, calculate_earnings, lines_from_structure,
)
from payrecon.services.payroll_service import PayrollRecordBuilder
from payrecon.services.salary_structure_service import SalaryStructureService
from payrecon.utils.error_handling import (
    AppException,
    ErrorCode,
    NotFoundException,
    PayrollExistsException,
    validate_period,
)
from payrecon.utils.external_reads import read_with_timeout
from payrecon.utils.money import period_bounds

logger = logging.getLogger(__name__)

UnitOutcome = Union[GeneratedPayroll, PayrollFailure]

PERIOD_CONSTRAINT = "uq_payroll_record_employee_period"
# SQLite reports the columns instead of the constraint name
SQLITE_PERIOD_VIOLATION = (
    "UNIQUE constraint failed: "
    "payroll_records.employee_id, payroll_records.month, payroll_records.year"
)


def is_duplicate_period(error: IntegrityError) -> bool:
    """True when error is the one-record-per-employee-and-period violation."""
    message = str(error.orig)
    return PERIOD_CONSTRAINT in message or SQLITE_PERIOD_VIOLATION in message


class PayrollGenerationService:
    """
    Generates draft payroll records for many employees at once.
    """
    
    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Optional[Settings] = None,
        aggregator_cls: Type[AttendanceAggregator] = AttendanceAggregator,
    ):
        self.session_factory = session_factory
        self.config = config or get_settings()
        self.aggregator_cls = aggregator_cls
    
    # ===========================================
    # BATCH
    # ===========================================
    
    async def generate_payroll(
        self,
        company_id: uuid.UUID,
        month: int,
        year: int,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
        department: Optional[str] = None,
    ) -> PayrollGenerationResult:
        """
        Generate payroll for active employees of a company.
        
        Args:
            company_id: Tenant scope
            month: 1-12
            year: Payroll year
            employee_ids: Restrict to these employees (unknown IDs become failures)
            department: Restrict to one department
        
        Returns:
            PayrollGenerationResult with successful and failed entries
        """
        validate_period(month, year)
        result = PayrollGenerationResult(month=month, year=year)
        
        employees, missing = await self._select_employees(company_id, employee_ids, department)
        for employee_id in missing:
            result.failed.append(
                PayrollFailure(
                    employee_id=employee_id,
                    code=ErrorCode.EMPLOYEE_NOT_FOUND.value,
                    error=f"Active employee '{employee_id}' not found",
                )
            )
        
        if not employees:
            raise NotFoundException(
                "Employee",
                message="No active employees found for payroll generation",
            )
        
        logger.info(
            f"Generating payroll for {len(employees)} employees of company {company_id} "
            f"({month:02d}/{year}, {self.config.payroll_max_workers} workers)"
        )
        
        semaphore = asyncio.Semaphore(self.config.payroll_max_workers)
        write_lock = asyncio.Lock()
        outcomes = await asyncio.gather(*[
            self._run_unit(semaphore, write_lock, company_id, employee_id, month, year)
            for employee_id in employees
        ])
        
        for outcome in outcomes:
            if isinstance(outcome, GeneratedPayroll):
                result.successful.append(outcome)
            else:
                result.failed.append(outcome)
        
        logger.info(
            f"Payroll generation {month:02d}/{year} for company {company_id} finished: "
            f"{len(result.successful)} generated, {len(result.failed)} failed"
        )
        return result
    
    async def _select_employees(
        self,
        company_id: uuid.UUID,
        employee_ids: Optional[Sequence[uuid.UUID]],
        department: Optional[str],
    ) -> Tuple[List[uuid.UUID], List[uuid.UUID]]:
        query = select(Employee.id).where(
            and_(
                Employee.company_id == company_id,
                Employee.is_active == True,  # noqa: E712
                Employee.employment_status == EmploymentStatus.ACTIVE,
            )
        )
        if employee_ids:
            query = query.where(Employee.id.in_(employee_ids))
        if department:
            query = query.where(Employee.department == department)
        query = query.order_by(Employee.employee_code)
        
        async with self.session_factory() as session:
            rows = await session.execute(query)
            found = list(rows.scalars().all())
        
        missing = []
        if employee_ids:
            found_set = set(found)
            missing = [employee_id for employee_id in dict.fromkeys(employee_ids) if employee_id not in found_set]
        return found, missing
    
    # ===========================================
    # PER-EMPLOYEE UNIT
    # ===========================================
    
    async def _run_unit(
        self,
        semaphore: asyncio.Semaphore,
        write_lock: asyncio.Lock,
        company_id: uuid.UUID,
        employee_id: uuid.UUID,
        month: int,
        year: int,
    ) -> UnitOutcome:
        async with semaphore:
            async with self.session_factory() as session:
                try:
                    record = await self._generate_for_employee(
                        session, write_lock, company_id, employee_id, month, year,
                    )
                except AppException as e:
                    await session.rollback()
                    logger.warning(f"Payroll for employee {employee_id} failed: [{e.code.value}] {e.message}")
                    return PayrollFailure(employee_id=employee_id, code=e.code.value, error=e.message)
                except IntegrityError as e:
                    await session.rollback()
                    if not is_duplicate_period(e):
                        logger.exception(f"Constraint violation generating payroll for employee {employee_id}")
                        return PayrollFailure(
                            employee_id=employee_id,
                            code=ErrorCode.INTERNAL_ERROR.value,
                            error=str(e.orig),
                        )
                    conflict = PayrollExistsException(employee_id, month, year)
                    logger.warning(f"Payroll for employee {employee_id} already exists: {e.orig}")
                    return PayrollFailure(employee_id=employee_id, code=conflict.code.value, error=conflict.message)
                except Exception as e:
                    await session.rollback()
                    logger.exception(f"Unexpected error generating payroll for employee {employee_id}")
                    return PayrollFailure(
                        employee_id=employee_id,
                        code=ErrorCode.INTERNAL_ERROR.value,
                        error=str(e) or e.__class__.__name__,
                    )
        
        return GeneratedPayroll(
            employee_id=employee_id,
            payroll_id=record.id,
            gross_salary=record.gross_salary,
            total_deductions=record.total_deductions,
            net_salary=record.net_salary,
        )
    
    def _write_guard(self, session: AsyncSession, write_lock: asyncio.Lock):
        # SQLite allows a single writer per database file
        if session.get_bind().dialect.name == "sqlite":
            return write_lock
        return contextlib.nullcontext()
    
    async def _generate_for_employee(
        self,
        session: AsyncSession,
        write_lock: asyncio.Lock,
        company_id: uuid.UUID,
        employee_id: uuid.UUID,
        month: int,
        year: int,
    ) -> PayrollRecord:
        period_start, period_end = period_bounds(month, year)
        
        existing = await session.execute(
            select(PayrollRecord.id).where(
                and_(
                    PayrollRecord.employee_id == employee_id,
                    PayrollRecord.month == month,
                    PayrollRecord.year == year,
                )
            )
        )
        if existing.scalar_one_or_none():
            raise PayrollExistsException(employee_id, month, year)
        
        structure = await SalaryStructureService(session).resolve(employee_id, period_start)
        
        attendance = await read_with_timeout(
            "attendance",
            self.aggregator_cls(session).aggregate(employee_id, period_start, period_end),
            self.config.external_read_timeout_seconds,
        )
        adjustments = await AdjustmentApplier.fetch_pending(session, employee_id, month, year)
        
        component_lines = lines_from_structure(structure)
        earnings = calculate_earnings(structure.basic_salary, component_lines, attendance)
        deductions = calculate_deductions(earnings.gross, component_lines)
        effect = AdjustmentApplier.apply(earnings.gross, deductions.total, adjustments)
        
        record = PayrollRecordBuilder.build(
            company_id=company_id,
            employee_id=employee_id,
            structure_id=structure.id,
            month=month,
            year=year,
            attendance=attendance,
            earnings=earnings,
            deductions=deductions,
            effect=effect,
        )
        
        async with self._write_guard(session, write_lock):
            try:
                session.add(record)
                await session.flush()
                await AdjustmentApplier.mark_applied(session, effect.adjustment_ids, record.id)
                await session.commit()
            except Exception:
                # Release the write transaction before giving up the guard
                await session.rollback()
                raise
        
        logger.debug(
            f"Generated payroll {record.id} for employee {employee_id}: "
            f"gross {record.gross_salary}, deductions {record.total_deductions}, net {record.net_salary}"
        )
        return record
