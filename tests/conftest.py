"""
Payrecon - Test Configuration

Pytest fixtures and configuration. Every test gets its own SQLite file so
concurrent sessions use separate connections.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional, Sequence
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payrecon.config import Settings
from payrecon.database import build_engine, build_session_maker, init_db
from payrecon.models.attendance import (
    Attendance, AttendanceStatus, LeaveRequest, LeaveStatus, LeaveType,
)
from payrecon.models.employee import Employee
from payrecon.models.payroll import AdjustmentType, PayrollAdjustment
from payrecon.models.salary import (
    CalculationType, ComponentType, SalaryComponent, SalaryStructure,
)
from payrecon.services.salary_structure_service import SalaryStructureService


# ===========================================
# DATABASE FIXTURES
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Create a fresh SQLite database for each test."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'payrecon_test.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return build_session_maker(engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        payroll_max_workers=4,
        external_read_timeout_seconds=5.0,
    )


@pytest.fixture
def company_id() -> UUID:
    return uuid4()


# ===========================================
# DATA SEEDING
# ===========================================

class PayrollSeeder:
    """Creates directory, salary, attendance and leave rows for tests."""
    
    def __init__(self, db: AsyncSession, company_id: UUID):
        self.db = db
        self.company_id = company_id
        self.structures = SalaryStructureService(db)
        self._leave_types: Dict[bool, LeaveType] = {}
    
    async def employee(
        self,
        code: str,
        department: Optional[str] = "Engineering",
        is_active: bool = True,
    ) -> Employee:
        employee = Employee(
            id=uuid4(),
            company_id=self.company_id,
            employee_code=code,
            first_name="Test",
            last_name=code.title(),
            email=f"{code.lower()}@example.com",
            department=department,
            is_active=is_active,
        )
        self.db.add(employee)
        await self.db.commit()
        await self.db.refresh(employee)
        return employee
    
    async def standard_components(self) -> Dict[str, SalaryComponent]:
        """HRA 40%, conveyance fixed, statutory medical, PF 12% of gross, PT fixed."""
        specs = [
            ("HRA", "House Rent Allowance", ComponentType.EARNING, CalculationType.PERCENTAGE, False, 1),
            ("CONV", "Conveyance", ComponentType.EARNING, CalculationType.FIXED, False, 2),
            ("MED", "Medical Allowance", ComponentType.EARNING, CalculationType.FIXED, True, 3),
            ("PF", "Provident Fund", ComponentType.DEDUCTION, CalculationType.PERCENTAGE, True, 1),
            ("PT", "Professional Tax", ComponentType.DEDUCTION, CalculationType.FIXED, True, 2),
        ]
        components = {}
        for code, name, component_type, calculation_type, statutory, order in specs:
            components[code] = await self.structures.create_salary_component(
                self.company_id,
                {
                    "code": code,
                    "name": name,
                    "component_type": component_type,
                    "calculation_type": calculation_type,
                    "is_statutory": statutory,
                    "display_order": order,
                },
            )
        return components
    
    async def structure(
        self,
        employee: Employee,
        basic_salary: str,
        values: Optional[Dict[SalaryComponent, str]] = None,
        effective_from: date = date(2024, 1, 1),
    ) -> SalaryStructure:
        return await self.structures.create_salary_structure({
            "employee_id": employee.id,
            "effective_from": effective_from,
            "basic_salary": Decimal(basic_salary),
            "components": [
                {"component_id": component.id, "value": Decimal(value)}
                for component, value in (values or {}).items()
            ],
        })
    
    async def attendance(
        self,
        employee: Employee,
        statuses: Sequence[AttendanceStatus],
        start: date = date(2024, 5, 1),
    ) -> List[Attendance]:
        """One row per status on consecutive days from start."""
        rows = [
            Attendance(
                employee_id=employee.id,
                attendance_date=start + timedelta(days=offset),
                status=status,
            )
            for offset, status in enumerate(statuses)
        ]
        self.db.add_all(rows)
        await self.db.commit()
        return rows
    
    async def leave_type(self, is_paid: bool) -> LeaveType:
        if is_paid not in self._leave_types:
            leave_type = LeaveType(
                company_id=self.company_id,
                code="CL" if is_paid else "LWP",
                name="Casual Leave" if is_paid else "Leave Without Pay",
                is_paid=is_paid,
            )
            self.db.add(leave_type)
            await self.db.commit()
            self._leave_types[is_paid] = leave_type
        return self._leave_types[is_paid]
    
    async def leave(
        self,
        employee: Employee,
        start_date: date,
        end_date: date,
        days: str,
        is_paid: bool,
        status: LeaveStatus = LeaveStatus.APPROVED,
    ) -> LeaveRequest:
        leave_type = await self.leave_type(is_paid)
        request = LeaveRequest(
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            start_date=start_date,
            end_date=end_date,
            number_of_days=Decimal(days),
            status=status,
        )
        self.db.add(request)
        await self.db.commit()
        return request
    
    async def adjustment(
        self,
        employee: Employee,
        adjustment_type: AdjustmentType,
        amount: str,
        month: int = 5,
        year: int = 2024,
    ) -> PayrollAdjustment:
        adjustment = PayrollAdjustment(
            employee_id=employee.id,
            month=month,
            year=year,
            adjustment_type=adjustment_type,
            amount=Decimal(amount),
            reason=f"Test {adjustment_type.value}",
        )
        self.db.add(adjustment)
        await self.db.commit()
        await self.db.refresh(adjustment)
        return adjustment


@pytest.fixture
def seed(db_session: AsyncSession, company_id: UUID) -> PayrollSeeder:
    return PayrollSeeder(db_session, company_id)


def full_month(present: int, absent: int = 0, on_leave: int = 0) -> List[AttendanceStatus]:
    """Attendance statuses for a period."""
    return (
        [AttendanceStatus.PRESENT] * present
        + [AttendanceStatus.ABSENT] * absent
        + [AttendanceStatus.ON_LEAVE] * on_leave
    )


@pytest.fixture
def month_statuses():
    return full_month
