"""
Seed Script: Demo Payroll and Reconciliation
============================================
Creates a demo company's employees, salary structures and attendance for one
month, generates and pays payroll, then reconciles the payments against a
bank statement CSV.

This script:
- Creates the schema in the configured database (DATABASE_URL)
- Seeds 5 employees with standard components
- Generates, approves and pays payroll for the month
- Reconciles against a statement with one bank fee and one missing transfer

Usage:
    python scripts/seed_payroll_demo.py [statement.csv]
"""

import asyncio
import random
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

# Add project root to path
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from payrecon.config import settings
from payrecon.database import async_session_maker, close_db, init_db
from payrecon.logging_config import configure_logging
from payrecon.models.attendance import Attendance, AttendanceStatus
from payrecon.models.employee import Employee
from payrecon.models.salary import CalculationType, ComponentType
from payrecon.services.discrepancy_tracker import DiscrepancyTracker
from payrecon.services.payroll_generation_service import PayrollGenerationService
from payrecon.services.payroll_service import PayrollService
from payrecon.services.reconciliation_service import ReconciliationService
from payrecon.services.salary_structure_service import SalaryStructureService
from payrecon.services.settlement_feed import StaticSettlementFeed, parse_settlement_csv
from payrecon.utils.money import period_bounds


DEMO_MONTH = 5
DEMO_YEAR = 2024

DEMO_EMPLOYEES = [
    ("EMP001", "Adaeze", "Okafor", "Engineering", "60000"),
    ("EMP002", "Tunde", "Bakare", "Engineering", "52000"),
    ("EMP003", "Ngozi", "Eze", "Finance", "48000"),
    ("EMP004", "Musa", "Abdullahi", "Operations", "36000"),
    ("EMP005", "Chioma", "Nwosu", None, "30000"),
]

COMPONENTS = [
    # code, name, type, calculation, statutory, order, value
    ("HRA", "House Rent Allowance", ComponentType.EARNING, CalculationType.PERCENTAGE, False, 1, "40"),
    ("CONV", "Conveyance", ComponentType.EARNING, CalculationType.FIXED, False, 2, "1600"),
    ("PF", "Provident Fund", ComponentType.DEDUCTION, CalculationType.PERCENTAGE, True, 1, "12"),
    ("PT", "Professional Tax", ComponentType.DEDUCTION, CalculationType.FIXED, True, 2, "200"),
]


def working_days(month: int, year: int) -> List[date]:
    """Weekdays of the month."""
    start, end = period_bounds(month, year)
    days = []
    current = start
    while current <= end:
        if current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)
    return days


async def seed_employees(session, company_id: uuid.UUID) -> List[Employee]:
    """Create employees, components and structures."""
    structures = SalaryStructureService(session)
    components = []
    for code, name, component_type, calculation, statutory, order, value in COMPONENTS:
        component = await structures.create_salary_component(company_id, {
            "code": code,
            "name": name,
            "component_type": component_type,
            "calculation_type": calculation,
            "is_statutory": statutory,
            "display_order": order,
        })
        components.append((component, Decimal(value)))
    
    employees = []
    for code, first_name, last_name, department, basic in DEMO_EMPLOYEES:
        employee = Employee(
            company_id=company_id,
            employee_code=code,
            first_name=first_name,
            last_name=last_name,
            email=f"{first_name.lower()}.{last_name.lower()}@example.com",
            department=department,
        )
        session.add(employee)
        await session.commit()
        
        await structures.create_salary_structure({
            "employee_id": employee.id,
            "effective_from": date(DEMO_YEAR, 1, 1),
            "basic_salary": Decimal(basic),
            "components": [
                {"component_id": component.id, "value": value}
                for component, value in components
            ],
        })
        employees.append(employee)
    
    return employees


async def seed_attendance(session, employees: List[Employee]) -> None:
    """Mostly present; a couple of absences scattered across the team."""
    rng = random.Random(DEMO_YEAR * 100 + DEMO_MONTH)
    for employee in employees:
        for day in working_days(DEMO_MONTH, DEMO_YEAR):
            status = AttendanceStatus.ABSENT if rng.random() < 0.05 else AttendanceStatus.PRESENT
            session.add(Attendance(employee_id=employee.id, attendance_date=day, status=status))
    await session.commit()


async def seed_payroll_demo(statement_path: Optional[str] = None):
    """Main function to seed and reconcile the demo month."""
    configure_logging()
    print("\n" + "=" * 70)
    print(f"  PAYROLL DEMO - {DEMO_MONTH:02d}/{DEMO_YEAR} ({settings.database_url})")
    print("=" * 70 + "\n")
    
    await init_db()
    company_id = uuid.uuid4()
    
    async with async_session_maker() as session:
        employees = await seed_employees(session, company_id)
        await seed_attendance(session, employees)
        print(f"[USERS] Employees seeded: {len(employees)}")
    
    result = await PayrollGenerationService(async_session_maker).generate_payroll(
        company_id, DEMO_MONTH, DEMO_YEAR,
    )
    print(f"[OK] Generated: {len(result.successful)}, failed: {len(result.failed)}")
    print(f"     Total net: {result.total_net}")
    
    _, pay_date = period_bounds(DEMO_MONTH, DEMO_YEAR)
    async with async_session_maker() as session:
        payroll = PayrollService(session)
        ids = [entry.payroll_id for entry in result.successful]
        for payroll_id in ids:
            await payroll.process(payroll_id)
        approved = await payroll.bulk_approve(ids)
        references = {payroll_id: f"UTR{index:06d}" for index, payroll_id in enumerate(approved.successful, 1)}
        paid = await payroll.bulk_mark_paid(approved.successful, pay_date, references=references)
        print(f"[PAY] Paid: {len(paid.successful)}")
        
        if statement_path:
            with open(statement_path, newline="") as handle:
                rows = parse_settlement_csv(handle)
        else:
            rows = []
            records = [await payroll.get_payroll_record(payroll_id) for payroll_id in paid.successful]
            # Bank fee on the first transfer, last transfer never arrives
            for position, record in enumerate(records[:-1]):
                amount = record.net_salary - (Decimal("25.00") if position == 0 else Decimal("0"))
                rows.append(f"{record.utr_number},{amount},{pay_date.isoformat()}")
            rows = parse_settlement_csv("reference,amount,date\n" + "\n".join(rows) + "\n")
        
        run = await ReconciliationService(session).reconcile(
            company_id, DEMO_MONTH, DEMO_YEAR, StaticSettlementFeed(rows),
        )
        report = await DiscrepancyTracker(session).export_report(run.id)
    
    print("\n" + "=" * 70)
    print(f"  RECONCILIATION {run.status.value.upper()}")
    print("=" * 70)
    for row in report.items:
        print(
            f"   {row.employee_code:<8} {row.internal_amount:>12} "
            f"{str(row.external_amount or '-'):>12} {row.match_status.value}"
        )
    print(f"\n   Orphaned settlements: {len(report.orphaned_settlements)}\n")
    
    await close_db()


if __name__ == "__main__":
    asyncio.run(seed_payroll_demo(sys.argv[1] if len(sys.argv) > 1 else None))
