"""
Payrecon - Payroll Adjustments

One-off adjustments (bonus, arrear, reimbursement, deduction, advance)
and the applier that merges them into a payroll calculation exactly once.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, and_, update
from sqlalchemy.ext.asyncio import AsyncSession

from payrecon.models.employee import Employee
from payrecon.models.payroll import AdjustmentType, PayrollAdjustment
from payrecon.services.component_calculator import CalculatedLine
from payrecon.utils.error_handling import (
    ConflictException,
    EmployeeNotFoundException,
    InvalidStateException,
    NotFoundException,
    validate_amount,
    validate_period,
)
from payrecon.utils.money import round_money

logger = logging.getLogger(__name__)


# ===========================================
# APPLIER
# ===========================================

@dataclass
class AdjustmentEffect:
    """Adjustment lines and the totals after merging them."""
    gross: Decimal
    total_deductions: Decimal
    earning_lines: List[CalculatedLine] = field(default_factory=list)
    deduction_lines: List[CalculatedLine] = field(default_factory=list)
    adjustment_ids: List[uuid.UUID] = field(default_factory=list)


class AdjustmentApplier:
    """Fetch, merge and flag pending adjustments."""
    
    @staticmethod
    async def fetch_pending(
        db: AsyncSession,
        employee_id: uuid.UUID,
        month: int,
        year: int,
    ) -> List[PayrollAdjustment]:
        result = await db.execute(
            select(PayrollAdjustment)
            .where(
                and_(
                    PayrollAdjustment.employee_id == employee_id,
                    PayrollAdjustment.month == month,
                    PayrollAdjustment.year == year,
                    PayrollAdjustment.applied == False,  # noqa: E712
                )
            )
            .order_by(PayrollAdjustment.created_at, PayrollAdjustment.id)
        )
        return list(result.scalars().all())
    
    @staticmethod
    def apply(
        gross: Decimal,
        total_deductions: Decimal,
        adjustments: Sequence[PayrollAdjustment],
    ) -> AdjustmentEffect:
        """Add earning-type adjustments to gross and the rest to deductions."""
        effect = AdjustmentEffect(gross=gross, total_deductions=total_deductions)
        for adjustment in adjustments:
            line = CalculatedLine(
                code=adjustment.adjustment_type.value.upper(),
                name=adjustment.reason or adjustment.adjustment_type.value.replace("_", " ").title(),
                amount=round_money(adjustment.amount),
                adjustment_id=adjustment.id,
            )
            if adjustment.is_earning:
                effect.earning_lines.append(line)
                effect.gross += line.amount
            else:
                effect.deduction_lines.append(line)
                effect.total_deductions += line.amount
            effect.adjustment_ids.append(adjustment.id)
        return effect
    
    @staticmethod
    async def mark_applied(
        db: AsyncSession,
        adjustment_ids: Sequence[uuid.UUID],
        payroll_record_id: uuid.UUID,
    ) -> None:
        """
        Flag adjustments as applied inside the caller's transaction.
        
        The UPDATE only touches rows still unapplied; if another generation
        got there first the row count comes up short and the caller's
        transaction must roll back.
        """
        if not adjustment_ids:
            return
        result = await db.execute(
            update(PayrollAdjustment)
            .where(
                and_(
                    PayrollAdjustment.id.in_(adjustment_ids),
                    PayrollAdjustment.applied == False,  # noqa: E712
                )
            )
            .values(applied=True, payroll_record_id=payroll_record_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(adjustment_ids):
            raise ConflictException(
                "Adjustments were applied by another payroll generation",
                resource_type="PayrollAdjustment",
                details={"expected": len(adjustment_ids), "updated": result.rowcount},
            )


# ===========================================
# ADJUSTMENT SERVICE
# ===========================================

class AdjustmentService:
    """CRUD for payroll adjustments."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def create_adjustment(
        self,
        data: Dict[str, Any],
        created_by_id: Optional[uuid.UUID] = None,
    ) -> PayrollAdjustment:
        employee_id = data["employee_id"]
        employee = await self.db.get(Employee, employee_id)
        if not employee:
            raise EmployeeNotFoundException(employee_id)
        
        validate_period(data["month"], data["year"])
        amount = round_money(validate_amount(data["amount"]))
        
        adjustment = PayrollAdjustment(
            employee_id=employee_id,
            month=data["month"],
            year=data["year"],
            adjustment_type=AdjustmentType(data["adjustment_type"]),
            amount=amount,
            reason=data.get("reason"),
            applied=False,
            created_by_id=created_by_id,
        )
        self.db.add(adjustment)
        await self.db.commit()
        await self.db.refresh(adjustment)
        
        logger.info(
            f"Created {adjustment.adjustment_type.value} adjustment of {amount} "
            f"for employee {employee_id} ({adjustment.month:02d}/{adjustment.year})"
        )
        return adjustment
    
    async def get_adjustment(self, adjustment_id: uuid.UUID) -> Optional[PayrollAdjustment]:
        return await self.db.get(PayrollAdjustment, adjustment_id)
    
    async def list_adjustments(
        self,
        company_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        applied: Optional[bool] = None,
        adjustment_type: Optional[AdjustmentType] = None,
    ) -> List[PayrollAdjustment]:
        """List adjustments with optional filters."""
        query = select(PayrollAdjustment)
        
        if company_id:
            query = query.join(Employee, PayrollAdjustment.employee_id == Employee.id).where(
                Employee.company_id == company_id
            )
        if employee_id:
            query = query.where(PayrollAdjustment.employee_id == employee_id)
        if month:
            query = query.where(PayrollAdjustment.month == month)
        if year:
            query = query.where(PayrollAdjustment.year == year)
        if applied is not None:
            query = query.where(PayrollAdjustment.applied == applied)
        if adjustment_type:
            query = query.where(PayrollAdjustment.adjustment_type == adjustment_type)
        
        query = query.order_by(
            PayrollAdjustment.year.desc(),
            PayrollAdjustment.month.desc(),
            PayrollAdjustment.created_at.desc(),
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
    
    async def delete_adjustment(self, adjustment_id: uuid.UUID) -> None:
        """Delete an adjustment that has not been applied to payroll."""
        adjustment = await self.get_adjustment(adjustment_id)
        if not adjustment:
            raise NotFoundException("PayrollAdjustment", adjustment_id)
        
        if adjustment.applied:
            raise InvalidStateException(
                "PayrollAdjustment", "applied", "delete", allowed_states=["unapplied"],
            )
        
        await self.db.delete(adjustment)
        await self.db.commit()
        logger.info(f"Deleted adjustment {adjustment_id}")
