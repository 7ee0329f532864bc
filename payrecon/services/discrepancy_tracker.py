"""
Payrecon - Discrepancy Tracker

Persists reconciliation runs and their items, computes run aggregates and
drives the manual resolution workflow. Resolving an item never touches the
underlying payroll record or payment.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from payrecon.models.employee import Employee
from payrecon.models.reconciliation import (
    MatchStatus, ReconciliationItem, ReconciliationRun,
    ReconciliationRunStatus, ResolutionStatus,
)
from payrecon.schemas.reconciliation import (
    ReconciliationReport, ReconciliationReportRow, ReconciliationRunResponse,
    ReconciliationStats,
)
from payrecon.services.reconciliation_matcher import MatchOutcome, MatchResult
from payrecon.utils.error_handling import (
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from payrecon.utils.money import ZERO, calendar_date, round_money, to_decimal

logger = logging.getLogger(__name__)


def run_status_for(result: MatchResult) -> ReconciliationRunStatus:
    """Reconciled only when every item is an exact match and nothing is orphaned."""
    all_exact = all(o.match_status == MatchStatus.EXACT_MATCH for o in result.outcomes)
    if all_exact and not result.orphaned_settlements:
        return ReconciliationRunStatus.RECONCILED
    return ReconciliationRunStatus.DISCREPANCIES_FOUND


def _item_from_outcome(outcome: MatchOutcome, sequence: int) -> ReconciliationItem:
    internal = outcome.internal
    settlement = outcome.settlement
    return ReconciliationItem(
        sequence=sequence,
        payment_id=internal.id,
        payroll_record_id=internal.payroll_record_id,
        employee_id=internal.employee_id,
        internal_amount=round_money(internal.amount),
        internal_reference=internal.reference,
        internal_date=calendar_date(internal.payment_date),
        external_amount=round_money(settlement.amount) if settlement else None,
        external_reference=settlement.reference if settlement else None,
        external_date=calendar_date(settlement.settlement_date) if settlement else None,
        settlement_position=settlement.position if settlement else None,
        match_type=outcome.match_type,
        match_status=outcome.match_status,
        variance_amount=outcome.variance_amount,
        variance_reason=outcome.variance_reason,
        resolution_status=ResolutionStatus.OPEN,
    )


class DiscrepancyTracker:
    """Reconciliation run persistence and discrepancy resolution."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    # ===========================================
    # RECORDING
    # ===========================================
    
    async def record_run(
        self,
        company_id: uuid.UUID,
        month: int,
        year: int,
        result: MatchResult,
        total_external_records: int,
        auto_match_threshold: Decimal,
        performed_by_id: Optional[uuid.UUID] = None,
    ) -> ReconciliationRun:
        """Persist a run and all of its items in one transaction."""
        matched = [o for o in result.outcomes if o.is_matched]
        unmatched = [o for o in result.outcomes if not o.is_matched]
        
        run = ReconciliationRun(
            company_id=company_id,
            month=month,
            year=year,
            total_internal_records=len(result.outcomes),
            total_external_records=total_external_records,
            matched_records=len(matched),
            unmatched_internal=len(unmatched),
            unmatched_external=len(result.orphaned_settlements),
            exact_match_count=result.count(MatchStatus.EXACT_MATCH),
            minor_variance_count=result.count(MatchStatus.MINOR_VARIANCE),
            major_variance_count=result.count(MatchStatus.MAJOR_VARIANCE),
            total_variance_amount=round_money(sum((o.variance_amount for o in matched), ZERO)),
            unmatched_amount=round_money(sum((to_decimal(o.internal.amount) for o in unmatched), ZERO)),
            auto_match_threshold=auto_match_threshold,
            orphaned_settlements=[row.to_dict() for row in result.orphaned_settlements],
            status=run_status_for(result),
            performed_by_id=performed_by_id,
            reconciled_at=datetime.now(timezone.utc),
            items=[
                _item_from_outcome(outcome, sequence)
                for sequence, outcome in enumerate(result.outcomes)
            ],
        )
        
        try:
            self.db.add(run)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(run)
        
        logger.info(
            f"Reconciliation {run.id} for company {company_id} ({month:02d}/{year}): "
            f"{run.matched_records}/{run.total_internal_records} matched, "
            f"{run.minor_variance_count} minor, {run.major_variance_count} major, "
            f"{run.unmatched_internal} missing, {run.unmatched_external} orphaned -> {run.status.value}"
        )
        return run
    
    # ===========================================
    # QUERIES
    # ===========================================
    
    async def get_run(
        self,
        run_id: uuid.UUID,
        company_id: Optional[uuid.UUID] = None,
    ) -> Optional[ReconciliationRun]:
        query = select(ReconciliationRun).where(ReconciliationRun.id == run_id)
        if company_id:
            query = query.where(ReconciliationRun.company_id == company_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()
    
    async def list_runs(
        self,
        company_id: uuid.UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
        status: Optional[ReconciliationRunStatus] = None,
    ) -> List[ReconciliationRun]:
        """List runs, newest first."""
        query = select(ReconciliationRun).where(ReconciliationRun.company_id == company_id)
        if month:
            query = query.where(ReconciliationRun.month == month)
        if year:
            query = query.where(ReconciliationRun.year == year)
        if status:
            query = query.where(ReconciliationRun.status == status)
        
        query = query.order_by(ReconciliationRun.reconciled_at.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())
    
    async def list_items(
        self,
        run_id: uuid.UUID,
        match_status: Optional[MatchStatus] = None,
        resolution_status: Optional[ResolutionStatus] = None,
    ) -> List[ReconciliationItem]:
        query = select(ReconciliationItem).where(ReconciliationItem.run_id == run_id)
        if match_status:
            query = query.where(ReconciliationItem.match_status == match_status)
        if resolution_status:
            query = query.where(ReconciliationItem.resolution_status == resolution_status)
        
        query = query.order_by(ReconciliationItem.sequence)
        result = await self.db.execute(query)
        return list(result.scalars().all())
    
    # ===========================================
    # RESOLUTION
    # ===========================================
    
    async def resolve_item(
        self,
        item_id: uuid.UUID,
        remarks: str,
        resolved_by_id: Optional[uuid.UUID] = None,
    ) -> ReconciliationItem:
        """
        Mark a discrepancy as resolved.
        
        Once every non-exact item of the run is resolved the run itself
        moves to `resolved`.
        """
        if not remarks or not remarks.strip():
            raise ValidationException("Resolution remarks are required", field="remarks")
        
        item = await self.db.get(ReconciliationItem, item_id)
        if not item:
            raise NotFoundException("ReconciliationItem", item_id)
        
        if item.resolution_status != ResolutionStatus.OPEN:
            raise InvalidStateException(
                "ReconciliationItem",
                item.resolution_status.value,
                "resolve",
                allowed_states=[ResolutionStatus.OPEN.value],
            )
        
        item.resolution_status = ResolutionStatus.RESOLVED
        item.resolution_notes = remarks.strip()
        item.resolved_by_id = resolved_by_id
        item.resolved_at = datetime.now(timezone.utc)
        
        run = await self.get_run(item.run_id)
        outstanding = [
            other for other in run.items
            if other.match_status != MatchStatus.EXACT_MATCH
            and other.resolution_status == ResolutionStatus.OPEN
        ]
        if not outstanding and run.status == ReconciliationRunStatus.DISCREPANCIES_FOUND:
            run.status = ReconciliationRunStatus.RESOLVED
            logger.info(f"Reconciliation run {run.id} fully resolved")
        
        await self.db.commit()
        await self.db.refresh(item)
        
        logger.info(f"Reconciliation item {item_id} resolved by {resolved_by_id}")
        return item
    
    # ===========================================
    # STATS / EXPORT
    # ===========================================
    
    async def get_stats(
        self,
        company_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ReconciliationStats:
        """Totals across runs whose reconciled_at falls within [start, end]."""
        conditions = [ReconciliationRun.company_id == company_id]
        if start:
            conditions.append(ReconciliationRun.reconciled_at >= start)
        if end:
            conditions.append(ReconciliationRun.reconciled_at <= end)
        
        totals = await self.db.execute(
            select(
                func.count(ReconciliationRun.id),
                func.sum(ReconciliationRun.matched_records),
                func.sum(ReconciliationRun.unmatched_internal),
                func.sum(ReconciliationRun.unmatched_external),
                func.sum(ReconciliationRun.total_variance_amount),
                func.sum(ReconciliationRun.unmatched_amount),
            ).where(and_(*conditions))
        )
        count, matched, unmatched_internal, unmatched_external, variance, unmatched_amount = totals.one()
        
        breakdown = await self.db.execute(
            select(ReconciliationRun.status, func.count(ReconciliationRun.id))
            .where(and_(*conditions))
            .group_by(ReconciliationRun.status)
        )
        
        return ReconciliationStats(
            total_runs=count or 0,
            total_matched=matched or 0,
            total_unmatched_internal=unmatched_internal or 0,
            total_unmatched_external=unmatched_external or 0,
            total_variance_amount=round_money(variance),
            total_unmatched_amount=round_money(unmatched_amount),
            status_breakdown={status.value: n for status, n in breakdown.all()},
        )
    
    async def export_report(self, run_id: uuid.UUID) -> ReconciliationReport:
        """Flatten a run into a report with employee codes and names."""
        run = await self.get_run(run_id)
        if not run:
            raise NotFoundException("ReconciliationRun", run_id)
        
        employee_ids = {item.employee_id for item in run.items if item.employee_id}
        employees = {}
        if employee_ids:
            result = await self.db.execute(select(Employee).where(Employee.id.in_(employee_ids)))
            employees = {employee.id: employee for employee in result.scalars().all()}
        
        rows = []
        for item in run.items:
            employee = employees.get(item.employee_id)
            rows.append(
                ReconciliationReportRow(
                    employee_code=employee.employee_code if employee else None,
                    employee_name=employee.full_name if employee else None,
                    internal_amount=item.internal_amount,
                    external_amount=item.external_amount,
                    internal_reference=item.internal_reference,
                    external_reference=item.external_reference,
                    match_type=item.match_type,
                    match_status=item.match_status,
                    variance_amount=item.variance_amount,
                    variance_reason=item.variance_reason,
                    resolution_status=item.resolution_status,
                    resolution_notes=item.resolution_notes,
                )
            )
        
        return ReconciliationReport(
            summary=ReconciliationRunResponse.model_validate(run),
            items=rows,
            orphaned_settlements=run.orphaned_settlements or [],
        )
