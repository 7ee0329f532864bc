"""
Payrecon - Reconciliation Service

Runs payment reconciliation for a company and period:
collect completed payroll payments, read the settlement feed, match,
and record the run. Also proposes settlement references for payments
recorded without one.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from payrecon.config import Settings, get_settings
from payrecon.models.payroll import PaymentStatus, PayrollPayment
from payrecon.models.reconciliation import ReconciliationRun
from payrecon.schemas.reconciliation import (
    ReferenceSuggestionReport, ReferenceSuggestionResponse, UnreferencedPayment,
)
from payrecon.services.discrepancy_tracker import DiscrepancyTracker
from payrecon.services.reconciliation_matcher import (
    InternalPayment, MatchingTolerance, ReconciliationMatcher,
)
from payrecon.services.settlement_feed import SettlementFeed
from payrecon.utils.error_handling import validate_period
from payrecon.utils.external_reads import read_with_timeout
from payrecon.utils.money import calendar_date, round_money

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Orchestrates matcher and tracker for one reconciliation run."""
    
    def __init__(self, db: AsyncSession, config: Optional[Settings] = None):
        self.db = db
        self.config = config or get_settings()
        self.tolerance = MatchingTolerance.from_settings(self.config)
        self.tracker = DiscrepancyTracker(db)
    
    async def collect_internal_payments(
        self,
        company_id: uuid.UUID,
        month: int,
        year: int,
    ) -> List[InternalPayment]:
        """Completed salary payments for the period, in a stable order."""
        result = await self.db.execute(
            select(PayrollPayment)
            .where(
                and_(
                    PayrollPayment.company_id == company_id,
                    PayrollPayment.month == month,
                    PayrollPayment.year == year,
                    PayrollPayment.status == PaymentStatus.COMPLETED,
                )
            )
            .order_by(PayrollPayment.payment_date, PayrollPayment.created_at, PayrollPayment.id)
        )
        return [
            InternalPayment(
                id=payment.id,
                amount=payment.amount,
                payment_date=payment.payment_date,
                reference=payment.reference,
                employee_id=payment.employee_id,
                payroll_record_id=payment.payroll_record_id,
            )
            for payment in result.scalars().all()
        ]
    
    async def reconcile(
        self,
        company_id: uuid.UUID,
        month: int,
        year: int,
        feed: SettlementFeed,
        performed_by_id: Optional[uuid.UUID] = None,
    ) -> ReconciliationRun:
        """
        Reconcile a period's payroll payments against a settlement feed.
        
        Raises:
            ExternalReadTimeoutException: the feed did not answer in time
            DuplicateSettlementReferenceException: the feed repeats a reference
        """
        validate_period(month, year)
        
        internal_payments = await self.collect_internal_payments(company_id, month, year)
        settlement_rows = await read_with_timeout(
            "settlement feed",
            feed.fetch(company_id, month, year),
            self.config.external_read_timeout_seconds,
        )
        
        logger.info(
            f"Reconciling {len(internal_payments)} payments against {len(settlement_rows)} "
            f"settlement rows for company {company_id} ({month:02d}/{year})"
        )
        
        result = ReconciliationMatcher(self.tolerance).match(internal_payments, settlement_rows)
        
        return await self.tracker.record_run(
            company_id=company_id,
            month=month,
            year=year,
            result=result,
            total_external_records=len(settlement_rows),
            auto_match_threshold=self.tolerance.auto_match_threshold,
            performed_by_id=performed_by_id,
        )
    
    async def suggest_references(
        self,
        company_id: uuid.UUID,
        month: int,
        year: int,
        feed: SettlementFeed,
    ) -> ReferenceSuggestionReport:
        """
        Suggest settlement references for completed payments that have none.
        
        Uses the same date and threshold rules as `reconcile`, with a
        confidence of 1 - |difference| / internal amount per suggestion.
        Nothing is persisted.
        """
        validate_period(month, year)
        
        internal_payments = await self.collect_internal_payments(company_id, month, year)
        settlement_rows = await read_with_timeout(
            "settlement feed",
            feed.fetch(company_id, month, year),
            self.config.external_read_timeout_seconds,
        )
        
        result = ReconciliationMatcher(self.tolerance).suggest_references(internal_payments, settlement_rows)
        
        logger.info(
            f"Reference suggestions for company {company_id} ({month:02d}/{year}): "
            f"{len(result.suggestions)} suggested, {len(result.unmatched)} without a candidate"
        )
        
        return ReferenceSuggestionReport(
            month=month,
            year=year,
            suggestions=[
                ReferenceSuggestionResponse(
                    payment_id=suggestion.internal.id,
                    payroll_record_id=suggestion.internal.payroll_record_id,
                    employee_id=suggestion.internal.employee_id,
                    internal_amount=round_money(suggestion.internal.amount),
                    suggested_reference=suggestion.settlement.reference,
                    external_amount=round_money(suggestion.settlement.amount),
                    settlement_date=calendar_date(suggestion.settlement.settlement_date),
                    settlement_position=suggestion.settlement.position,
                    confidence=suggestion.confidence,
                )
                for suggestion in result.suggestions
            ],
            unmatched=[
                UnreferencedPayment(
                    payment_id=payment.id,
                    employee_id=payment.employee_id,
                    internal_amount=round_money(payment.amount),
                    payment_date=calendar_date(payment.payment_date),
                )
                for payment in result.unmatched
            ],
        )
