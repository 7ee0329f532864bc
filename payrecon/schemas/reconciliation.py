"""
Payrecon - Reconciliation Schemas

Pydantic schemas for settlement input, reconciliation runs, items,
statistics and exported reports.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from payrecon.models.reconciliation import (
    MatchStatus, MatchType, ReconciliationRunStatus, ResolutionStatus,
)


# ===========================================
# SETTLEMENT INPUT
# ===========================================

class SettlementRowSchema(BaseModel):
    """External settlement row as supplied by a feed."""
    reference: Optional[str] = Field(None, max_length=100)
    amount: Decimal
    settlement_date: date


# ===========================================
# ITEM / RUN RESPONSES
# ===========================================

class ReconciliationItemResponse(BaseModel):
    """Reconciliation item response."""
    id: UUID
    run_id: UUID
    payment_id: Optional[UUID] = None
    payroll_record_id: Optional[UUID] = None
    employee_id: Optional[UUID] = None
    
    internal_amount: Decimal
    internal_reference: Optional[str] = None
    internal_date: Optional[date] = None
    external_amount: Optional[Decimal] = None
    external_reference: Optional[str] = None
    external_date: Optional[date] = None
    settlement_position: Optional[int] = None
    
    match_type: MatchType
    match_status: MatchStatus
    variance_amount: Decimal
    variance_reason: Optional[str] = None
    
    resolution_status: ResolutionStatus
    resolution_notes: Optional[str] = None
    resolved_by_id: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class ReconciliationRunResponse(BaseModel):
    """Reconciliation run summary."""
    id: UUID
    company_id: UUID
    month: int
    year: int
    
    total_internal_records: int
    total_external_records: int
    matched_records: int
    unmatched_internal: int
    unmatched_external: int
    exact_match_count: int
    minor_variance_count: int
    major_variance_count: int
    
    total_variance_amount: Decimal
    unmatched_amount: Decimal
    auto_match_threshold: Decimal
    orphaned_settlements: Optional[List[Dict[str, Any]]] = None
    
    status: ReconciliationRunStatus
    performed_by_id: Optional[UUID] = None
    reconciled_at: datetime
    
    class Config:
        from_attributes = True


class ReconciliationRunDetail(ReconciliationRunResponse):
    """Run with its items."""
    items: List[ReconciliationItemResponse] = []


# ===========================================
# STATS / EXPORT
# ===========================================

class ReconciliationStats(BaseModel):
    """Aggregate reconciliation statistics for a company."""
    total_runs: int = 0
    total_matched: int = 0
    total_unmatched_internal: int = 0
    total_unmatched_external: int = 0
    total_variance_amount: Decimal = Decimal("0.00")
    total_unmatched_amount: Decimal = Decimal("0.00")
    status_breakdown: Dict[str, int] = {}


class ReconciliationReportRow(BaseModel):
    employee_code: Optional[str] = None
    employee_name: Optional[str] = None
    internal_amount: Decimal
    external_amount: Optional[Decimal] = None
    internal_reference: Optional[str] = None
    external_reference: Optional[str] = None
    match_type: MatchType
    match_status: MatchStatus
    variance_amount: Decimal
    variance_reason: Optional[str] = None
    resolution_status: ResolutionStatus
    resolution_notes: Optional[str] = None


class ReconciliationReport(BaseModel):
    """Exportable reconciliation report."""
    summary: ReconciliationRunResponse
    items: List[ReconciliationReportRow] = []
    orphaned_settlements: List[Dict[str, Any]] = []


# ===========================================
# REFERENCE SUGGESTIONS
# ===========================================

class ReferenceSuggestionResponse(BaseModel):
    """Settlement reference proposed for a payment recorded without one."""
    payment_id: UUID
    payroll_record_id: Optional[UUID] = None
    employee_id: Optional[UUID] = None
    internal_amount: Decimal
    suggested_reference: str
    external_amount: Decimal
    settlement_date: date
    settlement_position: int
    confidence: Decimal


class UnreferencedPayment(BaseModel):
    payment_id: UUID
    employee_id: Optional[UUID] = None
    internal_amount: Decimal
    payment_date: date


class ReferenceSuggestionReport(BaseModel):
    """Suggestions are advisory; nothing is written until the caller applies them."""
    month: int
    year: int
    suggestions: List[ReferenceSuggestionResponse] = []
    unmatched: List[UnreferencedPayment] = []
