"""
Payrecon - Payment Reconciliation Models

A reconciliation run compares the internal payroll payments of a period
against an external settlement feed. Each internal payment produces one
item; settlement rows nobody claimed are kept on the run as orphans.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum, JSON, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrecon.models.base import BaseModel


# =============================================================================
# ENUMS
# =============================================================================

class MatchType(str, Enum):
    """How an internal payment was paired with a settlement row."""
    REFERENCE = "reference"
    AMOUNT_DATE = "amount_date"
    NONE = "none"


class MatchStatus(str, Enum):
    """Classification of a reconciliation item."""
    EXACT_MATCH = "exact_match"
    MINOR_VARIANCE = "minor_variance"
    MAJOR_VARIANCE = "major_variance"
    UNMATCHED = "unmatched"


class ResolutionStatus(str, Enum):
    """Human resolution state of an item."""
    OPEN = "open"
    RESOLVED = "resolved"


class ReconciliationRunStatus(str, Enum):
    """Overall run status."""
    RECONCILED = "reconciled"
    DISCREPANCIES_FOUND = "discrepancies_found"
    RESOLVED = "resolved"


# =============================================================================
# MODELS
# =============================================================================

class ReconciliationRun(BaseModel):
    """Summary of one reconciliation pass for a company and period."""
    
    __tablename__ = "reconciliation_runs"
    
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    
    # Counts
    total_internal_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_external_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    matched_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unmatched_internal: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unmatched_external: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    exact_match_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    minor_variance_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    major_variance_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    
    # Amounts
    total_variance_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
        comment="Sum of variances over matched pairs",
    )
    unmatched_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
        comment="Sum of internal amounts with no settlement row",
    )
    auto_match_threshold: Mapped[Decimal] = mapped_column(
        Numeric(precision=7, scale=4), nullable=False,
    )
    
    # Settlement rows no internal payment claimed
    orphaned_settlements: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(
        JSON, nullable=True,
    )
    
    status: Mapped[ReconciliationRunStatus] = mapped_column(
        SQLEnum(ReconciliationRunStatus), nullable=False,
    )
    performed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True,
    )
    reconciled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    
    items: Mapped[List["ReconciliationItem"]] = relationship(
        "ReconciliationItem",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="ReconciliationItem.sequence",
        lazy="selectin",
    )
    
    __table_args__ = (
        Index('ix_reconciliation_runs_company_period', 'company_id', 'year', 'month'),
    )


class ReconciliationItem(BaseModel):
    """One internal payment and the settlement row it was matched to, if any."""
    
    __tablename__ = "reconciliation_items"
    
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("reconciliation_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_payments.id", ondelete="SET NULL"),
        nullable=True,
    )
    payroll_record_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True,
    )
    employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True,
    )
    
    # Internal side
    internal_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    internal_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    internal_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    
    # External side
    external_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    external_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    external_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    settlement_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    
    match_type: Mapped[MatchType] = mapped_column(SQLEnum(MatchType), nullable=False)
    match_status: Mapped[MatchStatus] = mapped_column(SQLEnum(MatchStatus), nullable=False)
    variance_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0"), nullable=False,
    )
    variance_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    
    # Resolution
    resolution_status: Mapped[ResolutionStatus] = mapped_column(
        SQLEnum(ResolutionStatus), default=ResolutionStatus.OPEN, nullable=False,
    )
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True,
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    
    run: Mapped["ReconciliationRun"] = relationship(
        "ReconciliationRun", back_populates="items",
    )
