"""
Payrecon - Services Package
"""

from payrecon.services.adjustment_service import AdjustmentApplier, AdjustmentService
from payrecon.services.attendance_aggregator import AttendanceAggregator, AttendanceSummary
from payrecon.services.discrepancy_tracker import DiscrepancyTracker
from payrecon.services.payroll_generation_service import PayrollGenerationService
from payrecon.services.payroll_service import PayrollRecordBuilder, PayrollService
from payrecon.services.reconciliation_matcher import (
    InternalPayment,
    MatchingTolerance,
    ReconciliationMatcher,
    SettlementRow,
)
from payrecon.services.reconciliation_service import ReconciliationService
from payrecon.services.salary_structure_service import SalaryStructureService
from payrecon.services.settlement_feed import (
    SettlementFeed,
    StaticSettlementFeed,
    parse_settlement_csv,
)

__all__ = [
    "AdjustmentApplier",
    "AdjustmentService",
    "AttendanceAggregator",
    "AttendanceSummary",
    "DiscrepancyTracker",
    "PayrollGenerationService",
    "PayrollRecordBuilder",
    "PayrollService",
    "InternalPayment",
    "MatchingTolerance",
    "ReconciliationMatcher",
    "SettlementRow",
    "ReconciliationService",
    "SalaryStructureService",
    "SettlementFeed",
    "StaticSettlementFeed",
    "parse_settlement_csv",
]
