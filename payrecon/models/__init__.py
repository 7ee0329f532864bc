"""
Payrecon - Models Package

Import all models here so they register with Base.metadata.
"""

from payrecon.models.base import BaseModel, TimestampMixin, AuditMixin
from payrecon.models.employee import Employee, EmploymentStatus
from payrecon.models.attendance import (
    Attendance,
    AttendanceStatus,
    LeaveType,
    LeaveRequest,
    LeaveStatus,
)
from payrecon.models.salary import (
    SalaryComponent,
    SalaryStructure,
    SalaryStructureComponent,
    ComponentType,
    CalculationType,
)
from payrecon.models.payroll import (
    PayrollRecord,
    PayrollLineItem,
    PayrollAdjustment,
    PayrollPayment,
    PayrollStatus,
    AdjustmentType,
    LineType,
    LineSource,
    PaymentMethod,
    PaymentStatus,
    EARNING_ADJUSTMENT_TYPES,
)
from payrecon.models.reconciliation import (
    ReconciliationRun,
    ReconciliationItem,
    MatchType,
    MatchStatus,
    ResolutionStatus,
    ReconciliationRunStatus,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "AuditMixin",
    # Directory
    "Employee",
    "EmploymentStatus",
    # Attendance
    "Attendance",
    "AttendanceStatus",
    "LeaveType",
    "LeaveRequest",
    "LeaveStatus",
    # Salary
    "SalaryComponent",
    "SalaryStructure",
    "SalaryStructureComponent",
    "ComponentType",
    "CalculationType",
    # Payroll
    "PayrollRecord",
    "PayrollLineItem",
    "PayrollAdjustment",
    "PayrollPayment",
    "PayrollStatus",
    "AdjustmentType",
    "LineType",
    "LineSource",
    "PaymentMethod",
    "PaymentStatus",
    "EARNING_ADJUSTMENT_TYPES",
    # Reconciliation
    "ReconciliationRun",
    "ReconciliationItem",
    "MatchType",
    "MatchStatus",
    "ResolutionStatus",
    "ReconciliationRunStatus",
]
