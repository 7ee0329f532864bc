"""
Error Handling Module for Payrecon

This module provides centralized error handling with:
- Custom exception hierarchy
- Standardized error payloads for the enclosing service
- Monetary input validation helpers
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

# Configure logging
logger = logging.getLogger("payrecon.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the engine"""
    
    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_PERIOD = "INVALID_PERIOD"
    
    # Resource Errors
    NOT_FOUND = "NOT_FOUND"
    EMPLOYEE_NOT_FOUND = "EMPLOYEE_NOT_FOUND"
    SALARY_STRUCTURE_NOT_FOUND = "SALARY_STRUCTURE_NOT_FOUND"
    PAYROLL_NOT_FOUND = "PAYROLL_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    PAYROLL_EXISTS = "PAYROLL_EXISTS"
    DUPLICATE_SETTLEMENT_REFERENCE = "DUPLICATE_SETTLEMENT_REFERENCE"
    
    # State Errors
    INVALID_STATE = "INVALID_STATE"
    
    # External Read Errors
    EXTERNAL_READ_TIMEOUT = "EXTERNAL_READ_TIMEOUT"
    
    # Internal Errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all engine exceptions"""
    
    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for the caller's response body"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""
    
    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            details=details,
            field=field,
        )


class InvalidAmountException(ValidationException):
    """Invalid monetary amount"""
    
    def __init__(self, amount: Any, field: str = "amount", message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid amount: {amount}. Amount must be a positive number.",
            field=field,
            code=ErrorCode.INVALID_AMOUNT,
            details={"provided_amount": str(amount)},
        )


class InvalidPeriodException(ValidationException):
    """Invalid payroll period"""
    
    def __init__(self, month: Any, year: Any):
        super().__init__(
            message=f"Invalid payroll period: {month}/{year}. Month must be 1-12.",
            field="month",
            code=ErrorCode.INVALID_PERIOD,
            details={"month": month, "year": year},
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""
    
    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class EmployeeNotFoundException(NotFoundException):
    """Employee not found"""
    
    def __init__(self, employee_id: Union[str, UUID]):
        super().__init__(
            resource_type="Employee",
            resource_id=employee_id,
            code=ErrorCode.EMPLOYEE_NOT_FOUND,
        )


class SalaryStructureNotFoundException(NotFoundException):
    """No salary structure effective for the period"""
    
    def __init__(self, employee_id: Union[str, UUID], effective_on: Any):
        super().__init__(
            resource_type="SalaryStructure",
            message=f"No salary structure defined for employee '{employee_id}' effective on {effective_on}",
            code=ErrorCode.SALARY_STRUCTURE_NOT_FOUND,
        )
        self.details["employee_id"] = str(employee_id)


class PayrollNotFoundException(NotFoundException):
    """Payroll record not found"""
    
    def __init__(self, payroll_id: Union[str, UUID]):
        super().__init__(
            resource_type="PayrollRecord",
            resource_id=payroll_id,
            code=ErrorCode.PAYROLL_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""
    
    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            details=_details,
        )


class DuplicateEntryException(ConflictException):
    """Duplicate entry exception"""
    
    def __init__(
        self,
        resource_type: str,
        field: str,
        value: str,
    ):
        super().__init__(
            message=f"{resource_type} with {field} '{value}' already exists",
            resource_type=resource_type,
            code=ErrorCode.DUPLICATE_ENTRY,
            details={"field": field, "value": value},
        )


class PayrollExistsException(ConflictException):
    """Payroll already generated for employee and period"""
    
    def __init__(self, employee_id: Union[str, UUID], month: int, year: int):
        super().__init__(
            message=f"Payroll already exists for employee '{employee_id}' for {month:02d}/{year}",
            resource_type="PayrollRecord",
            code=ErrorCode.PAYROLL_EXISTS,
            details={"employee_id": str(employee_id), "month": month, "year": year},
        )


class DuplicateSettlementReferenceException(ConflictException):
    """The same settlement reference appears more than once in a feed"""
    
    def __init__(self, reference: str, positions: list):
        super().__init__(
            message=f"Settlement reference '{reference}' is claimed by more than one row",
            resource_type="PaymentSettlementRecord",
            code=ErrorCode.DUPLICATE_SETTLEMENT_REFERENCE,
            details={"reference": reference, "positions": positions},
        )


# ============================================================================
# State Exceptions
# ============================================================================

class InvalidStateException(AppException):
    """Operation attempted from the wrong status"""
    
    def __init__(
        self,
        resource_type: str,
        current_state: str,
        action: str,
        allowed_states: Optional[list] = None,
    ):
        message = f"Cannot {action} {resource_type} in '{current_state}' status"
        if allowed_states:
            message += f" (allowed: {', '.join(allowed_states)})"
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message=message,
            details={
                "resource_type": resource_type,
                "current_state": current_state,
                "action": action,
                "allowed_states": allowed_states or [],
            },
        )


# ============================================================================
# External Read Exceptions
# ============================================================================

class ExternalReadTimeoutException(AppException):
    """An external read did not complete within the configured timeout"""
    
    def __init__(self, source: str, timeout_seconds: float, original_error: Optional[Exception] = None):
        super().__init__(
            code=ErrorCode.EXTERNAL_READ_TIMEOUT,
            message=f"Reading {source} timed out after {timeout_seconds:g}s",
            details={"source": source, "timeout_seconds": timeout_seconds},
            original_error=original_error,
        )


# ============================================================================
# Validation helpers
# ============================================================================

def validate_amount(amount: Any, field: str = "amount", allow_zero: bool = False) -> Decimal:
    """Validate a monetary amount and return it as Decimal"""
    if isinstance(amount, bool):
        raise InvalidAmountException(amount, field)
    try:
        value = Decimal(str(amount))
    except (TypeError, ValueError, InvalidOperation):
        raise InvalidAmountException(amount, field)
    if not value.is_finite():
        raise InvalidAmountException(amount, field)
    if value < 0 or (not allow_zero and value == 0):
        raise InvalidAmountException(amount, field)
    return value


def validate_period(month: Any, year: Any) -> None:
    """Validate a payroll month/year pair"""
    if not isinstance(month, int) or not isinstance(year, int):
        raise InvalidPeriodException(month, year)
    if month < 1 or month > 12 or year < 1900:
        raise InvalidPeriodException(month, year)


# Export all exceptions for easy importing
__all__ = [
    # Base
    "AppException",
    "ErrorCode",
    
    # Validation
    "ValidationException",
    "InvalidAmountException",
    "InvalidPeriodException",
    
    # Resource
    "NotFoundException",
    "EmployeeNotFoundException",
    "SalaryStructureNotFoundException",
    "PayrollNotFoundException",
    "ConflictException",
    "DuplicateEntryException",
    "PayrollExistsException",
    "DuplicateSettlementReferenceException",
    
    # State
    "InvalidStateException",
    
    # External
    "ExternalReadTimeoutException",
    
    # Helpers
    "validate_amount",
    "validate_period",
]
