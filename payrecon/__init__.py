"""
Payrecon - Payroll Generation and Payment Reconciliation Engine
"""

__version__ = "1.0.0"
