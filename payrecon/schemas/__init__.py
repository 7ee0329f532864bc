"""
Payrecon - Schemas Package
"""
