"""
Payrecon - Salary Component and Structure Models

Salary structures are versioned by effective date. A version is never
edited in place; a change creates a new version.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, ForeignKey, Integer, Numeric, String, Uuid,
    Enum as SQLEnum, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrecon.models.base import BaseModel, AuditMixin


class ComponentType(str, Enum):
    """Earning or deduction."""
    EARNING = "earning"
    DEDUCTION = "deduction"


class CalculationType(str, Enum):
    """Fixed amount or percentage of a running total."""
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class SalaryComponent(BaseModel):
    """
    A reusable pay component (e.g. HRA, PF).
    
    Statutory components are exempt from loss-of-pay proration.
    """
    
    __tablename__ = "salary_components"
    
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True,
    )
    code: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    component_type: Mapped[ComponentType] = mapped_column(
        SQLEnum(ComponentType), nullable=False,
    )
    calculation_type: Mapped[CalculationType] = mapped_column(
        SQLEnum(CalculationType), default=CalculationType.FIXED, nullable=False,
    )
    is_statutory: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    __table_args__ = (
        UniqueConstraint('company_id', 'code', name='uq_salary_component_company_code'),
    )


class SalaryStructure(BaseModel, AuditMixin):
    """One compensation version for an employee."""
    
    __tablename__ = "salary_structures"
    
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    basic_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
        comment="Monthly basic salary",
    )
    notes: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    
    components: Mapped[List["SalaryStructureComponent"]] = relationship(
        "SalaryStructureComponent",
        back_populates="structure",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    
    __table_args__ = (
        UniqueConstraint('employee_id', 'effective_from', name='uq_salary_structure_employee_effective'),
    )


class SalaryStructureComponent(BaseModel):
    """Value of one component inside a structure version (amount or percent)."""
    
    __tablename__ = "salary_structure_components"
    
    structure_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("salary_structures.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    component_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("salary_components.id"),
        nullable=False,
        index=True,
    )
    value: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    
    structure: Mapped["SalaryStructure"] = relationship(
        "SalaryStructure", back_populates="components",
    )
    component: Mapped["SalaryComponent"] = relationship(
        "SalaryComponent", lazy="selectin",
    )
