"""
Payrecon - Salary Structure Service

Salary components and versioned salary structures.

A structure version is never edited in place. Raising a salary means
creating a new version with a later `effective_from`; payroll for a period
always uses the latest version effective on or before the period start.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from payrecon.models.employee import Employee
from payrecon.models.salary import (
    SalaryComponent, SalaryStructure, SalaryStructureComponent,
    ComponentType, CalculationType,
)
from payrecon.utils.error_handling import (
    ConflictException,
    DuplicateEntryException,
    EmployeeNotFoundException,
    NotFoundException,
    SalaryStructureNotFoundException,
    ValidationException,
    validate_amount,
)
from payrecon.utils.money import round_money

logger = logging.getLogger(__name__)

MAX_PERCENTAGE = Decimal("100")

# Fields a component update may touch
UPDATABLE_COMPONENT_FIELDS = {
    "name", "component_type", "calculation_type",
    "is_statutory", "display_order", "is_active",
}


class SalaryStructureService:
    """Service for salary components and structure versions."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    # ===========================================
    # SALARY COMPONENTS
    # ===========================================
    
    async def create_salary_component(
        self,
        company_id: uuid.UUID,
        data: Dict[str, Any],
    ) -> SalaryComponent:
        """Create a salary component; codes are unique per company."""
        code = data["code"]
        existing = await self.db.execute(
            select(SalaryComponent.id).where(
                and_(
                    SalaryComponent.company_id == company_id,
                    SalaryComponent.code == code,
                )
            )
        )
        if existing.scalar_one_or_none():
            raise DuplicateEntryException("SalaryComponent", "code", code)
        
        component = SalaryComponent(
            company_id=company_id,
            code=code,
            name=data["name"],
            component_type=ComponentType(data["component_type"]),
            calculation_type=CalculationType(data.get("calculation_type", CalculationType.FIXED)),
            is_statutory=data.get("is_statutory", False),
            display_order=data.get("display_order", 0),
            is_active=data.get("is_active", True),
        )
        self.db.add(component)
        await self.db.commit()
        await self.db.refresh(component)
        
        logger.info(f"Created salary component {component.code} for company {company_id}")
        return component
    
    async def get_salary_component(
        self,
        component_id: uuid.UUID,
    ) -> Optional[SalaryComponent]:
        result = await self.db.execute(
            select(SalaryComponent).where(SalaryComponent.id == component_id)
        )
        return result.scalar_one_or_none()
    
    async def list_salary_components(
        self,
        company_id: uuid.UUID,
        component_type: Optional[ComponentType] = None,
        is_active: Optional[bool] = None,
    ) -> List[SalaryComponent]:
        """List components in calculation order."""
        query = select(SalaryComponent).where(SalaryComponent.company_id == company_id)
        
        if component_type:
            query = query.where(SalaryComponent.component_type == component_type)
        
        if is_active is not None:
            query = query.where(SalaryComponent.is_active == is_active)
        
        query = query.order_by(SalaryComponent.display_order, SalaryComponent.code)
        result = await self.db.execute(query)
        return list(result.scalars().all())
    
    async def update_salary_component(
        self,
        component_id: uuid.UUID,
        **changes: Any,
    ) -> SalaryComponent:
        """
        Update a component that no structure version references yet.
        
        Once referenced, a component is frozen so historical payroll stays
        reproducible; create a new component instead.
        """
        component = await self.get_salary_component(component_id)
        if not component:
            raise NotFoundException("SalaryComponent", component_id)
        
        unknown = set(changes) - UPDATABLE_COMPONENT_FIELDS
        if unknown:
            raise ValidationException(
                f"Cannot update fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        
        if await self._is_referenced(component_id):
            raise ConflictException(
                f"Salary component '{component.code}' is used by a salary structure and cannot be changed",
                resource_type="SalaryComponent",
            )
        
        for key, value in changes.items():
            setattr(component, key, value)
        
        await self.db.commit()
        await self.db.refresh(component)
        return component
    
    async def delete_salary_component(self, component_id: uuid.UUID) -> None:
        """Delete a component that no structure version references."""
        component = await self.get_salary_component(component_id)
        if not component:
            raise NotFoundException("SalaryComponent", component_id)
        
        if await self._is_referenced(component_id):
            raise ConflictException(
                f"Salary component '{component.code}' is used by a salary structure and cannot be deleted",
                resource_type="SalaryComponent",
            )
        
        await self.db.delete(component)
        await self.db.commit()
        logger.info(f"Deleted salary component {component.code} ({component_id})")
    
    async def _is_referenced(self, component_id: uuid.UUID) -> bool:
        referenced = await self.db.execute(
            select(
                exists().where(SalaryStructureComponent.component_id == component_id)
            )
        )
        return bool(referenced.scalar())
    
    # ===========================================
    # SALARY STRUCTURES
    # ===========================================
    
    async def create_salary_structure(
        self,
        data: Dict[str, Any],
        created_by_id: Optional[uuid.UUID] = None,
    ) -> SalaryStructure:
        """
        Create a new structure version for an employee.
        
        data keys: employee_id, effective_from, basic_salary, components
        (list of {"component_id", "value"}), notes.
        """
        employee_id = data["employee_id"]
        effective_from: date = data["effective_from"]
        
        employee = await self.db.get(Employee, employee_id)
        if not employee:
            raise EmployeeNotFoundException(employee_id)
        
        basic_salary = round_money(validate_amount(data["basic_salary"], field="basic_salary"))
        
        duplicate = await self.db.execute(
            select(SalaryStructure.id).where(
                and_(
                    SalaryStructure.employee_id == employee_id,
                    SalaryStructure.effective_from == effective_from,
                )
            )
        )
        if duplicate.scalar_one_or_none():
            raise ConflictException(
                f"A salary structure effective from {effective_from} already exists for this employee",
                resource_type="SalaryStructure",
                details={"employee_id": str(employee_id), "effective_from": effective_from.isoformat()},
            )
        
        lines: List[SalaryStructureComponent] = []
        seen = set()
        for entry in data.get("components", []):
            component_id = entry["component_id"]
            if component_id in seen:
                raise ValidationException(
                    f"Component {component_id} listed more than once",
                    field="components",
                )
            seen.add(component_id)
            
            component = await self.get_salary_component(component_id)
            if not component or component.company_id != employee.company_id:
                raise NotFoundException("SalaryComponent", component_id)
            
            value = validate_amount(entry["value"], field="value")
            if component.calculation_type == CalculationType.PERCENTAGE and value > MAX_PERCENTAGE:
                raise ValidationException(
                    f"Percentage for {component.code} cannot exceed 100",
                    field="value",
                    details={"component": component.code, "value": str(value)},
                )
            lines.append(
                SalaryStructureComponent(component_id=component_id, value=value)
            )
        
        structure = SalaryStructure(
            employee_id=employee_id,
            effective_from=effective_from,
            basic_salary=basic_salary,
            notes=data.get("notes"),
            created_by_id=created_by_id,
            components=lines,
        )
        self.db.add(structure)
        await self.db.commit()
        await self.db.refresh(structure)
        
        logger.info(
            f"Created salary structure for employee {employee_id} effective {effective_from} "
            f"(basic {basic_salary}, {len(lines)} components)"
        )
        return structure
    
    async def resolve(
        self,
        employee_id: uuid.UUID,
        period_start: date,
    ) -> SalaryStructure:
        """Return the latest version effective on or before period_start."""
        result = await self.db.execute(
            select(SalaryStructure)
            .where(
                and_(
                    SalaryStructure.employee_id == employee_id,
                    SalaryStructure.effective_from <= period_start,
                )
            )
            .order_by(SalaryStructure.effective_from.desc())
            .limit(1)
        )
        structure = result.scalar_one_or_none()
        if not structure:
            raise SalaryStructureNotFoundException(employee_id, period_start)
        return structure
    
    async def get_structure_history(
        self,
        employee_id: uuid.UUID,
    ) -> List[SalaryStructure]:
        """All versions for an employee, newest first."""
        result = await self.db.execute(
            select(SalaryStructure)
            .where(SalaryStructure.employee_id == employee_id)
            .order_by(SalaryStructure.effective_from.desc())
        )
        return list(result.scalars().all())
