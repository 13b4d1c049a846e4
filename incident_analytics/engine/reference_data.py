"""Reference Data Manager — facilities, categories and personnel."""

from datetime import date
from typing import Optional

from sqlalchemy import func as sa_func, select

from ..exceptions import DataIntegrityError
from ..models.category import Category
from ..models.facility import Facility
from ..models.incident import Incident
from ..models.personnel import Personnel
from ..reporting.records import TERMINAL_STATUSES, utcnow
from ..utils.logging import get_logger
from .audit import AuditedUnitOfWork
from .category_tree import CategoryTree

logger = get_logger("engine.reference_data")

_TERMINAL_VALUES = [s.value for s in TERMINAL_STATUSES]


class ReferenceDataManager:
    """Creates and maintains the entities incidents refer to."""

    def __init__(self, db_session_factory=None):
        self._db_session_factory = db_session_factory

    def set_db_session_factory(self, factory) -> None:
        self._db_session_factory = factory

    def _unit_of_work(self, actor: str) -> AuditedUnitOfWork:
        return AuditedUnitOfWork(self._db_session_factory, actor=actor)

    # ── Facilities ───────────────────────────────────────────────────────

    async def create_facility(
        self,
        name: str,
        location: str | None = None,
        facility_type: str | None = None,
        capacity: int | None = None,
        actor: str = "system",
    ) -> dict:
        if capacity is not None and capacity < 0:
            raise DataIntegrityError("Facility capacity must be >= 0")
        async with self._unit_of_work(actor) as uow:
            facility = Facility(
                name=name,
                location=location,
                facility_type=facility_type,
                capacity=capacity,
                is_active=True,
            )
            await uow.record_insert(facility)
            result = self._facility_dict(facility)

        logger.info("facility_created", id=result["id"], name=name)
        return result

    async def set_facility_active(self, facility_id: int, is_active: bool, actor: str = "system") -> dict:
        async with self._unit_of_work(actor) as uow:
            facility = await uow.session.get(Facility, facility_id)
            if facility is None:
                raise DataIntegrityError(f"Facility {facility_id} does not exist")
            before = uow.capture(facility)
            facility.is_active = is_active
            facility.modified_at = utcnow()
            uow.record_update(facility, before)
            return self._facility_dict(facility)

    # ── Categories ───────────────────────────────────────────────────────

    async def create_category(
        self,
        name: str,
        description: str | None = None,
        parent_id: int | None = None,
        actor: str = "system",
    ) -> dict:
        async with self._unit_of_work(actor) as uow:
            tree = await CategoryTree.load(uow.session)
            tree.validate_parent(None, parent_id)
            category = Category(name=name, description=description, parent_id=parent_id, is_active=True)
            await uow.record_insert(category)
            result = self._category_dict(category)

        logger.info("category_created", id=result["id"], name=name, parent_id=parent_id)
        return result

    async def set_category_parent(self, category_id: int, parent_id: int | None, actor: str = "system") -> dict:
        """Re-parent a category; refuses edges that would close a cycle."""
        async with self._unit_of_work(actor) as uow:
            category = await uow.session.get(Category, category_id)
            if category is None:
                raise DataIntegrityError(f"Category {category_id} does not exist")
            tree = await CategoryTree.load(uow.session)
            tree.validate_parent(category_id, parent_id)

            before = uow.capture(category)
            category.parent_id = parent_id
            uow.record_update(category, before)
            result = self._category_dict(category)

        logger.info("category_reparented", id=category_id, parent_id=parent_id)
        return result

    # ── Personnel ────────────────────────────────────────────────────────

    async def create_personnel(
        self,
        first_name: str,
        last_name: str,
        role: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        facility_id: int | None = None,
        hire_date: date | None = None,
        actor: str = "system",
    ) -> dict:
        async with self._unit_of_work(actor) as uow:
            if facility_id is not None and await uow.session.get(Facility, facility_id) is None:
                raise DataIntegrityError(f"Facility {facility_id} does not exist")
            person = Personnel(
                first_name=first_name,
                last_name=last_name,
                role=role,
                email=email,
                phone=phone,
                facility_id=facility_id,
                hire_date=hire_date,
                is_active=True,
            )
            await uow.record_insert(person)
            result = self._personnel_dict(person, active_incidents=0)

        logger.info("personnel_created", id=result["id"], role=role)
        return result

    async def get_personnel(self, personnel_id: int) -> Optional[dict]:
        """Get one person with the active incident count derived on read."""
        async with self._db_session_factory() as session:
            person = await session.get(Personnel, personnel_id)
            if person is None:
                return None
            active = (await session.execute(
                select(sa_func.count(Incident.id)).where(
                    Incident.assigned_to_id == personnel_id,
                    Incident.status.not_in(_TERMINAL_VALUES),
                )
            )).scalar() or 0
            return self._personnel_dict(person, active_incidents=active)

    # ── Serialization ────────────────────────────────────────────────────

    @staticmethod
    def _facility_dict(facility: Facility) -> dict:
        return {
            "id": facility.id,
            "name": facility.name,
            "location": facility.location,
            "facility_type": facility.facility_type,
            "capacity": facility.capacity,
            "is_active": facility.is_active,
        }

    @staticmethod
    def _category_dict(category: Category) -> dict:
        return {
            "id": category.id,
            "name": category.name,
            "description": category.description,
            "parent_id": category.parent_id,
            "is_active": category.is_active,
        }

    @staticmethod
    def _personnel_dict(person: Personnel, active_incidents: int) -> dict:
        return {
            "id": person.id,
            "name": person.full_name,
            "first_name": person.first_name,
            "last_name": person.last_name,
            "role": person.role,
            "email": person.email,
            "facility_id": person.facility_id,
            "is_active": person.is_active,
            "active_incidents": active_incidents,
        }
