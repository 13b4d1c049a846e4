"""Tests for AuditedUnitOfWork and the immutable audit log."""

import json

import pytest
from sqlalchemy import func, select

from incident_analytics.engine.audit import AuditedUnitOfWork, row_values
from incident_analytics.exceptions import DataIntegrityError
from incident_analytics.models import AuditLog, Facility


async def _audit_count(factory):
    async with factory() as session:
        return (await session.execute(select(func.count(AuditLog.id)))).scalar()


async def _facility_count(factory):
    async with factory() as session:
        return (await session.execute(select(func.count(Facility.id)))).scalar()


class TestAuditedUnitOfWork:

    @pytest.mark.asyncio
    async def test_insert_and_update_are_audited(self, db_session_factory):
        async with AuditedUnitOfWork(db_session_factory, actor="alice", ip_address="10.0.0.5") as uow:
            facility = Facility(name="HQ", capacity=10, is_active=True)
            await uow.record_insert(facility)
        facility_id = facility.id

        async with AuditedUnitOfWork(db_session_factory, actor="bob") as uow:
            facility = await uow.session.get(Facility, facility_id)
            before = uow.capture(facility)
            facility.capacity = 25
            entry = uow.record_update(facility, before)

        assert entry.operation == "UPDATE"
        async with db_session_factory() as session:
            entries = (await session.execute(select(AuditLog).order_by(AuditLog.id))).scalars().all()

        assert [(e.operation, e.changed_by) for e in entries] == [("INSERT", "alice"), ("UPDATE", "bob")]
        assert entries[0].ip_address == "10.0.0.5"
        assert entries[0].old_value_json is None
        assert json.loads(entries[1].old_value_json) == {"capacity": 10}
        assert json.loads(entries[1].new_value_json) == {"capacity": 25}

    @pytest.mark.asyncio
    async def test_unchanged_update_writes_nothing(self, db_session_factory):
        async with AuditedUnitOfWork(db_session_factory) as uow:
            facility = Facility(name="HQ", is_active=True)
            await uow.record_insert(facility)

        async with AuditedUnitOfWork(db_session_factory) as uow:
            facility = await uow.session.get(Facility, facility.id)
            assert uow.record_update(facility, uow.capture(facility)) is None

        assert await _audit_count(db_session_factory) == 1

    @pytest.mark.asyncio
    async def test_unaudited_insert_is_refused(self, db_session_factory):
        with pytest.raises(DataIntegrityError, match="Unaudited"):
            async with AuditedUnitOfWork(db_session_factory) as uow:
                uow.session.add(Facility(name="Sneaky", is_active=True))

        assert await _facility_count(db_session_factory) == 0

    @pytest.mark.asyncio
    async def test_unaudited_update_is_refused(self, db_session_factory):
        async with AuditedUnitOfWork(db_session_factory) as uow:
            facility = Facility(name="HQ", is_active=True)
            await uow.record_insert(facility)

        with pytest.raises(DataIntegrityError, match="Unaudited"):
            async with AuditedUnitOfWork(db_session_factory) as uow:
                stored = await uow.session.get(Facility, facility.id)
                stored.name = "Renamed"

        async with db_session_factory() as session:
            assert (await session.get(Facility, facility.id)).name == "HQ"

    @pytest.mark.asyncio
    async def test_deletes_are_refused(self, db_session_factory):
        async with AuditedUnitOfWork(db_session_factory) as uow:
            facility = Facility(name="HQ", is_active=True)
            await uow.record_insert(facility)

        with pytest.raises(DataIntegrityError):
            async with AuditedUnitOfWork(db_session_factory) as uow:
                stored = await uow.session.get(Facility, facility.id)
                await uow.session.delete(stored)

        assert await _facility_count(db_session_factory) == 1

    @pytest.mark.asyncio
    async def test_error_in_body_rolls_back_mutation_and_audit(self, db_session_factory):
        with pytest.raises(RuntimeError):
            async with AuditedUnitOfWork(db_session_factory) as uow:
                await uow.record_insert(Facility(name="HQ", is_active=True))
                raise RuntimeError("boom")

        assert await _facility_count(db_session_factory) == 0
        assert await _audit_count(db_session_factory) == 0

    def test_row_values_skips_unloaded(self):
        values = row_values(Facility(name="HQ"))
        assert values["name"] == "HQ"


class TestAuditLogImmutability:

    @pytest.mark.asyncio
    async def test_update_refused(self, db_session_factory):
        async with AuditedUnitOfWork(db_session_factory) as uow:
            await uow.record_insert(Facility(name="HQ", is_active=True))

        async with db_session_factory() as session:
            entry = (await session.execute(select(AuditLog))).scalar_one()
            entry.changed_by = "mallory"
            with pytest.raises(DataIntegrityError, match="immutable"):
                await session.commit()

    @pytest.mark.asyncio
    async def test_delete_refused(self, db_session_factory):
        async with AuditedUnitOfWork(db_session_factory) as uow:
            await uow.record_insert(Facility(name="HQ", is_active=True))

        async with db_session_factory() as session:
            entry = (await session.execute(select(AuditLog))).scalar_one()
            await session.delete(entry)
            with pytest.raises(DataIntegrityError, match="cannot be deleted"):
                await session.commit()

        assert await _audit_count(db_session_factory) == 1
