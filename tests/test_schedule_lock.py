"""Tests for the optional per-day scheduling lock."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import LockError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import ConflictException, ScheduleConflictException
from app.core.redis_client import ScheduleLock, get_schedule_lock
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentUpdate,
    ExamType,
)
from app.services.appointment_service import AppointmentService


def make_lock(acquired: bool = True) -> tuple[ScheduleLock, MagicMock, MagicMock]:
    mock_redis = MagicMock()
    mock_lock = MagicMock()
    mock_lock.acquire = AsyncMock(return_value=acquired)
    mock_lock.release = AsyncMock()
    mock_redis.lock.return_value = mock_lock
    return ScheduleLock(mock_redis, timeout=7, blocking_timeout=3), mock_redis, mock_lock


class InMemoryLock:
    """Named lock with the acquire/release surface of redis.asyncio.lock.Lock."""

    def __init__(self, lock: asyncio.Lock, blocking_timeout: float | None):
        self._lock = lock
        self.blocking_timeout = blocking_timeout

    async def acquire(self) -> bool:
        try:
            await asyncio.wait_for(self._lock.acquire(), self.blocking_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def release(self) -> None:
        self._lock.release()


class InMemoryRedis:
    """Hands out one shared lock per name, waiting without blocking the loop."""

    def __init__(self):
        self.locks: dict[str, asyncio.Lock] = {}

    def lock(self, name: str, timeout: float | None = None, blocking_timeout: float | None = None):
        return InMemoryLock(self.locks.setdefault(name, asyncio.Lock()), blocking_timeout)


class InterleavingLock:
    """Runs another writer's change as soon as the day is held."""

    def __init__(self, concurrent_write):
        self.concurrent_write = concurrent_write
        self.days: list[date] = []

    @asynccontextmanager
    async def hold(self, day: date) -> AsyncIterator[None]:
        self.days.append(day)
        await self.concurrent_write()
        yield


def checkup(patient: dict, start_at: datetime, duration_minutes: int = 30) -> AppointmentCreate:
    return AppointmentCreate(
        patient_id=patient["id"],
        start_at=start_at,
        duration_minutes=duration_minutes,
        reason="Checkup",
        exam_type=ExamType.GENERAL_CONSULT,
    )


def test_lock_key_is_per_calendar_day():
    assert ScheduleLock.key_for(date(2024, 1, 10)) == "appointments:day-lock:2024-01-10"


async def test_hold_acquires_and_releases():
    schedule_lock, mock_redis, mock_lock = make_lock()

    async with schedule_lock.hold(date(2024, 1, 10)):
        mock_lock.release.assert_not_awaited()

    mock_redis.lock.assert_called_once_with(
        "appointments:day-lock:2024-01-10", timeout=7, blocking_timeout=3
    )
    mock_lock.acquire.assert_awaited_once()
    mock_lock.release.assert_awaited_once()


async def test_hold_releases_when_block_raises():
    schedule_lock, _, mock_lock = make_lock()

    with pytest.raises(RuntimeError):
        async with schedule_lock.hold(date(2024, 1, 10)):
            raise RuntimeError("boom")

    mock_lock.release.assert_awaited_once()


async def test_hold_raises_conflict_when_lock_is_busy():
    schedule_lock, _, mock_lock = make_lock(acquired=False)

    with pytest.raises(ConflictException):
        async with schedule_lock.hold(date(2024, 1, 10)):
            pytest.fail("block must not run without the lock")

    mock_lock.release.assert_not_awaited()


async def test_hold_tolerates_expired_lock_on_release():
    schedule_lock, _, mock_lock = make_lock()
    mock_lock.release.side_effect = LockError("expired")

    async with schedule_lock.hold(date(2024, 1, 10)):
        pass

    mock_lock.release.assert_awaited_once()


def test_schedule_lock_is_disabled_by_default():
    assert get_schedule_lock() is None


async def test_create_appointment_runs_inside_day_lock(db_session, patient):
    schedule_lock, mock_redis, mock_lock = make_lock()
    service = AppointmentService(db_session, schedule_lock=schedule_lock)

    await service.create_appointment(checkup(patient, datetime(2024, 1, 10, 9, 0)))

    mock_redis.lock.assert_called_once_with(
        "appointments:day-lock:2024-01-10", timeout=7, blocking_timeout=3
    )
    mock_lock.release.assert_awaited_once()


async def test_busy_day_lock_blocks_the_booking(db_session, patient):
    schedule_lock, _, _ = make_lock(acquired=False)
    service = AppointmentService(db_session, schedule_lock=schedule_lock)

    with pytest.raises(ConflictException):
        await service.create_appointment(checkup(patient, datetime(2024, 1, 10, 9, 0)))

    listing = await service.list_appointments(AppointmentFilters())
    assert listing.total == 0


async def test_waiting_for_the_day_lock_lets_both_bookings_through(
    test_engine, db_session, patient
):
    redis_client = InMemoryRedis()
    schedule_lock = ScheduleLock(redis_client, timeout=10, blocking_timeout=5)
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def book(start_at: datetime):
        async with session_factory() as session:
            service = AppointmentService(session, schedule_lock=schedule_lock)
            return await service.create_appointment(checkup(patient, start_at))

    # Another writer holds the day while both requests arrive
    other_writer = redis_client.lock(ScheduleLock.key_for(date(2024, 1, 10)), blocking_timeout=1)
    assert await other_writer.acquire()

    tasks = [
        asyncio.create_task(book(datetime(2024, 1, 10, 9, 0))),
        asyncio.create_task(book(datetime(2024, 1, 10, 10, 0))),
    ]
    await asyncio.sleep(0.1)
    assert not any(task.done() for task in tasks)

    await other_writer.release()
    first, second = await asyncio.gather(*tasks)

    assert {first.start_at, second.start_at} == {
        datetime(2024, 1, 10, 9, 0),
        datetime(2024, 1, 10, 10, 0),
    }
    listing = await AppointmentService(db_session).list_appointments(AppointmentFilters())
    assert listing.total == 2


async def test_concurrent_overlapping_bookings_yield_one_schedule_conflict(test_engine, patient):
    schedule_lock = ScheduleLock(InMemoryRedis(), timeout=10, blocking_timeout=5)
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def book(start_at: datetime):
        async with session_factory() as session:
            service = AppointmentService(session, schedule_lock=schedule_lock)
            return await service.create_appointment(checkup(patient, start_at))

    results = await asyncio.gather(
        book(datetime(2024, 1, 10, 9, 0)),
        book(datetime(2024, 1, 10, 9, 15)),
        return_exceptions=True,
    )

    conflicts = [r for r in results if isinstance(r, ScheduleConflictException)]
    booked = [r for r in results if not isinstance(r, BaseException)]
    assert len(conflicts) == 1
    assert len(booked) == 1


async def test_update_uses_start_written_while_waiting_for_the_lock(db_session, patient):
    created = await AppointmentService(db_session).create_appointment(
        checkup(patient, datetime(2024, 1, 10, 9, 0))
    )
    writer = AppointmentService(db_session)

    async def move_later_same_day():
        await writer.repository.save(created.id, {"start_at": datetime(2024, 1, 10, 11, 0)})

    schedule_lock = InterleavingLock(move_later_same_day)
    service = AppointmentService(db_session, schedule_lock=schedule_lock)

    updated = await service.update_appointment(created.id, AppointmentUpdate(duration_minutes=45))

    assert schedule_lock.days == [date(2024, 1, 10)]
    assert updated.start_at == datetime(2024, 1, 10, 11, 0)
    assert updated.duration_minutes == 45


async def test_update_checks_conflicts_against_latest_start(db_session, patient):
    plain = AppointmentService(db_session)
    created = await plain.create_appointment(checkup(patient, datetime(2024, 1, 10, 9, 0)))
    await plain.create_appointment(checkup(patient, datetime(2024, 1, 10, 11, 30)))

    async def move_before_neighbour():
        await plain.repository.save(created.id, {"start_at": datetime(2024, 1, 10, 11, 0)})

    service = AppointmentService(db_session, schedule_lock=InterleavingLock(move_before_neighbour))

    with pytest.raises(ScheduleConflictException):
        await service.update_appointment(created.id, AppointmentUpdate(duration_minutes=45))


async def test_update_refuses_when_appointment_moved_to_another_day(db_session, patient):
    plain = AppointmentService(db_session)
    created = await plain.create_appointment(checkup(patient, datetime(2024, 1, 10, 9, 0)))

    async def move_to_next_day():
        await plain.repository.save(created.id, {"start_at": datetime(2024, 1, 11, 9, 0)})

    service = AppointmentService(db_session, schedule_lock=InterleavingLock(move_to_next_day))

    with pytest.raises(ConflictException) as exc_info:
        await service.update_appointment(created.id, AppointmentUpdate(duration_minutes=45))

    assert not isinstance(exc_info.value, ScheduleConflictException)
    current = await plain.get_appointment(created.id)
    assert current.start_at == datetime(2024, 1, 11, 9, 0)
    assert current.duration_minutes == 30
