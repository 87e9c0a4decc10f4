"""Tests for the overlap rules and the conflict detector."""

from datetime import datetime, timedelta
from itertools import product
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from app.services.conflict_detector import (
    ConflictDetector,
    appointment_end,
    day_bounds,
    intervals_overlap,
)


def at(hour: int, minute: int = 0, day: int = 10) -> datetime:
    return datetime(2024, 1, day, hour, minute)


def test_day_bounds_cover_the_whole_calendar_day():
    start, end = day_bounds(at(14, 35))
    assert start == datetime(2024, 1, 10, 0, 0)
    assert end == datetime(2024, 1, 10, 23, 59, 59, 999999)


def test_appointment_end_uses_duration():
    assert appointment_end({"start_at": at(9), "duration_minutes": 30}) == at(9, 30)


def test_appointment_end_defaults_missing_duration_to_15_minutes():
    assert appointment_end({"start_at": at(9), "duration_minutes": None}) == at(9, 15)
    assert appointment_end({"start_at": at(9)}) == at(9, 15)


@pytest.mark.parametrize(
    ("candidate", "existing", "expected"),
    [
        # Touching endpoints never overlap
        ((at(8, 30), at(9)), (at(9), at(9, 15)), False),
        ((at(9, 30), at(9, 45)), (at(9), at(9, 30)), False),
        # Start inside existing
        ((at(9, 15), at(9, 30)), (at(9), at(9, 30)), True),
        # End inside existing
        ((at(8, 45), at(9, 10)), (at(9), at(9, 30)), True),
        # Candidate contains existing
        ((at(8), at(10)), (at(9), at(9, 30)), True),
        # Existing contains candidate
        ((at(9, 5), at(9, 10)), (at(9), at(9, 30)), True),
        # Identical windows
        ((at(9), at(9, 30)), (at(9), at(9, 30)), True),
        # Disjoint
        ((at(11), at(11, 15)), (at(9), at(9, 30)), False),
    ],
)
def test_intervals_overlap(candidate, existing, expected):
    assert intervals_overlap(*candidate, *existing) is expected


def test_overlap_is_symmetric():
    starts = [at(9, m) for m in range(0, 60, 5)]
    durations = [5, 10, 15, 30]

    for start_a, dur_a, start_b, dur_b in product(starts, durations, starts, durations):
        end_a = start_a + timedelta(minutes=dur_a)
        end_b = start_b + timedelta(minutes=dur_b)
        assert intervals_overlap(start_a, end_a, start_b, end_b) == intervals_overlap(
            start_b, end_b, start_a, end_a
        )


@pytest.mark.asyncio
async def test_find_conflict_queries_the_candidate_day_without_cancelled():
    repository = AsyncMock()
    repository.find_by_day_and_status.return_value = []
    exclude_id = uuid4()

    result = await ConflictDetector(repository).find_conflict(at(9), 30, exclude_id=exclude_id)

    assert result is None
    repository.find_by_day_and_status.assert_awaited_once_with(
        datetime(2024, 1, 10, 0, 0),
        datetime(2024, 1, 10, 23, 59, 59, 999999),
        excluded_statuses=["cancelled"],
        exclude_id=exclude_id,
    )


@pytest.mark.asyncio
async def test_find_conflict_returns_first_overlapping_appointment():
    first = {"id": uuid4(), "start_at": at(9), "duration_minutes": 30}
    second = {"id": uuid4(), "start_at": at(9, 20), "duration_minutes": 30}
    repository = AsyncMock()
    repository.find_by_day_and_status.return_value = [
        {"id": uuid4(), "start_at": at(8), "duration_minutes": 15},
        first,
        second,
    ]

    result = await ConflictDetector(repository).find_conflict(at(9, 15), 15)

    assert result is first


@pytest.mark.asyncio
async def test_find_conflict_treats_missing_duration_as_15_minutes():
    legacy = {"id": uuid4(), "start_at": at(10), "duration_minutes": None}
    repository = AsyncMock()
    repository.find_by_day_and_status.return_value = [legacy]
    detector = ConflictDetector(repository)

    assert await detector.find_conflict(at(10, 10), 15) is legacy
    assert await detector.find_conflict(at(10, 15), 15) is None
