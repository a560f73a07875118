import asyncio
from unittest.mock import patch

import pytest

from fabquote.backoffice.models.order import Order
from fabquote.backoffice.services.order_number_service import (
    OrderNumberService,
    next_in_sequence,
    parse_number,
)
from fabquote.database import session_scope
from fabquote.exceptions.handlers import ConflictError, OrderNumberExhaustedError


def test_parse_number():
    assert parse_number("25Z00042") == ("25", "Z", 42)
    assert parse_number("25Z00042-B") == ("25", "Z", 42)
    assert parse_number("ORD-1") is None


def test_sequence_starts_at_z00001():
    assert next_in_sequence([], "26") == "26Z00001"


def test_sequence_ignores_other_years_and_suffixes():
    existing = ["25Z00900", "26Z00003", "26Z00007-B", "junk"]
    assert next_in_sequence(existing, "26") == "26Z00008"


def test_sequence_rolls_to_next_letter():
    assert next_in_sequence(["26Z99999", "26Z00001"], "26") == "26Y00001"
    assert next_in_sequence(["26Z99999", "26Y00004"], "26") == "26Y00005"


def test_sequence_exhausted():
    with pytest.raises(ConflictError):
        next_in_sequence(["26A99999"], "26")


def test_next_order_number_reads_existing_orders(session_factory):
    with session_scope(session_factory) as session:
        session.add(Order(order_number="26Z00001"))
        session.add(Order(order_number="26Z00002"))

    service = OrderNumberService(session_factory, max_retries=2)
    assert service.next_order_number(2026) == "26Z00003"


def test_reserve_retries_when_candidate_taken(session_factory):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    service = OrderNumberService(session_factory, max_retries=3, sleep=fake_sleep)
    taken = iter([True, False])

    with patch.object(service, "_is_taken", side_effect=lambda number: next(taken)):
        number = asyncio.run(service.reserve(2026))

    assert number == "26Z00001"
    assert len(sleeps) == 1
    assert 0.05 <= sleeps[0] <= 0.15


def test_reserve_gives_up_after_max_retries(session_factory):
    async def fake_sleep(seconds):
        return None

    service = OrderNumberService(session_factory, max_retries=3, sleep=fake_sleep)

    with patch.object(service, "_is_taken", return_value=True):
        with pytest.raises(OrderNumberExhaustedError) as excinfo:
            asyncio.run(service.reserve(2026))

    assert excinfo.value.message == "Failed to generate unique order number after maximum retries"
    assert excinfo.value.details == {"attempts": 3}
