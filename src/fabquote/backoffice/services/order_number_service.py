"""
Human readable order numbers: two-digit year, a letter, five digits
(e.g. 25Z00001). Letters run Z -> A; the sequence moves to the next letter
after 99999. Suffixed variants (25Z00001-B) count as their base number.
"""

import asyncio
import logging
import random
import re
import string
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Tuple

from sqlalchemy import exists, select

from fabquote.backoffice.models.order import Order
from fabquote.config import get_settings
from fabquote.database import SessionFactory, session_scope
from fabquote.exceptions.handlers import ConflictError, OrderNumberExhaustedError

logger = logging.getLogger(__name__)

LETTER_SEQUENCE = string.ascii_uppercase[::-1]
MAX_SEQUENCE = 99999

_NUMBER_RE = re.compile(r"^(\d{2})([A-Z])(\d{5})(?:-[A-Z]+)?$")


def parse_number(value: str) -> Optional[Tuple[str, str, int]]:
    match = _NUMBER_RE.match(value or "")
    if not match:
        return None
    year, letter, sequence = match.groups()
    return year, letter, int(sequence)


def next_in_sequence(existing: Iterable[str], year_suffix: str) -> str:
    best_letter_idx = 0
    best_sequence = 0
    for value in existing:
        parsed = parse_number(value)
        if parsed is None or parsed[0] != year_suffix:
            continue
        letter_idx = LETTER_SEQUENCE.index(parsed[1])
        if (letter_idx, parsed[2]) > (best_letter_idx, best_sequence):
            best_letter_idx, best_sequence = letter_idx, parsed[2]

    if best_sequence >= MAX_SEQUENCE:
        if best_letter_idx >= len(LETTER_SEQUENCE) - 1:
            raise ConflictError(f"Maximum order number reached for year 20{year_suffix}")
        letter, sequence = LETTER_SEQUENCE[best_letter_idx + 1], 1
    else:
        letter, sequence = LETTER_SEQUENCE[best_letter_idx], best_sequence + 1
    return f"{year_suffix}{letter}{sequence:05d}"


class OrderNumberService:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        max_retries: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._session_factory = session_factory
        self.max_retries = max_retries or get_settings().ORDER_NUMBER_MAX_RETRIES
        self._sleep = sleep

    def next_order_number(self, year: Optional[int] = None) -> str:
        year_suffix = str(year or datetime.utcnow().year)[-2:]
        with session_scope(self._session_factory) as session:
            numbers = session.scalars(
                select(Order.order_number).where(Order.order_number.like(f"{year_suffix}%"))
            ).all()
        return next_in_sequence(numbers, year_suffix)

    def _is_taken(self, order_number: str) -> bool:
        with session_scope(self._session_factory) as session:
            return bool(
                session.execute(
                    select(exists().where(Order.order_number == order_number))
                ).scalar()
            )

    async def reserve(self, year: Optional[int] = None) -> str:
        """
        Pick the next free order number, retrying with a short jittered
        back-off when a concurrent writer takes the candidate first. Runs in
        its own sessions so no caller transaction is held open.
        """
        for attempt in range(1, self.max_retries + 1):
            candidate = self.next_order_number(year)
            if not self._is_taken(candidate):
                return candidate
            logger.warning(
                "Order number %s already exists, retrying (attempt %s/%s)",
                candidate,
                attempt,
                self.max_retries,
            )
            await self._sleep(random.uniform(0.05, 0.15))
        raise OrderNumberExhaustedError(self.max_retries)
