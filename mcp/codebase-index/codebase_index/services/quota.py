"""Quota controller - local daily admission gate for embedding work.

One unit = one chunk successfully upserted. The limit is a conservative
ceiling that spreads a large initial index over several days; real API
throttling is handled by the Gemini client's rate limiters.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date

from codebase_index.schemas.config import DAILY_QUOTA_LIMIT
from codebase_index.schemas.ledger import DailyQuota

__all__ = [
    'QuotaController',
]

logger = logging.getLogger(__name__)


class QuotaController:
    """Daily unit budget with calendar-day rollover.

    Charge only after the corresponding vectors are durably upserted.
    """

    def __init__(
        self,
        limit: int = DAILY_QUOTA_LIMIT,
        *,
        today: Callable[[], date] = date.today,
        consumed: int = 0,
        day: str | None = None,
    ) -> None:
        self._limit = limit
        self._today = today
        self._consumed = consumed
        self._day = day or today().isoformat()

    @classmethod
    def from_document(
        cls,
        quota: DailyQuota,
        *,
        limit: int | None = None,
        today: Callable[[], date] = date.today,
    ) -> QuotaController:
        """Restore persisted quota. An explicit limit overrides the stored one."""
        return cls(
            limit if limit is not None else quota.limit,
            today=today,
            consumed=quota.units_consumed_today,
            day=quota.date,
        )

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def consumed(self) -> int:
        self._roll_day()
        return self._consumed

    def has_remaining(self, units: int) -> bool:
        """True iff consumed + units stays strictly below the limit."""
        self._roll_day()
        return self._consumed + units < self._limit

    def charge(self, units: int) -> None:
        if units < 0:
            raise ValueError(f'Cannot charge negative units: {units}')
        self._roll_day()
        self._consumed += units
        logger.debug(f'[QUOTA] Charged {units}, {self._consumed:,}/{self._limit:,} used today')

    def reset(self) -> None:
        """Start a fresh day with zero consumption."""
        self._day = self._today().isoformat()
        self._consumed = 0

    def snapshot(self) -> DailyQuota:
        self._roll_day()
        return DailyQuota(date=self._day, units_consumed_today=self._consumed, limit=self._limit)

    def _roll_day(self) -> None:
        today = self._today().isoformat()
        if today != self._day:
            logger.info(f'[QUOTA] New day {today}, resetting ({self._consumed:,} used on {self._day})')
            self._day = today
            self._consumed = 0
