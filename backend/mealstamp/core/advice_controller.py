"""
MealStamp - Advice Controller

Consumes the snapshot stream and decides whether the cached coaching
advice is stale. A stale snapshot claims the AdviceSession synchronously
and then spawns a background generation; the snapshot stream never waits
on a remote call.

A snapshot is stale when any of these hold:
- no generation has happened yet
- the key metrics differ from the cached snapshot's
- the current weight differs
- the number of meals captured today differs
- the day phase of now differs from that of the last generation
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from mealstamp.agents.ai_coach import AICoach
from mealstamp.core.advice_session import AdviceSession, get_phase
from mealstamp.core.clock import Clock, SystemClock
from mealstamp.core.key_metrics import generate_key_metrics
from mealstamp.core.preferences import PreferencesStore
from mealstamp.core.state import KeyMetric, NutritionSnapshot
from mealstamp.core.storage import InMemoryStorage

logger = logging.getLogger(__name__)


class AdviceController:
    """
    Staleness-gated trigger for advice and meal-suggestion generation.

    Usage:
        controller = AdviceController(coach, storage, preferences)
        storage.add_listener(controller.maybe_refresh_advice)
    """

    def __init__(
        self,
        coach: AICoach,
        storage: InMemoryStorage,
        preferences: PreferencesStore,
        session: Optional[AdviceSession] = None,
        clock: Optional[Clock] = None,
    ):
        self.coach = coach
        self.storage = storage
        self.preferences = preferences
        self.session = session or AdviceSession()
        self._clock = clock or SystemClock()
        self._logger = logging.getLogger("mealstamp.advice")
        self._tasks: set[asyncio.Task] = set()
        self._in_flight = 0

    @property
    def is_generating(self) -> bool:
        """True while any generation has sub-requests outstanding."""
        return self._in_flight > 0

    def should_trigger(self, snapshot: NutritionSnapshot, now: Optional[datetime] = None) -> bool:
        """Staleness check against the session cache, without claiming it."""
        now = now or self._clock.now()
        return self._is_stale(snapshot, now, self.session.last_context, self.session.last_generation_time)

    def _is_stale(
        self,
        snapshot: NutritionSnapshot,
        now: datetime,
        last: Optional[NutritionSnapshot],
        last_time: Optional[datetime],
    ) -> bool:
        if last is None or last_time is None:
            self._logger.debug("Advice stale: first generation")
            return True
        if generate_key_metrics(snapshot) != generate_key_metrics(last):
            self._logger.debug("Advice stale: key metrics changed")
            return True
        if snapshot.current_weight != last.current_weight:
            self._logger.debug("Advice stale: weight changed")
            return True
        if len(snapshot.daily_meals) != len(last.daily_meals):
            self._logger.debug("Advice stale: meal count changed")
            return True
        if get_phase(now.hour) != get_phase(last_time.hour):
            self._logger.debug("Advice stale: day phase changed")
            return True
        return False

    def maybe_refresh_advice(self, snapshot: NutritionSnapshot) -> bool:
        """
        Trigger a background generation when the snapshot is stale.

        Must be called from the event loop thread. The session is claimed
        before the task is created, so later snapshots in the same stale
        window see the new cache. Returns True when a generation was started.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warning("No running event loop, advice refresh skipped")
            return False

        now = self._clock.now()
        claimed = self.session.claim_if(
            lambda last, last_time: self._is_stale(snapshot, now, last, last_time),
            snapshot,
            now,
        )
        if not claimed:
            return False

        self._logger.info(f"Advice refresh triggered at {now.strftime('%H:%M')}")
        self._in_flight += 1
        task = loop.create_task(self._generate(snapshot, now))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _generate(self, snapshot: NutritionSnapshot, now: datetime) -> None:
        try:
            api_key = self.preferences.get_api_key()
            if not api_key:
                self._logger.warning("API key missing, advice generation skipped")
                return

            key_metrics = generate_key_metrics(snapshot)
            results = await asyncio.gather(
                self._refresh_advice(snapshot, key_metrics, api_key, now),
                self._refresh_meal_suggestion(snapshot, key_metrics, api_key, now),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    self._logger.error(f"Advice sub-request crashed: {result}")
        finally:
            self._in_flight -= 1

    async def _refresh_advice(
        self,
        snapshot: NutritionSnapshot,
        key_metrics: list[KeyMetric],
        api_key: str,
        now: datetime,
    ) -> None:
        result = await self.coach.get_advice(snapshot, key_metrics, api_key, now)
        if result.success:
            self.storage.update_advice(result.output)
        else:
            self._logger.warning(f"Keeping previous advice: {result.error}")

    async def _refresh_meal_suggestion(
        self,
        snapshot: NutritionSnapshot,
        key_metrics: list[KeyMetric],
        api_key: str,
        now: datetime,
    ) -> None:
        result = await self.coach.get_meal_suggestion(snapshot, key_metrics, api_key, now)
        if result.success:
            self.storage.update_meal_suggestion(result.output)
        else:
            self._logger.warning(f"Keeping previous meal suggestion: {result.error}")

    async def drain(self) -> None:
        """Wait for every in-flight generation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
