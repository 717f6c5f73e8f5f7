"""
MealStamp - AI Advice Session

Generation gate shared by everything that may trigger a coaching request.
It remembers the snapshot and time of the last generation; claiming the
gate records both synchronously, before any remote call is started, so a
burst of snapshots produces at most one generation per stale window.
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from mealstamp.core.state import NutritionSnapshot

logger = logging.getLogger(__name__)


class DayPhase(str, Enum):
    """Clock-hour buckets used to refresh meal suggestions."""
    MORNING = "morning"      # 04-10
    LUNCH = "lunch"          # 11-13
    AFTERNOON = "afternoon"  # 14-16
    EVENING = "evening"      # 17-20
    LATE = "late"
    UNKNOWN = "unknown"      # no generation recorded yet


def get_phase(hour: int) -> DayPhase:
    """Bucket a 0-23 clock hour into its day phase."""
    if 4 <= hour <= 10:
        return DayPhase.MORNING
    if 11 <= hour <= 13:
        return DayPhase.LUNCH
    if 14 <= hour <= 16:
        return DayPhase.AFTERNOON
    if 17 <= hour <= 20:
        return DayPhase.EVENING
    return DayPhase.LATE


def determine_meal_type(now: datetime) -> str:
    """Which meal the next suggestion is for."""
    phase = get_phase(now.hour)
    if phase == DayPhase.MORNING:
        return "Breakfast"
    if phase == DayPhase.LUNCH:
        return "Lunch"
    return "Dinner"


class AdviceSession:
    """
    Claim-before-work gate for advice generation.

    Not persisted: a fresh process starts empty, so the first snapshot
    after a restart always regenerates.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.last_context: Optional[NutritionSnapshot] = None
        self.last_generation_time: Optional[datetime] = None

    @property
    def last_phase(self) -> DayPhase:
        if self.last_generation_time is None:
            return DayPhase.UNKNOWN
        return get_phase(self.last_generation_time.hour)

    def claim_if(
        self,
        is_stale: Callable[[Optional[NutritionSnapshot], Optional[datetime]], bool],
        snapshot: NutritionSnapshot,
        now: datetime,
    ) -> bool:
        """
        Atomically test staleness and record the new generation.

        ``is_stale`` receives the cached snapshot and generation time. When
        it returns True the cache is overwritten with ``snapshot``/``now``
        before this method returns, and the caller owns the generation.
        """
        with self._lock:
            if not is_stale(self.last_context, self.last_generation_time):
                return False
            self.last_context = snapshot
            self.last_generation_time = now
            return True
