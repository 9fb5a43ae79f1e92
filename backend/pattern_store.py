"""
Pattern store: preferences, the active pattern set, dismissal history and
the shared suggestion rate limiter.

Counters reset lazily: the stored date is compared to "today" whenever they
are read. Scans run on scheduler threads, so every read-modify-write happens
under one lock.
"""
import threading
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

import structlog

from models import (
    PATTERN_TYPES,
    DetectedPattern,
    DismissedPattern,
    PatternPreference,
    PatternState,
)

logger = structlog.get_logger()

MAX_SUGGESTIONS_PER_DAY = 3
MAX_SUGGESTIONS_PER_WEEK = 10

DEFAULT_PREFERENCES = (
    PatternPreference(pattern_type="postpone", autonomy="ask", threshold=3),
    PatternPreference(pattern_type="deadlineWarning", autonomy="ask", threshold=2),
    PatternPreference(pattern_type="autoClient", autonomy="off"),
)


def week_start(day: date) -> str:
    """Monday of the week containing day."""
    return (day - timedelta(days=day.weekday())).isoformat()


def _pattern_key(pattern: DetectedPattern) -> tuple:
    return (pattern.pattern_type, pattern.task_ids[0] if pattern.task_ids else None)


class PatternStore:
    def __init__(
        self,
        state: Optional[PatternState] = None,
        default_preferences: Sequence[PatternPreference] = DEFAULT_PREFERENCES,
        max_per_day: int = MAX_SUGGESTIONS_PER_DAY,
        max_per_week: int = MAX_SUGGESTIONS_PER_WEEK,
        clock: Callable[[], datetime] = datetime.now,
        on_change: Optional[Callable[[PatternState], None]] = None,
    ):
        self._lock = threading.RLock()
        self._defaults = {p.pattern_type: p for p in default_preferences}
        self._max_per_day = max_per_day
        self._max_per_week = max_per_week
        self._clock = clock
        self._on_change = on_change
        self._state = self._with_all_preferences(state or PatternState(preferences=list(default_preferences)))

    def _with_all_preferences(self, state: PatternState) -> PatternState:
        """Exactly one preference per known pattern type."""
        by_type = {p.pattern_type: p for p in state.preferences}
        preferences = [
            by_type.get(t) or self._defaults.get(t) or PatternPreference(pattern_type=t, autonomy="ask")
            for t in PATTERN_TYPES
        ]
        return state.model_copy(update={"preferences": preferences})

    def _commit(self, **updates):
        self._state = self._state.model_copy(update=updates)
        if self._on_change:
            self._on_change(self._state)

    def _today(self) -> date:
        return self._clock().date()

    # --- Snapshots ---

    @property
    def state(self) -> PatternState:
        with self._lock:
            return self._state.model_copy(deep=True)

    @property
    def preferences(self) -> list[PatternPreference]:
        with self._lock:
            return [p.model_copy() for p in self._state.preferences]

    @property
    def active_patterns(self) -> list[DetectedPattern]:
        with self._lock:
            return list(self._state.active_patterns)

    @property
    def dismissed_patterns(self) -> list[DismissedPattern]:
        with self._lock:
            return list(self._state.dismissed_patterns)

    def get_pattern(self, pattern_id: str) -> Optional[DetectedPattern]:
        with self._lock:
            return next((p for p in self._state.active_patterns if p.id == pattern_id), None)

    # --- Preferences ---

    def get_preference(self, pattern_type: str) -> PatternPreference:
        with self._lock:
            return next(p for p in self._state.preferences if p.pattern_type == pattern_type)

    def update_preference(self, pattern_type: str, autonomy: Optional[str] = None,
                          threshold: Optional[int] = None) -> PatternPreference:
        with self._lock:
            updated = []
            for pref in self._state.preferences:
                if pref.pattern_type == pattern_type:
                    changes = {}
                    if autonomy is not None:
                        changes["autonomy"] = autonomy
                    if threshold is not None:
                        changes["threshold"] = threshold
                    pref = pref.model_copy(update=changes)
                updated.append(pref)
            self._commit(preferences=updated)
            logger.info("pattern_preference_updated", pattern_type=pattern_type,
                        autonomy=autonomy, threshold=threshold)
            return self.get_preference(pattern_type)

    def set_all_patterns_enabled(self, enabled: bool):
        """Turn every pattern type off, or back to its default autonomy."""
        with self._lock:
            preferences = []
            for pref in self._state.preferences:
                default = self._defaults.get(pref.pattern_type)
                autonomy = (default.autonomy if default else "ask") if enabled else "off"
                preferences.append(pref.model_copy(update={"autonomy": autonomy}))
            active = self._state.active_patterns if enabled else []
            self._commit(preferences=preferences, active_patterns=active)
            logger.info("patterns_toggled", enabled=enabled)

    def is_any_pattern_enabled(self) -> bool:
        with self._lock:
            return any(p.autonomy != "off" for p in self._state.preferences)

    # --- Active set ---

    def replace_active_patterns(self, patterns: Iterable[DetectedPattern]) -> bool:
        """Replace the active set. Returns False when nothing changed."""
        patterns = list(patterns)
        with self._lock:
            current = self._state.active_patterns
            if [_pattern_key(p) for p in current] == [_pattern_key(p) for p in patterns]:
                return False
            self._commit(active_patterns=patterns)
            return True

    def accept_pattern(self, pattern_id: str) -> bool:
        """Consume a pattern. No dismissal record; the condition may resurface."""
        with self._lock:
            remaining = [p for p in self._state.active_patterns if p.id != pattern_id]
            if len(remaining) == len(self._state.active_patterns):
                return False
            self._commit(active_patterns=remaining)
            logger.info("pattern_accepted", pattern_id=pattern_id)
            return True

    def dismiss_pattern(self, pattern_id: str, permanent: bool = False) -> bool:
        """Remove a pattern and remember the dismissal. Unknown ids are a no-op."""
        with self._lock:
            pattern = self.get_pattern(pattern_id)
            if pattern is None:
                return False
            record = DismissedPattern(
                pattern_type=pattern.pattern_type,
                task_id=None if permanent else (pattern.task_ids[0] if pattern.task_ids else None),
                dismissed_at=self._clock().isoformat(),
                permanent=permanent,
            )
            self._commit(
                active_patterns=[p for p in self._state.active_patterns if p.id != pattern_id],
                dismissed_patterns=[*self._state.dismissed_patterns, record],
            )
            logger.info("pattern_dismissed", pattern_id=pattern_id,
                        pattern_type=pattern.pattern_type, permanent=permanent)
            return True

    # --- Rate limiting ---

    def is_dismissed(self, pattern_type: str, task_id: Optional[str] = None) -> bool:
        with self._lock:
            for record in self._state.dismissed_patterns:
                if record.pattern_type != pattern_type:
                    continue
                if record.permanent and record.task_id is None:
                    return True
                if record.task_id and record.task_id == task_id:
                    return True
            return False

    def _effective_counts(self) -> tuple[int, int]:
        today = self._today()
        state = self._state
        shown_today = state.suggestions_shown_today if state.last_suggestion_date == today.isoformat() else 0
        shown_week = state.suggestions_shown_this_week if state.week_start_date == week_start(today) else 0
        return shown_today, shown_week

    def quota_exhausted(self) -> bool:
        with self._lock:
            shown_today, shown_week = self._effective_counts()
            return shown_today >= self._max_per_day or shown_week >= self._max_per_week

    def can_show_pattern(self, pattern_type: str, task_id: Optional[str] = None) -> bool:
        with self._lock:
            if self.get_preference(pattern_type).autonomy == "off":
                return False
            if self.quota_exhausted():
                return False
            return not self.is_dismissed(pattern_type, task_id)

    def record_pattern_shown(self):
        with self._lock:
            shown_today, shown_week = self._effective_counts()
            today = self._today()
            self._commit(
                last_suggestion_date=today.isoformat(),
                suggestions_shown_today=shown_today + 1,
                week_start_date=week_start(today),
                suggestions_shown_this_week=shown_week + 1,
            )

    def claim_suggestion_slot(self, pattern_type: str, task_id: Optional[str] = None) -> bool:
        """Check and count one shown suggestion atomically."""
        with self._lock:
            if not self.can_show_pattern(pattern_type, task_id):
                if self.quota_exhausted():
                    logger.info("suggestion_quota_exhausted", pattern_type=pattern_type)
                return False
            self.record_pattern_shown()
            return True
