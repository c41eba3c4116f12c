import logging
import threading
from collections.abc import Callable

from engcoach.services.workout_session import WorkoutSessionManager

log = logging.getLogger(__name__)

Key = tuple[int, int]  # (athlete_id, workout_id)


class SessionRegistry:
    """Live session controllers, one per athlete and workout."""

    def __init__(self):
        self._managers: dict[Key, WorkoutSessionManager] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        athlete_id: int,
        workout_id: int,
        factory: Callable[[], WorkoutSessionManager],
    ) -> WorkoutSessionManager:
        with self._lock:
            manager = self._managers.get((athlete_id, workout_id))
            if manager is None:
                manager = factory()
                self._managers[(athlete_id, workout_id)] = manager
                log.debug("Created session controller for athlete=%s workout=%s", athlete_id, workout_id)
            return manager

    def get(self, athlete_id: int, workout_id: int) -> WorkoutSessionManager | None:
        with self._lock:
            return self._managers.get((athlete_id, workout_id))

    def release(self, athlete_id: int, workout_id: int) -> bool:
        with self._lock:
            manager = self._managers.pop((athlete_id, workout_id), None)
        if manager is None:
            return False
        manager.teardown()
        return True

    def clear(self) -> None:
        with self._lock:
            managers = list(self._managers.values())
            self._managers.clear()
        for manager in managers:
            manager.teardown()


registry = SessionRegistry()


def get_registry() -> SessionRegistry:
    return registry
