"""In-memory guard: at most one execution per schedule at a time."""


class ExecutionLock:
    """Set of schedule ids currently executing.

    ``try_acquire`` never suspends, so under a single asyncio loop the
    check-and-insert cannot interleave with another coroutine.
    """

    def __init__(self) -> None:
        self._held: set[str] = set()

    def try_acquire(self, schedule_id: str) -> bool:
        if schedule_id in self._held:
            return False
        self._held.add(schedule_id)
        return True

    def release(self, schedule_id: str) -> None:
        self._held.discard(schedule_id)

    def is_held(self, schedule_id: str) -> bool:
        return schedule_id in self._held

    def held(self) -> list[str]:
        return sorted(self._held)

    def __len__(self) -> int:
        return len(self._held)
