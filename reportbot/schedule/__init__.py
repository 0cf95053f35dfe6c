"""Schedule package.

`schedule.types` holds the persisted models. The tick loop lives in
`schedule.service`, single attempts in `schedule.executor`.
"""

from reportbot.schedule.lock import ExecutionLock
from reportbot.schedule.matcher import business_now, should_run
from reportbot.schedule.types import Run, Schedule, ScheduleStore

__all__ = ["ExecutionLock", "Run", "Schedule", "ScheduleStore", "business_now", "should_run"]
