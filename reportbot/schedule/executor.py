"""Run one report attempt: render, deliver, record."""

from dataclasses import asdict, dataclass
from datetime import tzinfo
from typing import Any, Protocol

from loguru import logger

from reportbot.config.schema import DeliveryConfig
from reportbot.delivery.base import DeliveryChannel
from reportbot.delivery.report_email import compose_report_email, load_logos
from reportbot.errors import ConfigurationError, ReportbotError
from reportbot.schedule.lock import ExecutionLock
from reportbot.schedule.matcher import business_now
from reportbot.schedule.storage import ScheduleRepository
from reportbot.schedule.types import Run, RunTrigger, Schedule
from reportbot.utils.helpers import utc_now

SCHEDULE_NOT_FOUND = "schedule not found"
ALREADY_RUNNING = "schedule is already running"
REPORT_SENT = "report sent successfully"


class PdfRenderer(Protocol):
    async def render_pdf(self, subject_id: str) -> bytes: ...


@dataclass
class RunNowResult:
    """Outcome of a manual trigger."""

    success: bool
    message: str
    run_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ScheduleExecutor:
    """
    Executes a schedule once.

    The steps run strictly in order and the first failure ends the attempt:
    create the run, check preconditions, render the PDF, send it, record the
    outcome. Whatever goes wrong is written to the run and logged here; it is
    never raised to the caller, and nothing is retried.
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        renderer: PdfRenderer,
        channel: DeliveryChannel,
        lock: ExecutionLock,
        timezone: tzinfo,
        delivery: DeliveryConfig | None = None,
        guard_manual_runs: bool = True,
    ):
        self.repository = repository
        self.renderer = renderer
        self.channel = channel
        self.lock = lock
        self.timezone = timezone
        self.delivery = delivery or DeliveryConfig()
        self.guard_manual_runs = guard_manual_runs

    async def execute(self, schedule: Schedule, trigger: RunTrigger = "tick") -> Run:
        """Perform one attempt and return the terminal run."""
        run = self.repository.create_run(schedule.id, trigger=trigger)

        try:
            recipients = self._check_preconditions(schedule)

            logger.info(f"Generating PDF for {schedule.subject_name or schedule.subject_id}...")
            pdf = await self.renderer.render_pdf(schedule.subject_id)

            email = compose_report_email(
                subject_name=schedule.subject_name or schedule.subject_id,
                frequency=schedule.frequency,
                pdf=pdf,
                report_date=business_now(self.timezone).date(),
                report_title=self.delivery.report_title,
                team_name=self.delivery.team_name,
                logos=load_logos(self.delivery.logo_dir),
            )

            logger.info(f"Sending email to {len(recipients)} recipients...")
            await self.channel.send(
                recipients,
                email.subject,
                email.html_body,
                email.attachment,
                email.inline_images,
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            kind = e.kind if isinstance(e, ReportbotError) else "unexpected"
            logger.error(f"Schedule '{schedule.name}' ({schedule.id}) failed [{kind}]: {message}")
            return self.repository.update_run(
                run.id,
                "failed",
                error_message=message,
                completed_at=utc_now(),
            )

        logger.info(f"Schedule '{schedule.name}' ({schedule.id}) executed successfully")
        return self.repository.update_run(
            run.id,
            "success",
            recipient_count=len(recipients),
            completed_at=utc_now(),
        )

    def _check_preconditions(self, schedule: Schedule) -> list[str]:
        if not self.channel.is_configured():
            raise ConfigurationError(
                f"Delivery channel '{self.channel.name}' is not configured",
                step="validating",
            )
        recipients = [r.strip() for r in schedule.recipients if r.strip()]
        if not recipients:
            raise ConfigurationError(
                "No recipients configured for this schedule",
                step="validating",
                context={"schedule_id": schedule.id},
            )
        return recipients

    async def run_now(self, schedule_id: str) -> RunNowResult:
        """Manual trigger: execute ``schedule_id`` now and report the outcome.

        With ``guard_manual_runs`` the execution lock is honoured, so a manual
        run never overlaps a tick run of the same schedule. Without it the two
        can both be running at once.
        """
        schedule = self.repository.get_schedule(schedule_id)
        if schedule is None:
            return RunNowResult(success=False, message=SCHEDULE_NOT_FOUND)

        logger.info(f"Manual run requested for '{schedule.name}' ({schedule.id})")
        try:
            if self.guard_manual_runs:
                if not self.lock.try_acquire(schedule.id):
                    logger.info(f"Schedule {schedule.id} already executing, manual run refused")
                    return RunNowResult(success=False, message=ALREADY_RUNNING)
                try:
                    run = await self.execute(schedule, trigger="manual")
                finally:
                    self.lock.release(schedule.id)
            else:
                if self.lock.is_held(schedule.id):
                    logger.warning(
                        f"Schedule {schedule.id} is already executing from a tick; "
                        "manual run proceeds unguarded and both runs will overlap"
                    )
                run = await self.execute(schedule, trigger="manual")
        except Exception as e:
            logger.exception(f"Manual run of {schedule.id} failed before completion: {e}")
            return RunNowResult(success=False, message=str(e) or type(e).__name__)

        if run.status == "success":
            return RunNowResult(success=True, message=REPORT_SENT, run_id=run.id)
        return RunNowResult(success=False, message=run.error_message or "report failed", run_id=run.id)
